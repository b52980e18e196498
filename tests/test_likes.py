import pytest

from app import crud
from app.errors import ConflictError
from app.models import Like, User, Video

API = "/api/v1"


@pytest.mark.asyncio
async def test_like_scenario(client, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    video = await make_video(alice)

    liked = await client.post(f"{API}/likes/toggle/v/{video['id']}", headers=bob["headers"])
    assert liked.status_code == 200
    assert liked.json()["data"] == {"targetId": video["id"], "liked": True, "likeCount": 1}

    as_bob = (await client.get(f"{API}/videos/{video['id']}", headers=bob["headers"])).json()["data"]
    assert (as_bob["likeCount"], as_bob["isLiked"]) == (1, True)
    as_alice = (await client.get(f"{API}/videos/{video['id']}", headers=alice["headers"])).json()["data"]
    assert (as_alice["likeCount"], as_alice["isLiked"]) == (1, False)

    unliked = await client.post(f"{API}/likes/toggle/v/{video['id']}", headers=bob["headers"])
    assert unliked.json()["data"]["liked"] is False
    assert unliked.json()["data"]["likeCount"] == 0

    as_bob = (await client.get(f"{API}/videos/{video['id']}", headers=bob["headers"])).json()["data"]
    assert (as_bob["likeCount"], as_bob["isLiked"]) == (0, False)


@pytest.mark.asyncio
async def test_toggle_twice_restores_and_third_repeats_first(client, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    tweet = (await client.post(f"{API}/tweets", json={"content": "like me"}, headers=alice["headers"])).json()["data"]

    results = []
    for _ in range(3):
        response = await client.post(f"{API}/likes/toggle/t/{tweet['id']}", headers=bob["headers"])
        assert response.status_code == 200
        results.append(response.json()["data"])
    assert [r["liked"] for r in results] == [True, False, True]
    assert [r["likeCount"] for r in results] == [1, 0, 1]
    assert results[2] == results[0]


@pytest.mark.asyncio
async def test_cannot_like_unpublished_video(client, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    video = await make_video(alice)
    await client.patch(f"{API}/videos/toggle/publish/{video['id']}", headers=alice["headers"])

    response = await client.post(f"{API}/likes/toggle/v/{video['id']}", headers=bob["headers"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_like_missing_targets(client, make_user):
    bob = await make_user("bob")
    missing = "00000000-0000-0000-0000-000000000000"
    for target in ("v", "c", "t"):
        response = await client.post(f"{API}/likes/toggle/{target}/{missing}", headers=bob["headers"])
        assert response.status_code == 404
    invalid = await client.post(f"{API}/likes/toggle/c/123", headers=bob["headers"])
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_liked_videos_listing(client, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    first = await make_video(alice, title="First")
    second = await make_video(alice, title="Second")
    await make_video(alice, title="Ignored")
    await client.post(f"{API}/likes/toggle/v/{first['id']}", headers=bob["headers"])
    await client.post(f"{API}/likes/toggle/v/{second['id']}", headers=bob["headers"])

    response = await client.get(f"{API}/likes/videos", headers=bob["headers"])
    page = response.json()["data"]
    assert page["totalLikedVideos"] == 2
    assert {v["title"] for v in page["likedVideos"]} == {"First", "Second"}
    assert all(v["isLiked"] for v in page["likedVideos"])
    assert all(v["owner"]["username"] == "alice" for v in page["likedVideos"])


@pytest.mark.asyncio
async def test_concurrent_duplicate_like_is_a_conflict(session_factory):
    async with session_factory() as setup:
        alice = User(username="alice", email="alice@example.com", full_name="Alice", avatar="a", password="x")
        bob = User(username="bob", email="bob@example.com", full_name="Bob", avatar="b", password="x")
        setup.add_all([alice, bob])
        await setup.flush()
        video = Video(video_file="v", thumbnail="t", title="Clip", description="d", owner_id=alice.id)
        setup.add(video)
        await setup.commit()

    async with session_factory() as first:
        toggled = await crud.toggle_like(first, bob.id, "video", video.id)
        assert toggled.liked is True

    # the second request saw no like before the first one committed
    async with session_factory() as second:
        second.add(Like(liked_by=bob.id, video_id=video.id))
        with pytest.raises(ConflictError) as exc:
            await crud._commit_unique(second, "Video is already liked")
        assert exc.value.status_code == 409

    async with session_factory() as check:
        assert await crud.count_likes(check, "video", video.id) == 1
