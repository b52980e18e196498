import pytest

API = "/api/v1"


@pytest.mark.asyncio
async def test_empty_comment_listing(client, make_user, make_video):
    alice = await make_user("alice")
    video = await make_video(alice)

    response = await client.get(f"{API}/comments/{video['id']}")
    assert response.status_code == 200
    page = response.json()["data"]
    assert page["comments"] == []
    assert page["totalComments"] == 0
    assert page["hasNextPage"] is False


@pytest.mark.asyncio
async def test_comment_on_missing_or_unpublished_video(client, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    missing = await client.post(
        f"{API}/comments/00000000-0000-0000-0000-000000000000", json={"content": "hi"}, headers=bob["headers"]
    )
    assert missing.status_code == 404

    video = await make_video(alice)
    await client.patch(f"{API}/videos/toggle/publish/{video['id']}", headers=alice["headers"])
    hidden = await client.post(f"{API}/comments/{video['id']}", json={"content": "hi"}, headers=bob["headers"])
    assert hidden.status_code == 403

    blank = await client.post(f"{API}/comments/{video['id']}", json={"content": "   "}, headers=bob["headers"])
    assert blank.status_code == 400


@pytest.mark.asyncio
async def test_comment_lifecycle_and_gate(client, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    video = await make_video(alice)

    created = await client.post(f"{API}/comments/{video['id']}", json={"content": "First!"}, headers=bob["headers"])
    assert created.status_code == 201
    comment = created.json()["data"]
    assert comment["owner"]["username"] == "bob"
    assert comment["videoId"] == video["id"]

    listing = (await client.get(f"{API}/comments/{video['id']}", headers=carol["headers"])).json()["data"]
    assert listing["totalComments"] == 1
    assert listing["comments"][0]["owner"]["id"] == bob["id"]

    denied = await client.patch(
        f"{API}/comments/c/{comment['id']}", json={"content": "edited by carol"}, headers=carol["headers"]
    )
    assert denied.status_code == 403
    unchanged = (await client.get(f"{API}/comments/{video['id']}")).json()["data"]["comments"][0]
    assert unchanged["content"] == "First!"

    edited = await client.patch(
        f"{API}/comments/c/{comment['id']}", json={"content": "Second thoughts"}, headers=bob["headers"]
    )
    assert edited.status_code == 200
    assert edited.json()["data"]["content"] == "Second thoughts"

    # the video's owner may moderate comments on it
    removed = await client.delete(f"{API}/comments/c/{comment['id']}", headers=alice["headers"])
    assert removed.status_code == 200
    assert removed.json()["data"] == {"commentId": comment["id"]}

    again = await client.delete(f"{API}/comments/c/{comment['id']}", headers=bob["headers"])
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_comment_like_counts_in_listing(client, make_user, make_video):
    alice = await make_user("alice")
    bob = await make_user("bob")
    video = await make_video(alice)
    comment = (
        await client.post(f"{API}/comments/{video['id']}", json={"content": "great"}, headers=bob["headers"])
    ).json()["data"]

    toggled = await client.post(f"{API}/likes/toggle/c/{comment['id']}", headers=alice["headers"])
    assert toggled.json()["data"]["liked"] is True

    as_alice = (await client.get(f"{API}/comments/{video['id']}", headers=alice["headers"])).json()["data"]
    assert as_alice["comments"][0]["likeCount"] == 1
    assert as_alice["comments"][0]["isLiked"] is True

    as_bob = (await client.get(f"{API}/comments/{video['id']}", headers=bob["headers"])).json()["data"]
    assert as_bob["comments"][0]["isLiked"] is False
