import pytest

from app import crud
from app.errors import ConflictError
from app.models import Subscription, User

API = "/api/v1"


@pytest.mark.asyncio
async def test_subscribe_twice_toggles(client, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")

    first = await client.post(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"])
    assert first.status_code == 200
    assert first.json()["data"] == {"channelId": alice["id"], "subscribed": True, "subscriberCount": 1}
    assert first.json()["message"] == "Subscribed successfully"

    second = await client.post(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"])
    assert second.json()["data"]["subscribed"] is False
    assert second.json()["data"]["subscriberCount"] == 0


@pytest.mark.asyncio
async def test_cannot_subscribe_to_self_or_missing_channel(client, make_user):
    alice = await make_user("alice")
    own = await client.post(f"{API}/subscriptions/c/{alice['id']}", headers=alice["headers"])
    assert own.status_code == 400

    missing = await client.post(
        f"{API}/subscriptions/c/00000000-0000-0000-0000-000000000000", headers=alice["headers"]
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_subscriber_and_channel_listings(client, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    zed = await make_user("zed")
    for channel in (zed, alice, carol):
        await client.post(f"{API}/subscriptions/c/{channel['id']}", headers=bob["headers"])
    await client.post(f"{API}/subscriptions/c/{alice['id']}", headers=carol["headers"])

    subscribers = (await client.get(f"{API}/subscriptions/c/{alice['id']}", headers=bob["headers"])).json()["data"]
    assert subscribers["totalSubscribers"] == 2
    assert {s["username"] for s in subscribers["subscribers"]} == {"bob", "carol"}

    channels = (await client.get(f"{API}/subscriptions/u/{bob['id']}", headers=bob["headers"])).json()["data"]
    assert channels["totalSubscribedChannels"] == 3
    assert [c["username"] for c in channels["subscribedChannels"]] == ["alice", "carol", "zed"]
    assert channels["subscribedChannels"][0]["subscriberCount"] == 2
    assert all(c["isSubscribed"] for c in channels["subscribedChannels"])

    missing = await client.get(
        f"{API}/subscriptions/c/00000000-0000-0000-0000-000000000000", headers=bob["headers"]
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_concurrent_duplicate_subscription_is_a_conflict(session_factory):
    async with session_factory() as setup:
        alice = User(username="alice", email="alice@example.com", full_name="Alice", avatar="a", password="x")
        bob = User(username="bob", email="bob@example.com", full_name="Bob", avatar="b", password="x")
        setup.add_all([alice, bob])
        await setup.commit()

    async with session_factory() as first:
        toggled = await crud.toggle_subscription(first, bob.id, alice.id)
        assert toggled.subscribed is True

    async with session_factory() as second:
        second.add(Subscription(subscriber_id=bob.id, channel_id=alice.id))
        with pytest.raises(ConflictError) as exc:
            await crud._commit_unique(second, "Already subscribed to this channel")
        assert exc.value.status_code == 409

    async with session_factory() as check:
        assert await crud.count_subscribers(check, alice.id) == 1
