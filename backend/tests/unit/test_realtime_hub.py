"""
Unit tests for the realtime hub.

WHAT: Test subscription, ordering, exclusion, overflow and lifecycle
WHY: Chat rooms and notification pushes rely on these guarantees
HOW: pytest-asyncio; the hub is started on the test's event loop
"""

import asyncio

import pytest

from app.core.realtime import RealtimeHub


async def drain(subscriber, count, timeout=1.0):
    return [await asyncio.wait_for(subscriber.next_event(), timeout) for _ in range(count)]


@pytest.fixture
def hub():
    return RealtimeHub(queue_size=10)


@pytest.mark.unit
@pytest.mark.realtime
class TestRealtimeHub:

    def test_subscribe_requires_running_hub(self, hub):
        with pytest.raises(RuntimeError):
            hub.subscribe(1)

    def test_publish_before_start_is_dropped(self, hub):
        assert hub.publish("room", "receive_message", {"id": 1}) == 0

    @pytest.mark.asyncio
    async def test_subscribers_see_same_order(self, hub):
        hub.start()
        first = hub.subscribe(1, ["prod-1-u1-u2"])
        second = hub.subscribe(2, ["prod-1-u1-u2"])

        for i in range(5):
            hub.publish("prod-1-u1-u2", "receive_message", {"id": i})

        seen_first = [e["data"]["id"] for e in await drain(first, 5)]
        seen_second = [e["data"]["id"] for e in await drain(second, 5)]
        assert seen_first == seen_second == [0, 1, 2, 3, 4]
        hub.stop()

    @pytest.mark.asyncio
    async def test_exclude_skips_origin(self, hub):
        hub.start()
        sender = hub.subscribe(1, ["room"])
        other = hub.subscribe(2, ["room"])

        targeted = hub.publish("room", "receive_message", {"id": 1}, exclude=sender)

        assert targeted == 1
        assert (await drain(other, 1))[0] == {"event": "receive_message", "data": {"id": 1}}
        assert sender.queue.empty()
        hub.stop()

    @pytest.mark.asyncio
    async def test_exclude_user_skips_all_their_connections(self, hub):
        hub.start()
        phone = hub.subscribe(1, ["room"])
        laptop = hub.subscribe(1, ["room"])
        other = hub.subscribe(2, ["room"])

        targeted = hub.publish("room", "receive_message", {"id": 1}, exclude_user_id=1)

        assert targeted == 1
        assert len(await drain(other, 1)) == 1
        assert phone.queue.empty() and laptop.queue.empty()
        hub.stop()

    @pytest.mark.asyncio
    async def test_topics_are_isolated(self, hub):
        hub.start()
        alice = hub.subscribe(1, ["notification_1"])
        bob = hub.subscribe(2, ["notification_2"])

        hub.publish("notification_1", "notification", {"text": "hi"})

        assert (await drain(alice, 1))[0]["data"] == {"text": "hi"}
        assert bob.queue.empty()
        hub.stop()

    @pytest.mark.asyncio
    async def test_join_is_idempotent(self, hub):
        hub.start()
        subscriber = hub.subscribe(1)
        hub.join(subscriber, "room")
        hub.join(subscriber, "room")

        assert hub.subscriber_count("room") == 1
        hub.publish("room", "receive_message", {"id": 1})
        await drain(subscriber, 1)
        assert subscriber.queue.empty()
        hub.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        hub = RealtimeHub(queue_size=2)
        hub.start()
        slow = hub.subscribe(1, ["room"])

        for i in range(4):
            hub.publish("room", "receive_message", {"id": i})

        stats = hub.stats()
        assert stats["delivered"] == 2
        assert stats["dropped"] == 2
        assert [e["data"]["id"] for e in await drain(slow, 2)] == [0, 1]
        hub.stop()

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self, hub):
        hub.start()
        subscriber = hub.subscribe(1, ["notification_1"])

        await asyncio.to_thread(hub.publish, "notification_1", "notification", {"id": 9})

        event = (await drain(subscriber, 1))[0]
        assert event == {"event": "notification", "data": {"id": 9}}
        hub.stop()

    @pytest.mark.asyncio
    async def test_unsubscribe_removes_from_topics(self, hub):
        hub.start()
        subscriber = hub.subscribe(1, ["room", "stories"])

        hub.unsubscribe(subscriber)
        hub.unsubscribe(subscriber)

        assert hub.subscriber_count("room") == 0
        assert hub.publish("stories", "story_like_update", {"storyId": 1, "likes": 1}) == 0
        hub.stop()

    @pytest.mark.asyncio
    async def test_stop_closes_subscribers(self, hub):
        hub.start()
        subscriber = hub.subscribe(1, ["room"])

        hub.stop()

        assert await asyncio.wait_for(subscriber.next_event(), 1.0) is None
        assert not hub.is_running
        assert hub.stats()["subscribers"] == 0

    @pytest.mark.asyncio
    async def test_room_lock_serializes_one_room(self, hub):
        hub.start()
        order = []
        entered = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with hub.room_lock("a"):
                entered.set()
                await release.wait()
                order.append("first")

        async def second():
            async with hub.room_lock("a"):
                order.append("second")

        task = asyncio.create_task(first())
        await entered.wait()
        waiter = asyncio.create_task(second())
        await asyncio.sleep(0)

        # Another room is not blocked by "a"
        async with hub.room_lock("b"):
            order.append("other room")

        release.set()
        await asyncio.gather(task, waiter)

        assert order == ["other room", "first", "second"]
        hub.stop()

    @pytest.mark.asyncio
    async def test_room_locks_released_after_use(self, hub):
        hub.start()

        for room in ("prod-1-u1-u2", "prod-2-u1-u2", "prod-3-u1-u2"):
            async with hub.room_lock(room):
                assert hub.stats()["room_locks"] == 1

        assert hub.stats()["room_locks"] == 0
        hub.stop()

    @pytest.mark.asyncio
    async def test_room_lock_released_when_body_raises(self, hub):
        hub.start()

        with pytest.raises(ValueError):
            async with hub.room_lock("a"):
                raise ValueError("insert failed")

        assert hub.stats()["room_locks"] == 0
        async with hub.room_lock("a"):
            pass
        hub.stop()
