"""Broadcast hub fan-out and subscription tests."""
from __future__ import annotations

import asyncio

import pytest

from sqlite_mcp.eventbus import BroadcastHub


def test_publish_reaches_every_attached_listener_once(hub: BroadcastHub):
    first, second = [], []
    hub.attach(first.append)
    hub.attach(second.append)

    assert hub.publish({"x": 1}) == 2

    assert first == [{"x": 1}]
    assert second == [{"x": 1}]


def test_late_listener_misses_earlier_publish(hub: BroadcastHub):
    early = []
    hub.attach(early.append)
    hub.publish({"x": 1})

    late = []
    hub.attach(late.append)
    assert late == []

    hub.publish({"x": 2})
    assert early == [{"x": 1}, {"x": 2}]
    assert late == [{"x": 2}]


def test_delivery_follows_attachment_order(hub: BroadcastHub):
    order = []
    for i in range(5):
        hub.attach(lambda m, i=i: order.append(i))
    hub.publish("ping")
    assert order == [0, 1, 2, 3, 4]


def test_detach_stops_delivery_and_is_idempotent(hub: BroadcastHub):
    received = []
    listener = hub.attach(received.append)
    hub.detach(listener)
    hub.detach(listener)
    assert hub.publish({"x": 1}) == 0
    assert received == []
    assert hub.listener_count == 0


def test_publish_with_no_listeners(hub: BroadcastHub):
    assert hub.publish([1, 2, 3]) == 0


def test_broken_listener_is_detached_without_affecting_others(hub: BroadcastHub):
    received = []

    def broken(message):
        raise BrokenPipeError("client went away")

    hub.attach(broken)
    hub.attach(received.append)

    assert hub.publish({"x": 1}) == 1
    assert received == [{"x": 1}]
    assert hub.listener_count == 1


def test_listener_may_detach_itself_during_publish(hub: BroadcastHub):
    received = []
    holder = {}

    def once(message):
        received.append(message)
        hub.detach(holder["listener"])

    holder["listener"] = hub.attach(once)
    hub.publish(1)
    hub.publish(2)
    assert received == [1]


@pytest.mark.asyncio
async def test_subscription_receives_published_messages(hub: BroadcastHub):
    with hub.subscribe() as sub:
        assert hub.listener_count == 1
        hub.publish({"type": "a"})
        hub.publish({"type": "b"})
        assert await sub.next(timeout=1.0) == {"type": "a"}
        assert await sub.next(timeout=1.0) == {"type": "b"}
    assert hub.listener_count == 0


@pytest.mark.asyncio
async def test_subscription_timeout_keeps_listener_attached(hub: BroadcastHub):
    with hub.subscribe() as sub:
        with pytest.raises(asyncio.TimeoutError):
            await sub.next(timeout=0.05)
        assert hub.listener_count == 1
        hub.publish("after-timeout")
        assert await sub.next(timeout=1.0) == "after-timeout"


@pytest.mark.asyncio
async def test_subscription_async_iteration(hub: BroadcastHub):
    received = []

    async def consumer():
        async for message in hub.subscribe():
            received.append(message)
            if len(received) >= 3:
                break

    task = asyncio.create_task(consumer())
    await asyncio.sleep(0.05)
    for i in range(3):
        hub.publish({"i": i})
    await asyncio.wait_for(task, timeout=2.0)
    assert received == [{"i": 0}, {"i": 1}, {"i": 2}]


@pytest.mark.asyncio
async def test_publish_from_worker_thread_reaches_subscription(hub: BroadcastHub):
    with hub.subscribe() as sub:
        await asyncio.to_thread(hub.publish, {"from": "thread"})
        assert await sub.next(timeout=1.0) == {"from": "thread"}
