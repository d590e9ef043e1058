"""Tests for the lifecycle event bus."""

import json

import pytest

from services.workflow_service.event_publisher import EventBus


class TestEventBus:
    @pytest.mark.asyncio
    async def test_listeners_notified_in_subscription_order(self, fake_redis) -> None:
        bus = EventBus(fake_redis)
        seen = []
        bus.subscribe(lambda event: seen.append(("first", event.type)))
        bus.subscribe(lambda event: seen.append(("second", event.type)))

        await bus.emit("workflow.started", "exec-1", workflow_id="wf-1")

        assert seen == [("first", "workflow.started"), ("second", "workflow.started")]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, fake_redis) -> None:
        bus = EventBus(fake_redis)
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)

        await bus.emit("step.started", "exec-1", "s1")

        assert [e.step_id for e in seen] == ["s1"]
        assert len(fake_redis.published) == 1

    @pytest.mark.asyncio
    async def test_event_fanned_out_on_channel(self, fake_redis) -> None:
        bus = EventBus(fake_redis, channel="test:events")

        await bus.emit("workflow.failed", "exec-1", error="boom")

        channel, message = fake_redis.published[0]
        payload = json.loads(message)
        assert channel == "test:events"
        assert payload["type"] == "workflow.failed"
        assert payload["execution_id"] == "exec-1"
        assert payload["data"] == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self, fake_redis) -> None:
        fake_redis.fail_publish = True
        bus = EventBus(fake_redis)
        seen = []
        bus.subscribe(seen.append)

        await bus.emit("workflow.completed", "exec-1")

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = EventBus()
        seen = []
        bus.subscribe(seen.append)
        bus.unsubscribe(seen.append)

        await bus.emit("workflow.started", "exec-1")

        assert seen == []
