"""Tests for EventBus and event types."""

from __future__ import annotations

import logging

import pytest

from crosscloud.events import EventBus, EventType, ShareEvent


async def _failing_handler(event: ShareEvent) -> None:
    raise RuntimeError(f"boom on {event.share_id}")


def _event(event_type: EventType = EventType.SHARE_CREATED) -> ShareEvent:
    return ShareEvent(event_type=event_type, user_id="u1", share_id="s1")


class TestEventType:
    def test_member_count(self) -> None:
        assert len(EventType) == 11

    def test_unique_values(self) -> None:
        values = [et.value for et in EventType]
        assert len(values) == len(set(values))

    def test_value(self) -> None:
        assert EventType.SHARE_KEYS_INITIALIZED.value == "share_keys_initialized"


class TestShareEvent:
    def test_defaults(self) -> None:
        ev = ShareEvent(event_type=EventType.DEVICE_APPROVED, user_id="u1")
        assert ev.subject_id is None
        assert ev.share_id is None
        assert ev.device_id is None

    def test_immutable(self) -> None:
        ev = _event()
        with pytest.raises(AttributeError):
            ev.share_id = "other"  # type: ignore[misc]


class TestEventBusRegistration:
    def test_initial_handler_count(self) -> None:
        assert EventBus().handler_count == 0

    def test_register_and_unregister(self) -> None:
        bus = EventBus()
        bus.register(EventType.SHARE_CREATED, _failing_handler)
        bus.register(EventType.SHARE_DELETED, _failing_handler)
        assert bus.handler_count == 2
        assert bus.unregister(EventType.SHARE_CREATED, _failing_handler) is True
        assert bus.unregister(EventType.SHARE_CREATED, _failing_handler) is False
        assert bus.handler_count == 1

    def test_clear(self) -> None:
        bus = EventBus()
        bus.register(EventType.SHARE_CREATED, _failing_handler)
        bus.clear()
        assert bus.handler_count == 0


class TestEventBusEmit:
    async def test_handlers_in_order(self) -> None:
        bus = EventBus()
        order: list[int] = []

        async def first(event: ShareEvent) -> None:
            order.append(1)

        async def second(event: ShareEvent) -> None:
            order.append(2)

        bus.register(EventType.SHARE_CREATED, first)
        bus.register(EventType.SHARE_CREATED, second)
        await bus.emit(_event())
        assert order == [1, 2]

    async def test_type_filtering(self) -> None:
        bus = EventBus()
        seen: list[ShareEvent] = []

        async def on_delete(event: ShareEvent) -> None:
            seen.append(event)

        bus.register(EventType.SHARE_DELETED, on_delete)
        await bus.emit(_event(EventType.SHARE_CREATED))
        assert seen == []

    async def test_failing_handler_is_logged(self, caplog) -> None:
        bus = EventBus()
        seen: list[ShareEvent] = []

        async def after(event: ShareEvent) -> None:
            seen.append(event)

        bus.register(EventType.SHARE_CREATED, _failing_handler)
        bus.register(EventType.SHARE_CREATED, after)
        with caplog.at_level(logging.WARNING, logger="crosscloud.events"):
            await bus.emit(_event())
        assert len(seen) == 1
        assert "raised on share_created by u1" in caplog.text

    async def test_catch_all_runs_after_typed(self) -> None:
        bus = EventBus()
        order: list[str] = []

        async def typed(event: ShareEvent) -> None:
            order.append("typed")

        async def catch_all(event: ShareEvent) -> None:
            order.append(event.event_type.value)

        bus.register(None, catch_all)
        bus.register(EventType.SHARE_DELETED, typed)
        await bus.emit(_event(EventType.SHARE_DELETED))
        await bus.emit(_event(EventType.SHARE_CREATED))
        assert order == ["typed", "share_deleted", "share_created"]

    async def test_plain_callable(self) -> None:
        bus = EventBus()
        seen: list[ShareEvent] = []
        bus.register(EventType.SHARE_CREATED, seen.append)
        await bus.emit(_event())
        assert len(seen) == 1
