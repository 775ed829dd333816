"""Tests for the change notifier."""

import logging

import pytest

from bizdesk.core.notifier import ChangeNotifier
from bizdesk.models.enums import EntityType


class TestSubscribe:
    """Tests for subscribe / unsubscribe."""

    def test_callback_fires_on_publish(self) -> None:
        notifier = ChangeNotifier()
        calls: list[str] = []
        notifier.subscribe(EntityType.LEAD, lambda: calls.append("a"))

        notifier.publish(EntityType.LEAD)

        assert calls == ["a"]

    def test_other_entity_types_not_notified(self) -> None:
        notifier = ChangeNotifier()
        calls: list[str] = []
        notifier.subscribe(EntityType.PRODUCT, lambda: calls.append("p"))

        notifier.publish(EntityType.LEAD)

        assert calls == []

    def test_same_callback_twice_fires_twice(self) -> None:
        notifier = ChangeNotifier()
        calls: list[int] = []

        def callback() -> None:
            calls.append(1)

        notifier.subscribe(EntityType.LEAD, callback)
        notifier.subscribe(EntityType.LEAD, callback)
        notifier.publish(EntityType.LEAD)

        assert len(calls) == 2

    def test_unsubscribe_removes_only_that_registration(self) -> None:
        notifier = ChangeNotifier()
        calls: list[int] = []

        def callback() -> None:
            calls.append(1)

        first = notifier.subscribe(EntityType.LEAD, callback)
        notifier.subscribe(EntityType.LEAD, callback)
        first()
        notifier.publish(EntityType.LEAD)

        assert len(calls) == 1
        assert notifier.subscriber_count(EntityType.LEAD) == 1

    def test_unsubscribe_is_idempotent(self) -> None:
        notifier = ChangeNotifier()
        unsubscribe = notifier.subscribe(EntityType.LEAD, lambda: None)
        unsubscribe()
        unsubscribe()
        assert notifier.subscriber_count(EntityType.LEAD) == 0

    def test_string_entity_type_accepted(self) -> None:
        notifier = ChangeNotifier()
        calls: list[int] = []
        notifier.subscribe("leads", lambda: calls.append(1))  # type: ignore[arg-type]
        notifier.publish(EntityType.LEAD)
        assert calls == [1]


class TestPublish:
    """Tests for publish ordering and isolation."""

    def test_callbacks_run_in_registration_order(self) -> None:
        notifier = ChangeNotifier()
        calls: list[str] = []
        notifier.subscribe(EntityType.LEAD, lambda: calls.append("first"))
        notifier.subscribe(EntityType.LEAD, lambda: calls.append("second"))

        notifier.publish(EntityType.LEAD)

        assert calls == ["first", "second"]

    def test_failing_callback_does_not_stop_others(self, caplog: pytest.LogCaptureFixture) -> None:
        notifier = ChangeNotifier()
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("subscriber bug")

        notifier.subscribe(EntityType.LEAD, broken)
        notifier.subscribe(EntityType.LEAD, lambda: calls.append("ok"))

        with caplog.at_level(logging.ERROR, logger="bizdesk.core.notifier"):
            notifier.publish(EntityType.LEAD)

        assert calls == ["ok"]
        assert "Change subscriber failed" in caplog.text

    def test_unsubscribe_during_publish_is_safe(self) -> None:
        """Test publish iterates over a snapshot of the subscribers."""
        notifier = ChangeNotifier()
        calls: list[str] = []
        handles = {}

        def first() -> None:
            calls.append("first")
            handles["second"]()

        notifier.subscribe(EntityType.LEAD, first)
        handles["second"] = notifier.subscribe(EntityType.LEAD, lambda: calls.append("second"))

        notifier.publish(EntityType.LEAD)
        notifier.publish(EntityType.LEAD)

        assert calls == ["first", "second", "first"]
