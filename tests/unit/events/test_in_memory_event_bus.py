# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the in-memory event bus."""

from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from repoguard.domain.events import DomainEvent, EventTypes
from repoguard.infrastructure.messaging import InMemoryEventBus
from repoguard.infrastructure.messaging.in_memory_bus import HandlerTiming


class TestRegistration:
    """Test handler registration and removal."""

    def test_register_returns_unique_ids(self, event_bus):
        """Test every registration gets its own id."""
        first = event_bus.register_handler("UserCreated", lambda e: None)
        second = event_bus.register_handler("UserCreated", lambda e: None)

        assert first != second
        assert event_bus.handler_count("UserCreated") == 2

    def test_explicit_handler_id(self, event_bus):
        """Test a caller-supplied id is used as is and must be unique."""
        handler_id = event_bus.register_handler("UserCreated", lambda e: None, handler_id="audit")

        assert handler_id == "audit"
        with pytest.raises(ValueError):
            event_bus.register_handler("UserCreated", lambda e: None, handler_id="audit")

    def test_non_callable_handler_is_rejected(self, event_bus):
        """Test handlers must be callable."""
        with pytest.raises(TypeError):
            event_bus.register_handler("UserCreated", "not a handler")

    def test_unregister_is_idempotent(self, event_bus):
        """Test unregistering twice returns True then False without raising."""
        handler_id = event_bus.register_handler("UserCreated", lambda e: None)

        assert event_bus.unregister_handler(handler_id) is True
        assert event_bus.unregister_handler(handler_id) is False
        assert event_bus.unregister_handler("never-registered") is False
        assert event_bus.handler_count("UserCreated") == 0

    def test_clear_handlers_for_one_type(self, event_bus):
        """Test clearing one type leaves other registrations alone."""
        event_bus.register_handler("UserCreated", lambda e: None)
        kept = event_bus.register_handler("UserDeleted", lambda e: None)

        event_bus.clear_handlers("UserCreated")

        assert event_bus.handler_count("UserCreated") == 0
        assert event_bus.handler_count("UserDeleted") == 1
        assert event_bus.unregister_handler(kept) is True


class TestPublish:
    """Test delivery semantics."""

    @pytest.mark.asyncio
    async def test_failing_handler_yields_none_and_does_not_stop_delivery(self, event_bus):
        """Test one failing handler among two gives [result1, None]."""
        received = []

        def first(event):
            received.append(event.data["id"])
            return "result1"

        def second(event):
            raise Exception("boom")

        event_bus.register_handler(EventTypes.USER_CREATED, first)
        event_bus.register_handler(EventTypes.USER_CREATED, second)

        results = await event_bus.publish(EventTypes.USER_CREATED, {"id": "u1"})

        assert results == ["result1", None]
        assert received == ["u1"]

        unrelated = await event_bus.publish(EventTypes.CHALLENGE_COMPLETED, {"id": "c1"})

        assert unrelated == []
        assert received == ["u1"]

    @pytest.mark.asyncio
    async def test_failure_in_first_handler_still_reaches_second(self, event_bus):
        """Test order is kept and the handler after a failure still runs."""
        event_bus.register_handler("UserCreated", lambda e: 1 / 0)
        event_bus.register_handler("UserCreated", lambda e: "after")

        assert await event_bus.publish("UserCreated", {}) == [None, "after"]

    @pytest.mark.asyncio
    async def test_handlers_run_sequentially_in_registration_order(self, event_bus):
        """Test an async handler finishes before the next handler starts."""
        timeline = []

        async def slow(event):
            timeline.append("slow:start")
            await asyncio.sleep(0.01)
            timeline.append("slow:end")
            return "slow"

        def fast(event):
            timeline.append("fast")
            return "fast"

        event_bus.register_handler("ChallengeCompleted", slow)
        event_bus.register_handler("ChallengeCompleted", fast)

        results = await event_bus.publish("ChallengeCompleted", {"challenge_id": "c1"})

        assert results == ["slow", "fast"]
        assert timeline == ["slow:start", "slow:end", "fast"]

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_isolated(self, event_bus):
        """Test a rejecting coroutine handler is treated like a raising one."""

        async def broken(event):
            raise RuntimeError("async boom")

        event_bus.register_handler("UserCreated", broken)

        assert await event_bus.publish("UserCreated", {"id": "u1"}) == [None]

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged(self, event_bus, caplog):
        """Test handler failures are logged at error level."""
        event_bus.register_handler("UserCreated", lambda e: 1 / 0)

        with caplog.at_level(logging.ERROR, logger="repoguard.event_bus"):
            await event_bus.publish("UserCreated", {"id": "u1"})

        assert any("Error in event handler for UserCreated" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_no_handlers(self, event_bus):
        """Test publishing without handlers returns an empty list."""
        assert await event_bus.publish("UserCreated", {"id": "u1"}) == []

    @pytest.mark.asyncio
    async def test_handler_receives_event_envelope(self, event_bus):
        """Test handlers get the event with its metadata."""
        seen = []
        event_bus.register_handler("UserCreated", seen.append)

        await event_bus.publish(
            "UserCreated", {"id": "u1"}, correlation_id="req-7", source_id="u1"
        )

        event = seen[0]
        assert isinstance(event, DomainEvent)
        assert event.data == {"id": "u1"}
        assert event.correlation_id == "req-7"
        assert event.source_id == "u1"

    @pytest.mark.asyncio
    async def test_once_handler_runs_a_single_time(self, event_bus):
        """Test once registrations are removed after their first delivery."""
        calls = []
        event_bus.once("UserCreated", lambda e: calls.append(e.data["id"]))

        await event_bus.publish("UserCreated", {"id": "u1"})
        await event_bus.publish("UserCreated", {"id": "u2"})

        assert calls == ["u1"]
        assert event_bus.handler_count("UserCreated") == 0

    @pytest.mark.asyncio
    async def test_unregistered_handler_is_not_called(self, event_bus):
        """Test unregistering stops delivery."""
        calls = []
        handler_id = event_bus.register_handler("UserCreated", calls.append)
        event_bus.unregister_handler(handler_id)

        await event_bus.publish("UserCreated", {"id": "u1"})

        assert calls == []

    @pytest.mark.asyncio
    async def test_publish_event_keeps_the_given_envelope(self, event_bus):
        """Test already constructed events are delivered unchanged."""
        seen = []
        event_bus.register_handler("ProgressUpdated", seen.append)
        event = DomainEvent("ProgressUpdated", {"user_id": "u1"})

        await event_bus.publish_event(event)

        assert seen == [event]
        assert event_bus.get_event_history() == [event]


class TestHistory:
    """Test the bounded event history."""

    @pytest.mark.asyncio
    async def test_history_is_most_recent_first(self, event_bus):
        """Test the newest event comes first."""
        await event_bus.publish("UserCreated", {"id": "u1"})
        await event_bus.publish("UserCreated", {"id": "u2"})

        history = event_bus.get_event_history()

        assert [e.data["id"] for e in history] == ["u2", "u1"]

    @pytest.mark.asyncio
    async def test_history_is_capped(self):
        """Test the history never grows beyond its limit."""
        bus = InMemoryEventBus(history_limit=100)

        for i in range(150):
            await bus.publish("ChallengeCompleted", {"n": i})

        history = bus.get_event_history()
        assert len(history) == 100
        assert history[0].data["n"] == 149
        assert history[-1].data["n"] == 50

    @pytest.mark.asyncio
    async def test_history_filters(self, event_bus):
        """Test filtering by type, correlation id and limit."""
        await event_bus.publish("UserCreated", {"id": "u1"}, correlation_id="a")
        await event_bus.publish("UserDeleted", {"id": "u1"}, correlation_id="a")
        await event_bus.publish("UserCreated", {"id": "u2"}, correlation_id="b")

        assert len(event_bus.get_event_history(event_type="UserCreated")) == 2
        assert len(event_bus.get_event_history(correlation_id="a")) == 2
        assert [e.data["id"] for e in event_bus.get_event_history(limit=1)] == ["u2"]

    @pytest.mark.asyncio
    async def test_history_can_be_disabled(self):
        """Test no events are kept when history is off."""
        bus = InMemoryEventBus(record_history=False)

        await bus.publish("UserCreated", {"id": "u1"})

        assert bus.get_event_history() == []

    def test_history_limit_must_be_positive(self):
        """Test a zero capacity is rejected."""
        with pytest.raises(ValueError):
            InMemoryEventBus(history_limit=0)


class TestCatalogAndMetrics:
    """Test the event type catalog, metrics and reset."""

    def test_register_event_type(self, event_bus):
        """Test documented event types are listed."""
        event_bus.register_event_type("UserCreated", "A user registered", "user")

        info = event_bus.get_event_types()["UserCreated"]
        assert info.description == "A user registered"
        assert info.category == "user"

    @pytest.mark.asyncio
    async def test_metrics(self, event_bus):
        """Test published and failed counts and per-type handler counts."""
        event_bus.register_handler("UserCreated", lambda e: "ok")
        event_bus.register_handler("UserCreated", lambda e: 1 / 0)

        await event_bus.publish("UserCreated", {"id": "u1"})
        await event_bus.publish("UserCreated", {"id": "u2"})

        metrics = event_bus.get_metrics()
        assert metrics["published_events"] == 2
        assert metrics["failed_handlers"] == 2
        assert metrics["handler_counts"] == {"UserCreated": 2}
        assert "UserCreated" in metrics["average_processing_times_ms"]

    @pytest.mark.asyncio
    async def test_prometheus_counters(self, event_bus, metric_value):
        """Test publishes and handler failures are exported."""
        before_published = metric_value(
            "repoguard_events_published_total", event_type="EvaluationCreated"
        )
        before_failed = metric_value(
            "repoguard_event_handler_failures_total", event_type="EvaluationCreated"
        )
        event_bus.register_handler("EvaluationCreated", lambda e: 1 / 0)

        await event_bus.publish("EvaluationCreated", {"id": "e1"})

        assert (
            metric_value("repoguard_events_published_total", event_type="EvaluationCreated")
            == before_published + 1
        )
        assert (
            metric_value("repoguard_event_handler_failures_total", event_type="EvaluationCreated")
            == before_failed + 1
        )

    @pytest.mark.asyncio
    async def test_reset_keeps_registrations(self, event_bus):
        """Test reset clears history and metrics only."""
        calls = []
        event_bus.register_handler("UserCreated", calls.append)
        await event_bus.publish("UserCreated", {"id": "u1"})

        event_bus.reset()

        assert event_bus.get_event_history() == []
        assert event_bus.get_metrics()["published_events"] == 0
        await event_bus.publish("UserCreated", {"id": "u2"})
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_processing_times_are_running_totals(self, event_bus):
        """Test many deliveries keep one count and total per event type."""
        event_bus.register_handler("UserCreated", lambda e: None)

        for i in range(1000):
            await event_bus.publish("UserCreated", {"id": f"u{i}"})

        timing = event_bus._processing_times["UserCreated"]
        assert isinstance(timing, HandlerTiming)
        assert timing.count == 1000
        average = event_bus.get_metrics()["average_processing_times_ms"]["UserCreated"]
        assert average == pytest.approx(timing.total_ms / 1000)


class TestConcurrentRegistration:
    """Test registration from other threads while events are being published."""

    @pytest.mark.asyncio
    async def test_churn_does_not_disturb_delivery(self, event_bus):
        """Test register/unregister racing publish never loses or breaks delivery."""
        delivered = []
        event_bus.register_handler("UserCreated", delivered.append)
        stop = threading.Event()
        errors = []

        def churn():
            try:
                while not stop.is_set():
                    handler_id = event_bus.register_handler("UserCreated", lambda e: None)
                    event_bus.unregister_handler(handler_id)
            except Exception as e:
                errors.append(e)

        workers = [threading.Thread(target=churn) for _ in range(4)]
        for worker in workers:
            worker.start()
        try:
            for i in range(200):
                await event_bus.publish("UserCreated", {"id": f"u{i}"})
                await asyncio.sleep(0)
        finally:
            stop.set()
            for worker in workers:
                worker.join(timeout=5)

        assert errors == []
        assert len(delivered) == 200
        assert event_bus.handler_count("UserCreated") == 1
        assert event_bus.get_metrics()["published_events"] == 200

    @pytest.mark.asyncio
    async def test_once_handlers_registered_from_threads_run_at_most_once(self, event_bus):
        calls = []
        lock = threading.Lock()

        def record(event):
            with lock:
                calls.append(event.event_id)

        def register_many():
            for _ in range(50):
                event_bus.once("UserCreated", record)

        workers = [threading.Thread(target=register_many) for _ in range(4)]
        for worker in workers:
            worker.start()
        for i in range(100):
            await event_bus.publish("UserCreated", {"id": f"u{i}"})
            await asyncio.sleep(0)
        for worker in workers:
            worker.join(timeout=5)
        # Drain anything registered after the last publish
        await event_bus.publish("UserCreated", {"id": "last"})

        assert len(calls) == 200
        assert event_bus.handler_count("UserCreated") == 0
