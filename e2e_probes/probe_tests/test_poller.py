"""Tests for the bounded eventual-consistency poller."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from e2e_probes.probe_modules.data_types import TaskContextEvent
from e2e_probes.probe_modules.poller import (
    PollStatus,
    async_poll_until,
    poll_until,
    record_key,
)
from e2e_probes.probe_modules.predicates import has_actor, min_count, never


def sequence_fetch(batches: List[Any]):
    """Return a fetch that yields ``batches`` in order, raising entries that are exceptions."""
    remaining = list(batches)

    def fetch():
        batch = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(batch, Exception):
            raise batch
        return batch

    return fetch


class TestPollUntilTiming:
    def test_satisfied_on_first_fetch_without_sleeping(self, fake_clock):
        result = poll_until(
            lambda: [{"id": 1}],
            min_count(1),
            interval=0.5,
            timeout=5,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.status is PollStatus.SATISFIED
        assert result.satisfied
        assert fake_clock.sleeps == []
        assert result.elapsed_seconds == 0
        assert result.iterations == 1

    def test_never_true_predicate_times_out_within_one_interval(self, fake_clock):
        result = poll_until(
            lambda: [{"id": 1}],
            never,
            interval=0.5,
            timeout=1.25,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.timed_out
        assert 1.25 <= result.elapsed_seconds < 1.25 + 0.5
        # Last wait is cut to the deadline
        assert fake_clock.sleeps == [0.5, 0.5, 0.25]

    def test_always_empty_times_out_with_empty_collection(self, fake_clock):
        result = poll_until(
            lambda: [],
            match=has_actor("OrchestratorAgent"),
            interval=0.5,
            timeout=3,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.status is PollStatus.TIMED_OUT
        assert 3.0 <= result.elapsed_seconds <= 3.5
        assert list(result.collection) == []
        assert result.matching_records == ()

    def test_orchestrator_event_appearing_after_two_seconds(self, fake_clock):
        event = {"id": 1, "actor_id": "OrchestratorAgent"}

        def fetch() -> List[Dict[str, Any]]:
            return [event] if fake_clock.now >= 2.0 else []

        result = poll_until(
            fetch,
            match=has_actor("OrchestratorAgent"),
            interval=0.5,
            timeout=5,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.satisfied
        assert 2.0 <= result.elapsed_seconds <= 2.5
        assert result.matching_records == (event,)
        assert result.elapsed_ms == 2000

    def test_zero_timeout_fetches_once(self, fake_clock):
        calls = []

        def fetch():
            calls.append(1)
            return []

        result = poll_until(fetch, never, timeout=0, clock=fake_clock, sleep=fake_clock.sleep)

        assert result.timed_out
        assert len(calls) == 1
        assert fake_clock.sleeps == []


class TestPollUntilDiffing:
    def test_new_records_are_the_difference_against_previous_fetch(self, fake_clock):
        a, b, c = {"id": "a"}, {"id": "b"}, {"id": "c"}
        batches = []

        poll_until(
            sequence_fetch([[a], [a, b], [b, c], [b, c]]),
            never,
            interval=1,
            timeout=3,
            on_new_records=batches.append,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert batches == [[a], [b], [c]]

    def test_duplicates_within_one_fetch_are_reported_once(self, fake_clock):
        batches = []

        poll_until(
            lambda: [{"id": 1}, {"id": 1}, {"id": 2}],
            min_count(1),
            on_new_records=batches.append,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert batches == [[{"id": 1}, {"id": 2}]]

    def test_failed_fetch_does_not_reset_the_baseline(self, fake_clock):
        record = {"id": 7}
        batches = []

        poll_until(
            sequence_fetch([[record], RuntimeError("connection reset"), [record]]),
            never,
            interval=1,
            timeout=2,
            on_new_records=batches.append,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert batches == [[record]]

    def test_models_are_keyed_by_id(self, fake_clock):
        first = TaskContextEvent(id=1, operation="task_created", actor_id="user-1")
        batches = []

        poll_until(
            sequence_fetch([[first], [first, TaskContextEvent(id=2, operation="orchestration_started")]]),
            min_count(2),
            interval=1,
            timeout=5,
            on_new_records=batches.append,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert [[event.id for event in batch] for batch in batches] == [[1], [2]]


class TestPollUntilFailures:
    def test_fetch_error_then_success_returns_latest_data(self, fake_clock):
        result = poll_until(
            sequence_fetch([ConnectionError("boom"), [{"id": 1}, {"id": 2}]]),
            min_count(2),
            interval=0.5,
            timeout=5,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.satisfied
        assert result.collection == ({"id": 1}, {"id": 2})
        assert result.fetch_errors == 1
        assert result.iterations == 2

    def test_timeout_keeps_last_successful_collection(self, fake_clock):
        result = poll_until(
            sequence_fetch([[{"id": 1}], ValueError("bad payload")]),
            never,
            interval=1,
            timeout=3,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.timed_out
        assert result.collection == ({"id": 1},)
        assert result.fetch_errors == result.iterations - 1

    def test_error_while_reading_a_lazy_fetch_is_retried(self, fake_clock):
        def stream_reset():
            yield {"id": 1}
            raise ConnectionError("stream reset mid-read")

        result = poll_until(
            sequence_fetch([stream_reset(), [{"id": 1}, {"id": 2}]]),
            min_count(2),
            interval=0.5,
            timeout=5,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert result.satisfied
        assert result.collection == ({"id": 1}, {"id": 2})
        assert result.fetch_errors == 1

    def test_partial_lazy_read_does_not_become_the_baseline(self, fake_clock):
        def stream_reset():
            yield {"id": 7}
            raise ConnectionError("stream reset mid-read")

        seen = []
        poll_until(
            sequence_fetch([[{"id": 1}], stream_reset(), [{"id": 1}]]),
            never,
            interval=1,
            timeout=2,
            on_new_records=seen.append,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )

        assert seen == [[{"id": 1}]]

    def test_fetch_errors_are_logged_as_warnings(self, fake_clock, caplog):
        def fetch():
            raise RuntimeError("datastore down")

        with caplog.at_level("WARNING", logger="e2e_probes.probe_modules.poller"):
            poll_until(fetch, never, interval=1, timeout=1, clock=fake_clock, sleep=fake_clock.sleep)

        assert "datastore down" in caplog.text

    def test_requires_predicate_or_match(self):
        with pytest.raises(ValueError, match="predicate or a match"):
            poll_until(lambda: [])

    @pytest.mark.parametrize("interval,timeout", [(0, 5), (-1, 5), (1, -0.1)])
    def test_rejects_invalid_timing(self, interval, timeout):
        with pytest.raises(ValueError):
            poll_until(lambda: [], never, interval=interval, timeout=timeout)


class TestMatchingRecords:
    def test_predicate_only_returns_whole_collection(self, fake_clock):
        result = poll_until(lambda: [{"id": 1}, {"id": 2}], min_count(2), clock=fake_clock, sleep=fake_clock.sleep)
        assert result.matching_records == ({"id": 1}, {"id": 2})

    def test_match_selects_records_alongside_predicate(self, fake_clock):
        records = [{"id": 1, "actor_id": "user"}, {"id": 2, "actor_id": "EventListener"}]
        result = poll_until(
            lambda: records,
            min_count(2),
            match=has_actor("EventListener"),
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )
        assert result.matching_records == (records[1],)


class TestRecordKey:
    def test_mapping_with_id(self):
        assert record_key({"id": 3, "x": 1}) == ("id", 3)

    def test_mapping_without_id_uses_canonical_json(self):
        assert record_key({"b": 1, "a": 2}) == record_key({"a": 2, "b": 1})

    def test_object_with_id_attribute(self):
        assert record_key(TaskContextEvent(id="evt-1")) == ("id", "evt-1")

    def test_hashable_scalar_is_its_own_key(self):
        assert record_key("sb-localhost-auth-token") == "sb-localhost-auth-token"

    def test_mapping_with_mixed_key_types(self):
        assert record_key({1: "a", "b": 2}) == record_key({"b": 2, 1: "a"})

    def test_mixed_key_types_do_not_break_polling(self, fake_clock):
        result = poll_until(lambda: [{1: "a", "b": 2}], min_count(1), clock=fake_clock, sleep=fake_clock.sleep)
        assert result.satisfied

    def test_unhashable_falls_back_to_repr(self):
        assert record_key([1, 2]) == repr([1, 2])


class TestAsyncPollUntil:
    @pytest.mark.asyncio
    async def test_async_satisfied_after_records_appear(self, fake_clock):
        async def fetch():
            return [{"id": 1, "actor_id": "OrchestratorAgent"}] if fake_clock.now >= 1.0 else []

        result = await async_poll_until(
            fetch,
            match=has_actor("OrchestratorAgent"),
            interval=0.5,
            timeout=5,
            clock=fake_clock,
            sleep=fake_clock.async_sleep,
        )

        assert result.satisfied
        assert 1.0 <= result.elapsed_seconds <= 1.5

    @pytest.mark.asyncio
    async def test_async_fetch_errors_are_retried(self, fake_clock):
        attempts = []

        async def fetch():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("not yet")
            return [{"id": 1}]

        result = await async_poll_until(
            fetch,
            min_count(1),
            interval=0.5,
            timeout=5,
            clock=fake_clock,
            sleep=fake_clock.async_sleep,
        )

        assert result.satisfied
        assert result.fetch_errors == 2

    @pytest.mark.asyncio
    async def test_async_error_while_reading_lazy_result_is_retried(self, fake_clock):
        attempts = []

        def stream_reset():
            yield {"id": 1}
            raise ConnectionError("stream reset mid-read")

        async def fetch():
            attempts.append(1)
            return stream_reset() if len(attempts) == 1 else [{"id": 1}, {"id": 2}]

        result = await async_poll_until(
            fetch, min_count(2), interval=0.5, timeout=5, clock=fake_clock, sleep=fake_clock.async_sleep
        )

        assert result.satisfied
        assert result.fetch_errors == 1

    @pytest.mark.asyncio
    async def test_async_timeout(self, fake_clock):
        async def fetch():
            return []

        result = await async_poll_until(
            fetch, never, interval=1, timeout=2, clock=fake_clock, sleep=fake_clock.async_sleep
        )

        assert result.timed_out
        assert result.elapsed_seconds == 2
