"""Bounded polling of eventually-consistent collections.

A probe that triggers work in the application (creating a task, applying a
migration) usually has to wait for the effect to show up somewhere else: rows
in ``task_context_events``, a counter in the UI. ``poll_until`` re-reads such a
collection at a fixed interval until a condition holds or a deadline passes.

Usage:
    from e2e_probes.probe_modules.poller import poll_until
    from e2e_probes.probe_modules.predicates import has_actor

    result = poll_until(
        lambda: datastore.list_task_events(task_id),
        match=has_actor("OrchestratorAgent"),
        interval=0.5,
        timeout=15,
    )
    if result.satisfied:
        ...

Every call ends in exactly one of two terminal outcomes, ``SATISFIED`` or
``TIMED_OUT``. A timeout is returned, not raised; the caller decides whether
it is fatal. Fetch errors are logged and retried on the next tick.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    TypeVar,
)

T = TypeVar("T")

CollectionPredicate = Callable[[Sequence[T]], bool]
RecordMatcher = Callable[[T], bool]
NewRecordsCallback = Callable[[List[T]], None]

module_logger = logging.getLogger(__name__)


class PollStatus(str, Enum):
    """Terminal outcomes of a poll."""
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollResult(Generic[T]):
    """Outcome of a bounded poll.

    ``collection`` is the last successfully fetched collection. For a
    satisfied poll ``matching_records`` holds the records selected by the
    ``match`` function (or the whole collection when only a collection
    predicate was supplied); it is always empty after a timeout.
    """

    status: PollStatus
    collection: Tuple[T, ...]
    matching_records: Tuple[T, ...]
    elapsed_seconds: float
    iterations: int
    fetch_errors: int

    @property
    def satisfied(self) -> bool:
        return self.status is PollStatus.SATISFIED

    @property
    def timed_out(self) -> bool:
        return self.status is PollStatus.TIMED_OUT

    @property
    def elapsed_ms(self) -> int:
        return int(round(self.elapsed_seconds * 1000))


def record_key(record: Any) -> Hashable:
    """Identity used to tell new records from ones seen on the previous fetch.

    Records with an ``id`` (mapping key or attribute) are keyed by it; other
    mappings by their canonical JSON form (or a key-sorted ``repr`` when
    the keys are not mutually comparable); anything else by itself when
    hashable, else by ``repr``.
    """
    if isinstance(record, Mapping):
        if record.get("id") is not None:
            return ("id", record["id"])
        try:
            return json.dumps(record, sort_keys=True, default=str)
        except TypeError:
            # keys of mixed types cannot be sorted
            return repr(sorted(record.items(), key=lambda item: repr(item[0])))

    record_id = getattr(record, "id", None)
    if record_id is not None:
        return ("id", record_id)

    try:
        hash(record)
    except TypeError:
        return repr(record)
    return record


class _PollState(Generic[T]):
    """Bookkeeping shared by the sync and async polling loops."""

    def __init__(
        self,
        predicate: Optional[CollectionPredicate],
        match: Optional[RecordMatcher],
        key: Callable[[T], Hashable],
        on_new_records: Optional[NewRecordsCallback],
        logger: logging.Logger,
        description: str,
    ) -> None:
        if predicate is None and match is None:
            raise ValueError("poll requires a predicate or a match function")

        self.predicate = predicate
        self.match = match
        self.key = key
        self.on_new_records = on_new_records
        self.logger = logger
        self.description = description

        self.collection: Tuple[T, ...] = ()
        self.previous_keys: Set[Hashable] = set()
        self.iterations = 0
        self.fetch_errors = 0

    def record_failure(self, exc: BaseException) -> None:
        self.iterations += 1
        self.fetch_errors += 1
        self.logger.warning(
            f"Fetch failed while waiting for {self.description} "
            f"(attempt {self.iterations}): {type(exc).__name__}: {exc}"
        )

    def observe(self, records: Iterable[T]) -> bool:
        """Store a successful fetch, report new records and evaluate the condition."""

        self.iterations += 1
        current = tuple(records)
        keys = [self.key(record) for record in current]

        new_records: List[T] = []
        emitted: Set[Hashable] = set()
        for record, record_id in zip(current, keys):
            if record_id in self.previous_keys or record_id in emitted:
                continue
            emitted.add(record_id)
            new_records.append(record)

        self.collection = current
        self.previous_keys = set(keys)

        if new_records:
            self.logger.info(f"{len(new_records)} new record(s) observed ({len(current)} total)")
            if self.on_new_records is not None:
                self.on_new_records(new_records)
        else:
            self.logger.debug(f"No new records on attempt {self.iterations} ({len(current)} total)")

        return self._condition_met()

    def _condition_met(self) -> bool:
        if self.predicate is not None:
            return bool(self.predicate(self.collection))
        return any(self.match(record) for record in self.collection)  # type: ignore[misc]

    def result(self, status: PollStatus, elapsed: float) -> PollResult[T]:
        if status is PollStatus.SATISFIED:
            if self.match is not None:
                matching = tuple(record for record in self.collection if self.match(record))
            else:
                matching = self.collection
            self.logger.info(f"Observed {self.description} after {elapsed:.2f}s ({self.iterations} fetches)")
        else:
            matching = ()
            self.logger.warning(
                f"Timed out after {elapsed:.2f}s waiting for {self.description} "
                f"({self.iterations} fetches, {self.fetch_errors} failed)"
            )

        return PollResult(
            status=status,
            collection=self.collection,
            matching_records=matching,
            elapsed_seconds=elapsed,
            iterations=self.iterations,
            fetch_errors=self.fetch_errors,
        )


def _validate_timing(interval: float, timeout: float) -> None:
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if timeout < 0:
        raise ValueError(f"timeout must not be negative, got {timeout}")


def poll_until(
    fetch: Callable[[], Iterable[T]],
    predicate: Optional[CollectionPredicate] = None,
    *,
    match: Optional[RecordMatcher] = None,
    interval: float = 1.0,
    timeout: float = 10.0,
    key: Callable[[T], Hashable] = record_key,
    on_new_records: Optional[NewRecordsCallback] = None,
    description: str = "condition",
    logger: Optional[logging.Logger] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult[T]:
    """Fetch a collection repeatedly until a condition holds or ``timeout`` elapses.

    Args:
        fetch: Zero-argument callable returning the current collection
        predicate: Condition over the whole collection
        match: Per-record condition; satisfied when any record matches. Also
            selects ``matching_records`` when given alongside ``predicate``
        interval: Seconds between fetches
        timeout: Total seconds to wait; the last wait is cut to the deadline
        key: Record identity used to detect newly appeared records
        on_new_records: Called with each non-empty batch of new records
        description: Label used in log lines
        logger: Logger to use (defaults to this module's logger)
        clock: Monotonic time source in seconds
        sleep: Blocking sleep function

    Returns:
        PollResult with status SATISFIED or TIMED_OUT

    Raises:
        ValueError: If neither predicate nor match is given, or timing is invalid
    """
    _validate_timing(interval, timeout)
    state: _PollState[T] = _PollState(
        predicate, match, key, on_new_records, logger or module_logger, description
    )

    start = clock()
    while True:
        try:
            records = tuple(fetch())
        except Exception as exc:  # noqa: BLE001 - transient fetch errors are retried
            state.record_failure(exc)
        else:
            if state.observe(records):
                return state.result(PollStatus.SATISFIED, clock() - start)

        elapsed = clock() - start
        if elapsed >= timeout:
            return state.result(PollStatus.TIMED_OUT, elapsed)
        sleep(min(interval, timeout - elapsed))


async def async_poll_until(
    fetch: Callable[[], Awaitable[Iterable[T]]],
    predicate: Optional[CollectionPredicate] = None,
    *,
    match: Optional[RecordMatcher] = None,
    interval: float = 1.0,
    timeout: float = 10.0,
    key: Callable[[T], Hashable] = record_key,
    on_new_records: Optional[NewRecordsCallback] = None,
    description: str = "condition",
    logger: Optional[logging.Logger] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> PollResult[T]:
    """Asyncio counterpart of :func:`poll_until` for awaitable fetch functions."""
    _validate_timing(interval, timeout)
    state: _PollState[T] = _PollState(
        predicate, match, key, on_new_records, logger or module_logger, description
    )

    start = clock()
    while True:
        try:
            records = tuple(await fetch())
        except Exception as exc:  # noqa: BLE001 - transient fetch errors are retried
            state.record_failure(exc)
        else:
            if state.observe(records):
                return state.result(PollStatus.SATISFIED, clock() - start)

        elapsed = clock() - start
        if elapsed >= timeout:
            return state.result(PollStatus.TIMED_OUT, elapsed)
        await sleep(min(interval, timeout - elapsed))


__all__ = [
    "PollResult",
    "PollStatus",
    "async_poll_until",
    "poll_until",
    "record_key",
]
