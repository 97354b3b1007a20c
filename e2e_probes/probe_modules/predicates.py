"""Ready-made conditions for :mod:`e2e_probes.probe_modules.poller`.

Record matchers accept both raw row dicts and the pydantic models from
``data_types``.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

ORCHESTRATOR_ACTOR_IDS = frozenset({"OrchestratorAgent", "orchestrator_agent", "EventListener"})


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def has_actor(actor_id: str) -> Callable[[Any], bool]:
    """Match records produced by ``actor_id``."""

    def matcher(record: Any) -> bool:
        return _field(record, "actor_id") == actor_id

    return matcher


def has_operation(fragment: str) -> Callable[[Any], bool]:
    """Match records whose operation contains ``fragment`` (case-insensitive)."""

    needle = fragment.lower()

    def matcher(record: Any) -> bool:
        return needle in str(_field(record, "operation") or "").lower()

    return matcher


def is_orchestration_event(record: Any) -> bool:
    """True for events written by the orchestrator or describing orchestration."""
    if _field(record, "actor_id") in ORCHESTRATOR_ACTOR_IDS:
        return True
    return "orchestration" in str(_field(record, "operation") or "").lower()


def min_count(count: int) -> Callable[[Sequence[Any]], bool]:
    """Collection predicate: at least ``count`` records present."""

    def predicate(records: Sequence[Any]) -> bool:
        return len(records) >= count

    return predicate


def all_applied(records: Sequence[Any]) -> bool:
    """Collection predicate for migration rows: none left pending.

    An empty collection does not count; the migrations panel has not rendered.
    """
    return bool(records) and all(bool(_field(record, "applied")) for record in records)


def never(_records: Sequence[Any]) -> bool:
    """Collection predicate for pure monitoring; the poll always runs to its timeout."""
    return False


__all__ = [
    "ORCHESTRATOR_ACTOR_IDS",
    "all_applied",
    "has_actor",
    "has_operation",
    "is_orchestration_event",
    "min_count",
    "never",
]
