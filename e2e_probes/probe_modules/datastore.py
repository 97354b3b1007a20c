"""Read-only access to the application's Supabase tables via PostgREST.

Probes use the service-role key to confirm that UI actions produced the rows
they should have. Nothing here writes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .data_types import RecordId, Task, TaskContextEvent

logger = logging.getLogger(__name__)

TASKS_TABLE = "tasks"
EVENTS_TABLE = "task_context_events"


class DatastoreError(Exception):
    """Raised when a PostgREST read fails or returns an unexpected payload."""
    pass


class DatastoreClient:
    """Service-role PostgREST reader for ``tasks`` and ``task_context_events``."""

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not supabase_url or not service_role_key:
            raise ValueError("supabase_url and service_role_key are required")

        self.rest_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._client = httpx.Client(
            base_url=self.rest_url,
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "DatastoreClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        query = {"select": "*", **params}
        try:
            response = self._client.get(f"/{table}", params=query)
        except httpx.RequestError as exc:
            raise DatastoreError(f"Query on '{table}' failed: {exc}") from exc

        if not response.is_success:
            raise DatastoreError(
                f"Query on '{table}' returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            rows = response.json()
        except ValueError as exc:
            raise DatastoreError(f"Query on '{table}' returned non-JSON body") from exc

        if not isinstance(rows, list):
            raise DatastoreError(f"Query on '{table}' returned {type(rows).__name__}, expected list")
        return rows

    def ping(self) -> bool:
        """Return True if the tasks table is readable with the configured key."""
        try:
            self._select(TASKS_TABLE, {"limit": "1"})
        except DatastoreError as exc:
            logger.debug(f"Datastore ping failed: {exc}")
            return False
        return True

    def list_task_events(self, task_id: RecordId, ascending: bool = True) -> List[TaskContextEvent]:
        """Return all context events recorded for ``task_id`` ordered by creation time."""
        direction = "asc" if ascending else "desc"
        rows = self._select(
            EVENTS_TABLE,
            {"task_id": f"eq.{task_id}", "order": f"created_at.{direction}"},
        )
        return [TaskContextEvent.model_validate(row) for row in rows]

    def get_task(self, task_id: RecordId) -> Optional[Task]:
        rows = self._select(TASKS_TABLE, {"id": f"eq.{task_id}", "limit": "1"})
        return Task.model_validate(rows[0]) if rows else None

    def list_tasks(self, user_id: Optional[str] = None, limit: int = 20) -> List[Task]:
        """Most recent tasks first, optionally restricted to one user."""
        params = {"order": "created_at.desc", "limit": str(limit)}
        if user_id:
            params["user_id"] = f"eq.{user_id}"
        return [Task.model_validate(row) for row in self._select(TASKS_TABLE, params)]


__all__ = ["DatastoreClient", "DatastoreError", "EVENTS_TABLE", "TASKS_TABLE"]
