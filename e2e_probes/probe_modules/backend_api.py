"""Client for the application backend's REST API.

Only the handful of endpoints the probes exercise are wrapped: health,
task creation and task/event reads.

Usage:
    from e2e_probes.probe_modules.backend_api import BackendClient

    with BackendClient("http://localhost:3001", token=access_token) as backend:
        if backend.health():
            task = backend.create_task("Orchestration probe", task_type="onboarding")
            events = backend.list_task_events(task.id)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .data_types import RecordId, Task, TaskContextEvent

logger = logging.getLogger(__name__)

HEALTH_PATHS = ("/api/health", "/health")


class BackendAPIError(Exception):
    """Base exception for backend API errors."""
    pass


class BackendUnavailableError(BackendAPIError):
    """Raised when the backend is unreachable or answers with a 5xx."""
    pass


class BackendAuthError(BackendAPIError):
    """Raised when the backend rejects the bearer token."""
    pass


class BackendResponseError(BackendAPIError):
    """Raised when the backend answers with an unexpected status or payload."""
    pass


class BackendClient:
    """Thin synchronous wrapper over the backend's task endpoints."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise BackendUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise BackendAuthError(f"{method} {path} rejected with HTTP {response.status_code}")
        if response.status_code >= 500:
            raise BackendUnavailableError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        if response.status_code >= 400:
            raise BackendResponseError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as exc:
            raise BackendResponseError(
                f"{method} {path} returned non-JSON body: {response.text[:200]}"
            ) from exc

    def health(self) -> bool:
        """Return True if any known health endpoint answers 2xx. Never raises."""
        for path in HEALTH_PATHS:
            try:
                response = self._client.get(path)
            except httpx.RequestError as exc:
                logger.debug(f"Health probe {path} failed: {exc}")
                continue
            if response.is_success:
                return True
            logger.debug(f"Health probe {path} returned HTTP {response.status_code}")
        return False

    def create_task(
        self,
        title: str,
        task_type: str = "onboarding",
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Task:
        """Create a task and return it as parsed by the backend."""
        payload: Dict[str, Any] = {"title": title, "type": task_type}
        if description:
            payload["description"] = description
        if metadata:
            payload["metadata"] = metadata

        body = self._request("POST", "/api/tasks", json=payload)
        # The backend wraps the row as {"task": {...}} on some versions.
        if isinstance(body, dict) and isinstance(body.get("task"), dict):
            body = body["task"]
        if not isinstance(body, dict) or "id" not in body:
            raise BackendResponseError("Invalid response from POST /api/tasks: missing 'id' field")

        task = Task.model_validate(body)
        logger.info(f"Created task {task.id} ({title})")
        return task

    def get_task(self, task_id: RecordId) -> Task:
        body = self._request("GET", f"/api/tasks/{task_id}")
        if isinstance(body, dict) and isinstance(body.get("task"), dict):
            body = body["task"]
        if not isinstance(body, dict):
            raise BackendResponseError(f"Invalid response for task {task_id}: expected object")
        return Task.model_validate(body)

    def list_tasks(self) -> List[Task]:
        body = self._request("GET", "/api/tasks")
        rows = body.get("tasks") if isinstance(body, dict) else body
        if not isinstance(rows, list):
            raise BackendResponseError("Invalid response from GET /api/tasks: expected list")
        return [Task.model_validate(row) for row in rows]

    def list_task_events(self, task_id: RecordId) -> List[TaskContextEvent]:
        body = self._request("GET", f"/api/tasks/{task_id}/events")
        rows = body.get("events") if isinstance(body, dict) else body
        if not isinstance(rows, list):
            raise BackendResponseError(
                f"Invalid response from GET /api/tasks/{task_id}/events: expected list"
            )
        return [TaskContextEvent.model_validate(row) for row in rows]


__all__ = [
    "BackendAPIError",
    "BackendAuthError",
    "BackendClient",
    "BackendResponseError",
    "BackendUnavailableError",
]
