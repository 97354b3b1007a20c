"""Tests for the PostgREST datastore reader."""

from __future__ import annotations

import httpx
import pytest

from e2e_probes.probe_modules.datastore import DatastoreClient, DatastoreError


def make_client(handler) -> DatastoreClient:
    return DatastoreClient(
        "http://localhost:54321/",
        "service-role-key",
        transport=httpx.MockTransport(handler),
    )


def test_requires_url_and_key():
    with pytest.raises(ValueError):
        DatastoreClient("", "key")
    with pytest.raises(ValueError):
        DatastoreClient("http://localhost:54321", "")


def test_list_task_events_query():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["params"] = dict(request.url.params)
        captured["apikey"] = request.headers.get("apikey")
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json=[
                {"id": 1, "task_id": 42, "operation": "task_created", "actor_type": "user", "actor_id": "u"},
                {"id": 2, "task_id": 42, "operation": "orchestration_started", "actor_type": "agent"},
            ],
        )

    with make_client(handler) as datastore:
        events = datastore.list_task_events(42)

    assert captured["path"] == "/rest/v1/task_context_events"
    assert captured["params"] == {"select": "*", "task_id": "eq.42", "order": "created_at.asc"}
    assert captured["apikey"] == "service-role-key"
    assert captured["auth"] == "Bearer service-role-key"
    assert [event.operation for event in events] == ["task_created", "orchestration_started"]


def test_list_tasks_filters_by_user():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["params"] = dict(request.url.params)
        return httpx.Response(200, json=[{"id": 5, "title": "Probe"}])

    tasks = make_client(handler).list_tasks(user_id="user-1", limit=5)

    assert tasks[0].title == "Probe"
    assert captured["params"]["user_id"] == "eq.user-1"
    assert captured["params"]["order"] == "created_at.desc"
    assert captured["params"]["limit"] == "5"


def test_get_task_missing_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    assert make_client(handler).get_task(99) is None


def test_http_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "invalid key"})

    with pytest.raises(DatastoreError, match="HTTP 401"):
        make_client(handler).list_task_events(1)


def test_non_list_payload_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"rows": []})

    with pytest.raises(DatastoreError, match="expected list"):
        make_client(handler).list_tasks()


def test_ping():
    def ok(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert make_client(ok).ping() is True
    assert make_client(down).ping() is False
