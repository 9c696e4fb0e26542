"""
Tests for the task board HTTP API (Flask test client).

Covers:
    - response envelope on success, errors, unknown routes
    - create / edit / move / delete / restore / purge routes
    - owner partitioning via X-Owner-Id
    - optional X-API-Key guard
    - end-to-end scenarios: create+move, delete to recycle bin, restore
"""
from unittest.mock import patch

import pytest

import dashboard_server
from dashboard.taskboard.errors import StoreError
from dashboard.taskboard.store import TaskStore

OWNER = "alice"
HEADERS = {"X-Owner-Id": OWNER}


def _create(http, title="Write report", **fields):
    body = dict({"description": ""}, **fields)
    body["title"] = title
    resp = http.post("/api/tasks", json=body, headers=HEADERS)
    assert resp.status_code == 201
    return resp.get_json()["data"]


def _board(http, owner=OWNER):
    resp = http.get("/api/tasks", headers={"X-Owner-Id": owner})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    return body["data"]


def _titles(board, column):
    return [t["title"] for t in board[column]]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Envelope and misc routes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_index_lists_endpoints(http):
    body = http.get("/").get_json()
    assert body["success"] is True
    assert body["endpoints"]["tasks"] == "/api/tasks"


def test_health(http, db_path):
    body = http.get("/health").get_json()
    assert body["status"] == "ok"
    assert body["db"] == db_path


def test_unknown_route_uses_envelope(http):
    resp = http.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"success": False, "error": "Route not found"}


def test_method_not_allowed_uses_envelope(http):
    resp = http.patch("/api/tasks")
    assert resp.status_code == 405
    assert resp.get_json()["success"] is False


def test_empty_board_has_all_columns(http):
    board = _board(http)
    assert board == {"backlog": [], "inProgress": [], "inReview": [], "done": []}


def test_store_is_built_once_per_db_path(http, settings, tmp_path):
    original = TaskStore._init_schema
    with patch.object(TaskStore, "_init_schema", autospec=True, side_effect=original) as init:
        http.get("/api/tasks", headers=HEADERS)
        http.get("/api/tasks/recyclebin", headers=HEADERS)
        assert init.call_count == 1

        settings.db_path = str(tmp_path / "other.db")
        http.get("/api/tasks", headers=HEADERS)
        assert init.call_count == 2
    assert dashboard_server.get_store().db_path == settings.db_path


def test_settings_loaded_on_first_use(monkeypatch, tmp_path):
    config_file = tmp_path / "dashboard.yaml"
    config_file.write_text(f"db_path: {tmp_path / 'lazy.db'}\ndefault_owner: carol\n")
    monkeypatch.setenv("DASHBOARD_CONFIG", str(config_file))
    monkeypatch.setitem(dashboard_server.app.config, "SETTINGS", None)
    monkeypatch.setitem(dashboard_server.app.config, "TASK_STORE", None)

    settings = dashboard_server.get_settings()
    assert settings.default_owner == "carol"
    assert dashboard_server.get_settings() is settings


def test_store_error_is_500(http):
    with pytest.MonkeyPatch.context() as mp:
        def broken(self, owner_id):
            raise StoreError("disk I/O error")
        mp.setattr(TaskStore, "load_board", broken)
        resp = http.get("/api/tasks", headers=HEADERS)
    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "Task store error"}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Create / edit
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_create_task(http):
    task = _create(http, "Write report", description="Q4", priority="high", tags=["work"])
    assert task["id"].startswith("task-")
    assert task["column"] == "backlog"
    assert task["order"] == 0
    assert task["priority"] == "high"
    assert task["isDeleted"] is False
    assert task["deletedAt"] is None


def test_create_without_title_is_400(http):
    resp = http.post("/api/tasks", json={"description": "x"}, headers=HEADERS)
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert "title" in body["error"]


def test_create_without_description_is_400(http):
    resp = http.post("/api/tasks", json={"title": "Write report"}, headers=HEADERS)
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "error": "description is required"}
    assert _board(http)["backlog"] == []


def test_create_with_blank_description(http):
    task = _create(http, "Write report", description="")
    assert task["description"] == ""


def test_create_with_non_json_body_is_400(http):
    resp = http.post("/api/tasks", data="not json", headers=HEADERS)
    assert resp.status_code == 400


def test_get_task(http):
    task = _create(http)
    resp = http.get(f"/api/tasks/{task['id']}", headers=HEADERS)
    assert resp.get_json()["data"]["title"] == "Write report"


def test_update_task_fields(http):
    task = _create(http)
    resp = http.put(f"/api/tasks/{task['id']}", json={
        "description": "Updated",
        "comments": [{"author": "Sam", "text": "Nice"}],
        "attachments": [{"name": "notes.txt", "size": 12, "type": "text/plain"}],
    }, headers=HEADERS)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["description"] == "Updated"
    assert data["comments"][0]["author"] == "Sam"
    assert data["attachments"][0]["uploadedAt"]


def test_update_other_owners_task_is_404(http):
    task = _create(http)
    resp = http.put(f"/api/tasks/{task['id']}", json={"title": "x"},
                    headers={"X-Owner-Id": "bob"})
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_boards_are_partitioned_by_owner(http):
    _create(http, "mine")
    assert _titles(_board(http), "backlog") == ["mine"]
    assert _board(http, owner="bob")["backlog"] == []


def test_default_owner_from_settings(http):
    _create(http, "mine")
    # No X-Owner-Id header: falls back to Settings.default_owner ("alice" in tests)
    body = http.get("/api/tasks").get_json()
    assert _titles(body["data"], "backlog") == ["mine"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Move
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_move_accepts_status_alias(http):
    task = _create(http)
    resp = http.put(f"/api/tasks/{task['id']}/move",
                    json={"status": "inReview", "order": 0}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["column"] == "inReview"


def test_move_validation(http):
    task = _create(http)
    url = f"/api/tasks/{task['id']}/move"
    assert http.put(url, json={"order": 0}, headers=HEADERS).status_code == 400
    assert http.put(url, json={"column": "done"}, headers=HEADERS).status_code == 400
    assert http.put(url, json={"column": "archive", "order": 0}, headers=HEADERS).status_code == 400


def test_move_missing_task_is_404(http):
    resp = http.put("/api/tasks/task-missing/move",
                    json={"column": "done", "order": 0}, headers=HEADERS)
    assert resp.status_code == 404


def test_move_deleted_task_is_409(http):
    task = _create(http)
    http.delete(f"/api/tasks/{task['id']}", headers=HEADERS)
    resp = http.put(f"/api/tasks/{task['id']}/move",
                    json={"column": "done", "order": 0}, headers=HEADERS)
    assert resp.status_code == 409
    assert resp.get_json()["success"] is False


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Recycle bin
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_delete_missing_task_is_404(http):
    assert http.delete("/api/tasks/task-missing", headers=HEADERS).status_code == 404


def test_restore_active_task_is_404(http):
    task = _create(http)
    resp = http.put(f"/api/tasks/{task['id']}/restore", headers=HEADERS)
    assert resp.status_code == 404


def test_purge_active_task_is_409_and_task_survives(http):
    task = _create(http)
    resp = http.delete(f"/api/tasks/{task['id']}/permanent", headers=HEADERS)
    assert resp.status_code == 409
    assert _titles(_board(http), "backlog") == ["Write report"]


def test_purge_deleted_task(http):
    task = _create(http)
    http.delete(f"/api/tasks/{task['id']}", headers=HEADERS)
    resp = http.delete(f"/api/tasks/{task['id']}/permanent", headers=HEADERS)
    assert resp.get_json()["success"] is True
    assert http.get(f"/api/tasks/{task['id']}", headers=HEADERS).status_code == 404
    assert http.delete(f"/api/tasks/{task['id']}/permanent", headers=HEADERS).status_code == 404


def test_clear_recycle_bin_twice(http):
    for title in ("a", "b"):
        task = _create(http, title)
        http.delete(f"/api/tasks/{task['id']}", headers=HEADERS)

    first = http.delete("/api/tasks/recyclebin/clear", headers=HEADERS).get_json()
    assert first == {"success": True, "count": 2}
    second = http.delete("/api/tasks/recyclebin/clear", headers=HEADERS).get_json()
    assert second == {"success": True, "count": 0}

    bin_body = http.get("/api/tasks/recyclebin", headers=HEADERS).get_json()
    assert bin_body == {"success": True, "data": [], "count": 0}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# API key guard
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_api_key_required_when_configured(http, settings):
    settings.api_secret = "s3cret"
    resp = http.post("/api/tasks", json={"title": "x", "description": ""}, headers=HEADERS)
    assert resp.status_code == 401
    resp = http.post("/api/tasks", json={"title": "x", "description": ""},
                     headers=dict(HEADERS, **{"X-API-Key": "wrong"}))
    assert resp.status_code == 403
    resp = http.post("/api/tasks", json={"title": "x", "description": ""},
                     headers=dict(HEADERS, **{"X-API-Key": "s3cret"}))
    assert resp.status_code == 201
    # Reads stay open
    assert http.get("/api/tasks", headers=HEADERS).status_code == 200


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# End-to-end scenarios
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_scenario_create_then_move_to_in_progress(http):
    _create(http, "Existing")
    other = _create(http, "Already running")
    http.put(f"/api/tasks/{other['id']}/move",
             json={"column": "inProgress", "order": 0}, headers=HEADERS)

    task = _create(http, "Write report")
    board = _board(http)
    assert board["backlog"][-1]["id"] == task["id"]

    resp = http.put(f"/api/tasks/{task['id']}/move",
                    json={"column": "inProgress", "order": 0}, headers=HEADERS)
    assert resp.get_json()["success"] is True

    board = _board(http)
    assert _titles(board, "inProgress") == ["Write report", "Already running"]
    assert [t["order"] for t in board["inProgress"]] == [0, 1]
    assert task["id"] not in [t["id"] for t in board["backlog"]]


def test_scenario_delete_from_done_then_restore(http):
    task = _create(http, "Ship it")
    keep = _create(http, "Keep me")
    for t in (task, keep):
        http.put(f"/api/tasks/{t['id']}/move",
                 json={"column": "done", "order": 0}, headers=HEADERS)

    resp = http.delete(f"/api/tasks/{task['id']}", headers=HEADERS)
    assert resp.get_json()["success"] is True

    board = _board(http)
    for column in board.values():
        assert task["id"] not in [t["id"] for t in column]

    bin_body = http.get("/api/tasks/recyclebin", headers=HEADERS).get_json()
    assert bin_body["count"] == 1
    (binned,) = bin_body["data"]
    assert binned["id"] == task["id"]
    assert binned["isDeleted"] is True
    assert binned["deletedAt"]

    resp = http.put(f"/api/tasks/{task['id']}/restore", headers=HEADERS)
    restored = resp.get_json()["data"]
    assert restored["id"] == task["id"]
    assert restored["column"] == "done"
    assert restored["deletedAt"] is None

    board = _board(http)
    assert _titles(board, "done") == ["Keep me", "Ship it"]
    assert http.get("/api/tasks/recyclebin", headers=HEADERS).get_json()["count"] == 0
