#!/usr/bin/env python3
"""
Dashboard Task Board Server
---------------------------
JSON API for the personal dashboard's task board, backed by SQLite.

Usage:
    python dashboard_server.py --port 5000 --db ~/.local/share/dashboard/tasks.db

Configuration comes from dashboard.yaml (or $DASHBOARD_CONFIG), then
DASHBOARD_* environment variables, then the command line.

API (all responses are {success, data?, error?}):
    GET    /api/tasks                    board grouped by column
    POST   /api/tasks                    create (lands at the end of backlog)
    GET    /api/tasks/<id>               one task
    PUT    /api/tasks/<id>               edit title/description/tags/...
    PUT    /api/tasks/<id>/move          body: { column|status, order }
    DELETE /api/tasks/<id>               soft delete (to recycle bin)
    GET    /api/tasks/recyclebin         deleted tasks + count
    PUT    /api/tasks/<id>/restore       back to its last column
    DELETE /api/tasks/<id>/permanent     purge one deleted task
    DELETE /api/tasks/recyclebin/clear   purge every deleted task
"""

import argparse
import hmac
import os
from functools import wraps

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from dashboard.taskboard.config import Settings, configure_logging
from dashboard.taskboard.errors import (
    InvalidStateError,
    NotFoundError,
    StoreError,
    TaskBoardError,
    ValidationError,
)
from dashboard.taskboard.store import TaskStore

API_VERSION = "1.0"

app = Flask(__name__)


def get_settings() -> Settings:
    """Settings set by the CLI, or loaded from dashboard.yaml/env on first use."""
    settings = app.config.get("SETTINGS")
    if settings is None:
        settings = app.config["SETTINGS"] = Settings.load()
    return settings


def get_store() -> TaskStore:
    """One TaskStore per database path; each store operation opens its own connection."""
    db_path = get_settings().db_path
    store = app.config.get("TASK_STORE")
    if store is None or store.db_path != db_path:
        store = app.config["TASK_STORE"] = TaskStore(db_path)
    return store


def current_owner() -> str:
    """Owner for this request. Real authentication lives outside the task board."""
    return request.headers.get("X-Owner-Id", "").strip() or get_settings().default_owner


def ok(data=None, status: int = 200, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(error: str, status: int):
    return jsonify({"success": False, "error": error}), status


def json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_api_key(f):
    """Decorator: when an API secret is configured, require a matching X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = get_settings().api_secret
        if secret:
            provided = request.headers.get("X-API-Key", "").strip()
            if not hmac.compare_digest(provided, secret):
                code = 401 if not provided else 403
                return fail("Unauthorized", code)
        return f(*args, **kwargs)
    return decorated


# ── Error handling ───────────────────────────────────────────────────────────

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    StoreError: 500,
}


@app.errorhandler(TaskBoardError)
def handle_task_error(e: TaskBoardError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 500)
    if status >= 500:
        app.logger.error(f"{request.method} {request.path} failed: {e}")
        return fail("Task store error", status)
    app.logger.info(f"{request.method} {request.path} -> {status}: {e}")
    return fail(str(e), status)


@app.errorhandler(HTTPException)
def handle_http_error(e: HTTPException):
    if e.code == 404:
        return fail("Route not found", 404)
    return fail(e.description or e.name, e.code or 500)


@app.errorhandler(Exception)
def handle_unexpected(e: Exception):
    app.logger.exception(f"Unhandled error on {request.method} {request.path}")
    return fail("Internal server error", 500)


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/")
def index():
    return jsonify({
        "success": True,
        "message": "Dashboard Task Board API",
        "version": API_VERSION,
        "endpoints": {
            "health": "/health",
            "tasks": "/api/tasks",
            "recyclebin": "/api/tasks/recyclebin",
        },
    })


@app.route("/health")
def health():
    return jsonify({"success": True, "status": "ok", "db": get_settings().db_path})


@app.route("/api/tasks", methods=["GET"])
def api_board():
    board = get_store().load_board(current_owner())
    return ok({column.value: [t.to_dict() for t in tasks] for column, tasks in board.items()})


@app.route("/api/tasks", methods=["POST"])
@require_api_key
def api_create_task():
    task = get_store().create(current_owner(), json_body())
    return ok(task.to_dict(), 201)


@app.route("/api/tasks/recyclebin", methods=["GET"])
def api_recycle_bin():
    tasks = get_store().find_by_owner(current_owner(), is_deleted=True)
    return ok([t.to_dict() for t in tasks], count=len(tasks))


@app.route("/api/tasks/recyclebin/clear", methods=["DELETE"])
@require_api_key
def api_clear_recycle_bin():
    count = get_store().purge_all(current_owner())
    return ok(count=count)


@app.route("/api/tasks/<task_id>", methods=["GET"])
def api_get_task(task_id):
    return ok(get_store().get(current_owner(), task_id).to_dict())


@app.route("/api/tasks/<task_id>", methods=["PUT"])
@require_api_key
def api_update_task(task_id):
    task = get_store().update_fields(current_owner(), task_id, json_body())
    return ok(task.to_dict())


@app.route("/api/tasks/<task_id>/move", methods=["PUT"])
@require_api_key
def api_move_task(task_id):
    data = json_body()
    column = data.get("column") or data.get("status")
    if not column:
        return fail("column is required", 400)
    if "order" not in data:
        return fail("order is required", 400)
    task = get_store().apply_move(current_owner(), task_id, column, data["order"])
    return ok(task.to_dict())


@app.route("/api/tasks/<task_id>", methods=["DELETE"])
@require_api_key
def api_delete_task(task_id):
    get_store().soft_delete(current_owner(), task_id)
    return ok(message="Task moved to recycle bin")


@app.route("/api/tasks/<task_id>/restore", methods=["PUT"])
@require_api_key
def api_restore_task(task_id):
    task = get_store().restore(current_owner(), task_id)
    return ok(task.to_dict())


@app.route("/api/tasks/<task_id>/permanent", methods=["DELETE"])
@require_api_key
def api_purge_task(task_id):
    get_store().purge(current_owner(), task_id)
    return ok(message="Task permanently deleted")


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dashboard Task Board Server")
    parser.add_argument("--config", help="Path to dashboard.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to tasks.db (overrides DASHBOARD_DB)")
    args = parser.parse_args()

    settings = Settings.load(args.config)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if args.db:
        settings.db_path = os.path.expanduser(args.db)
    app.config["SETTINGS"] = settings

    configure_logging(settings.log_level)
    get_store()  # create tables before the first request
    app.logger.info(
        f"Task board API on http://{settings.host}:{settings.port} (db: {settings.db_path})"
    )
    app.run(host=settings.host, port=settings.port, debug=False, threaded=True)
