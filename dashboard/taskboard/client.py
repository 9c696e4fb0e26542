"""
HTTP client for the task API.

Every call goes through one requests.Session carrying the owner and API key
headers. Any failure, whether the server answered {success: false}, a non-2xx
status, or the request never completed, is raised as ApiError.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from .errors import ApiError, ValidationError
from .schema import COLUMNS, Column, Task

logger = logging.getLogger(__name__)


class TaskApiClient:
    """Thin wrapper over the /api/tasks routes, returning Task objects."""

    def __init__(
        self,
        base_url: str,
        owner_id: str = "",
        api_key: str = "",
        timeout: float = 10.0,
        session=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.owner_id = owner_id
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        if owner_id:
            self.session.headers["X-Owner-Id"] = owner_id
        if api_key:
            self.session.headers["X-API-Key"] = api_key

    @classmethod
    def from_settings(cls, settings, session=None) -> "TaskApiClient":
        return cls(
            settings.api_url,
            owner_id=settings.default_owner,
            api_key=settings.api_secret,
            timeout=settings.request_timeout,
            session=session,
        )

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ApiError(f"{method} {path} failed: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}

        if not r.ok or not body.get("success"):
            message = body.get("error") or f"HTTP {r.status_code}"
            raise ApiError(message, status_code=r.status_code)
        return body

    def _task(self, doc: Dict[str, Any]) -> Task:
        try:
            return Task.from_dict(doc, owner_id=self.owner_id)
        except (ValidationError, TypeError, ValueError) as e:
            raise ApiError(f"Malformed task in response: {e}") from e

    # ── Board ────────────────────────────────────────────────────────────────

    def fetch_board(self) -> Dict[Column, List[Task]]:
        """GET /api/tasks, normalized: string ids, column taken from the group key."""
        data = self._request("GET", "/api/tasks").get("data") or {}
        board: Dict[Column, List[Task]] = {}
        for column in COLUMNS:
            docs = data.get(column.value) or []
            tasks = [self._task(dict(doc, column=column.value)) for doc in docs]
            tasks.sort(key=lambda t: t.order)
            board[column] = tasks
        unknown = set(data) - {c.value for c in COLUMNS}
        if unknown:
            logger.warning(f"Ignoring unknown board columns: {sorted(unknown)}")
        return board

    def create_task(self, fields: Dict[str, Any]) -> Task:
        return self._task(self._request("POST", "/api/tasks", fields)["data"])

    def get_task(self, task_id: str) -> Task:
        return self._task(self._request("GET", f"/api/tasks/{task_id}")["data"])

    def update_task(self, task_id: str, patch: Dict[str, Any]) -> Task:
        return self._task(self._request("PUT", f"/api/tasks/{task_id}", patch)["data"])

    def move_task(self, task_id: str, column: Column, order: int) -> Task:
        payload = {"column": Column.from_str(column).value, "order": order}
        return self._task(self._request("PUT", f"/api/tasks/{task_id}/move", payload)["data"])

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", f"/api/tasks/{task_id}")

    # ── Recycle bin ──────────────────────────────────────────────────────────

    def list_deleted(self) -> Tuple[List[Task], int]:
        body = self._request("GET", "/api/tasks/recyclebin")
        tasks = [self._task(doc) for doc in body.get("data") or []]
        return tasks, int(body.get("count", len(tasks)))

    def restore_task(self, task_id: str) -> Task:
        return self._task(self._request("PUT", f"/api/tasks/{task_id}/restore")["data"])

    def purge_task(self, task_id: str) -> None:
        self._request("DELETE", f"/api/tasks/{task_id}/permanent")

    def clear_recycle_bin(self) -> int:
        return int(self._request("DELETE", "/api/tasks/recyclebin/clear").get("count", 0))
