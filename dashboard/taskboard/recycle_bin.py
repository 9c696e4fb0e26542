"""
Recycle bin controller: lists deleted tasks and restores or purges them.

Restore and purge are user-initiated, so failures are reported through an
"alert" event rather than healed silently. A 404 means our list is stale, so
the deleted list and the board are both refetched.
"""
import logging
from typing import Callable, List, Optional

from .client import TaskApiClient
from .errors import ApiError
from .events import BoardEvents
from .schema import Task
from .sync import BoardSynchronizer

logger = logging.getLogger(__name__)

PURGE_ONE_PROMPT = "This will permanently delete the task. This action cannot be undone. Continue?"
PURGE_ALL_PROMPT = "This will permanently delete all tasks in the recycle bin. Continue?"

Confirm = Callable[[str], bool]


class RecycleBinController:
    """Client-side view of the owner's deleted tasks."""

    def __init__(
        self,
        client: TaskApiClient,
        board: Optional[BoardSynchronizer] = None,
        events: Optional[BoardEvents] = None,
    ):
        self.client = client
        self.board = board
        if events is None:
            events = board.events if board is not None else BoardEvents()
        self.events = events
        self.tasks: List[Task] = []

    def list(self) -> List[Task]:
        """Fetch deleted tasks, most recently deleted first. Raises ApiError."""
        tasks, _ = self.client.list_deleted()
        tasks.sort(key=lambda t: t.deleted_at, reverse=True)
        self._set_tasks(tasks)
        return list(self.tasks)

    def count(self) -> int:
        """Number of tasks in the bin (the badge on the board). 0 if the API is unreachable."""
        try:
            _, count = self.client.list_deleted()
        except ApiError as e:
            logger.error(f"Error fetching deleted tasks count: {e}")
            return 0
        return count

    def restore_one(self, task_id: str) -> bool:
        """Restore a task; the board is reloaded so it shows up in its column."""
        try:
            self.client.restore_task(task_id)
        except ApiError as e:
            self._failed("restore", task_id, e, "Failed to restore task. Please try again.")
            return False
        self._set_tasks([t for t in self.tasks if t.task_id != task_id])
        self.events.emit("task_restored", task_id=task_id)
        if self.board is not None:
            self.board.refresh()
        logger.info(f"Restored task {task_id}")
        return True

    def purge_one(self, task_id: str, confirm: Optional[Confirm] = None) -> bool:
        """Permanently delete one task. Irreversible; confirm() may veto."""
        if confirm is not None and not confirm(PURGE_ONE_PROMPT):
            return False
        try:
            self.client.purge_task(task_id)
        except ApiError as e:
            self._failed("purge", task_id, e, "Failed to delete task. Please try again.")
            return False
        self._set_tasks([t for t in self.tasks if t.task_id != task_id])
        self.events.emit("task_purged", task_id=task_id)
        logger.info(f"Purged task {task_id}")
        return True

    def purge_all(self, confirm: Optional[Confirm] = None) -> Optional[int]:
        """Empty the bin. Returns the number purged, or None if vetoed or failed."""
        if confirm is not None and not confirm(PURGE_ALL_PROMPT):
            return None
        try:
            count = self.client.clear_recycle_bin()
        except ApiError as e:
            logger.error(f"Error clearing recycle bin: {e}")
            self.events.emit("alert", message="Failed to clear recycle bin. Please try again.")
            return None
        self._set_tasks([])
        logger.info(f"Recycle bin cleared: {count} task(s)")
        return count

    def _set_tasks(self, tasks: List[Task]) -> None:
        self.tasks = tasks
        self.events.emit("recycle_bin_changed", tasks=list(tasks))

    def _failed(self, action: str, task_id: str, error: ApiError, message: str) -> None:
        logger.error(f"Error during {action} of task {task_id}: {error}")
        self.events.emit("alert", message=message)
        if error.is_not_found:
            try:
                self.list()
            except ApiError as e:
                logger.error(f"Error fetching deleted tasks: {e}")
            if self.board is not None:
                self.board.refresh()
