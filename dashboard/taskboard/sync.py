"""
Board synchronizer: keeps the client's board snapshot in step with the server.

Drag-and-drop moves are applied locally first (one snapshot replacement),
then persisted. If the server rejects the move or can't be reached, the
optimistic state is thrown away by refetching the whole board. No attempt is
made to patch a partially applied move, and the move is never retried
automatically.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .client import TaskApiClient
from .errors import ApiError
from .events import BoardEvents
from .ordering import compute_move, is_noop_move
from .schema import COLUMNS, Column, Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DragLocation:
    """Where a drag started or ended: a column and an index within it."""
    column: Column
    index: int

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["DragLocation"]:
        """Accept a drag-and-drop result location ({droppableId, index}); None stays None."""
        if data is None:
            return None
        column = data.get("droppableId") or data.get("column")
        return cls(Column.from_str(column), int(data["index"]))


class BoardSnapshot:
    """Client view of all active tasks: column -> tasks in display order. Never mutated."""

    def __init__(self, columns: Optional[Mapping[Column, Sequence[Task]]] = None):
        columns = columns or {}
        self._columns: Dict[Column, Tuple[Task, ...]] = {
            c: tuple(columns.get(c, ())) for c in COLUMNS
        }

    def __getitem__(self, column) -> Tuple[Task, ...]:
        return self._columns[Column.from_str(column)]

    def __len__(self) -> int:
        return sum(len(tasks) for tasks in self._columns.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, BoardSnapshot):
            return NotImplemented
        return self.to_ids() == other.to_ids()

    def __repr__(self) -> str:
        counts = ", ".join(f"{c.value}={len(t)}" for c, t in self._columns.items())
        return f"BoardSnapshot({counts})"

    def with_columns(self, updates: Mapping[Column, Sequence[Task]]) -> "BoardSnapshot":
        """New snapshot with the given columns replaced."""
        columns = dict(self._columns)
        columns.update(updates)
        return BoardSnapshot(columns)

    def without_task(self, task_id: str) -> "BoardSnapshot":
        return BoardSnapshot({
            c: [t for t in tasks if t.task_id != task_id]
            for c, tasks in self._columns.items()
        })

    def find(self, task_id: str) -> Optional[Tuple[Column, int]]:
        for column, tasks in self._columns.items():
            for i, task in enumerate(tasks):
                if task.task_id == task_id:
                    return column, i
        return None

    def to_ids(self) -> Dict[str, List[str]]:
        """Column value -> task ids in display order."""
        return {c.value: [t.task_id for t in tasks] for c, tasks in self._columns.items()}


class BoardSynchronizer:
    """Owns the board snapshot and reconciles it with the task API."""

    def __init__(self, client: TaskApiClient, events: Optional[BoardEvents] = None):
        self.client = client
        self.events = events if events is not None else BoardEvents()
        self.snapshot = BoardSnapshot()
        self.last_error: Optional[ApiError] = None

    def _replace(self, snapshot: BoardSnapshot, event_type: str) -> None:
        self.snapshot = snapshot
        self.events.emit(event_type, snapshot=snapshot)

    # ── Reconciliation ───────────────────────────────────────────────────────

    def load_board(self) -> BoardSnapshot:
        """Fetch every active task and replace the whole snapshot. Raises ApiError."""
        board = self.client.fetch_board()
        self.last_error = None
        self._replace(BoardSnapshot(board), "board_loaded")
        logger.debug(f"Board loaded: {self.snapshot!r}")
        return self.snapshot

    def refresh(self) -> bool:
        """load_board() that reports failure through an alert instead of raising."""
        try:
            self.load_board()
            return True
        except ApiError as e:
            logger.error(f"Error fetching tasks: {e}")
            self.last_error = e
            self.events.emit("alert", message=f"Failed to load tasks: {e}")
            return False

    # ── Drag and drop ────────────────────────────────────────────────────────

    def on_drag_end(
        self, source: DragLocation, destination: Optional[DragLocation]
    ) -> bool:
        """
        Handle a drop.

        Returns True when the move was applied and the server accepted it,
        False for no-op drops and for rejected moves (which trigger a refetch).
        """
        if destination is None or is_noop_move(
            source.column, source.index, destination.column, destination.index
        ):
            return False

        same_column = source.column == destination.column
        src = self.snapshot[source.column]
        if source.index < 0 or source.index >= len(src):
            logger.warning(
                f"Ignoring drop from {source.column.value}[{source.index}]: "
                f"column has {len(src)} task(s)"
            )
            return False
        dest = src if same_column else self.snapshot[destination.column]
        task = src[source.index]

        new_src, new_dest = compute_move(src, dest, source.index, destination.index)
        if same_column:
            updates = {source.column: new_dest}
        else:
            new_dest = [
                replace(t, column=destination.column) if t.task_id == task.task_id else t
                for t in new_dest
            ]
            updates = {source.column: new_src, destination.column: new_dest}
        self._replace(self.snapshot.with_columns(updates), "board_changed")

        try:
            self.client.move_task(task.task_id, destination.column, destination.index)
        except ApiError as e:
            logger.warning(f"Error updating task {task.task_id}: {e}; reloading board")
            self.refresh()
            self.last_error = e
            self.events.emit("move_failed", task_id=task.task_id, error=e)
            return False
        return True

    # ── Other board edits ────────────────────────────────────────────────────

    def create_task(self, fields: Dict[str, Any]) -> Task:
        """Create a task, then refetch so it shows at the end of the backlog.

        Raises ApiError (status 400 for a form error) without retrying.
        """
        task = self.client.create_task(fields)
        self.refresh()
        return task

    def update_task(self, task_id: str, patch: Dict[str, Any]) -> Optional[Task]:
        try:
            task = self.client.update_task(task_id, patch)
        except ApiError as e:
            logger.error(f"Error updating task {task_id}: {e}")
            self.events.emit("alert", message=f"Failed to update task: {e}")
            if e.is_not_found:
                self.refresh()
            return None
        self.refresh()
        return task

    def delete_task(self, task_id: str) -> bool:
        """Soft-delete a task and drop it from the snapshot once the server agrees."""
        try:
            self.client.delete_task(task_id)
        except ApiError as e:
            logger.error(f"Error deleting task {task_id}: {e}")
            self.events.emit("alert", message="Failed to delete task. Please try again.")
            if e.is_not_found:
                self.refresh()
            return False
        self._replace(self.snapshot.without_task(task_id), "board_changed")
        return True
