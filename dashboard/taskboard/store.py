"""
Task storage backend (SQLite).

Every query is scoped by owner. List-valued fields (tags, comments,
attachments) are stored as JSON text, one row per task document.
Column/order changes run inside BEGIN IMMEDIATE transactions so two moves
touching the same column are serialized and never produce duplicate orders.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import InvalidStateError, NotFoundError, StoreError, TaskBoardError, ValidationError
from .ordering import compute_move, group_by_column, next_order, renumber
from .schema import Column, Task, make_task_id, validate_task_fields

logger = logging.getLogger(__name__)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open an autocommit connection in WAL mode; transactions are explicit."""
    conn = sqlite3.connect(db_path, isolation_level=None, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _load_json_list(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    return value if isinstance(value, list) else []


class TaskStore:
    """SQLite-backed store for board tasks."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "dashboard" / "tasks.db")
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with self._session() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    priority TEXT DEFAULT 'medium',
                    board_column TEXT NOT NULL DEFAULT 'backlog',
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    tags TEXT,          -- JSON list
                    due_date TEXT,
                    comments TEXT,      -- JSON list
                    attachments TEXT,   -- JSON list
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    deleted_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_board
                ON tasks(owner_id, is_deleted, board_column, sort_order)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_recycle
                ON tasks(owner_id, is_deleted, deleted_at)
            """)

    @contextmanager
    def _session(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection, closing it afterwards.

        With write=True the block runs in a BEGIN IMMEDIATE transaction that
        commits on success and rolls back on any exception. sqlite3 errors
        surface as StoreError; task board errors propagate unchanged.
        """
        try:
            conn = _connect(self.db_path)
        except sqlite3.Error as e:
            logger.error(f"Cannot open task database {self.db_path}: {e}")
            raise StoreError(f"Cannot open task database: {e}") from e
        try:
            if write:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if write:
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(f"Task store error: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    # ── Queries ──────────────────────────────────────────────────────────────

    def get(self, owner_id: str, task_id: str) -> Task:
        """Retrieve one of the owner's tasks, active or deleted."""
        with self._session() as conn:
            return self._fetch(conn, owner_id, task_id)

    def find_by_owner(self, owner_id: str, is_deleted: bool = False) -> List[Task]:
        """
        List the owner's tasks.

        Active tasks come back in ascending order (the board); deleted tasks
        come back most recently deleted first (the recycle bin).
        """
        if is_deleted:
            sql = ("SELECT * FROM tasks WHERE owner_id = ? AND is_deleted = 1 "
                   "ORDER BY deleted_at DESC")
        else:
            sql = ("SELECT * FROM tasks WHERE owner_id = ? AND is_deleted = 0 "
                   "ORDER BY sort_order ASC, created_at ASC")
        with self._session() as conn:
            rows = conn.execute(sql, (owner_id,)).fetchall()
        return [self._row_to_task(row) for row in rows]

    def load_board(self, owner_id: str) -> Dict[Column, List[Task]]:
        """Active tasks grouped by column."""
        return group_by_column(self.find_by_owner(owner_id, is_deleted=False))

    def count_deleted(self, owner_id: str) -> int:
        with self._session() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM tasks WHERE owner_id = ? AND is_deleted = 1",
                (owner_id,),
            ).fetchone()
        return row[0]

    # ── Mutations ────────────────────────────────────────────────────────────

    def create(self, owner_id: str, fields: Dict[str, Any]) -> Task:
        """Create a task at the end of the backlog."""
        clean = validate_task_fields(fields)
        with self._session(write=True) as conn:
            order = next_order(self._column_tasks(conn, owner_id, Column.BACKLOG))
            task = Task(
                task_id=make_task_id(),
                owner_id=owner_id,
                column=Column.BACKLOG,
                order=order,
                **clean,
            )
            self._save(conn, task)
        logger.info(f"Task created: {task.task_id} ({task.title!r}) backlog#{order}")
        return task

    def update_fields(self, owner_id: str, task_id: str, patch: Dict[str, Any]) -> Task:
        """Edit content fields. Column, order and deletion state are not editable here."""
        clean = validate_task_fields(patch, partial=True)
        with self._session(write=True) as conn:
            task = self._fetch(conn, owner_id, task_id)
            task.apply_patch(clean)
            self._save(conn, task)
        logger.debug(f"Task updated: {task_id} fields={sorted(clean)}")
        return task

    def apply_move(self, owner_id: str, task_id: str, target_column: Any, target_order: Any) -> Task:
        """
        Move a task to target_column at index target_order.

        The affected columns are read and rewritten inside one transaction,
        so retrying the same move leaves the board unchanged.

        Raises:
            ValidationError: unknown column or bad order
            NotFoundError: task missing or not the owner's
            InvalidStateError: task is in the recycle bin
        """
        column = Column.from_str(target_column)
        if isinstance(target_order, bool) or not isinstance(target_order, int) or target_order < 0:
            raise ValidationError(f"order must be a non-negative integer, got {target_order!r}")

        with self._session(write=True) as conn:
            task = self._fetch(conn, owner_id, task_id)
            if task.is_deleted:
                raise InvalidStateError(f"Cannot move deleted task {task_id}; restore it first")
            old_column = task.column

            source = self._column_tasks(conn, owner_id, old_column)
            dest = source if column == old_column else self._column_tasks(conn, owner_id, column)
            from_index = next(i for i, t in enumerate(source) if t.task_id == task_id)
            previous = {t.task_id: t.order for t in list(source) + list(dest)}

            new_source, new_dest = compute_move(source, dest, from_index, target_order)

            moved = next(t for t in new_dest if t.task_id == task_id)
            moved.move_to(column, moved.order)
            self._save(conn, moved)

            neighbours = new_dest if new_source is new_dest else new_source + new_dest
            for t in neighbours:
                if t.task_id != task_id and previous[t.task_id] != t.order:
                    self._set_order(conn, t)

        logger.info(
            f"Task moved: {task_id} ({old_column.value} -> {column.value}#{moved.order})"
        )
        return moved

    def soft_delete(self, owner_id: str, task_id: str) -> Task:
        """Move an active task to the recycle bin."""
        with self._session(write=True) as conn:
            task = self._fetch(conn, owner_id, task_id, is_deleted=False)
            task.soft_delete()
            self._save(conn, task)
            remaining = self._column_tasks(conn, owner_id, task.column)
            for before, after in zip(remaining, renumber(remaining)):
                if before.order != after.order:
                    self._set_order(conn, after)
        logger.info(f"Task deleted: {task_id} (last position {task.column.value}#{task.order})")
        return task

    def restore(self, owner_id: str, task_id: str) -> Task:
        """Bring a deleted task back at the end of its retained column."""
        with self._session(write=True) as conn:
            task = self._fetch(conn, owner_id, task_id, is_deleted=True)
            task.restore(next_order(self._column_tasks(conn, owner_id, task.column)))
            self._save(conn, task)
        logger.info(f"Task restored: {task_id} -> {task.column.value}#{task.order}")
        return task

    def purge(self, owner_id: str, task_id: str) -> None:
        """Permanently remove a deleted task."""
        with self._session(write=True) as conn:
            task = self._fetch(conn, owner_id, task_id)
            state = task.ensure_purgeable()
            conn.execute(
                "DELETE FROM tasks WHERE owner_id = ? AND task_id = ?",
                (owner_id, task_id),
            )
        logger.info(f"Task purged: {task_id} ({task.state.value} -> {state.value})")

    def purge_all(self, owner_id: str) -> int:
        """Permanently remove every deleted task of the owner. Returns the count."""
        with self._session(write=True) as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE owner_id = ? AND is_deleted = 1",
                (owner_id,),
            )
            count = cur.rowcount
        logger.info(f"Recycle bin cleared for {owner_id}: {count} task(s) purged")
        return count

    # ── Internals ────────────────────────────────────────────────────────────

    def _fetch(
        self, conn: sqlite3.Connection, owner_id: str, task_id: str,
        is_deleted: Optional[bool] = None,
    ) -> Task:
        sql = "SELECT * FROM tasks WHERE owner_id = ? AND task_id = ?"
        params: list = [owner_id, task_id]
        if is_deleted is not None:
            sql += " AND is_deleted = ?"
            params.append(1 if is_deleted else 0)
        row = conn.execute(sql, params).fetchone()
        if not row:
            if is_deleted:
                raise NotFoundError(f"Task {task_id} not found in recycle bin")
            raise NotFoundError(f"Task {task_id} not found")
        return self._row_to_task(row)

    def _column_tasks(self, conn: sqlite3.Connection, owner_id: str, column: Column) -> List[Task]:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE owner_id = ? AND board_column = ? AND is_deleted = 0 "
            "ORDER BY sort_order ASC, created_at ASC",
            (owner_id, column.value),
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def _set_order(self, conn: sqlite3.Connection, task: Task) -> None:
        conn.execute(
            "UPDATE tasks SET sort_order = ? WHERE task_id = ?",
            (task.order, task.task_id),
        )

    def _save(self, conn: sqlite3.Connection, task: Task) -> None:
        """Insert or replace the full task row."""
        data = task.to_dict()
        conn.execute("""
            INSERT OR REPLACE INTO tasks
            (task_id, owner_id, title, description, priority, board_column, sort_order,
             tags, due_date, comments, attachments, is_deleted, deleted_at,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            task.task_id,
            task.owner_id,
            data["title"],
            data["description"],
            data["priority"],
            data["column"],
            data["order"],
            json.dumps(data["tags"]),
            data["dueDate"],
            json.dumps(data["comments"]),
            json.dumps(data["attachments"]),
            1 if data["isDeleted"] else 0,
            data["deletedAt"],
            data["createdAt"],
            data["updatedAt"],
        ))

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        """Convert a database row to a Task."""
        data = dict(row)
        try:
            return Task.from_dict({
                "id": data["task_id"],
                "title": data["title"],
                "description": data["description"],
                "priority": data["priority"],
                "column": data["board_column"],
                "order": data["sort_order"],
                "tags": _load_json_list(data["tags"]),
                "dueDate": data["due_date"],
                "comments": _load_json_list(data["comments"]),
                "attachments": _load_json_list(data["attachments"]),
                "isDeleted": bool(data["is_deleted"]),
                "deletedAt": data["deleted_at"],
                "createdAt": data["created_at"],
                "updatedAt": data["updated_at"],
            }, owner_id=data["owner_id"])
        except TaskBoardError as e:
            logger.error(f"Corrupt task row {data.get('task_id')}: {e}")
            raise StoreError(f"Corrupt task row {data.get('task_id')}: {e}") from e
