"""
Task board schema and lifecycle state machine.

Task lifecycle:
  Active(backlog) ──move──► Active(column)      (any column, including reorders)
  Active(column)  ──soft delete──► Deleted      (column/order kept for restore)
  Deleted         ──restore──► Active(column)   (appended to its retained column)
  Deleted         ──purge──► Purged             (record removed, terminal)

Purging an active task is not allowed; it has to be soft-deleted first.
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidStateError, ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_task_id() -> str:
    """Generate a sortable unique task ID (ms-precision timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"task-{ts}-{rand}"


def _short_id() -> str:
    return uuid.uuid4().hex[:8]


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (trailing Z allowed). Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid timestamp: {value!r}")
    else:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_due_date(value: Any) -> Optional[date]:
    """Accept YYYY-MM-DD or a full ISO datetime (truncated to its date)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid dueDate: {value!r}")


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


class Column(Enum):
    """Workflow columns, in board order."""
    BACKLOG = "backlog"
    IN_PROGRESS = "inProgress"
    IN_REVIEW = "inReview"
    DONE = "done"

    @classmethod
    def from_str(cls, value: Any) -> "Column":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            names = ", ".join(c.value for c in cls)
            raise ValidationError(f"Invalid column: {value!r} (expected one of {names})")


COLUMNS = tuple(Column)


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Invalid priority: {value!r} (expected low, medium or high)")


class TaskState(Enum):
    """Lifecycle states. PURGED is terminal and never stored."""
    ACTIVE = "active"
    DELETED = "deleted"
    PURGED = "purged"


@dataclass
class Comment:
    author: str
    text: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=_short_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author,
            "text": self.text,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Comment":
        if not isinstance(data, dict):
            raise ValidationError("comments must be a list of objects")
        author = data.get("author")
        text = data.get("text")
        if not isinstance(author, str) or not author.strip():
            raise ValidationError("comment author is required")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("comment text is required")
        return cls(
            author=author.strip(),
            text=text,
            timestamp=parse_datetime(data.get("timestamp")) or utc_now(),
            id=str(data.get("id") or _short_id()),
        )


@dataclass
class Attachment:
    name: str
    size: int = 0
    type: str = ""
    uploaded_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=_short_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "type": self.type,
            "uploadedAt": _iso(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Attachment":
        if not isinstance(data, dict):
            raise ValidationError("attachments must be a list of objects")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("attachment name is required")
        size = data.get("size", 0)
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValidationError(f"Invalid attachment size: {size!r}")
        return cls(
            name=name.strip(),
            size=size,
            type=str(data.get("type") or ""),
            uploaded_at=parse_datetime(data.get("uploadedAt")) or utc_now(),
            id=str(data.get("id") or _short_id()),
        )


@dataclass
class Task:
    """A card on the board. Column and order are kept while deleted so restore knows where to go."""

    task_id: str
    owner_id: str
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM

    # Position
    column: Column = Column.BACKLOG
    order: int = 0

    # Details
    tags: List[str] = field(default_factory=list)
    due_date: Optional[date] = None
    comments: List[Comment] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)

    # Soft delete
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.is_deleted != (self.deleted_at is not None):
            raise ValidationError(
                f"Task {self.task_id}: deletedAt must be set if and only if isDeleted"
            )

    @property
    def state(self) -> TaskState:
        return TaskState.DELETED if self.is_deleted else TaskState.ACTIVE

    # ── Lifecycle transitions ────────────────────────────────────────────────

    def move_to(self, column: Column, order: int) -> None:
        """Active(c) → Active(column). Also covers reordering inside c."""
        if self.is_deleted:
            raise InvalidStateError(f"Cannot move deleted task {self.task_id}")
        self.column = Column.from_str(column)
        self.order = order
        self.updated_at = utc_now()

    def soft_delete(self) -> None:
        """Active → Deleted. Column and order stay as the last known position."""
        if self.is_deleted:
            raise InvalidStateError(f"Task {self.task_id} is already deleted")
        now = utc_now()
        self.is_deleted = True
        self.deleted_at = now
        self.updated_at = now

    def restore(self, order: int) -> None:
        """Deleted → Active(retained column), placed at the given order."""
        if not self.is_deleted:
            raise InvalidStateError(f"Task {self.task_id} is not deleted")
        self.is_deleted = False
        self.deleted_at = None
        self.order = order
        self.updated_at = utc_now()

    def ensure_purgeable(self) -> TaskState:
        """Deleted → Purged precondition. Returns the state the task is entering."""
        if not self.is_deleted:
            raise InvalidStateError(
                f"Task {self.task_id} is active; delete it before purging"
            )
        return TaskState.PURGED

    def apply_patch(self, patch: Dict[str, Any]) -> None:
        """Apply fields already checked by validate_task_fields()."""
        for name, value in patch.items():
            setattr(self, name, value)
        self.updated_at = utc_now()

    # ── Serialization ────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.task_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "column": self.column.value,
            "order": self.order,
            "tags": list(self.tags),
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "comments": [c.to_dict() for c in self.comments],
            "attachments": [a.to_dict() for a in self.attachments],
            "isDeleted": self.is_deleted,
            "deletedAt": _iso(self.deleted_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], owner_id: str = "") -> "Task":
        """Deserialize an API document. Accepts either "id" or Mongo-style "_id"."""
        task_id = data.get("id") or data.get("_id")
        if not task_id:
            raise ValidationError("task document has no id")
        return cls(
            task_id=str(task_id),
            owner_id=owner_id,
            title=data.get("title", ""),
            description=data.get("description") or "",
            priority=Priority.from_str(data.get("priority") or "medium"),
            column=Column.from_str(data.get("column") or data.get("status") or "backlog"),
            order=int(data.get("order") or 0),
            tags=list(data.get("tags") or []),
            due_date=parse_due_date(data.get("dueDate")),
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            attachments=[Attachment.from_dict(a) for a in data.get("attachments") or []],
            is_deleted=bool(data.get("isDeleted", False)),
            deleted_at=parse_datetime(data.get("deletedAt")),
            created_at=parse_datetime(data.get("createdAt")) or utc_now(),
            updated_at=parse_datetime(data.get("updatedAt")) or utc_now(),
        )


# ── Input validation ─────────────────────────────────────────────────────────

def validate_task_fields(data: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Check user-supplied task fields and convert them to model values.

    Args:
        data: JSON body (camelCase keys)
        partial: True for edits, where title and description may be omitted

    Returns:
        Dict keyed by Task attribute names. Column, order and deletion
        fields are never included; unknown keys are dropped.

    Raises:
        ValidationError: on a missing title or description, or a malformed field
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    clean: Dict[str, Any] = {}

    if "title" in data or not partial:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required")
        clean["title"] = title.strip()

    # Required on create (blank allowed); an edit may clear it with null
    if "description" in data or not partial:
        description = data.get("description")
        if description is None and partial:
            description = ""
        if description is None:
            raise ValidationError("description is required")
        if not isinstance(description, str):
            raise ValidationError("description must be a string")
        clean["description"] = description

    if data.get("priority") is not None:
        clean["priority"] = Priority.from_str(data["priority"])

    if "tags" in data:
        tags = data["tags"] or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValidationError("tags must be a list of strings")
        clean["tags"] = [t.strip() for t in tags if t.strip()]

    for key in ("dueDate", "due_date"):
        if key in data:
            clean["due_date"] = parse_due_date(data[key])

    if "comments" in data:
        comments = data["comments"] or []
        if not isinstance(comments, list):
            raise ValidationError("comments must be a list")
        clean["comments"] = [Comment.from_dict(c) for c in comments]

    if "attachments" in data:
        attachments = data["attachments"] or []
        if not isinstance(attachments, list):
            raise ValidationError("attachments must be a list")
        clean["attachments"] = [Attachment.from_dict(a) for a in attachments]

    return clean
