"""
UI refresh events.

The board synchronizer and recycle bin controller publish here; whatever
renders the board subscribes. Event types:

    board_loaded   snapshot=BoardSnapshot        full refetch finished
    board_changed  snapshot=BoardSnapshot        optimistic local update
    move_failed    task_id=str, error=ApiError   move rejected, board refetched
    recycle_bin_changed  tasks=list[Task]        deleted list changed
    task_restored  task_id=str
    task_purged    task_id=str
    alert          message=str                   user-visible failure
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class BoardEvents:
    """Minimal publish/subscribe hub for board refresh callbacks."""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = {}  # event_type -> callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        callbacks = self.subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers. A failing subscriber doesn't stop the others."""
        for callback in list(self.subscribers.get(event_type, [])):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"Error in {event_type} callback {callback!r}")
