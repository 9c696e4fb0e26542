"""
Ordering engine: pure order computation for the board.

Order values within a column are simply the list index after every change,
so ascending order always matches array position. Nothing here performs I/O
and inputs are never mutated.
"""
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from .schema import COLUMNS, Column, Task

BASE_ORDER = 0


def renumber(tasks: Sequence[Task]) -> List[Task]:
    """Copy tasks with order == index. Tasks already in place are reused as-is."""
    return [
        t if t.order == i else replace(t, order=i)
        for i, t in enumerate(tasks, start=BASE_ORDER)
    ]


def next_order(tasks: Sequence[Task]) -> int:
    """Order for appending to a column: max + 1, or the base value when empty."""
    if not tasks:
        return BASE_ORDER
    return max(t.order for t in tasks) + 1


def clamp_index(index: int, length: int) -> int:
    return max(0, min(index, length))


def compute_move(
    source: Sequence[Task],
    dest: Sequence[Task],
    from_index: int,
    to_index: int,
) -> Tuple[List[Task], List[Task]]:
    """
    Move the task at source[from_index] to dest[to_index].

    Passing the same sequence object as source and dest is a reorder within
    one column; both returned lists are then the same list. to_index past
    the end appends. The moved task keeps its own column value; changing
    the column is the caller's job (Task.move_to).

    Returns:
        (updated_source, updated_dest), both renumbered from BASE_ORDER.

    Raises:
        IndexError: from_index is not a valid position in source
    """
    if from_index < 0 or from_index >= len(source):
        raise IndexError(f"from_index {from_index} out of range for {len(source)} tasks")

    same_column = source is dest
    new_source = list(source)
    moved = new_source.pop(from_index)

    if same_column:
        new_source.insert(clamp_index(to_index, len(new_source)), moved)
        result = renumber(new_source)
        return result, result

    new_dest = list(dest)
    new_dest.insert(clamp_index(to_index, len(new_dest)), moved)
    return renumber(new_source), renumber(new_dest)


def is_noop_move(
    source_column: Column, from_index: int,
    dest_column: Optional[Column], to_index: Optional[int],
) -> bool:
    """True when a drop needs neither a local update nor a persistence call."""
    if dest_column is None or to_index is None:
        return True
    return source_column == dest_column and from_index == to_index


def group_by_column(tasks: Sequence[Task]) -> Dict[Column, List[Task]]:
    """Group active tasks into the four columns, ascending order (ties by creation time)."""
    board: Dict[Column, List[Task]] = {c: [] for c in COLUMNS}
    for task in tasks:
        if not task.is_deleted:
            board[task.column].append(task)
    for column in board:
        board[column].sort(key=lambda t: (t.order, t.created_at))
    return board
