"""Task numbering engine: keeps task numbers contiguous and 1-based.

WHY: Devices execute tasks by number, so a device's task list must
always be numbered 1..N with no gaps or duplicates. Every insertion and
deletion has to restore that, and the rules must be identical wherever a
task list changes.

HOW: Pure functions over a device's ``List[Task]``, mutating in place:
  next_number : number for an appended task (pre-insertion length + 1)
  append      : append one task with its final number
  remove_at   : single deletion; decrement the suffix by one
  remove_ids  : batch deletion; renumber the whole remainder from 1
  renumber    : full renumber (load-time repair)

RULES:
- Ordering is list order; time-of-day is never consulted
- Single deletion at position p touches only positions p..end
- Renumbering only changes ``number``, never identity or attachment
- Removing from an empty list or an absent id is a no-op
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from wavelink_roster.core.models import Task


def next_number(tasks: List[Task]) -> int:
    """Return the number an appended task must carry."""
    return len(tasks) + 1


def append(tasks: List[Task], task: Task) -> Task:
    """Append ``task`` with its final number; no other number changes."""
    task.number = next_number(tasks)
    tasks.append(task)
    return task


def remove_at(tasks: List[Task], position: int) -> Optional[Task]:
    """Remove the task at ``position`` and close the gap.

    Equivalent to a full renumber of the suffix: every task after the
    removed one moves up by exactly one.

    Returns:
        The removed task, or None if ``position`` is out of range.
    """
    if position < 0 or position >= len(tasks):
        return None
    removed = tasks.pop(position)
    for task in tasks[position:]:
        task.number -= 1
    return removed


def remove_ids(tasks: List[Task], task_ids: Iterable[str]) -> List[Task]:
    """Remove every task whose id is in ``task_ids`` in one pass.

    HOW: Partition into survivors and removed (preserving relative order),
    replace the list contents in place, then renumber from 1.

    Returns:
        The removed tasks in their original order (empty if none matched).
    """
    targets = set(task_ids)
    if not targets or not tasks:
        return []

    survivors: List[Task] = []
    removed: List[Task] = []
    for task in tasks:
        (removed if task.id in targets else survivors).append(task)

    if removed:
        tasks[:] = survivors
        renumber(tasks)
    return removed


def renumber(tasks: List[Task]) -> None:
    """Assign numbers 1..N in list order."""
    for index, task in enumerate(tasks):
        task.number = index + 1


def is_contiguous(tasks: List[Task]) -> bool:
    """True when numbers are exactly 1..N in list order."""
    return [t.number for t in tasks] == list(range(1, len(tasks) + 1))
