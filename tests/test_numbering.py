"""Tests for the task numbering engine.

WHY: Devices execute tasks by number. A gap or duplicate after a delete
would make a device skip or repeat work, so every numbering path is
checked here independently of the RosterStore.

RULES:
- Tasks are built directly; no store involved
"""

from __future__ import annotations

from typing import List

from wavelink_roster.core import numbering
from wavelink_roster.core.models import Task


def _tasks(count: int) -> List[Task]:
    return [
        Task(id="t{}".format(i + 1), name="Task {}".format(i + 1), number=i + 1,
             time="9:00 AM", description="d")
        for i in range(count)
    ]


def _numbers(tasks: List[Task]) -> List[int]:
    return [t.number for t in tasks]


def _ids(tasks: List[Task]) -> List[str]:
    return [t.id for t in tasks]


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------


class TestAppend:
    def test_first_task_gets_number_one(self):
        tasks: List[Task] = []
        task = Task(id="x", name="n", number=0, time="", description="d")
        numbering.append(tasks, task)
        assert task.number == 1

    def test_appended_number_is_length_plus_one(self):
        tasks = _tasks(3)
        task = Task(id="x", name="n", number=99, time="", description="d")
        numbering.append(tasks, task)
        assert _numbers(tasks) == [1, 2, 3, 4]

    def test_next_number(self):
        assert numbering.next_number([]) == 1
        assert numbering.next_number(_tasks(5)) == 6


# ---------------------------------------------------------------------------
# Single removal
# ---------------------------------------------------------------------------


class TestRemoveAt:
    def test_middle_removal_closes_gap(self):
        tasks = _tasks(3)
        removed = numbering.remove_at(tasks, 1)
        assert removed is not None and removed.id == "t2"
        assert _ids(tasks) == ["t1", "t3"]
        assert _numbers(tasks) == [1, 2]

    def test_prefix_is_untouched(self):
        tasks = _tasks(5)
        before = tasks[:2]
        numbering.remove_at(tasks, 2)
        assert tasks[:2] == before
        assert _numbers(tasks[:2]) == [1, 2]

    def test_last_removal(self):
        tasks = _tasks(3)
        numbering.remove_at(tasks, 2)
        assert _numbers(tasks) == [1, 2]

    def test_out_of_range_is_noop(self):
        tasks = _tasks(2)
        assert numbering.remove_at(tasks, 5) is None
        assert numbering.remove_at(tasks, -1) is None
        assert _numbers(tasks) == [1, 2]

    def test_empty_list_is_noop(self):
        assert numbering.remove_at([], 0) is None


# ---------------------------------------------------------------------------
# Batch removal
# ---------------------------------------------------------------------------


class TestRemoveIds:
    def test_batch_removal_keeps_relative_order(self):
        tasks = _tasks(4)
        removed = numbering.remove_ids(tasks, ["t1", "t3"])
        assert _ids(removed) == ["t1", "t3"]
        assert _ids(tasks) == ["t2", "t4"]
        assert _numbers(tasks) == [1, 2]

    def test_unknown_ids_are_ignored(self):
        tasks = _tasks(2)
        assert numbering.remove_ids(tasks, ["nope"]) == []
        assert _ids(tasks) == ["t1", "t2"]

    def test_removes_everything(self):
        tasks = _tasks(3)
        numbering.remove_ids(tasks, ["t1", "t2", "t3"])
        assert tasks == []

    def test_list_identity_is_preserved(self):
        tasks = _tasks(3)
        alias = tasks
        numbering.remove_ids(tasks, ["t2"])
        assert alias is tasks
        assert _ids(alias) == ["t1", "t3"]

    def test_attachment_and_identity_untouched(self):
        tasks = _tasks(3)
        tasks[2].audio_file_path = "recording-a.m4a"
        numbering.remove_ids(tasks, ["t1"])
        assert tasks[1].id == "t3"
        assert tasks[1].audio_file_path == "recording-a.m4a"


# ---------------------------------------------------------------------------
# Renumber / contiguity
# ---------------------------------------------------------------------------


class TestRenumber:
    def test_renumber_repairs_gaps_and_duplicates(self):
        tasks = _tasks(3)
        for t, n in zip(tasks, [2, 2, 7]):
            t.number = n
        assert not numbering.is_contiguous(tasks)
        numbering.renumber(tasks)
        assert _numbers(tasks) == [1, 2, 3]
        assert numbering.is_contiguous(tasks)

    def test_empty_list_is_contiguous(self):
        assert numbering.is_contiguous([])
