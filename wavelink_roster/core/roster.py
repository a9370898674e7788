"""RosterStore: authoritative in-memory roster of devices and tasks.

WHY: Every operator command (add/edit/delete device, assign/edit/delete
task, delete all data) has to leave the roster consistent: unique ids,
tasks numbered 1..N per device, a task count equal to the list length,
and no reference to an audio file that no longer exists. Centralising
the mutations here means the CLI, the HTTP API and tests all get the
same guarantees.

HOW: Arena + index. Devices live in one owning list; side maps give
``device id -> position``, ``task id -> device id`` and ``task id -> Task``. A task's
position inside its device is ``number - 1``. Numbering changes are
delegated to core.numbering, file lifecycle to AudioAttachmentManager.
After every successful mutation the store persists a snapshot through
the PersistenceGateway handle it was constructed with, then releases any
audio files that are no longer referenced.

RULES:
- All public methods hold self._lock (re-entrant), so the HTTP API's
  thread pool cannot interleave mutations or persistence writes
- Empty required fields raise ValidationError before any state changes
- Unknown ids are no-ops: edit_* returns None, delete_* returns False/0
- assign_task is all-or-nothing across the targeted devices
- A file shared by several tasks is released only when the last
  reference goes away
- Old audio in edit_task is released only after the new reference has
  been persisted; when a save fails, no file is released (purge or a
  later prune cleans up)
- Only recordings owned by the attachment manager are ever attached or
  released
- Returned Device/Task objects are copies; mutate only through the store
"""

from __future__ import annotations

import copy
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from wavelink_roster.attachments.manager import (
    AttachmentRef,
    AudioAttachmentManager,
    CaptureBackend,
    ConfirmationRequired,
    RecordingHandle,
)
from wavelink_roster.core import numbering
from wavelink_roster.core.errors import ValidationError
from wavelink_roster.core.models import Device, Task, new_id
from wavelink_roster.core.timefmt import normalize_time
from wavelink_roster.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Two-phase destructive operations
# ---------------------------------------------------------------------------


class DeleteKind(str, enum.Enum):
    """What a pending confirmation will destroy."""

    DEVICE = "device"
    TASKS = "tasks"
    ALL = "all"


@dataclass(frozen=True)
class PendingConfirmation:
    """First phase of a destructive operation, owned by the UI.

    WHY: Deleting a device, tasks, or all data cannot be undone. The UI
    builds one of these, shows ``summary`` to the operator, and only hands
    it to RosterStore.confirm() once they agree.

    RULES:
    - device_id is set for DEVICE and TASKS
    - task_ids is non-empty only for TASKS
    """

    kind: DeleteKind
    device_id: Optional[str] = None
    task_ids: Tuple[str, ...] = ()
    summary: str = ""


def request_delete_device(device_id: str, name: str = "") -> PendingConfirmation:
    return PendingConfirmation(
        kind=DeleteKind.DEVICE,
        device_id=device_id,
        summary="Delete device {} and all of its tasks?".format(name or device_id),
    )


def request_delete_tasks(device_id: str, task_ids: Iterable[str]) -> PendingConfirmation:
    ids = tuple(task_ids)
    return PendingConfirmation(
        kind=DeleteKind.TASKS,
        device_id=device_id,
        task_ids=ids,
        summary="Delete {} task(s)?".format(len(ids)),
    )


def request_clear_all() -> PendingConfirmation:
    return PendingConfirmation(
        kind=DeleteKind.ALL,
        summary="Delete all devices, tasks and recordings?",
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def _require(field: str, value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValidationError(field)
    return value.strip()


class RosterStore:
    """Invariant-preserving CRUD over devices and their tasks.

    RULES:
    - gateway may be None for a purely in-memory roster (no persistence)
    - attachments is required; it owns every audio file tasks reference
    """

    def __init__(
        self,
        gateway: Optional[PersistenceGateway],
        attachments: AudioAttachmentManager,
    ) -> None:
        self._gateway = gateway
        self.attachments = attachments
        self._devices: List[Device] = []
        self._device_pos: Dict[str, int] = {}
        self._task_owner: Dict[str, str] = {}
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.RLock()

    # ---- loading ----

    def load(self) -> int:
        """Replace the in-memory roster with the persisted one.

        Repairs what older app versions wrote: renumbers tasks 1..N,
        fixes task_count, drops duplicate ids, and clears references to
        audio files that no longer exist. Referenced files are registered
        with the attachment manager so purge covers them.

        Returns:
            Number of devices loaded.
        """
        if self._gateway is None:
            return 0

        loaded = self._gateway.load()
        with self._lock:
            repaired = False
            devices: List[Device] = []
            seen_devices: Set[str] = set()
            seen_tasks: Set[str] = set()

            for device in loaded:
                if device.id in seen_devices:
                    logger.warning("Dropping duplicate device id %s on load", device.id)
                    repaired = True
                    continue
                seen_devices.add(device.id)

                kept: List[Task] = []
                for task in device.tasks:
                    if task.id in seen_tasks:
                        logger.warning("Dropping duplicate task id %s on load", task.id)
                        repaired = True
                        continue
                    seen_tasks.add(task.id)
                    kept.append(task)
                device.tasks = kept

                if not numbering.is_contiguous(device.tasks):
                    numbering.renumber(device.tasks)
                    repaired = True
                if device.task_count != len(device.tasks):
                    device.task_count = len(device.tasks)
                    repaired = True
                devices.append(device)

            self._devices = devices
            self._reindex()
            self.attachments.track(
                t.audio_file_path for d in self._devices for t in d.tasks if t.audio_file_path
            )
            if self._prune_dangling():
                repaired = True

            if repaired:
                logger.info("Repaired stored roster; saving normalized copy")
                self._gateway.save(self._devices, revision=self._gateway.revision + 1)

            logger.info("Roster loaded: %d device(s)", len(self._devices))
            return len(self._devices)

    # ---- reads ----

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def list_devices(self) -> List[Device]:
        """Deep copies of every device, in roster order."""
        with self._lock:
            return [d.copy() for d in self._devices]

    def snapshot(self) -> List[dict]:
        """The roster as plain dicts (the persisted shape)."""
        with self._lock:
            return [d.to_dict() for d in self._devices]

    def get_device(self, device_id: str) -> Optional[Device]:
        with self._lock:
            device = self._device(device_id)
            return device.copy() if device is not None else None

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            located = self._locate_task(task_id)
            if located is None:
                return None
            device, position = located
            return copy.copy(device.tasks[position])

    def find_device_for_task(self, task_id: str) -> Optional[str]:
        with self._lock:
            return self._task_owner.get(task_id)

    # ---- device operations ----

    def add_device(
        self,
        name: str,
        user: str = "",
        host: str = "",
        ip: str = "",
        port: str = "",
        password: str = "",
    ) -> str:
        """Create a device with an empty task list.

        Raises:
            ValidationError: ``name`` is empty.

        Returns:
            The new device id.
        """
        clean_name = _require("name", name)
        with self._lock:
            device = Device(
                id=self._fresh_id(),
                name=clean_name,
                user=user or "",
                host=host or "",
                ip=ip or "",
                port=port or "",
                password=password or "",
            )
            self._devices.append(device)
            self._device_pos[device.id] = len(self._devices) - 1
            self._persist()

        logger.info("Device added: %s (%s)", device.name, device.id)
        return device.id

    def edit_device(
        self,
        device_id: str,
        name: Optional[str] = None,
        user: Optional[str] = None,
        host: Optional[str] = None,
        ip: Optional[str] = None,
        port: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Optional[Device]:
        """Replace a device's editable fields in place; tasks are untouched.

        Only non-None arguments are applied.

        Raises:
            ValidationError: ``name`` is given but empty.

        Returns:
            Copy of the updated device, or None if ``device_id`` is unknown.
        """
        clean_name = _require("name", name) if name is not None else None
        with self._lock:
            device = self._device(device_id)
            if device is None:
                return None

            if clean_name is not None:
                device.name = clean_name
            if user is not None:
                device.user = user
            if host is not None:
                device.host = host
            if ip is not None:
                device.ip = ip
            if port is not None:
                device.port = port
            if password is not None:
                device.password = password

            self._persist()
            return device.copy()

    def delete_device(self, device_id: str) -> bool:
        """Remove a device, its tasks, and their audio attachments.

        Returns:
            True if the device existed.
        """
        with self._lock:
            position = self._device_pos.get(device_id)
            if position is None:
                return False

            device = self._devices.pop(position)
            self._reindex()
            saved = self._persist()
            self._release_if_saved(saved, (t.audio_file_path for t in device.tasks))

        logger.info("Device deleted: %s (%d task(s))", device.name, len(device.tasks))
        return True

    # ---- task operations ----

    def assign_task(
        self,
        device_ids: Iterable[str],
        name: str,
        description: str,
        time: str,
        audio: Optional[AttachmentRef] = None,
    ) -> List[str]:
        """Append one new task to every targeted device.

        All tasks share name, description, time and the same attachment
        file. Devices are visited in roster order; unknown ids are skipped.

        Raises:
            ValidationError: ``name`` or ``description`` is empty (no task
                is created anywhere).
            AttachmentNotOwned: ``audio`` is not one of the manager's recordings.
            AttachmentMissing: ``audio`` refers to a missing file.

        Returns:
            Ids of the created tasks, in roster order.
        """
        clean_name = _require("name", name)
        clean_description = _require("description", description)
        display_time = normalize_time(time)
        if audio is not None:
            self.attachments.check_attachable(audio)

        targets = set(device_ids)
        created: List[str] = []
        with self._lock:
            unknown = targets - set(self._device_pos)
            if unknown:
                logger.warning("assign_task: ignoring unknown device id(s) %s", sorted(unknown))

            for device in self._devices:
                if device.id not in targets:
                    continue
                task = Task(
                    id=self._fresh_id(),
                    name=clean_name,
                    number=0,
                    time=display_time,
                    description=clean_description,
                    audio_file_path=audio.filename if audio is not None else None,
                )
                numbering.append(device.tasks, task)
                device.task_count = len(device.tasks)
                self._task_owner[task.id] = device.id
                self._tasks[task.id] = task
                created.append(task.id)

            if created:
                self._persist()

        logger.info("Task %r assigned to %d device(s)", clean_name, len(created))
        return created

    def delete_task(self, device_id: str, task_id: str) -> bool:
        """Remove one task and renumber the tasks after it.

        Returns:
            True if the task existed on that device.
        """
        with self._lock:
            if self._task_owner.get(task_id) != device_id:
                return False
            located = self._locate_task(task_id)
            if located is None:
                return False
            device, position = located

            removed = numbering.remove_at(device.tasks, position)
            if removed is None:
                return False
            device.task_count = len(device.tasks)
            del self._task_owner[task_id]
            del self._tasks[task_id]

            saved = self._persist()
            self._release_if_saved(saved, [removed.audio_file_path])
            return True

    def delete_tasks(self, device_id: str, task_ids: Iterable[str]) -> int:
        """Remove several tasks of one device in a single pass.

        The remaining tasks keep their relative order and are renumbered
        from 1.

        Returns:
            Number of tasks removed.
        """
        with self._lock:
            device = self._device(device_id)
            if device is None:
                return 0

            removed = numbering.remove_ids(device.tasks, task_ids)
            if not removed:
                return 0
            device.task_count = len(device.tasks)
            for task in removed:
                self._task_owner.pop(task.id, None)
                self._tasks.pop(task.id, None)

            saved = self._persist()
            self._release_if_saved(saved, (t.audio_file_path for t in removed))
            return len(removed)

    def edit_task(
        self,
        task_id: str,
        name: str,
        description: str,
        time: str,
        audio: Optional[AttachmentRef] = None,
        remove_audio: bool = False,
    ) -> Optional[Task]:
        """Update a task found anywhere in the roster.

        A new ``audio`` supersedes the old attachment: the task is pointed
        at the new file and persisted first, then the old file is
        released (if no other task uses it). ``remove_audio`` detaches
        and releases without a replacement.

        Raises:
            ValidationError: ``name`` or ``description`` is empty.
            AttachmentNotOwned: ``audio`` is not one of the manager's recordings.
            AttachmentMissing: ``audio`` refers to a missing file.

        Returns:
            Copy of the updated task, or None if ``task_id`` is unknown.
        """
        clean_name = _require("name", name)
        clean_description = _require("description", description)
        display_time = normalize_time(time)
        if audio is not None:
            self.attachments.check_attachable(audio)

        with self._lock:
            located = self._locate_task(task_id)
            if located is None:
                return None
            device, position = located
            task = device.tasks[position]

            old_audio = task.audio_file_path
            task.name = clean_name
            task.description = clean_description
            task.time = display_time
            if audio is not None:
                task.audio_file_path = audio.filename
            elif remove_audio:
                task.audio_file_path = None

            saved = self._persist()
            if old_audio and old_audio != task.audio_file_path:
                self._release_if_saved(saved, [old_audio])
            return copy.copy(task)

    def rerecord_task(
        self,
        task_id: str,
        capture: CaptureBackend,
        confirmed: bool = False,
    ) -> Optional[RecordingHandle]:
        """Start a new recording that will replace a task's audio.

        The old file is deleted right away only when no other task uses
        it; a shared file stays for its siblings. Finish the recording
        and pass the new ref to edit_task() to attach it.

        Raises:
            ConfirmationRequired: The task has audio and ``confirmed`` is False.
            RecordingInProgress: Another recording is active.

        Returns:
            The recording handle, or None if ``task_id`` is unknown.
        """
        with self._lock:
            located = self._locate_task(task_id)
            if located is None:
                return None
            device, position = located
            current = device.tasks[position].audio_file_path
            if current and not confirmed:
                raise ConfirmationRequired(
                    "Re-recording replaces {}; confirm first".format(current)
                )
            shared = current is not None and any(
                t.audio_file_path == current
                for t in self._tasks.values()
                if t.id != task_id
            )

        existing = None
        if current and not shared and self.attachments.owns(current):
            existing = AttachmentRef(filename=current)
        return self.attachments.rerecord(existing, capture, confirmed=True)

    # ---- whole roster ----

    def clear_all(self) -> None:
        """Empty the roster and purge every tracked audio file."""
        with self._lock:
            self._devices = []
            self._reindex()
            self._persist()
            self.attachments.purge_all()
        logger.info("All roster data deleted")

    def confirm(self, pending: PendingConfirmation) -> bool:
        """Second phase of a destructive operation.

        Returns:
            True if the roster changed.
        """
        if pending.kind == DeleteKind.DEVICE:
            return self.delete_device(pending.device_id or "")
        if pending.kind == DeleteKind.TASKS:
            ids = list(pending.task_ids)
            if len(ids) == 1:
                return self.delete_task(pending.device_id or "", ids[0])
            return self.delete_tasks(pending.device_id or "", ids) > 0
        with self._lock:
            had_data = bool(self._devices)
            self.clear_all()
            return had_data

    def prune_dangling_attachments(self) -> List[str]:
        """Clear audio references whose file is gone.

        Returns:
            Ids of the tasks that were detached.
        """
        with self._lock:
            cleared = self._prune_dangling()
            if cleared:
                self._persist()
            return cleared

    def invariant_violations(self) -> List[str]:
        """Describe every broken roster invariant (empty when consistent)."""
        problems: List[str] = []
        with self._lock:
            seen: Set[str] = set()
            for device in self._devices:
                if device.id in seen:
                    problems.append("duplicate id {}".format(device.id))
                seen.add(device.id)
                if not numbering.is_contiguous(device.tasks):
                    problems.append("device {} tasks not numbered 1..N".format(device.id))
                if device.task_count != len(device.tasks):
                    problems.append(
                        "device {} task_count {} != {}".format(
                            device.id, device.task_count, len(device.tasks)
                        )
                    )
                for task in device.tasks:
                    if task.id in seen:
                        problems.append("duplicate id {}".format(task.id))
                    seen.add(task.id)
        return problems

    # ---- internals ----

    def _device(self, device_id: str) -> Optional[Device]:
        position = self._device_pos.get(device_id)
        return self._devices[position] if position is not None else None

    def _locate_task(self, task_id: str) -> Optional[Tuple[Device, int]]:
        task = self._tasks.get(task_id)
        device = self._device(self._task_owner.get(task_id, ""))
        if task is None or device is None:
            return None
        # number - 1 is the position while the numbering invariant holds
        position = task.number - 1
        if 0 <= position < len(device.tasks) and device.tasks[position] is task:
            return device, position
        for index, candidate in enumerate(device.tasks):
            if candidate is task:
                return device, index
        return None

    def _reindex(self) -> None:
        self._device_pos = {d.id: i for i, d in enumerate(self._devices)}
        self._task_owner = {t.id: d.id for d in self._devices for t in d.tasks}
        self._tasks = {t.id: t for d in self._devices for t in d.tasks}

    def _fresh_id(self) -> str:
        while True:
            candidate = new_id()
            if candidate not in self._device_pos and candidate not in self._task_owner:
                return candidate

    def _referenced_files(self) -> Set[str]:
        return {t.audio_file_path for d in self._devices for t in d.tasks if t.audio_file_path}

    def _release_unreferenced(self, filenames: Iterable[Optional[str]]) -> None:
        still_used = self._referenced_files()
        for filename in {f for f in filenames if f}:
            if filename in still_used:
                continue
            if not self.attachments.owns(filename):
                logger.warning("Not releasing %s: not a recording", filename)
                continue
            self.attachments.release(AttachmentRef(filename=filename))

    def _prune_dangling(self) -> List[str]:
        cleared: List[str] = []
        for device in self._devices:
            for task in device.tasks:
                if task.audio_file_path and not self.attachments.exists(
                    AttachmentRef(filename=task.audio_file_path)
                ):
                    logger.warning(
                        "Task %s references missing audio %s; detaching",
                        task.id,
                        task.audio_file_path,
                    )
                    task.audio_file_path = None
                    cleared.append(task.id)
        return cleared

    def _persist(self) -> bool:
        """Save the roster; False when the write did not land."""
        if self._gateway is None:
            return True
        self._prune_dangling()
        return self._gateway.save(self._devices, revision=self._gateway.revision + 1)

    def _release_if_saved(self, saved: bool, filenames: Iterable[Optional[str]]) -> None:
        # the stored blob may still reference these files until a save lands
        if not saved:
            kept = sorted({f for f in filenames if f})
            if kept:
                logger.warning(
                    "Roster not saved; keeping audio %s until purge", ", ".join(kept)
                )
            return
        self._release_unreferenced(filenames)
