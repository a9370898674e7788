"""Device and Task dataclasses with their JSON codec.

WHY: The roster is a list of devices, each owning an ordered list of
tasks. Both entities are referenced by id from the CLI, the HTTP API and
the persistence blob, so identity must be explicit and stable while every
other field stays editable.

HOW: Two dataclasses with ``eq=False`` and hand-written ``__eq__`` /
``__hash__`` on ``id`` only. ``to_dict`` / ``from_dict`` convert to and
from the persisted JSON shape.

RULES:
- Equality and hashing use ``id`` only, for both entities
- ``Task.number`` is the 1-based position inside the owning device
- ``Device.task_count`` mirrors ``len(tasks)`` after every store operation
- ``audio_file_path`` holds an attachment filename or None
- ``from_dict`` accepts the legacy keys piUser / piHost / piNumber
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def new_id() -> str:
    """Return a fresh UUID4 string identity."""
    return str(uuid.uuid4())


@dataclass(eq=False)
class Task:
    """One numbered, timed task assigned to a device.

    RULES:
    - id: immutable, unique within the whole roster
    - number: position + 1 inside the owning device's task list
    - time: display string (e.g. "9:00 AM"), never parsed for ordering
    - audio_file_path: attachment filename, or None when no voice note
    """

    id: str
    name: str
    number: int
    time: str
    description: str
    audio_file_path: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Task):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("task", self.id))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "number": self.number,
            "time": self.time,
            "description": self.description,
            "audioFilePath": self.audio_file_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Task:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            number=int(data.get("number", 0)),
            time=str(data.get("time", "")),
            description=str(data.get("description", "")),
            audio_file_path=data.get("audioFilePath") or None,
        )


@dataclass(eq=False)
class Device:
    """A remote target with connection metadata and an owned task list.

    WHY: Formerly called a "student"; each one is a small device that
    receives its task list. Connection fields are opaque strings: the
    roster never validates or interprets them.

    RULES:
    - id: immutable, globally unique
    - user/host/ip/port/password: opaque, may be empty
    - tasks: ordered; order defines numbering
    - task_count: cached len(tasks)
    """

    id: str
    name: str
    user: str = ""
    host: str = ""
    ip: str = ""
    port: str = ""
    password: str = ""
    tasks: List[Task] = field(default_factory=list)
    task_count: int = 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("device", self.id))

    def copy(self) -> Device:
        """Deep copy, so callers can diff snapshots without aliasing."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user": self.user,
            "host": self.host,
            "ip": self.ip,
            "port": self.port,
            "password": self.password,
            "tasks": [t.to_dict() for t in self.tasks],
            "taskCount": self.task_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Device:
        tasks = [Task.from_dict(t) for t in data.get("tasks") or []]
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            user=str(_first_key(data, "user", "piUser")),
            host=str(_first_key(data, "host", "piHost")),
            ip=str(data.get("ip", "")),
            port=str(_first_key(data, "port", "piNumber")),
            password=str(data.get("password", "")),
            tasks=tasks,
            task_count=int(data.get("taskCount", len(tasks))),
        )


def _first_key(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return ""
