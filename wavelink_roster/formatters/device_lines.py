"""Legacy device-line export format: the format devices consume today.

WHY: Each device receives its task list as one comma-joined line. The
layout is fixed by the devices already in the field, so it is emitted
byte-for-byte, including its known weakness: nothing is quoted or
escaped.

HOW: One line per device in roster order:
  name,user,host,ip,password,port
followed, for every task in sequence order, by
  ,number,name,audioFilePath-or-empty,time
Every line, including the last, ends with "\\n".

RULES:
- Device order = roster order; task order = sequence order
- A device with no tasks emits exactly its six base fields
- A missing audio attachment is an empty field
- No quoting or escaping. Values containing "," "\\n" or "\\r" corrupt
  the line structure; callers must keep them out of device and task
  fields. find_unsafe_fields() reports offenders, it does not fix them
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from wavelink_roster.config import EXPORT_FILENAME
from wavelink_roster.core.models import Device, Task
from wavelink_roster.formatters.base import BaseFormatter, FormatterOutput

_UNSAFE_CHARS = (",", "\n", "\r")


def device_fields(device: Device) -> List[str]:
    return [device.name, device.user, device.host, device.ip, device.password, device.port]


def task_fields(task: Task) -> List[str]:
    return [str(task.number), task.name, task.audio_file_path or "", task.time]


def device_row(device: Device) -> List[str]:
    """All fields of one device line, tasks appended in sequence order."""
    row = device_fields(device)
    for task in device.tasks:
        row.extend(task_fields(task))
    return row


def serialize(devices: Iterable[Device]) -> str:
    """Render the roster in the legacy device-line format."""
    return "".join(",".join(device_row(d)) + "\n" for d in devices)


def find_unsafe_fields(devices: Iterable[Device]) -> List[str]:
    """Describe every exported field that would break the line format.

    Returns:
        Messages like ``"device 'A,B' field name"``; empty when all safe.
    """
    problems: List[str] = []
    labels = ("name", "user", "host", "ip", "password", "port")
    for device in devices:
        for label, value in zip(labels, device_fields(device)):
            if any(c in value for c in _UNSAFE_CHARS):
                problems.append("device {!r} field {}".format(device.name, label))
        for task in device.tasks:
            for label, value in (("name", task.name), ("time", task.time),
                                 ("audioFilePath", task.audio_file_path or "")):
                if any(c in value for c in _UNSAFE_CHARS):
                    problems.append(
                        "device {!r} task {} field {}".format(device.name, task.number, label)
                    )
    return problems


class DeviceLinesFormatter(BaseFormatter):
    """Formatter for the legacy unescaped device-line export."""

    @property
    def name(self) -> str:
        return "Device lines"

    def format(self, devices: Sequence[Device]) -> FormatterOutput:
        return FormatterOutput(
            filename=EXPORT_FILENAME,
            content=serialize(devices),
            media_type="text/plain",
        )
