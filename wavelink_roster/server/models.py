"""Pydantic request/response models for the operator HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and the OpenAPI docs at /docs.

HOW: One model per request body and per response shape. Conversion from
core Device/Task objects lives in the ``from_*`` classmethods so the
endpoints stay thin.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- ExportFormat values match keys in wavelink_roster.formatters.FORMATTERS
- Empty required strings are NOT rejected here; RosterStore raises
  ValidationError and the endpoint maps it to 422
- Python 3.9+ compatible (Optional from typing, no PEP 604 unions)
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from wavelink_roster.core.models import Device, Task
from wavelink_roster.transport.base import TargetOutcome


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ExportFormat(str, Enum):
    """Available export format identifiers.

    RULES:
    - device_lines is the format devices understand
    - quoted_lines breaks compatibility with current devices
    """

    device_lines = "device_lines"
    quoted_lines = "quoted_lines"


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class DeviceCreate(BaseModel):
    name: str = Field(description="Display name of the device (required, non-empty).")
    user: str = Field(default="", description="Login user on the device.")
    host: str = Field(default="", description="Host name of the device.")
    ip: str = Field(default="", description="IP address of the device.")
    port: str = Field(default="", description="Port or device number (opaque).")
    password: str = Field(default="", description="Login password (stored as given).")


class DeviceUpdate(BaseModel):
    """Partial device update; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, description="New display name.")
    user: Optional[str] = Field(default=None, description="New login user.")
    host: Optional[str] = Field(default=None, description="New host name.")
    ip: Optional[str] = Field(default=None, description="New IP address.")
    port: Optional[str] = Field(default=None, description="New port or device number.")
    password: Optional[str] = Field(default=None, description="New password.")


class TaskOut(BaseModel):
    id: str = Field(description="Task identifier (UUID).")
    name: str = Field(description="Task name.")
    number: int = Field(description="1-based position in the device's task list.")
    time: str = Field(description="Time of day, display format (e.g. '9:00 AM').")
    description: str = Field(description="Task description.")
    audio_file_path: Optional[str] = Field(
        default=None, description="Attachment filename of the voice note, if any."
    )

    @classmethod
    def from_task(cls, task: Task) -> TaskOut:
        return cls(
            id=task.id,
            name=task.name,
            number=task.number,
            time=task.time,
            description=task.description,
            audio_file_path=task.audio_file_path,
        )


class DeviceOut(BaseModel):
    id: str = Field(description="Device identifier (UUID).")
    name: str = Field(description="Display name.")
    user: str = Field(description="Login user.")
    host: str = Field(description="Host name.")
    ip: str = Field(description="IP address.")
    port: str = Field(description="Port or device number.")
    password: str = Field(description="Login password.")
    task_count: int = Field(description="Number of tasks (always equals len(tasks)).")
    tasks: List[TaskOut] = Field(description="Tasks in sequence order.")

    @classmethod
    def from_device(cls, device: Device) -> DeviceOut:
        return cls(
            id=device.id,
            name=device.name,
            user=device.user,
            host=device.host,
            ip=device.ip,
            port=device.port,
            password=device.password,
            task_count=device.task_count,
            tasks=[TaskOut.from_task(t) for t in device.tasks],
        )


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskAssign(BaseModel):
    """Assign one new task to several devices at once."""

    device_ids: List[str] = Field(description="Target device ids.")
    name: str = Field(description="Task name (required, non-empty).")
    description: str = Field(description="Task description (required, non-empty).")
    time: str = Field(default="", description="Time of day, e.g. '9:00 AM' or '21:30'.")
    audio_filename: Optional[str] = Field(
        default=None,
        description="Filename returned by POST /recordings; shared by every created task.",
    )


class TaskAssignResponse(BaseModel):
    task_ids: List[str] = Field(description="Ids of the created tasks, in roster order.")


class TaskUpdate(BaseModel):
    name: str = Field(description="Task name (required, non-empty).")
    description: str = Field(description="Task description (required, non-empty).")
    time: str = Field(default="", description="Time of day.")
    audio_filename: Optional[str] = Field(
        default=None, description="Replace the voice note with this uploaded recording."
    )
    remove_audio: bool = Field(default=False, description="Detach and delete the voice note.")


class TaskDeleteRequest(BaseModel):
    task_ids: List[str] = Field(description="Ids of the tasks to delete from this device.")


class TaskDeleteResponse(BaseModel):
    deleted: int = Field(description="Number of tasks removed.")


# ---------------------------------------------------------------------------
# Recordings
# ---------------------------------------------------------------------------


class RecordingResponse(BaseModel):
    filename: str = Field(description="Attachment filename to reference from a task.")


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class ExportRequest(BaseModel):
    format: ExportFormat = Field(
        default=ExportFormat.device_lines, description="Export format to render."
    )
    send: bool = Field(
        default=False, description="Confirm the transfer to devices after rendering."
    )
    targets: Optional[List[str]] = Field(
        default=None, description="Device ids to send to; defaults to all devices."
    )


class TransferOutcomeOut(BaseModel):
    device_id: str = Field(description="Target device id.")
    device_name: str = Field(description="Target device name.")
    delivered: bool = Field(description="Whether the device accepted the export.")
    detail: str = Field(default="", description="Status or error detail.")

    @classmethod
    def from_outcome(cls, outcome: TargetOutcome) -> TransferOutcomeOut:
        return cls(
            device_id=outcome.device_id,
            device_name=outcome.device_name,
            delivered=outcome.delivered,
            detail=outcome.detail,
        )


class ExportResponse(BaseModel):
    format: str = Field(description="Format key used.")
    filename: str = Field(description="Artifact filename in the attachment namespace.")
    state: str = Field(description="Export flow state after this request.")
    device_count: int = Field(description="Number of devices rendered.")
    text: str = Field(description="The rendered export text.")
    unsafe_fields: List[str] = Field(
        default_factory=list,
        description="Fields containing ',', '\\n' or '\\r' that break the line format.",
    )
    transfer: Optional[List[TransferOutcomeOut]] = Field(
        default=None, description="Per-device outcomes, only when send was requested."
    )


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class ClearResponse(BaseModel):
    cleared: bool = Field(description="True if there was data to delete.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    devices: int = Field(description="Number of devices in the roster.")
