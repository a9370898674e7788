"""FastAPI operator API over a RosterStore.

WHY: Operators (and scripts) need to manage the roster without the CLI:
add and edit devices, assign voice-annotated tasks, upload recordings,
and export the task lists for the devices. FastAPI gives request
validation and OpenAPI docs at /docs for free.

HOW: create_app(roster, exporter) builds an app bound to explicit
handles; nothing is process-wide. Handlers are plain ``def`` functions,
so FastAPI runs them in its thread pool; RosterStore serializes them
with its own lock. Core errors are mapped to HTTP status codes here.

RULES:
- ValidationError -> 422, unknown id -> 404, AttachmentMissing -> 404
- AttachmentNotOwned (audio_filename that is not a recording) -> 422
- RecordingInProgress, RecordingNotActive and ConfirmationRequired -> 409
- ExportWriteError -> 500, TransportNotConfigured -> 501
- Error responses use the shared ErrorResponse schema
- DELETE /data needs confirm=true (second phase of a two-phase delete)
"""

from __future__ import annotations

import logging
from typing import Annotated, List, Optional

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import PlainTextResponse, Response

from wavelink_roster import __version__
from wavelink_roster.attachments.manager import (
    AttachmentMissing,
    AttachmentNotOwned,
    AttachmentRef,
    RecordingFailed,
    RecordingInProgress,
    RecordingNotActive,
)
from wavelink_roster.config import API_HOST, API_PORT, LOG_LEVEL
from wavelink_roster.core.errors import ValidationError
from wavelink_roster.core.roster import RosterStore, request_clear_all
from wavelink_roster.export.exporter import (
    ExportState,
    ExportStateError,
    Exporter,
    ExportWriteError,
)
from wavelink_roster.server.models import (
    ClearResponse,
    DeviceCreate,
    DeviceOut,
    DeviceUpdate,
    ErrorResponse,
    ExportFormat,
    ExportRequest,
    ExportResponse,
    HealthResponse,
    RecordingResponse,
    TaskAssign,
    TaskAssignResponse,
    TaskDeleteRequest,
    TaskDeleteResponse,
    TaskOut,
    TaskUpdate,
    TransferOutcomeOut,
)
from wavelink_roster.transport.base import TransportNotConfigured

logger = logging.getLogger(__name__)

_NOT_FOUND = {"model": ErrorResponse, "description": "Unknown id"}
_INVALID = {"model": ErrorResponse, "description": "Empty required field"}


def _audio_ref(filename: Optional[str]) -> Optional[AttachmentRef]:
    return AttachmentRef(filename=filename) if filename else None


def create_app(roster: RosterStore, exporter: Exporter) -> FastAPI:
    """Build the operator API bound to ``roster`` and ``exporter``."""
    app = FastAPI(
        title="Wavelink Roster API",
        description=(
            "Manage a roster of devices and their voice-annotated tasks, "
            "upload recordings, and export task lists for transfer to devices."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # -----------------------------------------------------------------------
    # Endpoints: Devices
    # -----------------------------------------------------------------------

    @app.get(
        "/devices",
        response_model=List[DeviceOut],
        tags=["devices"],
        summary="List devices",
        description="All devices in roster order, each with its tasks in sequence order.",
    )
    def list_devices() -> List[DeviceOut]:
        return [DeviceOut.from_device(d) for d in roster.list_devices()]

    @app.post(
        "/devices",
        response_model=DeviceOut,
        status_code=201,
        tags=["devices"],
        summary="Add a device",
        responses={422: _INVALID},
    )
    def add_device(body: DeviceCreate) -> DeviceOut:
        try:
            device_id = roster.add_device(
                name=body.name,
                user=body.user,
                host=body.host,
                ip=body.ip,
                port=body.port,
                password=body.password,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        device = roster.get_device(device_id)
        assert device is not None
        return DeviceOut.from_device(device)

    @app.get(
        "/devices/{device_id}",
        response_model=DeviceOut,
        tags=["devices"],
        summary="Get one device",
        responses={404: _NOT_FOUND},
    )
    def get_device(device_id: str) -> DeviceOut:
        device = roster.get_device(device_id)
        if device is None:
            raise HTTPException(status_code=404, detail="Device not found: {}".format(device_id))
        return DeviceOut.from_device(device)

    @app.put(
        "/devices/{device_id}",
        response_model=DeviceOut,
        tags=["devices"],
        summary="Edit a device",
        description="Replace the given fields; omitted fields and tasks are untouched.",
        responses={404: _NOT_FOUND, 422: _INVALID},
    )
    def edit_device(device_id: str, body: DeviceUpdate) -> DeviceOut:
        try:
            device = roster.edit_device(
                device_id,
                name=body.name,
                user=body.user,
                host=body.host,
                ip=body.ip,
                port=body.port,
                password=body.password,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        if device is None:
            raise HTTPException(status_code=404, detail="Device not found: {}".format(device_id))
        return DeviceOut.from_device(device)

    @app.delete(
        "/devices/{device_id}",
        status_code=204,
        tags=["devices"],
        summary="Delete a device",
        description="Deletes the device, all of its tasks, and their recordings.",
        responses={404: _NOT_FOUND},
    )
    def delete_device(device_id: str) -> Response:
        if not roster.delete_device(device_id):
            raise HTTPException(status_code=404, detail="Device not found: {}".format(device_id))
        return Response(status_code=204)

    # -----------------------------------------------------------------------
    # Endpoints: Tasks
    # -----------------------------------------------------------------------

    @app.post(
        "/tasks",
        response_model=TaskAssignResponse,
        status_code=201,
        tags=["tasks"],
        summary="Assign a task to devices",
        description=(
            "Appends one task to every listed device. Either every known "
            "device gets the task or, when validation fails, none does."
        ),
        responses={404: _NOT_FOUND, 422: _INVALID},
    )
    def assign_task(body: TaskAssign) -> TaskAssignResponse:
        try:
            task_ids = roster.assign_task(
                body.device_ids,
                name=body.name,
                description=body.description,
                time=body.time,
                audio=_audio_ref(body.audio_filename),
            )
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        except AttachmentMissing as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except AttachmentNotOwned as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        if not task_ids and body.device_ids:
            raise HTTPException(status_code=404, detail="None of the device ids exist")
        return TaskAssignResponse(task_ids=task_ids)

    @app.get(
        "/tasks/{task_id}",
        response_model=TaskOut,
        tags=["tasks"],
        summary="Get one task",
        responses={404: _NOT_FOUND},
    )
    def get_task(task_id: str) -> TaskOut:
        task = roster.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found: {}".format(task_id))
        return TaskOut.from_task(task)

    @app.put(
        "/tasks/{task_id}",
        response_model=TaskOut,
        tags=["tasks"],
        summary="Edit a task",
        description=(
            "Updates name, description and time. A new audio_filename "
            "replaces the previous recording, which is then deleted."
        ),
        responses={404: _NOT_FOUND, 422: _INVALID},
    )
    def edit_task(task_id: str, body: TaskUpdate) -> TaskOut:
        try:
            task = roster.edit_task(
                task_id,
                name=body.name,
                description=body.description,
                time=body.time,
                audio=_audio_ref(body.audio_filename),
                remove_audio=body.remove_audio,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        except AttachmentMissing as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except AttachmentNotOwned as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found: {}".format(task_id))
        return TaskOut.from_task(task)

    @app.delete(
        "/devices/{device_id}/tasks/{task_id}",
        status_code=204,
        tags=["tasks"],
        summary="Delete one task",
        description="Removes the task and renumbers the tasks after it.",
        responses={404: _NOT_FOUND},
    )
    def delete_task(device_id: str, task_id: str) -> Response:
        if not roster.delete_task(device_id, task_id):
            raise HTTPException(
                status_code=404,
                detail="Task {} not found on device {}".format(task_id, device_id),
            )
        return Response(status_code=204)

    @app.post(
        "/devices/{device_id}/tasks/delete",
        response_model=TaskDeleteResponse,
        tags=["tasks"],
        summary="Delete several tasks",
        description="Removes the listed tasks; survivors are renumbered from 1.",
        responses={404: _NOT_FOUND},
    )
    def delete_tasks(device_id: str, body: TaskDeleteRequest) -> TaskDeleteResponse:
        if roster.get_device(device_id) is None:
            raise HTTPException(status_code=404, detail="Device not found: {}".format(device_id))
        return TaskDeleteResponse(deleted=roster.delete_tasks(device_id, body.task_ids))

    # -----------------------------------------------------------------------
    # Endpoints: Recordings
    # -----------------------------------------------------------------------

    @app.post(
        "/recordings",
        response_model=RecordingResponse,
        status_code=201,
        tags=["recordings"],
        summary="Upload a recording",
        description=(
            "Stores the uploaded audio under a fresh recording name. Reference "
            "the returned filename from POST /tasks or PUT /tasks/{id}."
        ),
        responses={
            409: {
                "model": ErrorResponse,
                "description": "Another recording is in progress, or it was purged",
            },
            422: {"model": ErrorResponse, "description": "Empty upload"},
        },
    )
    def upload_recording(
        file: Annotated[UploadFile, File(description="Recorded audio file")],
    ) -> RecordingResponse:
        data = file.file.read()
        try:
            ref = roster.attachments.import_audio(data)
        except (RecordingInProgress, RecordingNotActive) as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except RecordingFailed as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        logger.info("Recording uploaded: %s (%d bytes)", ref.filename, len(data))
        return RecordingResponse(filename=ref.filename)

    # -----------------------------------------------------------------------
    # Endpoints: Export
    # -----------------------------------------------------------------------

    @app.post(
        "/export",
        response_model=ExportResponse,
        tags=["export"],
        summary="Render the export",
        description=(
            "Renders the roster, writes the export artifact, and optionally "
            "confirms the transfer to devices. Each call starts a new export flow."
        ),
        responses={
            409: {"model": ErrorResponse, "description": "Export flow in an invalid state"},
            500: {"model": ErrorResponse, "description": "Export artifact could not be written"},
            501: {"model": ErrorResponse, "description": "No device transport configured"},
        },
    )
    def export(body: Optional[ExportRequest] = None) -> ExportResponse:
        body = body or ExportRequest()
        exporter.reset()
        try:
            result = exporter.render(body.format.value)
        except ExportWriteError as exc:
            raise HTTPException(status_code=500, detail=str(exc))

        transfer = None
        if body.send:
            try:
                exporter.mark_ready()
                outcome = exporter.confirm_transfer(targets=body.targets)
            except TransportNotConfigured as exc:
                raise HTTPException(status_code=501, detail=str(exc))
            except ExportStateError as exc:
                raise HTTPException(status_code=409, detail=str(exc))
            transfer = [TransferOutcomeOut.from_outcome(o) for o in outcome.outcomes]

        return ExportResponse(
            format=result.format_key,
            filename=result.filename,
            state=exporter.state.value,
            device_count=result.device_count,
            text=result.text,
            unsafe_fields=result.unsafe_fields,
            transfer=transfer,
        )

    @app.get(
        "/export",
        response_class=PlainTextResponse,
        tags=["export"],
        summary="Download the last export",
        responses={404: {"model": ErrorResponse, "description": "Nothing exported yet"}},
    )
    def download_export(
        format: Annotated[
            ExportFormat, Query(description="Export format of the artifact.")
        ] = ExportFormat.device_lines,
    ) -> PlainTextResponse:
        text = exporter.read_artifact(format.value)
        if text is None:
            raise HTTPException(status_code=404, detail="No export has been written yet")
        return PlainTextResponse(content=text)

    # -----------------------------------------------------------------------
    # Endpoints: Data and health
    # -----------------------------------------------------------------------

    @app.delete(
        "/data",
        response_model=ClearResponse,
        tags=["data"],
        summary="Delete all data",
        description="Deletes every device, task and recording. Requires confirm=true.",
        responses={409: {"model": ErrorResponse, "description": "Not confirmed"}},
    )
    def clear_all(
        confirm: Annotated[bool, Query(description="Must be true to delete.")] = False,
    ) -> ClearResponse:
        pending = request_clear_all()
        if not confirm:
            raise HTTPException(status_code=409, detail=pending.summary + " Pass confirm=true.")
        cleared = roster.confirm(pending)
        if exporter.state != ExportState.IDLE:
            exporter.reset()
        return ClearResponse(cleared=cleared)

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
    )
    def health_check() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__, devices=len(roster))

    return app


def run_api(data_dir=None, host: str = API_HOST, port: int = API_PORT) -> None:
    """Entry point for the wavelink-api console script."""
    import uvicorn

    from wavelink_roster.runtime import open_runtime

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    runtime = open_runtime(data_dir)
    logger.info("Serving roster from %s on %s:%d", runtime.paths.data_dir, host, port)
    uvicorn.run(create_app(runtime.roster, runtime.exporter), host=host, port=port)
