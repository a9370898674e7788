"""Export flow: render the roster, write the artifact, hand it off.

WHY: Exporting is a small workflow, not a single call: the operator sees
the rendered text before anything is sent, the artifact on disk must
never be half-written, and confirming the transfer ends the flow until
it is explicitly restarted.

HOW: Exporter drives a state machine:

    IDLE -> RENDERING -> RENDERED -> READY_TO_TRANSFER -> TRANSFER_CONFIRMED
                                  \\-----------------------/

render() prunes dangling audio references, renders the roster with the
selected formatter, logs unsafe fields, and writes the artifact into the
attachment namespace through AttachmentStore.write_text (temp file +
os.replace). confirm_transfer() passes the rendered text to a Transport.

RULES:
- A write failure raises ExportWriteError, returns to IDLE, and leaves
  the previous artifact untouched
- TRANSFER_CONFIRMED is terminal until reset()
- Illegal transitions raise ExportStateError and change nothing
- The rendered text is exactly what the formatter produced
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from wavelink_roster.attachments.store import AttachmentStore
from wavelink_roster.core.roster import RosterStore
from wavelink_roster.formatters import DEFAULT_FORMAT, FORMATTERS
from wavelink_roster.formatters.device_lines import find_unsafe_fields
from wavelink_roster.transport.base import TransferResult, Transport, UnconfiguredTransport

logger = logging.getLogger(__name__)


class ExportState(str, enum.Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    RENDERED = "rendered"
    READY_TO_TRANSFER = "ready_to_transfer"
    TRANSFER_CONFIRMED = "transfer_confirmed"


class ExportStateError(RuntimeError):
    """Raised when an export step is not allowed in the current state."""


class ExportWriteError(OSError):
    """Raised when the export artifact could not be written."""


@dataclass
class ExportResult:
    """What one render() produced.

    RULES:
    - unsafe_fields: fields that break the unquoted line format (may be
      empty); reported, never fixed
    """

    format_key: str
    filename: str
    path: Path
    text: str
    media_type: str
    device_count: int
    unsafe_fields: List[str] = field(default_factory=list)


_RENDERABLE = (ExportState.IDLE, ExportState.RENDERED, ExportState.READY_TO_TRANSFER)
_TRANSFERABLE = (ExportState.RENDERED, ExportState.READY_TO_TRANSFER)


class Exporter:
    """Owns the export flow for one roster.

    RULES:
    - transport defaults to UnconfiguredTransport
    - All state changes happen under self._lock
    """

    def __init__(
        self,
        roster: RosterStore,
        store: AttachmentStore,
        transport: Optional[Transport] = None,
        default_format: str = DEFAULT_FORMAT,
    ) -> None:
        if default_format not in FORMATTERS:
            raise ValueError("Unknown export format: {}".format(default_format))
        self._roster = roster
        self._store = store
        self.transport = transport or UnconfiguredTransport()
        self._default_format = default_format
        self._lock = threading.Lock()
        self._state = ExportState.IDLE
        self._result: Optional[ExportResult] = None

    @property
    def state(self) -> ExportState:
        with self._lock:
            return self._state

    @property
    def last_result(self) -> Optional[ExportResult]:
        with self._lock:
            return self._result

    # ---- render ----

    def render(self, format_key: Optional[str] = None) -> ExportResult:
        """Render the roster and write the export artifact.

        Raises:
            ValueError: Unknown ``format_key``.
            ExportStateError: The flow is already TRANSFER_CONFIRMED.
            ExportWriteError: The artifact could not be written.
        """
        key = format_key or self._default_format
        formatter_cls = FORMATTERS.get(key)
        if formatter_cls is None:
            raise ValueError(
                "Unknown export format: {}. Available: {}".format(key, ", ".join(FORMATTERS))
            )

        with self._lock:
            if self._state not in _RENDERABLE:
                raise ExportStateError("Cannot render while {}".format(self._state.value))
            self._state = ExportState.RENDERING
            self._result = None

            self._roster.prune_dangling_attachments()
            devices = self._roster.list_devices()
            output = formatter_cls().format(devices)

            unsafe = find_unsafe_fields(devices)
            for problem in unsafe:
                logger.warning("Export field breaks the line format: %s", problem)

            try:
                path = self._store.write_text(output.filename, output.content)
            except OSError as exc:
                self._state = ExportState.IDLE
                raise ExportWriteError(
                    "Could not write export {}: {}".format(output.filename, exc)
                ) from exc

            self._result = ExportResult(
                format_key=key,
                filename=output.filename,
                path=path,
                text=output.content,
                media_type=output.media_type,
                device_count=len(devices),
                unsafe_fields=unsafe,
            )
            self._state = ExportState.RENDERED

        logger.info("Export written: %s (%d device(s))", path, len(devices))
        return self._result

    def read_artifact(self, format_key: Optional[str] = None) -> Optional[str]:
        """Return the last written artifact for ``format_key``, if any."""
        key = format_key or self._default_format
        formatter_cls = FORMATTERS.get(key)
        if formatter_cls is None:
            raise ValueError("Unknown export format: {}".format(key))
        filename = formatter_cls().format([]).filename
        if not self._store.exists(filename):
            return None
        return self._store.path_for(filename).read_text(encoding="utf-8")

    # ---- transfer ----

    def mark_ready(self) -> None:
        """Operator reviewed the rendered text: RENDERED -> READY_TO_TRANSFER."""
        with self._lock:
            if self._state not in _TRANSFERABLE:
                raise ExportStateError("Nothing rendered to transfer ({})".format(self._state.value))
            self._state = ExportState.READY_TO_TRANSFER

    def confirm_transfer(
        self,
        targets: Optional[Iterable[str]] = None,
        transport: Optional[Transport] = None,
    ) -> TransferResult:
        """Send the rendered text and end the flow.

        Args:
            targets: Device ids to send to; defaults to every device.
            transport: Overrides the exporter's transport for this call.

        Raises:
            ExportStateError: Nothing rendered, or already confirmed.
            TransportNotConfigured: No transport; state is unchanged.
        """
        channel = transport or self.transport
        with self._lock:
            if self._state not in _TRANSFERABLE or self._result is None:
                raise ExportStateError("Nothing rendered to transfer ({})".format(self._state.value))
            text = self._result.text
            devices = self._roster.list_devices()
            if targets is not None:
                wanted = set(targets)
                devices = [d for d in devices if d.id in wanted]

            result = channel.send(text, devices)
            self._state = ExportState.TRANSFER_CONFIRMED

        logger.info(
            "Transfer via %s: %d/%d device(s) delivered",
            channel.name,
            len(result.outcomes) - len(result.failed),
            len(result.outcomes),
        )
        return result

    def reset(self) -> None:
        """Return to IDLE, keeping the artifact on disk."""
        with self._lock:
            self._state = ExportState.IDLE
            self._result = None
