"""Transport boundary: hands the export text to the devices.

WHY: The original app stopped at "ready to transfer": the protocol that
would carry the export to physical devices was never decided. The core's
only obligation is to produce the text and pass it across this boundary,
so the boundary is an interface with per-target results and a default
that refuses loudly instead of pretending to deliver.

HOW: Transport.send(text, targets) returns a TransferResult with one
TargetOutcome per device. UnconfiguredTransport is the default and raises
TransportNotConfigured. A concrete protocol lives in transport/http.py.

RULES:
- send() never mutates the roster or the devices it is given
- One TargetOutcome per target, in target order
- A failed target does not stop delivery to the remaining targets
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence

from wavelink_roster.core.models import Device


class TransportError(Exception):
    """Base class for transport boundary errors."""


class TransportNotConfigured(TransportError):
    """Raised when an export is confirmed but no transport is configured."""


@dataclass
class TargetOutcome:
    """Delivery outcome for one device."""

    device_id: str
    device_name: str
    delivered: bool
    detail: str = ""


@dataclass
class TransferResult:
    """Per-target outcomes of one send() call."""

    outcomes: List[TargetOutcome] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        """True when every target received the payload."""
        return all(o.delivered for o in self.outcomes)

    @property
    def failed(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if not o.delivered]


class Transport(ABC):
    """Carries export text to a list of devices."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short protocol name for logs and status output."""

    @abstractmethod
    def send(self, text: str, targets: Sequence[Device]) -> TransferResult:
        """Deliver ``text`` to every device in ``targets``."""


class UnconfiguredTransport(Transport):
    """Default boundary: no protocol has been chosen."""

    @property
    def name(self) -> str:
        return "unconfigured"

    def send(self, text: str, targets: Sequence[Device]) -> TransferResult:
        raise TransportNotConfigured(
            "No device transport is configured; the export was written but not sent"
        )
