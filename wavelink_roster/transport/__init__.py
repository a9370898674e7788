"""Transport boundary between the export and the physical devices."""

from wavelink_roster.transport.base import (
    TargetOutcome,
    TransferResult,
    Transport,
    TransportError,
    TransportNotConfigured,
    UnconfiguredTransport,
)
from wavelink_roster.transport.http import HttpTransport

__all__ = [
    "HttpTransport",
    "TargetOutcome",
    "TransferResult",
    "Transport",
    "TransportError",
    "TransportNotConfigured",
    "UnconfiguredTransport",
]
