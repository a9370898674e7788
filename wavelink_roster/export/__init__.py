"""Export flow: render the roster and hand the text to a transport."""

from wavelink_roster.export.exporter import (
    ExportResult,
    Exporter,
    ExportState,
    ExportStateError,
    ExportWriteError,
)

__all__ = ["ExportResult", "ExportState", "ExportStateError", "ExportWriteError", "Exporter"]
