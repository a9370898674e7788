"""Quoted device-line export: opt-in, NOT compatible with current devices.

WHY: The legacy format cannot carry commas or newlines inside names or
times. This variant keeps the same field order but applies CSV quoting so
such values survive a round trip. Devices in the field do not parse
quotes, so selecting it is a deliberate wire-format break.

HOW: csv.writer with QUOTE_MINIMAL and a "\\n" line terminator over the
same rows the legacy formatter builds. Rows without special characters
come out identical to the legacy format.

RULES:
- Never the default; only used when explicitly requested by key
- Field order identical to device_lines
- Artifact name gets a ".quoted" marker so it never overwrites the
  legacy artifact devices fetch
"""

from __future__ import annotations

import csv
import io
from typing import Sequence

from wavelink_roster.config import EXPORT_FILENAME
from wavelink_roster.core.models import Device
from wavelink_roster.formatters.base import BaseFormatter, FormatterOutput
from wavelink_roster.formatters.device_lines import device_row


def _quoted_filename() -> str:
    stem, dot, ext = EXPORT_FILENAME.rpartition(".")
    if not dot:
        return EXPORT_FILENAME + ".quoted"
    return "{}.quoted.{}".format(stem, ext)


class QuotedLinesFormatter(BaseFormatter):
    """CSV-quoted variant of the device-line export."""

    @property
    def name(self) -> str:
        return "Quoted device lines (incompatible with legacy devices)"

    def format(self, devices: Sequence[Device]) -> FormatterOutput:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        for device in devices:
            writer.writerow(device_row(device))
        return FormatterOutput(
            filename=_quoted_filename(),
            content=buffer.getvalue(),
            media_type="text/csv",
        )
