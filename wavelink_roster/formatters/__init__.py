"""Export formatter registry.

WHY: The exporter, CLI and HTTP API need a single lookup to find a
formatter by key.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["device_lines"]()``.

RULES:
- DEFAULT_FORMAT is the legacy format devices understand
- "quoted_lines" is a wire-format break and must be chosen explicitly
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Type

from wavelink_roster.formatters.device_lines import DeviceLinesFormatter
from wavelink_roster.formatters.quoted_lines import QuotedLinesFormatter

if TYPE_CHECKING:
    from wavelink_roster.formatters.base import BaseFormatter

DEFAULT_FORMAT = "device_lines"

FORMATTERS: Dict[str, Type[BaseFormatter]] = {
    "device_lines": DeviceLinesFormatter,
    "quoted_lines": QuotedLinesFormatter,
}
