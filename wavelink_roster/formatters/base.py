"""Abstract base formatter and output container.

WHY: The roster can be rendered in more than one wire format (the legacy
unescaped line format devices understand today, and an opt-in quoted
variant). A common interface lets the exporter, the CLI and the HTTP API
pick a format by key without knowing its details.

HOW: BaseFormatter is an ABC with a ``name`` property and a ``format()``
method over a sequence of devices. FormatterOutput bundles the rendered
text with the artifact filename and MIME type.

RULES:
- Subclasses MUST implement ``name`` and ``format()``
- ``format()`` is deterministic: same roster state, same text
- ``format()`` never mutates the devices it is given
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from wavelink_roster.core.models import Device


@dataclass
class FormatterOutput:
    """One rendered export payload.

    Attributes:
        filename: Artifact name inside the attachment namespace.
        content: The full export text.
        media_type: MIME type, e.g. ``"text/plain"``.
    """

    filename: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for roster export formats.

    To add a new export format:
    1. Create a new module in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register it in FORMATTERS in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name."""

    @abstractmethod
    def format(self, devices: Sequence[Device]) -> FormatterOutput:
        """Render the whole roster.

        Args:
            devices: Devices in roster order, each with its tasks in
                     sequence order.
        """
