"""Wire a roster, its attachments, and its exporter from one data directory.

WHY: The CLI and the HTTP API must open the same on-disk layout with the
same handles, and neither should rely on a process-wide store.

HOW: open_runtime() resolves data_paths(), builds the AttachmentStore,
AudioAttachmentManager, PersistenceGateway and RosterStore, loads the
roster, and wraps it in an Exporter with the configured transport.

RULES:
- Every call returns fresh, independent handles
- transport_kind: "none" or "http"; anything else is a ValueError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from wavelink_roster.attachments.manager import AudioAttachmentManager
from wavelink_roster.attachments.store import AttachmentStore
from wavelink_roster.config import TRANSPORT_KIND, DataPaths, data_paths
from wavelink_roster.core.roster import RosterStore
from wavelink_roster.export.exporter import Exporter
from wavelink_roster.formatters import FORMATTERS
from wavelink_roster.persistence.gateway import PersistenceGateway
from wavelink_roster.transport.base import Transport, UnconfiguredTransport
from wavelink_roster.transport.http import HttpTransport

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    paths: DataPaths
    roster: RosterStore
    exporter: Exporter


def build_transport(kind: Optional[str] = None) -> Transport:
    """Return the transport named by ``kind`` (default: TRANSPORT_KIND)."""
    kind = (kind or TRANSPORT_KIND).lower()
    if kind == "http":
        return HttpTransport()
    if kind in ("", "none"):
        return UnconfiguredTransport()
    raise ValueError("Unknown transport: {} (expected 'none' or 'http')".format(kind))


def open_runtime(
    data_dir: Optional[Path] = None,
    transport_kind: Optional[str] = None,
) -> Runtime:
    paths = data_paths(data_dir)
    store = AttachmentStore(paths.attachments_dir)
    artifacts = [cls().format([]).filename for cls in FORMATTERS.values()]
    manager = AudioAttachmentManager(store, reserved=artifacts)
    roster = RosterStore(PersistenceGateway(paths.roster_file), manager)
    roster.load()
    exporter = Exporter(roster, store, transport=build_transport(transport_kind))
    logger.debug("Runtime opened at %s", paths.data_dir)
    return Runtime(paths=paths, roster=roster, exporter=exporter)
