"""Configuration constants, data paths, and .env loading.

WHY: Centralizes every configurable value (data directory, persistence
slot name, export artifact name, recording naming scheme, transport
timeouts) so it is easy to find and override without touching logic.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values read from the environment with defaults.
data_paths() resolves and creates the directories on demand.

RULES:
- Nothing is required at import time and no directory is created on import
- All defaults can be overridden via WAVELINK_* environment variables
- The export artifact lives in the same namespace as the audio attachments
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Storage locations
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.getenv("WAVELINK_DATA_DIR", "wavelink-data")).expanduser()
ATTACHMENTS_DIR = Path(
    os.getenv("WAVELINK_ATTACHMENTS_DIR", str(DATA_DIR / "attachments"))
).expanduser()

ROSTER_FILENAME = os.getenv("WAVELINK_ROSTER_FILENAME", "students.json")
"""Name of the single persistence slot holding the JSON roster."""

EXPORT_FILENAME = os.getenv("WAVELINK_EXPORT_FILENAME", "tasks_export.txt")
"""Well-known name of the export artifact inside the attachment namespace."""

# ---------------------------------------------------------------------------
# Recording naming scheme
# ---------------------------------------------------------------------------

RECORDING_PREFIX = os.getenv("WAVELINK_RECORDING_PREFIX", "recording-")
AUDIO_EXTENSION = os.getenv("WAVELINK_AUDIO_EXTENSION", ".m4a")

# ---------------------------------------------------------------------------
# Transport (assumed HTTP protocol, see transport/http.py)
# ---------------------------------------------------------------------------

TRANSPORT_KIND = os.getenv("WAVELINK_TRANSPORT", "none").strip().lower()
"""Which transport confirms an export: "none" (unconfigured) or "http"."""

TRANSPORT_TIMEOUT_S = float(os.getenv("WAVELINK_TRANSPORT_TIMEOUT", "10"))
TRANSPORT_RETRIES = int(os.getenv("WAVELINK_TRANSPORT_RETRIES", "2"))
TRANSPORT_PATH = os.getenv("WAVELINK_TRANSPORT_PATH", "/tasks")

# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

API_HOST = os.getenv("WAVELINK_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("WAVELINK_API_PORT", "8000"))
LOG_LEVEL = os.getenv("WAVELINK_LOG_LEVEL", "INFO").upper()


@dataclass
class DataPaths:
    """Resolved on-disk locations for one roster instance.

    RULES:
    - roster_file: the persistence slot (JSON array of devices)
    - attachments_dir: audio files and the export artifact
    """

    data_dir: Path
    attachments_dir: Path
    roster_file: Path


def data_paths(
    data_dir: Path | None = None,
    attachments_dir: Path | None = None,
) -> DataPaths:
    """Resolve data locations and create the directories if missing.

    WHY: Both the CLI and the HTTP API need the same layout. Creating the
    directories lazily keeps imports free of side effects.

    HOW: Explicit arguments win over the module constants. When only
    data_dir is given, attachments go in data_dir/attachments.
    """
    base = Path(data_dir) if data_dir is not None else DATA_DIR
    if attachments_dir is not None:
        attachments = Path(attachments_dir)
    elif data_dir is not None:
        attachments = base / "attachments"
    else:
        attachments = ATTACHMENTS_DIR

    base.mkdir(parents=True, exist_ok=True)
    attachments.mkdir(parents=True, exist_ok=True)

    return DataPaths(
        data_dir=base,
        attachments_dir=attachments,
        roster_file=base / ROSTER_FILENAME,
    )
