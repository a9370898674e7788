"""Flat directory namespace for audio attachments and the export artifact.

WHY: Attachments are addressed by filename only; the roster stores
names, devices receive names, and the export artifact sits next to the
audio files. A tiny store class keeps all path handling (and the
path-traversal check) in one place.

HOW: Every name maps to ``root / name``. Writes go to a hidden temp file
in the same directory and are moved into place with ``os.replace`` so a
reader never sees a partially written file.

RULES:
- Names must be plain filenames: no separators, no "..", not hidden
- write() / write_text() are atomic per file
- delete() returns False when the file is already absent; other OS
  errors propagate to the caller (the manager decides to swallow them)
- list_all() never reports in-flight temp files
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)


class AttachmentStore:
    """Directory-backed namespace keyed by filename."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        """Resolve ``name`` inside the namespace, rejecting unsafe names."""
        if (
            not name
            or "/" in name
            or "\\" in name
            or ".." in name
            or name.startswith(".")
        ):
            raise ValueError("Invalid attachment name: {!r}".format(name))
        return self.root / name

    def write(self, name: str, data: bytes) -> Path:
        """Atomically write ``data`` under ``name``."""
        target = self.path_for(name)
        tmp = self.root / ".{}.{}.tmp".format(name, uuid.uuid4().hex[:8])
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, target)
        except OSError:
            if tmp.exists():
                tmp.unlink()
            raise
        return target

    def write_text(self, name: str, text: str) -> Path:
        """Atomically write UTF-8 ``text`` under ``name``."""
        return self.write(name, text.encode("utf-8"))

    def delete(self, name: str) -> bool:
        try:
            self.path_for(name).unlink()
        except FileNotFoundError:
            return False
        return True

    def exists(self, name: str) -> bool:
        try:
            return self.path_for(name).is_file()
        except ValueError:
            return False

    def list_all(self) -> List[str]:
        """Return every stored filename, sorted, excluding temp files."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_file() and not p.name.startswith(".")
        )
