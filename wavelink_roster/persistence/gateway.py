"""Persistence gateway: the roster as one JSON blob in a named slot.

WHY: The roster must survive restarts. The original app kept it as a
JSON-encoded array in a single key-value slot; this keeps that shape (so
old blobs still load) behind an explicit handle instead of a global key.

HOW: save() encodes the devices to JSON and writes the slot atomically
(temp file + os.replace) under a threading.Lock, so two snapshots never
interleave. load() reads, parses, and validates the blob against
ROSTER_SCHEMA with jsonschema before building Device objects.

RULES:
- load() returns [] when the slot is absent or undecodable; decode
  failures are logged, never raised
- save() returns False on write failure (logged), never raises OSError
- Writes are serialized; the last completed write wins
- A save tagged with a revision older than the last written one is
  skipped, so a stale snapshot never overwrites a newer one
- Validation accepts the legacy piUser / piHost / piNumber keys
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import jsonschema

from wavelink_roster.core.models import Device

logger = logging.getLogger(__name__)

_OPTIONAL_STRING = {"type": ["string", "null"]}

ROSTER_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "name"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "name": {"type": "string"},
            "user": _OPTIONAL_STRING,
            "host": _OPTIONAL_STRING,
            "ip": _OPTIONAL_STRING,
            "port": _OPTIONAL_STRING,
            "password": _OPTIONAL_STRING,
            "piUser": _OPTIONAL_STRING,
            "piHost": _OPTIONAL_STRING,
            "piNumber": _OPTIONAL_STRING,
            "taskCount": {"type": "integer"},
            "tasks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["id", "name", "number"],
                    "properties": {
                        "id": {"type": "string", "minLength": 1},
                        "name": {"type": "string"},
                        "number": {"type": "integer"},
                        "time": {"type": "string"},
                        "description": {"type": "string"},
                        "audioFilePath": _OPTIONAL_STRING,
                    },
                },
            },
        },
    },
}
"""JSON Schema for the persisted roster blob."""


class PersistenceDecodeError(ValueError):
    """Raised when the stored blob is not valid roster JSON."""


class PersistenceGateway:
    """Load/save the roster to a single JSON file slot.

    RULES:
    - path: the slot; its parent directory is created on first save
    - The gateway never holds Device objects between calls
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._revision = -1

    @property
    def revision(self) -> int:
        """Revision of the last completed write (-1 before the first)."""
        with self._lock:
            return self._revision

    # ---- codec ----

    @staticmethod
    def encode(devices: Sequence[Device]) -> str:
        return json.dumps([d.to_dict() for d in devices], indent=2, ensure_ascii=False)

    @staticmethod
    def decode(text: str) -> List[Device]:
        """Parse and validate a roster blob.

        Raises:
            PersistenceDecodeError: Malformed JSON or schema mismatch.
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceDecodeError("Roster blob is not valid JSON: {}".format(exc)) from exc

        try:
            jsonschema.validate(instance=raw, schema=ROSTER_SCHEMA)
        except jsonschema.ValidationError as exc:
            raise PersistenceDecodeError(
                "Roster blob does not match schema: {}".format(exc.message)
            ) from exc

        return [Device.from_dict(item) for item in raw]

    # ---- slot I/O ----

    def load(self) -> List[Device]:
        """Return the stored roster, or [] if absent or undecodable."""
        with self._lock:
            if not self.path.is_file():
                return []
            try:
                text = self.path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("Could not read roster slot %s: %s", self.path, exc)
                return []

        try:
            devices = self.decode(text)
        except PersistenceDecodeError as exc:
            logger.warning("Ignoring stored roster at %s: %s", self.path, exc)
            return []

        logger.debug("Loaded %d device(s) from %s", len(devices), self.path)
        return devices

    def save(self, devices: Sequence[Device], revision: Optional[int] = None) -> bool:
        """Atomically replace the slot with ``devices``.

        Args:
            devices: The full roster to store.
            revision: Monotonic counter from the writer. When given and
                      older than the last written revision, nothing is
                      written.

        Returns:
            True on success, False if the write failed (logged) or was stale.
        """
        payload = self.encode(devices)
        with self._lock:
            if revision is not None and revision < self._revision:
                logger.debug("Skipping stale roster revision %d", revision)
                return False
            tmp = self.path.with_name(
                ".{}.{}.tmp".format(self.path.name, uuid.uuid4().hex[:8])
            )
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(payload, encoding="utf-8")
                os.replace(tmp, self.path)
            except OSError as exc:
                logger.warning("Failed to save roster to %s: %s", self.path, exc)
                try:
                    if tmp.exists():
                        tmp.unlink()
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp)
                return False
            if revision is not None:
                self._revision = revision
        return True
