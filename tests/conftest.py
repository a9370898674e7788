"""Shared test fixtures for the wavelink_roster test suite.

WHY: Most test modules need the same wiring: an attachment store in a
temp directory, an attachment manager, a persistence gateway, and a
RosterStore built from them. Centralizing it keeps every test on a fresh,
isolated data directory.

HOW: Fixtures build on pytest's ``tmp_path``. ``make_roster`` reopens a
roster over the same directory to simulate an app restart.

RULES:
- Every test gets its own tmp_path; nothing touches the real data dir
- Playback uses SilentPlayback unless a test supplies a mock
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from wavelink_roster.attachments.manager import AudioAttachmentManager
from wavelink_roster.attachments.store import AttachmentStore
from wavelink_roster.core.roster import RosterStore
from wavelink_roster.persistence.gateway import PersistenceGateway

FAKE_AUDIO = b"\x00\x00\x00\x1cftypM4A fake audio"


@pytest.fixture
def attachments_dir(tmp_path: Path) -> Path:
    return tmp_path / "attachments"


@pytest.fixture
def attachment_store(attachments_dir: Path) -> AttachmentStore:
    return AttachmentStore(attachments_dir)


@pytest.fixture
def manager(attachment_store: AttachmentStore) -> AudioAttachmentManager:
    return AudioAttachmentManager(attachment_store)


@pytest.fixture
def roster_file(tmp_path: Path) -> Path:
    return tmp_path / "students.json"


@pytest.fixture
def gateway(roster_file: Path) -> PersistenceGateway:
    return PersistenceGateway(roster_file)


@pytest.fixture
def roster(gateway: PersistenceGateway, manager: AudioAttachmentManager) -> RosterStore:
    store = RosterStore(gateway, manager)
    store.load()
    return store


@pytest.fixture
def make_roster(roster_file: Path, attachments_dir: Path) -> Callable[[], RosterStore]:
    """Open a fresh RosterStore over the same files (simulated restart)."""

    def _open() -> RosterStore:
        store = RosterStore(
            PersistenceGateway(roster_file),
            AudioAttachmentManager(AttachmentStore(attachments_dir)),
        )
        store.load()
        return store

    return _open


@pytest.fixture
def recording(manager: AudioAttachmentManager):
    """A stored recording, as returned by import_audio()."""
    return manager.import_audio(FAKE_AUDIO)
