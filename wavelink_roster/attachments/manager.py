"""Audio attachment manager: recording, playback, release, and purge.

WHY: A task may carry one recorded voice note. The file behind it must
be created under a fresh unique name, removed when the last task using
it goes away, never left half-written after a failed capture, and wiped
by "delete all data". Recording and playback are shared resources with
capacity one: a second recording fails fast, a second playback replaces
the first.

HOW: The manager wraps an AttachmentStore and two pluggable backends:
  CaptureBackend : produces the audio file (microphone, upload, import)
  PlaybackBackend: plays a file (SilentPlayback only tracks state)
State (active recording, playing ref, allocated names) is guarded by a
threading.Lock. Capture and file I/O run outside the lock.

RULES:
- begin_recording() raises RecordingInProgress while one is active
- finish_recording() returns an AttachmentRef or raises RecordingFailed;
  a failed capture never leaves a file behind
- rerecord() deletes the existing file only when the caller confirmed
- release() is idempotent; delete errors are logged, never raised
- purge_all() removes every allocated file plus every file matching the
  recording naming scheme; other files (the export artifact) are kept
- play() on a missing file raises AttachmentMissing and changes nothing
- Only recordings the manager allocated or tracked can be attached to
  a task (check_attachable); reserved names (export artifacts) are
  never tracked, attached or released
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Set

from wavelink_roster.attachments.store import AttachmentStore
from wavelink_roster.config import AUDIO_EXTENSION, EXPORT_FILENAME, RECORDING_PREFIX

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AttachmentError(Exception):
    """Base class for attachment lifecycle errors."""


class RecordingInProgress(AttachmentError):
    """Raised when a recording is requested while another is active."""


class RecordingNotActive(AttachmentError):
    """Raised when finishing or cancelling a handle that is not active."""


class RecordingFailed(AttachmentError):
    """Raised when the capture backend fails; no file is left behind."""


class AttachmentMissing(AttachmentError):
    """Raised when an attachment's backing file does not exist.

    RULES:
    - filename names the missing file
    """

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__("Attachment file missing: {}".format(filename))


class AttachmentNotOwned(AttachmentError):
    """Raised when a file in the store is not one of the manager's recordings."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__("Not a recording: {}".format(filename))


class ConfirmationRequired(AttachmentError):
    """Raised when a destructive step is attempted without confirmation."""


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttachmentRef:
    """Reference to one stored audio file, by filename."""

    filename: str


@dataclass(frozen=True)
class RecordingHandle:
    """An active recording slot.

    RULES:
    - id: unique per begin_recording() call
    - filename / path: where the capture backend must write
    """

    id: str
    filename: str
    path: Path
    started_at: float


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class CaptureBackend(ABC):
    """Produces an audio file at a path chosen by the manager.

    Implementations raise RecordingFailed (or OSError) from stop() when
    the capture did not succeed.
    """

    @abstractmethod
    def start(self, path: Path) -> None:
        """Begin capturing into ``path``."""

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing and finalize the file."""


class BufferedCapture(CaptureBackend):
    """Capture backend for audio that was already recorded elsewhere.

    WHY: Uploads through the HTTP API and files imported from the CLI
    arrive as bytes; they go through the same begin/finish lifecycle as a
    live recording so naming and cleanup rules stay identical.

    HOW: start() remembers the target path, stop() writes the bytes.

    RULES:
    - Empty data is a failed capture (RecordingFailed)
    """

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._path: Optional[Path] = None

    def start(self, path: Path) -> None:
        self._path = path

    def stop(self) -> None:
        if self._path is None:
            raise RecordingFailed("Capture was never started")
        if not self._data:
            raise RecordingFailed("No audio data captured")
        self._path.write_bytes(self._data)


class PlaybackBackend(ABC):
    """Plays one file at a time."""

    @abstractmethod
    def play(self, path: Path) -> None:
        """Start playing ``path``."""

    @abstractmethod
    def stop(self) -> None:
        """Stop whatever is playing."""


class SilentPlayback(PlaybackBackend):
    """Playback backend that only logs; used headless and in tests."""

    def play(self, path: Path) -> None:
        logger.debug("Playback started: %s", path.name)

    def stop(self) -> None:
        logger.debug("Playback stopped")


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class AudioAttachmentManager:
    """Owns every audio file referenced by roster tasks.

    WHY: Keeps the one-to-(zero-or-one) relation between a task and a
    file consistent across recording, re-recording, deletion, and purge,
    while the roster only ever stores filenames.

    HOW: Allocates names as ``{prefix}{uuid}{extension}``, remembers every
    allocated or externally tracked name for purge, and holds at most one
    active recording and one playing reference.

    RULES:
    - At most one active recording system-wide (fail fast, no queue)
    - At most one playing attachment; a new play() stops the previous one
    - File-system errors on delete are logged and swallowed
    """

    def __init__(
        self,
        store: AttachmentStore,
        playback: Optional[PlaybackBackend] = None,
        prefix: str = RECORDING_PREFIX,
        extension: str = AUDIO_EXTENSION,
        reserved: Iterable[str] = (EXPORT_FILENAME,),
    ) -> None:
        self.store = store
        self._playback = playback or SilentPlayback()
        self._prefix = prefix
        self._extension = extension
        self._reserved = frozenset(reserved)
        self._lock = threading.Lock()
        self._active: Optional[RecordingHandle] = None
        self._capture: Optional[CaptureBackend] = None
        self._allocated: Set[str] = set()
        self._playing: Optional[AttachmentRef] = None

    # ---- naming ----

    def allocate_filename(self) -> str:
        return "{}{}{}".format(self._prefix, uuid.uuid4().hex, self._extension)

    def is_recording_name(self, name: str) -> bool:
        """True if ``name`` follows this manager's recording naming scheme."""
        return name.startswith(self._prefix) and name.endswith(self._extension)

    def track(self, filenames: Iterable[str]) -> None:
        """Register audio files referenced by a loaded roster so purge covers them.

        Reserved names (the export artifacts) are never tracked.
        """
        with self._lock:
            self._allocated.update(
                f for f in filenames if f and f not in self._reserved
            )

    def owns(self, filename: str) -> bool:
        """True if ``filename`` is a recording this manager may delete."""
        with self._lock:
            if filename in self._reserved:
                return False
            return self.is_recording_name(filename) or filename in self._allocated

    def exists(self, ref: AttachmentRef) -> bool:
        return self.store.exists(ref.filename)

    def check_attachable(self, ref: AttachmentRef) -> None:
        """Make sure ``ref`` may be attached to a task.

        Raises:
            AttachmentNotOwned: ``ref`` is not a recording of this manager.
            AttachmentMissing: The recording's file does not exist.
        """
        if not self.owns(ref.filename):
            raise AttachmentNotOwned(ref.filename)
        if not self.store.exists(ref.filename):
            raise AttachmentMissing(ref.filename)

    def path_for(self, ref: AttachmentRef) -> Path:
        return self.store.path_for(ref.filename)

    # ---- recording ----

    @property
    def recording_active(self) -> bool:
        with self._lock:
            return self._active is not None

    def begin_recording(self, capture: CaptureBackend) -> RecordingHandle:
        """Allocate a fresh filename and start ``capture`` into it.

        Raises:
            RecordingInProgress: Another recording is active.
            RecordingFailed: The backend could not start.
        """
        with self._lock:
            if self._active is not None:
                raise RecordingInProgress(
                    "A recording is already in progress ({})".format(self._active.filename)
                )
            filename = self.allocate_filename()
            handle = RecordingHandle(
                id=uuid.uuid4().hex,
                filename=filename,
                path=self.store.path_for(filename),
                started_at=time.time(),
            )
            self._active = handle
            self._capture = capture
            self._allocated.add(filename)

        try:
            capture.start(handle.path)
        except Exception as exc:
            self._clear_active(handle)
            self._discard(filename)
            if isinstance(exc, RecordingFailed):
                raise
            raise RecordingFailed("Capture could not start: {}".format(exc)) from exc

        logger.info("Recording started: %s", filename)
        return handle

    def finish_recording(self, handle: RecordingHandle) -> AttachmentRef:
        """Stop the active recording and bind its file to a reference.

        Raises:
            RecordingNotActive: ``handle`` is not the active recording.
            RecordingFailed: Capture failed; any partial file was removed.
        """
        capture = self._take_active(handle)

        try:
            capture.stop()
        except RecordingFailed:
            self._discard(handle.filename)
            raise
        except OSError as exc:
            self._discard(handle.filename)
            raise RecordingFailed("Capture failed: {}".format(exc)) from exc

        if not self.store.exists(handle.filename):
            self._discard(handle.filename)
            raise RecordingFailed("Capture produced no file")

        logger.info("Recording finished: %s", handle.filename)
        return AttachmentRef(filename=handle.filename)

    def cancel_recording(self, handle: RecordingHandle) -> None:
        """Abort the active recording and remove whatever it wrote."""
        capture = self._take_active(handle)
        try:
            capture.stop()
        except (AttachmentError, OSError):
            logger.debug("Capture stop failed during cancel", exc_info=True)
        self._discard(handle.filename)
        logger.info("Recording cancelled: %s", handle.filename)

    def rerecord(
        self,
        existing: Optional[AttachmentRef],
        capture: CaptureBackend,
        confirmed: bool = False,
    ) -> RecordingHandle:
        """Replace an existing attachment with a new recording.

        The existing file is deleted right before the new recording
        starts, so the caller must confirm that step explicitly. Only
        pass a ref no other task uses; RosterStore.rerecord_task keeps
        shared files and should be preferred for task audio.

        Raises:
            ConfirmationRequired: ``existing`` given without ``confirmed``.
            RecordingInProgress: Another recording is active (the existing
                file is left untouched).
        """
        if existing is not None and not confirmed:
            raise ConfirmationRequired(
                "Re-recording deletes {}; confirm first".format(existing.filename)
            )
        if self.recording_active:
            raise RecordingInProgress("A recording is already in progress")
        if existing is not None:
            self.release(existing)
        return self.begin_recording(capture)

    def import_audio(self, data: bytes) -> AttachmentRef:
        """Store pre-recorded audio bytes as a new attachment."""
        handle = self.begin_recording(BufferedCapture(data))
        return self.finish_recording(handle)

    def _take_active(self, handle: RecordingHandle) -> CaptureBackend:
        with self._lock:
            if self._active is None or self._active.id != handle.id:
                raise RecordingNotActive("Recording {} is not active".format(handle.filename))
            capture = self._capture
            self._active = None
            self._capture = None
        assert capture is not None
        return capture

    def _clear_active(self, handle: RecordingHandle) -> None:
        with self._lock:
            if self._active is not None and self._active.id == handle.id:
                self._active = None
                self._capture = None

    def _discard(self, filename: str) -> None:
        self._delete_quietly(filename)
        with self._lock:
            self._allocated.discard(filename)

    # ---- release / purge ----

    def release(self, ref: AttachmentRef) -> bool:
        """Delete the file behind ``ref``.

        Returns:
            True if a file was removed, False if it was already absent or
            the delete failed (the failure is logged). Reserved names
            are never deleted.
        """
        if ref.filename in self._reserved:
            logger.warning("Refusing to release reserved file %s", ref.filename)
            return False
        with self._lock:
            was_playing = self._playing == ref
            if was_playing:
                self._playing = None
        if was_playing:
            self._playback.stop()

        deleted = self._delete_quietly(ref.filename)
        with self._lock:
            self._allocated.discard(ref.filename)
        return deleted

    def purge_all(self) -> int:
        """Delete every file this manager allocated or tracks.

        Also stops playback and abandons any active recording.

        Returns:
            Number of files removed.
        """
        with self._lock:
            active = self._active
            capture = self._capture
            self._active = None
            self._capture = None
            playing = self._playing
            self._playing = None
            names = set(self._allocated)
            self._allocated.clear()

        if playing is not None:
            self._playback.stop()
        if capture is not None and active is not None:
            try:
                capture.stop()
            except (AttachmentError, OSError):
                logger.debug("Capture stop failed during purge", exc_info=True)
            names.add(active.filename)

        try:
            names.update(n for n in self.store.list_all() if self.is_recording_name(n))
        except OSError:
            logger.warning("Could not list attachment store %s", self.store.root)

        removed = 0
        for name in sorted(names):
            if self._delete_quietly(name):
                removed += 1
        logger.info("Purged %d attachment file(s)", removed)
        return removed

    def _delete_quietly(self, filename: str) -> bool:
        try:
            deleted = self.store.delete(filename)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to delete attachment %s: %s", filename, exc)
            return False
        if not deleted:
            logger.info("Attachment already absent: %s", filename)
        return deleted

    # ---- playback ----

    @property
    def currently_playing(self) -> Optional[AttachmentRef]:
        with self._lock:
            return self._playing

    def play(self, ref: AttachmentRef) -> None:
        """Play ``ref``, stopping any other attachment first.

        Raises:
            AttachmentMissing: The file does not exist; playback state is
                left unchanged.
        """
        if not self.store.exists(ref.filename):
            raise AttachmentMissing(ref.filename)

        with self._lock:
            previous = self._playing
            self._playing = None
        if previous is not None:
            self._playback.stop()
        # _playing stays None if the backend fails to start
        self._playback.play(self.store.path_for(ref.filename))
        with self._lock:
            self._playing = ref

    def stop_playback(self) -> None:
        with self._lock:
            playing = self._playing
            self._playing = None
        if playing is not None:
            self._playback.stop()

    def toggle_playback(self, ref: AttachmentRef) -> bool:
        """Play/pause button: stop ``ref`` if playing, else play it.

        Returns:
            True if ``ref`` is playing afterwards.
        """
        if self.currently_playing == ref:
            self.stop_playback()
            return False
        self.play(ref)
        return True

    def tracked_files(self) -> List[str]:
        with self._lock:
            return sorted(self._allocated)
