"""Audio attachment lifecycle: the file namespace and its manager.

WHY: Tasks reference recorded voice notes by filename, but the files
themselves are owned here so that deletes, re-recordings and "delete all
data" never leave orphans or dangling references behind.

HOW: store.py is a flat directory namespace keyed by filename.
manager.py allocates recording names, enforces one active recording and
one active playback, and releases or purges files.

RULES:
- Tasks never delete files directly; they ask the manager
- Delete failures are logged and swallowed, never raised to roster edits
"""

from wavelink_roster.attachments.manager import (
    AttachmentError,
    AttachmentMissing,
    AttachmentNotOwned,
    AttachmentRef,
    AudioAttachmentManager,
    BufferedCapture,
    CaptureBackend,
    ConfirmationRequired,
    PlaybackBackend,
    RecordingFailed,
    RecordingHandle,
    RecordingInProgress,
    RecordingNotActive,
    SilentPlayback,
)
from wavelink_roster.attachments.store import AttachmentStore

__all__ = [
    "AttachmentError",
    "AttachmentMissing",
    "AttachmentNotOwned",
    "AttachmentRef",
    "AttachmentStore",
    "AudioAttachmentManager",
    "BufferedCapture",
    "CaptureBackend",
    "ConfirmationRequired",
    "PlaybackBackend",
    "RecordingFailed",
    "RecordingHandle",
    "RecordingInProgress",
    "RecordingNotActive",
    "SilentPlayback",
]
