"""Tests for the attachment store and the audio attachment manager.

WHY: Recorded voice notes are the only files the roster points at.
Orphans waste space, dangling references break playback and exports,
and a second concurrent recording would clobber the first. These tests
pin the file lifecycle: naming, capture success and failure, re-record,
release, purge, and exclusive playback.

HOW: Real AttachmentStore on tmp_path; capture and playback backends are
either BufferedCapture or MagicMock objects.

RULES:
- No test touches a real microphone or speaker
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from wavelink_roster.attachments.manager import (
    AttachmentMissing,
    AttachmentNotOwned,
    AttachmentRef,
    AudioAttachmentManager,
    BufferedCapture,
    CaptureBackend,
    ConfirmationRequired,
    PlaybackBackend,
    RecordingFailed,
    RecordingInProgress,
    RecordingNotActive,
)
from wavelink_roster.attachments.store import AttachmentStore

FAKE_AUDIO = b"\x00\x00\x00\x1cftypM4A fake audio"


class _PartialCapture(CaptureBackend):
    """Writes half a file, then fails."""

    def __init__(self):
        self.path = None

    def start(self, path):
        self.path = path
        path.write_bytes(b"partial")

    def stop(self):
        raise RecordingFailed("microphone unplugged")


# ---------------------------------------------------------------------------
# AttachmentStore
# ---------------------------------------------------------------------------


class TestAttachmentStore:
    def test_write_and_exists(self, attachment_store):
        attachment_store.write("a.m4a", b"data")
        assert attachment_store.exists("a.m4a")
        assert attachment_store.path_for("a.m4a").read_bytes() == b"data"

    def test_write_replaces_atomically(self, attachment_store):
        attachment_store.write_text("tasks_export.txt", "old\n")
        attachment_store.write_text("tasks_export.txt", "new\n")
        assert attachment_store.path_for("tasks_export.txt").read_text() == "new\n"
        assert attachment_store.list_all() == ["tasks_export.txt"]

    def test_delete_absent_returns_false(self, attachment_store):
        assert attachment_store.delete("missing.m4a") is False

    def test_list_all_is_sorted_and_skips_hidden(self, attachment_store, attachments_dir):
        attachment_store.write("b.m4a", b"b")
        attachment_store.write("a.m4a", b"a")
        (attachments_dir / ".a.m4a.1234.tmp").write_bytes(b"x")
        assert attachment_store.list_all() == ["a.m4a", "b.m4a"]

    @pytest.mark.parametrize("name", ["", "../x", "a/b", "a\\b", ".hidden"])
    def test_unsafe_names_are_rejected(self, attachment_store, name):
        with pytest.raises(ValueError):
            attachment_store.path_for(name)
        assert attachment_store.exists(name) is False


# ---------------------------------------------------------------------------
# Recording lifecycle
# ---------------------------------------------------------------------------


class TestRecording:
    def test_finish_returns_ref_to_written_file(self, manager):
        handle = manager.begin_recording(BufferedCapture(FAKE_AUDIO))
        ref = manager.finish_recording(handle)
        assert ref.filename == handle.filename
        assert manager.exists(ref)
        assert not manager.recording_active

    def test_filenames_follow_recording_scheme_and_are_unique(self, manager):
        names = {manager.allocate_filename() for _ in range(50)}
        assert len(names) == 50
        assert all(manager.is_recording_name(n) for n in names)
        assert all(n.startswith("recording-") and n.endswith(".m4a") for n in names)

    def test_second_recording_fails_fast(self, manager, roster, recording):
        device_id = roster.add_device("A")
        roster.assign_task([device_id], "Feed", "d", "9:00 AM", audio=recording)
        before = roster.snapshot()

        handle = manager.begin_recording(BufferedCapture(FAKE_AUDIO))
        with pytest.raises(RecordingInProgress):
            manager.begin_recording(BufferedCapture(FAKE_AUDIO))

        assert roster.snapshot() == before
        assert manager.exists(recording)
        manager.cancel_recording(handle)

    def test_failed_capture_leaves_no_file(self, manager, attachment_store):
        capture = _PartialCapture()
        handle = manager.begin_recording(capture)
        assert capture.path.exists()
        with pytest.raises(RecordingFailed):
            manager.finish_recording(handle)
        assert not capture.path.exists()
        assert attachment_store.list_all() == []
        assert handle.filename not in manager.tracked_files()
        assert not manager.recording_active

    def test_empty_capture_fails(self, manager, attachment_store):
        with pytest.raises(RecordingFailed):
            manager.import_audio(b"")
        assert attachment_store.list_all() == []

    def test_start_failure_is_wrapped(self, manager):
        capture = MagicMock(spec=CaptureBackend)
        capture.start.side_effect = RuntimeError("no device")
        with pytest.raises(RecordingFailed):
            manager.begin_recording(capture)
        assert not manager.recording_active

    def test_finish_with_stale_handle(self, manager):
        handle = manager.begin_recording(BufferedCapture(FAKE_AUDIO))
        manager.finish_recording(handle)
        with pytest.raises(RecordingNotActive):
            manager.finish_recording(handle)

    def test_cancel_discards_file(self, manager, attachment_store):
        handle = manager.begin_recording(BufferedCapture(FAKE_AUDIO))
        manager.cancel_recording(handle)
        assert attachment_store.list_all() == []
        assert not manager.recording_active


class TestRerecord:
    def test_requires_confirmation(self, manager, recording):
        with pytest.raises(ConfirmationRequired):
            manager.rerecord(recording, BufferedCapture(FAKE_AUDIO))
        assert manager.exists(recording)

    def test_confirmed_rerecord_deletes_old_file(self, manager, recording):
        handle = manager.rerecord(recording, BufferedCapture(FAKE_AUDIO), confirmed=True)
        assert not manager.exists(recording)
        ref = manager.finish_recording(handle)
        assert ref != recording
        assert manager.exists(ref)

    def test_rerecord_without_existing_needs_no_confirmation(self, manager):
        handle = manager.rerecord(None, BufferedCapture(FAKE_AUDIO))
        assert manager.finish_recording(handle).filename == handle.filename

    def test_busy_rerecord_keeps_existing_file(self, manager, recording):
        handle = manager.begin_recording(BufferedCapture(FAKE_AUDIO))
        with pytest.raises(RecordingInProgress):
            manager.rerecord(recording, BufferedCapture(FAKE_AUDIO), confirmed=True)
        assert manager.exists(recording)
        manager.cancel_recording(handle)


# ---------------------------------------------------------------------------
# Release / purge
# ---------------------------------------------------------------------------


class TestReleaseAndPurge:
    def test_release_is_idempotent(self, manager, recording):
        assert manager.release(recording) is True
        assert manager.release(recording) is False

    def test_release_swallows_delete_errors(self, attachment_store):
        store = MagicMock(wraps=attachment_store)
        store.delete.side_effect = PermissionError("read-only")
        manager = AudioAttachmentManager(store)
        assert manager.release(AttachmentRef("recording-x.m4a")) is False

    def test_release_never_deletes_reserved_file(self, manager, attachment_store):
        attachment_store.write_text("tasks_export.txt", "export\n")
        assert manager.release(AttachmentRef("tasks_export.txt")) is False
        assert attachment_store.exists("tasks_export.txt")

    def test_track_skips_reserved_names(self, manager):
        manager.track(["tasks_export.txt", "voice.caf"])
        assert manager.tracked_files() == ["voice.caf"]
        assert manager.owns("voice.caf")
        assert not manager.owns("tasks_export.txt")

    def test_only_recordings_are_attachable(self, manager, recording, attachment_store):
        attachment_store.write("voice.caf", b"x")
        manager.check_attachable(recording)
        with pytest.raises(AttachmentNotOwned):
            manager.check_attachable(AttachmentRef("voice.caf"))
        with pytest.raises(AttachmentMissing):
            manager.check_attachable(AttachmentRef("recording-missing.m4a"))

    def test_purge_removes_allocated_and_scheme_files(self, manager, attachment_store):
        first = manager.import_audio(FAKE_AUDIO)
        second = manager.import_audio(FAKE_AUDIO)
        attachment_store.write("recording-orphan.m4a", b"x")
        attachment_store.write_text("tasks_export.txt", "export\n")

        assert manager.purge_all() == 3
        assert attachment_store.list_all() == ["tasks_export.txt"]
        assert manager.tracked_files() == []
        assert not manager.exists(first) and not manager.exists(second)

    def test_purge_removes_tracked_foreign_names(self, manager, attachment_store):
        attachment_store.write("voice.caf", b"x")
        manager.track(["voice.caf"])
        manager.purge_all()
        assert not attachment_store.exists("voice.caf")

    def test_purge_abandons_active_recording(self, manager, attachment_store):
        manager.begin_recording(BufferedCapture(FAKE_AUDIO))
        manager.purge_all()
        assert not manager.recording_active
        assert attachment_store.list_all() == []


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


class TestPlayback:
    def _manager(self, attachment_store):
        backend = MagicMock(spec=PlaybackBackend)
        return AudioAttachmentManager(attachment_store, playback=backend), backend

    def test_play_sets_current(self, attachment_store):
        manager, backend = self._manager(attachment_store)
        ref = manager.import_audio(FAKE_AUDIO)
        manager.play(ref)
        assert manager.currently_playing == ref
        backend.play.assert_called_once_with(manager.path_for(ref))

    def test_playing_another_stops_the_first(self, attachment_store):
        manager, backend = self._manager(attachment_store)
        a = manager.import_audio(FAKE_AUDIO)
        b = manager.import_audio(FAKE_AUDIO)
        manager.play(a)
        manager.play(b)
        assert manager.currently_playing == b
        assert backend.stop.call_count == 1

    def test_missing_file_leaves_state_unchanged(self, attachment_store):
        manager, backend = self._manager(attachment_store)
        a = manager.import_audio(FAKE_AUDIO)
        manager.play(a)
        with pytest.raises(AttachmentMissing) as excinfo:
            manager.play(AttachmentRef("recording-missing.m4a"))
        assert excinfo.value.filename == "recording-missing.m4a"
        assert manager.currently_playing == a
        backend.stop.assert_not_called()

    def test_failed_start_clears_current(self, attachment_store):
        manager, backend = self._manager(attachment_store)
        a = manager.import_audio(FAKE_AUDIO)
        b = manager.import_audio(FAKE_AUDIO)
        manager.play(a)
        backend.play.side_effect = OSError("audio device busy")
        with pytest.raises(OSError):
            manager.play(b)
        assert manager.currently_playing is None
        backend.stop.assert_called_once()

    def test_toggle(self, attachment_store):
        manager, _ = self._manager(attachment_store)
        ref = manager.import_audio(FAKE_AUDIO)
        assert manager.toggle_playback(ref) is True
        assert manager.toggle_playback(ref) is False
        assert manager.currently_playing is None

    def test_release_stops_playback_of_that_file(self, attachment_store):
        manager, backend = self._manager(attachment_store)
        ref = manager.import_audio(FAKE_AUDIO)
        manager.play(ref)
        manager.release(ref)
        assert manager.currently_playing is None
        backend.stop.assert_called_once()
