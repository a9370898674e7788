"""Tests for the persistence gateway.

WHY: The roster lives in a single JSON slot. A corrupt slot must never
crash the app, a failed write must never truncate the previous blob,
and load(save(roster)) must reproduce the roster exactly.

RULES:
- Every test writes under tmp_path
"""

from __future__ import annotations

import json
import os

import pytest

from wavelink_roster.core.models import Device, Task
from wavelink_roster.persistence.gateway import PersistenceDecodeError, PersistenceGateway


def _sample_roster():
    return [
        Device(id="d1", name="D1", user="pi", host="h", ip="1.2.3.4", port="1",
               password="pw", task_count=2, tasks=[
                   Task(id="t1", name="Feed", number=1, time="9:00 AM",
                        description="Feed fish"),
                   Task(id="t2", name="Walk", number=2, time="5:30 PM",
                        description="Walk dog", audio_file_path="recording-a.m4a"),
               ]),
        Device(id="d2", name="Empty"),
    ]


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


class TestRoundTrip:
    def test_load_of_save_reproduces_roster(self, gateway):
        devices = _sample_roster()
        assert gateway.save(devices) is True
        loaded = gateway.load()
        assert [d.to_dict() for d in loaded] == [d.to_dict() for d in devices]

    def test_empty_roster(self, gateway):
        gateway.save([])
        assert gateway.load() == []

    def test_unicode_is_kept(self, gateway):
        gateway.save([Device(id="d", name="Kök-Pi ☕")])
        assert gateway.load()[0].name == "Kök-Pi ☕"


# ---------------------------------------------------------------------------
# Load failures
# ---------------------------------------------------------------------------


class TestLoad:
    def test_absent_slot_is_empty(self, gateway):
        assert gateway.load() == []

    def test_malformed_json_is_empty(self, gateway, roster_file):
        roster_file.write_text("[{", encoding="utf-8")
        assert gateway.load() == []

    def test_schema_mismatch_is_empty(self, gateway, roster_file):
        roster_file.write_text(json.dumps([{"name": "no id"}]), encoding="utf-8")
        assert gateway.load() == []

    def test_decode_raises_for_callers_that_want_it(self):
        with pytest.raises(PersistenceDecodeError):
            PersistenceGateway.decode("42")

    def test_legacy_blob_decodes(self):
        blob = json.dumps([{
            "id": "d", "name": "Pi", "piUser": "pi", "piHost": "host",
            "ip": "1.1.1.1", "piNumber": "7", "password": "", "taskCount": 1,
            "tasks": [{"id": "t", "name": "A", "number": 1, "time": "9:00 AM",
                       "description": "a", "audioFilePath": None}],
        }])
        [device] = PersistenceGateway.decode(blob)
        assert (device.user, device.host, device.port) == ("pi", "host", "7")


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


class TestSave:
    def test_creates_parent_directory(self, tmp_path):
        gateway = PersistenceGateway(tmp_path / "nested" / "students.json")
        assert gateway.save(_sample_roster()) is True
        assert len(gateway.load()) == 2

    def test_failed_write_keeps_previous_blob(self, gateway, roster_file, monkeypatch):
        gateway.save(_sample_roster())
        before = roster_file.read_bytes()

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", boom)
        assert gateway.save([]) is False
        assert roster_file.read_bytes() == before
        assert [p.name for p in roster_file.parent.iterdir() if p.name.endswith(".tmp")] == []

    def test_stale_revision_is_skipped(self, gateway):
        assert gateway.save(_sample_roster(), revision=5) is True
        assert gateway.revision == 5
        assert gateway.save([], revision=3) is False
        assert len(gateway.load()) == 2

    def test_unrevisioned_save_always_writes(self, gateway):
        gateway.save(_sample_roster(), revision=5)
        assert gateway.save([]) is True
        assert gateway.load() == []
