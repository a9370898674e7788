"""Tests for the command-line interface.

WHY: The CLI is the operator's main tool. These tests run main() with
explicit argv against a tmp_path data directory and check what lands on
disk, on stdout, and on stderr.

RULES:
- Each test uses its own --data-dir under tmp_path
- Failures are asserted through SystemExit codes
"""

from __future__ import annotations

import json

import pytest

from wavelink_roster.cli import build_parser, main
from wavelink_roster.runtime import open_runtime

FAKE_AUDIO = b"\x00\x00\x00\x1cftypM4A fake audio"


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def run(data_dir, capsys):
    """Run the CLI and return (stdout, stderr)."""

    def _run(*argv):
        main(["--data-dir", str(data_dir)] + list(argv))
        return capsys.readouterr()

    return _run


def _add_device(run, name="D1"):
    out, _ = run("add-device", name, "--user", "pi", "--host", "h", "--ip", "1.2.3.4",
                 "--port", "1", "--password", "pw")
    return out.strip()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_export_defaults(self):
        args = build_parser().parse_args(["export"])
        assert args.format == "device_lines"
        assert not args.print
        assert not args.send

    def test_assign_targets_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["assign", "--all", "--device", "x",
                                       "--name", "n", "--description", "d"])


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class TestDeviceCommands:
    def test_add_prints_id_and_persists(self, run, data_dir):
        device_id = _add_device(run)
        roster = open_runtime(data_dir).roster
        assert roster.get_device(device_id).name == "D1"

    def test_devices_listing(self, run):
        _add_device(run)
        run("assign", "--device", "D1", "--name", "Feed", "--description", "Feed fish",
            "--time", "9:00 AM")
        out, _ = run("devices")
        assert "D1" in out
        assert "1. 9:00 AM" in out
        assert "Feed" in out

    def test_devices_json(self, run):
        _add_device(run)
        out, _ = run("devices", "--json")
        data = json.loads(out)
        assert data[0]["name"] == "D1"
        assert data[0]["taskCount"] == 0

    def test_edit_by_name(self, run, data_dir):
        device_id = _add_device(run)
        run("edit-device", "D1", "--ip", "10.0.0.9")
        assert open_runtime(data_dir).roster.get_device(device_id).ip == "10.0.0.9"

    def test_empty_name_fails(self, run, capsys):
        with pytest.raises(SystemExit) as excinfo:
            run("add-device", "  ")
        assert excinfo.value.code == 1
        assert "name must not be empty" in capsys.readouterr().err

    def test_delete_needs_yes(self, run, data_dir):
        device_id = _add_device(run)
        _, err = run("delete-device", "D1")
        assert "--yes" in err
        assert open_runtime(data_dir).roster.get_device(device_id) is not None

        run("delete-device", "D1", "--yes")
        assert open_runtime(data_dir).roster.get_device(device_id) is None

    def test_unknown_device_fails(self, run):
        with pytest.raises(SystemExit) as excinfo:
            run("delete-device", "ghost", "--yes")
        assert excinfo.value.code == 1

    def test_ambiguous_name_fails(self, run):
        _add_device(run, "Same")
        _add_device(run, "Same")
        with pytest.raises(SystemExit):
            run("edit-device", "Same", "--ip", "x")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TestTaskCommands:
    def test_assign_all_with_audio(self, run, data_dir, tmp_path):
        _add_device(run, "A")
        _add_device(run, "B")
        audio = tmp_path / "note.m4a"
        audio.write_bytes(FAKE_AUDIO)

        out, _ = run("assign", "--all", "--name", "Feed", "--description", "Feed fish",
                     "--audio", str(audio))
        assert len(out.split()) == 2

        runtime = open_runtime(data_dir)
        paths = {t.audio_file_path for d in runtime.roster.list_devices() for t in d.tasks}
        assert len(paths) == 1
        assert runtime.roster.attachments.store.exists(paths.pop())

    def test_failed_assign_releases_imported_audio(self, run, data_dir, tmp_path):
        _add_device(run, "A")
        audio = tmp_path / "note.m4a"
        audio.write_bytes(FAKE_AUDIO)
        with pytest.raises(SystemExit):
            run("assign", "--all", "--name", "Feed", "--description", " ",
                "--audio", str(audio))
        assert open_runtime(data_dir).roster.attachments.store.list_all() == []

    def test_delete_tasks_by_number(self, run, data_dir):
        device_id = _add_device(run)
        for name in "ABCD":
            run("assign", "--device", device_id, "--name", name, "--description", "d")
        run("delete-task", "D1", "1", "3", "--yes")
        device = open_runtime(data_dir).roster.get_device(device_id)
        assert [(t.name, t.number) for t in device.tasks] == [("B", 1), ("D", 2)]
        assert device.task_count == 2

    def test_edit_task_keeps_unspecified_fields(self, run, data_dir):
        _add_device(run)
        out, _ = run("assign", "--device", "D1", "--name", "Feed", "--description",
                     "Feed fish", "--time", "9:00")
        task_id = out.strip()
        run("edit-task", task_id, "--name", "Walk")
        task = open_runtime(data_dir).roster.get_task(task_id)
        assert (task.name, task.description, task.time) == ("Walk", "Feed fish", "9:00 AM")


# ---------------------------------------------------------------------------
# Export and clear
# ---------------------------------------------------------------------------


class TestExportAndClear:
    def test_export_print(self, run, data_dir):
        _add_device(run)
        run("assign", "--device", "D1", "--name", "Feed", "--description", "Feed fish",
            "--time", "9:00 AM")
        out, err = run("export", "--print")
        assert out == "D1,pi,h,1.2.3.4,pw,1,1,Feed,,9:00 AM\n"
        assert "Exported 1 device(s)" in err
        artifact = data_dir / "attachments" / "tasks_export.txt"
        assert artifact.read_text(encoding="utf-8") == out

    def test_export_warns_on_unsafe_fields(self, run):
        _add_device(run, "A,B")
        _, err = run("export")
        assert "Warning" in err

    def test_send_without_transport_fails(self, run):
        _add_device(run)
        with pytest.raises(SystemExit) as excinfo:
            run("export", "--send")
        assert excinfo.value.code == 1

    def test_clear_all(self, run, data_dir):
        _add_device(run)
        _, err = run("clear-all")
        assert "--yes" in err
        run("clear-all", "--yes")
        assert open_runtime(data_dir).roster.list_devices() == []
