"""Command-line interface for the device roster.

WHY: Operators manage the roster from a terminal: add devices, assign
voice-annotated tasks, delete what is no longer needed, and export the
task lists for the devices. The CLI wires the RosterStore, the attachment
manager and the exporter behind one command with subcommands.

HOW: argparse with one subparser per operation. Each run opens the data
directory (open_runtime), performs one operation, and exits; every
mutation is persisted by the RosterStore itself. Devices can be named by
id or by unique name, tasks by id or by their number on the device.
Status messages go to stderr; data (ids, listings, export text) goes to
stdout so the CLI can be piped.

RULES:
- Destructive commands (delete-device, delete-task, clear-all) require
  --yes; without it the confirmation summary is printed and nothing is
  deleted
- Failures print "Error: ..." to stderr and exit with status 1
- Python 3.9 compatible: no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

from wavelink_roster import __version__
from wavelink_roster.attachments.manager import AttachmentError, AttachmentRef
from wavelink_roster.config import API_HOST, API_PORT, LOG_LEVEL
from wavelink_roster.core.errors import NotFound, ValidationError
from wavelink_roster.core.models import Device, Task
from wavelink_roster.core.roster import (
    RosterStore,
    request_clear_all,
    request_delete_device,
    request_delete_tasks,
)
from wavelink_roster.export.exporter import ExportStateError, ExportWriteError
from wavelink_roster.formatters import DEFAULT_FORMAT, FORMATTERS
from wavelink_roster.runtime import Runtime, open_runtime
from wavelink_roster.transport.base import TransportError

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr.

    RULES:
    - All status messages go to stderr
    - Always flush after writing
    """
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> NoReturn:
    print("Error: {}".format(msg), file=sys.stderr, flush=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def _resolve_device(roster: RosterStore, key: str) -> Device:
    """Find a device by id, or by name when the name is unique.

    Raises:
        NotFound: No device matches, or the name is ambiguous.
    """
    device = roster.get_device(key)
    if device is not None:
        return device
    matches = [d for d in roster.list_devices() if d.name == key]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise NotFound("device", "{} (name is ambiguous, use the id)".format(key))
    raise NotFound("device", key)


def _resolve_task(device: Device, key: str) -> Task:
    """Find a task on ``device`` by id, or by its number."""
    for task in device.tasks:
        if task.id == key:
            return task
    if key.isdigit():
        position = int(key) - 1
        if 0 <= position < len(device.tasks):
            return device.tasks[position]
    raise NotFound("task", key)


def _import_audio(roster: RosterStore, path: Optional[str]) -> Optional[AttachmentRef]:
    if not path:
        return None
    audio_path = Path(path)
    if not audio_path.is_file():
        _fail("Audio file not found: {}".format(audio_path))
    ref = roster.attachments.import_audio(audio_path.read_bytes())
    _status("Stored recording {}".format(ref.filename))
    return ref


def _print_devices(devices: List[Device]) -> None:
    if not devices:
        _status("No devices.")
        return
    for device in devices:
        print("{}  {}  ({} task(s))".format(device.name, device.id, device.task_count))
        for task in device.tasks:
            print("  {:>3}. {:<9} {}{}  [{}]".format(
                task.number,
                task.time,
                task.name,
                "  (audio)" if task.audio_file_path else "",
                task.id,
            ))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_devices(runtime: Runtime, args: argparse.Namespace) -> None:
    if args.json:
        print(json.dumps(runtime.roster.snapshot(), indent=2, ensure_ascii=False))
    else:
        _print_devices(runtime.roster.list_devices())


def _cmd_add_device(runtime: Runtime, args: argparse.Namespace) -> None:
    device_id = runtime.roster.add_device(
        name=args.name,
        user=args.user,
        host=args.host,
        ip=args.ip,
        port=args.port,
        password=args.password,
    )
    _status("Added device {}".format(args.name))
    print(device_id)


def _cmd_edit_device(runtime: Runtime, args: argparse.Namespace) -> None:
    device = _resolve_device(runtime.roster, args.device)
    updated = runtime.roster.edit_device(
        device.id,
        name=args.name,
        user=args.user,
        host=args.host,
        ip=args.ip,
        port=args.port,
        password=args.password,
    )
    if updated is None:
        raise NotFound("device", args.device)
    _status("Updated device {}".format(updated.name))


def _cmd_delete_device(runtime: Runtime, args: argparse.Namespace) -> None:
    device = _resolve_device(runtime.roster, args.device)
    pending = request_delete_device(device.id, device.name)
    if not args.yes:
        _status("{} Re-run with --yes to confirm.".format(pending.summary))
        return
    runtime.roster.confirm(pending)
    _status("Deleted device {}".format(device.name))


def _cmd_assign(runtime: Runtime, args: argparse.Namespace) -> None:
    roster = runtime.roster
    if args.all:
        device_ids = [d.id for d in roster.list_devices()]
    else:
        device_ids = [_resolve_device(roster, key).id for key in args.device or []]
    if not device_ids:
        _fail("No target devices (use --device NAME or --all)")

    audio = _import_audio(roster, args.audio)
    try:
        task_ids = roster.assign_task(
            device_ids,
            name=args.name,
            description=args.description,
            time=args.time,
            audio=audio,
        )
    except ValidationError:
        if audio is not None:
            roster.attachments.release(audio)
        raise
    _status("Assigned {!r} to {} device(s)".format(args.name, len(task_ids)))
    for task_id in task_ids:
        print(task_id)


def _cmd_edit_task(runtime: Runtime, args: argparse.Namespace) -> None:
    roster = runtime.roster
    current = roster.get_task(args.task)
    if current is None:
        raise NotFound("task", args.task)

    audio = _import_audio(roster, args.audio)
    try:
        task = roster.edit_task(
            current.id,
            name=args.name if args.name is not None else current.name,
            description=(
                args.description if args.description is not None else current.description
            ),
            time=args.time if args.time is not None else current.time,
            audio=audio,
            remove_audio=args.remove_audio,
        )
    except ValidationError:
        if audio is not None:
            roster.attachments.release(audio)
        raise
    if task is None:
        raise NotFound("task", args.task)
    _status("Updated task {}. {}".format(task.number, task.name))


def _cmd_delete_task(runtime: Runtime, args: argparse.Namespace) -> None:
    device = _resolve_device(runtime.roster, args.device)
    task_ids = [_resolve_task(device, key).id for key in args.tasks]
    pending = request_delete_tasks(device.id, task_ids)
    if not args.yes:
        _status("{} Re-run with --yes to confirm.".format(pending.summary))
        return
    runtime.roster.confirm(pending)
    _status("Deleted {} task(s) from {}".format(len(task_ids), device.name))


def _cmd_export(runtime: Runtime, args: argparse.Namespace) -> None:
    exporter = runtime.exporter
    result = exporter.render(args.format)
    for problem in result.unsafe_fields:
        _status("  Warning: {} contains ',' or a line break".format(problem))
    _status("Exported {} device(s) to {}".format(result.device_count, result.path))
    if args.print:
        sys.stdout.write(result.text)

    if args.send:
        exporter.mark_ready()
        transfer = exporter.confirm_transfer(targets=args.target or None)
        for outcome in transfer.outcomes:
            _status("  {} {}: {}".format(
                "sent" if outcome.delivered else "FAILED",
                outcome.device_name,
                outcome.detail,
            ))
        if not transfer.delivered:
            _fail("{} device(s) did not receive the export".format(len(transfer.failed)))


def _cmd_clear_all(runtime: Runtime, args: argparse.Namespace) -> None:
    pending = request_clear_all()
    if not args.yes:
        _status("{} Re-run with --yes to confirm.".format(pending.summary))
        return
    runtime.roster.confirm(pending)
    _status("All data deleted")


def _cmd_serve(runtime: Runtime, args: argparse.Namespace) -> None:
    import uvicorn

    from wavelink_roster.server.app import create_app

    _status("Serving on http://{}:{} (docs at /docs)".format(args.host, args.port))
    uvicorn.run(create_app(runtime.roster, runtime.exporter), host=args.host, port=args.port)


_COMMANDS = {
    "devices": _cmd_devices,
    "add-device": _cmd_add_device,
    "edit-device": _cmd_edit_device,
    "delete-device": _cmd_delete_device,
    "assign": _cmd_assign,
    "edit-task": _cmd_edit_task,
    "delete-task": _cmd_delete_task,
    "export": _cmd_export,
    "clear-all": _cmd_clear_all,
    "serve": _cmd_serve,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_connection_args(parser: argparse.ArgumentParser, default: Optional[str]) -> None:
    parser.add_argument("--user", default=default, help="Login user on the device.")
    parser.add_argument("--host", default=default, help="Host name of the device.")
    parser.add_argument("--ip", default=default, help="IP address of the device.")
    parser.add_argument("--port", default=default, help="Port or device number.")
    parser.add_argument("--password", default=default, help="Login password.")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable: tests can inspect the parser without touching any data.
    """
    parser = argparse.ArgumentParser(
        prog="wavelink_roster",
        description="Manage a roster of devices and their voice-annotated tasks, "
                    "and export the task lists for transfer to the devices.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the roster and recordings (default: WAVELINK_DATA_DIR).",
    )
    parser.add_argument(
        "--transport",
        default=None,
        choices=["none", "http"],
        help="Transport used by 'export --send' (default: WAVELINK_TRANSPORT).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    p = sub.add_parser("devices", help="List devices and their tasks.")
    p.add_argument("--json", action="store_true", help="Print the stored JSON shape.")

    p = sub.add_parser("add-device", help="Add a device.")
    p.add_argument("name", help="Display name of the device.")
    _add_connection_args(p, "")

    p = sub.add_parser("edit-device", help="Edit a device's fields.")
    p.add_argument("device", help="Device id or unique name.")
    p.add_argument("--name", default=None, help="New display name.")
    _add_connection_args(p, None)

    p = sub.add_parser("delete-device", help="Delete a device and all of its tasks.")
    p.add_argument("device", help="Device id or unique name.")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    p = sub.add_parser("assign", help="Assign a new task to one or more devices.")
    target = p.add_mutually_exclusive_group()
    target.add_argument(
        "--device", action="append", help="Target device id or name (repeatable)."
    )
    target.add_argument("--all", action="store_true", help="Assign to every device.")
    p.add_argument("--name", required=True, help="Task name.")
    p.add_argument("--description", required=True, help="Task description.")
    p.add_argument("--time", default="", help="Time of day, e.g. '9:00 AM' or 21:30.")
    p.add_argument("--audio", default=None, help="Audio file to attach as the voice note.")

    p = sub.add_parser("edit-task", help="Edit a task.")
    p.add_argument("task", help="Task id.")
    p.add_argument("--name", default=None, help="New task name.")
    p.add_argument("--description", default=None, help="New description.")
    p.add_argument("--time", default=None, help="New time of day.")
    audio = p.add_mutually_exclusive_group()
    audio.add_argument("--audio", default=None, help="Replace the voice note with this file.")
    audio.add_argument("--remove-audio", action="store_true", help="Remove the voice note.")

    p = sub.add_parser("delete-task", help="Delete one or more tasks from a device.")
    p.add_argument("device", help="Device id or unique name.")
    p.add_argument("tasks", nargs="+", help="Task ids or task numbers.")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    p = sub.add_parser("export", help="Write the export file for the devices.")
    p.add_argument(
        "--format",
        default=DEFAULT_FORMAT,
        choices=sorted(FORMATTERS),
        help="Export format (default: %(default)s). quoted_lines is not "
             "understood by current devices.",
    )
    p.add_argument("--print", action="store_true", help="Also print the export to stdout.")
    p.add_argument("--send", action="store_true", help="Send the export to the devices.")
    p.add_argument(
        "--target", action="append", help="Only send to this device id (repeatable)."
    )

    p = sub.add_parser("clear-all", help="Delete all devices, tasks and recordings.")
    p.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    p = sub.add_parser("serve", help="Run the HTTP API.")
    p.add_argument("--host", default=API_HOST, help="Bind address (default: %(default)s).")
    p.add_argument("--port", type=int, default=API_PORT, help="Port (default: %(default)s).")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    runtime = open_runtime(
        Path(args.data_dir) if args.data_dir else None,
        transport_kind=args.transport,
    )
    try:
        _COMMANDS[args.command](runtime, args)
    except (ValidationError, NotFound, AttachmentError, ExportStateError,
            ExportWriteError, TransportError) as exc:
        _fail(str(exc))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
