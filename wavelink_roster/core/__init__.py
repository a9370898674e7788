"""Core roster modules: models, numbering, and the RosterStore.

WHY: The core package holds the only part of the system with real
invariants: unique identities, contiguous task numbering, and the
cached task count. Everything else (CLI, HTTP API, export) calls into it.

HOW: models.py defines Device and Task with their JSON codec,
numbering.py keeps task numbers contiguous, roster.py composes both with
the attachment manager and the persistence gateway.

RULES:
- Invariants hold after every RosterStore operation returns
- Numbering is list order, never time-of-day order
"""
