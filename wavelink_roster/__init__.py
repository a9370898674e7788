"""WaveLink Roster: device roster, voice-annotated tasks, and device export.

WHY: An operator maintains a roster of remote devices (formerly
"students"), assigns each one an ordered list of tasks that may carry a
recorded voice note, and exports the whole roster as a flat text payload
for transfer to the devices. The roster has real invariants (unique ids,
contiguous task numbering, attachment lifecycle) and the export has an
exact format contract; both live here.

HOW: Four layers: core (models, numbering, RosterStore), attachments
(audio file lifecycle), persistence (JSON blob), and export (pluggable
formatters + export flow). The CLI and the HTTP API are thin callers of
RosterStore operations.

RULES:
- RosterStore is the single source of truth for the in-memory roster
- Audio files are owned by AudioAttachmentManager, never by tasks
- The default export format is the legacy unescaped line format
"""

__version__ = "0.1.0"
