"""Time-of-day display normalisation.

WHY: Task times are shown to the operator and sent to devices in the
short 12-hour style the mobile app used ("9:00 AM"). Operators typing on
a CLI or posting JSON write "09:00", "21:30" or "9:00pm"; normalising
keeps the export consistent.

HOW: A single regex accepts H:MM or HH:MM with an optional AM/PM marker
(any case, optional space). Parsed times are rendered as "H:MM AM|PM".

RULES:
- Unparseable input is returned stripped, otherwise unchanged
- Midnight renders as "12:00 AM", noon as "12:00 PM"
- The result is display-only; nothing orders by it
"""

from __future__ import annotations

import re

_TIME_RE = re.compile(
    r"^\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<ampm>[AaPp][Mm])?\s*$"
)


def normalize_time(text: str) -> str:
    """Return ``text`` in "H:MM AM" form when it parses as a time of day."""
    match = _TIME_RE.match(text or "")
    if match is None:
        return (text or "").strip()

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    ampm = match.group("ampm")
    if minute > 59:
        return text.strip()

    if ampm:
        if hour < 1 or hour > 12:
            return text.strip()
        suffix = ampm.upper()
        display_hour = hour
    else:
        if hour > 23:
            return text.strip()
        suffix = "AM" if hour < 12 else "PM"
        display_hour = hour % 12 or 12

    return "{}:{:02d} {}".format(display_hour, minute, suffix)
