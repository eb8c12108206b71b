from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from .clock import isoformat_z

__all__ = ["AUDIT_LOG_NAME", "AuditEntry", "format_entry", "parse_log"]

AUDIT_LOG_NAME = "audit.log"

_HEADER_RE = re.compile(r"^\[(?P<ts>[^\]]+)\] Status changed: (?P<old>\S+) → (?P<new>\S+)$")
_NOTE_PREFIX = "Note: "
# A blank line ends an entry only when the next header follows.
_ENTRY_SPLIT_RE = re.compile(r"\n\n(?=\[[^\]\n]+\] Status changed: )")


@dataclass(frozen=True)
class AuditEntry:
    timestamp: datetime
    old_status: str
    new_status: str
    note: str | None = None


def format_entry(entry: AuditEntry) -> str:
    """Render one entry, terminated by a blank line.

    ``[2026-02-02T15:34:00.000Z] Status changed: submitted → psd_done``
    optionally followed by ``Note: <text>``.
    """
    line = f"[{isoformat_z(entry.timestamp)}] Status changed: {entry.old_status} → {entry.new_status}"
    if entry.note:
        return f"{line}\n{_NOTE_PREFIX}{entry.note}\n\n"
    return f"{line}\n\n"


def parse_log(text: str) -> list[AuditEntry]:
    """Parse an audit log back into entries, in file order.

    Blocks that do not start with a status header are skipped. Multi-line notes,
    blank lines included, are kept whole.
    """
    entries: list[AuditEntry] = []
    for block in _ENTRY_SPLIT_RE.split(text.replace("\r\n", "\n")):
        if not block.strip():
            continue
        header, _, rest = block.strip("\n").partition("\n")
        m = _HEADER_RE.match(header)
        if not m:
            continue
        note = rest[len(_NOTE_PREFIX):] if rest.startswith(_NOTE_PREFIX) else None
        entries.append(
            AuditEntry(
                timestamp=datetime.fromisoformat(m.group("ts").replace("Z", "+00:00")),
                old_status=m.group("old"),
                new_status=m.group("new"),
                note=note or None,
            )
        )
    return entries
