"""Audit trail for safety interventions.

Every crisis block, flagged distress message and replaced assistant reply
is appended as newline-delimited JSON to a daily file under
``~/.aimate/safety_audit/``.  User message text is never stored; replaced
assistant replies are kept verbatim so reviewers can see what was blocked.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

ACTIONS = ("crisis_intervention", "distress_flagged", "response_blocked")


@dataclass
class SafetyAuditEntry:
    """A single recorded safety event."""

    id: str
    timestamp: str
    action: str
    conversation_id: str
    plugin_id: str = ""
    details: dict[str, Any] = field(default_factory=dict)


class SafetyAuditLog:
    """File-based JSON audit log, one ``YYYY-MM-DD.jsonl`` file per day."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".aimate" / "safety_audit"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, dt: datetime) -> Path:
        return self._base_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def _read_all_entries(self) -> list[SafetyAuditEntry]:
        entries: list[SafetyAuditEntry] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            for line in path.read_text(encoding="utf-8").splitlines():
                if not line.strip():
                    continue
                try:
                    entries.append(SafetyAuditEntry(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    continue
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record(
        self,
        action: str,
        conversation_id: str,
        plugin_id: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> SafetyAuditEntry:
        """Append an event and return it."""
        if action not in ACTIONS:
            raise ValueError(f"Unknown audit action: {action}")
        now = datetime.now(timezone.utc)
        entry = SafetyAuditEntry(
            id=uuid.uuid4().hex[:16],
            timestamp=now.isoformat(),
            action=action,
            conversation_id=conversation_id,
            plugin_id=plugin_id,
            details=details or {},
        )
        line = json.dumps(asdict(entry), default=str) + "\n"
        with self._write_lock:
            with self._log_file_for_date(now).open("a", encoding="utf-8") as fh:
                fh.write(line)
        return entry

    def get_events(
        self,
        *,
        action: Optional[str] = None,
        conversation_id: Optional[str] = None,
        limit: int = 200,
    ) -> list[SafetyAuditEntry]:
        """Return filtered events, newest first."""
        entries = self._read_all_entries()
        if action:
            entries = [e for e in entries if e.action == action]
        if conversation_id:
            entries = [e for e in entries if e.conversation_id == conversation_id]
        # Reverse first so equal timestamps keep newest-written first
        entries.reverse()
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]
