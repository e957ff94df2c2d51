"""
Audit log of staff actions.

Entries are appended to one JSONL file per day under <data_dir>/audit-logs.
Writing the audit trail must never block the action being audited, so
write failures are logged and dropped.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    """One recorded staff action."""
    action: str
    details: Optional[Dict[str, Any]]
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'action': self.action,
            'details': self.details,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        return cls(
            action=data['action'],
            details=data.get('details'),
            timestamp=data.get('timestamp', ''),
        )


class AuditLog:
    """
    Append-only audit trail.

    Usage:
        audit = AuditLog("data")
        audit.log_activity("Changed active round", {"round": "Final"})
        for entry in audit.recent(20):
            print(entry.timestamp, entry.action)
    """

    def __init__(self, data_dir: str = "data"):
        self.log_dir = Path(data_dir) / "audit-logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _get_jsonl_path(self, date: datetime) -> Path:
        return self.log_dir / f"audit_{date.strftime('%Y%m%d')}.jsonl"

    def log_activity(self, action: str, details: Optional[Dict[str, Any]] = None) -> Optional[AuditEntry]:
        """
        Record an action.

        Args:
            action: Short description of what was done
            details: Optional extra information

        Returns:
            The entry written, or None if it could not be written
        """
        now = datetime.now(timezone.utc)
        entry = AuditEntry(action=action, details=details or None, timestamp=now.isoformat())

        try:
            with open(self._get_jsonl_path(now), 'a') as f:
                json.dump(entry.to_dict(), f, separators=(',', ':'), ensure_ascii=False)
                f.write('\n')
        except (OSError, TypeError, ValueError):
            logger.exception("Error logging activity: %s", action)
            return None

        return entry

    def recent(self, limit: int = 50) -> List[AuditEntry]:
        """Most recent entries, newest first."""
        entries: List[AuditEntry] = []
        for path in sorted(self.log_dir.glob("audit_*.jsonl"), reverse=True):
            with open(path, 'r') as f:
                lines = [line for line in f if line.strip()]
            for line in reversed(lines):
                entries.append(AuditEntry.from_dict(json.loads(line)))
                if len(entries) >= limit:
                    return entries
        return entries
