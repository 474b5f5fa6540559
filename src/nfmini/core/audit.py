"""Audit trail of firewall mutations.

Each mutation batch (``add``, ``del``, ``hop add``, ``hop del``) appends
one JSON object per line to the audit log, so an operator can answer
"who opened this port, and when" after the fact. The log is rotated by
size into ``audit.log.1`` .. ``audit.log.N``.
"""

import fcntl
import json
import os
import pwd
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Optional, TextIO

from nfmini.core.config import DEFAULT_AUDIT_LOG_PATH
from nfmini.core.output import console


DEFAULT_MAX_SIZE_MB = 10
DEFAULT_BACKUP_COUNT = 5


class AuditEventType(Enum):
    FIREWALL_RULE_ADD = "firewall.rule_add"
    FIREWALL_RULE_REMOVE = "firewall.rule_remove"
    FIREWALL_RESET = "firewall.reset"
    HOP_ADD = "hop.add"
    HOP_REMOVE = "hop.remove"
    HOP_FLUSH = "hop.flush"


class AuditResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DRY_RUN = "dry_run"


def _actor() -> dict[str, Any]:
    uid = os.getuid()
    try:
        username = pwd.getpwuid(uid).pw_name
    except KeyError:
        username = str(uid)
    return {"uid": uid, "username": username, "sudo_user": os.environ.get("SUDO_USER")}


@dataclass
class AuditEvent:
    """One mutation batch as written to the audit log."""
    event_type: AuditEventType
    result: AuditResult
    target: str
    parameters: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    actor: dict[str, Any] = field(default_factory=_actor)
    session_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "event_type": self.event_type.value,
                "result": self.result.value,
                "timestamp": self.timestamp.isoformat(),
                "actor": self.actor,
                "target": self.target,
                "parameters": self.parameters,
                "error": self.error,
                "session_id": self.session_id,
            },
            default=str,
        )


class AuditLogger:
    """Append-only JSON-lines audit log.

    Writes are flock-guarded so concurrent nfmini processes never
    interleave lines. A location that cannot be created or written
    turns the call into a no-op with a debug message; auditing never
    fails a firewall command.
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        max_size_mb: int = DEFAULT_MAX_SIZE_MB,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
    ) -> None:
        self.log_path = Path(log_path or DEFAULT_AUDIT_LOG_PATH)
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.enabled = enabled
        # Groups every event written by this process
        self.session_id = str(uuid.uuid4())

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def log(self, event: AuditEvent) -> None:
        if not self.enabled:
            return

        event.session_id = self.session_id
        try:
            self.log_path.parent.mkdir(mode=0o750, parents=True, exist_ok=True)
            with self._locked_append() as f:
                f.write(event.to_json() + "\n")
        except OSError as e:
            console.debug(f"Audit log {self.log_path} not writable: {e}")
            return

        try:
            if self.log_path.stat().st_size > self.max_size_bytes:
                self._rotate()
        except OSError as e:
            console.debug(f"Audit log rotation failed: {e}")

    @contextmanager
    def _locked_append(self) -> Generator[TextIO, None, None]:
        fd = os.open(self.log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o640)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError:
            os.close(fd)
            raise
        with os.fdopen(fd, "a") as f:
            yield f
            f.flush()
            os.fsync(fd)

    def _rotate(self) -> None:
        """Shift audit.log.N-1 -> audit.log.N and start a fresh audit.log."""
        oldest = self._backup(self.backup_count)
        if oldest.exists():
            oldest.unlink()
        for i in range(self.backup_count - 1, 0, -1):
            if self._backup(i).exists():
                self._backup(i).rename(self._backup(i + 1))
        self.log_path.rename(self._backup(1))
        self.log_path.touch(mode=0o640)

    def log_operation(
        self,
        event_type: AuditEventType,
        result: AuditResult,
        target: str,
        parameters: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        self.log(AuditEvent(
            event_type=event_type,
            result=result,
            target=target,
            parameters=parameters or {},
            error=error,
        ))

