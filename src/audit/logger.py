"""Callback audit trail — append-only JSON Lines with rotation and hash chain.

Each line carries ``prev_hash``, the SHA-256 of the previous line, so a
removed or edited entry breaks the chain at the following line.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from src.models import AuditEvent


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None


def validate_audit_chain(log_path: str | Path) -> ChainValidationResult:
    """Check that every entry's prev_hash matches the line before it."""
    path = Path(log_path)
    if not path.exists():
        return ChainValidationResult(valid=True)
    lines = [line for line in path.read_text(errors="replace").split("\n") if line]

    prev_hash: str | None = None
    for number, line in enumerate(lines, start=1):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            return ChainValidationResult(valid=False, broken_at_line=number)
        if not isinstance(entry, dict) or entry.get("prev_hash") != prev_hash:
            return ChainValidationResult(valid=False, broken_at_line=number)
        prev_hash = _line_hash(line)

    return ChainValidationResult(valid=True)


class AuditLogger:
    """Records callback outcomes (challenge, accepted, rejected)."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._last_line: str | None = None
        if self.log_path.exists():
            lines = self.log_path.read_text().strip().split("\n")
            self._last_line = lines[-1] or None

    @classmethod
    def from_env(cls, log_path: str | None = None) -> AuditLogger | None:
        """Build from AUDIT_LOG_PATH / AUDIT_LOG_MAX_BYTES / AUDIT_LOG_BACKUP_COUNT.

        Returns None when no path is given or configured.
        """
        log_path = log_path or os.environ.get("AUDIT_LOG_PATH")
        if not log_path:
            return None
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760")),
            backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5")),
        )

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _maybe_rotate(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return

        self._backup(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).rename(self._backup(index + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        data = json.loads(event.model_dump_json())
        data["prev_hash"] = _line_hash(self._last_line) if self._last_line else None
        line = json.dumps(data, separators=(",", ":"))

        # Rotation and append happen under one lock.
        lock_file = self.log_path.with_name(f".{self.log_path.name}.lock")
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)

        self._last_line = line
