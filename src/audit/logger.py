"""Append-only JSON Lines record of webhook decisions."""

from __future__ import annotations

import fcntl
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from src.models import AuditEvent

if TYPE_CHECKING:
    from src.config import AppConfig


class AuditLogger:
    """Writes one JSON object per dropped event, swallowed failure or sent reply.

    The file rolls over to ``<name>.1`` once it reaches ``max_bytes``; older
    backups shift up and anything past ``backup_count`` is discarded. A
    sibling lock file serializes writers across worker processes.
    """

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self._lock_path = self.log_path.with_name(f".{self.log_path.name}.lock")

    @classmethod
    def from_config(cls, config: AppConfig) -> AuditLogger | None:
        """Build the logger configured by ``AUDIT_LOG_*``, or None when disabled."""
        if not config.audit_log_path:
            return None
        return cls(
            log_path=config.audit_log_path,
            max_bytes=config.audit_log_max_bytes,
            backup_count=config.audit_log_backup_count,
        )

    def log(self, event: AuditEvent) -> None:
        """Append event. Raises OSError if the file cannot be written."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = event.model_dump_json() + "\n"
        with self._exclusive():
            if self._is_full():
                self._roll_over()
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with open(self._lock_path, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)

    def _is_full(self) -> bool:
        return self.log_path.exists() and self.log_path.stat().st_size >= self.max_bytes

    def _roll_over(self) -> None:
        backups = [
            self.log_path.with_name(f"{self.log_path.name}.{i}")
            for i in range(1, self.backup_count + 1)
        ]
        if not backups:
            self.log_path.unlink()
            return
        # .N-1 -> .N, ..., .1 -> .2; os.replace drops whatever was at .N
        for newer, older in zip(reversed(backups[:-1]), reversed(backups[1:])):
            if newer.exists():
                os.replace(newer, older)
        os.replace(self.log_path, backups[0])
