"""Append-only audit log of install, update and verification events.

Entries are JSON lines in $GREATER_HOME/audit.log. The file is rotated once
it reaches MAX_LOG_SIZE, keeping RETENTION rotated copies.
"""

from __future__ import annotations

import logging
from datetime import UTC
from datetime import datetime
from pathlib import Path
from typing import Any
from typing import Literal

from pydantic import Field
from pydantic import ValidationError

from greater_library.models.base import CamelCaseModel
from greater_library.storage.paths import get_audit_log_path

logger = logging.getLogger(__name__)

MAX_LOG_SIZE = 5 * 1024 * 1024
RETENTION = 3

AuditAction = Literal[
    "install",
    "update",
    "remove",
    "verify",
    "fetch",
    "config_change",
    "security_warning",
]


class AuditLogEntry(CamelCaseModel):
    """One audit log line."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction
    component: str | None = None
    ref: str | None = None
    checksums: dict[str, str] | None = None
    verified: bool | None = None
    warnings: list[str] | None = None
    details: dict[str, Any] | None = None
    success: bool
    error_message: str | None = None


class AuditLog:
    """JSONL audit log with size-based rotation."""

    def __init__(self, log_path: Path | None = None, max_size: int = MAX_LOG_SIZE, retention: int = RETENTION) -> None:
        """Initialize audit log.

        Args:
            log_path: Log file. Defaults to $GREATER_HOME/audit.log
            max_size: Size in bytes at which the log is rotated
            retention: Number of rotated files kept
        """
        self.log_path = log_path or get_audit_log_path()
        self.max_size = max_size
        self.retention = retention

    def _rotated_path(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self.max_size:
            return

        oldest = self._rotated_path(self.retention)
        if oldest.exists():
            oldest.unlink()
        for index in range(self.retention - 1, 0, -1):
            source = self._rotated_path(index)
            if source.exists():
                source.rename(self._rotated_path(index + 1))
        self.log_path.rename(self._rotated_path(1))
        logger.debug(f"Rotated audit log {self.log_path}")

    def write(self, entry: AuditLogEntry) -> None:
        """Append an entry, rotating first if the log is full."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._rotate_if_needed()
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(entry.model_dump_json(by_alias=True, exclude_none=True) + "\n")

    def log_installation(
        self,
        component: str,
        ref: str,
        checksums: dict[str, str],
        verified: bool,
        action: AuditAction = "install",
    ) -> None:
        """Record a successful install or update of one component."""
        self.write(
            AuditLogEntry(
                action=action,
                component=component,
                ref=ref,
                checksums=checksums,
                verified=verified,
                success=True,
            )
        )

    def log_failure(self, action: AuditAction, error: Exception, component: str | None = None, ref: str | None = None) -> None:
        """Record a failed operation."""
        self.write(
            AuditLogEntry(
                action=action,
                component=component,
                ref=ref,
                success=False,
                error_message=str(error),
            )
        )

    def log_security_warning(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Record a security warning such as a forced overwrite."""
        logger.warning(message)
        self.write(
            AuditLogEntry(
                action="security_warning",
                warnings=[message],
                details=details,
                success=True,
            )
        )

    def read(
        self,
        limit: int | None = None,
        action: str | None = None,
        component: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditLogEntry]:
        """Read entries, newest first.

        Malformed lines are skipped.

        Args:
            limit: Maximum number of entries
            action: Only entries with this action
            component: Only entries for this component
            since: Only entries at or after this time

        Returns:
            Matching entries sorted by timestamp descending
        """
        if not self.log_path.exists():
            return []

        entries: list[AuditLogEntry] = []
        for line in self.log_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entries.append(AuditLogEntry.model_validate_json(line))
            except ValidationError:
                logger.debug(f"Skipping malformed audit entry: {line[:80]}")

        if action:
            entries = [e for e in entries if e.action == action]
        if component:
            entries = [e for e in entries if e.component == component]
        if since:
            if since.tzinfo is None:
                since = since.replace(tzinfo=UTC)
            entries = [e for e in entries if e.timestamp >= since]

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        if limit and limit > 0:
            entries = entries[:limit]
        return entries

    def clear(self) -> None:
        """Remove the log and its rotated copies."""
        if self.log_path.exists():
            self.log_path.unlink()
        for index in range(1, self.retention + 1):
            rotated = self._rotated_path(index)
            if rotated.exists():
                rotated.unlink()
