"""Append-only per-repository audit ledger.

One line per event::

    <YYYY-MM-DD HH:mm:ss>|<workflow>|<action>|<step>|<details>|<description>

The current ledger lives at ``<repo>/<staging>/logs/workflow.log``.  Session
boundaries rotate it into ``logs/sessions/``; version boundaries concatenate
all session files into ``logs/archive/<version>.log``.  Next to the ledger a
small ``ledger_state.json`` marker records whether the ledger is open, in
the middle of a termination workflow, or archived.

Ledger writes never raise: a failed append is routed to the
``task_relay.audit.fallback`` logger so the operation being recorded still
completes.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from task_relay.broker.staging import StagingLayout
from task_relay.documents import load_json, utc_now, write_json
from task_relay.errors import LedgerError

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("task_relay.audit.fallback")

LEDGER_FILE_NAME = "workflow.log"
STATE_FILE_NAME = "ledger_state.json"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FIELD_SEPARATOR = "|"
FIELD_COUNT = 6


class AuditAction(str, Enum):
    """Kinds of ledger entries."""

    WORKFLOW_START = "workflow_start"
    STEP = "step"
    WORKFLOW_COMPLETE = "workflow_complete"
    WORKFLOW_ERROR = "workflow_error"


class LedgerState(str, Enum):
    """Explicit lifecycle marker stored next to the ledger."""

    OPEN = "open"
    CLOSING = "closing"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """One ledger line."""

    timestamp: str
    workflow: str
    action: AuditAction
    step: str = ""
    details: str = ""
    description: str = ""

    def to_line(self) -> str:
        return FIELD_SEPARATOR.join(
            _clean_field(value)
            for value in (
                self.timestamp,
                self.workflow,
                self.action.value,
                self.step,
                self.details,
                self.description,
            )
        )

    @classmethod
    def from_line(cls, line: str) -> AuditEntry:
        """Parse a ledger line; raises ``ValueError`` on a torn or foreign line."""

        parts = line.rstrip("\r\n").split(FIELD_SEPARATOR)
        if len(parts) != FIELD_COUNT:
            raise ValueError(f"Expected {FIELD_COUNT} fields, got {len(parts)}: {line!r}")
        timestamp, workflow, action, step, details, description = parts
        datetime.strptime(timestamp, TIMESTAMP_FORMAT)
        return cls(
            timestamp=timestamp,
            workflow=workflow,
            action=AuditAction(action),
            step=step,
            details=details,
            description=description,
        )


class AuditLedger:
    """Append-only ledger for one repository."""

    def __init__(self, log_dir: Path, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.log_dir = log_dir
        self.clock = clock

    @classmethod
    def for_repository(cls, repo_path: Path, layout: StagingLayout) -> AuditLedger:
        return cls(layout.logs(repo_path))

    @property
    def path(self) -> Path:
        return self.log_dir / LEDGER_FILE_NAME

    @property
    def state_path(self) -> Path:
        return self.log_dir / STATE_FILE_NAME

    @property
    def sessions_dir(self) -> Path:
        return self.log_dir / "sessions"

    @property
    def archive_dir(self) -> Path:
        return self.log_dir / "archive"

    def append(self, entry: AuditEntry) -> None:
        line = entry.to_line()
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8", errors="backslashreplace") as handle:
                handle.write(line + "\n")
        except (OSError, ValueError) as error:
            fallback_logger.warning("Ledger write failed for %s (%s): %s", self.path, error, line)

    def record(
        self,
        workflow: str,
        action: AuditAction,
        step: str = "",
        details: str = "",
        description: str = "",
    ) -> AuditEntry:
        entry = AuditEntry(
            timestamp=self.clock().strftime(TIMESTAMP_FORMAT),
            workflow=workflow,
            action=action,
            step=step,
            details=details,
            description=description,
        )
        self.append(entry)
        return entry

    def workflow_start(self, workflow: str, description: str = "") -> AuditEntry:
        return self.record(workflow, AuditAction.WORKFLOW_START, "start", "", description)

    def step(
        self,
        workflow: str,
        step: str,
        details: str = "",
        description: str = "",
    ) -> AuditEntry:
        return self.record(workflow, AuditAction.STEP, step, details, description)

    def workflow_complete(self, workflow: str, details: str = "", description: str = "") -> AuditEntry:
        return self.record(workflow, AuditAction.WORKFLOW_COMPLETE, "complete", details, description)

    def workflow_error(
        self,
        workflow: str,
        step: str,
        details: str = "",
        description: str = "",
    ) -> AuditEntry:
        return self.record(workflow, AuditAction.WORKFLOW_ERROR, step, details, description)

    def read_lines(self) -> list[str]:
        """Return raw non-empty ledger lines; a missing ledger has none."""

        if not self.path.exists():
            return []
        try:
            text = self.path.read_text("utf-8")
        except (OSError, UnicodeDecodeError) as error:
            raise LedgerError(f"Ledger {self.path} is unreadable: {error}") from error
        return [line for line in text.splitlines() if line.strip()]

    def read_entries(self) -> list[AuditEntry]:
        """Parse the current ledger, skipping torn lines."""

        entries: list[AuditEntry] = []
        for line in self.read_lines():
            try:
                entries.append(AuditEntry.from_line(line))
            except ValueError:
                logger.warning("Skipping malformed ledger line in %s: %r", self.path, line)
        return entries

    def read_state(self) -> LedgerState | None:
        """Return the explicit state marker, or ``None`` when no marker exists."""

        if not self.state_path.exists():
            return None
        try:
            raw = load_json(self.state_path)
            return LedgerState(raw.get("state"))
        except (OSError, TypeError, ValueError, json.JSONDecodeError) as error:
            raise LedgerError(f"Ledger state {self.state_path} is unreadable: {error}") from error

    def write_state(self, state: LedgerState, *, workflow: str = "") -> None:
        try:
            write_json(
                self.state_path,
                {
                    "state": state.value,
                    "workflow": workflow,
                    "updated_at": self.clock().isoformat(),
                },
            )
        except OSError as error:
            fallback_logger.warning(
                "Ledger state write failed for %s (%s): state=%s",
                self.state_path,
                error,
                state.value,
            )

    def archive_session(self) -> Path | None:
        """Rotate the current ledger into ``sessions/`` and start a fresh one.

        Returns the session file, or ``None`` when there was nothing to rotate.
        """

        target: Path | None = None
        if self.path.exists() and self.path.stat().st_size > 0:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            target = self.sessions_dir / f"session_{self.clock().strftime('%Y%m%d-%H%M%S')}.log"
            if target.exists():
                _concatenate([self.path], target)
                self.path.unlink()
            else:
                self.path.rename(target)
            logger.info("Archived ledger %s -> %s", self.path, target)
        elif self.path.exists():
            self.path.unlink()
        self.write_state(LedgerState.ARCHIVED)
        return target

    def archive_version(self, version: str) -> Path:
        """Concatenate every session file and the current ledger into one archive."""

        if not version.strip() or "/" in version or "\\" in version:
            raise ValueError(f"Invalid archive version label: {version!r}")
        sources = sorted(self.sessions_dir.glob("session_*.log")) if self.sessions_dir.is_dir() else []
        if self.path.exists():
            sources.append(self.path)
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        target = self.archive_dir / f"{version}.log"
        _concatenate(sources, target)
        for source in sources:
            source.unlink()
        self.write_state(LedgerState.ARCHIVED)
        logger.info("Archived %d ledger file(s) into %s", len(sources), target)
        return target


def _concatenate(sources: list[Path], target: Path) -> None:
    with target.open("ab") as out:
        for source in sources:
            with source.open("rb") as handle:
                shutil.copyfileobj(handle, out)


def _clean_field(value: str) -> str:
    return value.replace(FIELD_SEPARATOR, "/").replace("\r", " ").replace("\n", " ")
