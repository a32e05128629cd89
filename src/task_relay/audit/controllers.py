"""Controllers for ledger and session CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from task_relay.audit.session import SessionManager
from task_relay.config import Settings
from task_relay.errors import LedgerError
from task_relay.runtime import RelayRuntime, recovery_lines


@dataclass(slots=True)
class LedgerCommand:
    """CLI input for ledger inspection and recovery."""

    home: Path | None


@dataclass(slots=True)
class LedgerTailCommand:
    """CLI input for printing the newest ledger lines."""

    home: Path | None
    lines: int = 20


@dataclass(slots=True)
class LedgerArchiveCommand:
    """CLI input for rolling session files into a version archive."""

    home: Path | None
    version: str


@dataclass(slots=True)
class SessionCommand:
    """CLI input for session start/end."""

    home: Path | None
    description: str = ""


class AuditCliController:
    """Ledger inspection plus session lifecycle commands."""

    def status(self, command: LedgerCommand) -> list[str]:
        runtime = _runtime(command.home)
        ledger = runtime.ledger
        assessment = runtime.detector.detect()
        try:
            marker = ledger.read_state()
        except LedgerError:
            marker_label = "unreadable"
        else:
            marker_label = marker.value if marker is not None else "-"
        lines = [
            f"Ledger: {ledger.path}",
            f"Marker: {marker_label}",
            f"Recovery: state={assessment.state.value} source={assessment.source} "
            f"reason={assessment.reason}",
        ]
        if assessment.last_entry is not None:
            lines.append(f"Last entry: {assessment.last_entry.to_line()}")
        sessions = (
            sorted(ledger.sessions_dir.glob("session_*.log")) if ledger.sessions_dir.is_dir() else []
        )
        lines.append(f"Session files: {len(sessions)}")
        return lines

    def tail(self, command: LedgerTailCommand) -> list[str]:
        runtime = _runtime(command.home)
        lines = runtime.ledger.read_lines()
        if not lines:
            return [f"Ledger {runtime.ledger.path} is empty."]
        return lines[-command.lines :]

    def recover(self, command: LedgerCommand) -> list[str]:
        runtime = _runtime(command.home)
        assessment = runtime.recover()
        return recovery_lines(assessment) or [
            f"Ledger is clean: {assessment.reason}",
        ]

    def archive(self, command: LedgerArchiveCommand) -> list[str]:
        runtime = _runtime(command.home)
        target = _session_manager(runtime).archive_version(command.version)
        return [f"Archived ledger sessions into {target}"]

    def start_session(self, command: SessionCommand) -> list[str]:
        runtime = _runtime(command.home)
        assessment = _session_manager(runtime).start_session(command.description)
        lines = recovery_lines(assessment)
        lines.append(f"Session started: {runtime.settings.self_repo}")
        lines.extend(_count_lines(runtime.staging_counts()))
        return lines

    def end_session(self, command: SessionCommand) -> list[str]:
        runtime = _runtime(command.home)
        result = _session_manager(runtime).end_session(
            runtime.staging_counts(),
            command.description,
        )
        lines = [f"Session ended: archived_to={result.archived_to or '-'}"]
        lines.extend(_count_lines(result.counts))
        return lines


def _session_manager(runtime: RelayRuntime) -> SessionManager:
    return SessionManager(runtime.ledger, runtime.detector)


def _count_lines(counts: dict[str, int]) -> list[str]:
    return [f"  {key}={value}" for key, value in sorted(counts.items())]


def _runtime(home: Path | None) -> RelayRuntime:
    return RelayRuntime.from_settings(Settings.from_env(home=home))
