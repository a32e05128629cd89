"""Startup detection of an unclean previous session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from task_relay.audit.ledger import AuditAction, AuditEntry, AuditLedger, LedgerState
from task_relay.errors import LedgerError

logger = logging.getLogger(__name__)


class RecoveryState(str, Enum):
    """Outcome of the startup ledger inspection."""

    CLEAN = "clean"
    NEEDS_RECOVERY = "needs_recovery"
    ERROR = "error"


@dataclass(slots=True)
class RecoveryAssessment:
    """Detector verdict with the evidence it was based on."""

    state: RecoveryState
    reason: str
    source: str
    last_entry: AuditEntry | None = None
    archived_to: Path | None = None


class SessionRecoveryDetector:
    """Decides whether the previous run ended cleanly.

    The ``ledger_state.json`` marker is authoritative when present.  Ledgers
    written before the marker existed fall back to inspecting the last line:
    any entry of a termination workflow in the last position means its
    archive step never ran.  The tail check only sees the final line, so an
    unrelated workflow recorded after an interrupted termination hides it.
    """

    def __init__(self, ledger: AuditLedger, *, termination_workflows: tuple[str, ...]) -> None:
        self.ledger = ledger
        self.termination_workflows = termination_workflows

    def detect(self) -> RecoveryAssessment:
        try:
            state = self.ledger.read_state()
        except LedgerError as error:
            return RecoveryAssessment(state=RecoveryState.ERROR, reason=str(error), source="marker")
        if state is not None:
            return self._from_marker(state)
        try:
            lines = self.ledger.read_lines()
        except LedgerError as error:
            return RecoveryAssessment(state=RecoveryState.ERROR, reason=str(error), source="tail")
        return self._from_tail(lines)

    def recover(self, workflow: str) -> RecoveryAssessment:
        """Run the startup transition: proceed, force-archive, or refuse."""

        assessment = self.detect()
        if assessment.state == RecoveryState.ERROR:
            raise LedgerError(f"Ledger recovery check failed: {assessment.reason}")
        if assessment.state == RecoveryState.CLEAN:
            return assessment

        logger.warning(
            "Previous session did not finish cleanly (%s); archiving ledger %s",
            assessment.reason,
            self.ledger.path,
        )
        try:
            assessment.archived_to = self.ledger.archive_session()
        except OSError as error:
            raise LedgerError(f"Forced ledger archive failed: {error}") from error
        self.ledger.step(
            workflow,
            "recovery_archive",
            details=f"archived_to={assessment.archived_to or '-'}",
            description=f"Recovered unclean session: {assessment.reason}",
        )
        return assessment

    def _from_marker(self, state: LedgerState) -> RecoveryAssessment:
        if state == LedgerState.CLOSING:
            return RecoveryAssessment(
                state=RecoveryState.NEEDS_RECOVERY,
                reason="termination workflow started but ledger was never archived",
                source="marker",
            )
        return RecoveryAssessment(
            state=RecoveryState.CLEAN,
            reason=f"ledger state is {state.value}",
            source="marker",
        )

    def _from_tail(self, lines: list[str]) -> RecoveryAssessment:
        if not lines:
            return RecoveryAssessment(
                state=RecoveryState.CLEAN,
                reason="ledger is absent or empty",
                source="tail",
            )
        try:
            last = AuditEntry.from_line(lines[-1])
        except ValueError:
            return RecoveryAssessment(
                state=RecoveryState.NEEDS_RECOVERY,
                reason="last ledger line is torn",
                source="tail",
            )

        if last.workflow in self.termination_workflows:
            if last.action == AuditAction.WORKFLOW_START:
                return RecoveryAssessment(
                    state=RecoveryState.NEEDS_RECOVERY,
                    reason=f"{last.workflow} started but never completed",
                    source="tail",
                    last_entry=last,
                )
            reason = (
                f"{last.workflow} completed but archive step did not run"
                if last.action == AuditAction.WORKFLOW_COMPLETE
                else f"{last.workflow} stopped at {last.action.value}:{last.step}"
            )
            return RecoveryAssessment(
                state=RecoveryState.NEEDS_RECOVERY,
                reason=reason,
                source="tail",
                last_entry=last,
            )
        return RecoveryAssessment(
            state=RecoveryState.CLEAN,
            reason=f"last entry is {last.workflow}:{last.action.value}",
            source="tail",
            last_entry=last,
        )
