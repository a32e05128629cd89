"""Session start/end workflows around the audit ledger."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from task_relay.audit.ledger import AuditLedger, LedgerState
from task_relay.audit.recovery import RecoveryAssessment, SessionRecoveryDetector

START_SESSION_WORKFLOW = "start-session"
END_SESSION_WORKFLOW = "end-session"


@dataclass(slots=True)
class SessionEndResult:
    """Outcome of the end-session workflow."""

    archived_to: Path | None
    counts: dict[str, int]


class SessionManager:
    """Opens and closes ledger sessions.

    Ending a session marks the ledger ``closing`` before anything else is
    written and ``archived`` only after rotation, so an interruption anywhere
    in between is picked up by the recovery detector on the next start.
    """

    def __init__(self, ledger: AuditLedger, detector: SessionRecoveryDetector) -> None:
        self.ledger = ledger
        self.detector = detector

    def start_session(self, description: str = "") -> RecoveryAssessment:
        assessment = self.detector.recover(START_SESSION_WORKFLOW)
        self.ledger.write_state(LedgerState.OPEN, workflow=START_SESSION_WORKFLOW)
        self.ledger.workflow_start(START_SESSION_WORKFLOW, description)
        self.ledger.step(
            START_SESSION_WORKFLOW,
            "recovery_check",
            details=f"state={assessment.state.value} source={assessment.source}",
            description=assessment.reason,
        )
        self.ledger.workflow_complete(START_SESSION_WORKFLOW)
        return assessment

    def end_session(self, counts: dict[str, int], description: str = "") -> SessionEndResult:
        self.ledger.write_state(LedgerState.CLOSING, workflow=END_SESSION_WORKFLOW)
        self.ledger.workflow_start(END_SESSION_WORKFLOW, description)
        self.ledger.step(
            END_SESSION_WORKFLOW,
            "staging_counts",
            details=" ".join(f"{key}={value}" for key, value in sorted(counts.items())),
        )
        self.ledger.workflow_complete(END_SESSION_WORKFLOW)
        archived_to = self.ledger.archive_session()
        return SessionEndResult(archived_to=archived_to, counts=counts)

    def archive_version(self, version: str) -> Path:
        return self.ledger.archive_version(version)
