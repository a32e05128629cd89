"""Runtime wiring shared by CLI controllers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from task_relay.audit.ledger import AuditLedger
from task_relay.audit.recovery import RecoveryAssessment, RecoveryState, SessionRecoveryDetector
from task_relay.broker.models import RegistryEntry
from task_relay.broker.registry import RegistryStore
from task_relay.broker.staging import StagingLayout, count_task_files
from task_relay.config import Settings
from task_relay.documents import utc_now
from task_relay.issues.backend import GhCliIssueTracker, IssueTracker
from task_relay.issues.cache import IssueCache

logger = logging.getLogger(__name__)


def build_issue_tracker(settings: Settings) -> IssueTracker:
    """Create the configured issue tracker adapter."""

    return GhCliIssueTracker(
        command=settings.tracker.gh_command,
        repo=settings.tracker.repo,
        timeout_seconds=settings.tracker.timeout_seconds,
    )


@dataclass(slots=True)
class RelayRuntime:
    """Settings resolved into the stores and ledgers one invocation needs."""

    settings: Settings
    layout: StagingLayout
    registry: RegistryStore
    ledger: AuditLedger
    detector: SessionRecoveryDetector

    @classmethod
    def from_settings(cls, settings: Settings) -> RelayRuntime:
        settings.validate()
        settings.self_path = settings.self_path.expanduser().resolve()
        layout = StagingLayout(staging_dir=settings.staging.staging_dir)
        ledger = AuditLedger(layout.logs(settings.self_path), clock=utc_now)
        return cls(
            settings=settings,
            layout=layout,
            registry=RegistryStore(settings.registry_path),
            ledger=ledger,
            detector=SessionRecoveryDetector(
                ledger,
                termination_workflows=settings.session.termination_workflows,
            ),
        )

    @property
    def workflow(self) -> str:
        return self.settings.session.workflow_name

    @property
    def self_inbox(self) -> Path:
        return self.layout.inbox(self.settings.self_path)

    def recover(self) -> RecoveryAssessment:
        """Startup recovery check; raises ``LedgerError`` when the ledger is unreadable."""

        assessment = self.detector.recover(self.workflow)
        if assessment.state == RecoveryState.NEEDS_RECOVERY:
            logger.warning("Recovered previous session: %s", assessment.reason)
        return assessment

    def collection_entries(self) -> list[RegistryEntry]:
        """Registered repositories plus this repository when it is not registered."""

        entries = self.registry.list()
        self_path = self.settings.self_path
        if not any(
            entry.repository == self.settings.self_repo or entry.path == self_path
            for entry in entries
        ):
            entries.append(
                RegistryEntry(
                    repository=self.settings.self_repo,
                    path=self_path,
                    registered_at="",
                ),
            )
        return entries

    def issue_cache(self) -> IssueCache:
        return IssueCache(self.layout.cache(self.settings.self_path))

    def build_tracker(self) -> IssueTracker:
        return build_issue_tracker(self.settings)

    def staging_counts(self) -> dict[str, int]:
        """Waiting task files per stage, keyed for ledger and status output."""

        counts = {
            "central_outbox": count_task_files(self.settings.central_outbox),
            "self_inbox": count_task_files(self.self_inbox),
        }
        for entry in self.collection_entries():
            counts[f"{entry.repository}:outbox"] = count_task_files(self.layout.outbox(entry.path))
            if entry.path != self.settings.self_path:
                counts[f"{entry.repository}:inbox"] = count_task_files(
                    self.layout.inbox(entry.path),
                )
        return counts


def recovery_lines(assessment: RecoveryAssessment) -> list[str]:
    if assessment.state != RecoveryState.NEEDS_RECOVERY:
        return []
    return [
        f"Recovered unclean session: {assessment.reason} "
        f"(archived_to={assessment.archived_to or '-'})",
    ]
