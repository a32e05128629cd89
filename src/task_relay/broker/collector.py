"""Collector: sweeps repository outboxes into the central outbox."""

from __future__ import annotations

import logging
from pathlib import Path

from task_relay.audit.ledger import AuditLedger
from task_relay.broker.models import CollectSummary, RegistryEntry
from task_relay.broker.staging import StagingLayout, list_task_files, move_task

logger = logging.getLogger(__name__)

COLLECT_WORKFLOW = "collect"


class Collector:
    """Moves staged tasks from every registered outbox into one directory."""

    def __init__(self, *, layout: StagingLayout, ledger: AuditLedger) -> None:
        self.layout = layout
        self.ledger = ledger

    def collect(self, entries: list[RegistryEntry], central_outbox: Path) -> CollectSummary:
        summary = CollectSummary()
        central_outbox.mkdir(parents=True, exist_ok=True)
        self.ledger.workflow_start(COLLECT_WORKFLOW, f"repositories={len(entries)}")

        for entry in entries:
            outbox = self.layout.outbox(entry.path)
            try:
                files = list_task_files(outbox)
            except OSError as error:
                summary.errors.append(entry.repository)
                logger.warning("Cannot list outbox of %s: %s", entry.repository, error)
                continue
            if not files:
                continue
            repo_ledger = AuditLedger.for_repository(entry.path, self.layout)
            for path in files:
                try:
                    moved = move_task(path, central_outbox)
                except OSError as error:
                    summary.failed += 1
                    if entry.repository not in summary.errors:
                        summary.errors.append(entry.repository)
                    logger.warning(
                        "Failed to collect %s from %s: %s",
                        path.name,
                        entry.repository,
                        error,
                    )
                    self.ledger.workflow_error(
                        COLLECT_WORKFLOW,
                        "collect_task",
                        details=f"repository={entry.repository} file={path.name}",
                        description=str(error),
                    )
                    continue
                summary.collected += 1
                logger.info("Collected %s from %s", moved.name, entry.repository)
                self.ledger.step(
                    COLLECT_WORKFLOW,
                    "collect_task",
                    details=f"repository={entry.repository} file={moved.name}",
                )
                repo_ledger.step(
                    COLLECT_WORKFLOW,
                    "task_collected",
                    details=f"file={moved.name} to={central_outbox}",
                )

        self.ledger.workflow_complete(
            COLLECT_WORKFLOW,
            details=f"collected={summary.collected} failed={summary.failed}",
        )
        return summary
