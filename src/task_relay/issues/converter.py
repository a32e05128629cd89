"""Inbox converter: turns delivered tasks into tracked issues."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from task_relay.audit.ledger import AuditLedger
from task_relay.broker.codec import parse_task
from task_relay.broker.models import Task
from task_relay.broker.staging import list_task_files
from task_relay.errors import ConversionError, ValidationError
from task_relay.issues.backend.base import CreatedIssue, IssueCreateRequest, IssueTracker
from task_relay.issues.body import build_issue_body, build_issue_labels
from task_relay.issues.cache import IssueCache

logger = logging.getLogger(__name__)

CONVERT_WORKFLOW = "convert"


@dataclass(slots=True)
class ConvertedTask:
    """One inbox file that became an issue."""

    filename: str
    number: int
    url: str
    milestone: str | None


@dataclass(slots=True)
class ConvertSummary:
    """Aggregate converter counters for CLI reporting."""

    processed: int = 0
    failed: int = 0
    created: list[ConvertedTask] = field(default_factory=list)
    parked: list[str] = field(default_factory=list)
    milestone_warnings: list[str] = field(default_factory=list)
    cleanup_warnings: list[str] = field(default_factory=list)
    cache_refreshed: bool = False
    cache_error: str | None = None


@dataclass(slots=True)
class MilestoneDecision:
    """Resolved milestone plus an optional operator warning."""

    milestone: str | None
    source: str
    warning: str | None = None


class InboxConverter:
    """Creates one issue per inbox task and deletes the file on success."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        tracker: IssueTracker,
        cache: IssueCache,
        ledger: AuditLedger,
        target_version: str | None = None,
        static_labels: tuple[str, ...] = (),
        label_priority: bool = False,
        cache_list_limit: int = 500,
    ) -> None:
        self.tracker = tracker
        self.cache = cache
        self.ledger = ledger
        self.target_version = target_version
        self.static_labels = static_labels
        self.label_priority = label_priority
        self.cache_list_limit = cache_list_limit

    def convert(self, inbox: Path) -> ConvertSummary:
        summary = ConvertSummary()
        files = list_task_files(inbox, strict=False)
        self.ledger.workflow_start(CONVERT_WORKFLOW, f"pending={len(files)}")

        for path in files:
            try:
                self._convert_one(path, summary)
            except ValidationError as error:
                self._park(summary, path, "parse_task", error)
            except ConversionError as error:
                self._park(summary, path, f"create_issue:{error.reason_code}", error)
            except OSError as error:
                self._park(summary, path, "io_error", error)
            except Exception as error:  # noqa: BLE001
                logger.exception("Unexpected error converting %s", path.name)
                self._park(summary, path, "unexpected_error", error)

        if summary.processed > 0:
            self._refresh_cache(summary)

        self.ledger.workflow_complete(
            CONVERT_WORKFLOW,
            details=f"processed={summary.processed} failed={summary.failed}",
        )
        return summary

    def resolve_milestone(self, task: Task) -> MilestoneDecision:
        """Pick the milestone: explicit override, verified target version, or none."""

        if task.milestone:
            return MilestoneDecision(milestone=task.milestone, source="explicit")
        if not self.target_version:
            return MilestoneDecision(milestone=None, source="none")
        if self.cache.find_milestone(self.target_version) is not None:
            return MilestoneDecision(milestone=self.target_version, source="target_version")
        return MilestoneDecision(
            milestone=None,
            source="unverified_target_version",
            warning=(
                f"Milestone {self.target_version!r} not found in issue cache; "
                "creating issue without milestone"
            ),
        )

    def _convert_one(self, path: Path, summary: ConvertSummary) -> None:
        task = parse_task(path.name, path.read_bytes())
        decision = self.resolve_milestone(task)
        if decision.warning is not None:
            logger.warning("%s: %s", path.name, decision.warning)
            summary.milestone_warnings.append(f"{path.name}: {decision.warning}")

        created = self.tracker.create_issue(
            IssueCreateRequest(
                title=task.title,
                body=build_issue_body(task, filename=path.name),
                labels=build_issue_labels(
                    task,
                    static_labels=self.static_labels,
                    label_priority=self.label_priority,
                ),
                milestone=decision.milestone,
            ),
        )
        summary.processed += 1
        summary.created.append(
            ConvertedTask(
                filename=path.name,
                number=created.number,
                url=created.url,
                milestone=decision.milestone,
            ),
        )
        self._record_created(path, created, decision)
        self._remove_converted(path, created, summary)

    def _record_created(
        self,
        path: Path,
        created: CreatedIssue,
        decision: MilestoneDecision,
    ) -> None:
        logger.info("Created issue #%d from %s", created.number, path.name)
        self.ledger.step(
            CONVERT_WORKFLOW,
            "create_issue",
            details=(
                f"file={path.name} issue={created.number} "
                f"milestone={decision.milestone or '-'} milestone_source={decision.source}"
            ),
            description=created.url,
        )

    def _remove_converted(self, path: Path, created: CreatedIssue, summary: ConvertSummary) -> None:
        try:
            path.unlink()
        except OSError as error:
            message = f"{path.name}: issue #{created.number} created but file not removed ({error})"
            logger.warning("%s", message)
            summary.cleanup_warnings.append(message)
            self.ledger.step(
                CONVERT_WORKFLOW,
                "cleanup_failed",
                details=f"file={path.name} issue={created.number}",
                description=str(error),
            )

    def _refresh_cache(self, summary: ConvertSummary) -> None:
        try:
            self.cache.refresh(self.tracker, limit=self.cache_list_limit)
        except (ConversionError, OSError) as error:
            summary.cache_error = str(error)
            logger.warning("Issue cache refresh failed: %s", error)
            self.ledger.step(CONVERT_WORKFLOW, "cache_refresh_failed", description=str(error))
            return
        summary.cache_refreshed = True
        self.ledger.step(CONVERT_WORKFLOW, "cache_refresh")

    def _park(self, summary: ConvertSummary, path: Path, step: str, error: Exception) -> None:
        summary.failed += 1
        summary.parked.append(path.name)
        logger.warning("Left %s in inbox: %s", path.name, error)
        self.ledger.workflow_error(
            CONVERT_WORKFLOW,
            step,
            details=f"file={path.name}",
            description=str(error),
        )
