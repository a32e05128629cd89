"""Task builders and an in-memory issue tracker shared by tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from task_relay.broker.codec import datetime_to_stamp, render_task
from task_relay.broker.models import Priority, Task
from task_relay.errors import ConversionError
from task_relay.issues.backend.base import (
    CreatedIssue,
    IssueCreateRequest,
    IssueFilter,
    TrackedIssue,
    TrackedMilestone,
)

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=UTC)


def fixed_clock() -> datetime:
    return FIXED_NOW
@dataclass
class FakeIssueTracker:
    """In-memory tracker recording every request it receives."""

    milestones: list[TrackedMilestone] = field(default_factory=list)
    issues: list[TrackedIssue] = field(default_factory=list)
    created: list[IssueCreateRequest] = field(default_factory=list)
    fail_titles: dict[str, ConversionError] = field(default_factory=dict)
    list_error: ConversionError | None = None
    next_number: int = 1

    def create_issue(self, request: IssueCreateRequest) -> CreatedIssue:
        if request.title in self.fail_titles:
            raise self.fail_titles[request.title]
        number = self.next_number
        self.next_number += 1
        self.created.append(request)
        self.issues.append(
            TrackedIssue(
                number=number,
                title=request.title,
                state="open",
                labels=list(request.labels),
                milestone=request.milestone,
            ),
        )
        return CreatedIssue(number=number, url=f"https://github.com/acme/tracker/issues/{number}")

    def list_issues(self, issue_filter: IssueFilter) -> list[TrackedIssue]:
        if self.list_error is not None:
            raise self.list_error
        return self.issues[: issue_filter.limit]

    def list_milestones(self) -> list[TrackedMilestone]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.milestones)

    def close_issue(self, number: int, comment: str | None = None) -> TrackedIssue:
        for index, issue in enumerate(self.issues):
            if issue.number == number:
                closed = TrackedIssue(
                    number=issue.number,
                    title=issue.title,
                    state="closed",
                    labels=issue.labels,
                    milestone=issue.milestone,
                )
                self.issues[index] = closed
                return closed
        raise ConversionError(
            f"issue {number} not found",
            reason_code="close_issue_not_found",
            transient=False,
        )


def make_task(  # noqa: PLR0913
    *,
    source: str = "acme/proj-a",
    target: str = "acme/proj-b",
    title: str = "Add retry to sync job",
    body: str = "Sync fails on flaky networks.",
    created: datetime = FIXED_NOW,
    token: str = "proj-a",
    slug: str = "add-retry",
    priority: Priority = Priority.MEDIUM,
    milestone: str | None = None,
) -> Task:
    return Task(
        stamp=datetime_to_stamp(created),
        token=token,
        slug=slug,
        source=source,
        target=target,
        created=created,
        title=title,
        body=body,
        priority=priority,
        milestone=milestone,
    )


def write_task(directory: Path, task: Task) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / task.filename
    path.write_bytes(render_task(task))
    return path
