"""Issue tracker interface consumed by the inbox converter and cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(slots=True)
class IssueCreateRequest:
    """Inputs required to create one issue."""

    title: str
    body: str
    labels: list[str] = field(default_factory=list)
    milestone: str | None = None


@dataclass(slots=True)
class CreatedIssue:
    """Tracker response for a created issue."""

    number: int
    url: str


@dataclass(slots=True)
class IssueFilter:
    """Listing filter; ``state`` is ``open``, ``closed``, or ``all``."""

    state: str = "all"
    labels: tuple[str, ...] = ()
    milestone: str | None = None
    limit: int = 500


@dataclass(slots=True)
class TrackedIssue:
    """Issue as reported by the tracker."""

    number: int
    title: str
    state: str
    labels: list[str] = field(default_factory=list)
    milestone: str | None = None


@dataclass(slots=True)
class TrackedMilestone:
    """Milestone as reported by the tracker."""

    id: str
    title: str
    state: str
    description: str = ""
    created_at: str = ""


class IssueTracker(Protocol):
    """Protocol implemented by tracker adapters.

    Every failure is raised as ``ConversionError``.
    """

    def create_issue(self, request: IssueCreateRequest) -> CreatedIssue:
        """Create an issue and return its number and URL."""

    def list_issues(self, issue_filter: IssueFilter) -> list[TrackedIssue]:
        """List issues matching ``issue_filter``."""

    def list_milestones(self) -> list[TrackedMilestone]:
        """List every milestone regardless of state."""

    def close_issue(self, number: int, comment: str | None = None) -> TrackedIssue:
        """Close an issue, optionally leaving a comment, and return it."""
