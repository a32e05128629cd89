"""Issue tracker backend implementations."""

from task_relay.issues.backend.base import (
    CreatedIssue,
    IssueCreateRequest,
    IssueFilter,
    IssueTracker,
    TrackedIssue,
    TrackedMilestone,
)
from task_relay.issues.backend.gh_cli import GhCliIssueTracker

__all__ = [
    "CreatedIssue",
    "GhCliIssueTracker",
    "IssueCreateRequest",
    "IssueFilter",
    "IssueTracker",
    "TrackedIssue",
    "TrackedMilestone",
]
