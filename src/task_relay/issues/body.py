"""Issue body rendering for converted tasks."""

from __future__ import annotations

from task_relay.broker.codec import format_created
from task_relay.broker.models import Task

_BOILERPLATE_SECTIONS = """\
## Dependencies

- None identified

## Effort Estimate

- To be estimated during triage

## Test Criteria

- [ ] Acceptance criteria defined during triage
- [ ] Change verified in the target repository"""


def build_issue_body(task: Task, *, filename: str) -> str:
    """Wrap the task body with origin metadata and fixed triage sections.

    Every converted issue has the same section layout regardless of which
    repository produced the task.
    """

    description = task.body.strip() or "_No description provided._"
    return (
        f"## Context\n"
        f"\n"
        f"- **Source:** {task.source}\n"
        f"- **Type:** {task.type}\n"
        f"- **Created:** {format_created(task.created)}\n"
        f"- **Priority:** {task.priority.value}\n"
        f"- **Origin file:** `{filename}`\n"
        f"\n"
        f"## Description\n"
        f"\n"
        f"{description}\n"
        f"\n"
        f"{_BOILERPLATE_SECTIONS}\n"
    )


def build_issue_labels(
    task: Task,
    *,
    static_labels: tuple[str, ...],
    label_priority: bool,
) -> list[str]:
    labels = list(static_labels)
    if label_priority:
        priority_label = f"priority:{task.priority.value.lower()}"
        if priority_label not in labels:
            labels.append(priority_label)
    return labels
