from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import allure
import pytest

from task_relay.audit.ledger import AuditAction, AuditLedger
from task_relay.broker.models import Priority
from task_relay.errors import ConversionError
from task_relay.issues.backend.base import TrackedMilestone
from task_relay.issues.cache import IssueCache
from task_relay.issues.converter import InboxConverter
from tests.helpers import FIXED_NOW, FakeIssueTracker, fixed_clock, make_task, write_task

pytestmark = [
    allure.epic("Issue Conversion"),
    allure.feature("Inbox Converter"),
]


@pytest.fixture()
def inbox(workspace: Path) -> Path:
    path = workspace / "hub" / "claude" / "inbox"
    path.mkdir(parents=True)
    return path


@pytest.fixture()
def cache(workspace: Path) -> IssueCache:
    return IssueCache(workspace / "hub" / "claude" / "cache", clock=fixed_clock)


def _converter(
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
    **kwargs,
) -> InboxConverter:
    return InboxConverter(tracker=tracker, cache=cache, ledger=ledger, **kwargs)


def test_convert_creates_issue_and_removes_file(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    task_file = write_task(inbox, make_task(target="acme/hub"))

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.processed == 1
    assert summary.failed == 0
    assert not task_file.exists()
    request = tracker.created[0]
    assert request.title == "Add retry to sync job"
    assert "- **Source:** acme/proj-a" in request.body
    assert "Sync fails on flaky networks." in request.body
    assert f"`{task_file.name}`" in request.body
    assert request.milestone is None
    assert summary.created[0].number == 1
    steps = [entry.step for entry in ledger.read_entries() if entry.action == AuditAction.STEP]
    assert steps == ["create_issue", "cache_refresh"]


def test_convert_refreshes_cache_after_successful_batch(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    tracker.milestones.append(TrackedMilestone(id="3", title="v1.2", state="open"))
    write_task(inbox, make_task(target="acme/hub"))

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.cache_refreshed is True
    assert list(cache.issues()) == ["1"]
    assert cache.issues()["1"].cached_at == FIXED_NOW.isoformat()
    assert cache.find_milestone("v1.2") is not None


def test_explicit_milestone_is_used_as_is(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    write_task(inbox, make_task(target="acme/hub", milestone="v9.9"))

    summary = _converter(tracker, cache, ledger, target_version="v1.2").convert(inbox)

    assert tracker.created[0].milestone == "v9.9"
    assert summary.milestone_warnings == []


def test_target_version_applied_when_milestone_is_cached(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    tracker.milestones.append(TrackedMilestone(id="3", title="v1.2", state="open"))
    cache.refresh(tracker)
    write_task(inbox, make_task(target="acme/hub"))

    _converter(tracker, cache, ledger, target_version="v1.2").convert(inbox)

    assert tracker.created[0].milestone == "v1.2"


def test_unverified_target_version_is_omitted_with_warning(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    write_task(inbox, make_task(target="acme/hub"))

    summary = _converter(tracker, cache, ledger, target_version="v1.2").convert(inbox)

    assert summary.processed == 1
    assert tracker.created[0].milestone is None
    assert len(summary.milestone_warnings) == 1
    assert "'v1.2' not found in issue cache" in summary.milestone_warnings[0]


def test_partial_batch_leaves_failed_task_in_inbox(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    files = [
        write_task(
            inbox,
            make_task(
                target="acme/hub",
                slug=f"task-{index}",
                title=f"Task {index}",
                created=FIXED_NOW + timedelta(seconds=index),
            ),
        )
        for index in range(3)
    ]
    tracker.fail_titles["Task 1"] = ConversionError(
        "create_issue failed (exit 1): HTTP 502",
        reason_code="create_issue_transient",
        transient=True,
    )

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.processed == 2
    assert summary.failed == 1
    assert summary.parked == [files[1].name]
    assert [path.exists() for path in files] == [False, True, False]
    assert [request.title for request in tracker.created] == ["Task 0", "Task 2"]
    errors = [entry for entry in ledger.read_entries() if entry.action == AuditAction.WORKFLOW_ERROR]
    assert errors[0].step == "create_issue:create_issue_transient"


def test_invalid_task_stays_in_inbox(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    broken = inbox / make_task().filename
    broken.write_text("no metadata here\n", "utf-8")

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.failed == 1
    assert summary.processed == 0
    assert summary.cache_refreshed is False
    assert broken.exists()
    assert tracker.created == []


def test_cleanup_failure_still_counts_as_processed(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
    monkeypatch,
) -> None:
    task_file = write_task(inbox, make_task(target="acme/hub"))
    real_unlink = Path.unlink

    def _unlink(self, missing_ok=False):
        if self == task_file:
            raise PermissionError(13, "Permission denied", str(self))
        return real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", _unlink)

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.processed == 1
    assert summary.failed == 0
    assert len(summary.cleanup_warnings) == 1
    assert "issue #1 created but file not removed" in summary.cleanup_warnings[0]
    assert task_file.exists()


def test_cache_refresh_failure_does_not_fail_batch(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    tracker.list_error = ConversionError(
        "list_issues failed (exit 1): rate limit",
        reason_code="list_issues_rate_limited",
        transient=True,
    )
    write_task(inbox, make_task(target="acme/hub"))

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.processed == 1
    assert summary.failed == 0
    assert summary.cache_refreshed is False
    assert summary.cache_error == "list_issues failed (exit 1): rate limit"


def test_priority_label_is_opt_in(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    write_task(inbox, make_task(target="acme/hub", priority=Priority.HIGH))

    _converter(
        tracker,
        cache,
        ledger,
        static_labels=("cross-repo",),
        label_priority=True,
    ).convert(inbox)

    assert tracker.created[0].labels == ["cross-repo", "priority:high"]


def test_convert_with_empty_inbox_skips_cache_refresh(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.processed == 0
    assert summary.cache_refreshed is False
    assert not cache.issues_path.exists()


def test_non_utf8_file_name_stays_in_inbox_and_batch_continues(
    inbox: Path,
    tracker: FakeIssueTracker,
    cache: IssueCache,
    ledger: AuditLedger,
) -> None:
    junk = inbox / os.fsdecode(b"2026-03-14T09-26-52-000Z_x\xff.md")
    junk.write_bytes(b"scratch")
    good = write_task(inbox, make_task(target="acme/hub"))

    summary = _converter(tracker, cache, ledger).convert(inbox)

    assert summary.processed == 1
    assert summary.failed == 1
    assert summary.parked == [junk.name]
    assert junk.exists()
    assert not good.exists()
    assert ledger.read_entries()[-1].action == AuditAction.WORKFLOW_COMPLETE
