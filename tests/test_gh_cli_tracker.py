from __future__ import annotations

import json
import subprocess

import allure
import pytest

from task_relay.errors import ConversionError
from task_relay.issues.backend import GhCliIssueTracker, IssueCreateRequest, IssueFilter
from task_relay.issues.backend import gh_cli

pytestmark = [
    allure.epic("Issue Conversion"),
    allure.feature("GitHub CLI Tracker"),
]


class _Recorder:
    def __init__(self, *results: subprocess.CompletedProcess | Exception) -> None:
        self.results = list(results)
        self.calls: list[dict] = []

    def __call__(self, argv, **kwargs):
        self.calls.append({"argv": argv, **kwargs})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_create_issue_pipes_body_and_parses_number(monkeypatch) -> None:
    recorder = _Recorder(_completed("https://github.com/acme/hub/issues/42\n"))
    monkeypatch.setattr(gh_cli.subprocess, "run", recorder)
    tracker = GhCliIssueTracker(repo="acme/hub", timeout_seconds=5)

    created = tracker.create_issue(
        IssueCreateRequest(title="Fix sync", body="## Context", labels=["bug"], milestone="v1.2"),
    )

    assert created.number == 42
    assert created.url == "https://github.com/acme/hub/issues/42"
    call = recorder.calls[0]
    assert call["argv"] == [
        "gh",
        "issue",
        "create",
        "--title",
        "Fix sync",
        "--body-file",
        "-",
        "--label",
        "bug",
        "--milestone",
        "v1.2",
        "--repo",
        "acme/hub",
    ]
    assert call["input"] == "## Context"
    assert call["timeout"] == 5


def test_create_issue_rejects_unparseable_output(monkeypatch) -> None:
    monkeypatch.setattr(gh_cli.subprocess, "run", _Recorder(_completed("created\n")))

    with pytest.raises(ConversionError) as excinfo:
        GhCliIssueTracker().create_issue(IssueCreateRequest(title="t", body="b"))

    assert excinfo.value.reason_code == "create_issue_unparseable_output"


def test_nonzero_exit_is_classified(monkeypatch) -> None:
    monkeypatch.setattr(
        gh_cli.subprocess,
        "run",
        _Recorder(_completed(stderr="HTTP 502: Bad Gateway connection reset", returncode=1)),
    )

    with pytest.raises(ConversionError) as excinfo:
        GhCliIssueTracker().create_issue(IssueCreateRequest(title="t", body="b"))

    assert excinfo.value.reason_code == "create_issue_transient"
    assert excinfo.value.transient is True
    assert "exit 1" in str(excinfo.value)


@pytest.mark.parametrize(
    ("error", "reason_code", "transient"),
    [
        (FileNotFoundError("gh"), "list_issues_command_not_found", False),
        (subprocess.TimeoutExpired(cmd="gh", timeout=5), "list_issues_timeout", True),
        (PermissionError("denied"), "list_issues_start_failed", True),
    ],
)
def test_process_failures_become_conversion_errors(
    monkeypatch,
    error: Exception,
    reason_code: str,
    transient: bool,
) -> None:
    monkeypatch.setattr(gh_cli.subprocess, "run", _Recorder(error))

    with pytest.raises(ConversionError) as excinfo:
        GhCliIssueTracker().list_issues(IssueFilter())

    assert excinfo.value.reason_code == reason_code
    assert excinfo.value.transient is transient


def test_list_issues_normalizes_payload(monkeypatch) -> None:
    payload = [
        {
            "number": 3,
            "title": "Fix sync",
            "state": "OPEN",
            "labels": [{"name": "bug"}, {"id": "x"}],
            "milestone": {"title": "v1.2"},
        },
        {"number": 4, "title": "No milestone", "state": "CLOSED", "labels": [], "milestone": None},
        {"title": "missing number"},
    ]
    recorder = _Recorder(_completed(json.dumps(payload)))
    monkeypatch.setattr(gh_cli.subprocess, "run", recorder)

    issues = GhCliIssueTracker().list_issues(IssueFilter(state="all", limit=50))

    assert [(issue.number, issue.state, issue.labels, issue.milestone) for issue in issues] == [
        (3, "open", ["bug"], "v1.2"),
        (4, "closed", [], None),
    ]
    assert recorder.calls[0]["argv"][:7] == ["gh", "issue", "list", "--state", "all", "--limit", "50"]


def test_list_milestones_reads_paginated_pages_without_repo_flag(monkeypatch) -> None:
    pages = json.dumps([{"number": 1, "title": "v1.1", "state": "closed"}]) + json.dumps(
        [{"number": 2, "title": "v1.2", "state": "open", "description": "Spring"}],
    )
    recorder = _Recorder(_completed(pages))
    monkeypatch.setattr(gh_cli.subprocess, "run", recorder)

    milestones = GhCliIssueTracker(repo="acme/hub").list_milestones()

    assert [(item.id, item.title, item.state) for item in milestones] == [
        ("1", "v1.1", "closed"),
        ("2", "v1.2", "open"),
    ]
    assert milestones[1].description == "Spring"
    argv = recorder.calls[0]["argv"]
    assert argv == ["gh", "api", "--paginate", "repos/acme/hub/milestones?state=all&per_page=100"]


def test_close_issue_comments_and_reports_state(monkeypatch) -> None:
    recorder = _Recorder(
        _completed(""),
        _completed(json.dumps({"number": 9, "title": "Fix sync", "state": "CLOSED", "labels": []})),
    )
    monkeypatch.setattr(gh_cli.subprocess, "run", recorder)

    issue = GhCliIssueTracker().close_issue(9, comment="Done in acme/proj-b")

    assert issue.state == "closed"
    assert recorder.calls[0]["argv"] == [
        "gh",
        "issue",
        "close",
        "9",
        "--comment",
        "Done in acme/proj-b",
    ]
    assert recorder.calls[1]["argv"][:3] == ["gh", "issue", "view"]


def test_custom_command_is_split_like_a_shell(monkeypatch) -> None:
    recorder = _Recorder(_completed("[]"))
    monkeypatch.setattr(gh_cli.subprocess, "run", recorder)

    GhCliIssueTracker(command="env GH_HOST=github.example.com gh").list_issues(IssueFilter())

    assert recorder.calls[0]["argv"][:4] == ["env", "GH_HOST=github.example.com", "gh", "issue"]
