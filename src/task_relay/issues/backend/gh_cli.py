"""Subprocess-based issue tracker adapter for the GitHub CLI."""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
from typing import Any

from task_relay.errors import ConversionError
from task_relay.issues.backend.base import (
    CreatedIssue,
    IssueCreateRequest,
    IssueFilter,
    TrackedIssue,
    TrackedMilestone,
)
from task_relay.issues.failure_classifier import classify_tracker_failure

logger = logging.getLogger(__name__)

_ISSUE_JSON_FIELDS = "number,title,state,labels,milestone"


class GhCliIssueTracker:
    """Run ``gh`` commands; every failure surfaces as ``ConversionError``."""

    def __init__(
        self,
        *,
        command: str = "gh",
        repo: str | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.command = command
        self.repo = repo
        self.timeout_seconds = timeout_seconds

    def create_issue(self, request: IssueCreateRequest) -> CreatedIssue:
        args = ["issue", "create", "--title", request.title, "--body-file", "-"]
        for label in request.labels:
            args.extend(["--label", label])
        if request.milestone:
            args.extend(["--milestone", request.milestone])
        stdout = self._run(args, operation="create_issue", input_text=request.body)

        lines = [line.strip() for line in stdout.splitlines() if line.strip()]
        url = lines[-1] if lines else ""
        try:
            number = int(url.rstrip("/").rsplit("/", 1)[-1])
        except ValueError as error:
            raise ConversionError(
                f"Could not parse created issue URL from gh output: {stdout.strip()!r}",
                reason_code="create_issue_unparseable_output",
                transient=False,
            ) from error
        return CreatedIssue(number=number, url=url)

    def list_issues(self, issue_filter: IssueFilter) -> list[TrackedIssue]:
        args = [
            "issue",
            "list",
            "--state",
            issue_filter.state,
            "--limit",
            str(issue_filter.limit),
            "--json",
            _ISSUE_JSON_FIELDS,
        ]
        for label in issue_filter.labels:
            args.extend(["--label", label])
        if issue_filter.milestone:
            args.extend(["--milestone", issue_filter.milestone])
        payload = _decode_json(self._run(args, operation="list_issues"), operation="list_issues")
        if not isinstance(payload, list):
            raise ConversionError(
                "gh issue list returned a non-array payload",
                reason_code="list_issues_unparseable_output",
                transient=False,
            )
        return [
            _issue_from_payload(item)
            for item in payload
            if isinstance(item, dict) and isinstance(item.get("number"), int)
        ]

    def list_milestones(self) -> list[TrackedMilestone]:
        repo = self.repo or "{owner}/{repo}"
        stdout = self._run(
            ["api", "--paginate", f"repos/{repo}/milestones?state=all&per_page=100"],
            operation="list_milestones",
            use_repo_flag=False,
        )
        milestones: list[TrackedMilestone] = []
        for page in _decode_json_stream(stdout, operation="list_milestones"):
            if not isinstance(page, list):
                continue
            for item in page:
                if not isinstance(item, dict) or not isinstance(item.get("title"), str):
                    continue
                milestones.append(
                    TrackedMilestone(
                        id=str(item.get("number", item.get("id", item["title"]))),
                        title=item["title"],
                        state=str(item.get("state", "")).lower(),
                        description=item.get("description") or "",
                        created_at=item.get("created_at") or "",
                    ),
                )
        return milestones

    def close_issue(self, number: int, comment: str | None = None) -> TrackedIssue:
        args = ["issue", "close", str(number)]
        if comment:
            args.extend(["--comment", comment])
        self._run(args, operation="close_issue")
        payload = _decode_json(
            self._run(
                ["issue", "view", str(number), "--json", _ISSUE_JSON_FIELDS],
                operation="view_issue",
            ),
            operation="view_issue",
        )
        if not isinstance(payload, dict):
            raise ConversionError(
                "gh issue view returned a non-object payload",
                reason_code="view_issue_unparseable_output",
                transient=False,
            )
        return _issue_from_payload(payload)

    def _run(
        self,
        args: list[str],
        *,
        operation: str,
        input_text: str | None = None,
        use_repo_flag: bool = True,
    ) -> str:
        argv = [*shlex.split(self.command), *args]
        if self.repo and use_repo_flag:
            argv.extend(["--repo", self.repo])
        logger.debug("Running tracker command: %s", argv[: len(shlex.split(self.command)) + 2])
        try:
            result = subprocess.run(  # noqa: S603
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise ConversionError(
                f"Issue tracker command not found: {argv[0]}",
                reason_code=f"{operation}_command_not_found",
                transient=False,
            ) from error
        except subprocess.TimeoutExpired as error:
            raise ConversionError(
                f"{operation} timed out after {self.timeout_seconds:g}s",
                reason_code=f"{operation}_timeout",
                transient=True,
            ) from error
        except OSError as error:
            raise ConversionError(
                f"Issue tracker command failed to start: {error}",
                reason_code=f"{operation}_start_failed",
                transient=True,
            ) from error

        if result.returncode != 0:
            classified = classify_tracker_failure(
                operation=operation,
                exit_code=result.returncode,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
            )
            message = (result.stderr or result.stdout or "").strip() or "no output"
            raise ConversionError(
                f"{operation} failed (exit {result.returncode}): {message}",
                reason_code=classified.reason_code,
                transient=classified.transient,
            )
        return result.stdout or ""


def _issue_from_payload(item: dict[str, Any]) -> TrackedIssue:
    labels = [
        label["name"] if isinstance(label, dict) else str(label)
        for label in item.get("labels") or []
        if not isinstance(label, dict) or isinstance(label.get("name"), str)
    ]
    milestone = item.get("milestone")
    if isinstance(milestone, dict):
        milestone = milestone.get("title")
    return TrackedIssue(
        number=int(item["number"]),
        title=str(item.get("title", "")),
        state=str(item.get("state", "")).lower(),
        labels=labels,
        milestone=milestone if isinstance(milestone, str) and milestone else None,
    )


def _decode_json(stdout: str, *, operation: str) -> Any:
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as error:
        raise ConversionError(
            f"{operation} returned invalid JSON: {error}",
            reason_code=f"{operation}_unparseable_output",
            transient=False,
        ) from error


def _decode_json_stream(stdout: str, *, operation: str) -> list[Any]:
    # gh api --paginate prints one JSON document per page back to back.
    decoder = json.JSONDecoder()
    documents: list[Any] = []
    index = 0
    text = stdout.strip()
    while index < len(text):
        try:
            document, end = decoder.raw_decode(text, index)
        except json.JSONDecodeError as error:
            raise ConversionError(
                f"{operation} returned invalid JSON: {error}",
                reason_code=f"{operation}_unparseable_output",
                transient=False,
            ) from error
        documents.append(document)
        index = end
        while index < len(text) and text[index].isspace():
            index += 1
    return documents
