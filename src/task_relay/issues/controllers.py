"""Controllers for inbox conversion, issue cache, and issue CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from task_relay.broker.controllers import (
    BrokerCliController,
    CommandResult,
    collect_summary_lines,
    route_summary_lines,
)
from task_relay.config import Settings
from task_relay.issues.converter import ConvertSummary, InboxConverter
from task_relay.runtime import RelayRuntime, recovery_lines


@dataclass(slots=True)
class ConvertCommand:
    """CLI input for inbox conversion."""

    home: Path | None
    target_version: str | None = None
    labels: tuple[str, ...] = ()


@dataclass(slots=True)
class CacheCommand:
    """CLI input for cache refresh and milestone listing."""

    home: Path | None


@dataclass(slots=True)
class CloseIssueCommand:
    """CLI input for closing an issue."""

    home: Path | None
    number: int
    comment: str | None = None


class IssuesCliController:
    """Coordinates conversion and tracker-facing maintenance commands."""

    def __init__(self, broker: BrokerCliController | None = None) -> None:
        self.broker = broker or BrokerCliController()

    def convert(self, command: ConvertCommand) -> CommandResult:
        runtime = _runtime(command.home)
        lines = recovery_lines(runtime.recover())
        summary = self.run_convert(runtime, command)
        lines.extend(convert_summary_lines(summary))
        return CommandResult(lines=lines, failed=summary.failed)

    def run_pipeline(self, command: ConvertCommand) -> CommandResult:
        """Collect, route, then convert this repository's inbox."""

        runtime = _runtime(command.home)
        lines = recovery_lines(runtime.recover())

        collected = self.broker.run_collect(runtime)
        lines.extend(collect_summary_lines(collected, runtime))
        routed = self.broker.run_route(runtime)
        lines.extend(route_summary_lines(routed, runtime))
        converted = self.run_convert(runtime, command)
        lines.extend(convert_summary_lines(converted))

        failed = max(collected.failed, len(collected.errors)) + routed.failed + converted.failed
        return CommandResult(lines=lines, failed=failed)

    def cache_sync(self, command: CacheCommand) -> list[str]:
        runtime = _runtime(command.home)
        cache = runtime.issue_cache()
        result = cache.refresh(
            runtime.build_tracker(),
            limit=runtime.settings.tracker.list_limit,
        )
        runtime.ledger.step(
            runtime.workflow,
            "cache_sync",
            details=f"issues={result.issues} milestones={result.milestones}",
        )
        return [
            f"Issue cache refreshed: issues={result.issues} milestones={result.milestones}",
            f"Cache dir: {cache.cache_dir}",
        ]

    def milestones(self, command: CacheCommand) -> list[str]:
        runtime = _runtime(command.home)
        entries = runtime.issue_cache().milestones()
        if not entries:
            return ["No cached milestones. Run `task-relay cache sync` first."]
        lines = [f"Cached milestones: {len(entries)}"]
        for key, entry in sorted(entries.items(), key=lambda item: item[1].title):
            lines.append(f"  {entry.title} state={entry.state or '-'} id={key}")
        return lines

    def close_issue(self, command: CloseIssueCommand) -> list[str]:
        runtime = _runtime(command.home)
        issue = runtime.build_tracker().close_issue(command.number, command.comment)
        runtime.ledger.step(
            runtime.workflow,
            "close_issue",
            details=f"issue={issue.number} state={issue.state}",
            description=issue.title,
        )
        return [f"Issue #{issue.number} is {issue.state}: {issue.title}"]

    def run_convert(self, runtime: RelayRuntime, command: ConvertCommand) -> ConvertSummary:
        converter_settings = runtime.settings.converter
        converter = InboxConverter(
            tracker=runtime.build_tracker(),
            cache=runtime.issue_cache(),
            ledger=runtime.ledger,
            target_version=command.target_version or converter_settings.target_version,
            static_labels=command.labels or converter_settings.labels,
            label_priority=converter_settings.label_priority,
            cache_list_limit=runtime.settings.tracker.list_limit,
        )
        return converter.convert(runtime.self_inbox)


def convert_summary_lines(summary: ConvertSummary) -> list[str]:
    lines = [
        "Convert summary: "
        f"processed={summary.processed} failed={summary.failed} "
        f"cache_refreshed={str(summary.cache_refreshed).lower()}",
    ]
    for converted in summary.created:
        lines.append(
            f"  #{converted.number} {converted.url} <- {converted.filename} "
            f"milestone={converted.milestone or '-'}",
        )
    for name in summary.parked:
        lines.append(f"  left in inbox: {name}")
    for warning in [*summary.milestone_warnings, *summary.cleanup_warnings]:
        lines.append(f"  warning: {warning}")
    if summary.cache_error:
        lines.append(f"  cache refresh failed: {summary.cache_error}")
    return lines


def _runtime(home: Path | None) -> RelayRuntime:
    return RelayRuntime.from_settings(Settings.from_env(home=home))
