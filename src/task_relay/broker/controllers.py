"""Controllers for collection, routing, registry, and status CLI commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from task_relay.broker.collector import Collector
from task_relay.broker.models import CollectSummary, RouteSummary
from task_relay.broker.router import Router
from task_relay.broker.staging import count_task_files
from task_relay.config import Settings
from task_relay.runtime import RelayRuntime, recovery_lines


@dataclass(slots=True)
class RelayCommand:
    """CLI input shared by collect, route, and status."""

    home: Path | None


@dataclass(slots=True)
class RegistryAddCommand:
    """CLI input for registering a repository."""

    home: Path | None
    repository: str
    path: Path
    force: bool = False


@dataclass(slots=True)
class RegistryKeyCommand:
    """CLI input for registry lookups and removal."""

    home: Path | None
    repository: str


@dataclass(slots=True)
class CommandResult:
    """Lines to render plus the number of items that failed."""

    lines: list[str] = field(default_factory=list)
    failed: int = 0


class BrokerCliController:
    """Coordinates registry maintenance and the collect/route stages."""

    def collect(self, command: RelayCommand) -> CommandResult:
        runtime = _runtime(command.home)
        lines = recovery_lines(runtime.recover())
        summary = self.run_collect(runtime)
        lines.extend(collect_summary_lines(summary, runtime))
        return CommandResult(lines=lines, failed=max(summary.failed, len(summary.errors)))

    def route(self, command: RelayCommand) -> CommandResult:
        runtime = _runtime(command.home)
        lines = recovery_lines(runtime.recover())
        summary = self.run_route(runtime)
        lines.extend(route_summary_lines(summary, runtime))
        return CommandResult(lines=lines, failed=summary.failed)

    def status(self, command: RelayCommand) -> list[str]:
        runtime = _runtime(command.home)
        assessment = runtime.detector.detect()
        lines = [
            f"Repository: {runtime.settings.self_repo} ({runtime.settings.self_path})",
            f"Recovery: state={assessment.state.value} source={assessment.source} "
            f"reason={assessment.reason}",
        ]
        counts = runtime.staging_counts()
        lines.append(f"Central outbox: {counts.pop('central_outbox')}")
        lines.append(f"Self inbox: {counts.pop('self_inbox')}")
        for key, value in sorted(counts.items()):
            lines.append(f"  {key}={value}")
        return lines

    def registry_add(self, command: RegistryAddCommand) -> list[str]:
        runtime = _runtime(command.home)
        entry = runtime.registry.add(command.repository, command.path, force=command.force)
        return [f"Registered: {entry.repository} -> {entry.path}"]

    def registry_remove(self, command: RegistryKeyCommand) -> list[str]:
        runtime = _runtime(command.home)
        entry = runtime.registry.remove(command.repository)
        return [f"Removed: {entry.repository} ({entry.path})"]

    def registry_resolve(self, command: RegistryKeyCommand) -> list[str]:
        runtime = _runtime(command.home)
        return [str(runtime.registry.resolve(command.repository))]

    def registry_list(self, command: RelayCommand) -> list[str]:
        runtime = _runtime(command.home)
        entries = runtime.registry.list()
        lines = [f"Registered repositories: {len(entries)}"]
        for entry in entries:
            lines.append(
                f"  {entry.repository} path={entry.path} "
                f"registered_at={entry.registered_at or '-'}",
            )
        return lines

    def run_collect(self, runtime: RelayRuntime) -> CollectSummary:
        collector = Collector(layout=runtime.layout, ledger=runtime.ledger)
        return collector.collect(runtime.collection_entries(), runtime.settings.central_outbox)

    def run_route(self, runtime: RelayRuntime) -> RouteSummary:
        router = Router(
            registry=runtime.registry,
            layout=runtime.layout,
            ledger=runtime.ledger,
            self_repo=runtime.settings.self_repo,
            self_path=runtime.settings.self_path,
        )
        return router.route(runtime.settings.central_outbox)


def collect_summary_lines(summary: CollectSummary, runtime: RelayRuntime) -> list[str]:
    lines = [
        "Collect summary: "
        f"collected={summary.collected} failed={summary.failed} "
        f"remaining={count_task_files(runtime.settings.central_outbox)}",
    ]
    if summary.errors:
        lines.append(f"  repositories with errors: {', '.join(summary.errors)}")
    return lines


def route_summary_lines(summary: RouteSummary, runtime: RelayRuntime) -> list[str]:
    lines = [
        "Route summary: "
        f"delivered={summary.delivered} failed={summary.failed} "
        f"remaining={count_task_files(runtime.settings.central_outbox)}",
    ]
    for name in summary.parked:
        lines.append(f"  parked: {name}")
    return lines


def _runtime(home: Path | None) -> RelayRuntime:
    return RelayRuntime.from_settings(Settings.from_env(home=home))
