"""CLI entrypoint for task-relay."""

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from task_relay import __version__
from task_relay.audit.controllers import (
    AuditCliController,
    LedgerArchiveCommand,
    LedgerCommand,
    LedgerTailCommand,
    SessionCommand,
)
from task_relay.broker.controllers import (
    BrokerCliController,
    CommandResult,
    RegistryAddCommand,
    RegistryKeyCommand,
    RelayCommand,
)
from task_relay.errors import TaskRelayError
from task_relay.issues.controllers import (
    CacheCommand,
    CloseIssueCommand,
    ConvertCommand,
    IssuesCliController,
)

click.rich_click.USE_MARKDOWN = True
BROKER_CONTROLLER = BrokerCliController()
ISSUES_CONTROLLER = IssuesCliController(BROKER_CONTROLLER)
AUDIT_CONTROLLER = AuditCliController()

T = TypeVar("T")

home_option = click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Broker home holding the registry and central outbox (default: TASK_RELAY_HOME).",
)


@click.group()
@click.version_option(version=__version__, prog_name="task-relay")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for diagnostics written to stderr.",
)
def task_relay(log_level: str) -> None:
    """Filesystem task broker between repositories."""

    logging.basicConfig(
        stream=sys.stderr,
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@task_relay.command("collect")
@home_option
def collect(home: Path | None) -> None:
    """Move staged tasks from every registered outbox into the central outbox."""

    _emit_result(_invoke(BROKER_CONTROLLER.collect, RelayCommand(home=home)), "Collect")


@task_relay.command("route")
@home_option
def route(home: Path | None) -> None:
    """Deliver tasks from the central outbox into their target inboxes."""

    _emit_result(_invoke(BROKER_CONTROLLER.route, RelayCommand(home=home)), "Route")


@task_relay.command("convert")
@home_option
@click.option(
    "--target-version",
    default=None,
    help="Milestone applied to tasks without their own (default: TASK_RELAY_TARGET_VERSION).",
)
@click.option("--label", "labels", multiple=True, help="Issue label. Can be repeated.")
def convert(home: Path | None, target_version: str | None, labels: tuple[str, ...]) -> None:
    """Create one issue per task in this repository's inbox."""

    _emit_result(
        _invoke(
            ISSUES_CONTROLLER.convert,
            ConvertCommand(home=home, target_version=target_version, labels=labels),
        ),
        "Convert",
    )


@task_relay.command("run")
@home_option
@click.option(
    "--target-version",
    default=None,
    help="Milestone applied to tasks without their own (default: TASK_RELAY_TARGET_VERSION).",
)
@click.option("--label", "labels", multiple=True, help="Issue label. Can be repeated.")
def run(home: Path | None, target_version: str | None, labels: tuple[str, ...]) -> None:
    """Collect, route, and convert in one pass."""

    _emit_result(
        _invoke(
            ISSUES_CONTROLLER.run_pipeline,
            ConvertCommand(home=home, target_version=target_version, labels=labels),
        ),
        "Run",
    )


@task_relay.command("status")
@home_option
def status(home: Path | None) -> None:
    """Show waiting task counts per stage and the ledger recovery state."""

    _emit_lines(_invoke(BROKER_CONTROLLER.status, RelayCommand(home=home)))


@task_relay.group()
def registry() -> None:
    """Repository registry commands."""


@registry.command("add")
@home_option
@click.argument("repository")
@click.argument("path", type=click.Path(path_type=Path, file_okay=False))
@click.option("--force", is_flag=True, help="Replace an existing entry with a different path.")
def registry_add(home: Path | None, repository: str, path: Path, force: bool) -> None:
    """Register REPOSITORY (org/name) at local checkout PATH."""

    _emit_lines(
        _invoke(
            BROKER_CONTROLLER.registry_add,
            RegistryAddCommand(home=home, repository=repository, path=path, force=force),
        ),
    )


@registry.command("remove")
@home_option
@click.argument("repository")
def registry_remove(home: Path | None, repository: str) -> None:
    """Remove REPOSITORY from the registry."""

    _emit_lines(
        _invoke(
            BROKER_CONTROLLER.registry_remove,
            RegistryKeyCommand(home=home, repository=repository),
        ),
    )


@registry.command("list")
@home_option
def registry_list(home: Path | None) -> None:
    """List registered repositories."""

    _emit_lines(_invoke(BROKER_CONTROLLER.registry_list, RelayCommand(home=home)))


@registry.command("resolve")
@home_option
@click.argument("repository")
def registry_resolve(home: Path | None, repository: str) -> None:
    """Print the local path registered for REPOSITORY."""

    _emit_lines(
        _invoke(
            BROKER_CONTROLLER.registry_resolve,
            RegistryKeyCommand(home=home, repository=repository),
        ),
    )


@task_relay.group()
def ledger() -> None:
    """Audit ledger commands."""


@ledger.command("status")
@home_option
def ledger_status(home: Path | None) -> None:
    """Show the ledger marker and what the recovery check would decide."""

    _emit_lines(_invoke(AUDIT_CONTROLLER.status, LedgerCommand(home=home)))


@ledger.command("tail")
@home_option
@click.option(
    "--lines",
    "line_count",
    type=click.IntRange(min=1, max=10000),
    default=20,
    show_default=True,
    help="How many ledger lines to print.",
)
def ledger_tail(home: Path | None, line_count: int) -> None:
    """Print the newest ledger lines."""

    _emit_lines(_invoke(AUDIT_CONTROLLER.tail, LedgerTailCommand(home=home, lines=line_count)))


@ledger.command("recover")
@home_option
def ledger_recover(home: Path | None) -> None:
    """Archive the ledger if the previous session ended uncleanly."""

    _emit_lines(_invoke(AUDIT_CONTROLLER.recover, LedgerCommand(home=home)))


@ledger.command("archive")
@home_option
@click.argument("version")
def ledger_archive(home: Path | None, version: str) -> None:
    """Roll every session file and the current ledger into archive/VERSION.log."""

    _emit_lines(
        _invoke(AUDIT_CONTROLLER.archive, LedgerArchiveCommand(home=home, version=version)),
    )


@task_relay.group()
def session() -> None:
    """Session lifecycle commands."""


@session.command("start")
@home_option
@click.option("--description", default="", help="Free-text note recorded in the ledger.")
def session_start(home: Path | None, description: str) -> None:
    """Run the recovery check and open a new ledger session."""

    _emit_lines(
        _invoke(
            AUDIT_CONTROLLER.start_session,
            SessionCommand(home=home, description=description),
        ),
    )


@session.command("end")
@home_option
@click.option("--description", default="", help="Free-text note recorded in the ledger.")
def session_end(home: Path | None, description: str) -> None:
    """Record staging counts and archive the ledger session."""

    _emit_lines(
        _invoke(
            AUDIT_CONTROLLER.end_session,
            SessionCommand(home=home, description=description),
        ),
    )


@task_relay.group()
def cache() -> None:
    """Local issue cache commands."""


@cache.command("sync")
@home_option
def cache_sync(home: Path | None) -> None:
    """Refresh the issue and milestone cache from the tracker."""

    _emit_lines(_invoke(ISSUES_CONTROLLER.cache_sync, CacheCommand(home=home)))


@cache.command("milestones")
@home_option
def cache_milestones(home: Path | None) -> None:
    """List cached milestones."""

    _emit_lines(_invoke(ISSUES_CONTROLLER.milestones, CacheCommand(home=home)))


@task_relay.group()
def issues() -> None:
    """Issue tracker commands."""


@issues.command("close")
@home_option
@click.argument("number", type=click.IntRange(min=1))
@click.option("--comment", default=None, help="Comment left on the issue when closing.")
def issues_close(home: Path | None, number: int, comment: str | None) -> None:
    """Close issue NUMBER."""

    _emit_lines(
        _invoke(
            ISSUES_CONTROLLER.close_issue,
            CloseIssueCommand(home=home, number=number, comment=comment),
        ),
    )


def _invoke(handler: Callable[..., T], command: object) -> T:
    try:
        return handler(command)
    except (TaskRelayError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_result(result: CommandResult, stage: str) -> None:
    _emit_lines(result.lines)
    if result.failed:
        raise click.ClickException(f"{stage} finished with {result.failed} failed item(s).")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    task_relay()
