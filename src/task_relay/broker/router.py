"""Router: delivers collected tasks into destination inboxes."""

from __future__ import annotations

import logging
from pathlib import Path

from task_relay.audit.ledger import AuditLedger
from task_relay.broker.codec import parse_task
from task_relay.broker.models import RouteSummary, Task
from task_relay.broker.registry import RegistryStore
from task_relay.broker.staging import StagingLayout, list_task_files, move_task
from task_relay.errors import RegistryError, RoutingError, ValidationError

logger = logging.getLogger(__name__)

ROUTE_WORKFLOW = "route"


class Router:
    """Resolves each task's target and moves the file, never its content."""

    def __init__(
        self,
        *,
        registry: RegistryStore,
        layout: StagingLayout,
        ledger: AuditLedger,
        self_repo: str,
        self_path: Path,
    ) -> None:
        self.registry = registry
        self.layout = layout
        self.ledger = ledger
        self.self_repo = self_repo
        self.self_path = self_path

    def route(self, central_outbox: Path) -> RouteSummary:
        """Deliver every staged file; an unreadable registry aborts the run."""

        summary = RouteSummary()
        files = list_task_files(central_outbox, strict=False)
        self.ledger.workflow_start(ROUTE_WORKFLOW, f"pending={len(files)}")
        try:
            self.registry.list()
        except RegistryError as error:
            self.ledger.workflow_error(ROUTE_WORKFLOW, "load_registry", description=str(error))
            raise

        for path in files:
            try:
                self._route_one(path)
            except (ValidationError, RoutingError) as error:
                self._park(summary, path, "parked", error)
                continue
            except FileExistsError as error:
                self._park(summary, path, "collision", error)
                continue
            except OSError as error:
                self._park(summary, path, "io_error", error)
                continue
            except RegistryError:
                raise
            except Exception as error:  # noqa: BLE001
                logger.exception("Unexpected error routing %s", path.name)
                self._park(summary, path, "unexpected_error", error)
                continue
            summary.delivered += 1

        self.ledger.workflow_complete(
            ROUTE_WORKFLOW,
            details=f"delivered={summary.delivered} failed={summary.failed}",
        )
        return summary

    def destination_for(self, task: Task) -> Path:
        """Return the repository path whose inbox receives ``task``."""

        if self._is_self(task.target):
            return self.self_path
        return self.registry.resolve(task.target)

    def _route_one(self, path: Path) -> None:
        task = parse_task(path.name, path.read_bytes())
        repo_path = self.destination_for(task)
        inbox = self.layout.inbox(repo_path)
        inbox.mkdir(parents=True, exist_ok=True)
        moved = move_task(path, inbox)
        logger.info("Delivered %s to %s", moved.name, task.target)
        self.ledger.step(
            ROUTE_WORKFLOW,
            "deliver_task",
            details=f"file={moved.name} source={task.source} target={task.target}",
        )
        AuditLedger.for_repository(repo_path, self.layout).step(
            ROUTE_WORKFLOW,
            "task_delivered",
            details=f"file={moved.name} source={task.source}",
            description=task.title,
        )

    def _is_self(self, target: str) -> bool:
        if target == self.self_repo:
            return True
        return "/" not in target and target == self.self_repo.rsplit("/", 1)[-1]

    def _park(self, summary: RouteSummary, path: Path, step: str, error: Exception) -> None:
        summary.failed += 1
        summary.parked.append(path.name)
        logger.warning("Parked %s in central outbox: %s", path.name, error)
        self.ledger.workflow_error(
            ROUTE_WORKFLOW,
            step,
            details=f"file={path.name}",
            description=str(error),
        )
