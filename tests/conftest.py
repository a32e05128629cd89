"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from task_relay.audit.ledger import AuditLedger
from task_relay.broker.registry import RegistryStore
from task_relay.broker.staging import StagingLayout
from tests.helpers import FakeIssueTracker, fixed_clock


@pytest.fixture()
def layout() -> StagingLayout:
    return StagingLayout()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    root = tmp_path.resolve()
    for name in ("proj-a", "proj-b", "hub"):
        (root / name).mkdir()
    return root


@pytest.fixture()
def registry(workspace: Path) -> RegistryStore:
    store = RegistryStore(workspace / "home" / "registry.json")
    store.add("acme/proj-a", workspace / "proj-a")
    store.add("acme/proj-b", workspace / "proj-b")
    return store


@pytest.fixture()
def ledger(workspace: Path, layout: StagingLayout) -> AuditLedger:
    return AuditLedger(layout.logs(workspace / "hub"), clock=fixed_clock)


@pytest.fixture()
def tracker() -> FakeIssueTracker:
    return FakeIssueTracker()
