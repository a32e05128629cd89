"""Runtime configuration for collection, routing, conversion, and auditing."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

REPOSITORY_ID_RE = re.compile(r"^[A-Za-z0-9._-]+(/[A-Za-z0-9._-]+)?$")


@dataclass(slots=True)
class StagingSettings:
    """Per-repository staging directory layout."""

    staging_dir: str = "claude"


@dataclass(slots=True)
class TrackerSettings:
    """Issue tracker (gh CLI) adapter settings."""

    gh_command: str = "gh"
    repo: str | None = None
    timeout_seconds: float = 60.0
    list_limit: int = 500


@dataclass(slots=True)
class ConverterSettings:
    """Inbox conversion settings."""

    target_version: str | None = None
    labels: tuple[str, ...] = ()
    label_priority: bool = False


@dataclass(slots=True)
class SessionSettings:
    """Audit ledger and session workflow settings."""

    workflow_name: str = "task-relay"
    termination_workflows: tuple[str, ...] = ("end-session",)


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    home: Path = Path(".task_relay")
    self_repo: str = ""
    self_path: Path = Path(".")
    staging: StagingSettings = field(default_factory=StagingSettings)
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    converter: ConverterSettings = field(default_factory=ConverterSettings)
    session: SessionSettings = field(default_factory=SessionSettings)

    @property
    def registry_path(self) -> Path:
        return self.home / "registry.json"

    @property
    def central_outbox(self) -> Path:
        return self.home / "outbox"

    @classmethod
    def from_env(cls, home: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            home=home or Path(os.getenv("TASK_RELAY_HOME", ".task_relay")),
            self_repo=os.getenv("TASK_RELAY_SELF_REPO", "").strip(),
            self_path=Path(os.getenv("TASK_RELAY_SELF_PATH", ".")),
            staging=StagingSettings(
                staging_dir=os.getenv("TASK_RELAY_STAGING_DIR", "claude").strip(),
            ),
            tracker=TrackerSettings(
                gh_command=os.getenv("TASK_RELAY_GH_COMMAND", "gh"),
                repo=os.getenv("TASK_RELAY_GH_REPO", "").strip() or None,
                timeout_seconds=float(os.getenv("TASK_RELAY_TRACKER_TIMEOUT_SECONDS", "60")),
                list_limit=int(os.getenv("TASK_RELAY_TRACKER_LIST_LIMIT", "500")),
            ),
            converter=ConverterSettings(
                target_version=os.getenv("TASK_RELAY_TARGET_VERSION", "").strip() or None,
                labels=_csv_tuple(os.getenv("TASK_RELAY_ISSUE_LABELS", "")),
                label_priority=_env_bool("TASK_RELAY_LABEL_PRIORITY", default=False),
            ),
            session=SessionSettings(
                workflow_name=os.getenv("TASK_RELAY_WORKFLOW_NAME", "task-relay").strip(),
                termination_workflows=(
                    _csv_tuple(os.getenv("TASK_RELAY_TERMINATION_WORKFLOWS", ""))
                    or ("end-session",)
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on missing or inconsistent settings."""

        if not self.self_repo:
            raise ValueError("TASK_RELAY_SELF_REPO is required (for example org/name).")
        if not REPOSITORY_ID_RE.match(self.self_repo):
            raise ValueError(f"Invalid TASK_RELAY_SELF_REPO: {self.self_repo!r}")
        staging_dir = self.staging.staging_dir
        if not staging_dir or "/" in staging_dir or "\\" in staging_dir or staging_dir in {
            ".",
            "..",
        }:
            raise ValueError(
                f"TASK_RELAY_STAGING_DIR must be a single directory name: {staging_dir!r}",
            )
        if self.tracker.timeout_seconds <= 0:
            raise ValueError("TASK_RELAY_TRACKER_TIMEOUT_SECONDS must be > 0.")
        if self.tracker.list_limit <= 0:
            raise ValueError("TASK_RELAY_TRACKER_LIST_LIMIT must be > 0.")
        if not self.tracker.gh_command.strip():
            raise ValueError("TASK_RELAY_GH_COMMAND must not be empty.")
        if not self.session.workflow_name or "|" in self.session.workflow_name:
            raise ValueError("TASK_RELAY_WORKFLOW_NAME must be non-empty and must not contain '|'.")


def _csv_tuple(raw: str) -> tuple[str, ...]:
    values: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        normalized = part.strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        values.append(normalized)
    return tuple(values)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
