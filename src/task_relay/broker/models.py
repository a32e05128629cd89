"""Domain models for task staging, registry, and batch outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class Priority(str, Enum):
    """Task priority carried into the converted issue."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True, slots=True)
class TaskFilename:
    """Parsed ``{stamp}_{token}_{slug}.md`` file name."""

    stamp: str
    token: str
    slug: str

    @property
    def name(self) -> str:
        return f"{self.stamp}_{self.token}_{self.slug}.md"


@dataclass(frozen=True, slots=True)
class Task:
    """Immutable unit of cross-repository work."""

    stamp: str
    token: str
    slug: str
    source: str
    target: str
    created: datetime
    title: str
    body: str = ""
    priority: Priority = Priority.MEDIUM
    type: str = "task"
    milestone: str | None = None
    extra: tuple[tuple[str, str], ...] = ()

    @property
    def filename(self) -> str:
        return f"{self.stamp}_{self.token}_{self.slug}.md"


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """Repository id mapped to its local checkout."""

    repository: str
    path: Path
    registered_at: str

    @property
    def name(self) -> str:
        """Repository name without the organisation part."""

        return self.repository.rsplit("/", 1)[-1]


@dataclass(slots=True)
class CollectSummary:
    """Aggregate collector counters for CLI reporting."""

    collected: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RouteSummary:
    """Aggregate router counters for CLI reporting."""

    delivered: int = 0
    failed: int = 0
    parked: list[str] = field(default_factory=list)
