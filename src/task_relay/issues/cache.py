"""Local issue and milestone cache.

The cache mirrors the tracker and is refreshed wholesale.  Readers must
tolerate staleness: an unreadable cache is treated as empty, which makes
milestone validation fail closed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

from task_relay.documents import load_json, utc_now, write_json
from task_relay.issues.backend.base import IssueFilter, IssueTracker

logger = logging.getLogger(__name__)

ISSUES_FILE_NAME = "issues.json"
MILESTONES_FILE_NAME = "milestones.json"


@dataclass(slots=True)
class IssueCacheEntry:
    """Local mirror of one tracked issue."""

    number: int
    title: str
    state: str
    labels: list[str] = field(default_factory=list)
    milestone: str | None = None
    cached_at: str = ""


@dataclass(slots=True)
class MilestoneCacheEntry:
    """Local mirror of one milestone."""

    title: str
    state: str
    description: str = ""
    created_at: str = ""


@dataclass(slots=True)
class CacheRefreshResult:
    """Counts written by one wholesale refresh."""

    issues: int
    milestones: int


class IssueCache:
    """JSON documents ``issues.json`` and ``milestones.json`` in one directory."""

    def __init__(self, cache_dir: Path, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.cache_dir = cache_dir
        self.clock = clock

    @property
    def issues_path(self) -> Path:
        return self.cache_dir / ISSUES_FILE_NAME

    @property
    def milestones_path(self) -> Path:
        return self.cache_dir / MILESTONES_FILE_NAME

    def issues(self) -> dict[str, IssueCacheEntry]:
        entries: dict[str, IssueCacheEntry] = {}
        for key, item in self._load(self.issues_path).items():
            try:
                entries[key] = IssueCacheEntry(
                    number=int(item["number"]),
                    title=str(item.get("title", "")),
                    state=str(item.get("state", "")),
                    labels=[str(label) for label in item.get("labels") or []],
                    milestone=item.get("milestone") or None,
                    cached_at=str(item.get("cached_at", "")),
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed issue cache entry %r", key)
        return entries

    def milestones(self) -> dict[str, MilestoneCacheEntry]:
        entries: dict[str, MilestoneCacheEntry] = {}
        for key, item in self._load(self.milestones_path).items():
            title = item.get("title")
            if not isinstance(title, str):
                logger.warning("Skipping malformed milestone cache entry %r", key)
                continue
            entries[key] = MilestoneCacheEntry(
                title=title,
                state=str(item.get("state", "")),
                description=str(item.get("description") or ""),
                created_at=str(item.get("created_at") or ""),
            )
        return entries

    def find_milestone(self, title: str) -> MilestoneCacheEntry | None:
        """Return the cached milestone with exactly ``title``."""

        for entry in self.milestones().values():
            if entry.title == title:
                return entry
        return None

    def refresh(self, tracker: IssueTracker, *, limit: int = 500) -> CacheRefreshResult:
        """Replace both documents with a fresh tracker listing.

        Both listings are fetched before anything is written, so a tracker
        failure leaves the previous cache untouched.
        """

        issues = tracker.list_issues(IssueFilter(state="all", limit=limit))
        milestones = tracker.list_milestones()
        cached_at = self.clock().isoformat()

        write_json(
            self.issues_path,
            {
                str(issue.number): asdict(
                    IssueCacheEntry(
                        number=issue.number,
                        title=issue.title,
                        state=issue.state,
                        labels=list(issue.labels),
                        milestone=issue.milestone,
                        cached_at=cached_at,
                    ),
                )
                for issue in issues
            },
        )
        write_json(
            self.milestones_path,
            {
                milestone.id: asdict(
                    MilestoneCacheEntry(
                        title=milestone.title,
                        state=milestone.state,
                        description=milestone.description,
                        created_at=milestone.created_at,
                    ),
                )
                for milestone in milestones
            },
        )
        logger.info("Issue cache refreshed: issues=%d milestones=%d", len(issues), len(milestones))
        return CacheRefreshResult(issues=len(issues), milestones=len(milestones))

    def _load(self, path: Path) -> dict[str, dict]:
        if not path.exists():
            return {}
        try:
            raw = load_json(path)
        except (OSError, TypeError, json.JSONDecodeError) as error:
            logger.warning("Issue cache %s is unreadable, treating as empty: %s", path, error)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, dict)}
