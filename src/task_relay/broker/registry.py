"""Registry store: repository id to local checkout path."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from task_relay.broker.models import RegistryEntry
from task_relay.config import REPOSITORY_ID_RE
from task_relay.documents import load_json, utc_now, write_json
from task_relay.errors import NotFoundError, RegistryConflictError, RegistryError, RoutingError

logger = logging.getLogger(__name__)

REGISTRY_KEY = "registered_projects"


class RegistryStore:
    """JSON-backed registry with whole-document reads and rewrites."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def list(self) -> list[RegistryEntry]:
        return sorted(self._load().values(), key=lambda entry: entry.repository)

    def resolve(self, repo_id: str) -> Path:
        """Return the checkout path for ``repo_id``.

        A bare name without organisation matches the single entry with that
        name part; more than one match is a routing error.
        """

        return self.lookup(repo_id).path

    def lookup(self, repo_id: str) -> RegistryEntry:
        entries = self._load()
        entry = entries.get(repo_id)
        if entry is not None:
            return entry
        if "/" not in repo_id:
            matches = [item for item in entries.values() if item.name == repo_id]
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                raise RoutingError(
                    f"Ambiguous repository name {repo_id!r}: "
                    f"{', '.join(sorted(item.repository for item in matches))}",
                )
        raise NotFoundError(repo_id)

    def add(self, repo_id: str, path: Path, *, force: bool = False) -> RegistryEntry:
        """Register ``repo_id``; re-adding the same path is a no-op."""

        if not REPOSITORY_ID_RE.match(repo_id):
            raise RegistryError(f"Invalid repository id: {repo_id!r} (expected org/name)")
        resolved = path.expanduser().resolve()
        entries = self._load()
        existing = entries.get(repo_id)
        if existing is not None:
            if existing.path == resolved:
                return existing
            if not force:
                raise RegistryConflictError(
                    f"Repository {repo_id!r} is already registered at {existing.path}; "
                    "use --force to overwrite.",
                )
            logger.info("Re-registering %s: %s -> %s", repo_id, existing.path, resolved)

        entry = RegistryEntry(
            repository=repo_id,
            path=resolved,
            registered_at=utc_now().isoformat(),
        )
        entries[repo_id] = entry
        self._save(entries)
        return entry

    def remove(self, repo_id: str) -> RegistryEntry:
        entries = self._load()
        entry = entries.pop(repo_id, None)
        if entry is None:
            raise NotFoundError(repo_id)
        self._save(entries)
        return entry

    def _load(self) -> dict[str, RegistryEntry]:
        if not self.path.exists():
            return {}
        try:
            raw = load_json(self.path)
        except (OSError, TypeError, json.JSONDecodeError) as error:
            raise RegistryError(f"Registry document {self.path} is unreadable: {error}") from error

        projects = raw.get(REGISTRY_KEY, [])
        if not isinstance(projects, list):
            raise RegistryError(f"{REGISTRY_KEY} must be an array in {self.path}")
        entries: dict[str, RegistryEntry] = {}
        for item in projects:
            if not isinstance(item, dict):
                raise RegistryError(f"Registry entry must be an object in {self.path}")
            repository = item.get("repository")
            path = item.get("path")
            registered_at = item.get("registered_at", "")
            if not isinstance(repository, str) or not REPOSITORY_ID_RE.match(repository):
                raise RegistryError(f"Invalid repository id in {self.path}: {repository!r}")
            if not isinstance(path, str) or not path.strip():
                raise RegistryError(f"Registry entry {repository!r} has no path")
            if not isinstance(registered_at, str):
                raise RegistryError(f"Registry entry {repository!r} has invalid registered_at")
            entries[repository] = RegistryEntry(
                repository=repository,
                path=Path(path),
                registered_at=registered_at,
            )
        return entries

    def _save(self, entries: dict[str, RegistryEntry]) -> None:
        write_json(
            self.path,
            {
                REGISTRY_KEY: [
                    {
                        "repository": entry.repository,
                        "path": str(entry.path),
                        "registered_at": entry.registered_at,
                    }
                    for entry in sorted(entries.values(), key=lambda item: item.repository)
                ],
            },
        )
