"""Staging directory layout and atomic task moves."""

from __future__ import annotations

import errno
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from task_relay.broker.codec import is_task_filename

logger = logging.getLogger(__name__)

_TMP_PREFIX = ".tmp."


@dataclass(slots=True)
class StagingLayout:
    """Resolves per-repository staging directories under ``<repo>/<staging_dir>``."""

    staging_dir: str = "claude"

    def root(self, repo_path: Path) -> Path:
        return repo_path / self.staging_dir

    def outbox(self, repo_path: Path) -> Path:
        return self.root(repo_path) / "outbox"

    def inbox(self, repo_path: Path) -> Path:
        return self.root(repo_path) / "inbox"

    def logs(self, repo_path: Path) -> Path:
        return self.root(repo_path) / "logs"

    def cache(self, repo_path: Path) -> Path:
        return self.root(repo_path) / "cache"


class TaskCollisionError(FileExistsError):
    """Destination already holds a task with the same timestamp and source."""


def list_task_files(directory: Path, *, strict: bool = True) -> list[Path]:
    """List staged task files in ascending timestamp order.

    File names start with a fixed-width timestamp, so name order is
    chronological order.  With ``strict=False`` every ``*.md`` file is
    returned, including malformed names, so callers can park them.
    A missing directory holds no tasks.
    """

    if not directory.is_dir():
        return []
    files = [
        path
        for path in directory.iterdir()
        if path.is_file()
        and not path.name.startswith(_TMP_PREFIX)
        and path.name.endswith(".md")
        and (not strict or is_task_filename(path.name))
    ]
    return sorted(files, key=lambda path: path.name)


def count_task_files(directory: Path) -> int:
    """Count ``*.md`` files waiting in a staging directory."""

    return len(list_task_files(directory, strict=False))


def move_task(src: Path, dest_dir: Path) -> Path:
    """Atomically move ``src`` into ``dest_dir`` under its original name.

    A plain ``rename`` is used whenever source and destination share a
    filesystem.  Across volumes the file is staged next to the destination,
    renamed into place, re-checked, and only then removed from the source;
    if the source cannot be removed the destination copy is withdrawn so the
    task stays in exactly one place.
    """

    dest = dest_dir / src.name
    if dest.exists():
        raise TaskCollisionError(
            errno.EEXIST,
            "Task with the same timestamp and source already staged",
            str(dest),
        )
    try:
        os.rename(src, dest)
    except OSError as error:
        if error.errno != errno.EXDEV:
            raise
        logger.debug("Cross-device move for %s -> %s", src, dest)
        _move_across_devices(src, dest)
    return dest


def _move_across_devices(src: Path, dest: Path) -> None:
    tmp = dest.parent / f"{_TMP_PREFIX}{dest.name}.{os.getpid()}"
    try:
        shutil.copyfile(src, tmp)
        with tmp.open("rb") as handle:
            os.fsync(handle.fileno())
        os.rename(tmp, dest)
    finally:
        tmp.unlink(missing_ok=True)

    if not dest.is_file() or dest.stat().st_size != src.stat().st_size:
        dest.unlink(missing_ok=True)
        raise OSError(errno.EIO, "Cross-device move verification failed", str(dest))
    try:
        src.unlink()
    except FileNotFoundError:
        return
    except OSError:
        dest.unlink(missing_ok=True)
        raise
