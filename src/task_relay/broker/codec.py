"""Task file codec: strict file name pattern plus frontmatter document.

The codec performs no I/O.  Callers read the raw bytes and pass them in
together with the file name, and write the rendered bytes themselves.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

from task_relay.broker.models import Priority, Task, TaskFilename
from task_relay.config import REPOSITORY_ID_RE
from task_relay.errors import ValidationError

STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
FILENAME_RE = re.compile(
    r"^(?P<stamp>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z)"
    r"_(?P<token>[A-Za-z0-9.-]+)"
    r"_(?P<slug>[A-Za-z0-9][A-Za-z0-9._-]*)\.md$",
)
_METADATA_LINE_RE = re.compile(r"^([A-Za-z0-9_-]+):\s*(.*)$")
_EXTRA_KEY_RE = re.compile(r"^[a-z0-9_-]+$")
_FENCE = "---"
REQUIRED_FIELDS = ("source", "target", "created")
_KNOWN_FIELDS = frozenset((*REQUIRED_FIELDS, "priority", "type", "milestone"))
DEFAULT_TYPE = "task"


def is_task_filename(name: str) -> bool:
    """Return whether ``name`` matches the canonical task file name pattern."""

    return FILENAME_RE.match(name) is not None


def parse_filename(name: str) -> TaskFilename:
    """Split a task file name into stamp, token, and slug."""

    match = FILENAME_RE.match(name)
    if match is None:
        raise ValidationError(
            f"Invalid task file name {name!r}: expected "
            "YYYY-MM-DDTHH-mm-ss-sssZ_<token>_<slug>.md",
        )
    stamp = match.group("stamp")
    try:
        stamp_to_datetime(stamp)
    except ValueError as error:
        raise ValidationError(f"Invalid timestamp in task file name {name!r}") from error
    return TaskFilename(stamp=stamp, token=match.group("token"), slug=match.group("slug"))


def stamp_to_datetime(stamp: str) -> datetime:
    """Convert a file name stamp into an aware UTC datetime."""

    return datetime.strptime(stamp, STAMP_FORMAT).replace(tzinfo=UTC)


def datetime_to_stamp(value: datetime) -> str:
    """Format a datetime as a millisecond file name stamp."""

    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H-%M-%S-") + f"{value.microsecond // 1000:03d}Z"


def format_created(value: datetime) -> str:
    """Format ``created`` metadata as ISO-8601 with milliseconds."""

    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_created(value: str) -> datetime:
    """Parse ``created`` metadata, truncating to millisecond precision."""

    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as error:
        raise ValidationError(f"Invalid created timestamp: {value!r}") from error
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    parsed = parsed.astimezone(UTC)
    return parsed.replace(microsecond=parsed.microsecond // 1000 * 1000)


def task_filename(task: Task) -> str:
    """Canonical file name for ``task``; raises ``ValidationError`` if its parts are invalid."""

    return parse_filename(task.filename).name


def parse_task(filename: str, raw: bytes) -> Task:
    """Decode a task file; any deviation raises ``ValidationError``."""

    name = parse_filename(filename)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as error:
        raise ValidationError(f"Task file {filename!r} is not valid UTF-8") from error

    metadata, content_lines = _split_document(text.lstrip("\ufeff"), filename=filename)
    missing = [key for key in REQUIRED_FIELDS if not metadata.get(key)]
    if missing:
        raise ValidationError(
            f"Task file {filename!r} is missing required metadata: {', '.join(missing)}",
        )
    for key in ("source", "target"):
        if not REPOSITORY_ID_RE.match(metadata[key]):
            raise ValidationError(f"Task file {filename!r} has invalid {key}: {metadata[key]!r}")

    title, body = _split_title(content_lines, filename=filename)
    return Task(
        stamp=name.stamp,
        token=name.token,
        slug=name.slug,
        source=metadata["source"],
        target=metadata["target"],
        created=parse_created(metadata["created"]),
        title=title,
        body=body,
        priority=_parse_priority(metadata.get("priority"), filename=filename),
        type=metadata.get("type") or DEFAULT_TYPE,
        milestone=metadata.get("milestone") or None,
        extra=tuple((key, value) for key, value in metadata.items() if key not in _KNOWN_FIELDS),
    )


def render_task(task: Task) -> bytes:
    """Encode ``task`` into the on-disk document format."""

    fields: list[tuple[str, str]] = [
        ("source", task.source),
        ("target", task.target),
        ("created", format_created(task.created)),
        ("priority", task.priority.value),
        ("type", task.type),
    ]
    if task.milestone:
        fields.append(("milestone", task.milestone))
    seen = {key for key, _ in fields}
    for key, _ in task.extra:
        if not _EXTRA_KEY_RE.match(key) or key in _KNOWN_FIELDS or key in seen:
            raise ValidationError(f"Invalid extra metadata key {key!r}")
        seen.add(key)
    fields.extend(task.extra)

    lines = [_FENCE]
    for key, value in fields:
        _check_rendered_value(key, value)
        lines.append(f"{key}: {value}")
    if "\n" in task.title or "\r" in task.title or not task.title.strip():
        raise ValidationError("Task title must be a non-empty single line")
    if task.title != task.title.strip():
        raise ValidationError("Task title must not have surrounding whitespace")
    lines.extend([_FENCE, "", f"# {task.title}"])
    if task.body:
        lines.extend(["", task.body])
    return ("\n".join(lines) + "\n").encode("utf-8")


def _split_document(text: str, *, filename: str) -> tuple[dict[str, str], list[str]]:
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FENCE:
        raise ValidationError(f"Task file {filename!r} does not start with a metadata block")

    metadata: dict[str, str] = {}
    for index in range(1, len(lines)):
        line = lines[index]
        if line.strip() == _FENCE:
            return metadata, lines[index + 1 :]
        if not line.strip():
            continue
        match = _METADATA_LINE_RE.match(line)
        if match is None:
            raise ValidationError(f"Task file {filename!r} has malformed metadata line: {line!r}")
        key = match.group(1).lower()
        if key in metadata:
            raise ValidationError(f"Task file {filename!r} repeats metadata key {key!r}")
        metadata[key] = _unquote(match.group(2).strip())
    raise ValidationError(f"Task file {filename!r} has an unterminated metadata block")


def _split_title(lines: list[str], *, filename: str) -> tuple[str, str]:
    for index, line in enumerate(lines):
        if line.startswith("#") and not line.startswith("##"):
            title = line[1:].strip()
            if not title:
                raise ValidationError(f"Task file {filename!r} has an empty title heading")
            body = "\n".join([*lines[:index], *lines[index + 1 :]]).strip("\n")
            return title, body
    raise ValidationError(f"Task file {filename!r} has no '# <title>' heading")


def _parse_priority(value: str | None, *, filename: str) -> Priority:
    if not value:
        return Priority.MEDIUM
    try:
        return Priority(value.strip().upper())
    except ValueError as error:
        raise ValidationError(
            f"Task file {filename!r} has invalid priority {value!r}; use LOW, MEDIUM, or HIGH",
        ) from error


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _check_rendered_value(key: str, value: str) -> None:
    # Values must read back unchanged through _split_document.
    if "\n" in value or "\r" in value:
        raise ValidationError(f"Metadata value for {key!r} must be a single line")
    if not value or value != value.strip():
        raise ValidationError(
            f"Metadata value for {key!r} must be non-empty without surrounding whitespace",
        )
    if _unquote(value) != value:
        raise ValidationError(f"Metadata value for {key!r} must not be wrapped in double quotes")
