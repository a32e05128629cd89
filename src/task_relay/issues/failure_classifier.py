"""Deterministic classification of issue tracker command failures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

TRACKER_FAILURE_CLASSIFIER_VERSION = 1


class TrackerFailureClass(str, Enum):
    """Normalized failure classes reported with ``ConversionError``."""

    ACCESS_OR_AUTH = "access_or_auth"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    NON_RETRYABLE = "non_retryable"


_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "gh auth login",
    "authentication",
    "unauthorized",
    "bad credentials",
    "forbidden",
    "permission denied",
    "http 401",
    "http 403",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "secondary rate",
    "too many requests",
    "http 429",
)
_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "could not resolve to a repository",
    "could not resolve to an issue",
    "http 404",
    "not found",
)
_REJECTED_PATTERNS: tuple[str, ...] = (
    "could not add label",
    "not found: label",
    "milestone",
    "validation failed",
    "http 422",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "timeout",
    "timed out",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "could not resolve host",
    "http 502",
    "http 503",
    "http 504",
    "eof",
)


@dataclass(slots=True)
class TrackerFailureClassification:
    """Normalized failure classification result."""

    failure_class: TrackerFailureClass
    reason_code: str
    matched_pattern: str | None

    @property
    def transient(self) -> bool:
        return self.failure_class in {
            TrackerFailureClass.RATE_LIMITED,
            TrackerFailureClass.TRANSIENT,
        }


def classify_tracker_failure(
    *,
    operation: str,
    exit_code: int,
    stdout: str,
    stderr: str,
) -> TrackerFailureClassification:
    """Classify a failed tracker command into a stable reason code."""

    haystack = f"{stderr}\n{stdout}".lower()
    rules: tuple[tuple[TrackerFailureClass, tuple[str, ...]], ...] = (
        (TrackerFailureClass.ACCESS_OR_AUTH, _ACCESS_OR_AUTH_PATTERNS),
        (TrackerFailureClass.RATE_LIMITED, _RATE_LIMIT_PATTERNS),
        (TrackerFailureClass.REJECTED, _REJECTED_PATTERNS),
        (TrackerFailureClass.NOT_FOUND, _NOT_FOUND_PATTERNS),
        (TrackerFailureClass.TRANSIENT, _TRANSIENT_PATTERNS),
    )
    for failure_class, patterns in rules:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return TrackerFailureClassification(
                failure_class=failure_class,
                reason_code=f"{operation}_{failure_class.value}",
                matched_pattern=pattern,
            )

    if exit_code in (124, 137, 143):
        return TrackerFailureClassification(
            failure_class=TrackerFailureClass.TRANSIENT,
            reason_code=f"{operation}_{TrackerFailureClass.TRANSIENT.value}",
            matched_pattern=None,
        )
    return TrackerFailureClassification(
        failure_class=TrackerFailureClass.NON_RETRYABLE,
        reason_code=f"{operation}_{TrackerFailureClass.NON_RETRYABLE.value}",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
