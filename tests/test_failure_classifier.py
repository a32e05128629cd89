from __future__ import annotations

import allure

from task_relay.issues.failure_classifier import (
    TRACKER_FAILURE_CLASSIFIER_VERSION,
    TrackerFailureClass,
    classify_tracker_failure,
)

pytestmark = [
    allure.epic("Issue Conversion"),
    allure.feature("Tracker Failures"),
]


def test_classifier_version_is_stable() -> None:
    assert TRACKER_FAILURE_CLASSIFIER_VERSION == 1


def test_classifier_prefers_auth_over_transient_exit_code() -> None:
    classified = classify_tracker_failure(
        operation="create_issue",
        exit_code=137,
        stdout="",
        stderr="To get started with GitHub CLI, please run:  gh auth login",
    )
    assert classified.failure_class == TrackerFailureClass.ACCESS_OR_AUTH
    assert classified.reason_code == "create_issue_access_or_auth"
    assert classified.transient is False


def test_classifier_maps_rate_limit_as_transient() -> None:
    classified = classify_tracker_failure(
        operation="list_issues",
        exit_code=1,
        stdout="",
        stderr="HTTP 429: API rate limit exceeded",
    )
    assert classified.failure_class == TrackerFailureClass.RATE_LIMITED
    assert classified.transient is True


def test_classifier_maps_missing_milestone_to_rejected() -> None:
    classified = classify_tracker_failure(
        operation="create_issue",
        exit_code=1,
        stdout="",
        stderr="could not add to milestone 'v9': 'v9' not found",
    )
    assert classified.failure_class == TrackerFailureClass.REJECTED
    assert classified.matched_pattern == "milestone"


def test_classifier_maps_unknown_repository_to_not_found() -> None:
    classified = classify_tracker_failure(
        operation="close_issue",
        exit_code=1,
        stdout="",
        stderr="GraphQL: Could not resolve to a Repository with the name 'acme/ghost'.",
    )
    assert classified.failure_class == TrackerFailureClass.NOT_FOUND
    assert classified.reason_code == "close_issue_not_found"


def test_classifier_maps_network_errors_to_transient() -> None:
    classified = classify_tracker_failure(
        operation="create_issue",
        exit_code=1,
        stdout="",
        stderr="error connecting to api.github.com: connection reset by peer",
    )
    assert classified.failure_class == TrackerFailureClass.TRANSIENT
    assert classified.transient is True


def test_classifier_uses_exit_code_when_output_is_silent() -> None:
    classified = classify_tracker_failure(operation="list_issues", exit_code=143, stdout="", stderr="")
    assert classified.failure_class == TrackerFailureClass.TRANSIENT
    assert classified.matched_pattern is None


def test_classifier_falls_back_to_non_retryable() -> None:
    classified = classify_tracker_failure(
        operation="create_issue",
        exit_code=2,
        stdout="",
        stderr="unknown flag: --body-fil",
    )
    assert classified.failure_class == TrackerFailureClass.NON_RETRYABLE
    assert classified.reason_code == "create_issue_non_retryable"
    assert classified.transient is False
