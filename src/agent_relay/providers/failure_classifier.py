"""Deterministic CLI failure classification with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass

from agent_relay.providers.models import ClassifiedError, ErrorKind

CRASH_EXIT_CODES: tuple[int, ...] = (137,)

_NOT_AUTHENTICATED_PATTERNS: tuple[str, ...] = (
    "not authenticated",
    "please log in",
    "unauthorized",
    "authentication failed",
    "invalid api key",
    "not logged in",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "too many requests",
    "429",
)
_MODEL_UNAVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not available",
    "invalid model",
    "unknown model",
    "model not found",
    "unsupported model",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "network",
    "connection",
    "econnrefused",
    "econnreset",
    "timeout",
    "timed out",
)
_CRASH_PATTERNS: tuple[str, ...] = (
    "killed",
    "sigterm",
    "sigkill",
)


@dataclass(slots=True, frozen=True)
class ClassifierHints:
    """Backend-specific wording used in classification messages."""

    cli_label: str
    login_suggestion: str
    rate_limit_suggestion: str = "Wait a few minutes and try again, or upgrade your plan."
    model_suggestion: str = "Select a different model and try again."


def classify_cli_failure(
    *,
    stderr: str,
    exit_code: int | None,
    hints: ClassifierHints,
) -> ClassifiedError:
    """Classify a failed CLI run; first matching rule wins."""

    haystack = stderr.lower()

    pattern = _first_match(haystack, _NOT_AUTHENTICATED_PATTERNS)
    if pattern is not None:
        return ClassifiedError(
            kind=ErrorKind.NOT_AUTHENTICATED,
            message=f"{hints.cli_label} is not authenticated",
            recoverable=True,
            suggestion=hints.login_suggestion,
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _RATE_LIMIT_PATTERNS)
    if pattern is not None:
        return ClassifiedError(
            kind=ErrorKind.RATE_LIMITED,
            message=f"{hints.cli_label} rate limit exceeded",
            recoverable=True,
            suggestion=hints.rate_limit_suggestion,
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _MODEL_UNAVAILABLE_PATTERNS)
    if pattern is not None:
        return ClassifiedError(
            kind=ErrorKind.MODEL_UNAVAILABLE,
            message="Requested model is not available",
            recoverable=True,
            suggestion=hints.model_suggestion,
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _NETWORK_PATTERNS)
    if pattern is not None:
        return ClassifiedError(
            kind=ErrorKind.NETWORK_ERROR,
            message="Network connection error",
            recoverable=True,
            suggestion="Check your internet connection and try again.",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _CRASH_PATTERNS)
    if pattern is not None or exit_code in CRASH_EXIT_CODES:
        return ClassifiedError(
            kind=ErrorKind.PROCESS_CRASHED,
            message=f"{hints.cli_label} process was terminated",
            recoverable=True,
            suggestion="The process may have run out of memory. Retry with a smaller task.",
            matched_pattern=pattern,
        )

    return ClassifiedError(
        kind=ErrorKind.UNKNOWN,
        message=stderr.strip() or f"{hints.cli_label} exited with code {exit_code}",
        recoverable=False,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
