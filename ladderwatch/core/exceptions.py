"""Ladderwatch — Application Errors.

Every error the jobs raise on purpose carries a stable `code` so the CLI and
HTTP surfaces can report it by name instead of as a generic failure.
"""

from typing import Optional


class LadderwatchError(Exception):
    """Base exception for Ladderwatch application errors."""

    code = "LADDERWATCH_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(f"{self.code}: {message}")


class ConfigValidationError(LadderwatchError):
    """Roster or score-profile config is missing, malformed, or invalid."""

    code = "INVALID_CONFIG"
    status_code = 400


class InvalidSnapshotDateError(LadderwatchError):
    """A snapshot date argument is not a real YYYY-MM-DD calendar date."""

    code = "INVALID_SNAPSHOT_DATE"
    status_code = 400


class NoPollJobError(LadderwatchError):
    """No completed poll job exists for the requested snapshot date."""

    code = "NO_POLL_JOB_FOR_DATE"
    status_code = 404


class NoActiveScoreProfileError(LadderwatchError):
    code = "NO_ACTIVE_SCORE_PROFILE"
    status_code = 404


class DigestSendDisabledError(LadderwatchError):
    """Digest send requested while Telegram delivery is disabled or unconfigured."""

    code = "TELEGRAM_DIGEST_DISABLED"
    status_code = 409


class DeliveryAlreadyRunningError(LadderwatchError):
    """Another execution holds the delivery slot (PENDING). Safe to retry later."""

    code = "DELIVERY_ALREADY_RUNNING"
    status_code = 409
    retryable = True


class DeliveryClaimError(LadderwatchError):
    code = "DELIVERY_CLAIM_FAILED"


class DeliveryNotFoundError(LadderwatchError):
    code = "DELIVERY_NOT_FOUND"
    status_code = 404


def serialize_error(error: BaseException) -> dict:
    """JSON-safe error payload for JobRun / delivery audit rows."""
    payload = {
        "name": type(error).__name__,
        "message": error.message if isinstance(error, LadderwatchError) else str(error),
    }
    if isinstance(error, LadderwatchError):
        payload["code"] = error.code
        payload["retryable"] = error.retryable
        if error.details:
            payload["details"] = error.details
    return payload


def error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__
