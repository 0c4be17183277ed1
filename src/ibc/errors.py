"""Domain errors for the trivia and wallet engine.

Every error carries the HTTP status it surfaces as and a stable machine-readable
``code`` so clients can decide whether to re-fetch state, back off, or retry.
The global error handler renders them as ``{"detail": ..., "code": ...}``.
"""

from __future__ import annotations


class IbcError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, retry_after: int | None = None) -> None:
        self.message = message or self.default_message
        self.retry_after = retry_after
        super().__init__(self.message)


# --- Validation: rejected before any write ---


class ValidationFailed(IbcError):
    status_code = 400
    code = "validation_failed"
    default_message = "Invalid request"


class InvalidLevel(ValidationFailed):
    code = "invalid_level"
    default_message = "Invalid level"


class InvalidAmount(ValidationFailed):
    code = "invalid_amount"
    default_message = "Amount must be a positive number of sats"


class BelowMinimum(ValidationFailed):
    code = "below_minimum"
    default_message = "Amount is below the minimum withdrawal"


class NoQuestionsAvailable(ValidationFailed):
    code = "no_questions"
    default_message = "No questions available for this level"


class ConfigError(ValidationFailed):
    code = "invalid_config"
    default_message = "Invalid configuration"


# --- State conflicts: recoverable, client should re-fetch ---


class StateConflict(IbcError):
    status_code = 409
    code = "state_conflict"
    default_message = "State conflict"


class LevelLocked(StateConflict):
    status_code = 400
    code = "level_locked"
    default_message = "Level not yet unlocked"


class SessionNotFound(StateConflict):
    status_code = 404
    code = "session_not_found"
    default_message = "Session not found"


class SessionExpired(StateConflict):
    status_code = 410
    code = "session_expired"
    default_message = "Session expired"


class SessionSuperseded(StateConflict):
    status_code = 410
    code = "session_superseded"
    default_message = "Session was replaced by a newer session"


class QuestionNotInSession(StateConflict):
    status_code = 400
    code = "question_not_in_session"
    default_message = "Question is not part of this session"


class QuestionAlreadyAnswered(StateConflict):
    status_code = 400
    code = "question_already_answered"
    default_message = "Question already answered"


class InsufficientBalance(StateConflict):
    status_code = 400
    code = "insufficient_balance"
    default_message = "Insufficient balance"


class PayoutNotFound(StateConflict):
    status_code = 404
    code = "payout_not_found"
    default_message = "Payout not found"


# --- Throttling ---


class RateLimited(IbcError):
    status_code = 429
    code = "rate_limited"
    default_message = "Rate limit exceeded. Try again later."


class PayoutLimitExceeded(RateLimited):
    code = "payout_limit_exceeded"
    default_message = "Daily payout limit reached"


# --- Outer failures ---


class ProviderFailure(IbcError):
    status_code = 502
    code = "provider_failure"
    default_message = "Payment provider failed"


class MaintenanceMode(IbcError):
    status_code = 503
    code = "maintenance"
    default_message = "Service is in maintenance mode"


class Forbidden(IbcError):
    status_code = 403
    code = "forbidden"
    default_message = "Admin privileges required"


class FeatureDisabled(IbcError):
    status_code = 403
    code = "feature_disabled"
    default_message = "This feature is currently disabled"
