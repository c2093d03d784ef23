"""
Error classifier.

Turns every failure surface (transport, request, method, per-object) into
an ErrorClassification carrying the recovery policy. This is the only
place where protocol error names are interpreted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from jmap_engine.domain.enums import ErrorClass, ExitCode
from jmap_engine.domain.exceptions import (AuthenticationRequiredError,
                                           JmapEngineException, MethodFailure,
                                           ProtocolViolation, RequestRejected,
                                           SafetyRejectedError,
                                           StateInvalidatedError,
                                           TransportFailure)
from jmap_engine.domain.value_objects import ErrorClassification
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

# RFC 8620 section 3.6.2 and RFC 8621 method-level errors
METHOD_ERRORS: dict[str, ErrorClass] = {
    "serverUnavailable": ErrorClass.RETRYABLE,
    "serverPartialFail": ErrorClass.RETRYABLE,
    "rateLimit": ErrorClass.RETRYABLE,
    "serverFail": ErrorClass.PERMANENT,
    "unknownMethod": ErrorClass.PERMANENT,
    "invalidArguments": ErrorClass.PERMANENT,
    "invalidResultReference": ErrorClass.PERMANENT,
    "forbidden": ErrorClass.PERMANENT,
    "accountNotFound": ErrorClass.PERMANENT,
    "accountNotSupportedByMethod": ErrorClass.PERMANENT,
    "accountReadOnly": ErrorClass.PERMANENT,
    "requestTooLarge": ErrorClass.PERMANENT,
    "stateMismatch": ErrorClass.PERMANENT,
    "cannotCalculateChanges": ErrorClass.PERMANENT,
    "tooManyChanges": ErrorClass.PERMANENT,
    "anchorNotFound": ErrorClass.PERMANENT,
    "unsupportedSort": ErrorClass.PERMANENT,
    "unsupportedFilter": ErrorClass.PERMANENT,
    "fromAccountNotFound": ErrorClass.PERMANENT,
    "fromAccountNotSupportedByMethod": ErrorClass.PERMANENT,
}

# The cached session no longer describes the account
SESSION_REFRESH_ERRORS = frozenset({"accountNotFound", "accountNotSupportedByMethod"})

# The state token must be discarded and the type refetched
STATE_INVALIDATING_ERRORS = frozenset({"cannotCalculateChanges", "tooManyChanges"})

# RFC 8620 section 5.3 and RFC 8621 SetErrors
OBJECT_ERRORS: dict[str, ErrorClass] = {
    "rateLimit": ErrorClass.RETRYABLE,
    "forbiddenFrom": ErrorClass.SAFETY,
    "forbiddenToSend": ErrorClass.SAFETY,
    "forbiddenMailFrom": ErrorClass.SAFETY,
}

_EXIT_CODES = {
    ErrorClass.RETRYABLE: ExitCode.TRANSIENT_ERROR,
    ErrorClass.REAUTHENTICATE: ExitCode.TRANSIENT_ERROR,
    ErrorClass.PERMANENT: ExitCode.PERMANENT_ERROR,
    ErrorClass.SAFETY: ExitCode.SAFETY_REJECTED,
}


def parse_retry_after(value: str | float | int | None) -> float | None:
    """
    Parse a Retry-After value: delta-seconds or an HTTP-date.

    Returns:
        Seconds to wait (never negative), or None if absent or unparseable
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    text = value.strip()
    try:
        return max(0.0, float(text))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable Retry-After: %r", value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class ErrorClassifier:
    """Maps every error surface to exactly one recovery policy"""

    def classify_transport(self, error: TransportFailure) -> ErrorClassification:
        if isinstance(error, AuthenticationRequiredError):
            return ErrorClassification(ErrorClass.REAUTHENTICATE, "unauthorized", error.message)
        return ErrorClassification(
            ErrorClass.RETRYABLE,
            f"http{error.status_code}" if error.status_code else "transport",
            error.message,
            retry_after=error.retry_after,
        )

    def classify_request(self, error: RequestRejected) -> ErrorClassification:
        """Request-level problem documents are never retried"""
        return ErrorClassification(ErrorClass.PERMANENT, error.problem_type, error.detail or None)

    def classify_method(self, error_type: str, arguments: dict[str, Any] | None = None) -> ErrorClassification:
        arguments = arguments or {}
        error_class = METHOD_ERRORS.get(error_type)
        if error_class is None:
            logger.warning("Unknown method error type %r, treating as permanent", error_type)
            error_class = ErrorClass.PERMANENT

        retry_after = None
        if error_class == ErrorClass.RETRYABLE:
            retry_after = parse_retry_after(arguments.get("retryAfter"))

        return ErrorClassification(
            error_class,
            error_type,
            arguments.get("description"),
            retry_after=retry_after,
            refresh_session=error_type in SESSION_REFRESH_ERRORS,
        )

    def classify_object(self, error_type: str, arguments: dict[str, Any] | None = None) -> ErrorClassification:
        """Classify one SetError; anything not in the table is permanent"""
        arguments = arguments or {}
        error_class = OBJECT_ERRORS.get(error_type, ErrorClass.PERMANENT)
        retry_after = None
        if error_class == ErrorClass.RETRYABLE:
            retry_after = parse_retry_after(arguments.get("retryAfter"))
        return ErrorClassification(error_class, error_type, arguments.get("description"), retry_after=retry_after)

    def classify(self, error: BaseException) -> ErrorClassification:
        """
        Classify a raised engine exception.

        Raises:
            TypeError: If ``error`` is not part of the engine's taxonomy
        """
        if isinstance(error, TransportFailure):
            return self.classify_transport(error)
        if isinstance(error, RequestRejected):
            return self.classify_request(error)
        if isinstance(error, MethodFailure):
            return self.classify_method(error.error_type, error.arguments)
        if isinstance(error, SafetyRejectedError):
            return ErrorClassification(ErrorClass.SAFETY, error.error_code, error.message)
        if isinstance(error, StateInvalidatedError):
            return ErrorClassification(ErrorClass.PERMANENT, "cannotCalculateChanges", error.message)
        if isinstance(error, (ProtocolViolation, JmapEngineException)):
            return ErrorClassification(ErrorClass.PERMANENT, error.error_code, error.message)
        raise TypeError(f"Cannot classify {type(error).__name__}")

    @staticmethod
    def invalidates_state(error_type: str) -> bool:
        return error_type in STATE_INVALIDATING_ERRORS


def exit_code(classification: ErrorClassification | None) -> ExitCode:
    """Process exit code for an outcome; None means success"""
    if classification is None:
        return ExitCode.SUCCESS
    return _EXIT_CODES[classification.error_class]
