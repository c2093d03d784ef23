"""
Domain exceptions for the JMAP protocol engine.

This module defines the closed error taxonomy raised by the engine. Every
exception carries a machine-readable error code and a details mapping so that
callers (and the error classifier) never need to re-parse raw protocol JSON.
"""

from typing import Any


class JmapEngineException(Exception):
    """
    Base exception for all engine errors.

    All custom exceptions should inherit from this class to allow
    for consistent error handling and logging.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured output."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Transport layer


class TransportFailure(JmapEngineException):
    """Network-level failure (connect error, timeout, 5xx)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, "TRANSPORT_FAILURE", details)


class AuthenticationRequiredError(TransportFailure):
    """The server answered 401: the token provider must be consulted."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=401)
        self.error_code = "AUTHENTICATION_REQUIRED"


# Request level


class RequestRejected(JmapEngineException):
    """The whole batch was rejected (RFC 8620 section 3.6.1)."""

    def __init__(
        self,
        problem_type: str,
        detail: str = "",
        status_code: int | None = None,
        limit: str | None = None,
    ):
        self.problem_type = problem_type
        self.detail = detail
        self.status_code = status_code
        self.limit = limit
        details: dict[str, Any] = {"type": problem_type}
        if limit:
            details["limit"] = limit
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            f"Request rejected ({problem_type}): {detail}".rstrip(": "),
            "REQUEST_REJECTED",
            details,
        )


# Method level


class MethodFailure(JmapEngineException):
    """A named error returned in one call's response slot."""

    def __init__(
        self,
        error_type: str,
        method: str,
        client_id: str,
        description: str | None = None,
        arguments: dict[str, Any] | None = None,
    ):
        self.error_type = error_type
        self.method = method
        self.client_id = client_id
        self.description = description
        self.arguments = arguments or {}
        message = f"{method} [{client_id}] failed: {error_type}"
        if description:
            message = f"{message} ({description})"
        super().__init__(
            message,
            "METHOD_FAILURE",
            {"type": error_type, "method": method, "client_id": client_id},
        )


class ProtocolViolation(JmapEngineException):
    """The response document does not match the request (client or server bug)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, "PROTOCOL_VIOLATION", details)


# Construction errors: detected before anything is sent


class RequestConstructionError(JmapEngineException):
    """A batch could not be built from the supplied calls."""


class DuplicateClientIdError(RequestConstructionError):
    """Two calls in the same sequence share a client id."""

    def __init__(self, client_id: str):
        super().__init__(
            f"Duplicate client id: {client_id}",
            "DUPLICATE_CLIENT_ID",
            {"client_id": client_id},
        )


class InvalidResultReferenceError(RequestConstructionError):
    """A result reference names a call that is absent, later, or of another method."""

    def __init__(self, client_id: str, result_of: str, reason: str):
        super().__init__(
            f"Call {client_id} has an invalid reference to {result_of}: {reason}",
            "INVALID_RESULT_REFERENCE",
            {"client_id": client_id, "result_of": result_of, "reason": reason},
        )


class RequestTooLargeError(RequestConstructionError):
    """A reference-connected run of calls exceeds the per-request call limit."""

    def __init__(self, max_calls: int, required: int):
        super().__init__(
            f"{required} reference-linked calls cannot fit in a batch of {max_calls}",
            "REQUEST_TOO_LARGE",
            {"max_calls": max_calls, "required": required},
        )


# Session


class MalformedSessionError(JmapEngineException):
    """The session resource could not be parsed."""

    def __init__(self, reason: str):
        super().__init__(
            f"Malformed session resource: {reason}",
            "MALFORMED_SESSION",
            {"reason": reason},
        )


class UnsupportedCapabilityError(JmapEngineException):
    """The session or account does not advertise a required capability."""

    def __init__(self, capability: str, account_id: str | None = None):
        self.capability = capability
        self.account_id = account_id
        where = f" for account {account_id}" if account_id else ""
        super().__init__(
            f"Capability {capability} is not supported{where}",
            "UNSUPPORTED_CAPABILITY",
            {"capability": capability, "account_id": account_id},
        )


class AccountNotFoundError(JmapEngineException):
    """No usable account exists in the session."""

    def __init__(self, account_id: str | None = None):
        super().__init__(
            f"Account not found: {account_id}" if account_id else "No account in session",
            "ACCOUNT_NOT_FOUND",
            {"account_id": account_id},
        )


class SessionNotNegotiatedError(JmapEngineException):
    """The session was queried before negotiate() completed."""

    def __init__(self):
        super().__init__("No session negotiated; call negotiate() first", "SESSION_NOT_NEGOTIATED")


# Set interpretation


class NotYetCreatedError(JmapEngineException):
    """A creation id has not been assigned a permanent id yet."""

    def __init__(self, creation_id: str):
        super().__init__(
            f"Creation id has no permanent id yet: {creation_id}",
            "NOT_YET_CREATED",
            {"creation_id": creation_id},
        )


# Sync state


class StateInvalidatedError(JmapEngineException):
    """The state token can no longer be used for incremental sync."""

    def __init__(self, account_id: str, data_type: str, token: str | None = None):
        super().__init__(
            f"State for {data_type} in account {account_id} requires a full refetch",
            "STATE_INVALIDATED",
            {"account_id": account_id, "data_type": data_type, "token": token},
        )


class SyncInProgressError(JmapEngineException):
    """Another changes loop already owns this (account, data type) key."""

    def __init__(self, account_id: str, data_type: str):
        super().__init__(
            f"A sync for {data_type} in account {account_id} is already running",
            "SYNC_IN_PROGRESS",
            {"account_id": account_id, "data_type": data_type},
        )


# Safety


class SafetyRejectedError(JmapEngineException):
    """A destructive or sending batch was not confirmed."""

    def __init__(self, message: str = "Operation cancelled", calls: list[str] | None = None):
        super().__init__(message, "SAFETY_REJECTED", {"calls": calls or []})
