"""
Error Taxonomy
==============
Every failure the treasury pipeline can surface.

Lower-level clients raise these and never swallow them; only the
SwapOrchestrator turns a leg-2 failure into a partial-success result.
"""

from typing import Any, Optional


class SyndicateError(Exception):
    """Base class for all treasury pipeline errors."""


class ConfigurationError(SyndicateError):
    """A required secret or endpoint is missing or invalid."""

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"{key} not set")


class RoutingServiceError(SyndicateError):
    """Non-success response (or unparseable payload) from the routing service."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    def __str__(self):
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code}): {self.body}"
        return base


class ExecutionRejectedError(RoutingServiceError):
    """The execute endpoint explicitly reported failure. No fallback is attempted."""


class MalformedTransactionError(SyndicateError):
    """Transaction bytes could not be deserialized or signed with the held key."""


class BroadcastError(SyndicateError):
    """Direct chain submission exhausted its bounded attempts."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)


class ConfirmationTimeoutError(SyndicateError):
    """
    The transaction was submitted but confirmation was not observed in time.

    This is NOT a failure: the signature may still land. Re-check it
    out-of-band instead of resubmitting.
    """

    def __init__(self, signature: str, timeout_s: Optional[float] = None):
        self.signature = signature
        self.timeout_s = timeout_s
        super().__init__(f"Submitted but not confirmed after {timeout_s}s: {signature}")


class TransactionFailedError(SyndicateError):
    """The transaction landed on-chain with an execution error."""

    def __init__(self, signature: str, err: Any):
        self.signature = signature
        self.err = err
        super().__init__(f"Transaction {signature} failed on-chain: {err}")


class ForumError(SyndicateError):
    """Non-success response from the forum API."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message if status_code is None else f"{message}: {status_code} {body}")


class ResumeInProgressError(SyndicateError):
    """Another resume already owns this pending conversion."""

    def __init__(self, pending_id: str):
        self.pending_id = pending_id
        super().__init__(f"Pending conversion {pending_id} is already being resumed")


class LegStillPendingError(SyndicateError):
    """
    A previously submitted leg is unconfirmed and its blockhash may still
    be valid. Placing a new order now could spend the held amount twice.
    """

    def __init__(self, signature: str):
        self.signature = signature
        super().__init__(f"Leg {signature} not confirmed yet and may still land; retry later")
