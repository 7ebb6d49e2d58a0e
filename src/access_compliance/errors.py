"""Error taxonomy for eligibility upserts and access delta recompute.

Codes are stable so operators can grep for them in logs:

- 51000: compliance source missing or unavailable
- 51001: access delta table missing
- 51002: recompute apply phase failed (rolled back)
- 51003: staged recompute results failed validation
- 51010: eligibility upsert failed (rolled back)
"""

from __future__ import annotations

SOURCE_UNAVAILABLE = 51000
DELTA_TABLE_MISSING = 51001
RECOMPUTE_FAILED = 51002
STAGING_INVALID = 51003
UPSERT_FAILED = 51010


class AccessComplianceError(Exception):
    """Base class for all engine errors."""

    code: int = 0
    retryable: bool = False

    def __init__(self, message: str, *, code: int | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class PreconditionFailedError(AccessComplianceError):
    """A required collaborator is missing or misconfigured.

    Raised before any mutation. Not retryable without operator action.
    """

    retryable = False

    def __init__(self, message: str, *, code: int, collaborator: str):
        self.collaborator = collaborator
        super().__init__(message, code=code)


class StagingValidationError(AccessComplianceError):
    """Aggregated candidate rows violate a delta table invariant."""

    code = STAGING_INVALID
    retryable = False

    def __init__(self, message: str, *, offending: list[tuple[str, ...]] | None = None):
        self.offending = offending or []
        super().__init__(message)


class TransactionalError(AccessComplianceError):
    """An atomic unit failed and was rolled back.

    The original exception is chained as ``__cause__``; ``cause_type``,
    ``cause_code`` and ``location`` summarize it for triage.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        cause_type: str,
        cause_code: str | int | None = None,
        location: str | None = None,
    ):
        self.cause_type = cause_type
        self.cause_code = cause_code
        self.location = location
        detail = f"{message}. {cause_type}"
        if cause_code is not None:
            detail += f" (code {cause_code})"
        if location:
            detail += f" at {location}"
        super().__init__(detail)

    @classmethod
    def wrap(cls, exc: BaseException, message: str, *, location: str) -> TransactionalError:
        """Build a wrapped error describing ``exc``."""
        return cls(
            f"{message}: {exc}",
            cause_type=type(exc).__name__,
            cause_code=_error_code(exc),
            location=location,
        )


class RecomputeFailedError(TransactionalError):
    """Access delta apply phase failed; no rows were changed."""

    code = RECOMPUTE_FAILED


class EligibilityUpsertError(TransactionalError):
    """Eligibility upsert failed; no state or history was written."""

    code = UPSERT_FAILED


class InvalidEligibilityInputError(AccessComplianceError, ValueError):
    """Caller passed an unusable employee ID, flag or reason."""

    code = 0


def _error_code(exc: BaseException) -> str | int | None:
    """Pull a driver or SQLAlchemy error code off an exception, if any."""
    orig = getattr(exc, "orig", None)
    if orig is not None:
        pgcode = getattr(orig, "pgcode", None)
        if pgcode:
            return pgcode
        sqlite_code = getattr(orig, "sqlite_errorname", None)
        if sqlite_code:
            return sqlite_code
    return getattr(exc, "code", None)
