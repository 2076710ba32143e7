"""Error taxonomy for oracle calls and engine configuration."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised at construction time when an engine is misconfigured."""


class OracleError(Exception):
    """Base class for failures around a single oracle call."""


class OracleTransportError(OracleError):
    """Network or HTTP level failure."""

    def __init__(self, message: str, *, retryable: bool = True, status: int | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status = status


class OracleTimeout(OracleTransportError):
    """The oracle did not answer within the per-call timeout."""


class OracleMalformedResponse(OracleError):
    """The response text could not be parsed into the expected shape."""

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class OracleValidationError(OracleError):
    """A parsed entry is semantically invalid (e.g. index out of range)."""


class ExhaustedRetries(OracleError):
    """All attempts for one unit of work failed."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        detail = f"{type(last_error).__name__}: {last_error}" if last_error else "no attempt made"
        super().__init__(f"Failed after {attempts} attempts: {detail}")
        self.attempts = attempts
        self.last_error = last_error


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, OracleTransportError):
        return exc.retryable
    return isinstance(exc, OracleMalformedResponse)
