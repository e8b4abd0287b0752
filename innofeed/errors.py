"""Exception hierarchy shared by all pipeline stages."""
from sqlalchemy import exc as sa_exc


class InnofeedError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(InnofeedError):
    """Required external configuration is missing. Aborts the whole run."""


class FetchError(InnofeedError):
    """A source endpoint could not be fetched."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMError(InnofeedError):
    """Base class for structured generation failures."""

    code = "LLM_ERROR"


class BackendUnavailableError(LLMError):
    """Backend has no credentials configured."""

    code = "LLM_UNAVAILABLE"


class RateLimitError(LLMError):
    code = "LLM_RATE_LIMIT"


class BackendAPIError(LLMError):
    """Non-success HTTP status or transport failure talking to a backend."""

    code = "LLM_API_ERROR"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidOutputError(LLMError):
    """Backend answered but the text is not valid JSON for the expected schema."""

    code = "LLM_INVALID_JSON"


# Store connectivity failures abort the run instead of being folded into item stats
_FATAL_STORE_ERRORS = (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.DisconnectionError)


def is_fatal(exc: BaseException) -> bool:
    """True for errors that must escape per-item isolation and fail the run."""
    return isinstance(exc, (ConfigurationError,) + _FATAL_STORE_ERRORS)
