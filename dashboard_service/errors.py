"""Exception types shared by ingestion, summary and client code."""
import re
from typing import Optional


class ConfigurationError(Exception):
    """Missing credentials or identifiers. Fatal, never retried."""
    pass


class UpstreamFetchError(Exception):
    """Raised when the spreadsheet source returns a non-OK response or is unreachable."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class SummaryUnavailableError(Exception):
    """Every read behind the dashboard summary failed."""
    pass


class SummaryRequestError(Exception):
    """Non-2xx response from the dashboard summary endpoint."""

    def __init__(self, status: int, text: str):
        super().__init__(f"dashboard-summary error {status}: {text}")
        self.status = status
        self.text = text


class SummaryTimeoutError(Exception):
    """The dashboard summary fetch exceeded its timeout."""

    def __init__(self, message: str = "Dashboard load timed out. Please refresh the page."):
        super().__init__(message)


class AuthenticationError(Exception):
    """Missing, expired or invalid bearer token."""
    pass


SIGN_IN_AGAIN_MESSAGE = "Your session has expired. Please sign in again."
GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."

_AUTH_PATTERNS = re.compile(
    r"jwt|token|not authenticated|unauthori[sz]ed|session (?:has )?expired|auth session missing",
    re.IGNORECASE,
)


def is_auth_error(exc: BaseException) -> bool:
    """Detect a failed user session from the exception type, status or message.

    Sheet-side failures (a 403 from Google on a private sheet) are about the
    service credentials, not the user, and never count.
    """
    if isinstance(exc, AuthenticationError):
        return True
    if isinstance(exc, (UpstreamFetchError, ConfigurationError)):
        return False
    if isinstance(exc, SummaryRequestError):
        return exc.status in (401, 403)
    return bool(_AUTH_PATTERNS.search(str(exc)))


def describe_error(exc: BaseException) -> str:
    """Map an exception to the message shown to the dashboard user."""
    if isinstance(exc, SummaryTimeoutError):
        return str(exc)
    if is_auth_error(exc):
        return SIGN_IN_AGAIN_MESSAGE
    message = str(exc).strip()
    return message or GENERIC_FAILURE_MESSAGE
