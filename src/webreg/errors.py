"""Error hierarchy for the WebReg client.

Errors are split into transient failures (may succeed if the caller tries again)
and permanent failures (will not succeed without the caller changing something).
The client itself never retries mutating requests; the split exists so callers
can wire tenacity decorators around their own calls:

    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    async def fetch_schedule(client: WebRegClient):
        ...

Per-row parsing problems are never raised; they are reported as Diagnostics by
the normalizer.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable names for every error raised by this package."""

    TRANSPORT = "transport_error"
    SESSION_INVALID = "session_invalid"
    MALFORMED_RESPONSE = "malformed_response"
    SERVICE_REJECTED = "service_rejected"
    SECTION_NOT_FOUND = "section_not_found"
    INVALID_REQUEST = "invalid_request_construction"
    CONFLICTING_SEARCH_MODE = "conflicting_search_mode"


class WebRegError(Exception):
    """Base exception for all client errors."""

    kind: ErrorKind


class TransientError(WebRegError):
    """Temporary failure that may succeed on retry."""

    pass


class TransportError(TransientError):
    """Network failure, timeout, or unexpected HTTP status.

    Surfaced to the caller as-is. Only GET requests are ever retried, and only
    when the caller opts in through ``read_attempts``.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PermanentError(WebRegError):
    """Failure that won't succeed on retry."""

    pass


class SessionInvalid(PermanentError):
    """Cookie expired or was never valid - the user has to log in again.

    Requires human intervention (a fresh cookie export), cannot be fixed by retry.
    """

    kind = ErrorKind.SESSION_INVALID


class MalformedResponse(PermanentError):
    """The outer shape of a response could not be parsed."""

    kind = ErrorKind.MALFORMED_RESPONSE


class ServiceRejected(PermanentError):
    """The service answered with a well-formed negative response.

    ``message`` is the service text, verbatim apart from stripped HTML tags.
    """

    kind = ErrorKind.SERVICE_REJECTED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SectionNotFound(PermanentError):
    """A section id was not present where it was looked up."""

    kind = ErrorKind.SECTION_NOT_FOUND

    def __init__(self, section_id: str, context: str) -> None:
        super().__init__(f"Section {section_id} not found in {context}")
        self.section_id = section_id
        self.context = context


class InvalidRequestConstruction(PermanentError, ValueError):
    """A request was built incorrectly. Raised before any I/O happens."""

    kind = ErrorKind.INVALID_REQUEST


class ConflictingSearchMode(InvalidRequestConstruction):
    """Explicit section-id search was mixed with filter-based search."""

    kind = ErrorKind.CONFLICTING_SEARCH_MODE
