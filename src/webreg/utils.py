"""Shared request utilities: read-only guardrails and wire-format helpers."""

import re
import time

from webreg.endpoints import DRY_RUN_ENDPOINTS, Endpoint
from webreg.errors import InvalidRequestConstruction
from webreg.logging import get_logger

log = get_logger(__name__)

# HTTP methods that modify server state - blocked in read-only mode.
_BLOCKED_METHODS: frozenset[str] = frozenset({"POST", "PUT", "DELETE", "PATCH"})

_TAG_RE = re.compile(r"<[^>]*>")


def ensure_request_allowed(method: str, endpoint: Endpoint, *, read_only: bool) -> None:
    """Refuse committing requests when the client runs in read-only mode.

    Dry-run validation endpoints stay allowed so that callers can still check
    eligibility without changing anything.

    Raises:
        InvalidRequestConstruction: If the request would modify server state.
    """
    if not read_only or method.upper() not in _BLOCKED_METHODS:
        return
    if endpoint in DRY_RUN_ENDPOINTS:
        return
    log.warning("blocked_mutating_request", method=method, endpoint=endpoint.name)
    raise InvalidRequestConstruction(
        f"{endpoint.name} modifies server state and the client is read-only"
    )


def epoch_millis() -> str:
    """Cache-busting value the service's own frontend appends to every GET."""
    return str(int(time.time() * 1000))


def format_course_code(course_code: str) -> str:
    """Left-pad a course code so its numeric part is three characters wide.

    The service matches course codes positionally: ``"8A"`` must be sent as
    ``"  8A"`` and ``"20E"`` as ``" 20E"``.
    """
    code = course_code.strip().upper()
    digits = sum(1 for c in code if c.isdigit())
    if digits == 1:
        return f"  {code}"
    if digits == 2:
        return f" {code}"
    return code


def format_course_list(courses: list[str]) -> str:
    """Join "SUBJ CODE" or bare course codes the way the search endpoint wants.

    Tokens of one course are joined with ``:`` and courses with ``;``, so
    ``["math 20d", "101"]`` becomes ``"MATH: 20D;101"``.
    """
    formatted = (
        ":".join(format_course_code(token) for token in course.split())
        for course in courses
    )
    return ";".join(c for c in formatted if c)


def strip_section_id(section_id: str) -> str:
    """Drop leading zeros; schedules report ``079911`` as ``79911``."""
    return section_id.strip().lstrip("0") or "0"


def parse_instructor_names(raw: str | None) -> list[str]:
    """Split ``"Name ;pid:Other Name ;pid2"`` into ``["Name", "Other Name"]``.

    Order is preserved, blanks and duplicates are dropped.
    """
    if not raw:
        return []
    names: list[str] = []
    for chunk in raw.split(":"):
        name = chunk.split(";", 1)[0].strip()
        if name and name not in names:
            names.append(name)
    return names


def strip_html(text: str) -> str:
    """Remove HTML tags from a service message, keeping the text verbatim."""
    return _TAG_RE.sub("", text).strip()


# Quarter offsets from the spring quarter of the same calendar year.
_TERM_OFFSETS = {"WI": -10, "SP": 0, "S1": 10, "S2": 20, "S3": 30, "FA": 50}
_SP22_SEQ_ID = 5200


def term_seq_id(term: str) -> int | None:
    """Sequence id the service uses internally for a term code like ``FA23``.

    Returns None for a term code that cannot be decoded.
    """
    term = term.strip().upper()
    offset = _TERM_OFFSETS.get(term[:2])
    if len(term) != 4 or offset is None or not term[2:].isdigit():
        return None
    return _SP22_SEQ_ID + 70 * (int(term[2:]) - 22) + offset
