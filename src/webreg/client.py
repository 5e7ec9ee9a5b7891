"""Public entry point: the WebReg client facade.

    async with WebRegClient(cookie, "FA23") as client:
        course = await client.get_course_info("CSE", "100")
        section = course.find_section("079911")
        result = await client.add_section(
            EnrollRequest(section_id=section.section_id),
            has_seats=section.has_seats(),
        )

WebRegClient is meant to be owned by one task. SharedWebRegClient has the same
API and can be shared by any number of concurrent tasks; it only differs in
the session handle it is built on.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx

from webreg.config import ClientConfig, get_config
from webreg.endpoints import Endpoint
from webreg.errors import (
    InvalidRequestConstruction,
    MalformedResponse,
    SectionNotFound,
    SessionInvalid,
)
from webreg.executor import ActionExecutor, EnrollRequest, PlanRequest
from webreg.logging import get_logger
from webreg.models import (
    DEFAULT_SCHEDULE_NAME,
    ActionResult,
    Course,
    Diagnostic,
    EnrollmentStatus,
    GradeOption,
    Prerequisites,
    ScheduleEntry,
    SearchResult,
    Section,
    Term,
)
from webreg.normalizer import (
    normalize,
    normalize_codes,
    normalize_enrollment_counts,
    normalize_prerequisites,
    normalize_schedule,
    normalize_search_results,
    normalize_terms,
)
from webreg.raw import (
    RawCode,
    RawPrerequisite,
    RawRecord,
    RawScheduleRecord,
    RawSearchItem,
    RawTerm,
    parse_rows,
)
from webreg.search import SearchCriteria
from webreg.session import LocalSession, SessionHandle, SharedSession
from webreg.transport import Transport
from webreg.utils import format_course_code, strip_section_id, term_seq_id

logger = get_logger(__name__)


def _report(listing: str, diagnostics: Sequence[Diagnostic]) -> None:
    if diagnostics:
        logger.info("rows_skipped", listing=listing, count=len(diagnostics))


class WebRegClient:
    """Async client for one authenticated WebReg session.

    Args:
        credential: The full ``Cookie`` header value exported from a logged-in
            browser. It is sent as-is and never parsed or logged.
        term: Active term code, e.g. ``"FA23"``.
        config: Client configuration; defaults to ``get_config()``.
        http_client: Optional ``httpx.AsyncClient`` to share connections with
            other code. It is not closed by this client.
    """

    session_class: type = LocalSession

    def __init__(
        self,
        credential: str,
        term: str,
        *,
        config: ClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_config()
        self._session: SessionHandle = self.session_class(credential, term)
        self._transport = Transport(self._session, self._config, http_client)
        self._executor = ActionExecutor(self._transport)

        logger.info(
            "client_initialized",
            variant=type(self).__name__,
            term=self.term,
            read_only=self._config.read_only,
        )

    async def __aenter__(self) -> "WebRegClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    @property
    def term(self) -> str:
        return self._session.snapshot().term

    @property
    def last_known_valid(self) -> bool | None:
        """Validity as of the last response; None if nothing was sent yet."""
        return self._session.snapshot().valid

    def set_credentials(self, credential: str) -> None:
        """Replace the cookie, e.g. after the user logged in again."""
        if not credential.strip():
            raise InvalidRequestConstruction("Credential is blank")
        self._session.update(credential=credential)

    def set_term(self, term: str) -> None:
        if not term.strip():
            raise InvalidRequestConstruction("Term is blank")
        self._session.update(term=term.strip())

    async def check_session(self) -> bool:
        """Ask the service whether the cookie is still good.

        Returns False instead of raising when the service rejects the cookie.
        """
        try:
            payload = await self._transport.get_json(
                Endpoint.STATUS, with_term=False, mark_valid=False
            )
        except SessionInvalid:
            return False
        valid = isinstance(payload, dict) and payload.get("SESSION_OK") is True
        self._session.mark_valid(valid)
        logger.info("session_checked", valid=valid)
        return valid

    is_valid = check_session

    async def get_account_name(self) -> str:
        return await self._transport.get_text(Endpoint.ACCOUNT_NAME, with_term=False)

    async def get_terms(self) -> list[Term]:
        """All terms the service currently offers."""
        payload = await self._transport.get_json(Endpoint.TERM_LIST, with_term=False)
        rows, diagnostics = parse_rows(payload, RawTerm)
        terms, more = normalize_terms(rows)
        _report("terms", diagnostics + more)
        return terms

    async def associate_term(self, term: str | None = None) -> None:
        """Register a term with the session, as picking it in the browser does.

        Catalog and schedule requests for a term that was never selected fail
        with a verification error until this has been called once.

        Args:
            term: Term to register; defaults to the active term. Passing a
                term does not change the active term.

        Raises:
            InvalidRequestConstruction: If the term code cannot be decoded.
        """
        term = (term or self.term).strip().upper()
        seq_id = term_seq_id(term)
        if seq_id is None:
            raise InvalidRequestConstruction(f"Cannot decode term code {term!r}")

        params = [("termcode", term), ("seqid", str(seq_id))]
        await self._transport.get_json(Endpoint.STATUS_START, params)
        await self._transport.get_json(
            Endpoint.ELIGIBILITY, params + [("logged", "true")]
        )
        logger.info("term_associated", term=term, seq_id=seq_id)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    async def search_courses(self, criteria: SearchCriteria) -> list[SearchResult]:
        """Run a catalog search.

        Returns:
            Matching courses (subject, course code and title only). Use
            ``get_course_info`` for sections and seat counts.
        """
        payload = await self._transport.get_json(
            criteria.endpoint, criteria.to_query(self.term)
        )
        rows, diagnostics = parse_rows(payload, RawSearchItem)
        results, more = normalize_search_results(rows)
        _report("search", diagnostics + more)
        logger.info("search_completed", mode=criteria.mode.value, results=len(results))
        return results

    async def get_course_info(self, subject: str, course_code: str) -> Course | None:
        """Sections, seats and meetings of one course; None if it has no sections.

        Cancelled sections are left out.
        """
        payload = await self._transport.get_json(
            Endpoint.COURSE_DATA,
            [
                ("subjcode", subject.strip().upper()),
                ("crsecode", format_course_code(course_code)),
            ],
        )
        rows, diagnostics = parse_rows(payload, RawRecord)
        courses, more = normalize(rows)
        _report("course_info", diagnostics + more)
        return courses[0] if courses else None

    async def get_enrollment_count(self, subject: str, course_code: str) -> list[Section]:
        """Seat and waitlist counts for each enrollable section of a course.

        Lighter than ``get_course_info``: meetings and grading options are not
        parsed, so the returned sections have neither.
        """
        payload = await self._transport.get_json(
            Endpoint.COURSE_DATA,
            [
                ("subjcode", subject.strip().upper()),
                ("crsecode", format_course_code(course_code)),
            ],
        )
        rows, diagnostics = parse_rows(payload, RawRecord)
        sections, more = normalize_enrollment_counts(rows)
        _report("enrollment_count", diagnostics + more)
        return sections

    async def get_all_courses(
        self, criteria: SearchCriteria | None = None, max_concurrency: int = 8
    ) -> list[Course]:
        """Full course information for every course matching ``criteria``.

        With no criteria this walks the whole term's catalog. One search is
        followed by one ``get_course_info`` per result, at most
        ``max_concurrency`` of them in flight at a time.
        """
        if max_concurrency < 1:
            raise InvalidRequestConstruction("max_concurrency must be at least 1")
        results = await self.search_courses(criteria or SearchCriteria())
        semaphore = asyncio.Semaphore(max_concurrency)

        async def fetch(result: SearchResult) -> Course | None:
            async with semaphore:
                return await self.get_course_info(result.subject, result.course_code)

        courses = await asyncio.gather(*(fetch(result) for result in results))
        found = [course for course in courses if course is not None]
        logger.info("catalog_fetched", searched=len(results), courses=len(found))
        return found

    async def get_prerequisites(self, subject: str, course_code: str) -> Prerequisites:
        payload = await self._transport.get_json(
            Endpoint.PREREQUISITES,
            [
                ("subjcode", subject.strip().upper()),
                ("crsecode", course_code.strip().upper()),
            ],
        )
        rows, diagnostics = parse_rows(payload, RawPrerequisite)
        prerequisites, more = normalize_prerequisites(rows)
        _report("prerequisites", diagnostics + more)
        return prerequisites

    async def get_department_codes(self) -> list[str]:
        return await self._codes(Endpoint.DEPARTMENTS, "departments")

    async def get_subject_codes(self) -> list[str]:
        return await self._codes(Endpoint.SUBJECTS, "subjects")

    async def _codes(self, endpoint: Endpoint, listing: str) -> list[str]:
        payload = await self._transport.get_json(endpoint)
        rows, diagnostics = parse_rows(payload, RawCode)
        codes, more = normalize_codes(rows)
        _report(listing, diagnostics + more)
        return codes

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------
    async def get_schedule(self, name: str | None = None) -> list[ScheduleEntry]:
        """Sections on one of the user's schedules (the default one if unnamed)."""
        schedule = name or DEFAULT_SCHEDULE_NAME
        payload = await self._transport.get_json(
            Endpoint.SCHEDULE,
            [("schedname", schedule), ("final", ""), ("sectnum", "")],
        )
        rows, diagnostics = parse_rows(payload, RawScheduleRecord)
        entries, more = normalize_schedule(rows, schedule)
        _report("schedule", diagnostics + more)
        logger.info("schedule_fetched", schedule=schedule, entries=len(entries))
        return entries

    async def get_schedule_names(self) -> list[str]:
        payload = await self._transport.get_json(Endpoint.SCHEDULE_NAMES)
        if not isinstance(payload, list):
            raise MalformedResponse(
                f"Expected a list of schedule names, got {type(payload).__name__}"
            )
        return [name for name in payload if isinstance(name, str) and name]

    async def create_schedule(
        self, name: str, first_section: PlanRequest, validate: bool = True
    ) -> ActionResult:
        """Create a schedule holding ``first_section``."""
        return await self._executor.create_schedule(name, first_section, validate)

    async def rename_schedule(self, old_name: str, new_name: str) -> ActionResult:
        return await self._executor.rename_schedule(old_name, new_name)

    async def remove_schedule(self, name: str) -> ActionResult:
        return await self._executor.remove_schedule(name)

    # ------------------------------------------------------------------
    # Planning and enrollment
    # ------------------------------------------------------------------
    async def plan_add(self, request: PlanRequest, validate: bool = True) -> ActionResult:
        return await self._executor.plan_add(request, validate)

    async def plan_remove(
        self, section_id: str, schedule_name: str | None = None
    ) -> ActionResult:
        return await self._executor.plan_remove(section_id, schedule_name)

    async def add_section(
        self, request: EnrollRequest, has_seats: bool, validate: bool = True
    ) -> ActionResult:
        """Enroll when ``has_seats`` is true, otherwise join the waitlist."""
        return await self._executor.add_section(request, has_seats, validate)

    async def drop_section(
        self,
        section_id: str,
        status: EnrollmentStatus,
        schedule_name: str | None = None,
    ) -> ActionResult:
        return await self._executor.drop_section(section_id, status, schedule_name)

    async def change_grading_option(
        self,
        section_id: str,
        grade_option: GradeOption,
        units: float | None = None,
    ) -> ActionResult:
        """Change the grading option of an enrolled or waitlisted section.

        Args:
            section_id: Section id; leading zeros are ignored.
            grade_option: The new grading option.
            units: Unit count to keep. Looked up from the default schedule
                when omitted.

        Raises:
            SectionNotFound: If units had to be looked up and the section is
                not on the default schedule.
        """
        if units is None:
            wanted = strip_section_id(section_id)
            for entry in await self.get_schedule():
                if strip_section_id(entry.section_id) == wanted:
                    section_id, units = entry.section_id, entry.units
                    break
            else:
                raise SectionNotFound(section_id, "schedule")
        return await self._executor.change_grading_option(
            section_id, grade_option, units
        )

    async def send_confirmation_email(self, content: str) -> ActionResult:
        return await self._executor.send_confirmation_email(content)


class SharedWebRegClient(WebRegClient):
    """WebRegClient that may be shared by many concurrent tasks.

    Requests never wait on each other: each one copies the cookie and term
    under a brief read lock and then runs unlocked. ``set_credentials`` and
    ``set_term`` take the write lock and may be called from any thread.

    Two concurrent mutating calls for the same section are not ordered by the
    client; callers that need that must serialize them themselves.
    """

    session_class = SharedSession
