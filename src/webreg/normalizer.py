"""Normalizer - maps raw wire rows to the domain model.

The catalog feed is a flat array with one row per meeting. A section with a
lecture, two discussion slots and a final therefore arrives as several rows
that repeat (or leave blank) the section-level fields, interleaved with
placeholder rows for meetings that have no time or room yet.

Every function here is pure and total: a bad row becomes a Diagnostic, never
an exception. Only parse_rows() in webreg.raw raises, and only when the outer
shape of a response is wrong.
"""

import re
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time

from webreg.logging import get_logger
from webreg.models import (
    DEFAULT_SCHEDULE_NAME,
    Course,
    CoursePrerequisite,
    DayOfWeek,
    Diagnostic,
    EnrollmentStatus,
    GradeOption,
    Meeting,
    MeetingKind,
    Prerequisites,
    ScheduleEntry,
    SearchResult,
    Section,
    Term,
)
from webreg.raw import (
    RawCode,
    RawPrerequisite,
    RawRecord,
    RawScheduleRecord,
    RawSearchItem,
    RawSeats,
    RawTerm,
)
from webreg.utils import parse_instructor_names

log = get_logger(__name__)

TIME_FORMATS: tuple[str, ...] = ("%H:%M", "%H:%M:%S", "%H%M", "%I:%M %p", "%I:%M%p")

# Values the service uses for "not scheduled yet".
PLACEHOLDER_VALUES: frozenset[str] = frozenset({"", "TBA", "TBD", "-", "N/A"})

# Display type of a cancelled section row.
CANCELLED = "CA"

MEETING_KINDS: dict[str, MeetingKind] = {
    "LE": MeetingKind.LECTURE,
    "LECTURE": MeetingKind.LECTURE,
    "DI": MeetingKind.DISCUSSION,
    "DISCUSSION": MeetingKind.DISCUSSION,
    "LA": MeetingKind.LAB,
    "LAB": MeetingKind.LAB,
    "FI": MeetingKind.FINAL,
    "FINAL": MeetingKind.FINAL,
    "MI": MeetingKind.MIDTERM,
    "MT": MeetingKind.MIDTERM,
    "MIDTERM": MeetingKind.MIDTERM,
}

GRADE_OPTIONS: dict[str, GradeOption] = {
    "L": GradeOption.LETTER,
    "LETTER": GradeOption.LETTER,
    "P": GradeOption.PASS_NO_PASS,
    "PNP": GradeOption.PASS_NO_PASS,
    "P/NP": GradeOption.PASS_NO_PASS,
    "S": GradeOption.SATISFACTORY_UNSATISFACTORY,
    "SU": GradeOption.SATISFACTORY_UNSATISFACTORY,
    "S/U": GradeOption.SATISFACTORY_UNSATISFACTORY,
}

ENROLLMENT_STATUSES: dict[str, EnrollmentStatus] = {
    "EN": EnrollmentStatus.ENROLLED,
    "ENROLLED": EnrollmentStatus.ENROLLED,
    "WT": EnrollmentStatus.WAITLISTED,
    "WL": EnrollmentStatus.WAITLISTED,
    "WAITLIST": EnrollmentStatus.WAITLISTED,
    "WAITLISTED": EnrollmentStatus.WAITLISTED,
    "PL": EnrollmentStatus.PLANNED,
    "PLAN": EnrollmentStatus.PLANNED,
    "PLANNED": EnrollmentStatus.PLANNED,
}

_DAY_TOKENS: dict[str, DayOfWeek] = {
    "M": DayOfWeek.MONDAY,
    "TU": DayOfWeek.TUESDAY,
    "T": DayOfWeek.TUESDAY,
    "W": DayOfWeek.WEDNESDAY,
    "TH": DayOfWeek.THURSDAY,
    "R": DayOfWeek.THURSDAY,
    "F": DayOfWeek.FRIDAY,
    "SA": DayOfWeek.SATURDAY,
    "SU": DayOfWeek.SUNDAY,
}
_DAY_TOKEN_RE = re.compile(r"Tu|Th|Sa|Su|M|W|F|R|T", re.IGNORECASE)
_DAY_STRING_RE = re.compile(r"(?:Tu|Th|Sa|Su|M|W|F|R|T)+", re.IGNORECASE)

# Digit day codes count from Sunday.
_DIGIT_DAYS: dict[str, DayOfWeek] = {
    "0": DayOfWeek.SUNDAY,
    "1": DayOfWeek.MONDAY,
    "2": DayOfWeek.TUESDAY,
    "3": DayOfWeek.WEDNESDAY,
    "4": DayOfWeek.THURSDAY,
    "5": DayOfWeek.FRIDAY,
    "6": DayOfWeek.SATURDAY,
}

_GRADE_SPLIT_RE = re.compile(r"[,;\s]+")


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _clean(value: str | None) -> str:
    return value.strip() if value else ""


def is_placeholder(value: str | None) -> bool:
    return _clean(value).upper() in PLACEHOLDER_VALUES


def parse_time(value: str | None) -> time | None:
    """Parse a clock time against TIME_FORMATS, or return None."""
    text = _clean(value)
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def parse_days(value: str | None) -> tuple[DayOfWeek, ...] | None:
    """Parse a day value into week-ordered days, or None if unrecognised.

    Accepts letter codes (``MWF``, ``TuTh``), digit codes counting from Sunday
    (``135``) and a seven-character Monday-first bit mask (``1010100``).
    """
    text = _clean(value)
    if not text:
        return None

    days: set[DayOfWeek] = set()
    if text.isdigit():
        if len(text) == 7 and set(text) <= {"0", "1"}:
            days = {day for day, bit in zip(DayOfWeek, text) if bit == "1"}
        elif all(c in _DIGIT_DAYS for c in text):
            days = {_DIGIT_DAYS[c] for c in text}
        else:
            return None
    elif _DAY_STRING_RE.fullmatch(text):
        days = {_DAY_TOKENS[token.upper()] for token in _DAY_TOKEN_RE.findall(text)}
    else:
        return None

    return tuple(sorted(days, key=lambda d: d.weekday))


def parse_meeting_kind(code: str | None) -> MeetingKind:
    return MEETING_KINDS.get(_clean(code).upper(), MeetingKind.OTHER)


def _grade_tokens(value: list[str] | str | None) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, list) else _GRADE_SPLIT_RE.split(value)
    return [item.strip() for item in items if item and item.strip()]


def _first(values: Iterable[str | None]) -> str:
    for value in values:
        text = _clean(value)
        if text:
            return text
    return ""


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


def _meeting_from_row(
    row: RawRecord, index: int, section_id: str, diagnostics: list[Diagnostic]
) -> Meeting | None:
    """Map one row to a Meeting, or None for placeholder and malformed rows.

    Placeholders are dropped silently. A malformed row adds exactly one
    Diagnostic.
    """
    raw = row.meeting
    if raw is None:
        return None

    one_time = not is_placeholder(raw.date)
    if is_placeholder(raw.bldg):
        return None
    if is_placeholder(raw.start) and is_placeholder(raw.end):
        return None
    if not one_time and is_placeholder(raw.day):
        return None

    def bad(field: str, message: str) -> None:
        diagnostics.append(
            Diagnostic(row=index, key=section_id, field=field, message=message)
        )

    start = parse_time(raw.start)
    if start is None:
        bad("meeting.start", f"unrecognised time {raw.start!r}")
        return None
    end = parse_time(raw.end)
    if end is None:
        bad("meeting.end", f"unrecognised time {raw.end!r}")
        return None

    meeting_date: date | None = None
    if one_time:
        try:
            meeting_date = date.fromisoformat(_clean(raw.date))
        except ValueError:
            bad("meeting.date", f"unrecognised date {raw.date!r}")
            return None

    days: tuple[DayOfWeek, ...] = ()
    if not is_placeholder(raw.day):
        parsed_days = parse_days(raw.day)
        if parsed_days is None:
            bad("meeting.day", f"unrecognised day value {raw.day!r}")
            return None
        days = parsed_days

    return Meeting(
        kind=parse_meeting_kind(raw.kind),
        code=_clean(raw.kind).upper(),
        days=days,
        meeting_date=meeting_date,
        start=start,
        end=end,
        building=_clean(raw.bldg),
        room=_clean(raw.room),
        instructors=tuple(parse_instructor_names(raw.instructor or row.instructor)),
    )


def _collect_meetings(
    rows: Sequence[tuple[int, RawRecord]], section_id: str, diagnostics: list[Diagnostic]
) -> list[Meeting]:
    meetings: list[Meeting] = []
    for index, row in rows:
        meeting = _meeting_from_row(row, index, section_id, diagnostics)
        # Cross-listed courses repeat the same meeting row.
        if meeting is not None and meeting not in meetings:
            meetings.append(meeting)
    return meetings


def _collect_instructors(
    primary: str | None, meetings: Iterable[Meeting]
) -> tuple[str, ...]:
    names = parse_instructor_names(primary)
    for meeting in meetings:
        for name in meeting.instructors:
            if name not in names:
                names.append(name)
    return tuple(names)


def _collect_grade_options(
    rows: Sequence[tuple[int, RawRecord]], section_id: str, diagnostics: list[Diagnostic]
) -> tuple[GradeOption, ...]:
    options: list[GradeOption] = []
    rejected: set[str] = set()
    for index, row in rows:
        for token in _grade_tokens(row.grade_options):
            option = GRADE_OPTIONS.get(token.upper())
            if option is None:
                if token not in rejected:
                    rejected.add(token)
                    diagnostics.append(
                        Diagnostic(
                            row=index,
                            key=section_id,
                            field="gradeOptions",
                            message=f"unrecognised grade option {token!r}",
                        )
                    )
            elif option not in options:
                options.append(option)
    return tuple(options)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _has_seat_counts(row: RawRecord) -> bool:
    return row.seats is not None and row.seats.total is not None


def _seat_counts(seats: RawSeats) -> tuple[int, int, int]:
    """Return (total, enrolled, available) with 0 <= available <= total."""
    total = max(seats.total or 0, 0)
    enrolled = max(seats.taken or 0, 0)
    available = seats.available if seats.available is not None else total - enrolled
    # The service reports negative availability for over-enrolled sections.
    available = min(max(available, 0), total)
    return total, enrolled, available


def _first_int(rows: Sequence[tuple[int, RawRecord]], attr: str) -> int:
    for _, row in rows:
        value = getattr(row, attr)
        if value is not None:
            return max(value, 0)
    return 0


def _first_units(rows: Sequence[tuple[int, RawRecord]]) -> float:
    for _, row in rows:
        if row.units is not None:
            return row.units
    return 0.0


def _build_section(
    section_id: str, rows: Sequence[tuple[int, RawRecord]], diagnostics: list[Diagnostic]
) -> Section:
    authoritative = next(
        (row for _, row in rows if _has_seat_counts(row) and _clean(row.instructor)),
        None,
    )
    seats_row = authoritative or next(
        (row for _, row in rows if _has_seat_counts(row)), None
    )

    if seats_row is None or seats_row.seats is None:
        diagnostics.append(
            Diagnostic(
                key=section_id,
                field="seats",
                message="no row carries seat counts; defaulting to 0",
            )
        )
        total = enrolled = available = 0
    else:
        total, enrolled, available = _seat_counts(seats_row.seats)

    if authoritative is not None:
        instructor_field = authoritative.instructor
    else:
        instructor_field = _first(row.instructor for _, row in rows)

    meetings = _collect_meetings(rows, section_id, diagnostics)
    return Section(
        section_id=section_id,
        section_code=_first(row.section_code for _, row in rows).upper(),
        instructors=_collect_instructors(instructor_field, meetings),
        total_seats=total,
        enrolled_count=enrolled,
        available_seats=available,
        waitlist_count=_first_int(rows, "waitlist_count"),
        waitlist_capacity=_first_int(rows, "waitlist_cap"),
        units=_first_units(rows),
        grade_options=_collect_grade_options(rows, section_id, diagnostics),
        meetings=tuple(meetings),
    )


def normalize(records: Sequence[RawRecord]) -> tuple[list[Course], list[Diagnostic]]:
    """Group flat catalog rows into courses and sections.

    Courses, sections within a course and meetings within a section all keep
    the order in which they first appear in ``records``.

    Args:
        records: Validated raw rows, e.g. from ``parse_rows(payload, RawRecord)``.

    Returns:
        The courses and every Diagnostic raised along the way.
    """
    diagnostics: list[Diagnostic] = []
    groups: dict[tuple[str, str, str], list[tuple[int, RawRecord]]] = {}

    for index, row in enumerate(records):
        if _clean(row.display_type).upper() == CANCELLED:
            log.debug("row_skipped", row=index, reason="cancelled")
            continue

        subject = _clean(row.subject).upper()
        course = _clean(row.course).upper()
        section_id = _clean(row.section_id)
        if not (subject and course and section_id):
            diagnostics.append(
                Diagnostic(
                    row=index,
                    key=section_id or None,
                    message="row has no subject, course or section id",
                )
            )
            continue

        groups.setdefault((subject, course, section_id), []).append((index, row))

    courses: dict[tuple[str, str], tuple[list[str], list[Section]]] = {}
    for (subject, course, section_id), rows in groups.items():
        titles, sections = courses.setdefault((subject, course), ([], []))
        titles.extend(row.title for _, row in rows if _clean(row.title))
        sections.append(_build_section(section_id, rows, diagnostics))

    result = [
        Course(
            subject=subject,
            course_code=course,
            title=_first(titles),
            sections=tuple(sections),
        )
        for (subject, course), (titles, sections) in courses.items()
    ]

    for diagnostic in diagnostics:
        log.debug("normalize_diagnostic", detail=str(diagnostic))
    log.debug(
        "catalog_normalized",
        rows=len(records),
        courses=len(result),
        diagnostics=len(diagnostics),
    )
    return result, diagnostics


def normalize_enrollment_counts(
    records: Sequence[RawRecord],
) -> tuple[list[Section], list[Diagnostic]]:
    """Seat counts of every enrollable section, without meetings.

    Only rows that carry seat counts are enrollable; the first such row of a
    section wins. Grading options and meetings are left empty.
    """
    diagnostics: list[Diagnostic] = []
    sections: dict[str, Section] = {}
    for index, row in enumerate(records):
        if _clean(row.display_type).upper() == CANCELLED or not _has_seat_counts(row):
            continue
        section_id = _clean(row.section_id)
        if not section_id:
            diagnostics.append(
                Diagnostic(row=index, field="sectionId", message="row has no section id")
            )
            continue
        if section_id in sections:
            continue

        total, enrolled, available = _seat_counts(row.seats)
        sections[section_id] = Section(
            section_id=section_id,
            section_code=_clean(row.section_code).upper(),
            instructors=tuple(parse_instructor_names(row.instructor)),
            total_seats=total,
            enrolled_count=enrolled,
            available_seats=available,
            waitlist_count=max(row.waitlist_count or 0, 0),
            waitlist_capacity=max(row.waitlist_cap or 0, 0),
        )
    return list(sections.values()), diagnostics


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


def _schedule_status(
    rows: Sequence[tuple[int, RawScheduleRecord]],
    section_id: str,
    diagnostics: list[Diagnostic],
) -> EnrollmentStatus | None:
    for index, row in rows:
        text = _clean(row.status)
        if not text:
            continue
        status = ENROLLMENT_STATUSES.get(text.upper())
        if status is not None:
            return status
        diagnostics.append(
            Diagnostic(
                row=index,
                key=section_id,
                field="status",
                message=f"unrecognised enrollment status {text!r}",
            )
        )
    return None


def _schedule_grade(
    rows: Sequence[tuple[int, RawScheduleRecord]],
    section_id: str,
    diagnostics: list[Diagnostic],
) -> GradeOption | None:
    for index, row in rows:
        text = _clean(row.grade_option)
        if not text:
            continue
        option = GRADE_OPTIONS.get(text.upper())
        if option is None:
            diagnostics.append(
                Diagnostic(
                    row=index,
                    key=section_id,
                    field="gradeOption",
                    message=f"unrecognised grade option {text!r}",
                )
            )
        return option
    return None


def _waitlist_position(rows: Sequence[tuple[int, RawScheduleRecord]]) -> int | None:
    for _, row in rows:
        text = _clean(row.waitlist_pos)
        if text.isdigit():
            return int(text)
    return None


def normalize_schedule(
    records: Sequence[RawScheduleRecord], schedule_name: str = DEFAULT_SCHEDULE_NAME
) -> tuple[list[ScheduleEntry], list[Diagnostic]]:
    """Group flat schedule rows into one ScheduleEntry per section.

    A section whose status cannot be mapped to EnrollmentStatus is left out and
    reported as a Diagnostic; the domain never carries free-form statuses.
    """
    diagnostics: list[Diagnostic] = []
    groups: dict[str, list[tuple[int, RawScheduleRecord]]] = {}
    for index, row in enumerate(records):
        section_id = _clean(row.section_id)
        if not section_id:
            diagnostics.append(Diagnostic(row=index, message="row has no section id"))
            continue
        groups.setdefault(section_id, []).append((index, row))

    entries: list[ScheduleEntry] = []
    for section_id, rows in groups.items():
        status = _schedule_status(rows, section_id, diagnostics)
        if status is None:
            diagnostics.append(
                Diagnostic(
                    key=section_id,
                    field="status",
                    message="no recognisable enrollment status; section skipped",
                )
            )
            continue

        meetings = _collect_meetings(rows, section_id, diagnostics)
        entries.append(
            ScheduleEntry(
                section_id=section_id,
                subject=_first(row.subject for _, row in rows).upper(),
                course_code=_first(row.course for _, row in rows).upper(),
                title=_first(row.title for _, row in rows),
                section_code=_first(row.section_code for _, row in rows).upper(),
                status=status,
                waitlist_position=(
                    _waitlist_position(rows)
                    if status is EnrollmentStatus.WAITLISTED
                    else None
                ),
                grade_option=_schedule_grade(rows, section_id, diagnostics),
                units=_first_units(rows),
                instructors=_collect_instructors(
                    _first(row.instructor for _, row in rows), meetings
                ),
                meetings=tuple(meetings),
                schedule_name=schedule_name,
            )
        )

    log.debug(
        "schedule_normalized",
        schedule=schedule_name,
        entries=len(entries),
        diagnostics=len(diagnostics),
    )
    return entries, diagnostics


# ---------------------------------------------------------------------------
# Smaller listings
# ---------------------------------------------------------------------------


def normalize_search_results(
    items: Sequence[RawSearchItem],
) -> tuple[list[SearchResult], list[Diagnostic]]:
    results: list[SearchResult] = []
    diagnostics: list[Diagnostic] = []
    for index, item in enumerate(items):
        subject, course = _clean(item.subject).upper(), _clean(item.course).upper()
        if not (subject and course):
            diagnostics.append(
                Diagnostic(row=index, message="search result has no subject or course")
            )
            continue
        results.append(
            SearchResult(subject=subject, course_code=course, title=_clean(item.title))
        )
    return results, diagnostics


def normalize_prerequisites(
    rows: Sequence[RawPrerequisite],
) -> tuple[Prerequisites, list[Diagnostic]]:
    """Group prerequisite rows by sequence id; each group is a "one of" set."""
    groups: dict[str, list[CoursePrerequisite]] = {}
    exams: list[str] = []
    diagnostics: list[Diagnostic] = []
    for index, row in enumerate(rows):
        if _clean(row.test_title):
            exams.append(_clean(row.test_title))
            continue
        subject, course = _clean(row.subject), _clean(row.course)
        if not (subject and course):
            diagnostics.append(
                Diagnostic(row=index, message="prerequisite has no subject or course")
            )
            continue
        groups.setdefault(_clean(row.seq_id), []).append(
            CoursePrerequisite(
                subj_course_id=f"{subject} {course}", title=_clean(row.title)
            )
        )
    prerequisites = Prerequisites(
        course_groups=tuple(tuple(group) for group in groups.values()),
        exams=tuple(exams),
    )
    return prerequisites, diagnostics


def normalize_terms(rows: Sequence[RawTerm]) -> tuple[list[Term], list[Diagnostic]]:
    terms: list[Term] = []
    diagnostics: list[Diagnostic] = []
    for index, row in enumerate(rows):
        if row.seq_id is None or not _clean(row.term_code):
            diagnostics.append(Diagnostic(row=index, message="term has no id or code"))
            continue
        terms.append(Term(seq_id=row.seq_id, term_code=_clean(row.term_code).upper()))
    return terms, diagnostics


def normalize_codes(rows: Sequence[RawCode]) -> tuple[list[str], list[Diagnostic]]:
    """Department or subject codes, deduplicated in first-seen order."""
    codes: list[str] = []
    diagnostics: list[Diagnostic] = []
    for index, row in enumerate(rows):
        code = _clean(row.code).upper()
        if not code:
            diagnostics.append(Diagnostic(row=index, message="entry has no code"))
        elif code not in codes:
            codes.append(code)
    return codes, diagnostics
