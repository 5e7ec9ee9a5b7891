"""Immutable search criteria for the catalog search endpoints.

The service has two distinct search requests: look up explicit section ids, or
filter the catalog by department, level, instructor, days and time. They are
modes, not combinable filters, so mixing them fails as soon as the second mode
is added - long before anything is sent.

    criteria = (
        SearchCriteria()
        .by_department("CSE")
        .by_level(CourseLevel.UPPER_DIVISION, CourseLevel.GRADUATE)
        .on_days(DayOfWeek.TUESDAY, DayOfWeek.THURSDAY)
    )
    results = await client.search_courses(criteria)
"""

from datetime import time
from enum import Enum

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from webreg.endpoints import Endpoint
from webreg.errors import ConflictingSearchMode, InvalidRequestConstruction
from webreg.models import DayOfWeek
from webreg.utils import epoch_millis, format_course_list

_LEVEL_BITS = 12


class CourseLevel(int, Enum):
    """Course level filters; the value is the bit in the service's level mask."""

    LOWER_DIVISION = 1 << 11  # 1-99
    FRESHMAN_SEMINAR = 1 << 10  # 87, 90
    LOWER_DIVISION_INDEPENDENT_STUDY = 1 << 9  # 99
    UPPER_DIVISION = 1 << 8  # 100-198
    APPRENTICESHIP = 1 << 7  # 195
    UPPER_DIVISION_INDEPENDENT_STUDY = 1 << 6  # 199
    GRADUATE = 1 << 5  # 200-297
    GRADUATE_INDEPENDENT_STUDY = 1 << 4  # 298
    GRADUATE_RESEARCH = 1 << 3  # 299
    LEVEL_300 = 1 << 2
    LEVEL_400 = 1 << 1
    LEVEL_500 = 1 << 0


class SearchMode(str, Enum):
    SECTIONS = "sections"
    FILTERS = "filters"


def _code(value: str, what: str) -> str:
    code = value.strip().upper()
    if not code or len(code) > 4:
        raise InvalidRequestConstruction(
            f"{what} code must be 1-4 characters, got {value!r}"
        )
    return code


def _raise_request_error(error: ValidationError) -> None:
    """Re-raise a construction error that pydantic wrapped while validating."""
    for line in error.errors():
        cause = line.get("ctx", {}).get("error")
        if isinstance(cause, InvalidRequestConstruction):
            raise cause from None


def _append(existing: tuple[str, ...], new: list[str]) -> tuple[str, ...]:
    return existing + tuple(v for v in new if v not in existing)


class SearchCriteria(BaseModel):
    """A composable, immutable set of search filters.

    Every ``by_*``/``on_*`` method returns a new SearchCriteria and leaves the
    original untouched. Building criteria never performs I/O.
    """

    model_config = ConfigDict(frozen=True)

    section_ids: tuple[str, ...] = ()
    subjects: tuple[str, ...] = ()
    courses: tuple[str, ...] = ()
    departments: tuple[str, ...] = ()
    instructor: str | None = None
    title: str | None = None
    levels: tuple[CourseLevel, ...] = ()
    days: tuple[DayOfWeek, ...] = ()
    start_time: time | None = None
    end_time: time | None = None
    open_only: bool = False

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            _raise_request_error(e)
            raise

    @classmethod
    def model_validate(cls, obj: Any, *args: Any, **kwargs: Any) -> "SearchCriteria":
        try:
            return super().model_validate(obj, *args, **kwargs)
        except ValidationError as e:
            _raise_request_error(e)
            raise

    @model_validator(mode="after")
    def _check_consistency(self) -> "SearchCriteria":
        if self.section_ids and self.has_filters():
            raise ConflictingSearchMode(
                "Criteria cannot search by explicit section ids and also filter "
                "the catalog"
            )
        start, end = self.start_time, self.end_time
        if start is not None and end is not None and start > end:
            raise InvalidRequestConstruction(
                f"start time {start:%H:%M} is after end time {end:%H:%M}"
            )
        return self

    # ------------------------------------------------------------------
    # Mode handling
    # ------------------------------------------------------------------
    def has_filters(self) -> bool:
        return bool(
            self.subjects
            or self.courses
            or self.departments
            or self.instructor
            or self.title
            or self.levels
            or self.days
            or self.start_time
            or self.end_time
            or self.open_only
        )

    @property
    def mode(self) -> SearchMode:
        return SearchMode.SECTIONS if self.section_ids else SearchMode.FILTERS

    @property
    def endpoint(self) -> Endpoint:
        if self.mode is SearchMode.SECTIONS:
            return Endpoint.SEARCH_SECTIONS
        return Endpoint.SEARCH

    def _filter(self, **update) -> "SearchCriteria":
        if self.section_ids:
            raise ConflictingSearchMode(
                "Criteria already search by explicit section ids; "
                f"cannot also filter by {', '.join(update)}"
            )
        return self.model_copy(update=update)

    # ------------------------------------------------------------------
    # Section-id mode
    # ------------------------------------------------------------------
    def by_sections(self, *section_ids: str) -> "SearchCriteria":
        """Look up explicit section ids. Excludes every other filter."""
        cleaned = [s.strip() for s in section_ids if s and s.strip()]
        if not cleaned:
            raise InvalidRequestConstruction(
                "by_sections() needs at least one section id"
            )
        if self.has_filters():
            raise ConflictingSearchMode(
                "Criteria already filter the catalog; cannot also search by section ids"
            )
        return self.model_copy(update={"section_ids": _append(self.section_ids, cleaned)})

    # ------------------------------------------------------------------
    # Filter mode
    # ------------------------------------------------------------------
    def by_department(self, *departments: str) -> "SearchCriteria":
        codes = [_code(d, "Department") for d in departments]
        return self._filter(departments=_append(self.departments, codes))

    def by_subject(self, *subjects: str) -> "SearchCriteria":
        codes = [_code(s, "Subject") for s in subjects]
        return self._filter(subjects=_append(self.subjects, codes))

    def by_course(self, *courses: str) -> "SearchCriteria":
        """Filter by course, e.g. ``"20E"``, ``"math 20d"`` or ``"CSE"``."""
        cleaned = [c.strip().upper() for c in courses if c and c.strip()]
        return self._filter(courses=_append(self.courses, cleaned))

    def by_level(self, *levels: CourseLevel) -> "SearchCriteria":
        """Restrict to course levels. Several levels are OR-ed together."""
        merged = tuple(sorted(set(self.levels) | set(levels), key=lambda lv: -lv.value))
        return self._filter(levels=merged)

    def by_instructor(self, name: str) -> "SearchCriteria":
        """Instructor substring, ideally in ``Last, First`` form."""
        return self._filter(instructor=name.strip())

    def by_title(self, title: str) -> "SearchCriteria":
        return self._filter(title=title.strip())

    def on_days(self, *days: DayOfWeek) -> "SearchCriteria":
        merged = tuple(sorted(set(self.days) | set(days), key=lambda d: d.weekday))
        return self._filter(days=merged)

    def between(
        self, start: time | None = None, end: time | None = None
    ) -> "SearchCriteria":
        """Only show sections meeting within ``start``-``end``; either may be None."""
        if start is None and end is None:
            raise InvalidRequestConstruction("between() needs a start or an end time")
        if start is not None and end is not None and start > end:
            raise InvalidRequestConstruction(
                f"start time {start:%H:%M} is after end time {end:%H:%M}"
            )
        return self._filter(start_time=start, end_time=end)

    def only_open(self) -> "SearchCriteria":
        """Only show sections with open seats."""
        return self._filter(open_only=True)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def _level_mask(self) -> str:
        mask = 0
        for level in self.levels:
            mask |= level.value
        return format(mask, f"0{_LEVEL_BITS}b") if mask else ""

    def _day_mask(self) -> str:
        if not self.days:
            return ""
        return "".join("1" if day in self.days else "0" for day in DayOfWeek)

    def _time_range(self) -> str:
        if self.start_time is None and self.end_time is None:
            return ""
        start = f"{self.start_time:%H%M}" if self.start_time else ""
        end = f"{self.end_time:%H%M}" if self.end_time else ""
        return f"{start}:{end}"

    def to_query(self, term: str) -> list[tuple[str, str]]:
        """Serialize to the query parameters of ``self.endpoint``."""
        if self.mode is SearchMode.SECTIONS:
            return [("sectionid", ":".join(self.section_ids)), ("termcode", term)]

        return [
            ("subjcode", ":".join(self.subjects)),
            ("crsecode", format_course_list(list(self.courses))),
            ("department", ":".join(self.departments)),
            ("professor", (self.instructor or "").upper()),
            ("title", (self.title or "").upper()),
            ("levels", self._level_mask()),
            ("days", self._day_mask()),
            ("timestr", self._time_range()),
            ("opensection", "true" if self.open_only else "false"),
            ("isbasic", "true"),
            ("basicsearchvalue", ""),
            ("termcode", term),
            ("_", epoch_millis()),
        ]
