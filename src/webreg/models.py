"""Pydantic models for the clean domain.

All domain objects are frozen: they are produced by the normalizer, handed to
the caller and never touched by the client again.
"""

from datetime import date, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from webreg.errors import ServiceRejected

DEFAULT_SCHEDULE_NAME = "My Schedule"


class DomainModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class DayOfWeek(str, Enum):
    """Day codes as the service writes them, declared Monday first."""

    MONDAY = "M"
    TUESDAY = "Tu"
    WEDNESDAY = "W"
    THURSDAY = "Th"
    FRIDAY = "F"
    SATURDAY = "Sa"
    SUNDAY = "Su"

    @property
    def weekday(self) -> int:
        """0 for Monday through 6 for Sunday, matching ``date.weekday()``."""
        return list(DayOfWeek).index(self)


class MeetingKind(str, Enum):
    LECTURE = "lecture"
    DISCUSSION = "discussion"
    LAB = "lab"
    FINAL = "final"
    MIDTERM = "midterm"
    OTHER = "other"


class GradeOption(str, Enum):
    """Grading options, valued with the single-letter codes the service expects."""

    LETTER = "L"
    PASS_NO_PASS = "P"
    SATISFACTORY_UNSATISFACTORY = "S"


class EnrollmentStatus(str, Enum):
    ENROLLED = "enrolled"
    WAITLISTED = "waitlisted"
    PLANNED = "planned"


class Diagnostic(DomainModel):
    """A non-fatal problem found while normalizing one raw row."""

    row: int | None = None
    key: str | None = None  # section id, when known
    field: str | None = None
    message: str

    def __str__(self) -> str:
        where = f"row {self.row}" if self.row is not None else "group"
        if self.key:
            where += f" (section {self.key})"
        if self.field:
            where += f" [{self.field}]"
        return f"{where}: {self.message}"


class Meeting(DomainModel):
    """A lecture, discussion, exam or other meeting of a section.

    Repeating meetings have ``days`` set; one-time meetings (finals, midterms)
    have ``meeting_date`` set instead.
    """

    kind: MeetingKind
    code: str  # raw type code, e.g. "LE", "DI", "FI"
    days: tuple[DayOfWeek, ...] = ()
    meeting_date: date | None = None
    start: time
    end: time
    building: str
    room: str
    instructors: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.meeting_date:
            when = self.meeting_date.isoformat()
        else:
            when = "".join(d.value for d in self.days)
        return (
            f"[{self.code}] {when} {self.start:%H:%M}-{self.end:%H:%M} "
            f"{self.building} {self.room}"
        )


class Section(DomainModel):
    """One offering of a course with its own id, instructors and meetings."""

    section_id: str
    section_code: str
    instructors: tuple[str, ...] = ()
    total_seats: int = Field(default=0, ge=0)
    enrolled_count: int = Field(default=0, ge=0)
    available_seats: int = Field(default=0, ge=0)
    waitlist_count: int = Field(default=0, ge=0)
    waitlist_capacity: int = Field(default=0, ge=0)
    units: float = 0.0
    grade_options: tuple[GradeOption, ...] = ()
    meetings: tuple[Meeting, ...] = ()

    def has_seats(self) -> bool:
        """Whether a new student can enroll right now.

        The service sometimes reports open seats while people are still on the
        waitlist; those seats are going to the waitlist, not to new students.
        """
        return self.available_seats > 0 and self.waitlist_count == 0

    def is_add_candidate(self) -> bool:
        """Whether enrolling or waitlisting could succeed at all."""
        return self.has_seats() or self.waitlist_capacity > 0


class Course(DomainModel):
    subject: str
    course_code: str
    title: str = ""
    sections: tuple[Section, ...] = ()

    @property
    def subj_course_id(self) -> str:
        return f"{self.subject} {self.course_code}"

    def find_section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.section_id == section_id:
                return section
        return None


class ScheduleEntry(DomainModel):
    """A section in one of the user's schedules."""

    section_id: str
    subject: str
    course_code: str
    title: str = ""
    section_code: str
    status: EnrollmentStatus
    waitlist_position: int | None = None
    grade_option: GradeOption | None = None
    units: float = 0.0
    instructors: tuple[str, ...] = ()
    meetings: tuple[Meeting, ...] = ()
    schedule_name: str = DEFAULT_SCHEDULE_NAME


class SearchResult(DomainModel):
    subject: str
    course_code: str
    title: str = ""


class CoursePrerequisite(DomainModel):
    subj_course_id: str
    title: str = ""


class Prerequisites(DomainModel):
    """Prerequisites for a course.

    ``course_groups`` is a conjunction of disjunctions: one course out of each
    group is required. Passing any exam in ``exams`` satisfies all of them.
    """

    course_groups: tuple[tuple[CoursePrerequisite, ...], ...] = ()
    exams: tuple[str, ...] = ()


class Term(DomainModel):
    seq_id: int
    term_code: str


class ActionResult(DomainModel):
    """Outcome of a mutating request."""

    success: bool
    message: str | None = None

    def raise_for_status(self) -> "ActionResult":
        """Raise ServiceRejected if the service refused the action."""
        if not self.success:
            raise ServiceRejected(self.message or "Request rejected by the service")
        return self
