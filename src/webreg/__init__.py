"""Async client for the WebReg course-enrollment service.

Turns the service's flat, inconsistent JSON into typed courses, sections and
schedules, and runs plan/enroll/waitlist/drop actions with optional dry-run
validation.
"""

from webreg.client import SharedWebRegClient, WebRegClient
from webreg.config import ClientConfig, get_config
from webreg.errors import (
    ConflictingSearchMode,
    ErrorKind,
    InvalidRequestConstruction,
    MalformedResponse,
    PermanentError,
    SectionNotFound,
    ServiceRejected,
    SessionInvalid,
    TransientError,
    TransportError,
    WebRegError,
)
from webreg.executor import EnrollRequest, PlanRequest
from webreg.logging import configure_from_settings, setup_logging
from webreg.models import (
    DEFAULT_SCHEDULE_NAME,
    ActionResult,
    Course,
    DayOfWeek,
    Diagnostic,
    EnrollmentStatus,
    GradeOption,
    Meeting,
    MeetingKind,
    ScheduleEntry,
    SearchResult,
    Section,
)
from webreg.normalizer import normalize, normalize_schedule
from webreg.search import CourseLevel, SearchCriteria

__all__ = [
    "WebRegClient",
    "SharedWebRegClient",
    "ClientConfig",
    "get_config",
    "setup_logging",
    "configure_from_settings",
    "SearchCriteria",
    "CourseLevel",
    "PlanRequest",
    "EnrollRequest",
    "normalize",
    "normalize_schedule",
    "DEFAULT_SCHEDULE_NAME",
    "ActionResult",
    "Course",
    "Section",
    "Meeting",
    "MeetingKind",
    "DayOfWeek",
    "Diagnostic",
    "EnrollmentStatus",
    "GradeOption",
    "ScheduleEntry",
    "SearchResult",
    "ErrorKind",
    "WebRegError",
    "TransientError",
    "PermanentError",
    "TransportError",
    "SessionInvalid",
    "MalformedResponse",
    "ServiceRejected",
    "SectionNotFound",
    "InvalidRequestConstruction",
    "ConflictingSearchMode",
]
