"""Logical endpoints of the enrollment service, relative to ``base_url``."""

from enum import Enum

_SECURE = "svc/wradapter/secure"
_OPEN = "svc/wradapter"


class Endpoint(str, Enum):
    # Session / account
    STATUS = f"{_SECURE}/ping-server"
    ACCOUNT_NAME = f"{_OPEN}/get-current-name"
    TERM_LIST = f"{_OPEN}/get-term"
    STATUS_START = f"{_OPEN}/get-status-start"
    ELIGIBILITY = f"{_OPEN}/check-eligibility"

    # Catalog
    SEARCH = f"{_SECURE}/search-by-all"
    SEARCH_SECTIONS = f"{_SECURE}/search-by-sectionid"
    COURSE_DATA = f"{_SECURE}/search-load-group-data"
    PREREQUISITES = f"{_SECURE}/get-prerequisites"
    DEPARTMENTS = f"{_SECURE}/search-load-department"
    SUBJECTS = f"{_SECURE}/search-load-subject"

    # Schedules
    SCHEDULE = f"{_SECURE}/get-class"
    SCHEDULE_NAMES = f"{_SECURE}/sched-get-schednames"
    SCHEDULE_RENAME = f"{_SECURE}/plan-rename"
    SCHEDULE_REMOVE = f"{_SECURE}/sched-remove"

    # Planning
    PLAN_ADD = f"{_SECURE}/plan-add"
    PLAN_EDIT = f"{_SECURE}/edit-plan"
    PLAN_REMOVE = f"{_SECURE}/plan-remove"
    PLAN_REMOVE_ALL = f"{_SECURE}/plan-remove-all"

    # Enrollment
    ENROLL_ADD = f"{_SECURE}/add-enroll"
    ENROLL_EDIT = f"{_SECURE}/edit-enroll"
    ENROLL_DROP = f"{_SECURE}/drop-enroll"
    WAITLIST_ADD = f"{_SECURE}/add-wait"
    WAITLIST_EDIT = f"{_SECURE}/edit-wait"
    WAITLIST_DROP = f"{_SECURE}/drop-wait"
    CHANGE_GRADING = f"{_SECURE}/change-enroll"

    SEND_EMAIL = f"{_SECURE}/send-email"


# POST endpoints that only check eligibility and never change state.
DRY_RUN_ENDPOINTS: frozenset[Endpoint] = frozenset(
    {
        Endpoint.PLAN_EDIT,
        Endpoint.ENROLL_EDIT,
        Endpoint.WAITLIST_EDIT,
    }
)
