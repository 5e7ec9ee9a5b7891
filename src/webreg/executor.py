"""Validate-then-commit workflows for every mutating request.

Most verbs have a dry-run "edit" endpoint that checks eligibility without
changing anything. When asked to validate, the executor sends the dry run
first and only commits if the service accepted it. The steps of one verb always
run in order; the executor never runs them concurrently and never re-queries
the catalog on its own.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webreg.endpoints import Endpoint
from webreg.errors import InvalidRequestConstruction, ServiceRejected, WebRegError
from webreg.logging import get_logger
from webreg.models import (
    DEFAULT_SCHEDULE_NAME,
    ActionResult,
    EnrollmentStatus,
    GradeOption,
)
from webreg.transport import Transport
from webreg.utils import format_course_code

logger = get_logger(__name__)


def format_units(units: float | None) -> str:
    """Unit counts go over the wire as ``"4"`` or ``"2.5"``; unknown is blank."""
    if units is None:
        return ""
    return str(int(units)) if float(units).is_integer() else str(units)


class _Request(BaseModel):
    model_config = ConfigDict(frozen=True)

    section_id: str = Field(min_length=1)

    @field_validator("section_id")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("section id is blank")
        return value


class PlanRequest(_Request):
    """A section to put on a (possibly non-default) planning schedule."""

    subject: str
    course_code: str
    section_code: str
    grade_option: GradeOption = GradeOption.LETTER
    units: float | None = None
    schedule_name: str = DEFAULT_SCHEDULE_NAME


class EnrollRequest(_Request):
    """A section to enroll in or waitlist."""

    grade_option: GradeOption = GradeOption.LETTER
    units: float | None = None


class ActionExecutor:
    """Runs mutating verbs against one Transport."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def _validate(
        self,
        endpoint: Endpoint,
        data: list[tuple[str, str]],
        *,
        action: str,
        section_id: str,
    ) -> None:
        result = await self._transport.post_form(endpoint, data)
        if not result.success:
            logger.info(
                "validation_rejected",
                action=action,
                section_id=section_id,
                message=result.message,
            )
            raise ServiceRejected(
                result.message or f"{action} was rejected during validation"
            )
        logger.debug("validation_passed", action=action, section_id=section_id)

    async def _commit(
        self,
        endpoint: Endpoint,
        data: list[tuple[str, str]],
        *,
        action: str,
        **context: str,
    ) -> ActionResult:
        result = await self._transport.post_form(endpoint, data)
        if result.success:
            logger.info("action_committed", action=action, **context)
        else:
            logger.info(
                "action_rejected", action=action, message=result.message, **context
            )
        return result

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    async def plan_add(self, request: PlanRequest, validate: bool = True) -> ActionResult:
        """Add a section to a planning schedule.

        Args:
            request: Section, course and grading details.
            validate: Send the ``edit-plan`` dry run first.

        Returns:
            ActionResult: The commit outcome.

        Raises:
            ServiceRejected: If validation was requested and refused.
        """
        course_code = format_course_code(request.course_code)
        subject = request.subject.strip().upper()
        if validate:
            await self._validate(
                Endpoint.PLAN_EDIT,
                [
                    ("section", request.section_id),
                    ("subjcode", subject),
                    ("crsecode", course_code),
                ],
                action="plan_add",
                section_id=request.section_id,
            )

        return await self._commit(
            Endpoint.PLAN_ADD,
            [
                ("subjcode", subject),
                ("crsecode", course_code),
                ("sectnum", request.section_id),
                ("sectcode", request.section_code.strip().upper()),
                ("unit", format_units(request.units)),
                ("grade", request.grade_option.value),
                ("schedname", request.schedule_name),
            ],
            action="plan_add",
            section_id=request.section_id,
            schedule=request.schedule_name,
        )

    async def plan_remove(
        self, section_id: str, schedule_name: str | None = None
    ) -> ActionResult:
        schedule = schedule_name or DEFAULT_SCHEDULE_NAME
        return await self._commit(
            Endpoint.PLAN_REMOVE,
            [("sectnum", section_id), ("schedname", schedule)],
            action="plan_remove",
            section_id=section_id,
            schedule=schedule,
        )

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------
    async def add_section(
        self, request: EnrollRequest, has_seats: bool, validate: bool = True
    ) -> ActionResult:
        """Enroll in a section, or join its waitlist.

        Which one is decided by ``has_seats`` alone, normally taken from
        ``Section.has_seats()`` of a recent read. The executor trusts it; a
        stale value shows up as a rejection from the service.

        After a successful commit the section is removed from every planning
        schedule, mirroring what the service's own frontend does.

        Raises:
            ServiceRejected: If validation was requested and refused.
        """
        if has_seats:
            action, edit, commit = "enroll", Endpoint.ENROLL_EDIT, Endpoint.ENROLL_ADD
        else:
            action = "waitlist"
            edit, commit = Endpoint.WAITLIST_EDIT, Endpoint.WAITLIST_ADD

        if validate:
            await self._validate(
                edit,
                [("section", request.section_id), ("subjcode", ""), ("crsecode", "")],
                action=action,
                section_id=request.section_id,
            )

        result = await self._commit(
            commit,
            [
                ("section", request.section_id),
                ("unit", format_units(request.units)),
                ("grade", request.grade_option.value),
                ("crsecode", ""),
                ("subjcode", ""),
            ],
            action=action,
            section_id=request.section_id,
        )
        if result.success:
            await self._clear_plans(request.section_id)
        return result

    async def _clear_plans(self, section_id: str) -> None:
        try:
            cleanup = await self._transport.post_form(
                Endpoint.PLAN_REMOVE_ALL, [("sectnum", section_id)]
            )
        except WebRegError as e:
            # The enrollment itself went through; a leftover plan is cosmetic.
            logger.warning("plan_cleanup_failed", section_id=section_id, error=str(e))
            return
        if not cleanup.success:
            logger.warning(
                "plan_cleanup_failed", section_id=section_id, error=cleanup.message
            )

    async def drop_section(
        self,
        section_id: str,
        status: EnrollmentStatus,
        schedule_name: str | None = None,
    ) -> ActionResult:
        """Leave a section: drop, leave the waitlist, or un-plan it."""
        if status is EnrollmentStatus.PLANNED:
            return await self.plan_remove(section_id, schedule_name)

        endpoint = (
            Endpoint.ENROLL_DROP
            if status is EnrollmentStatus.ENROLLED
            else Endpoint.WAITLIST_DROP
        )
        return await self._commit(
            endpoint,
            [("subjcode", ""), ("crsecode", ""), ("section", section_id)],
            action=f"drop_{status.value}",
            section_id=section_id,
        )

    async def change_grading_option(
        self, section_id: str, grade_option: GradeOption, units: float
    ) -> ActionResult:
        """Switch an enrolled section to another grading option.

        The service wants the section's unit count alongside the new option;
        ``WebRegClient.change_grading_option`` looks it up from the schedule.
        """
        return await self._commit(
            Endpoint.CHANGE_GRADING,
            [
                ("section", section_id),
                ("subjCode", ""),
                ("crseCode", ""),
                ("unit", format_units(units)),
                ("grade", grade_option.value),
                ("oldGrade", ""),
                ("oldUnit", ""),
            ],
            action="change_grading_option",
            section_id=section_id,
            grade=grade_option.value,
        )

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------
    @staticmethod
    def _require_custom_schedule(name: str, verb: str) -> str:
        name = name.strip()
        if not name:
            raise InvalidRequestConstruction("Schedule name is blank")
        if name == DEFAULT_SCHEDULE_NAME:
            raise InvalidRequestConstruction(f"You cannot {verb} the default schedule")
        return name

    async def create_schedule(
        self, name: str, first_section: PlanRequest, validate: bool = True
    ) -> ActionResult:
        """Create a schedule by planning its first section into it.

        The service has no empty schedules: a schedule exists as soon as one
        section is planned under its name.

        Args:
            name: Name of the new schedule.
            first_section: Section to plan; its ``schedule_name`` is replaced.
            validate: Send the ``edit-plan`` dry run first.

        Raises:
            InvalidRequestConstruction: If ``name`` is blank or the default
                schedule.
            ServiceRejected: If validation was requested and refused.
        """
        name = self._require_custom_schedule(name, "create")
        logger.info("schedule_create_requested", schedule=name)
        request = first_section.model_copy(update={"schedule_name": name})
        return await self.plan_add(request, validate)

    async def rename_schedule(self, old_name: str, new_name: str) -> ActionResult:
        old_name = self._require_custom_schedule(old_name, "rename")
        new_name = self._require_custom_schedule(new_name, "rename a schedule to")
        return await self._commit(
            Endpoint.SCHEDULE_RENAME,
            [("oldschedname", old_name), ("newschedname", new_name)],
            action="rename_schedule",
            schedule=old_name,
            new_name=new_name,
        )

    async def remove_schedule(self, name: str) -> ActionResult:
        name = self._require_custom_schedule(name, "remove")
        return await self._commit(
            Endpoint.SCHEDULE_REMOVE,
            [("schedname", name)],
            action="remove_schedule",
            schedule=name,
        )

    async def send_confirmation_email(self, content: str) -> ActionResult:
        """Have the registrar's no-reply address email ``content`` to the user."""
        text = await self._transport.post_text(
            Endpoint.SEND_EMAIL, [("actionevent", content)]
        )
        if '"YES"' in text or text.strip() == "YES":
            logger.info("confirmation_email_sent")
            return ActionResult(success=True)
        logger.info("confirmation_email_rejected")
        return ActionResult(success=False, message=text.strip() or None)
