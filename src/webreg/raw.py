"""Pydantic models mirroring the raw wire format.

These models are deliberately permissive: every field is optional, unknown
fields are ignored, blank strings in numeric fields become None and most fields
accept both the camelCase shape and the upper-case column names the service
sends. Nothing here enforces domain rules; that is the normalizer's job.

Raw instances are transient - created per response, discarded after
normalization.
"""

import math
from typing import Annotated, Any, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    model_validator,
)

from webreg.errors import MalformedResponse
from webreg.models import Diagnostic


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _to_str(value: Any) -> Any:
    # Section ids arrive as "079911" in the catalog but as 79911 in schedules.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    return value


UNPARSEABLE = "unparseable"


def _number(value: Any, info: ValidationInfo, integral: bool) -> Any:
    """Coerce a numeric column; values that are not numbers become None.

    Dropped values are recorded in the validation context under UNPARSEABLE
    so parse_rows() can report them against the row.
    """
    value = _blank_to_none(value)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number) or (integral and not number.is_integer()):
        if isinstance(info.context, dict):
            info.context.setdefault(UNPARSEABLE, []).append((info.field_name, value))
        return None
    return int(number) if integral else number


def _int(value: Any, info: ValidationInfo) -> Any:
    return _number(value, info, integral=True)


def _float(value: Any, info: ValidationInfo) -> Any:
    return _number(value, info, integral=False)


OptionalInt = Annotated[int | None, BeforeValidator(_int)]
OptionalFloat = Annotated[float | None, BeforeValidator(_float)]
OptionalStr = Annotated[str | None, BeforeValidator(_to_str)]


def _alias(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


class RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class RawSeats(RawModel):
    """Seat counts. ``available`` is optional; the service sometimes omits it."""

    total: OptionalInt = _alias("total", "SCTN_CPCTY_QTY")
    taken: OptionalInt = _alias("taken", "SCTN_ENRLT_QTY")
    available: OptionalInt = _alias("available", "AVAIL_SEAT")


class RawMeeting(RawModel):
    """One meeting row: a lecture, discussion, exam, or a TBA placeholder."""

    kind: OptionalStr = _alias("kind", "FK_CDI_INSTR_TYPE")
    day: OptionalStr = _alias("day", "DAY_CODE")
    date: OptionalStr = _alias("date", "START_DATE")
    start: OptionalStr = _alias("start", "startTime")
    end: OptionalStr = _alias("end", "endTime")
    bldg: OptionalStr = _alias("bldg", "BLDG_CODE")
    room: OptionalStr = _alias("room", "ROOM_CODE")
    instructor: OptionalStr = _alias("instructor", "PERSON_FULL_NAME")


_FLAT_SEATS = {
    "SCTN_CPCTY_QTY": "total",
    "SCTN_ENRLT_QTY": "taken",
    "AVAIL_SEAT": "available",
}
_FLAT_MEETING = {
    "FK_CDI_INSTR_TYPE": "kind",
    "DAY_CODE": "day",
    "BLDG_CODE": "bldg",
    "ROOM_CODE": "room",
    "PERSON_FULL_NAME": "instructor",
}
# Special meeting codes that still mean "a regular, repeating meeting".
_NOT_SPECIAL = frozenset({"", "TBA"})


def _clock(hour: Any, minute: Any) -> str | None:
    if hour is None or (isinstance(hour, str) and not hour.strip()):
        return None
    try:
        return f"{int(hour):02d}:{int(minute or 0):02d}"
    except (TypeError, ValueError):
        # Left for the normalizer to report as an unrecognised time.
        return f"{hour}:{minute}"


def nest_flat_columns(data: dict[str, Any]) -> dict[str, Any]:
    """Nest the flat service columns into ``seats`` and ``meeting``.

    Catalog rows put seat counts and meeting details on the row itself, with
    times split into hour and minute columns. A special meeting (final,
    midterm) is named by FK_SPM_SPCL_MTG_CD and happens once, on START_DATE.
    """
    data = dict(data)
    if "seats" not in data:
        seats = {
            key: data[column] for column, key in _FLAT_SEATS.items() if column in data
        }
        if seats:
            data["seats"] = seats

    if "meeting" not in data:
        meeting = {
            key: data[column] for column, key in _FLAT_MEETING.items() if column in data
        }
        start = _clock(data.get("BEGIN_HH_TIME"), data.get("BEGIN_MM_TIME"))
        end = _clock(data.get("END_HH_TIME"), data.get("END_MM_TIME"))
        if start is not None:
            meeting["start"] = start
        if end is not None:
            meeting["end"] = end
        special = str(data.get("FK_SPM_SPCL_MTG_CD") or "").strip().upper()
        if special not in _NOT_SPECIAL:
            meeting["kind"] = special
            meeting["date"] = data.get("START_DATE")
            meeting.pop("day", None)
        if meeting:
            data["meeting"] = meeting
    return data


class RawRecord(RawModel):
    """One row of a catalog listing.

    The service flattens sections: a section with a lecture, a discussion and a
    final arrives as three rows that repeat the section-level fields (or leave
    some of them blank).
    """

    subject: OptionalStr = _alias("subject", "SUBJ_CODE")
    course: OptionalStr = _alias("course", "CRSE_CODE")
    title: OptionalStr = _alias("title", "CRSE_TITLE")
    section_id: OptionalStr = _alias("sectionId", "section_id", "SECTION_NUMBER")
    section_code: OptionalStr = _alias("sectionCode", "section_code", "SECT_CODE")
    display_type: OptionalStr = _alias(
        "displayType", "display_type", "DISPLAY_TYPE"
    )
    instructor: OptionalStr = _alias("instructor", "PERSON_FULL_NAME")
    seats: RawSeats | None = None
    waitlist_count: OptionalInt = _alias(
        "waitlistCount", "waitlist_count", "COUNT_ON_WAITLIST"
    )
    waitlist_cap: OptionalInt = _alias(
        "waitlistCap", "waitlist_cap", "STP_ENRLT_WAITLIST_MAX"
    )
    units: OptionalFloat = _alias("units", "SECT_CREDIT_HRS")
    grade_options: list[str] | str | None = _alias(
        "gradeOptions", "grade_options", "GRADE_OPTION_LIST"
    )
    meeting: RawMeeting | None = None

    @model_validator(mode="before")
    @classmethod
    def _nest_flat_columns(cls, data: Any) -> Any:
        return nest_flat_columns(data) if isinstance(data, dict) else data


class RawScheduleRecord(RawRecord):
    """One row of a schedule listing, with the user's enrollment fields."""

    status: OptionalStr = _alias("status", "ENROLL_STATUS")
    grade_option: OptionalStr = _alias("gradeOption", "grade_option", "GRADE_OPTION")
    waitlist_pos: OptionalStr = _alias("waitlistPos", "waitlist_pos", "WT_POS")


class RawSearchItem(RawModel):
    subject: OptionalStr = _alias("subject", "SUBJ_CODE")
    course: OptionalStr = _alias("course", "CRSE_CODE")
    title: OptionalStr = _alias("title", "CRSE_TITLE")


class RawPrerequisite(RawModel):
    """A course prerequisite row, or an exam prerequisite when ``test_title`` is set."""

    seq_id: OptionalStr = _alias("seqId", "seq_id", "PREREQ_SEQ_ID")
    subject: OptionalStr = _alias("subject", "SUBJECT_CODE", "SUBJ_CODE")
    course: OptionalStr = _alias("course", "COURSE_CODE", "CRSE_CODE")
    title: OptionalStr = _alias("title", "CRSE_TITLE")
    test_title: OptionalStr = _alias("testTitle", "test_title", "TEST_TITLE")


class RawTerm(RawModel):
    seq_id: OptionalInt = _alias("seqId", "seq_id", "SEQ_ID")
    term_code: OptionalStr = _alias("termCode", "term_code", "TERM_CODE")


class RawCode(RawModel):
    """A department or subject code entry."""

    code: OptionalStr = _alias("code", "DEP_CODE", "SUBJECT_CODE", "SUBJ_CODE")
    description: OptionalStr = _alias(
        "description", "DEP_DESC", "SUBJECT_DESC", "SUBJ_DESC"
    )


RowT = TypeVar("RowT", bound=RawModel)


def parse_rows(payload: Any, model: type[RowT]) -> tuple[list[RowT], list[Diagnostic]]:
    """Validate a JSON array row by row.

    A payload that is not an array is a hard failure for the whole call. A row
    that fails validation is reported as a Diagnostic and skipped. A numeric
    column holding something that is not a number is reported as a Diagnostic
    for that field; the row itself is kept with the field unset.

    Raises:
        MalformedResponse: If ``payload`` is not a list.
    """
    if not isinstance(payload, list):
        raise MalformedResponse(
            f"Expected a JSON array of {model.__name__}, got {type(payload).__name__}"
        )

    rows: list[RowT] = []
    diagnostics: list[Diagnostic] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            diagnostics.append(
                Diagnostic(
                    row=index, message=f"row is {type(item).__name__}, not an object"
                )
            )
            continue
        context: dict[str, Any] = {}
        try:
            rows.append(model.model_validate(item, context=context))
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            diagnostics.append(
                Diagnostic(
                    row=index, field=field or None, message=first.get("msg", str(e))
                )
            )
            continue
        for field, value in context.get(UNPARSEABLE, ()):
            diagnostics.append(
                Diagnostic(
                    row=index, field=field, message=f"not a number: {value!r}; ignored"
                )
            )
    return rows, diagnostics
