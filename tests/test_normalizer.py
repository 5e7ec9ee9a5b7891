"""
Unit tests for catalog and schedule normalization.

Contract:
- Raw rows are grouped by (subject, course, section id) in first-seen order
- Placeholder meeting rows are dropped silently
- A malformed row costs exactly one meeting and one Diagnostic, nothing more
- Normalization is pure: same input, same output
"""

import unittest
from datetime import date, time

from webreg.errors import MalformedResponse
from webreg.models import DayOfWeek, EnrollmentStatus, GradeOption, MeetingKind
from webreg.normalizer import (
    normalize,
    normalize_codes,
    normalize_prerequisites,
    normalize_schedule,
    parse_days,
    parse_time,
)
from webreg.raw import (
    RawCode,
    RawPrerequisite,
    RawRecord,
    RawScheduleRecord,
    parse_rows,
)


def row(section_id: str, **overrides) -> dict:
    data = {
        "subject": "CSE",
        "course": "100",
        "sectionId": section_id,
        "sectionCode": "A01",
        "seats": {"total": 30, "taken": 10},
        "meeting": {
            "kind": "LE",
            "day": "MWF",
            "start": "10:00",
            "end": "10:50",
            "bldg": "CENTR",
            "room": "101",
        },
    }
    data.update(overrides)
    return data


def records(*rows: dict) -> list[RawRecord]:
    parsed, diagnostics = parse_rows(list(rows), RawRecord)
    assert not diagnostics, diagnostics
    return parsed


class TestEndToEnd(unittest.TestCase):
    def test_full_section_is_normalized(self) -> None:
        raw = [
            {
                "subject": "CSE",
                "course": "100",
                "sectionId": "079911",
                "sectionCode": "A01",
                "seats": {"total": 30, "taken": 30},
                "waitlistCap": 10,
                "meeting": {
                    "kind": "LE",
                    "day": "M",
                    "start": "10:00",
                    "end": "10:50",
                    "bldg": "CENTR",
                    "room": "101",
                },
            }
        ]
        courses, diagnostics = normalize(records(*raw))

        self.assertEqual(diagnostics, [])
        self.assertEqual(len(courses), 1)
        course = courses[0]
        self.assertEqual((course.subject, course.course_code), ("CSE", "100"))
        self.assertEqual(len(course.sections), 1)

        section = course.sections[0]
        self.assertEqual(section.section_id, "079911")
        self.assertEqual(section.section_code, "A01")
        self.assertEqual(section.total_seats, 30)
        self.assertEqual(section.enrolled_count, 30)
        self.assertEqual(section.available_seats, 0)
        self.assertFalse(section.has_seats())
        self.assertTrue(section.is_add_candidate())

        self.assertEqual(len(section.meetings), 1)
        meeting = section.meetings[0]
        self.assertEqual(meeting.kind, MeetingKind.LECTURE)
        self.assertEqual(meeting.code, "LE")
        self.assertEqual(meeting.days, (DayOfWeek.MONDAY,))
        self.assertEqual((meeting.start, meeting.end), (time(10, 0), time(10, 50)))
        self.assertEqual((meeting.building, meeting.room), ("CENTR", "101"))


class TestGrouping(unittest.TestCase):
    def test_interleaved_sections_keep_first_seen_order(self) -> None:
        raw = records(
            row("S1", meeting={"kind": "LE", "day": "M", "start": "9:00",
                               "end": "9:50", "bldg": "A", "room": "1"}),
            row("S2", sectionCode="B01"),
            row("S1", meeting={"kind": "DI", "day": "W", "start": "11:00",
                               "end": "11:50", "bldg": "B", "room": "2"}),
        )
        courses, _ = normalize(raw)

        self.assertEqual(len(courses), 1)
        sections = courses[0].sections
        self.assertEqual([s.section_id for s in sections], ["S1", "S2"])
        self.assertEqual(
            [m.code for m in sections[0].meetings], ["LE", "DI"]
        )
        self.assertEqual(sections[0].meetings[0].start, time(9, 0))

    def test_courses_are_split_by_subject_and_code(self) -> None:
        raw = records(
            row("1", subject="MATH", course="20C"),
            row("2"),
            row("3", subject="MATH", course="20C"),
        )
        courses, _ = normalize(raw)
        self.assertEqual(
            [c.subj_course_id for c in courses], ["MATH 20C", "CSE 100"]
        )
        self.assertEqual(
            [s.section_id for s in courses[0].sections], ["1", "3"]
        )

    def test_duplicate_meeting_rows_collapse(self) -> None:
        courses, _ = normalize(records(row("1"), row("1")))
        self.assertEqual(len(courses[0].sections[0].meetings), 1)

    def test_cancelled_rows_are_skipped(self) -> None:
        courses, diagnostics = normalize(
            records(row("1", displayType="CA"), row("2"))
        )
        self.assertEqual([s.section_id for s in courses[0].sections], ["2"])
        self.assertEqual(diagnostics, [])

    def test_row_without_key_is_reported(self) -> None:
        courses, diagnostics = normalize(records(row(""), row("2")))
        self.assertEqual([s.section_id for s in courses[0].sections], ["2"])
        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].row, 0)


class TestPlaceholders(unittest.TestCase):
    def test_placeholder_rows_are_dropped(self) -> None:
        tba_building = {"kind": "LE", "day": "TuTh", "start": "10:00",
                        "end": "11:00", "bldg": "TBA", "room": "TBA"}
        no_time = {"kind": "DI", "day": "F", "start": "", "end": "",
                   "bldg": "CENTR", "room": "105"}
        sentinel_day = {"kind": "LA", "day": "TBA", "start": "14:00",
                        "end": "15:00", "bldg": "EBU3B", "room": "B250"}
        courses, diagnostics = normalize(
            records(
                row("1", meeting=tba_building),
                row("1", meeting=no_time),
                row("1", meeting=sentinel_day),
                row("1"),
            )
        )
        meetings = courses[0].sections[0].meetings
        self.assertEqual(len(meetings), 1)
        self.assertEqual(meetings[0].building, "CENTR")
        self.assertEqual(diagnostics, [])

    def test_section_with_only_placeholders_has_no_meetings(self) -> None:
        placeholder = {"kind": "LE", "day": "", "start": "", "end": "",
                       "bldg": "", "room": ""}
        courses, diagnostics = normalize(
            records(row("1", meeting=placeholder, seats={"total": 5, "taken": 1}))
        )
        section = courses[0].sections[0]
        self.assertEqual(section.meetings, ())
        self.assertEqual(section.available_seats, 4)
        self.assertEqual(diagnostics, [])

    def test_final_exam_keeps_its_date(self) -> None:
        final = {"kind": "FI", "date": "2023-12-09", "start": "08:00",
                 "end": "10:59", "bldg": "CENTR", "room": "115"}
        courses, _ = normalize(records(row("1"), row("1", meeting=final)))
        exam = courses[0].sections[0].meetings[1]
        self.assertEqual(exam.kind, MeetingKind.FINAL)
        self.assertEqual(exam.meeting_date, date(2023, 12, 9))
        self.assertEqual(exam.days, ())


class TestMalformedRows(unittest.TestCase):
    def test_bad_time_drops_one_meeting_only(self) -> None:
        bad = {"kind": "DI", "day": "W", "start": "half past", "end": "11:50",
               "bldg": "CENTR", "room": "119"}
        clean_courses, clean_diags = normalize(
            records(row("1"), row("1", meeting={**bad, "start": "11:00"}), row("2"))
        )
        courses, diagnostics = normalize(
            records(row("1"), row("1", meeting=bad), row("2"))
        )

        self.assertEqual(clean_diags, [])
        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].row, 1)
        self.assertEqual(diagnostics[0].key, "1")
        self.assertEqual(diagnostics[0].field, "meeting.start")

        before = clean_courses[0].sections
        after = courses[0].sections
        self.assertEqual(len(after[0].meetings), len(before[0].meetings) - 1)
        self.assertEqual(after[1], before[1])

    def test_unknown_grade_option_is_reported_and_omitted(self) -> None:
        courses, diagnostics = normalize(
            records(row("1", gradeOptions="L,P/NP,XX"), row("1", gradeOptions=["XX"]))
        )
        self.assertEqual(
            courses[0].sections[0].grade_options,
            (GradeOption.LETTER, GradeOption.PASS_NO_PASS),
        )
        self.assertEqual(len(diagnostics), 1)
        self.assertEqual(diagnostics[0].field, "gradeOptions")

    def test_missing_seats_default_to_zero(self) -> None:
        courses, diagnostics = normalize(records(row("1", seats=None)))
        section = courses[0].sections[0]
        self.assertEqual(
            (section.total_seats, section.enrolled_count, section.available_seats),
            (0, 0, 0),
        )
        self.assertEqual([d.field for d in diagnostics], ["seats"])

    def test_authoritative_row_has_seats_and_instructor(self) -> None:
        courses, _ = normalize(
            records(
                row("1", seats={"total": 10, "taken": 10}),
                row("1", seats={"total": 40, "taken": 12},
                    instructor="Politz, Joseph Gibbs ;A12345"),
            )
        )
        section = courses[0].sections[0]
        self.assertEqual(section.total_seats, 40)
        self.assertEqual(section.available_seats, 28)
        self.assertEqual(section.instructors, ("Politz, Joseph Gibbs",))

    def test_non_numeric_value_keeps_the_section(self) -> None:
        rows, diagnostics = parse_rows(
            [row("1", waitlistCap="N/A", units="var")], RawRecord
        )
        self.assertEqual(len(rows), 1)
        self.assertEqual(
            [(d.row, d.field) for d in diagnostics],
            [(0, "waitlist_cap"), (0, "units")],
        )

        courses, more = normalize(rows)
        section = courses[0].sections[0]
        self.assertEqual(more, [])
        self.assertEqual(section.waitlist_capacity, 0)
        self.assertEqual(section.units, 0.0)
        self.assertEqual(section.total_seats, 30)
        self.assertEqual(len(section.meetings), 1)

    def test_numeric_strings_are_accepted(self) -> None:
        rows, diagnostics = parse_rows(
            [row("1", seats={"total": "30", "taken": " 12 "}, units="2.5")], RawRecord
        )
        self.assertEqual(diagnostics, [])
        self.assertEqual((rows[0].seats.total, rows[0].seats.taken), (30, 12))
        self.assertEqual(rows[0].units, 2.5)

    def test_non_object_row_is_a_diagnostic(self) -> None:
        rows, diagnostics = parse_rows([row("1"), "garbage"], RawRecord)
        self.assertEqual(len(rows), 1)
        self.assertEqual(diagnostics[0].row, 1)

    def test_outer_shape_must_be_a_list(self) -> None:
        with self.assertRaises(MalformedResponse):
            parse_rows({"rows": []}, RawRecord)


class TestIdempotence(unittest.TestCase):
    def test_same_input_same_output(self) -> None:
        raw = records(
            row("1", seats={"total": 30, "taken": 12}, gradeOptions="L,P,?"),
            row("2", meeting={"kind": "DI", "day": "1010100", "start": "1300",
                              "end": "1350", "bldg": "WLH", "room": "2001"}),
            row("1", meeting={"kind": "LE", "day": "TuTh", "start": "nope",
                              "end": "9:20", "bldg": "PCYNH", "room": "106"}),
        )
        self.assertEqual(normalize(raw), normalize(raw))


class TestUpperCaseColumns(unittest.TestCase):
    def test_service_column_names_are_accepted(self) -> None:
        raw = records(
            {
                "SUBJ_CODE": "COGS ",
                "CRSE_CODE": "108",
                "SECTION_NUMBER": 123456,
                "SECT_CODE": "A00",
                "PERSON_FULL_NAME": "Fleischer, Jason G ;A1:Other, Prof ;A2",
                "SECT_CREDIT_HRS": "4",
                "COUNT_ON_WAITLIST": "",
                "meeting": {"FK_CDI_INSTR_TYPE": "LE", "DAY_CODE": "24",
                            "startTime": "2:00 PM", "endTime": "3:20 PM",
                            "BLDG_CODE": "PETER", "ROOM_CODE": "108"},
            }
        )
        courses, _ = normalize(raw)
        section = courses[0].sections[0]
        self.assertEqual(courses[0].subj_course_id, "COGS 108")
        self.assertEqual(section.section_id, "123456")
        self.assertEqual(section.units, 4.0)
        self.assertEqual(section.waitlist_count, 0)
        self.assertEqual(section.instructors, ("Fleischer, Jason G", "Other, Prof"))
        meeting = section.meetings[0]
        self.assertEqual(meeting.days, (DayOfWeek.TUESDAY, DayOfWeek.THURSDAY))
        self.assertEqual(meeting.start, time(14, 0))

    def test_flat_service_rows_are_nested(self) -> None:
        lecture = {
            "SUBJ_CODE": "CSE",
            "CRSE_CODE": "100",
            "SECTION_NUMBER": "079911",
            "SECT_CODE": "A00",
            "SCTN_CPCTY_QTY": 30,
            "SCTN_ENRLT_QTY": 10,
            "AVAIL_SEAT": 20,
            "FK_CDI_INSTR_TYPE": "LE",
            "FK_SPM_SPCL_MTG_CD": "  ",
            "DAY_CODE": "135",
            "BEGIN_HH_TIME": 10,
            "BEGIN_MM_TIME": 0,
            "END_HH_TIME": 10,
            "END_MM_TIME": 50,
            "BLDG_CODE": "CENTR",
            "ROOM_CODE": "101",
            "START_DATE": "2023-09-28",
            "PERSON_FULL_NAME": "Doe, Jane ;A1",
        }
        final = {
            "SUBJ_CODE": "CSE",
            "CRSE_CODE": "100",
            "SECTION_NUMBER": "079911",
            "SECT_CODE": "A00",
            "FK_CDI_INSTR_TYPE": "LE",
            "FK_SPM_SPCL_MTG_CD": "FI",
            "DAY_CODE": "6",
            "BEGIN_HH_TIME": "8",
            "BEGIN_MM_TIME": "0",
            "END_HH_TIME": "10",
            "END_MM_TIME": "59",
            "BLDG_CODE": "CENTR",
            "ROOM_CODE": "115",
            "START_DATE": "2023-12-09",
        }
        courses, diagnostics = normalize(records(lecture, final))

        self.assertEqual(diagnostics, [])
        section = courses[0].sections[0]
        self.assertEqual(
            (section.total_seats, section.enrolled_count, section.available_seats),
            (30, 10, 20),
        )
        self.assertEqual(section.instructors, ("Doe, Jane",))
        weekly, exam = section.meetings
        self.assertEqual(
            weekly.days, (DayOfWeek.MONDAY, DayOfWeek.WEDNESDAY, DayOfWeek.FRIDAY)
        )
        self.assertEqual((weekly.start, weekly.end), (time(10, 0), time(10, 50)))
        self.assertIsNone(weekly.meeting_date)
        self.assertEqual(exam.kind, MeetingKind.FINAL)
        self.assertEqual(exam.meeting_date, date(2023, 12, 9))
        self.assertEqual(exam.days, ())
        self.assertEqual((exam.start, exam.end), (time(8, 0), time(10, 59)))


class TestFieldParsers(unittest.TestCase):
    def test_parse_time_formats(self) -> None:
        self.assertEqual(parse_time("9:05"), time(9, 5))
        self.assertEqual(parse_time("0905"), time(9, 5))
        self.assertEqual(parse_time("21:05:00"), time(21, 5))
        self.assertEqual(parse_time("9:05 PM"), time(21, 5))
        self.assertIsNone(parse_time("25:00"))

    def test_parse_days(self) -> None:
        self.assertEqual(
            parse_days("TuTh"), (DayOfWeek.TUESDAY, DayOfWeek.THURSDAY)
        )
        self.assertEqual(parse_days("0"), (DayOfWeek.SUNDAY,))
        self.assertEqual(
            parse_days("1010100"),
            (DayOfWeek.MONDAY, DayOfWeek.WEDNESDAY, DayOfWeek.FRIDAY),
        )
        self.assertIsNone(parse_days("Xyz"))


class TestSchedule(unittest.TestCase):
    def test_entries_carry_status_and_grade(self) -> None:
        raw, _ = parse_rows(
            [
                {**row("79911"), "status": "EN", "gradeOption": "L", "units": 4},
                {**row("79911", meeting={"kind": "DI", "day": "W", "start": "17:00",
                                         "end": "17:50", "bldg": "CENTR",
                                         "room": "119"})},
                {**row("80000", course="105"), "status": "WT", "waitlistPos": "3",
                 "gradeOption": "P"},
                {**row("80100", course="110"), "status": "dropped?"},
            ],
            RawScheduleRecord,
        )
        entries, diagnostics = normalize_schedule(raw, "Plan B")

        self.assertEqual([e.section_id for e in entries], ["79911", "80000"])
        enrolled, waitlisted = entries
        self.assertEqual(enrolled.status, EnrollmentStatus.ENROLLED)
        self.assertEqual(enrolled.grade_option, GradeOption.LETTER)
        self.assertEqual(enrolled.units, 4.0)
        self.assertEqual(len(enrolled.meetings), 2)
        self.assertIsNone(enrolled.waitlist_position)
        self.assertEqual(enrolled.schedule_name, "Plan B")

        self.assertEqual(waitlisted.status, EnrollmentStatus.WAITLISTED)
        self.assertEqual(waitlisted.waitlist_position, 3)
        self.assertEqual(waitlisted.grade_option, GradeOption.PASS_NO_PASS)

        self.assertEqual({d.key for d in diagnostics}, {"80100"})


class TestSmallerListings(unittest.TestCase):
    def test_prerequisite_groups(self) -> None:
        raw, _ = parse_rows(
            [
                {"PREREQ_SEQ_ID": "1", "SUBJECT_CODE": "CSE", "COURSE_CODE": "12",
                 "CRSE_TITLE": "Data Structures"},
                {"PREREQ_SEQ_ID": "1", "SUBJECT_CODE": "ECE", "COURSE_CODE": "15"},
                {"PREREQ_SEQ_ID": "2", "SUBJECT_CODE": "CSE", "COURSE_CODE": "21"},
                {"TEST_TITLE": "Placement Exam"},
            ],
            RawPrerequisite,
        )
        prerequisites, diagnostics = normalize_prerequisites(raw)
        self.assertEqual(diagnostics, [])
        self.assertEqual(
            [[p.subj_course_id for p in group] for group in prerequisites.course_groups],
            [["CSE 12", "ECE 15"], ["CSE 21"]],
        )
        self.assertEqual(prerequisites.exams, ("Placement Exam",))

    def test_codes_are_deduplicated(self) -> None:
        raw, _ = parse_rows(
            [{"DEP_CODE": "cse "}, {"DEP_CODE": "MATH"}, {"DEP_CODE": "CSE"}, {}],
            RawCode,
        )
        codes, diagnostics = normalize_codes(raw)
        self.assertEqual(codes, ["CSE", "MATH"])
        self.assertEqual(len(diagnostics), 1)


if __name__ == "__main__":
    unittest.main()
