"""
Unit tests for wire-format helpers and request guardrails.
"""

import unittest

from webreg.endpoints import Endpoint
from webreg.errors import ErrorKind, InvalidRequestConstruction
from webreg.utils import (
    ensure_request_allowed,
    format_course_code,
    format_course_list,
    parse_instructor_names,
    strip_html,
    strip_section_id,
    term_seq_id,
)


class TestCourseCodes(unittest.TestCase):
    def test_padding(self) -> None:
        self.assertEqual(format_course_code("8B"), "  8B")
        self.assertEqual(format_course_code("1"), "  1")
        self.assertEqual(format_course_code("15l"), " 15L")
        self.assertEqual(format_course_code("158R"), "158R")
        self.assertEqual(format_course_code("MATH"), "MATH")

    def test_course_list(self) -> None:
        self.assertEqual(
            format_course_list(["CSE 8B", "CSE 95", "MATH 100A"]),
            "CSE:  8B;CSE: 95;MATH:100A",
        )
        self.assertEqual(format_course_list(["20E"]), " 20E")


class TestTermSeqId(unittest.TestCase):
    def test_known_terms(self) -> None:
        self.assertEqual(term_seq_id("SP22"), 5200)
        self.assertEqual(term_seq_id("S322"), 5230)
        self.assertEqual(term_seq_id("FA22"), 5250)
        self.assertEqual(term_seq_id("WI23"), 5260)
        self.assertEqual(term_seq_id("fa23"), 5320)
        self.assertEqual(term_seq_id("SP24"), 5340)
        self.assertEqual(term_seq_id("WI22"), 5190)

    def test_invalid_terms(self) -> None:
        self.assertIsNone(term_seq_id("XX24"))
        self.assertIsNone(term_seq_id("WI2T"))
        self.assertIsNone(term_seq_id("FALL"))


class TestText(unittest.TestCase):
    def test_instructor_names(self) -> None:
        self.assertEqual(
            parse_instructor_names("Doe, Jane ;A1:Roe, Rick ;A2:Doe, Jane ;A1"),
            ["Doe, Jane", "Roe, Rick"],
        )
        self.assertEqual(parse_instructor_names(None), [])

    def test_strip_html(self) -> None:
        self.assertEqual(
            strip_html("<p>You are <b>not</b> eligible.</p>"), "You are not eligible."
        )

    def test_strip_section_id(self) -> None:
        self.assertEqual(strip_section_id("079911"), "79911")
        self.assertEqual(strip_section_id("000"), "0")


class TestReadOnlyGuard(unittest.TestCase):
    def test_commit_is_blocked(self) -> None:
        with self.assertRaises(InvalidRequestConstruction) as ctx:
            ensure_request_allowed("POST", Endpoint.ENROLL_ADD, read_only=True)
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_REQUEST)

    def test_dry_run_and_reads_pass(self) -> None:
        ensure_request_allowed("POST", Endpoint.PLAN_EDIT, read_only=True)
        ensure_request_allowed("GET", Endpoint.SCHEDULE, read_only=True)
        ensure_request_allowed("POST", Endpoint.ENROLL_ADD, read_only=False)


if __name__ == "__main__":
    unittest.main()
