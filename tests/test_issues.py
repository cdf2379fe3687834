"""Tests for issue classification, formatting and severity partitioning."""

import pytest

from hed_mcp_server.issues import (
    BIDS_HED_CODE,
    FileIssue,
    IssueKind,
    classify_issue,
    format_issue,
    format_issues,
    separate_issues_by_severity,
)
from hed_mcp_server.models import FormattedIssue

FIELDS = ("code", "detailedCode", "severity", "message", "column", "line", "location")


class WrappedHedError(Exception):
    """Exception carrying hedtools-style issues, like ``HedFileError``."""

    def __init__(self, message, issues=None):
        super().__init__(message)
        self.message = message
        self.issues = issues or []


class Unprintable:
    def __str__(self):
        raise RuntimeError("cannot render")


def hed_issue(**overrides):
    issue = {"code": "TAG_INVALID", "message": "'Blah' is not a valid tag", "severity": 1}
    issue.update(overrides)
    return issue


class TestClassifyIssue:
    """Test classification into issue kinds."""

    @pytest.mark.parametrize(
        "issue, kind",
        [
            ("text", IssueKind.TEXT),
            (ValueError("x"), IssueKind.EXCEPTION),
            (hed_issue(), IssueKind.HED_ISSUE),
            (FileIssue(hed_issue(), "/data/events.tsv"), IssueKind.FILE_ISSUE),
            ({"message": "x", "severity": "warning"}, IssueKind.RECORD),
            ({"code": "X", "severity": True}, IssueKind.RECORD),
            (None, IssueKind.UNKNOWN),
            (42, IssueKind.UNKNOWN),
            (["a"], IssueKind.UNKNOWN),
        ],
    )
    def test_kinds(self, issue, kind):
        assert classify_issue(issue) is kind


class TestFormatIssue:
    """Test formatting of every supported shape."""

    def test_text(self):
        issue = format_issue("Something broke")
        assert issue == FormattedIssue(
            code="INTERNAL_ERROR",
            detailedCode="INTERNAL_ERROR",
            severity="error",
            message="Something broke",
        )

    def test_exception_without_inner_issue(self):
        issue = format_issue(ValueError("bad value"))
        assert issue.code == "INTERNAL_ERROR"
        assert issue.severity == "error"
        assert issue.message == "bad value"

    def test_exception_with_inner_issue(self):
        inner = hed_issue(code="SCHEMA_LOAD_FAILED", message="no such version")
        issue = format_issue(WrappedHedError("outer", [inner]))
        assert issue.code == "SCHEMA_LOAD_FAILED"
        assert issue.message == "no such version"

    def test_hed_issue_with_context(self):
        issue = format_issue(
            hed_issue(
                sub_code="invalidTag",
                ec_row=3,
                ec_sidecarColumnName="event_type",
                ec_filename="events.tsv",
            )
        )
        assert issue.code == "TAG_INVALID"
        assert issue.detailedCode == "invalidTag"
        assert issue.severity == "error"
        assert issue.line == "3"
        assert issue.column == "event_type"
        assert issue.location == "events.tsv"

    def test_hed_issue_without_sub_code_uses_code(self):
        issue = format_issue(hed_issue(severity=10))
        assert issue.detailedCode == "TAG_INVALID"
        assert issue.severity == "warning"
        assert issue.line == issue.column == issue.location == ""

    def test_file_issue_takes_file_path_as_location(self):
        issue = format_issue(FileIssue(hed_issue(severity=10, ec_row=2), "/data/events.tsv"))
        assert issue.code == "TAG_INVALID"
        assert issue.severity == "warning"
        assert issue.line == "2"
        assert issue.location == "/data/events.tsv"

    def test_file_issue_prefers_wrapper_fields(self):
        wrapper = FileIssue(
            hed_issue(ec_row=2), "/data/events.tsv", line=7, severity="warning", message="custom"
        )
        issue = format_issue(wrapper)
        assert issue.line == "7"
        assert issue.severity == "warning"
        assert issue.message == "custom"

    def test_file_issue_default_code(self):
        issue = format_issue(FileIssue({"message": "no code here"}, "/data/sidecar.json"))
        assert issue.code == BIDS_HED_CODE
        assert issue.message == "no code here"

    def test_record_heuristics(self):
        issue = format_issue(
            {
                "type": "custom_error",
                "msg": "hello",
                "level": "warning",
                "tsvLine": 5,
                "sidecarKey": "trial_type",
                "filePath": "/data/events.tsv",
                "internalCode": "customInternal",
            }
        )
        assert issue == FormattedIssue(
            code="CUSTOM_ERROR",
            detailedCode="customInternal",
            severity="warning",
            message="hello",
            column="trial_type",
            line="5",
            location="/data/events.tsv",
        )

    def test_empty_record_defaults(self):
        issue = format_issue({})
        assert issue.code == "INTERNAL_ERROR"
        assert issue.severity == "error"
        assert issue.message == "Unknown error"
        assert issue.detailedCode == ""

    @pytest.mark.parametrize("value, message", [(None, "None"), (42, "42"), ([1, 2], "[1, 2]")])
    def test_unknown_values_are_stringified(self, value, message):
        issue = format_issue(value)
        assert issue.code == "INTERNAL_ERROR"
        assert issue.message == message

    def test_unprintable_value(self):
        issue = format_issue(Unprintable())
        assert issue.message == "UNKNOWN: cannot render"

    @pytest.mark.parametrize(
        "value",
        [
            "text",
            hed_issue(),
            WrappedHedError("outer", [hed_issue()]),
            WrappedHedError("no inner"),
            FileIssue(hed_issue(), "/x.tsv"),
            {"msg": 1, "line": 2.5},
            None,
            3.14,
            Unprintable(),
        ],
    )
    def test_every_field_is_a_string(self, value):
        data = format_issue(value).to_dict()
        assert tuple(data) == FIELDS
        assert all(isinstance(data[key], str) for key in FIELDS)


class TestFormatIssues:
    """Test list formatting and severity partitioning."""

    def test_preserves_order(self):
        issues = format_issues(["first", hed_issue(), "third"])
        assert [i.message for i in issues] == ["first", "'Blah' is not a valid tag", "third"]

    def test_none_and_empty(self):
        assert format_issues(None) == []
        assert format_issues([]) == []

    def test_partition_is_stable(self):
        issues = [
            FormattedIssue(severity="warning", message="w1"),
            FormattedIssue(severity="error", message="e1"),
            FormattedIssue(severity="Error", message="other"),
            FormattedIssue(severity="error", message="e2"),
            FormattedIssue(severity="", message="w2"),
        ]
        errors, others = separate_issues_by_severity(issues)

        assert [i.message for i in errors] == ["e1", "e2"]
        assert [i.message for i in others] == ["w1", "other", "w2"]
        assert len(errors) + len(others) == len(issues)
