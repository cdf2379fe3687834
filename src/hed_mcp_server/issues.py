"""Normalization of heterogeneous validation issues.

Issues reach the tool handlers in several shapes: bare strings raised by our
own code, exceptions (``HedFileError`` and friends), ``hedtools`` issue
dictionaries, :class:`FileIssue` wrappers that attach file context to a
``hedtools`` issue, loosely shaped records coming from other callers, and the
occasional oddity (``None``, numbers). Each value is first classified into an
:class:`IssueKind` and then mapped by the formatter for that kind into a
:class:`~hed_mcp_server.models.FormattedIssue`.

Example::

        from hed_mcp_server.issues import format_issues, separate_issues_by_severity

        formatted = format_issues(["boom", {"code": "TAG_INVALID", "message": "x", "severity": 1}])
        errors, warnings = separate_issues_by_severity(formatted)
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from .models import FormattedIssue

INTERNAL_ERROR = "INTERNAL_ERROR"
BIDS_HED_CODE = "BIDS_HED_CODE"

# Integer severities used by hedtools (ErrorSeverity.ERROR / WARNING).
_SEVERITY_NAMES = {1: "error", 10: "warning"}

# hedtools error-context keys
_ROW_KEYS = ("ec_row", "ec_line")
_COLUMN_KEYS = ("ec_sidecarColumnName", "ec_column")
_LOCATION_KEYS = ("ec_filename",)


class IssueKind(enum.Enum):
    """Shapes an issue can take before normalization."""

    TEXT = "text"
    EXCEPTION = "exception"
    HED_ISSUE = "hed_issue"
    FILE_ISSUE = "file_issue"
    RECORD = "record"
    UNKNOWN = "unknown"


@dataclass
class FileIssue:
    """A validator issue together with the file it was found in.

    Attributes:
        issue: The wrapped ``hedtools`` issue (dictionary or exception).
        file_path: Path of the validated file; becomes the issue location.
        line: Optional line override.
        severity: Optional severity override (``"error"`` / ``"warning"``).
        message: Optional message override.
        code: Optional code override.
    """

    issue: Any
    file_path: str = ""
    line: Any = None
    severity: Optional[str] = None
    message: Optional[str] = None
    code: Optional[str] = None


def _is_hed_issue(value: Any) -> bool:
    if not isinstance(value, Mapping) or "code" not in value:
        return False
    severity = value.get("severity")
    return isinstance(severity, int) and not isinstance(severity, bool)


def classify_issue(issue: Any) -> IssueKind:
    """Return the :class:`IssueKind` describing ``issue``'s shape."""
    if isinstance(issue, str):
        return IssueKind.TEXT
    if isinstance(issue, FileIssue):
        return IssueKind.FILE_ISSUE
    if isinstance(issue, BaseException):
        return IssueKind.EXCEPTION
    if _is_hed_issue(issue):
        return IssueKind.HED_ISSUE
    if isinstance(issue, Mapping):
        return IssueKind.RECORD
    return IssueKind.UNKNOWN


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _first(mapping: Mapping, keys: Iterable[str], default: Any = "") -> Any:
    """Return the first truthy value among ``keys``."""
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return default


def _severity_name(severity: Any) -> str:
    if isinstance(severity, int) and not isinstance(severity, bool):
        return _SEVERITY_NAMES.get(severity, str(severity))
    return _text(severity)


def _format_text(message: str) -> FormattedIssue:
    return FormattedIssue(
        code=INTERNAL_ERROR,
        detailedCode=INTERNAL_ERROR,
        severity="error",
        message=message,
    )


def _inner_issue(exc: BaseException) -> Any:
    issues = getattr(exc, "issues", None)
    if isinstance(issues, (list, tuple)) and issues and _is_hed_issue(issues[0]):
        return issues[0]
    return None


def _format_exception(exc: BaseException) -> FormattedIssue:
    inner = _inner_issue(exc)
    if inner is not None:
        return _format_hed_issue(inner)
    message = getattr(exc, "message", None) or str(exc) or "Unknown error"
    return _format_text(_text(message))


def _format_hed_issue(issue: Mapping) -> FormattedIssue:
    code = _text(issue.get("code"))
    return FormattedIssue(
        code=code,
        detailedCode=_text(issue.get("sub_code") or code),
        severity=_severity_name(issue.get("severity", 1)),
        message=_text(issue.get("message")),
        column=_text(_first(issue, _COLUMN_KEYS)),
        line=_text(_first(issue, _ROW_KEYS)),
        location=_text(_first(issue, _LOCATION_KEYS)),
    )


def _format_file_issue(wrapper: FileIssue) -> FormattedIssue:
    inner = wrapper.issue
    if isinstance(inner, BaseException):
        inner = _inner_issue(inner) or {"message": getattr(inner, "message", None) or str(inner)}
    if not isinstance(inner, Mapping):
        inner = {"message": _text(inner)}

    code = wrapper.code or inner.get("code") or BIDS_HED_CODE
    severity = wrapper.severity or _severity_name(inner.get("severity", 1))
    return FormattedIssue(
        code=_text(code),
        detailedCode=_text(inner.get("sub_code") or inner.get("code") or ""),
        severity=severity,
        message=_text(wrapper.message or inner.get("message")),
        column=_text(_first(inner, _COLUMN_KEYS)),
        line=_text(wrapper.line or _first(inner, _ROW_KEYS)),
        location=_text(wrapper.file_path or _first(inner, _LOCATION_KEYS)),
    )


def _format_record(record: Mapping) -> FormattedIssue:
    code = _first(record, ("type", "code"), INTERNAL_ERROR)
    return FormattedIssue(
        code=_text(code).upper(),
        detailedCode=_text(_first(record, ("subCode", "internalCode"))),
        severity=_text(_first(record, ("level", "severity"), "error")),
        message=_text(
            _first(record, ("message", "msg", "description", "issueMessage"), "Unknown error")
        ),
        column=_text(_first(record, ("column", "columnNumber", "sidecarKey"))),
        line=_text(_first(record, ("line", "tsvLine", "lineNumber"))),
        location=_text(_first(record, ("filePath",))),
    )


def _format_unknown(issue: Any) -> FormattedIssue:
    try:
        return _format_text(str(issue))
    except Exception as e:
        return _format_text("UNKNOWN: " + _text(getattr(e, "message", None) or e))


_FORMATTERS = {
    IssueKind.TEXT: _format_text,
    IssueKind.EXCEPTION: _format_exception,
    IssueKind.HED_ISSUE: _format_hed_issue,
    IssueKind.FILE_ISSUE: _format_file_issue,
    IssueKind.RECORD: _format_record,
    IssueKind.UNKNOWN: _format_unknown,
}


def format_issue(issue: Any) -> FormattedIssue:
    """Normalize one issue of any supported shape.

    Args:
        issue: A string, exception, ``hedtools`` issue dict, :class:`FileIssue`,
            loosely shaped mapping or any other value.

    Returns:
        FormattedIssue: Always populated; never raises.
    """
    kind = classify_issue(issue)
    try:
        return _FORMATTERS[kind](issue)
    except Exception as e:
        # A malformed issue must never take the whole result down.
        return _format_unknown(f"{kind.value} issue could not be formatted: {e}")


def format_issues(issues: Optional[Iterable[Any]]) -> List[FormattedIssue]:
    """Normalize a sequence of issues, preserving order."""
    if not issues:
        return []
    return [format_issue(issue) for issue in issues]


def separate_issues_by_severity(
    issues: Iterable[FormattedIssue],
) -> Tuple[List[FormattedIssue], List[FormattedIssue]]:
    """Stable partition into ``(errors, others)``.

    Only severity exactly ``"error"`` counts as an error.
    """
    errors: List[FormattedIssue] = []
    others: List[FormattedIssue] = []
    for issue in issues:
        (errors if issue.severity == "error" else others).append(issue)
    return errors, others
