"""Result records shared by the tool handlers and both transports.

Every validation tool answers with the same shape: a list of error issues and
a list of warning issues, each issue flattened into a :class:`FormattedIssue`
whose fields are all strings. The records are plain dataclasses so they can be
returned from handlers, asserted on in tests and serialized to JSON by the
MCP and REST layers without framework involvement.

Typical construction::

        from hed_mcp_server.models import FormattedIssue, HedValidationResult

        issue = FormattedIssue(
                code="TAG_INVALID",
                detailedCode="invalidTag",
                severity="error",
                message="'InvalidTag' is not a valid tag",
        )
        result = HedValidationResult(errors=[issue])
        payload = result.to_dict()   # {"errors": [...], "warnings": []}

Design notes:
        * Field names use the wire spelling (``detailedCode``) so ``to_dict`` is a
            straight copy and no alias table is needed.
        * ``None`` is never stored; unknown values are empty strings.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class FormattedIssue:
    """A single validation issue in normalized, transport-ready form.

    Attributes:
        code: HED error code (e.g. ``TAG_INVALID``) or a tool error code such as
            ``FILE_READ_ERROR``.
        detailedCode: Finer grained sub-code (e.g. ``fileNotFound``).
        severity: ``error`` or ``warning`` for validator issues; other strings
            pass through from loosely shaped records.
        message: Human-readable description.
        column: Sidecar key or column name, when known.
        line: Row or line number as text, when known.
        location: File path or name the issue belongs to.
    """

    code: str = ""
    detailedCode: str = ""
    severity: str = ""
    message: str = ""
    column: str = ""
    line: str = ""
    location: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def to_dict(self) -> Dict[str, str]:
        """Return the issue with exactly the seven camelCase wire keys."""
        return asdict(self)


@dataclass
class HedValidationResult:
    """Outcome of ``validateHedString``, ``validateHedTsv`` or ``validateHedSidecar``."""

    errors: List[FormattedIssue] = field(default_factory=list)
    warnings: List[FormattedIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


@dataclass
class ParseSidecarResult(HedValidationResult):
    """Sidecar validation outcome plus the re-serialized sidecar text.

    Attributes:
        parsedHedSidecar: JSON text of the sidecar as loaded, or ``""`` when it
            could not be parsed or validated.
    """

    parsedHedSidecar: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["parsedHedSidecar"] = self.parsedHedSidecar
        return data
