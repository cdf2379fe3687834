"""Boundary around the ``hedtools`` validation library.

Every call into ``hed`` goes through this module so the rest of the package
(schema cache, definition assembly, tool handlers) depends on a small,
patchable surface instead of the library's object model. The functions
mirror the operations the tool handlers need:

    * :func:`load_schemas` -- build a schema (or schema group) from a
      comma-separated version specifier.
    * :func:`parse_definition_string` -- parse one ``(Definition/...)`` string
      into a single-entry :class:`~hed.models.DefinitionDict`.
    * :func:`new_definition_manager` / :func:`add_definitions` -- batch
      registration into the dictionary handed to the validators.
    * :func:`validate_hed_string` -- standalone string validation with issues
      already split into errors and warnings.
    * :class:`SidecarFile` / :class:`TsvFile` -- file-shaped validators whose
      ``validate`` returns the mixed (unsplit) issue list.

Issues produced by ``hedtools`` are plain dictionaries carrying ``code``,
``message``, an integer ``severity`` and ``ec_*`` context keys.
"""

from __future__ import annotations

import io
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from hed.errors.error_types import ErrorContext, ErrorSeverity
from hed.errors.exceptions import HedFileError
from hed.models import DefinitionDict, HedString, Sidecar, TabularInput
from hed.schema import HedSchema, HedSchemaGroup, load_schema_version
from hed.validator import HedValidator

logger = logging.getLogger(__name__)

HedSchemas = Union[HedSchema, HedSchemaGroup]
Issue = Dict[str, Any]

__all__ = [
    "ErrorContext",
    "ErrorSeverity",
    "HedFileError",
    "HedSchemas",
    "SidecarFile",
    "TsvFile",
    "add_definitions",
    "load_schemas",
    "new_definition_manager",
    "parse_definition_string",
    "split_issues",
    "validate_hed_string",
]


def load_schemas(hed_version: str) -> HedSchemas:
    """Load the HED schema(s) named by ``hed_version``.

    Args:
        hed_version: A single version (``"8.4.0"``) or a comma-separated list
            of a standard version plus library schemas, each optionally
            namespace-prefixed (``"8.4.0, sc:score_2.0.0"``).

    Returns:
        A :class:`HedSchema` for a single version, otherwise a
        :class:`HedSchemaGroup`.

    Raises:
        ValueError: If the specifier is empty.
        HedFileError: If ``hedtools`` cannot resolve or parse a version.
    """
    if not isinstance(hed_version, str) or not hed_version.strip():
        raise ValueError("HED schema version must be a non-empty string")

    versions = [part.strip() for part in hed_version.split(",") if part.strip()]
    logger.debug(f"Resolving HED schema versions {versions}")
    if len(versions) == 1:
        return load_schema_version(versions[0])
    return load_schema_version(versions)


def split_issues(issues: Iterable[Issue]) -> Tuple[List[Issue], List[Issue]]:
    """Split ``hedtools`` issues into ``(errors, warnings)`` by severity.

    Issues without a severity are treated as errors.
    """
    errors: List[Issue] = []
    warnings: List[Issue] = []
    for issue in issues:
        severity = issue.get("severity", ErrorSeverity.ERROR)
        if severity == ErrorSeverity.ERROR:
            errors.append(issue)
        else:
            warnings.append(issue)
    return errors, warnings


def _definition_missing_issue(definition_string: str) -> Issue:
    return {
        "code": "DEFINITION_INVALID",
        "sub_code": "definitionMissing",
        "severity": ErrorSeverity.ERROR,
        "message": f'"{definition_string}" does not contain a Definition tag group.',
    }


def parse_definition_string(
    definition_string: str, hed_schemas: HedSchemas
) -> Tuple[Optional[DefinitionDict], List[Any], List[Any]]:
    """Parse a single definition string.

    The string is validated with definitions allowed and placeholders
    permitted, then scanned for ``Definition/`` groups.

    Returns:
        ``(definition, errors, warnings)`` where ``definition`` is a
        single-entry :class:`DefinitionDict`, or ``None`` when the string
        produced any error.
    """
    try:
        hed_string = HedString(definition_string, hed_schemas)
    except (ValueError, HedFileError) as e:
        return None, [e], []

    validator = HedValidator(hed_schemas, definitions_allowed=True)
    issues = list(validator.validate(hed_string, allow_placeholders=True))

    definition = DefinitionDict()
    issues += definition.check_for_definitions(hed_string)
    errors, warnings = split_issues(issues)

    if not errors and not definition.defs:
        errors.append(_definition_missing_issue(definition_string))
    if errors:
        return None, errors, warnings
    return definition, errors, warnings


def new_definition_manager() -> DefinitionDict:
    """Return an empty definition dictionary for one validation call."""
    return DefinitionDict()


def add_definitions(
    manager: DefinitionDict, definitions: Iterable[DefinitionDict]
) -> List[Issue]:
    """Register parsed definitions into ``manager`` in one batch.

    Returns:
        Only the issues raised by this registration (e.g. duplicate names).
    """
    already_reported = len(manager.issues)
    manager.add_definitions(list(definitions))
    return list(manager.issues[already_reported:])


def validate_hed_string(
    hed_string: str,
    hed_schemas: HedSchemas,
    definition_manager: Optional[DefinitionDict] = None,
) -> Tuple[HedString, List[Issue], List[Issue]]:
    """Validate a standalone HED string.

    Returns:
        ``(parsed_string, errors, warnings)``.
    """
    parsed = HedString(hed_string, hed_schemas, def_dict=definition_manager)
    validator = HedValidator(hed_schemas, def_dicts=definition_manager)
    issues = validator.validate(parsed, allow_placeholders=False)
    errors, warnings = split_issues(issues)
    return parsed, errors, warnings


class SidecarFile:
    """A BIDS JSON sidecar ready for HED validation.

    Attributes:
        name: File name used as issue context.
        path: Caller-supplied path (may be virtual).
        json_object: The decoded sidecar content.
    """

    def __init__(self, name: str, path: str, json_object: Mapping[str, Any]):
        self.name = name
        self.path = path
        self.json_object = json_object
        # Sidecar only loads from paths or file-like objects.
        self.sidecar = Sidecar(files=io.StringIO(json.dumps(json_object)), name=name)

    def validate(
        self,
        hed_schemas: HedSchemas,
        definition_manager: Optional[DefinitionDict] = None,
    ) -> List[Issue]:
        """Validate every HED annotation in the sidecar (errors and warnings mixed)."""
        return self.sidecar.validate(
            hed_schemas, extra_def_dicts=definition_manager, name=self.name
        )


def _header_columns(tsv_text: str) -> List[str]:
    header = tsv_text.splitlines()[0] if tsv_text else ""
    return [column.strip() for column in header.split("\t") if column.strip()]


def _has_hed_data(columns: List[str], sidecar_json: Optional[Mapping[str, Any]]) -> bool:
    if any(column.lower() == "hed" for column in columns):
        return True
    if not sidecar_json:
        return False
    return any(
        isinstance(sidecar_json.get(column), Mapping) and "HED" in sidecar_json[column]
        for column in columns
    )


class TsvFile:
    """A BIDS tabular (TSV) file with an optional sidecar.

    ``has_hed_data`` is computed from the header row: it is true when the
    file has a ``HED`` column or the sidecar annotates one of its columns.
    """

    def __init__(
        self,
        name: str,
        path: str,
        tsv_text: str,
        sidecar_json: Optional[Mapping[str, Any]] = None,
        definition_manager: Optional[DefinitionDict] = None,
    ):
        self.name = name
        self.path = path
        self.tsv_text = tsv_text
        self.definition_manager = definition_manager
        self.columns = _header_columns(tsv_text)
        self.sidecar = (
            SidecarFile(f"{name}.json", path, sidecar_json) if sidecar_json else None
        )
        self.has_hed_data = _has_hed_data(self.columns, sidecar_json)

    def validate(self, hed_schemas: HedSchemas) -> List[Issue]:
        """Validate the HED annotations of every row (errors and warnings mixed)."""
        tabular = TabularInput(
            io.StringIO(self.tsv_text),
            sidecar=self.sidecar.sidecar if self.sidecar else None,
            name=self.name,
        )
        return tabular.validate(
            hed_schemas, extra_def_dicts=self.definition_manager, name=self.name
        )
