"""HED validation tools exposed over MCP and REST.

Each validation handler is an async function taking a validated argument
model and returning a result record. Handlers never raise: schema
resolution, definition processing, content acquisition and unexpected
failures all end in a returned result carrying one or more
:class:`~hed_mcp_server.models.FormattedIssue` errors.

Tools:

    validateHedString   Validate a string of HED tags.
    validateHedTsv      Validate a BIDS TSV file, optionally with a JSON sidecar.
    validateHedSidecar  Validate a BIDS JSON sidecar.
    parseHedSidecar     Validate a sidecar and return its parsed JSON text.
    getFileFromPath     Return the text of a local file.

Argument models double as the MCP ``inputSchema``: the JSON schema is
generated from the pydantic model using the camelCase aliases callers send.

Example::

    from hed_mcp_server.tools import ValidateHedStringArgs, handle_validate_hed_string

    args = ValidateHedStringArgs(hedString="Red, Blue", hedVersion="8.4.0")
    result = await handle_validate_hed_string(args)
    result.to_dict()  # {"errors": [], "warnings": []}
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from . import hed_library
from .cache import HedSchemaCache, get_schema_cache
from .definitions import create_definition_manager
from .file_reader import FileReaderError, read_file_from_path
from .issues import FileIssue, format_issue, format_issues, separate_issues_by_severity
from .models import FormattedIssue, HedValidationResult, ParseSidecarResult

logger = logging.getLogger(__name__)

VERSION_DESCRIPTION = (
    "The HED schema version to use (e.g., 8.4.0 or 8.4.0, sc:score_2.0.0)"
)


class ToolArgs(BaseModel):
    """Base for tool argument models: accepts camelCase aliases or field names."""

    model_config = ConfigDict(populate_by_name=True)


class ValidateHedStringArgs(ToolArgs):
    hed_string: str = Field(..., alias="hedString", description="The HED string to validate")
    hed_version: str = Field(..., alias="hedVersion", description=VERSION_DESCRIPTION)
    check_for_warnings: bool = Field(
        False,
        alias="checkForWarnings",
        description="Whether to check for warnings in addition to errors",
    )
    definitions: Optional[List[str]] = Field(
        None, description="Array of definition strings to use during validation"
    )


class ValidateHedTsvArgs(ToolArgs):
    file_path: str = Field(
        ..., alias="filePath", description="The absolute path to the TSV file to validate"
    )
    hed_version: str = Field(..., alias="hedVersion", description=VERSION_DESCRIPTION)
    check_for_warnings: bool = Field(
        False,
        alias="checkForWarnings",
        description="Whether to check for warnings in addition to errors",
    )
    file_data: Optional[str] = Field(
        None,
        alias="fileData",
        description="Optional TSV text to use instead of reading from filePath",
    )
    json_data: Optional[str] = Field(
        None, alias="jsonData", description="Optional JSON sidecar text for the TSV file"
    )
    definitions: Optional[List[str]] = Field(
        None, description="Array of definition strings to use during validation"
    )


class ValidateHedSidecarArgs(ToolArgs):
    file_path: str = Field(
        ..., alias="filePath", description="The absolute path to the sidecar file to validate"
    )
    hed_version: str = Field(..., alias="hedVersion", description=VERSION_DESCRIPTION)
    check_for_warnings: bool = Field(
        False,
        alias="checkForWarnings",
        description="Whether to check for warnings in addition to errors",
    )
    file_data: Optional[Union[str, Dict[str, Any]]] = Field(
        None,
        alias="fileData",
        description="Optional sidecar JSON (text or object) to use instead of reading from filePath",
    )


class GetFileFromPathArgs(ToolArgs):
    file_path: str = Field(
        ..., alias="filePath", description="The absolute path to the file to read"
    )


# ---------------- Result helpers -----------------
def _error(
    code: str, detailed_code: str, message: str, location: str = ""
) -> FormattedIssue:
    return FormattedIssue(
        code=code,
        detailedCode=detailed_code,
        severity="error",
        message=message,
        location=location,
    )


def _finish(
    errors: List[FormattedIssue],
    warnings: List[FormattedIssue],
    check_for_warnings: bool,
) -> HedValidationResult:
    return HedValidationResult(
        errors=list(errors), warnings=list(warnings) if check_for_warnings else []
    )


def _exception_message(e: BaseException) -> str:
    return str(getattr(e, "message", None) or e) or type(e).__name__


def file_name_from_path(file_path: str, default: str) -> str:
    """Return the last path component, splitting on both ``/`` and ``\\``."""
    return re.split(r"[/\\]", file_path or "")[-1] or default


async def _load_schema(
    cache: HedSchemaCache, hed_version: str
) -> Tuple[Any, Optional[HedValidationResult]]:
    try:
        return await cache.get_or_create(hed_version), None
    except Exception as e:
        failure = _error(
            "VALIDATION_ERROR",
            "schemaLoadFailed",
            f"Failed to load HED schema version {hed_version}: {_exception_message(e)}",
        )
        return None, HedValidationResult(errors=[failure])


async def _read_content(
    file_data: Any, file_path: str
) -> Tuple[Any, Optional[HedValidationResult]]:
    """Inline data wins; otherwise read ``file_path``."""
    if file_data is not None and file_data != "":
        return file_data, None
    try:
        return await read_file_from_path(file_path), None
    except FileReaderError as e:
        failure = _error("FILE_READ_ERROR", e.detailed_code, e.message, file_path)
        return None, HedValidationResult(errors=[failure])


def _parse_json(
    data: Any, file_path: str
) -> Tuple[Optional[Dict[str, Any]], Optional[HedValidationResult]]:
    if isinstance(data, dict):
        return data, None
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError) as e:
        failure = _error(
            "JSON_PARSE_ERROR", "invalidJson", f"Failed to parse JSON: {e}", file_path
        )
        return None, HedValidationResult(errors=[failure])
    if not isinstance(parsed, dict):
        failure = _error(
            "JSON_PARSE_ERROR",
            "invalidJson",
            f"Sidecar JSON must be an object, got {type(parsed).__name__}",
            file_path,
        )
        return None, HedValidationResult(errors=[failure])
    return parsed, None


def _file_issues(
    issues: List[Any], file_path: str
) -> Tuple[List[FormattedIssue], List[FormattedIssue]]:
    formatted = format_issues([FileIssue(issue, file_path) for issue in issues])
    return separate_issues_by_severity(formatted)


# ---------------- Handlers -----------------
async def handle_validate_hed_string(
    args: ValidateHedStringArgs, cache: Optional[HedSchemaCache] = None
) -> HedValidationResult:
    """Validate a HED string, optionally with caller-supplied definitions."""
    cache = cache or get_schema_cache()
    try:
        hed_schemas, failure = await _load_schema(cache, args.hed_version)
        if failure:
            return failure

        definitions = create_definition_manager(args.definitions, hed_schemas)
        if definitions.errors:
            return _finish(definitions.errors, definitions.warnings, args.check_for_warnings)

        _, errors, warnings = hed_library.validate_hed_string(
            args.hed_string, hed_schemas, definitions.manager
        )
        return _finish(
            format_issues(errors),
            definitions.warnings + format_issues(warnings),
            args.check_for_warnings,
        )
    except Exception as e:
        logger.exception("HED string validation failed")
        return HedValidationResult(errors=[format_issue(e)])


async def handle_validate_hed_tsv(
    args: ValidateHedTsvArgs, cache: Optional[HedSchemaCache] = None
) -> HedValidationResult:
    """Validate a TSV file's HED annotations.

    Validation is skipped (empty result) when neither the TSV nor its sidecar
    carries HED data.
    """
    cache = cache or get_schema_cache()
    try:
        hed_schemas, failure = await _load_schema(cache, args.hed_version)
        if failure:
            return failure

        definitions = create_definition_manager(args.definitions, hed_schemas)
        if definitions.errors:
            return _finish(definitions.errors, definitions.warnings, args.check_for_warnings)

        tsv_text, failure = await _read_content(args.file_data, args.file_path)
        if failure:
            return failure

        sidecar_json = None
        if args.json_data:
            sidecar_json, failure = _parse_json(args.json_data, args.file_path)
            if failure:
                return failure

        tsv_file = hed_library.TsvFile(
            file_name_from_path(args.file_path, "data.tsv"),
            args.file_path,
            tsv_text,
            sidecar_json,
            definitions.manager,
        )
        if not tsv_file.has_hed_data:
            logger.debug(f"No HED data in {args.file_path}; skipping validation")
            return HedValidationResult()

        errors, warnings = _file_issues(tsv_file.validate(hed_schemas), args.file_path)
        return _finish(errors, definitions.warnings + warnings, args.check_for_warnings)
    except Exception as e:
        logger.exception("HED TSV validation failed")
        failure = _error(
            "INTERNAL_ERROR",
            "unexpectedErrorDuringValidation",
            f"Validation failed: {_exception_message(e)}",
        )
        return HedValidationResult(errors=[failure])


async def _validate_sidecar(
    args: ValidateHedSidecarArgs, cache: HedSchemaCache
) -> Tuple[HedValidationResult, Optional[Dict[str, Any]]]:
    hed_schemas, failure = await _load_schema(cache, args.hed_version)
    if failure:
        return failure, None

    data, failure = await _read_content(args.file_data, args.file_path)
    if failure:
        return failure, None

    json_object, failure = _parse_json(data, args.file_path)
    if failure:
        return failure, None

    sidecar = hed_library.SidecarFile(
        file_name_from_path(args.file_path, "sidecar.json"), args.file_path, json_object
    )
    errors, warnings = _file_issues(sidecar.validate(hed_schemas), args.file_path)
    return _finish(errors, warnings, args.check_for_warnings), json_object


async def handle_validate_hed_sidecar(
    args: ValidateHedSidecarArgs, cache: Optional[HedSchemaCache] = None
) -> HedValidationResult:
    """Validate a BIDS JSON sidecar."""
    try:
        result, _ = await _validate_sidecar(args, cache or get_schema_cache())
        return result
    except Exception as e:
        logger.exception("HED sidecar validation failed")
        return HedValidationResult(errors=[format_issue(e)])


async def handle_parse_hed_sidecar(
    args: ValidateHedSidecarArgs, cache: Optional[HedSchemaCache] = None
) -> ParseSidecarResult:
    """Validate a sidecar and return its JSON re-serialization alongside the issues."""
    try:
        result, json_object = await _validate_sidecar(args, cache or get_schema_cache())
    except Exception as e:
        logger.exception("HED sidecar parsing failed")
        return ParseSidecarResult(errors=[format_issue(e)])

    parsed = json.dumps(json_object) if json_object is not None else ""
    return ParseSidecarResult(
        errors=result.errors, warnings=result.warnings, parsedHedSidecar=parsed
    )


async def handle_get_file_from_path(
    args: GetFileFromPathArgs, cache: Optional[HedSchemaCache] = None
) -> str:
    """Return the file's text.

    Raises:
        FileReaderError: Propagated for the transport to report.
    """
    return await read_file_from_path(args.file_path)


# ---------------- Registry -----------------
@dataclass(frozen=True)
class ToolSpec:
    """Registry entry binding a tool name to its argument model and handler."""

    name: str
    description: str
    arguments: Type[ToolArgs]
    handler: Callable[..., Awaitable[Any]]

    def input_schema(self) -> Dict[str, Any]:
        """JSON schema of the arguments, keyed by the camelCase aliases."""
        schema = self.arguments.model_json_schema(by_alias=True)
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return schema


TOOLS: Dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "validateHedString",
            "Validates a string of HED tags using the specified HED schema version and definitions",
            ValidateHedStringArgs,
            handle_validate_hed_string,
        ),
        ToolSpec(
            "validateHedTsv",
            "Validates a HED TSV file using the specified HED schema version",
            ValidateHedTsvArgs,
            handle_validate_hed_tsv,
        ),
        ToolSpec(
            "validateHedSidecar",
            "Validates a HED sidecar file using the specified HED schema version",
            ValidateHedSidecarArgs,
            handle_validate_hed_sidecar,
        ),
        ToolSpec(
            "parseHedSidecar",
            "Parses a HED sidecar file using the specified HED schema version",
            ValidateHedSidecarArgs,
            handle_parse_hed_sidecar,
        ),
        ToolSpec(
            "getFileFromPath",
            "Retrieves a file from the local file system given its absolute path",
            GetFileFromPathArgs,
            handle_get_file_from_path,
        ),
    )
}
