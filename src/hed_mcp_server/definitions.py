"""Assembly of caller-supplied definition strings into a definition manager.

Validation tools accept a list of definition strings such as
``"(Definition/MyColor, (Red))"``. Before the validator runs, every string
is parsed against the loaded schema and, only if all of them parse cleanly,
registered in a fresh ``DefinitionDict`` for that single call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from . import hed_library
from .issues import format_issues
from .models import FormattedIssue

logger = logging.getLogger(__name__)


@dataclass
class ConvertDefinitionsResult:
    """Raw outcome of parsing definition strings.

    Attributes:
        definitions: Single-entry definition dictionaries, input order.
        errors: Unformatted error issues, input order.
        warnings: Unformatted warning issues, input order.
    """

    definitions: List[Any] = field(default_factory=list)
    errors: List[Any] = field(default_factory=list)
    warnings: List[Any] = field(default_factory=list)


@dataclass
class DefinitionManagerResult:
    """Definition manager ready for validation plus formatted issues.

    ``manager`` is None only when no definition strings were supplied.
    """

    manager: Optional[Any] = None
    errors: List[FormattedIssue] = field(default_factory=list)
    warnings: List[FormattedIssue] = field(default_factory=list)


def convert_definitions(
    definition_strings: Sequence[str], hed_schemas: Any
) -> ConvertDefinitionsResult:
    """Parse each definition string independently.

    Strings that fail contribute their issues but no definition; the rest of
    the list is still processed.
    """
    result = ConvertDefinitionsResult()
    for definition_string in definition_strings:
        definition, errors, warnings = hed_library.parse_definition_string(
            definition_string, hed_schemas
        )
        result.errors.extend(errors)
        result.warnings.extend(warnings)
        if definition is not None:
            result.definitions.append(definition)
    return result


def create_definition_manager(
    definition_strings: Optional[Sequence[str]], hed_schemas: Any
) -> DefinitionManagerResult:
    """Build the definition manager for one validation call.

    Args:
        definition_strings: Definition strings; empty or None means "no
            definitions" and short-circuits without touching the schema.
        hed_schemas: Loaded schema handle.

    Returns:
        DefinitionManagerResult: If any error occurred the manager holds no
        definitions; callers must check ``errors`` before validating.
    """
    if not definition_strings:
        return DefinitionManagerResult()

    manager = hed_library.new_definition_manager()
    converted = convert_definitions(definition_strings, hed_schemas)

    if converted.definitions and not converted.errors:
        added = hed_library.add_definitions(manager, converted.definitions)
        added_errors, added_warnings = hed_library.split_issues(added)
        converted.errors.extend(added_errors)
        converted.warnings.extend(added_warnings)
        if added_errors:
            # Registration is not transactional; hand back an empty manager.
            manager = hed_library.new_definition_manager()

    if converted.errors:
        logger.info(
            f"{len(converted.errors)} error(s) in {len(definition_strings)} definition(s)"
        )

    return DefinitionManagerResult(
        manager=manager,
        errors=format_issues(converted.errors),
        warnings=format_issues(converted.warnings),
    )
