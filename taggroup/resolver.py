"""Placeholder substitution for prompt templates.

Templates reference inputs with ``{{name}}`` placeholders. Two flavours of
substitution are provided:

* :func:`resolve` is lenient. Unknown names are left in place so a partially
  filled form can be previewed.
* :func:`interpolate` is strict. It honours the template's variable
  definitions (required flags, defaults, types) and reports every problem
  instead of producing a half-resolved prompt.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, Field

from .carryover import extract_carry_over_variables
from .contracts import PromptTemplate

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


class InterpolationResult(BaseModel):
    """Outcome of a strict template interpolation."""

    resolved_prompt: str
    errors: List[str] = Field(default_factory=list)
    missing_variables: List[str] = Field(default_factory=list)
    used_variables: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def stringify(value: Any, type_: str = "string") -> str:
    """Convert an input value to the text inserted into a prompt."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if type_ in ("json", "array", "object") or isinstance(value, (dict, list)):
        return value if isinstance(value, str) else json.dumps(value, indent=2)
    if type_ == "url":
        text = str(value)
        if not text.startswith(("http://", "https://", "data:")):
            logger.warning(f"URL variable may be invalid: {text}")
        return text
    return str(value)


def resolve(template_text: str, inputs: Mapping[str, Any]) -> str:
    """Substitute every known placeholder, leaving unknown ones untouched."""

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in inputs:
            return match.group(0)
        return stringify(inputs[name])

    return PLACEHOLDER_PATTERN.sub(_replace, template_text)


def extract_variable_names(template_text: str) -> List[str]:
    """Return placeholder names in order of first appearance."""
    names: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template_text):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def validate_template(template: PromptTemplate) -> List[str]:
    """List placeholders that the template uses but does not declare."""
    declared = set(template.variable_names())
    return [
        f"Variable '{name}' used in template but not defined"
        for name in extract_variable_names(template.template_text)
        if name not in declared
    ]


def interpolate(
    template: PromptTemplate, inputs: Mapping[str, Any]
) -> InterpolationResult:
    """Resolve ``template`` against ``inputs`` using its variable definitions."""
    missing = [
        definition.name
        for definition in template.variable_defs
        if definition.required
        and definition.name not in inputs
        and definition.default_value is None
    ]
    if missing:
        return InterpolationResult(
            resolved_prompt=template.template_text,
            errors=[f"Required variable '{name}' is missing" for name in missing],
            missing_variables=missing,
        )

    placeholders = set(extract_variable_names(template.template_text))
    values: Dict[str, str] = {}
    used: List[str] = []
    for definition in template.variable_defs:
        if definition.name not in placeholders:
            continue
        raw = inputs.get(definition.name, definition.default_value)
        values[definition.name] = stringify(raw, definition.type)
        used.append(definition.name)
        logger.debug(
            f"Resolved variable '{definition.name}' of type '{definition.type}'"
        )

    resolved = resolve(template.template_text, values)
    errors = [
        f"Variable '{name}' found in template but not defined"
        for name in extract_variable_names(resolved)
    ]
    return InterpolationResult(
        resolved_prompt=resolved, errors=errors, used_variables=used
    )


__all__ = [
    "InterpolationResult",
    "PLACEHOLDER_PATTERN",
    "extract_carry_over_variables",
    "extract_variable_names",
    "interpolate",
    "resolve",
    "stringify",
    "validate_template",
]
