"""
Template variable helpers: aliasing, validation, substitution, placeholder detection.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

# Legacy variable names still found in older templates -> canonical name
VARIABLE_ALIASES = {
    "founder_first_name": "founder_name",
    "vc_name": "juror_name",
    "vc_count": "juror_count",
    "evaluation_summary": "feedback_summary",
    "vc_feedback": "vc_feedback_sections",
}

PLACEHOLDER_RE = re.compile(r"\{\{[^}]+\}\}")
_VAR_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


@dataclass
class VariableCheck:
    missing: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.missing


def normalize_variables(variables: dict[str, Any] | None) -> dict[str, Any]:
    """Copy variables, filling canonical names from their legacy aliases (and vice versa)."""
    out = dict(variables or {})
    for legacy, canonical in VARIABLE_ALIASES.items():
        if legacy in out and canonical not in out:
            out[canonical] = out[legacy]
        elif canonical in out and legacy not in out:
            out[legacy] = out[canonical]
    return out


def validate_template_variables(required: list[str] | None, variables: dict[str, Any]) -> VariableCheck:
    """None is missing; an empty string is allowed but flagged."""
    check = VariableCheck()
    for name in required or []:
        key = name if name in variables else VARIABLE_ALIASES.get(name, name)
        value = variables.get(key)
        if value is None:
            check.missing.append(name)
        elif isinstance(value, str) and value.strip() == "":
            check.warnings.append(f"Variable '{name}' is empty")
    return check


def render_template_string(template: str, variables: dict[str, Any]) -> str:
    def _sub(m: re.Match) -> str:
        name = m.group(1)
        if name not in variables or variables[name] is None:
            return m.group(0)
        return str(variables[name])

    return _VAR_RE.sub(_sub, template or "")


def detect_unreplaced_placeholders(text: str) -> list[str]:
    return PLACEHOLDER_RE.findall(text or "")
