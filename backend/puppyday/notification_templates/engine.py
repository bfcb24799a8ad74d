"""``{{variable}}`` template rendering, validation and SMS length accounting."""

import html
import math
import re
from typing import Any

from ..notifications.errors import ValidationReport

PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")

SMS_SINGLE_SEGMENT_LENGTH = 160
SMS_MULTI_SEGMENT_LENGTH = 153

# Filler length for a variable that declares neither max_length nor example_value
DEFAULT_VARIABLE_LENGTH = 50


def _lookup(data: dict, path: str) -> Any:
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render(template: str | None, data: dict, business: dict | None = None, escape_html: bool = False) -> str:
    """Substitute ``{{name}}`` and ``{{a.b}}`` placeholders from ``data``.

    ``business`` is exposed as ``{{business.*}}``. Placeholders with no value
    are left verbatim. With ``escape_html`` the substituted values (not the
    template itself) are HTML-escaped.
    """
    if not template:
        return ""
    context = dict(data or {})
    if business is not None:
        context["business"] = business

    def _replace(match: re.Match) -> str:
        value = _lookup(context, match.group(1).strip())
        if value is None:
            return match.group(0)
        text = _to_text(value)
        return html.escape(text) if escape_html else text

    return PLACEHOLDER_RE.sub(_replace, template)


def extract_variables(template: str | None) -> list[str]:
    """Distinct placeholder paths in order of first appearance."""
    seen: list[str] = []
    for match in PLACEHOLDER_RE.finditer(template or ""):
        path = match.group(1).strip()
        if path not in seen:
            seen.append(path)
    return seen


def _mentions(paths: list[str], name: str) -> bool:
    return any(p == name or p.startswith(f"{name}.") for p in paths)


def validate(
    channel: str,
    variables: list[dict],
    subject_template: str | None = None,
    html_template: str | None = None,
    text_template: str | None = None,
    sms_template: str | None = None,
) -> ValidationReport:
    """Check a template's fields before a save.

    Errors block the save; warnings are informational.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if channel == "email":
        if not (subject_template or "").strip():
            errors.append("Email templates require a subject")
        bodies = [subject_template, html_template, text_template]
        if not (html_template or "").strip() and not (text_template or "").strip():
            warnings.append("Email template has no HTML or text body")
    elif channel == "sms":
        if not (sms_template or "").strip():
            errors.append("SMS templates require a message body")
        bodies = [sms_template]
    else:
        return ValidationReport(valid=False, errors=[f"Unknown channel '{channel}'"])

    used = extract_variables(" ".join(b for b in bodies if b))
    declared = {v.get("name") for v in variables or []}

    for var in variables or []:
        if var.get("required") and not _mentions(used, var.get("name", "")):
            errors.append(f"Required variable '{var.get('name')}' is missing from template")

    for path in used:
        if path.startswith("business."):
            continue
        if path.split(".")[0] not in declared:
            warnings.append(f"Variable '{path}' is not defined in template variables list")

    if channel == "sms" and sms_template:
        length = calculate_character_count(sms_template, variables)
        if length > SMS_SINGLE_SEGMENT_LENGTH:
            warnings.append(
                f"Message may reach {length} characters ({calculate_segment_count(length)} SMS segments)"
            )

    return ValidationReport(valid=not errors, errors=errors, warnings=warnings)


def _filler_length(var: dict | None) -> int:
    if var:
        if var.get("max_length"):
            return int(var["max_length"])
        if var.get("example_value"):
            return len(str(var["example_value"]))
    return DEFAULT_VARIABLE_LENGTH


def calculate_character_count(content: str | None, variables: list[dict] | None = None) -> int:
    """Worst-case length of ``content`` once its variables are filled in.

    Each placeholder is replaced by filler as long as the variable's
    ``max_length``, else its example value, else 50 characters.
    """
    if not content:
        return 0
    by_name = {v.get("name"): v for v in variables or []}

    def _fill(match: re.Match) -> str:
        name = match.group(1).strip().split(".")[0]
        return "x" * _filler_length(by_name.get(name))

    return len(PLACEHOLDER_RE.sub(_fill, content))


def calculate_segment_count(text_or_length: str | int) -> int:
    """SMS segments for a body: one up to 160 chars, then 153-char parts."""
    length = text_or_length if isinstance(text_or_length, int) else len(text_or_length)
    if length <= 0:
        return 0
    if length <= SMS_SINGLE_SEGMENT_LENGTH:
        return 1
    return math.ceil(length / SMS_MULTI_SEGMENT_LENGTH)
