"""
Variable substitution for node fields.

Strings reference session variables with Jinja2 syntax ({{ booking_class }},
{{ profile.email }}). Rendering runs in a sandbox and unknown references
render empty. A string that is exactly one reference keeps the variable's
original type, so JSON bodies can carry numbers and objects.
"""

import re
from functools import lru_cache
from typing import Any, Dict

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from ..exceptions import NodeExecutionError

_SINGLE_REFERENCE = re.compile(r"^\s*\{\{\s*([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)\s*\}\}\s*$")

_MISSING = object()


@lru_cache(maxsize=1)
def _get_environment() -> SandboxedEnvironment:
    return SandboxedEnvironment(autoescape=False, keep_trailing_newline=True)


@lru_cache(maxsize=512)
def _compile(text: str):
    return _get_environment().from_string(text)


def render_text(text: str, variables: Dict[str, Any]) -> str:
    if "{" not in text:
        return text
    try:
        return _compile(text).render(**variables)
    except TemplateError as e:
        raise NodeExecutionError(f"Cannot render {text!r}: {e}", error_type="template_error")
    except Exception as e:
        # Expressions inside templates can fail at render time (e.g. str + int).
        raise NodeExecutionError(
            f"Cannot render {text!r}: {type(e).__name__}: {e}", error_type="template_error"
        ) from e


def render_value(value: Any, variables: Dict[str, Any]) -> Any:
    """Renders every string leaf of a JSON-like value."""
    if isinstance(value, str):
        match = _SINGLE_REFERENCE.match(value)
        if match:
            resolved = _resolve(match.group(1), variables)
            if resolved is not _MISSING:
                return resolved
        return render_text(value, variables)
    if isinstance(value, dict):
        return {key: render_value(item, variables) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, variables) for item in value]
    return value


def _resolve(path: str, variables: Dict[str, Any]) -> Any:
    value: Any = variables
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value
