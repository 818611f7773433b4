"""
Variable Store

Typed access to a session's variable map. Values are validated against the
declared VariableFormat before they are bound; values for undeclared
variables are stored as given.
"""

import json
from typing import Any, Dict, Iterable, Optional

from ..domain.models import VariableDeclaration, VariableFormat
from ..exceptions import FormatError
from ..state.models import SessionState


_TRUE_WORDS = {"true", "yes", "y", "1"}
_FALSE_WORDS = {"false", "no", "n", "0"}


def validate(value: Any, fmt: VariableFormat) -> Any:
    """
    Checks `value` against `fmt` and returns it unchanged.
    Raises FormatError when it does not conform.
    """
    if fmt.type == "string":
        if not isinstance(value, str):
            raise FormatError("type_mismatch", f"Expected string, got {type(value).__name__}")
    elif fmt.type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FormatError("type_mismatch", f"Expected number, got {type(value).__name__}")
    elif fmt.type == "boolean":
        if not isinstance(value, bool):
            raise FormatError("type_mismatch", f"Expected boolean, got {type(value).__name__}")
    elif fmt.type == "list":
        if not isinstance(value, str) or value not in (fmt.options or []):
            raise FormatError("invalid_option", f"{value!r} is not one of {fmt.options}")
    elif fmt.type == "object":
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise FormatError("not_serializable", str(e))
    return value


def parse(raw: Any, fmt: VariableFormat) -> Any:
    """
    Coerces raw extraction output to the declared type, then validates it.

    `raw` is usually a JSON-encoded string coming from the model; strings
    that are not valid JSON are taken literally.
    """
    value = raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except ValueError:
            value = raw

    if fmt.type == "string" and not isinstance(value, str) and value is not None:
        if isinstance(value, (dict, list)):
            raise FormatError("type_mismatch", "Expected string, got a JSON document")
        value = raw if isinstance(raw, str) else json.dumps(value)
    elif fmt.type == "number" and isinstance(value, str):
        value = _parse_number(value)
    elif fmt.type == "boolean" and isinstance(value, str):
        value = _parse_boolean(value)
    elif fmt.type == "boolean" and type(value) is int and value in (0, 1):
        value = bool(value)
    elif fmt.type == "list" and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)

    if value is None:
        raise FormatError("unparseable", "No value extracted")
    return validate(value, fmt)


def _parse_number(text: str) -> Any:
    cleaned = text.strip().replace(",", "")
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        return float(cleaned)
    except ValueError:
        raise FormatError("type_mismatch", f"{text!r} is not a number")


def _parse_boolean(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise FormatError("type_mismatch", f"{text!r} is not a boolean")


class VariableStore:
    """
    Declaration-aware view over variable maps.

    The store itself holds no values: it reads and writes the `variables`
    map of whatever session (or pending delta) it is handed.
    """

    def __init__(self, declarations: Iterable[VariableDeclaration] = ()):
        self.declarations: Dict[str, VariableDeclaration] = {
            d.variable_id: d for d in declarations
        }

    def declaration(self, variable_id: str) -> Optional[VariableDeclaration]:
        return self.declarations.get(variable_id)

    def get(self, session: SessionState, variable_id: str) -> Optional[Any]:
        return session.variables.get(variable_id)

    def set(self, session: SessionState, variable_id: str, value: Any):
        self.bind(session.variables, variable_id, value)

    def bind(self, variables: Dict[str, Any], variable_id: str, value: Any):
        """Validates against the declaration (if any) and writes into `variables`."""
        declaration = self.declarations.get(variable_id)
        if declaration:
            value = validate(value, declaration.format)
        variables[variable_id] = value

    def validate(self, value: Any, fmt: VariableFormat) -> Any:
        return validate(value, fmt)

    def parse(self, variable_id: str, raw: Any) -> Any:
        """Parses raw extracted output for a declared variable."""
        declaration = self.declarations.get(variable_id)
        if declaration is None:
            raise FormatError("undeclared", f"Variable '{variable_id}' is not declared")
        return parse(raw, declaration.format)

    def extractable_for(self, node_id: str) -> list[VariableDeclaration]:
        return [d for d in self.declarations.values() if d.applies_to(node_id)]
