"""
Variable Layer - Typed Session Variables

Validation and parsing of variable values against their declared formats.
"""

from stateflow.variables.store import VariableStore, parse, validate

__all__ = [
    "VariableStore",
    "parse",
    "validate",
]
