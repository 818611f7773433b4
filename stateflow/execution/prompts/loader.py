"""
Prompt template loader.

Prompts the engine writes itself (as opposed to node prompts supplied in
requests) live as .jinja2 files next to this module. They are rendered
with StrictUndefined: a missing context value is a programming error,
not something to paper over with an empty string.
"""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .templates import Template

TEMPLATES_DIR = Path(__file__).parent / "templates"


def _check_templates_exist():
    """Every Template constant must map to a file. Runs once at import."""
    names = [value for key, value in vars(Template).items() if not key.startswith("_")]
    missing = [name for name in names if not (TEMPLATES_DIR / f"{name}.jinja2").is_file()]
    if missing:
        raise FileNotFoundError(f"Prompt templates missing from {TEMPLATES_DIR}: {missing}")


_check_templates_exist()


@lru_cache(maxsize=1)
def _get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render(template_name: str, **context) -> str:
    """
    Renders the prompt `template_name` (a Template constant).
    Surrounding whitespace is stripped.
    """
    template = _get_environment().get_template(f"{template_name}.jinja2")
    return template.render(**context).strip()
