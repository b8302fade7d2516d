"""intakeflow utilities."""

from .template_loader import load_template, validate_template, get_available_templates

__all__ = [
    "load_template",
    "validate_template",
    "get_available_templates",
]
