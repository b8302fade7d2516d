"""
Template loader utility for intakeflow.

Loads YAML dashboard templates from the templates/ directory.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from intakeflow.schemas import DashboardDocument
from intakeflow.errors import TemplateError


# Default templates directory (inside the package)
TEMPLATES_DIR = Path(__file__).parent.parent / "templates"


def load_template(name: str, templates_dir: Path | None = None) -> dict[str, Any]:
    """
    Load a dashboard template by name.

    Args:
        name: Template name without .yaml extension (e.g., "dashboard")
        templates_dir: Optional custom templates directory

    Returns:
        The `dashboard` mapping of the template: modules and progressTracking
        in persisted (camelCase) shape, without userId or timestamps

    Raises:
        TemplateError: If the file is missing, unparsable or invalid
    """
    dir_path = templates_dir or TEMPLATES_DIR
    file_path = Path(dir_path) / f"{name}.yaml"

    if not file_path.exists():
        raise TemplateError(f"Dashboard template not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise TemplateError(f"Invalid YAML in {file_path}: {e}") from e

    if not isinstance(content, dict) or not isinstance(content.get("dashboard"), dict):
        raise TemplateError(f"Template {file_path} has no 'dashboard' mapping")

    template = content["dashboard"]
    validate_template(template)
    return template


def validate_template(template: dict[str, Any]) -> DashboardDocument:
    """
    Check that a template builds a valid dashboard document.

    Raises:
        TemplateError: If the template does not parse or has no modules
    """
    try:
        document = DashboardDocument.model_validate({
            **template,
            "userId": "template",
            "createdAt": "1970-01-01T00:00:00Z",
            "lastUpdatedAt": "1970-01-01T00:00:00Z",
        })
    except ValidationError as e:
        raise TemplateError(f"Invalid dashboard template: {e}") from e

    if not document.modules:
        raise TemplateError("Dashboard template has no modules")
    return document


def get_available_templates(templates_dir: Path | None = None) -> list[str]:
    """
    List all available dashboard templates.

    Args:
        templates_dir: Optional custom templates directory

    Returns:
        List of template names (without .yaml extension)
    """
    dir_path = Path(templates_dir or TEMPLATES_DIR)
    if not dir_path.exists():
        return []
    return sorted(p.stem for p in dir_path.glob("*.yaml"))
