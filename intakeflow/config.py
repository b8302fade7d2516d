"""
Runtime configuration for intakeflow.

Settings come from environment variables; a `.env` file in the working
directory is loaded first (python-dotenv), without overriding variables
that are already set.

    INTAKEFLOW_DB_PATH              sqlite store path
    INTAKEFLOW_TEMPLATE             dashboard template name
    INTAKEFLOW_TEMPLATES_DIR        directory holding <template>.yaml
    INTAKEFLOW_SEQUENCE_POLICY      permissive | unlocked_only | strict
    INTAKEFLOW_MAX_WRITE_ATTEMPTS   attempts per operation on write conflicts
    INTAKEFLOW_LOG_LEVEL            logging level for scripts
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from intakeflow.schemas import SequencePolicy


DEFAULT_DB_PATH = Path.home() / ".intakeflow" / "dashboards.db"


class WorkflowSettings(BaseModel):
    db_path: Path = DEFAULT_DB_PATH
    template: str = "dashboard"
    templates_dir: Optional[Path] = None  # None = packaged templates
    sequence_policy: SequencePolicy = SequencePolicy.PERMISSIVE
    max_write_attempts: int = Field(default=3, ge=1)
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def log_level_known(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f'Unknown log level: {v}')
        return level


ENV_VARS = {
    "db_path": "INTAKEFLOW_DB_PATH",
    "template": "INTAKEFLOW_TEMPLATE",
    "templates_dir": "INTAKEFLOW_TEMPLATES_DIR",
    "sequence_policy": "INTAKEFLOW_SEQUENCE_POLICY",
    "max_write_attempts": "INTAKEFLOW_MAX_WRITE_ATTEMPTS",
    "log_level": "INTAKEFLOW_LOG_LEVEL",
}


def load_settings(env_file: Optional[Path] = None, **overrides) -> WorkflowSettings:
    """
    Build settings from the environment.

    Args:
        env_file: Optional .env path (default: search from the working directory)
        **overrides: Explicit values that win over the environment

    Raises:
        ValueError: If a value does not validate
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))

    values = {}
    for field_name, env_var in ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            values[field_name] = value
    values.update({k: v for k, v in overrides.items() if v is not None})

    return WorkflowSettings(**values)
