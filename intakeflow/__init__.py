"""intakeflow - progress and unlock engine for a guided-intake dashboard."""

__version__ = "0.1.0"
