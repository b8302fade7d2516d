"""Exceptions raised by the dashboard workflow."""


class WorkflowError(Exception):
    """Base class for all dashboard workflow errors."""


class NotFoundError(WorkflowError, LookupError):
    """Dashboard, module or section does not exist."""


class StoreUnavailableError(WorkflowError):
    """The document store failed to read or write."""


class ConcurrentUpdateError(WorkflowError):
    """A conditional write lost against a newer revision of the document."""


class InvalidTransitionError(WorkflowError, ValueError):
    """A section or module was asked to make an illegal status transition."""


class SequenceError(WorkflowError):
    """The sequencing policy rejected an out-of-order section action."""


class TemplateError(WorkflowError):
    """The dashboard template is missing or invalid."""
