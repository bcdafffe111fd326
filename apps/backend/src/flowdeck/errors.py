"""Error types shared by the workflow stores, lifecycle helpers and the API."""

from __future__ import annotations


class FlowdeckError(Exception):
    """Base error. ``error_type`` is a short machine-readable code."""

    error_type: str = "error"

    def __init__(self, message: str, error_type: str | None = None):
        if error_type is not None:
            self.error_type = error_type
        super().__init__(message)


class InvalidIdError(FlowdeckError):
    """A workflow, run or team id does not match the id grammar."""

    error_type = "invalid_id"


class InvalidPathError(FlowdeckError):
    """A relative file name would escape the team workspace."""

    error_type = "invalid_path"


class WorkflowValidationError(FlowdeckError):
    """A workflow definition has structural errors."""

    error_type = "validation_failed"

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("workflow has validation errors: " + "; ".join(self.errors))


class RunStateError(FlowdeckError):
    """A run record violates the run invariants or cannot take a transition."""

    error_type = "invalid_run_state"


class NotFoundError(FlowdeckError):
    error_type = "not_found"


class WorkflowNotFoundError(NotFoundError):
    pass


class RunNotFoundError(NotFoundError):
    pass


class TemplateNotFoundError(NotFoundError):
    pass


class ConflictError(FlowdeckError):
    """The stored file changed since the caller read it."""

    error_type = "conflict"


class CorruptRecordError(FlowdeckError):
    """A stored file exists but cannot be decoded into its model."""

    error_type = "corrupt_record"


class BadRequestError(FlowdeckError):
    """A request is missing a required field or carries a malformed payload."""

    error_type = "bad_request"
