"""Core type definitions for the formflow engine.

This module defines the fundamental types shared by every formflow component:
- ValidationMode: When validation runs relative to the submit history
- PolicyState: Whether the form has seen a submit attempt yet
- SubmissionState: Lifecycle states of a single submission
- TransformMode: The usage context a model transform is applied for
- EventType: Event types emitted on the form event stream
- FieldErrorCode: Error codes for individual field failures
- ValidationState: The error/validating pair exposed to renderers

Enums derive from ``str`` so configuration can be given as plain strings and
serialized without extra conversion.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ValidationMode(str, Enum):
    """Validation timing modes.

    All modes validate on an explicit ``validate()`` call and as the final
    gate inside ``submit()``; they differ only in what a field change does.
    """
    ON_CHANGE = "onChange"
    ON_CHANGE_AFTER_SUBMIT = "onChangeAfterSubmit"
    ON_SUBMIT = "onSubmit"


class PolicyState(str, Enum):
    """States of the validation policy."""
    NEVER_SUBMITTED = "never_submitted"
    SUBMITTED = "submitted"


class SubmissionState(str, Enum):
    """Submission lifecycle states.

    SUCCEEDED and FAILED are transient: the controller always returns to IDLE
    once the outcome has been reported.
    """
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransformMode(str, Enum):
    """Contexts in which the model is transformed before use."""
    FORM = "form"
    SUBMIT = "submit"
    VALIDATE = "validate"


class EventType(str, Enum):
    """Event types for the form event stream."""
    FIELD_CHANGED = "field.changed"
    VALIDATION_STARTED = "validation.started"
    VALIDATION_PASSED = "validation.passed"
    VALIDATION_FAILED = "validation.failed"
    VALIDATION_DISCARDED = "validation.discarded"
    SUBMISSION_STARTED = "submission.started"
    SUBMISSION_SUCCEEDED = "submission.succeeded"
    SUBMISSION_FAILED = "submission.failed"
    AUTOSAVE_SCHEDULED = "autosave.scheduled"
    FORM_RESET = "form.reset"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures.

    Produced by the JSON Schema adapter in ``formflow.validation``.
    """
    REQUIRED = "required"
    INVALID_TYPE = "invalid_type"
    INVALID_FORMAT = "invalid_format"
    INVALID_VALUE = "invalid_value"
    TOO_LONG = "too_long"
    TOO_SHORT = "too_short"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ValidationState:
    """Validation status of a form as seen by the render layer.

    Attributes:
        error: Opaque validator error, or None when the model is valid
        validating: True while an asynchronous validation is in flight

    Examples:
        >>> state = ValidationState()
        >>> state.error is None, state.validating
        (True, False)
    """
    error: Optional[Any] = None
    validating: bool = False

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        error = self.error
        if hasattr(error, "to_dict"):
            error = error.to_dict()
        elif isinstance(error, BaseException):
            error = str(error)
        return {"error": error, "validating": self.validating}


__all__ = [
    "ValidationMode",
    "PolicyState",
    "SubmissionState",
    "TransformMode",
    "EventType",
    "FieldErrorCode",
    "ValidationState",
]
