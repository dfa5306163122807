"""Structured error types for the formflow engine.

Two kinds of things live here:

- Error *values*: ``FieldError`` and ``ValidationErrors`` are frozen dataclasses
  produced by the JSON Schema adapter and stored in the form's
  ``ValidationState``. They are data, not exceptions.
- The exception taxonomy: ``ValidationFailure``, ``TransformError``,
  ``SubmissionFailure`` and ``AlreadySubmitting``, all rooted at ``FormError``.

Validation and submission failures never escape ``change()``, ``validate()``
or ``submit()``; they are handed to ``on_submit_failure`` as exception
instances. ``TransformError`` is the one that propagates to the caller, since
it signals a bug in the integration layer rather than bad input data.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from formflow.types import FieldErrorCode, TransformMode


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error details.

    Attributes:
        path: Dot-notation field path (e.g., "contact.email")
        code: Specific validation error code
        message: Human-readable error description
        expected: Optional - what was expected (type, format, enum values, etc.)
        received: Optional - what was actually received

    Examples:
        >>> err = FieldError(
        ...     path="email",
        ...     code=FieldErrorCode.INVALID_FORMAT,
        ...     message="Invalid email format",
        ... )
        >>> err.to_dict()["code"]
        'invalid_format'
    """
    path: str
    code: FieldErrorCode
    message: str
    expected: Optional[Any] = None
    received: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "path": self.path,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }
        if self.expected is not None:
            result["expected"] = self.expected
        if self.received is not None:
            result["received"] = self.received
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data["code"]
        if isinstance(code, str):
            code = FieldErrorCode(code)
        return cls(
            path=data["path"],
            code=code,
            message=data["message"],
            expected=data.get("expected"),
            received=data.get("received"),
        )


@dataclass(frozen=True)
class ValidationErrors:
    """A whole-model validation error made of one or more field errors.

    This is the error value produced by ``SchemaValidator``. Custom validators
    may return any other object; the engine treats error values as opaque.

    Examples:
        >>> errors = ValidationErrors(fields=(
        ...     FieldError(path="name", code=FieldErrorCode.REQUIRED, message="required"),
        ... ))
        >>> errors.paths
        ['name']
        >>> len(errors.for_path("name"))
        1
    """
    fields: Tuple[FieldError, ...]
    message: str = "Validation failed"

    def __iter__(self) -> Iterator[FieldError]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def paths(self) -> List[str]:
        """Field paths with at least one error, in first-seen order."""
        seen: List[str] = []
        for error in self.fields:
            if error.path not in seen:
                seen.append(error.path)
        return seen

    def for_path(self, path: str) -> List[FieldError]:
        """Errors for ``path`` and any of its nested fields."""
        prefix = f"{path}."
        return [e for e in self.fields if e.path == path or e.path.startswith(prefix)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "message": self.message,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationErrors":
        """Create ValidationErrors from dict."""
        return cls(
            fields=tuple(FieldError.from_dict(f) for f in data.get("fields", [])),
            message=data.get("message", "Validation failed"),
        )


class FormError(Exception):
    """Base class for all formflow exceptions."""


class ValidationFailure(FormError):
    """The validator rejected the model.

    Recoverable. Surfaced through ``ValidationState`` and passed to
    ``on_submit_failure`` when it blocks a submission.

    Attributes:
        error: The opaque error value returned by the validator
    """

    def __init__(self, error: Any):
        self.error = error
        super().__init__(f"Model failed validation: {error}")


class TransformError(FormError):
    """A user-supplied model transform raised.

    Fatal to the operation that invoked the transform; nothing is committed.
    The original exception is available as ``cause`` and ``__cause__``.

    Attributes:
        mode: The transform mode that was being applied
        cause: The exception raised by the transform
    """

    def __init__(self, mode: TransformMode, cause: BaseException):
        self.mode = mode
        self.cause = cause
        super().__init__(f"Model transform failed in '{mode.value}' mode: {cause!r}")


class SubmissionFailure(FormError):
    """The external submit operation rejected the model.

    Recoverable. Passed to ``on_submit_failure``; model and errors are left
    unchanged.

    Attributes:
        reason: The exception (or value) the submit operation failed with
    """

    def __init__(self, reason: Any):
        self.reason = reason
        super().__init__(f"Submission failed: {reason!r}")


class AlreadySubmitting(FormError):
    """A non-waiting submit was attempted while another one is active."""

    def __init__(self, message: str = "A submission is already in progress"):
        super().__init__(message)


__all__ = [
    "FieldError",
    "ValidationErrors",
    "FormError",
    "ValidationFailure",
    "TransformError",
    "SubmissionFailure",
    "AlreadySubmitting",
]
