"""formflow: form state, validation and submission engine.

formflow manages one form's lifecycle:
- A copy-on-write model addressed by dot-paths
- Validation timing policies (onChange, onChangeAfterSubmit, onSubmit)
- Synchronous schema validation plus an optional async validation hook,
  with stale results discarded
- Context-specific model transforms (form, submit, validate)
- Debounced autosave and serialized submissions
- Behavior layering through an ordered chain of change interceptors

Rendering, schema formats and network transport stay outside: the form reads
an opaque validator and awaits an opaque submit operation.

Basic usage:
    >>> from formflow import FormController
    >>> form = FormController(model={"name": ""}, validate="onChange",
    ...                       schema=lambda model: None if model["name"] else "name required")
    >>> form.change("name", "Ada")
    >>> dict(form.model)
    {'name': 'Ada'}
    >>> form.error is None
    True
"""

__version__ = "0.1.0"
__author__ = "formflow developers"

VERSION = (0, 1, 0)

from formflow.config import AutosaveConfig, FormConfig
from formflow.dispatch import ChangeDispatcher, alias, coerce, compose, derive, read_only
from formflow.errors import (
    AlreadySubmitting,
    FieldError,
    FormError,
    SubmissionFailure,
    TransformError,
    ValidationErrors,
    ValidationFailure,
)
from formflow.form import FormContext, FormController
from formflow.types import SubmissionState, TransformMode, ValidationMode, ValidationState

__all__ = [
    "__version__",
    "VERSION",
    "FormController",
    "FormContext",
    "FormConfig",
    "AutosaveConfig",
    "ChangeDispatcher",
    "compose",
    "read_only",
    "alias",
    "derive",
    "coerce",
    "FormError",
    "ValidationFailure",
    "TransformError",
    "SubmissionFailure",
    "AlreadySubmitting",
    "FieldError",
    "ValidationErrors",
    "ValidationMode",
    "SubmissionState",
    "TransformMode",
    "ValidationState",
]
