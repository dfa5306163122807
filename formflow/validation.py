"""Validation for formflow models.

Three pieces live here:

- ``SchemaValidator``: a JSON Schema (Draft 7) adapter built on ``jsonschema``
  that translates schema violations into ``ValidationErrors``.
- ``Validator``: wraps any opaque schema object and exposes the synchronous
  ``validate`` path plus the ``validate_async`` hook path.
- ``ValidationTracker``: owns the form's ``ValidationState`` and discards
  results of validations that were superseded by a newer request.
"""

import inspect
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import jsonschema
from jsonschema import Draft7Validator
from typing_extensions import Protocol, runtime_checkable

from formflow.errors import FieldError, ValidationErrors
from formflow.types import FieldErrorCode, ValidationState

logger = logging.getLogger(__name__)

Model = Dict[str, Any]

OnValidate = Callable[[Model, Optional[Any]], Union[Optional[Any], Awaitable[Optional[Any]]]]
"""Async validation hook: ``(model, prior_error) -> error | None``.

May be a plain function, a function returning an awaitable, or a coroutine
function. ``prior_error`` is the result of the synchronous schema pass.
"""


@runtime_checkable
class SchemaLike(Protocol):
    """Anything with a ``validate(model, **options)`` method."""

    def validate(self, model: Model, **options: Any) -> Optional[Any]:
        ...


class SchemaValidator:
    """JSON Schema validation adapter.

    Wraps the jsonschema library and translates validation errors into
    ``FieldError`` entries with dot-paths, error codes and readable messages.
    Returns None for a valid model so it can be used directly as a form
    schema.

    Attributes:
        schema: The JSON Schema definition to validate against
        validator: The underlying jsonschema validator instance

    Examples:
        >>> schema = {
        ...     'type': 'object',
        ...     'properties': {
        ...         'name': {'type': 'string'},
        ...         'age': {'type': 'number', 'minimum': 0}
        ...     },
        ...     'required': ['name']
        ... }
        >>> validator = SchemaValidator(schema)
        >>> validator.validate({'name': 'Alice', 'age': 30}) is None
        True
        >>> errors = validator.validate({'age': -5})
        >>> sorted(errors.paths)
        ['age', 'name']
    """

    def __init__(self, schema: Dict[str, Any], format_checker: Optional[Any] = None) -> None:
        """Initialize the adapter with a JSON Schema.

        Args:
            schema: A JSON Schema definition (Draft 7 or compatible)
            format_checker: Optional jsonschema FormatChecker enabling
                ``format`` assertions

        Raises:
            jsonschema.SchemaError: If the provided schema is invalid
        """
        self.schema = schema
        Draft7Validator.check_schema(schema)
        self.validator = Draft7Validator(schema, format_checker=format_checker)

    def validate(self, model: Model, **options: Any) -> Optional[ValidationErrors]:
        """Validate ``model`` against the schema.

        Args:
            model: The model to validate
            **options: ``message`` overrides the summary message

        Returns:
            None when valid, otherwise ``ValidationErrors``
        """
        errors = sorted(self.validator.iter_errors(model), key=lambda e: [str(p) for p in e.path])
        if not errors:
            return None
        return ValidationErrors(
            fields=tuple(self._translate_error(error) for error in errors),
            message=options.get("message", "Validation failed"),
        )

    def _translate_error(self, error: jsonschema.ValidationError) -> FieldError:
        """Translate a jsonschema ValidationError to a FieldError.

        Error mapping:
            - 'required' property errors -> REQUIRED
            - 'type' errors -> INVALID_TYPE
            - 'format' and 'pattern' errors -> INVALID_FORMAT
            - 'enum', 'const' and numeric bound errors -> INVALID_VALUE
            - 'minLength' / 'maxLength' errors -> TOO_SHORT / TOO_LONG
            - Anything else -> CUSTOM
        """
        path = ".".join(str(p) for p in error.path)

        if error.validator == "required":
            missing = error.message.split("'")[1] if "'" in error.message else "field"
            full_path = f"{path}.{missing}" if path else missing
            return FieldError(
                path=full_path,
                code=FieldErrorCode.REQUIRED,
                message=f"Field '{full_path}' is required",
                expected="required field",
            )

        if error.validator == "type":
            received_type = type(error.instance).__name__
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_TYPE,
                message=f"Field '{path}' must be of type {error.validator_value}, got {received_type}",
                expected=error.validator_value,
                received=received_type,
            )

        if error.validator in ("format", "pattern"):
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_FORMAT,
                message=f"Field '{path}' does not match {error.validator} {error.validator_value!r}",
                expected=error.validator_value,
                received=error.instance,
            )

        if error.validator in ("enum", "const"):
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_VALUE,
                message=f"Field '{path}' must be one of: {error.validator_value}",
                expected=error.validator_value,
                received=error.instance,
            )

        if error.validator in ("minLength", "maxLength"):
            limit = error.validator_value
            actual = len(error.instance) if error.instance else 0
            too_short = error.validator == "minLength"
            bound = "minimum" if too_short else "maximum"
            return FieldError(
                path=path,
                code=FieldErrorCode.TOO_SHORT if too_short else FieldErrorCode.TOO_LONG,
                message=f"Field '{path}' length {actual} violates {bound} length {limit}",
                expected=f"{bound} {limit} characters",
                received=f"{actual} characters",
            )

        if error.validator in ("minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum"):
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_VALUE,
                message=f"Field '{path}' violates {error.validator} constraint: {error.validator_value}",
                expected=f"{error.validator}: {error.validator_value}",
                received=error.instance,
            )

        return FieldError(
            path=path,
            code=FieldErrorCode.CUSTOM,
            message=f"Field '{path}' validation failed: {error.message}",
            expected=error.validator_value,
            received=error.instance,
        )


class Validator:
    """Wraps an opaque schema with a sync and an async validation path.

    ``schema`` may be a JSON Schema dict (wrapped in ``SchemaValidator``), an
    object with a ``validate(model, **options)`` method, or a plain callable
    ``(model, **options)``. ``options`` are forwarded unmodified on every call.

    Exceptions raised by the schema or the ``on_validate`` hook are treated as
    the validation error rather than propagated.

    Examples:
        >>> validator = Validator(lambda model: None if model.get("ok") else "not ok")
        >>> validator.validate({"ok": True}) is None
        True
        >>> validator.validate({})
        'not ok'
    """

    def __init__(
        self,
        schema: Optional[Any] = None,
        options: Optional[Dict[str, Any]] = None,
        on_validate: Optional[OnValidate] = None,
    ) -> None:
        if isinstance(schema, dict):
            schema = SchemaValidator(schema)
        if schema is not None and not isinstance(schema, SchemaLike) and not callable(schema):
            raise TypeError(
                f"Schema must be a JSON Schema dict, an object with validate(), "
                f"or a callable, got {type(schema).__name__}"
            )
        self.schema = schema
        self.options: Dict[str, Any] = dict(options or {})
        self.on_validate = on_validate

    @property
    def is_async(self) -> bool:
        """True when an ``on_validate`` hook takes part in validation."""
        return self.on_validate is not None

    def validate(self, model: Model) -> Optional[Any]:
        """Run the synchronous schema validation."""
        if self.schema is None:
            return None
        try:
            if isinstance(self.schema, SchemaLike):
                return self.schema.validate(model, **self.options)
            return self.schema(model, **self.options)
        except Exception as exc:
            logger.debug("Schema raised %r; treating it as the validation error", exc)
            return exc

    async def validate_async(self, model: Model, prior_error: Optional[Any]) -> Optional[Any]:
        """Run the ``on_validate`` hook.

        Args:
            model: The model being validated
            prior_error: Result of the synchronous pass, so the hook can
                short-circuit (e.g. skip a remote check when already erroring)

        Returns:
            The hook's error, or ``prior_error`` when no hook is configured.
            An awaitable that never resolves keeps the caller waiting; no
            timeout is applied.
        """
        if self.on_validate is None:
            return prior_error
        try:
            result = self.on_validate(model, prior_error)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.debug("on_validate hook raised %r; treating it as the validation error", exc)
            return exc
        return result


class ValidationTracker:
    """Owns a form's ``ValidationState`` and orders validation results.

    Every ``start()`` issues a new token. ``resolve()`` only applies a result
    whose token is the most recently issued one, so a slow response can never
    overwrite the result of a request issued after it. ``clear()`` invalidates
    every outstanding token.

    Examples:
        >>> tracker = ValidationTracker()
        >>> first = tracker.start()
        >>> second = tracker.start()
        >>> tracker.resolve(second, None)
        True
        >>> tracker.resolve(first, "stale")
        False
        >>> tracker.state.error is None
        True
    """

    def __init__(self) -> None:
        self._generation = 0
        self._state = ValidationState()

    @property
    def state(self) -> ValidationState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> int:
        """Mark a validation as in flight and return its token."""
        self._generation += 1
        self._state = replace(self._state, validating=True)
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def resolve(self, token: int, error: Optional[Any]) -> bool:
        """Apply ``error`` if ``token`` is still current.

        Returns:
            True if the result was applied, False if it was discarded
        """
        if not self.is_current(token):
            logger.debug("Discarding stale validation result (token %d, current %d)", token, self._generation)
            return False
        self._state = ValidationState(error=error, validating=False)
        return True

    def clear(self) -> None:
        """Empty the state and invalidate all in-flight validations."""
        self._generation += 1
        self._state = ValidationState()


__all__ = [
    "OnValidate",
    "SchemaLike",
    "SchemaValidator",
    "Validator",
    "ValidationTracker",
]
