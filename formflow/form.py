"""FormController, the composition root of a formflow form.

A form owns its model, validation state and submission state for its whole
lifetime. The sanctioned mutation surface is four methods:

- ``change(key, value)``: route a field edit through the behavior chain
- ``reset()``: restore the initial model and clear all derived state
- ``submit()``: run the submit pipeline (queued behind any active submit)
- ``validate()``: validate now, whatever the validation mode

Usage:
    >>> import asyncio
    >>> from formflow.form import FormController
    >>> schema = {
    ...     "type": "object",
    ...     "properties": {"name": {"type": "string", "minLength": 1}},
    ...     "required": ["name"],
    ... }
    >>> form = FormController(schema=schema, validate="onChange")
    >>> form.change("name", "Ada")
    >>> form.error is None
    True
    >>> result = asyncio.run(form.submit())
    >>> result.succeeded
    True
"""

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from formflow.autosave import AutosaveScheduler
from formflow.config import FormConfig
from formflow.dispatch import BehaviorFactory, ChangeDispatcher
from formflow.errors import FieldError, ValidationErrors
from formflow.events import EventEmitter, FormEvent
from formflow.model import ModelStore
from formflow.policy import ValidationPolicy
from formflow.submission import SubmissionController, SubmissionResult, SubmitOperation
from formflow.transform import ModelTransformer
from formflow.types import (
    EventType,
    PolicyState,
    SubmissionState,
    TransformMode,
    ValidationMode,
    ValidationState,
)
from formflow.validation import ValidationTracker, Validator

logger = logging.getLogger(__name__)

Model = Dict[str, Any]


@dataclass(frozen=True)
class FormContext:
    """Read-only snapshot of a form handed to the render layer.

    ``model`` has the ``form`` transform applied.
    """
    form_id: str
    model: Model
    error: Optional[Any]
    validating: bool
    submitting: bool
    submitted: bool
    changed: bool
    changed_keys: Tuple[str, ...]
    read_only: bool

    def field_errors(self, path: str) -> List[FieldError]:
        """Errors for one field, when the error is a ``ValidationErrors``."""
        if isinstance(self.error, ValidationErrors):
            return self.error.for_path(path)
        return []


def _describe_error(error: Any) -> Any:
    if hasattr(error, "to_dict"):
        return error.to_dict()
    return repr(error)


SUBMISSION_EVENTS: Dict[SubmissionState, EventType] = {
    SubmissionState.SUBMITTING: EventType.SUBMISSION_STARTED,
    SubmissionState.SUCCEEDED: EventType.SUBMISSION_SUCCEEDED,
    SubmissionState.FAILED: EventType.SUBMISSION_FAILED,
}


class FormController:
    """Owns one form's model, validation and submission lifecycle.

    Args:
        model: Initial model; a private copy is kept for ``reset()``
        schema: JSON Schema dict, object with ``validate()``, or callable
        config: A FormConfig; keyword ``options`` override its fields
        operation: External submit operation ``(model) -> awaitable``
        behaviors: Behavior factories, outermost first, each called with the
            form to build one change interceptor
        form_id: Identifier used on emitted events
        **options: FormConfig fields (``autosave``, ``validate``, ...)

    Attributes:
        form_id: Identifier of this form
        config: The effective configuration
        events: Emitter publishing this form's FormEvents
    """

    def __init__(
        self,
        model: Optional[Mapping[str, Any]] = None,
        schema: Optional[Any] = None,
        config: Optional[FormConfig] = None,
        operation: Optional[SubmitOperation] = None,
        behaviors: Sequence[BehaviorFactory] = (),
        form_id: Optional[str] = None,
        **options: Any,
    ) -> None:
        if config is None:
            config = FormConfig(**options)
        elif options:
            config = dataclasses.replace(config, **options)
        self.config = config
        self.form_id = form_id or f"form_{uuid.uuid4().hex[:16]}"
        self.events = EventEmitter()

        self._store = ModelStore(model)
        self._transformer = ModelTransformer(config.model_transform)
        self._validator = Validator(schema, options=config.validator, on_validate=config.on_validate)
        self._tracker = ValidationTracker()
        self._policy = ValidationPolicy(config.validate)
        self._submission = SubmissionController(
            load_model=self._store.get,
            transformer=self._transformer,
            validate=self._validate,
            operation=operation,
            on_success=config.on_submit_success,
            on_failure=config.on_submit_failure,
            observer=self._on_submission_transition,
        )
        self._autosave = AutosaveScheduler(
            submit=self.submit,
            config=config.autosave_config,
            on_scheduled=lambda delay_ms: self._emit(EventType.AUTOSAVE_SCHEDULED, {"delayMs": delay_ms}),
        )
        self._changed_keys: List[str] = []
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._dispatcher = ChangeDispatcher(
            self._apply_change, [factory(self) for factory in behaviors]
        )

    # Read surface

    @property
    def model(self) -> Mapping[str, Any]:
        """Read-only view of the current model; edit it through ``change()``."""
        return MappingProxyType(self._store.get())

    @property
    def initial_model(self) -> Model:
        return self._store.initial

    @property
    def mode(self) -> ValidationMode:
        return self._policy.mode

    @property
    def validation(self) -> ValidationState:
        return self._tracker.state

    @property
    def error(self) -> Optional[Any]:
        return self._tracker.state.error

    @property
    def validating(self) -> bool:
        return self._tracker.state.validating

    @property
    def submitting(self) -> bool:
        return self._submission.submitting

    @property
    def submission_state(self) -> SubmissionState:
        return self._submission.state

    @property
    def submitted(self) -> bool:
        return self._policy.submitted

    @property
    def policy_state(self) -> PolicyState:
        return self._policy.state

    @property
    def changed(self) -> bool:
        return bool(self._changed_keys)

    @property
    def changed_keys(self) -> List[str]:
        return list(self._changed_keys)

    @property
    def autosave(self) -> AutosaveScheduler:
        return self._autosave

    @property
    def dispatcher(self) -> ChangeDispatcher:
        return self._dispatcher

    def get_context(self) -> FormContext:
        """Snapshot the form for rendering.

        Raises:
            TransformError: If the ``form`` transform raises
        """
        state = self._tracker.state
        return FormContext(
            form_id=self.form_id,
            model=self._transformer.transform(TransformMode.FORM, self._store.get()),
            error=state.error,
            validating=state.validating,
            submitting=self._submission.submitting,
            submitted=self._policy.submitted,
            changed=self.changed,
            changed_keys=tuple(self._changed_keys),
            read_only=self.config.read_only,
        )

    # Mutation surface

    def change(self, key: str, value: Any) -> None:
        """Apply a field edit through the behavior chain.

        With an ``on_validate`` hook or autosave enabled this must run inside
        the asyncio event loop, which receives the scheduled work.

        Keys fanned out by behaviors are written as part of the same change:
        ``on_change_model``, change-driven validation and autosave run once,
        after the whole chain, and only when the model was actually written.

        Raises:
            TransformError: If change-driven validation hits a failing
                ``validate`` transform; the model change itself is kept
        """
        if self.config.read_only:
            logger.debug("Form %s is read-only; ignoring change to '%s'", self.form_id, key)
            return
        before = self._store.get()
        self._dispatcher.on_change(key, value)
        model = self._store.get()
        if model is not before:
            self._after_change(model)

    def reset(self) -> None:
        """Restore the initial model and clear errors, flags and pending work.

        In-flight validations are not interrupted, but their results can no
        longer touch the reset form. A submission still validating is
        cancelled before its operation runs. An operation that was already
        called keeps running, so ``submitting`` stays True until it settles;
        its callbacks still fire but it never touches the model or the
        validation state.
        """
        self._autosave.cancel()
        self._submission.cancel_queued()
        self._store.reset()
        self._tracker.clear()
        self._policy.reset()
        self._changed_keys.clear()
        logger.debug("Form %s reset", self.form_id)
        self._emit(EventType.FORM_RESET)

    async def submit(self) -> SubmissionResult:
        """Submit the form, queueing behind an active submission.

        Validation and submission failures are reported through the result
        and ``on_submit_failure``; only ``TransformError`` is raised.
        """
        self._policy.mark_submitted()
        return await self._submission.submit(wait=True)

    async def validate(self) -> Optional[Any]:
        """Validate the current model now and return the resulting error."""
        return await self._validate(self._store.get())

    def dispose(self) -> None:
        """Detach the form: cancel autosave and pending validation tasks."""
        self._autosave.cancel()
        self._submission.cancel_queued()
        for task in list(self._tasks):
            task.cancel()
        self._tracker.clear()

    # Internals

    def _apply_change(self, key: str, value: Any) -> None:
        self._store.set(key, value)
        if key not in self._changed_keys:
            self._changed_keys.append(key)
        self._emit(EventType.FIELD_CHANGED, {"key": key})

    def _after_change(self, model: Model) -> None:
        if self.config.on_change_model is not None:
            try:
                self.config.on_change_model(model)
            except Exception:
                logger.exception("on_change_model callback raised")

        if self._policy.should_validate_on_change():
            self._schedule_validation(model)
        self._autosave.notify(model)

    def _begin_validation(self, model: Model) -> Tuple[int, Model, Optional[Any]]:
        transformed = self._transformer.transform(TransformMode.VALIDATE, model)
        error = self._validator.validate(transformed)
        token = self._tracker.start()
        self._emit(EventType.VALIDATION_STARTED, {"token": token})
        return token, transformed, error

    def _complete_validation(self, token: int, error: Optional[Any]) -> None:
        if not self._tracker.resolve(token, error):
            self._emit(EventType.VALIDATION_DISCARDED, {"token": token})
        elif error is None:
            self._emit(EventType.VALIDATION_PASSED, {"token": token})
        else:
            self._emit(EventType.VALIDATION_FAILED, {"token": token, "error": _describe_error(error)})

    async def _finish_validation(self, token: int, model: Model, error: Optional[Any]) -> Optional[Any]:
        error = await self._validator.validate_async(model, error)
        self._complete_validation(token, error)
        return error

    def _schedule_validation(self, model: Model) -> None:
        token, transformed, error = self._begin_validation(model)
        if not self._validator.is_async:
            self._complete_validation(token, error)
            return
        task = asyncio.get_running_loop().create_task(self._finish_validation(token, transformed, error))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _validate(self, model: Model) -> Optional[Any]:
        token, transformed, error = self._begin_validation(model)
        return await self._finish_validation(token, transformed, error)

    def _on_submission_transition(self, state: SubmissionState, payload: Dict[str, Any]) -> None:
        event_type = SUBMISSION_EVENTS.get(state)
        if event_type is not None:
            self._emit(event_type, payload or None)

    def _emit(self, event_type: EventType, payload: Optional[Dict[str, Any]] = None) -> None:
        self.events.emit(FormEvent.create(event_type, self.form_id, payload))


__all__ = [
    "FormController",
    "FormContext",
]
