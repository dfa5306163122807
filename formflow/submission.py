"""Submission orchestration.

``SubmissionController.submit`` runs the submit pipeline:

1. transform the current model with the ``submit`` transform
2. validate it; an error aborts with ``ValidationFailure`` and the external
   operation is never called
3. await the external submit operation
4. report the outcome through ``on_success`` / ``on_failure``

At most one submission is active per controller. Further ``submit()`` calls
queue behind the active one (``wait=True``, used by forms) or raise
``AlreadySubmitting`` (``wait=False``).
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from formflow.errors import (
    AlreadySubmitting,
    FormError,
    SubmissionFailure,
    TransformError,
    ValidationFailure,
)
from formflow.state_machine import SubmissionStateMachine
from formflow.transform import ModelTransformer
from formflow.types import SubmissionState, TransformMode

logger = logging.getLogger(__name__)

Model = Dict[str, Any]
SubmitOperation = Callable[[Model], Any]
"""External submit operation; may return a value or an awaitable."""


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of one ``submit()`` call.

    Attributes:
        state: SUCCEEDED or FAILED, or IDLE if the call was cancelled
            while queued
        failure: The ValidationFailure or SubmissionFailure, if failed
        value: Whatever the submit operation returned, if succeeded
        cancelled: True if a reset cancelled the call while it was queued
    """
    state: SubmissionState
    failure: Optional[FormError] = None
    value: Any = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is SubmissionState.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {"ok": self.succeeded, "state": self.state.value}
        if self.failure is not None:
            result["failure"] = {"type": type(self.failure).__name__, "message": str(self.failure)}
        if self.cancelled:
            result["cancelled"] = True
        return result


class SubmissionController:
    """Runs submissions one at a time.

    Args:
        load_model: Returns the model to submit when a submission starts
        transformer: Applies the ``submit`` transform
        validate: Final validation gate, returns the error or None
        operation: The external submit operation
        on_success: Called with no arguments after a successful submission
        on_failure: Called with the ValidationFailure or SubmissionFailure
        observer: Called with ``(state, payload)`` on every state change
    """

    def __init__(
        self,
        load_model: Callable[[], Model],
        transformer: ModelTransformer,
        validate: Callable[[Model], Awaitable[Optional[Any]]],
        operation: Optional[SubmitOperation] = None,
        on_success: Optional[Callable[[], None]] = None,
        on_failure: Optional[Callable[[FormError], None]] = None,
        observer: Optional[Callable[[SubmissionState, Dict[str, Any]], None]] = None,
    ) -> None:
        self._load_model = load_model
        self._transformer = transformer
        self._validate = validate
        self._operation = operation
        self._on_success = on_success
        self._on_failure = on_failure
        self._observer = observer
        self._machine = SubmissionStateMachine()
        self._idle: Optional[asyncio.Event] = None
        self._epoch = 0
        self._waiting = 0

    @property
    def state(self) -> SubmissionState:
        return self._machine.state

    @property
    def submitting(self) -> bool:
        return self._machine.is_active

    @property
    def queued(self) -> int:
        """Number of submit() calls waiting for the active one to finish."""
        return self._waiting

    @property
    def history(self):
        return self._machine.history

    def cancel_queued(self) -> None:
        """Make every submit() call currently queued return as cancelled.

        An active submission still waiting on validation stops before its
        operation and returns as cancelled; an operation already called runs
        to completion.
        """
        self._epoch += 1

    async def submit(self, wait: bool = True) -> SubmissionResult:
        """Submit the current model.

        Raises:
            AlreadySubmitting: If ``wait`` is False and a submission is active
            TransformError: If the ``submit`` transform raises
        """
        epoch = self._epoch
        while self._machine.is_active:
            if not wait:
                raise AlreadySubmitting()
            self._waiting += 1
            try:
                await self._idle.wait()
            finally:
                self._waiting -= 1

        if epoch != self._epoch:
            logger.debug("Queued submission cancelled by reset")
            return SubmissionResult(state=SubmissionState.IDLE, cancelled=True)

        if self._idle is None:
            self._idle = asyncio.Event()
        self._idle.clear()
        self._transition(SubmissionState.SUBMITTING)
        try:
            return await self._run(epoch)
        finally:
            if self._machine.state is not SubmissionState.IDLE:
                self._transition(SubmissionState.IDLE)
            self._idle.set()

    async def _run(self, epoch: int) -> SubmissionResult:
        model = self._load_model()
        try:
            payload = self._transformer.transform(TransformMode.SUBMIT, model)
        except TransformError:
            logger.debug("Submission aborted by a failing submit transform")
            raise

        error = await self._validate(model)
        if epoch != self._epoch:
            logger.debug("Submission cancelled by reset during validation")
            return SubmissionResult(state=SubmissionState.IDLE, cancelled=True)
        if error is not None:
            return self._finish(SubmissionState.FAILED, failure=ValidationFailure(error))

        try:
            value = self._operation(payload) if self._operation is not None else None
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:
            failure = SubmissionFailure(exc)
            failure.__cause__ = exc
            return self._finish(SubmissionState.FAILED, failure=failure)

        return self._finish(SubmissionState.SUCCEEDED, value=value)

    def _finish(
        self,
        state: SubmissionState,
        failure: Optional[FormError] = None,
        value: Any = None,
    ) -> SubmissionResult:
        self._transition(state, failure)
        if failure is None:
            self._call(self._on_success)
        else:
            logger.debug("Submission failed: %s", failure)
            self._call(self._on_failure, failure)
        self._transition(SubmissionState.IDLE)
        return SubmissionResult(state=state, failure=failure, value=value)

    def _transition(self, state: SubmissionState, failure: Optional[FormError] = None) -> None:
        self._machine.transition_to(state)
        if self._observer is None:
            return
        payload: Dict[str, Any] = {}
        if failure is not None:
            payload["failure"] = type(failure).__name__
            payload["message"] = str(failure)
        self._call(self._observer, state, payload)

    @staticmethod
    def _call(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Submission callback %r raised", callback)


__all__ = [
    "SubmissionController",
    "SubmissionResult",
    "SubmitOperation",
]
