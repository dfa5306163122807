"""Submission state machine.

Enforces the lifecycle of a single form's submissions::

    IDLE -> SUBMITTING -> {SUCCEEDED, FAILED} -> IDLE

SUCCEEDED and FAILED only last long enough for the outcome to be reported.
The machine also keeps a bounded history of transitions for debugging.

Usage:
    >>> from formflow.state_machine import SubmissionStateMachine
    >>> sm = SubmissionStateMachine()
    >>> sm.state
    <SubmissionState.IDLE: 'idle'>
    >>> sm.transition_to(SubmissionState.SUBMITTING)
    >>> sm.can_transition_to(SubmissionState.IDLE)
    False
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Set, Tuple

from formflow.types import SubmissionState


class InvalidStateTransitionError(Exception):
    """Raised when attempting an invalid state transition.

    Attributes:
        current_state: The current state before the attempted transition
        target_state: The target state that was attempted
    """

    def __init__(self, current_state: SubmissionState, target_state: SubmissionState, message: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message)


VALID_TRANSITIONS: Dict[SubmissionState, Set[SubmissionState]] = {
    SubmissionState.IDLE: {SubmissionState.SUBMITTING},
    SubmissionState.SUBMITTING: {
        SubmissionState.SUCCEEDED,
        SubmissionState.FAILED,
        # A transform error aborts before there is an outcome to report.
        SubmissionState.IDLE,
    },
    SubmissionState.SUCCEEDED: {SubmissionState.IDLE},
    SubmissionState.FAILED: {SubmissionState.IDLE},
}

HISTORY_LIMIT = 50


@dataclass
class SubmissionStateMachine:
    """State machine for one form's submission lifecycle.

    Attributes:
        state: Current submission state

    Examples:
        >>> sm = SubmissionStateMachine()
        >>> sm.transition_to(SubmissionState.SUBMITTING)
        >>> sm.transition_to(SubmissionState.FAILED)
        >>> sm.transition_to(SubmissionState.IDLE)
        >>> sm.history
        [('idle', 'submitting'), ('submitting', 'failed'), ('failed', 'idle')]
    """

    state: SubmissionState = SubmissionState.IDLE
    _history: Deque[Tuple[SubmissionState, SubmissionState]] = field(
        default_factory=lambda: deque(maxlen=HISTORY_LIMIT), init=False, repr=False
    )

    @property
    def is_active(self) -> bool:
        """True while a submission occupies the machine."""
        return self.state is not SubmissionState.IDLE

    @property
    def history(self) -> List[Tuple[str, str]]:
        return [(old.value, new.value) for old, new in self._history]

    def can_transition_to(self, target_state: SubmissionState) -> bool:
        return target_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(self, target_state: SubmissionState) -> None:
        """Move to ``target_state``.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target_state):
            allowed = ", ".join(sorted(s.value for s in VALID_TRANSITIONS[self.state]))
            raise InvalidStateTransitionError(
                current_state=self.state,
                target_state=target_state,
                message=(
                    f"Invalid state transition: cannot transition from "
                    f"'{self.state.value}' to '{target_state.value}'. "
                    f"Valid transitions from '{self.state.value}' are: {allowed}"
                ),
            )
        self._history.append((self.state, target_state))
        self.state = target_state

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the state machine to a dictionary.

        Examples:
            >>> SubmissionStateMachine(state=SubmissionState.SUBMITTING).to_dict()
            {'state': 'submitting'}
        """
        return {"state": self.state.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionStateMachine":
        """Deserialize a state machine from a dictionary."""
        state = data["state"]
        if isinstance(state, str):
            state = SubmissionState(state)
        return cls(state=state)


__all__ = [
    "SubmissionStateMachine",
    "InvalidStateTransitionError",
    "VALID_TRANSITIONS",
]
