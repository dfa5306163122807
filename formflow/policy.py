"""Validation timing policy.

Decides whether a field change triggers validation, based on the form's
``ValidationMode`` and on whether a submit has been attempted yet:

==========================  ===============  =========
mode                        never submitted  submitted
==========================  ===============  =========
``onChange``                validate         validate
``onChangeAfterSubmit``     skip             validate
``onSubmit``                skip             skip
==========================  ===============  =========

Explicit ``validate()`` calls and the submit gate are not governed by the
policy; they always validate.
"""

import logging
from typing import Dict, Set, Union

from formflow.types import PolicyState, ValidationMode

logger = logging.getLogger(__name__)

VALIDATE_ON_CHANGE: Dict[ValidationMode, Set[PolicyState]] = {
    ValidationMode.ON_CHANGE: {PolicyState.NEVER_SUBMITTED, PolicyState.SUBMITTED},
    ValidationMode.ON_CHANGE_AFTER_SUBMIT: {PolicyState.SUBMITTED},
    ValidationMode.ON_SUBMIT: set(),
}


class ValidationPolicy:
    """Two-state machine selecting when change-driven validation runs.

    Examples:
        >>> policy = ValidationPolicy("onChangeAfterSubmit")
        >>> policy.should_validate_on_change()
        False
        >>> policy.mark_submitted()
        True
        >>> policy.should_validate_on_change()
        True
        >>> policy.mark_submitted()
        False
    """

    def __init__(self, mode: Union[ValidationMode, str] = ValidationMode.ON_CHANGE_AFTER_SUBMIT) -> None:
        self._mode = ValidationMode(mode)
        self._state = PolicyState.NEVER_SUBMITTED

    @property
    def mode(self) -> ValidationMode:
        return self._mode

    @property
    def state(self) -> PolicyState:
        return self._state

    @property
    def submitted(self) -> bool:
        return self._state is PolicyState.SUBMITTED

    def mark_submitted(self) -> bool:
        """Record a submit attempt.

        Returns:
            True the first time, when the NEVER_SUBMITTED -> SUBMITTED
            transition actually fires
        """
        if self._state is PolicyState.SUBMITTED:
            return False
        self._state = PolicyState.SUBMITTED
        logger.debug("Validation policy (%s) switched to submitted", self._mode.value)
        return True

    def should_validate_on_change(self) -> bool:
        return self._state in VALIDATE_ON_CHANGE[self._mode]

    def reset(self) -> None:
        self._state = PolicyState.NEVER_SUBMITTED


__all__ = [
    "ValidationPolicy",
    "VALIDATE_ON_CHANGE",
]
