"""Form configuration.

``FormConfig`` collects every recognized form option. It can be built from
keyword arguments or, via ``FormConfig.from_dict``, from a camelCase mapping
such as one loaded from JSON::

    >>> config = FormConfig.from_dict({"autosave": True, "autosaveDelayMs": 200, "validate": "onChange"})
    >>> config.validate
    <ValidationMode.ON_CHANGE: 'onChange'>
    >>> config.autosave_config
    AutosaveConfig(enabled=True, delay_ms=200)
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from formflow.transform import TransformFunction
from formflow.types import ValidationMode
from formflow.validation import OnValidate


@dataclass(frozen=True)
class AutosaveConfig:
    """Autosave settings consumed by ``AutosaveScheduler``.

    Attributes:
        enabled: Submit automatically after model changes
        delay_ms: Quiet period after the last change before submitting;
            0 submits on every change
    """
    enabled: bool = False
    delay_ms: int = 0

    def __post_init__(self):
        if isinstance(self.delay_ms, bool) or not isinstance(self.delay_ms, int):
            raise ValueError(f"Autosave delay must be an integer number of milliseconds, got {self.delay_ms!r}")
        if self.delay_ms < 0:
            raise ValueError(f"Autosave delay must not be negative, got {self.delay_ms}")

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


# camelCase option name -> FormConfig attribute
OPTION_NAMES: Dict[str, str] = {
    "autosave": "autosave",
    "autosaveDelayMs": "autosave_delay_ms",
    "autosaveDelay": "autosave_delay_ms",
    "validate": "validate",
    "validator": "validator",
    "modelTransform": "model_transform",
    "onSubmitSuccess": "on_submit_success",
    "onSubmitFailure": "on_submit_failure",
    "onValidate": "on_validate",
    "onChangeModel": "on_change_model",
    "readOnly": "read_only",
}


@dataclass(frozen=True)
class FormConfig:
    """Recognized options of a form.

    Attributes:
        autosave: Submit automatically after changes
        autosave_delay_ms: Debounce delay for autosave in milliseconds
        validate: When change-driven validation runs
        validator: Options forwarded unmodified to the schema on every call
        model_transform: ``(mode, model) -> model`` applied before rendering,
            validation and submission
        on_submit_success: Called with no arguments after a successful submit
        on_submit_failure: Called with a ``ValidationFailure`` or
            ``SubmissionFailure`` after a failed submit
        on_validate: Async validation hook ``(model, prior_error) -> error``
        on_change_model: Called with the new model after every accepted change
        read_only: Ignore all field changes
    """
    autosave: bool = False
    autosave_delay_ms: int = 0
    validate: ValidationMode = ValidationMode.ON_CHANGE_AFTER_SUBMIT
    validator: Dict[str, Any] = field(default_factory=dict)
    model_transform: Optional[TransformFunction] = None
    on_submit_success: Optional[Callable[[], None]] = None
    on_submit_failure: Optional[Callable[[Exception], None]] = None
    on_validate: Optional[OnValidate] = None
    on_change_model: Optional[Callable[[Dict[str, Any]], None]] = None
    read_only: bool = False

    def __post_init__(self):
        """Normalize string enums and check the autosave settings."""
        if not isinstance(self.validate, ValidationMode):
            object.__setattr__(self, "validate", ValidationMode(self.validate))
        if self.validator is None:
            object.__setattr__(self, "validator", {})
        # AutosaveConfig rejects bad delays.
        AutosaveConfig(enabled=bool(self.autosave), delay_ms=self.autosave_delay_ms)

    @property
    def autosave_config(self) -> AutosaveConfig:
        return AutosaveConfig(enabled=bool(self.autosave), delay_ms=self.autosave_delay_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the serializable options to a camelCase dict."""
        return {
            "autosave": self.autosave,
            "autosaveDelayMs": self.autosave_delay_ms,
            "validate": self.validate.value,
            "validator": dict(self.validator),
            "readOnly": self.read_only,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormConfig":
        """Create FormConfig from a dict with camelCase or snake_case keys.

        Raises:
            ValueError: For unknown option names or invalid values
        """
        snake_names = set(OPTION_NAMES.values())
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = OPTION_NAMES.get(key, key)
            if name not in snake_names:
                raise ValueError(f"Unknown form option '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


__all__ = [
    "AutosaveConfig",
    "FormConfig",
    "OPTION_NAMES",
]
