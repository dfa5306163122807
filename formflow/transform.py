"""Context-specific model transforms.

A form applies its ``model_transform`` before the model is consumed:
``form`` before it is handed to the render layer, ``validate`` before
validation and ``submit`` before the submit operation. Without a custom
function every transform is the identity.
"""

import copy
import logging
from typing import Any, Callable, Dict, Optional, Union

from typing_extensions import assert_never

from formflow.errors import TransformError
from formflow.types import TransformMode

logger = logging.getLogger(__name__)

Model = Dict[str, Any]
TransformFunction = Callable[[TransformMode, Model], Model]


def describe_mode(mode: TransformMode) -> str:
    """Name the operation that consumes a model transformed with ``mode``."""
    if mode is TransformMode.FORM:
        return "rendering"
    if mode is TransformMode.SUBMIT:
        return "submission"
    if mode is TransformMode.VALIDATE:
        return "validation"
    assert_never(mode)


class ModelTransformer:
    """Applies a user supplied ``(mode, model) -> model`` function.

    The function receives a deep copy of the model, so a misbehaving transform
    cannot alter the form's stored model. Any exception it raises is wrapped in
    a ``TransformError``.

    Examples:
        >>> def strip_private(mode, model):
        ...     if mode is TransformMode.SUBMIT:
        ...         return {k: v for k, v in model.items() if not k.startswith("_")}
        ...     return model
        >>> transformer = ModelTransformer(strip_private)
        >>> transformer.transform("submit", {"name": "Ada", "_draft": True})
        {'name': 'Ada'}
        >>> transformer.transform("form", {"_draft": True})
        {'_draft': True}
    """

    def __init__(self, function: Optional[TransformFunction] = None) -> None:
        self.function = function

    @staticmethod
    def normalize_mode(mode: Union[TransformMode, str]) -> TransformMode:
        if isinstance(mode, TransformMode):
            return mode
        return TransformMode(mode)

    def transform(self, mode: Union[TransformMode, str], model: Model) -> Model:
        """Transform ``model`` for the given usage context.

        Args:
            mode: One of ``form``, ``submit`` or ``validate``
            model: The model to transform; never modified

        Returns:
            The transformed model (the input itself for the identity transform)

        Raises:
            TransformError: If the custom transform raises
            ValueError: If ``mode`` is not a known transform mode
        """
        mode = self.normalize_mode(mode)
        if self.function is None:
            return model

        try:
            result = self.function(mode, copy.deepcopy(model))
        except Exception as exc:
            logger.debug("Transform before %s raised %r", describe_mode(mode), exc)
            raise TransformError(mode, exc) from exc
        return result


__all__ = [
    "ModelTransformer",
    "TransformFunction",
    "describe_mode",
]
