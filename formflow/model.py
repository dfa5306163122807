"""Copy-on-write model storage.

The model is a plain dict addressed by dot-paths ("contact.email",
"items.0.sku"). Every write returns a new top-level dict; containers along the
written path are shallow-copied and everything else is shared with the
previous model, so old model objects stay valid snapshots.

Usage:
    >>> from formflow.model import ModelStore
    >>> store = ModelStore({"name": "Ada"})
    >>> before = store.get()
    >>> after = store.set("contact.email", "ada@example.com")
    >>> before
    {'name': 'Ada'}
    >>> after
    {'name': 'Ada', 'contact': {'email': 'ada@example.com'}}
"""

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

Model = Dict[str, Any]

_MISSING = object()


def split_path(key: str) -> List[str]:
    """Split a dot-path into its segments.

    Raises:
        ValueError: If the path is empty or has an empty segment
    """
    if not isinstance(key, str) or not key:
        raise ValueError(f"Field key must be a non-empty string, got {key!r}")
    parts = key.split(".")
    if any(part == "" for part in parts):
        raise ValueError(f"Field key '{key}' contains an empty path segment")
    return parts


def get_path(model: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Read the value at ``key``, or ``default`` when any segment is missing.

    Examples:
        >>> get_path({"a": {"b": [10, 20]}}, "a.b.1")
        20
        >>> get_path({"a": 1}, "a.b", default="none")
        'none'
    """
    current: Any = model
    for part in split_path(key):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


def _assoc(container: Any, parts: List[str], value: Any) -> Any:
    head, rest = parts[0], parts[1:]

    if isinstance(container, list) and head.isdigit():
        index = int(head)
        updated = list(container)
        if index >= len(updated):
            updated.extend([None] * (index + 1 - len(updated)))
        updated[index] = _assoc(updated[index], rest, value) if rest else value
        return updated

    if isinstance(container, list):
        raise ValueError(f"Path segment '{head}' is not an index into a list")

    # Scalars and missing values on the path are replaced by a fresh dict.
    updated_map: Dict[str, Any] = dict(container) if isinstance(container, Mapping) else {}
    if rest:
        updated_map[head] = _assoc(updated_map.get(head), rest, value)
    else:
        updated_map[head] = value
    return updated_map


def set_path(model: Mapping[str, Any], key: str, value: Any) -> Model:
    """Return a new model with ``key`` set to ``value``.

    ``model`` is never modified. Intermediate containers are created as dicts
    when missing.

    Raises:
        ValueError: If the key is malformed, or a non-numeric segment
            addresses an existing list

    Examples:
        >>> m = {"a": {"x": 1}, "b": {"y": 2}}
        >>> m2 = set_path(m, "a.x", 5)
        >>> m["a"]["x"], m2["a"]["x"]
        (1, 5)
        >>> m2["b"] is m["b"]
        True
    """
    return _assoc(model, split_path(key), value)


class ModelStore:
    """Holds the current model and the initial model it can be reset to.

    Attributes:
        initial: A private deep copy of the model the store was created with
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._initial: Model = copy.deepcopy(dict(initial or {}))
        self._model: Model = copy.deepcopy(self._initial)

    @property
    def initial(self) -> Model:
        return copy.deepcopy(self._initial)

    def get(self) -> Model:
        """Return the current model.

        The returned dict is shared with the store and must be treated as
        read-only; write through ``set()``.
        """
        return self._model

    def set(self, key: str, value: Any) -> Model:
        """Commit ``key = value`` and return the new model.

        The previously returned model object is left untouched.
        """
        self._model = set_path(self._model, key, value)
        logger.debug("Model key '%s' updated", key)
        return self._model

    def reset(self, initial: Optional[Mapping[str, Any]] = None) -> Model:
        """Replace the model wholesale.

        Args:
            initial: Model to install. Defaults to the store's initial model.

        Returns:
            The newly installed model
        """
        source = self._initial if initial is None else dict(initial)
        self._model = copy.deepcopy(source)
        return self._model


__all__ = [
    "Model",
    "ModelStore",
    "get_path",
    "set_path",
    "split_path",
]
