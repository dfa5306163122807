"""Field change dispatch through an ordered chain of interceptors.

Every field change enters ``ChangeDispatcher.on_change(key, value)`` and passes
through the interceptors in order before reaching the base handler, which
writes the model. An interceptor has the signature ``(key, value, next)`` and
decides whether and how to call ``next``:

- pass through: ``next(key, value)``
- short-circuit: return without calling ``next`` (the change is dropped)
- translate: ``next(other_key, value)``
- fan out: call ``next`` several times

An interceptor that forgets to call ``next`` for keys it does not handle
silently loses those changes.

Usage:
    >>> writes = []
    >>> def upper(key, value, next):
    ...     next(key, value.upper() if isinstance(value, str) else value)
    >>> dispatcher = ChangeDispatcher(lambda k, v: writes.append((k, v)), [upper])
    >>> dispatcher.on_change("name", "ada")
    >>> writes
    [('name', 'ADA')]
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Sequence, Tuple

from formflow.model import split_path

if TYPE_CHECKING:
    from formflow.form import FormController

logger = logging.getLogger(__name__)

Next = Callable[[str, Any], None]
Interceptor = Callable[[str, Any, Next], None]
BehaviorFactory = Callable[["FormController"], Interceptor]
"""Builds an interceptor for a specific form, e.g. to read its current model."""


def _bind(layer: Interceptor, inner: Next) -> Next:
    def handler(key: str, value: Any) -> None:
        layer(key, value, inner)

    return handler


def compose(*layers: Interceptor, base: Next) -> Next:
    """Wrap ``base`` in ``layers``; the first layer is the outermost.

    Examples:
        >>> calls = []
        >>> def tag(name):
        ...     def layer(key, value, next):
        ...         calls.append(name)
        ...         next(key, value)
        ...     return layer
        >>> handler = compose(tag("outer"), tag("inner"), base=lambda k, v: calls.append("base"))
        >>> handler("x", 1)
        >>> calls
        ['outer', 'inner', 'base']
    """
    handler = base
    for layer in reversed(layers):
        handler = _bind(layer, handler)
    return handler


class ChangeDispatcher:
    """Routes field changes through interceptors into a base handler.

    Attributes:
        layers: The interceptors, outermost first
    """

    def __init__(self, base: Next, layers: Sequence[Interceptor] = ()) -> None:
        self._base = base
        self.layers: Tuple[Interceptor, ...] = tuple(layers)
        self._handler = compose(*self.layers, base=base)

    def on_change(self, key: str, value: Any) -> None:
        logger.debug("Dispatching change for '%s' through %d layer(s)", key, len(self.layers))
        self._handler(key, value)

    def extend(self, *layers: Interceptor) -> "ChangeDispatcher":
        """Return a new dispatcher with ``layers`` wrapped around this one's."""
        return ChangeDispatcher(self._base, layers + self.layers)


def _covers(keys: Sequence[str], key: str) -> bool:
    return any(key == k or key.startswith(f"{k}.") for k in keys)


def read_only(*keys: str) -> BehaviorFactory:
    """Drop changes to ``keys`` and any field nested below them."""
    for key in keys:
        split_path(key)

    def factory(form: "FormController") -> Interceptor:
        def interceptor(key: str, value: Any, next: Next) -> None:
            if _covers(keys, key):
                logger.debug("Ignoring change to read-only field '%s'", key)
                return
            next(key, value)

        return interceptor

    return factory


def alias(mapping: Mapping[str, str]) -> BehaviorFactory:
    """Re-dispatch changes of aliased keys to their target keys.

    Examples:
        >>> writes = []
        >>> layer = alias({"mail": "contact.email"})(None)
        >>> layer("mail", "a@b.c", lambda k, v: writes.append(k))
        >>> layer("name", "Ada", lambda k, v: writes.append(k))
        >>> writes
        ['contact.email', 'name']
    """
    targets: Dict[str, str] = dict(mapping)
    for target in targets.values():
        split_path(target)

    def factory(form: "FormController") -> Interceptor:
        def interceptor(key: str, value: Any, next: Next) -> None:
            next(targets.get(key, key), value)

        return interceptor

    return factory


def derive(source: str, compute: Callable[[Any, Dict[str, Any]], Mapping[str, Any]]) -> BehaviorFactory:
    """Fan a change of ``source`` out to computed dependent fields.

    ``compute(value, model)`` receives the new source value and the model as
    it is after the source change, and returns extra ``key -> value`` pairs
    that are dispatched in order.
    """

    def factory(form: "FormController") -> Interceptor:
        def interceptor(key: str, value: Any, next: Next) -> None:
            next(key, value)
            if key != source:
                return
            for derived_key, derived_value in compute(value, form.model).items():
                next(derived_key, derived_value)

        return interceptor

    return factory


def coerce(key: str, function: Callable[[Any], Any]) -> BehaviorFactory:
    """Rewrite the value of ``key`` with ``function`` before passing it on."""

    def factory(form: "FormController") -> Interceptor:
        def interceptor(changed_key: str, value: Any, next: Next) -> None:
            next(changed_key, function(value) if changed_key == key else value)

        return interceptor

    return factory


__all__ = [
    "Next",
    "Interceptor",
    "BehaviorFactory",
    "compose",
    "ChangeDispatcher",
    "read_only",
    "alias",
    "derive",
    "coerce",
]
