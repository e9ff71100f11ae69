"""Single-assignment values that become known after declaration time.

A :class:`DeferredValue` stands in for something a program cannot know while it
is declaring resources: an ID assigned by the provider, a list of availability
zones returned by a lookup, or any value computed from those. Values are
settled exactly once, either resolved or failed, and continuations registered
with :meth:`DeferredValue.map` run after settlement in registration order.

Each value remembers the resource nodes it was derived from (its *origins*).
Declaring a resource whose properties embed a deferred value is therefore
enough for the graph to know which resources it depends on.

Example:
    >>> zones = DeferredValue()
    >>> first_zone = zones[0]
    >>> zones.resolve(["zone-a", "zone-b"])
    >>> first_zone.value
    'zone-a'
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from infragraph.errors import InvalidStateError

__all__ = [
    "DeferredValue",
    "combine",
    "collect_deferred",
    "contains_deferred",
    "resolve_nested",
]

T = TypeVar("T")
U = TypeVar("U")

_PENDING = "pending"
_RESOLVED = "resolved"
_FAILED = "failed"


class DeferredValue(Generic[T]):
    """A value that is resolved, failed, or not yet known.

    Attributes:
        origins: The resource nodes this value was derived from.
        label: Optional human-readable description used in reprs and errors.
    """

    def __init__(self, origins: Iterable[Any] = (), label: Optional[str] = None):
        self.origins = frozenset(origins)
        self.label = label
        self._state = _PENDING
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._continuations: list[Callable[["DeferredValue[T]"], None]] = []

    @staticmethod
    def of(value: T) -> "DeferredValue[T]":
        """Wrap a value that is already known."""
        deferred = DeferredValue()
        deferred.resolve(value)
        return deferred

    @staticmethod
    def all(values: Iterable[Any]) -> "DeferredValue[list]":
        """Alias for :func:`combine`."""
        return combine(values)

    @property
    def is_settled(self) -> bool:
        return self._state != _PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state == _RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state == _FAILED

    @property
    def value(self) -> T:
        """The resolved value.

        Raises:
            InvalidStateError: If the value is still pending.
            BaseException: The failure, if the value failed.
        """
        if self._state == _PENDING:
            raise InvalidStateError(f"{self!r} has not been resolved yet")
        if self._state == _FAILED:
            raise self._error
        return self._value

    def resolve(self, value: T) -> None:
        """Fulfil this value and run its continuations.

        Raises:
            InvalidStateError: If the value has already been settled.
        """
        self._settle(_RESOLVED, value, None)

    def fail(self, error: BaseException) -> None:
        """Settle this value as failed; continuations see the failure.

        Raises:
            InvalidStateError: If the value has already been settled.
        """
        self._settle(_FAILED, None, error)

    def map(self, fn: Callable[[T], U]) -> "DeferredValue[U]":
        """Derive a new value by applying ``fn`` once this one resolves.

        ``fn`` is called exactly once, never before this value resolves. When
        this value is already resolved the call happens immediately. If ``fn``
        raises, or this value fails, the derived value fails with that error.

        Args:
            fn: Function from this value to the derived value. It should
                return a plain value; returning another ``DeferredValue``
                would hide that value's origins from the graph.

        Returns:
            A new ``DeferredValue`` with the same origins as this one.
        """
        derived: DeferredValue[U] = DeferredValue(self.origins)

        def forward(source: "DeferredValue[T]") -> None:
            if source._state == _FAILED:
                derived.fail(source._error)
                return
            try:
                result = fn(source._value)
            except Exception as ex:
                derived.fail(ex)
                return
            derived.resolve(result)

        self._on_settled(forward)
        return derived

    async def wait(self) -> T:
        """Suspend until this value is settled and return it.

        Raises:
            BaseException: The failure, if the value failed.
        """
        if self._state == _PENDING:
            future = asyncio.get_running_loop().create_future()

            def wake(_source):
                if not future.done():
                    future.set_result(None)

            self._on_settled(wake)
            await future
        return self.value

    def __await__(self):
        return self.wait().__await__()

    def __getitem__(self, key: Any) -> "DeferredValue[Any]":
        return self.map(lambda value: value[key])

    def __iter__(self):
        # __getitem__ would otherwise make every deferred value look iterable
        raise TypeError(
            "DeferredValue is not iterable; use .map() to work with its value"
        )

    def __repr__(self):
        label = f" {self.label}" if self.label else ""
        if self._state == _RESOLVED:
            return f"<DeferredValue{label} resolved={self._value!r}>"
        if self._state == _FAILED:
            return f"<DeferredValue{label} failed={self._error!r}>"
        return f"<DeferredValue{label} pending>"

    def _on_settled(self, continuation: Callable[["DeferredValue[T]"], None]) -> None:
        if self._state == _PENDING:
            self._continuations.append(continuation)
        else:
            continuation(self)

    def _settle(self, state: str, value: Optional[T], error: Optional[BaseException]):
        if self._state != _PENDING:
            raise InvalidStateError(f"{self!r} has already been settled")
        self._state = state
        self._value = value
        self._error = error
        continuations, self._continuations = self._continuations, []
        for continuation in continuations:
            continuation(self)


def combine(values: Iterable[Any]) -> DeferredValue[list]:
    """Combine several values into one resolving to the list of their values.

    The combined value resolves only after every input has settled, and its
    list follows the order of ``values`` regardless of the order in which the
    inputs arrived. Plain (non-deferred) items are passed through as-is. If
    any input fails, the combined value fails with the first failure in input
    order.

    Example:
        >>> subnet_ids = combine([subnet_1.id, subnet_2.id])
    """
    inputs = [v if isinstance(v, DeferredValue) else DeferredValue.of(v) for v in values]
    combined: DeferredValue[list] = DeferredValue(
        frozenset().union(*(v.origins for v in inputs))
    )
    if not inputs:
        combined.resolve([])
        return combined

    remaining = len(inputs)

    def on_input_settled(_source):
        nonlocal remaining
        remaining -= 1
        if remaining > 0:
            return
        failed = next((v for v in inputs if v.is_failed), None)
        if failed is not None:
            combined.fail(failed._error)
        else:
            combined.resolve([v._value for v in inputs])

    for deferred in inputs:
        deferred._on_settled(on_input_settled)
    return combined


def collect_deferred(obj: Any) -> list[DeferredValue]:
    """Return every ``DeferredValue`` nested in ``obj``, depth first."""
    if isinstance(obj, DeferredValue):
        return [obj]
    if isinstance(obj, Mapping):
        return [d for item in obj.values() for d in collect_deferred(item)]
    if isinstance(obj, (list, tuple)):
        return [d for item in obj for d in collect_deferred(item)]
    return []


def contains_deferred(obj: Any) -> bool:
    return len(collect_deferred(obj)) > 0


async def resolve_nested(obj: Any) -> Any:
    """Replace every nested ``DeferredValue`` in ``obj`` by its value.

    Mappings come back as plain dicts, lists as lists and tuples as tuples.
    """
    if isinstance(obj, DeferredValue):
        return await obj
    if isinstance(obj, Mapping):
        return {key: await resolve_nested(item) for key, item in obj.items()}
    if isinstance(obj, list):
        return [await resolve_nested(item) for item in obj]
    if isinstance(obj, tuple):
        return tuple([await resolve_nested(item) for item in obj])
    return obj
