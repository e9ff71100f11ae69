"""Cross-cutting transformations applied to every resource before submission.

A :class:`TransformationPipeline` holds an ordered list of functions from a
property bag to a property bag. Every node's resolved properties are folded
through the functions, in registration order, immediately before the node is
submitted to the provider. This is how stack-wide policy such as default tags
is applied without touching individual declarations.
"""

from collections.abc import Mapping
from functools import reduce
from types import MappingProxyType
from typing import Any, Callable

from infragraph.errors import InvalidStateError

__all__ = ["Properties", "Transformation", "TransformationPipeline"]

Properties = Mapping[str, Any]
Transformation = Callable[[Properties], Properties]


class TransformationPipeline:
    """Ordered, write-once list of property transformations."""

    def __init__(self, transformations: tuple[Transformation, ...] = ()):
        self._transformations: list[Transformation] = list(transformations)
        self._sealed = False

    def register(self, transformation: Transformation) -> Transformation:
        """Append a transformation; usable as a decorator.

        Args:
            transformation: Function taking a read-only property bag and
                returning a new one. It must not throw for shapes it does not
                recognise; returning its input unchanged is the way to opt out.

        Raises:
            InvalidStateError: If the pipeline is already in use by a run.
        """
        if self._sealed:
            raise InvalidStateError(
                "Transformations cannot be registered once resolution has started"
            )
        self._transformations.append(transformation)
        return transformation

    def seal(self) -> None:
        self._sealed = True

    def apply(self, properties: Properties) -> dict[str, Any]:
        """Fold ``properties`` through every transformation, left to right.

        Each transformation sees a read-only copy of the previous result, so
        pipelines can run concurrently for independent resources.

        Raises:
            TypeError: If a transformation returns something other than a mapping.
        """
        return reduce(_apply_one, self._transformations, dict(properties))

    def __len__(self):
        return len(self._transformations)


def _apply_one(properties: dict[str, Any], transformation: Transformation) -> dict[str, Any]:
    result = transformation(MappingProxyType(dict(properties)))
    if not isinstance(result, Mapping):
        raise TypeError(
            f"Transformation {getattr(transformation, '__name__', transformation)!r} "
            f"returned {type(result).__name__}, expected a mapping"
        )
    return dict(result)
