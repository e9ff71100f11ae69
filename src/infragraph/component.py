"""Hierarchical grouping of resources behind a fixed set of outputs.

A :class:`ComponentGroup` is declared with a name, a type tag and the names of
the outputs it exposes. Its builder declares child resources and nested
groups through the group, which scopes their names under its own, and binds
each output to a value derived from those children. Sibling declarations read
the group's outputs as deferred values; the dependency edges they carry back
to the children order everything, so a group needs no synchronisation of its
own.
"""

import logging
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

from infragraph.deferred import DeferredValue, combine
from infragraph.errors import (
    DeclarationError,
    DuplicateNameError,
    IncompleteOutputsError,
    NotFoundError,
)
from infragraph.graph import ResourceGraph
from infragraph.resource import ResourceNode, ResourceType

__all__ = ["ComponentGroup", "Builder"]

log = logging.getLogger("infragraph.component")

Builder = Callable[["ComponentGroup"], Optional[Mapping[str, Any]]]


class ComponentGroup:
    """A named group of resources exposing declared outputs.

    Groups are built either with :meth:`create` and a builder function, or by
    subclassing, setting ``type_tag`` and ``output_names`` and implementing
    :meth:`build`. In both cases construction runs the builder immediately and
    then checks every declared output has been bound.

    Attributes:
        graph: The graph the group's resources are registered in.
        name: Logical name of the group.
        type_tag: Component type, e.g. ``custom:network:Network``.
        output_names: Names of the outputs the group exposes.
        parent: Enclosing group, if any.
        children: Resources declared directly in this group.
        groups: Groups nested directly in this group.
        urn: Unique name of the group within the run.

    Example:
        >>> def build(group):
        ...     bucket = group.declare("assets", Bucket, {"tags": {}})
        ...     return {"bucketName": bucket.id}
        >>> storage = ComponentGroup.create(graph, "web", "custom:storage:Site", build,
        ...                                 outputs=["bucketName"])
        >>> graph.export("bucketName", storage.output("bucketName"))
    """

    type_tag: str = ""
    output_names: tuple[str, ...] = ()

    def __init__(
        self,
        graph: ResourceGraph,
        name: str,
        type_tag: Optional[str] = None,
        builder: Optional[Builder] = None,
        parent: Optional["ComponentGroup"] = None,
        output_names: Optional[Iterable[str]] = None,
    ):
        self.graph = graph
        self.name = name
        self.type_tag = type_tag or self.type_tag
        if not self.type_tag:
            raise DeclarationError(f"Component '{name}' has no type tag")
        self.output_names = tuple(output_names if output_names is not None else self.output_names)
        self.parent = parent
        if parent is not None and parent.graph is not graph:
            raise DeclarationError(f"Component '{name}' and its parent belong to different graphs")
        self.children: list[ResourceNode] = []
        self.groups: list[ComponentGroup] = []
        self.urn = graph.make_urn(name, self.type_tag, parent)
        self._outputs: dict[str, DeferredValue] = {}
        graph.register_group(self)

        try:
            bound = builder(self) if builder is not None else self.build()
            for key, value in (bound or {}).items():
                self.bind_output(key, value)
            self._check_outputs_bound()
        except Exception:
            graph.unregister_group(self)
            raise

    @classmethod
    def create(
        cls,
        graph: ResourceGraph,
        name: str,
        type_tag: str,
        builder: Builder,
        parent: Optional["ComponentGroup"] = None,
        outputs: Iterable[str] = (),
    ) -> "ComponentGroup":
        """Declare a group whose children are declared by ``builder``.

        Args:
            graph: The graph to register resources in.
            name: Logical name of the group.
            type_tag: Component type.
            builder: Called with the new group. Declares children through
                the group and returns a mapping of outputs, or binds them with
                :meth:`bind_output` and returns None.
            parent: Enclosing group, if any.
            outputs: Names of the outputs the group exposes.

        Raises:
            IncompleteOutputsError: If the builder leaves an output unbound.
            DeclarationError: If an output is bound to something not derived
                from the group's resources.
        """
        return cls(graph, name, type_tag, builder, parent, outputs)

    def build(self) -> Optional[Mapping[str, Any]]:
        """Declare the group's children; override in subclasses."""
        raise NotImplementedError()

    @property
    def type_chain(self) -> str:
        if self.parent is None:
            return self.type_tag
        return f"{self.parent.type_chain}${self.type_tag}"

    @property
    def name_chain(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent.name_chain}${self.name}"

    def declare(
        self,
        name: str,
        resource_type: ResourceType,
        properties: Optional[Mapping[str, Any]] = None,
        depends_on: Iterable[ResourceNode] = (),
    ) -> ResourceNode:
        """Declare a resource scoped to this group."""
        return self.graph.declare(name, resource_type, properties, self, depends_on)

    def bind_output(self, key: str, value: Any) -> None:
        """Bind a declared output to a value derived from this group's resources.

        A list or tuple of deferred values is combined into a single value.

        Raises:
            NotFoundError: If ``key`` is not a declared output.
            DuplicateNameError: If ``key`` is already bound.
            DeclarationError: If ``value`` is not derived from a resource
                declared in this group or one of its nested groups.
        """
        if key not in self.output_names:
            raise NotFoundError(
                f"Component {self.urn} declares no output '{key}'; "
                f"declared outputs are {list(self.output_names)}"
            )
        if key in self._outputs:
            raise DuplicateNameError(f"Output '{key}' of {self.urn} is already bound")
        if isinstance(value, (list, tuple)):
            value = combine(value)
        if not isinstance(value, DeferredValue):
            raise DeclarationError(
                f"Output '{key}' of {self.urn} must be derived from a resource, "
                f"got {type(value).__name__}"
            )
        descendants = set(self.descendants())
        if not value.origins or not value.origins <= descendants:
            raise DeclarationError(
                f"Output '{key}' of {self.urn} is not derived from the component's resources"
            )
        self._outputs[key] = value

    def output(self, key: str) -> DeferredValue:
        """Return the value bound to a declared output.

        Raises:
            NotFoundError: If ``key`` is not a declared output.
            IncompleteOutputsError: If the output has not been bound yet.
        """
        if key not in self.output_names:
            raise NotFoundError(
                f"Component {self.urn} declares no output '{key}'; "
                f"declared outputs are {list(self.output_names)}"
            )
        try:
            return self._outputs[key]
        except KeyError:
            raise IncompleteOutputsError(
                f"Output '{key}' of {self.urn} is read before being bound"
            ) from None

    @property
    def outputs(self) -> dict[str, DeferredValue]:
        return dict(self._outputs)

    def descendants(self) -> Iterator[ResourceNode]:
        """Resources declared in this group and its nested groups, depth first."""
        yield from self.children
        for group in self.groups:
            yield from group.descendants()

    def _check_outputs_bound(self) -> None:
        unbound = [key for key in self.output_names if key not in self._outputs]
        if unbound:
            raise IncompleteOutputsError(f"Component {self.urn} left outputs {unbound} unbound")
        log.debug("Component %s exposes %s", self.urn, list(self.output_names))

    def __repr__(self):
        return f"<{type(self).__name__} {self.urn}>"
