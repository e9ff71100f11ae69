"""The registry of declared resources and their dependency order.

A :class:`ResourceGraph` collects every node, component group, data-source
lookup and stack export a program declares. Declaration is single-threaded and
happens entirely before :meth:`ResourceGraph.resolve_all`, which orders the
nodes topologically and hands them to the resolution engine.
"""

import heapq
import logging
from typing import Any, Iterable, Mapping, Optional, TYPE_CHECKING

from infragraph.config import EngineConfig
from infragraph.deferred import DeferredValue, contains_deferred
from infragraph.errors import (
    CyclicDependencyError,
    DeclarationError,
    DuplicateNameError,
    InvalidStateError,
)
from infragraph.pipeline import TransformationPipeline
from infragraph.resolution import Resolver
from infragraph.resource import ResourceNode, ResourceType

if TYPE_CHECKING:
    from infragraph.component import ComponentGroup
    from infragraph.provider import Provider

__all__ = ["ResourceGraph", "Lookup"]

log = logging.getLogger("infragraph.graph")


class Lookup:
    """A pending data-source read, answered by :meth:`Provider.invoke`."""

    def __init__(self, token: str, args: Mapping[str, Any]):
        self.token = token
        self.args = dict(args)
        self.result: DeferredValue = DeferredValue(label=token)

    def __repr__(self):
        return f"<Lookup {self.token} {self.args!r}>"


class _DependencyGraph:
    """
    Internal helper to traverse the dependency edges between nodes.

    Traversal yields nodes in an order where each node follows all of its
    dependencies. Whenever several nodes are ready at once, the one declared
    first is yielded first, so identical programs produce identical orders.
    """

    def __init__(self, nodes: Iterable[ResourceNode]):
        self._dependencies: dict[ResourceNode, set[ResourceNode]] = {
            node: set(node.dependencies) for node in nodes
        }
        self._dependants: dict[ResourceNode, list[ResourceNode]] = {
            node: [] for node in self._dependencies
        }
        for node, dependencies in self._dependencies.items():
            for dependency in dependencies:
                self._dependants[dependency].append(node)

    def traverse(self):
        """
        Yields:
            Nodes in dependency order.

        Raises:
            CyclicDependencyError: If the remaining nodes depend on each other.
        """
        ready = [
            (node.index, node)
            for node, dependencies in self._dependencies.items()
            if len(dependencies) == 0
        ]
        heapq.heapify(ready)

        while ready:
            _, next_node = heapq.heappop(ready)
            yield next_node
            self._remove_dependency(next_node, ready)

        if len(self._dependencies) > 0:
            remaining = sorted(self._dependencies, key=lambda node: node.index)
            raise CyclicDependencyError([node.urn for node in remaining])

    def _remove_dependency(self, resolved: ResourceNode, ready: list):
        del self._dependencies[resolved]

        for dependant in self._dependants[resolved]:
            dependencies = self._dependencies[dependant]
            dependencies.discard(resolved)
            if len(dependencies) == 0:
                heapq.heappush(ready, (dependant.index, dependant))


class ResourceGraph:
    """Registry of everything declared during one run.

    Args:
        project: Project name, used in URNs.
        stack: Stack name, used in URNs.
        pipeline: Transformations applied to every node before submission.
            A fresh, empty pipeline is created when omitted.

    Example:
        >>> graph = ResourceGraph("shop", "dev")
        >>> vpc = graph.declare("main", Vpc, {"cidr_block": "10.0.0.0/16"})
        >>> graph.declare("igw", InternetGateway, {"vpc_id": vpc.id})
        >>> graph.export("vpcId", vpc.id)
        >>> outputs = await graph.resolve_all(provider)
    """

    def __init__(
        self,
        project: str = "infragraph",
        stack: str = "dev",
        pipeline: Optional[TransformationPipeline] = None,
    ):
        self.project = project
        self.stack = stack
        self.pipeline = pipeline if pipeline is not None else TransformationPipeline()
        self.groups: list["ComponentGroup"] = []
        self.lookups: list[Lookup] = []
        self.exports: dict[str, Any] = {}
        self._nodes: dict[str, ResourceNode] = {}
        self._urns: set[str] = set()
        self._sealed = False
        self._declared = 0

    @property
    def nodes(self) -> list[ResourceNode]:
        """Registered nodes in declaration order."""
        return list(self._nodes.values())

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, node: ResourceNode) -> bool:
        return self._nodes.get(node.urn) is node

    def __getitem__(self, urn: str) -> ResourceNode:
        return self._nodes[urn]

    def declare(
        self,
        name: str,
        resource_type: ResourceType,
        properties: Optional[Mapping[str, Any]] = None,
        parent: Optional["ComponentGroup"] = None,
        depends_on: Iterable[ResourceNode] = (),
    ) -> ResourceNode:
        """Declare a resource and register it.

        Args:
            name: Logical name, unique among same-typed siblings.
            resource_type: The provider type of the resource.
            properties: Input properties. Any deferred values nested in them
                become dependency edges.
            parent: The component group declaring the resource.
            depends_on: Extra nodes this one must follow.

        Returns:
            The registered :class:`ResourceNode`.

        Raises:
            DuplicateNameError: If the name is already taken in this scope.
            DeclarationError: If a dependency belongs to another graph.
        """
        node = ResourceNode(
            name,
            resource_type,
            properties or {},
            urn=self.make_urn(name, resource_type.token, parent),
            index=self._declared,
            parent=parent,
            depends_on=depends_on,
        )
        self.register(node)
        if parent is not None:
            parent.children.append(node)
        return node

    def register(self, node: ResourceNode) -> None:
        """Add a node and its dependency edges to the registry.

        Cycles cannot be detected here since nodes can gain edges after
        registration; :meth:`topological_order` checks for them.
        """
        self._check_open()
        self._check_edges(node)
        self._claim_urn(node.urn)
        self._nodes[node.urn] = node
        self._declared += 1
        log.debug(
            "Declared %s depending on %s",
            node.urn, [dep.name for dep in node.dependencies],
        )

    def register_group(self, group: "ComponentGroup") -> None:
        self._check_open()
        self._claim_urn(group.urn)
        if group.parent is None:
            self.groups.append(group)
        else:
            group.parent.groups.append(group)
        log.debug("Declared component %s", group.urn)

    def unregister_group(self, group: "ComponentGroup") -> None:
        """Remove a group, its nested groups and every resource they declared.

        Used when a group fails to build, so that nothing it declared is
        provisioned and its name can be declared again.
        """
        self._check_open()
        for node in group.descendants():
            del self._nodes[node.urn]
            self._urns.discard(node.urn)
        self._release_group_urns(group)
        siblings = self.groups if group.parent is None else group.parent.groups
        if group in siblings:
            siblings.remove(group)
        log.debug("Withdrew component %s", group.urn)

    def _release_group_urns(self, group: "ComponentGroup") -> None:
        self._urns.discard(group.urn)
        for nested in group.groups:
            self._release_group_urns(nested)

    def lookup(self, token: str, args: Optional[Mapping[str, Any]] = None) -> DeferredValue:
        """Declare a data-source read performed when the run starts.

        Args:
            token: The provider function to invoke.
            args: Literal arguments for the call.

        Returns:
            A deferred value resolved with the provider's answer.
        """
        self._check_open()
        args = args or {}
        if contains_deferred(args):
            raise DeclarationError(f"Arguments of lookup {token} must be literal values")
        lookup = Lookup(token, args)
        self.lookups.append(lookup)
        return lookup.result

    def export(self, name: str, value: Any) -> None:
        """Expose a value as a stack output once the run succeeds."""
        self._check_open()
        if name in self.exports:
            raise DuplicateNameError(f"Output '{name}' is already exported")
        self.exports[name] = value

    def make_urn(
        self, name: str, type_token: str, parent: Optional["ComponentGroup"] = None
    ) -> str:
        """Build ``urn:infragraph:<stack>::<project>::<type chain>::<name chain>``.

        Both chains run from the outermost group down to the named item,
        joined by ``$``, so equal names in different scopes never collide.
        """
        if parent is None:
            type_chain, name_chain = type_token, name
        else:
            type_chain = f"{parent.type_chain}${type_token}"
            name_chain = f"{parent.name_chain}${name}"
        return f"urn:infragraph:{self.stack}::{self.project}::{type_chain}::{name_chain}"

    def topological_order(self) -> list[ResourceNode]:
        """Return every node, each after all of its dependencies.

        Raises:
            CyclicDependencyError: If the dependency edges contain a cycle.
            DeclarationError: If an edge added after registration points
                outside this graph.
        """
        for node in self._nodes.values():
            self._check_edges(node)
        return list(_DependencyGraph(self._nodes.values()).traverse())

    async def resolve_all(
        self, provider: "Provider", config: Optional[EngineConfig] = None
    ) -> dict[str, Any]:
        """Provision every node and return the resolved stack outputs.

        Raises:
            CyclicDependencyError: Before anything is submitted, if the graph
                has a cycle.
            ProvisionFailure: If any lookup-dependent value, transformation or
                submission fails.
            InvalidStateError: If the graph has already been resolved, or if
                a node's outputs were settled outside the engine.
        """

        if self._sealed:
            raise InvalidStateError("This graph has already been resolved")
        order = self.topological_order()
        self._sealed = True
        self.pipeline.seal()
        resolver = Resolver(self, provider, config or EngineConfig())
        return await resolver.run(order)

    def _check_edges(self, node: ResourceNode) -> None:
        foreign = [dep.urn for dep in node.dependencies if dep not in self]
        if foreign:
            raise DeclarationError(
                f"{node.urn} depends on resources outside this graph: {foreign}"
            )

    def _claim_urn(self, urn: str) -> None:
        if urn in self._urns:
            raise DuplicateNameError(f"{urn} is already declared")
        self._urns.add(urn)

    def _check_open(self) -> None:
        if self._sealed:
            raise InvalidStateError("Declarations are closed once resolution has started")
