"""Resource types and the nodes declared from them."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, TYPE_CHECKING

from infragraph.deferred import DeferredValue, collect_deferred
from infragraph.errors import InvalidStateError, NotFoundError, ProvisionFailure

if TYPE_CHECKING:
    from infragraph.component import ComponentGroup

__all__ = ["ResourceType", "ResourceNode", "NodeStatus", "IMPLICIT_OUTPUTS"]

log = logging.getLogger("infragraph.resource")

IMPLICIT_OUTPUTS = frozenset({"id"})
"""Outputs every resource type declares, whether listed or not."""


@dataclass(frozen=True)
class ResourceType:
    """A provider resource type: its token and the outputs it reports.

    Attributes:
        token: Provider type token, e.g. ``aws:ec2/vpc:Vpc``.
        outputs: Names of the attributes the provider returns after creation.
            ``id`` is always included.

    Example:
        >>> Vpc = ResourceType("aws:ec2/vpc:Vpc", {"arn", "cidr_block"})
        >>> sorted(Vpc.outputs)
        ['arn', 'cidr_block', 'id']
    """

    token: str
    outputs: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "outputs", frozenset(self.outputs) | IMPLICIT_OUTPUTS)

    def declares(self, key: str) -> bool:
        return key in self.outputs

    def __str__(self):
        return self.token


class NodeStatus(Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    RESOLVED = "resolved"
    FAILED = "failed"
    SKIPPED = "skipped"


class ResourceNode:
    """A single declared resource.

    Nodes are created through :meth:`ResourceGraph.declare` or
    :meth:`ComponentGroup.declare`, never directly by programs. On creation a
    node scans its properties for deferred values and records an edge to each
    value's originating nodes; those edges are all the graph needs to order
    submissions.

    Attributes:
        name: Logical name, unique within the parent scope.
        resource_type: The provider type this node declares.
        properties: Input properties; values may be literals, deferred values,
            or lists and dicts nesting either.
        parent: The component group that declared this node, if any. Only used
            for naming and bookkeeping.
        urn: Unique resource name within the run.
        index: Declaration order within the graph.
        status: Where the node is in its lifecycle.
    """

    def __init__(
        self,
        name: str,
        resource_type: ResourceType,
        properties: Mapping[str, Any],
        urn: str,
        index: int,
        parent: Optional["ComponentGroup"] = None,
        depends_on: Iterable["ResourceNode"] = (),
    ):
        self.name = name
        self.resource_type = resource_type
        self.properties = dict(properties)
        self.urn = urn
        self.index = index
        self.parent = parent
        self.status = NodeStatus.PENDING
        self.outputs: dict[str, DeferredValue] = {
            key: DeferredValue({self}, label=f"{name}.{key}")
            for key in sorted(resource_type.outputs)
        }
        self._dependencies: set[ResourceNode] = {
            origin
            for deferred in collect_deferred(self.properties)
            for origin in deferred.origins
        }
        self._dependencies.update(depends_on)

    @property
    def identity(self) -> tuple[str, str]:
        return self.name, self.resource_type.token

    @property
    def id(self) -> DeferredValue[str]:
        return self.outputs["id"]

    @property
    def dependencies(self) -> list["ResourceNode"]:
        """Nodes this node depends on, in declaration order."""
        return sorted(self._dependencies, key=lambda node: node.index)

    def add_dependency(self, node: "ResourceNode") -> None:
        """Record an explicit dependency that no property expresses."""
        self._dependencies.add(node)

    def output(self, key: str) -> DeferredValue:
        """Return the deferred value of a declared output.

        Raises:
            NotFoundError: If ``key`` is not an output of this node's type.
        """
        try:
            return self.outputs[key]
        except KeyError:
            raise NotFoundError(
                f"{self.resource_type.token} has no output '{key}'; "
                f"declared outputs are {sorted(self.outputs)}"
            ) from None

    def _resolve_outputs(self, response: Mapping[str, Any]) -> None:
        missing = [key for key in self.outputs if key not in response]
        if missing:
            raise ValueError(
                f"provider response for {self.resource_type.token} is missing "
                f"declared outputs {missing}"
            )
        settled = [key for key, deferred in self.outputs.items() if deferred.is_settled]
        if settled:
            raise InvalidStateError(f"Outputs {settled} of {self.urn} are already settled")
        for key, deferred in self.outputs.items():
            deferred.resolve(response[key])
        self.status = NodeStatus.RESOLVED

    def _abandon(self, status: NodeStatus, failure: ProvisionFailure) -> None:
        self.status = status
        for deferred in self.outputs.values():
            if not deferred.is_settled:
                deferred.fail(failure)

    def __repr__(self):
        return f"<ResourceNode {self.urn} {self.status.value}>"
