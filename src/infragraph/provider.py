"""The interface to the service that creates resources, and an in-memory stand-in."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Mapping, Optional, Union

from infragraph.resource import ResourceType

__all__ = ["Provider", "InMemoryProvider", "AVAILABILITY_ZONES"]

log = logging.getLogger("infragraph.provider")

AVAILABILITY_ZONES = "aws:index/getAvailabilityZones:getAvailabilityZones"


class Provider(ABC):
    """Creates resources from resolved property bags.

    Each node is submitted exactly once and its submission awaited to
    completion; retries and backoff are the provider's own business.
    """

    @abstractmethod
    async def submit(
        self, resource_type: ResourceType, properties: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        """Create a resource.

        Args:
            resource_type: The type of the resource to create.
            properties: Fully resolved, transformed input properties.

        Returns:
            The resource's attributes; must include every output declared by
            ``resource_type``.
        """
        raise NotImplementedError()

    async def invoke(self, token: str, args: Mapping[str, Any]) -> Any:
        """Answer a data-source lookup."""
        raise NotImplementedError(f"{type(self).__name__} does not support lookups")


class InMemoryProvider(Provider):
    """Provider that fabricates resources without contacting anything.

    IDs are derived from the type token and a per-type counter taken in
    submission order. Repeated runs produce the same IDs when submissions
    start in the same order, e.g. with ``max_concurrency=1``; with more
    slots, same-typed resources may swap IDs. Outputs that echo an input
    property (``cidr_block``, ``name``...) take the submitted value.

    Args:
        lookups: Answers for :meth:`invoke`, keyed by token. A value may be a
            callable taking the lookup arguments.
        latency: Seconds each call takes.
        region: Region used in fabricated ARNs.
        account_id: Account used in fabricated ARNs.

    Attributes:
        submissions: ``(type token, properties)`` pairs in submission order.
        invocations: ``(token, args)`` pairs in invocation order.
    """

    def __init__(
        self,
        lookups: Optional[Mapping[str, Union[Any, Callable[[Mapping[str, Any]], Any]]]] = None,
        latency: float = 0.0,
        region: str = "us-east-1",
        account_id: str = "123456789012",
    ):
        self._lookups = {
            AVAILABILITY_ZONES: {
                "names": [f"{region}a", f"{region}b"],
                "zone_ids": ["use1-az1", "use1-az2"],
            },
            **(lookups or {}),
        }
        self._latency = latency
        self._region = region
        self._account_id = account_id
        self._counters: dict[str, int] = defaultdict(int)
        self.submissions: list[tuple[str, dict[str, Any]]] = []
        self.invocations: list[tuple[str, dict[str, Any]]] = []

    async def submit(
        self, resource_type: ResourceType, properties: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        self.submissions.append((resource_type.token, dict(properties)))
        if self._latency:
            await asyncio.sleep(self._latency)
        return self._fabricate(resource_type, properties)

    async def invoke(self, token: str, args: Mapping[str, Any]) -> Any:
        self.invocations.append((token, dict(args)))
        if self._latency:
            await asyncio.sleep(self._latency)
        if token not in self._lookups:
            raise LookupError(f"No result registered for lookup {token}")
        answer = self._lookups[token]
        return answer(args) if callable(answer) else answer

    def _fabricate(self, resource_type: ResourceType, properties: Mapping[str, Any]) -> dict[str, Any]:
        service, kind = _split_token(resource_type.token)
        self._counters[resource_type.token] += 1
        resource_id = f"{kind}-{self._counters[resource_type.token]:017x}"
        attributes = {
            "id": resource_id,
            "arn": f"arn:aws:{service}:{self._region}:{self._account_id}:{kind}/{resource_id}",
        }
        response = {}
        for key in resource_type.outputs:
            if key in attributes:
                response[key] = attributes[key]
            elif key in properties:
                response[key] = properties[key]
            else:
                response[key] = f"{resource_id}-{key.replace('_', '-')}"
        log.debug("Fabricated %s %s", resource_type.token, resource_id)
        return response


def _split_token(token: str) -> tuple[str, str]:
    """Split ``aws:ec2/natGateway:NatGateway`` into ``("ec2", "natgateway")``."""
    _, module, kind = token.split(":", 2)
    return module.split("/")[0], kind.lower()
