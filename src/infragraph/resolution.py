"""Concurrent provisioning of a resource graph.

The :class:`Resolver` starts one task per node, in topological order. A node's
task waits for the tasks of the nodes it depends on, resolves its property
bag, runs it through the graph's transformation pipeline and submits it to the
provider. At most ``max_concurrency`` provider calls are in flight at once;
independent branches of the graph proceed concurrently.

The first failure cancels the run: nodes that have not started submitting are
skipped, submissions already in flight are allowed to complete, and the run
raises a single :class:`~infragraph.errors.ProvisionFailure` naming the first
failing node.
"""

import asyncio
import logging
from typing import Any, Optional, TYPE_CHECKING

from infragraph.deferred import resolve_nested
from infragraph.errors import InvalidStateError, ProvisionFailure
from infragraph.resource import NodeStatus, ResourceNode

if TYPE_CHECKING:
    from infragraph.config import EngineConfig
    from infragraph.graph import Lookup, ResourceGraph
    from infragraph.provider import Provider

__all__ = ["Resolver"]

log = logging.getLogger("infragraph.resolution")


class Resolver:
    """Provision the nodes of one graph through one provider.

    Attributes:
        submitted: Nodes in the order their submissions started.
        failure: The failure that cancelled the run, if any.
    """

    def __init__(self, graph: "ResourceGraph", provider: "Provider", config: "EngineConfig"):
        self._graph = graph
        self._provider = provider
        self._config = config
        self._slots: Optional[asyncio.Semaphore] = None
        self.submitted: list[ResourceNode] = []
        self.failure: Optional[ProvisionFailure] = None

    async def run(self, order: list[ResourceNode]) -> dict[str, Any]:
        """Provision ``order``, which must be a topological order of the graph.

        Returns:
            The graph's exports with every deferred value resolved.

        Raises:
            ProvisionFailure: If any node fails.
            InvalidStateError: If a value the engine owns was settled behind
                its back. Never converted into a node failure.
        """
        self._slots = asyncio.Semaphore(self._config.max_concurrency)
        log.info(
            "Provisioning %d resources (max %d concurrent provider calls)",
            len(order), self._config.max_concurrency,
        )

        lookup_tasks = [
            asyncio.create_task(self._invoke(lookup), name=lookup.token)
            for lookup in self._graph.lookups
        ]
        tasks: dict[ResourceNode, asyncio.Task] = {}
        for node in order:
            dependency_tasks = [tasks[dependency] for dependency in node.dependencies]
            tasks[node] = asyncio.create_task(
                self._provision(node, dependency_tasks), name=node.urn
            )
        all_tasks = [*lookup_tasks, *tasks.values()]
        try:
            await asyncio.gather(*all_tasks)
        except InvalidStateError:
            for task in all_tasks:
                task.cancel()
            raise

        if self.failure is not None:
            skipped = [node.name for node in order if node.status is NodeStatus.SKIPPED]
            log.error(
                "Provisioning failed at %s; %d resources skipped: %s",
                self.failure.urn, len(skipped), skipped,
            )
            raise self.failure from self.failure.cause

        log.info("Provisioned %d resources", len(order))
        return await self._with_timeout(resolve_nested(self._graph.exports))

    async def _invoke(self, lookup: "Lookup") -> None:
        async with self._slots:
            log.debug("Invoking %s with %r", lookup.token, lookup.args)
            try:
                result = await self._provider.invoke(lookup.token, lookup.args)
            except Exception as ex:
                log.warning("Lookup %s failed: %s", lookup.token, ex)
                lookup.result.fail(ex)
            else:
                lookup.result.resolve(result)

    async def _provision(self, node: ResourceNode, dependency_tasks: list[asyncio.Task]) -> bool:
        if dependency_tasks and not all(await asyncio.gather(*dependency_tasks)):
            self._skip(node, "a dependency was not provisioned")
            return False
        if self.failure is not None:
            self._skip(node, "the run was cancelled")
            return False

        try:
            properties = await self._with_timeout(resolve_nested(node.properties))
        except InvalidStateError:
            raise
        except Exception as ex:
            self._fail(node, ex)
            return False

        async with self._slots:
            # Checked while holding a slot so that a failing node, which sets
            # the flag before releasing its slot, stops every later start.
            if self.failure is not None:
                self._skip(node, "the run was cancelled")
                return False
            try:
                transformed = self._graph.pipeline.apply(properties)
                node.status = NodeStatus.SUBMITTED
                self.submitted.append(node)
                log.info("Submitting %s", node.urn)
                response = await self._provider.submit(node.resource_type, transformed)
                node._resolve_outputs(response)
            except InvalidStateError:
                raise
            except Exception as ex:
                self._fail(node, ex)
                return False

        log.debug("Resolved %s", node.urn)
        return True

    async def _with_timeout(self, awaitable):
        if self._config.value_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self._config.value_timeout)

    def _fail(self, node: ResourceNode, cause: Exception) -> None:
        failure = ProvisionFailure(node.identity, node.urn, cause)
        log.error("%s", failure)
        if self.failure is None:
            self.failure = failure
        node._abandon(NodeStatus.FAILED, failure)

    def _skip(self, node: ResourceNode, reason: str) -> None:
        log.info("Skipping %s: %s", node.urn, reason)
        node._abandon(NodeStatus.SKIPPED, self.failure)
