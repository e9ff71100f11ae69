"""The ecommerce stack: a bucket, a two-zone network and an ECS cluster."""

import logging
from typing import Any, Optional

from infragraph import aws
from infragraph.components import EcsClusterComponent, NetworkComponent
from infragraph.config import StackConfig
from infragraph.graph import ResourceGraph
from infragraph.policies import default_tags
from infragraph.provider import Provider

__all__ = ["declare_stack", "run_stack"]

log = logging.getLogger("infragraph.program")


def declare_stack(config: StackConfig) -> ResourceGraph:
    """Declare every resource of the stack and its exports.

    Returns:
        The populated graph, ready for :meth:`ResourceGraph.resolve_all`.
    """
    graph = ResourceGraph(config.project, config.stack)
    graph.pipeline.register(default_tags(config.default_tags))

    bucket = graph.declare(config.bucket_name, aws.Bucket, {"tags": {}})
    graph.export("bucketName", bucket.id)

    network = NetworkComponent(graph, config.project, config.network)
    cluster = EcsClusterComponent(
        graph,
        config.project,
        config.cluster,
        vpc_id=network.vpc_id,
        private_subnet_ids=network.private_subnet_ids,
    )

    graph.export("clusterArn", cluster.cluster_arn)
    graph.export("clusterName", cluster.cluster_name)
    graph.export("vpcId", network.vpc_id)
    graph.export("publicSubnetIds", network.public_subnet_ids)
    graph.export("privateSubnetIds", network.private_subnet_ids)

    log.info("Declared %d resources for stack %s", len(graph), config.stack)
    return graph


async def run_stack(provider: Provider, config: Optional[StackConfig] = None) -> dict[str, Any]:
    """Declare the stack and provision it through ``provider``.

    Returns:
        The stack outputs, keyed by export name.

    Raises:
        ProvisionFailure: If any resource could not be provisioned.
    """
    config = config or StackConfig()
    graph = declare_stack(config)
    return await graph.resolve_all(provider, config.engine)
