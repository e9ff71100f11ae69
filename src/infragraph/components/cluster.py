"""An ECS cluster for the services that will run in the network."""

from typing import Any, Optional

from infragraph import aws
from infragraph.component import ComponentGroup
from infragraph.config import ClusterArgs
from infragraph.deferred import DeferredValue
from infragraph.graph import ResourceGraph

__all__ = ["EcsClusterComponent"]


class EcsClusterComponent(ComponentGroup):
    """An ECS cluster, optionally with Container Insights.

    ``vpc_id`` and ``private_subnet_ids`` are kept for the services and
    security groups that will be declared alongside the cluster; the cluster
    itself does not use them.

    Outputs:
        clusterId, clusterArn, clusterName
    """

    type_tag = "custom:ecs:Cluster"
    output_names = ("clusterId", "clusterArn", "clusterName")

    def __init__(
        self,
        graph: ResourceGraph,
        name: str,
        args: ClusterArgs,
        vpc_id: Optional[DeferredValue] = None,
        private_subnet_ids: Optional[DeferredValue] = None,
        parent: Optional[ComponentGroup] = None,
    ):
        self.args = args
        self.vpc_id = vpc_id
        self.private_subnet_ids = private_subnet_ids
        super().__init__(graph, name, parent=parent)

    @property
    def cluster_arn(self) -> DeferredValue:
        return self.output("clusterArn")

    @property
    def cluster_name(self) -> DeferredValue:
        return self.output("clusterName")

    def build(self) -> dict[str, Any]:
        insights = "enabled" if self.args.enable_container_insights else "disabled"
        self.cluster = self.declare(f"{self.name}-cluster", aws.EcsCluster, {
            "name": self.args.cluster_name,
            "settings": [{"name": "containerInsights", "value": insights}],
            "tags": {"Name": self.args.cluster_name},
        })
        return {
            "clusterId": self.cluster.id,
            "clusterArn": self.cluster.output("arn"),
            "clusterName": self.cluster.output("name"),
        }
