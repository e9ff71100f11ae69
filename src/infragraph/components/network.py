"""A two-zone VPC with public and private subnets."""

from typing import Optional

from infragraph import aws
from infragraph.component import ComponentGroup
from infragraph.config import NetworkArgs
from infragraph.deferred import DeferredValue
from infragraph.graph import ResourceGraph
from infragraph.provider import AVAILABILITY_ZONES

__all__ = ["NetworkComponent"]

ZONE_COUNT = 2


class NetworkComponent(ComponentGroup):
    """VPC, internet gateway, and per-zone subnets, NAT gateways and routes.

    Each of the two availability zones gets a public subnet routed through
    the internet gateway and a private subnet routed through that zone's NAT
    gateway.

    Outputs:
        vpcId: ID of the VPC.
        publicSubnetIds: IDs of the public subnets, zone order.
        privateSubnetIds: IDs of the private subnets, zone order.
    """

    type_tag = "custom:network:Network"
    output_names = ("vpcId", "publicSubnetIds", "privateSubnetIds")

    def __init__(
        self,
        graph: ResourceGraph,
        name: str,
        args: NetworkArgs,
        parent: Optional[ComponentGroup] = None,
    ):
        self.args = args
        super().__init__(graph, name, parent=parent)

    @property
    def vpc_id(self):
        return self.output("vpcId")

    @property
    def public_subnet_ids(self):
        return self.output("publicSubnetIds")

    @property
    def private_subnet_ids(self):
        return self.output("privateSubnetIds")

    def build(self):
        name, args = self.name, self.args

        vpc = self.declare(f"{name}-vpc", aws.Vpc, {
            "cidr_block": args.vpc_cidr,
            "enable_dns_hostnames": True,
            "enable_dns_support": True,
            "tags": {"Name": f"{name} VPC"},
        })
        igw = self.declare(f"{name}-igw", aws.InternetGateway, {
            "vpc_id": vpc.id,
            "tags": {"Name": f"{name} internet gateway"},
        })
        zone_names = self.graph.lookup(AVAILABILITY_ZONES, {"state": "available"})["names"]

        public_subnets = [
            self.declare(f"{name}-public-subnet-{n}", aws.Subnet, {
                "vpc_id": vpc.id,
                "cidr_block": args.public_subnet_cidrs[n - 1],
                "availability_zone": zone_names[n - 1],
                "map_public_ip_on_launch": True,
                "tags": {"Name": f"{name} public subnet {n}"},
            })
            for n in range(1, ZONE_COUNT + 1)
        ]
        private_subnets = [
            self.declare(f"{name}-private-subnet-{n}", aws.Subnet, {
                "vpc_id": vpc.id,
                "cidr_block": args.private_subnet_cidrs[n - 1],
                "availability_zone": zone_names[n - 1],
                "tags": {"Name": f"{name} private subnet {n}"},
            })
            for n in range(1, ZONE_COUNT + 1)
        ]

        nat_gateways = []
        for n, subnet in enumerate(public_subnets, start=1):
            eip = self.declare(f"{name}-nat-eip-{n}", aws.Eip, {
                "domain": "vpc",
                "tags": {"Name": f"{name} NAT EIP {n}"},
            })
            nat_gateways.append(self.declare(f"{name}-nat-gw-{n}", aws.NatGateway, {
                "subnet_id": subnet.id,
                "allocation_id": eip.id,
                "tags": {"Name": f"{name} NAT gateway {n}"},
            }))

        public_rt = self.declare(f"{name}-public-rt", aws.RouteTable, {
            "vpc_id": vpc.id,
            "tags": {"Name": f"{name} public route table"},
        })
        self.declare(f"{name}-public-route", aws.Route, {
            "route_table_id": public_rt.id,
            "destination_cidr_block": "0.0.0.0/0",
            "gateway_id": igw.id,
        })
        for n, subnet in enumerate(public_subnets, start=1):
            self.declare(f"{name}-public-rta-{n}", aws.RouteTableAssociation, {
                "subnet_id": subnet.id,
                "route_table_id": public_rt.id,
            })

        for n, (subnet, nat_gateway) in enumerate(zip(private_subnets, nat_gateways), start=1):
            private_rt = self.declare(f"{name}-private-rt-{n}", aws.RouteTable, {
                "vpc_id": vpc.id,
                "tags": {"Name": f"{name} private route table {n}"},
            })
            self.declare(f"{name}-private-route-{n}", aws.Route, {
                "route_table_id": private_rt.id,
                "destination_cidr_block": "0.0.0.0/0",
                "nat_gateway_id": nat_gateway.id,
            })
            self.declare(f"{name}-private-rta-{n}", aws.RouteTableAssociation, {
                "subnet_id": subnet.id,
                "route_table_id": private_rt.id,
            })

        return {
            "vpcId": vpc.id,
            "publicSubnetIds": DeferredValue.all(subnet.id for subnet in public_subnets),
            "privateSubnetIds": DeferredValue.all(subnet.id for subnet in private_subnets),
        }
