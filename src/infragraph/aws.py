"""AWS resource types used by the bundled components."""

from infragraph.resource import ResourceType

__all__ = [
    "Vpc",
    "Subnet",
    "InternetGateway",
    "Eip",
    "NatGateway",
    "RouteTable",
    "Route",
    "RouteTableAssociation",
    "EcsCluster",
    "Bucket",
]

Vpc = ResourceType(
    "aws:ec2/vpc:Vpc",
    {"arn", "cidr_block", "default_route_table_id", "main_route_table_id", "owner_id"},
)
Subnet = ResourceType(
    "aws:ec2/subnet:Subnet",
    {"arn", "availability_zone", "availability_zone_id", "cidr_block", "vpc_id"},
)
InternetGateway = ResourceType("aws:ec2/internetGateway:InternetGateway", {"arn", "owner_id"})
Eip = ResourceType("aws:ec2/eip:Eip", {"allocation_id", "public_ip", "public_dns"})
NatGateway = ResourceType(
    "aws:ec2/natGateway:NatGateway",
    {"network_interface_id", "private_ip", "public_ip"},
)
RouteTable = ResourceType("aws:ec2/routeTable:RouteTable", {"arn", "owner_id"})
Route = ResourceType("aws:ec2/route:Route", {"state", "origin"})
RouteTableAssociation = ResourceType("aws:ec2/routeTableAssociation:RouteTableAssociation")
EcsCluster = ResourceType("aws:ecs/cluster:Cluster", {"arn", "name"})
Bucket = ResourceType("aws:s3/bucket:Bucket", {"arn", "bucket", "bucket_domain_name", "region"})
