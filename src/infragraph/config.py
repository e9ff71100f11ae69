"""Stack configuration, loaded from YAML and validated with pydantic.

A stack file looks like::

    project: ecommerce
    stack: dev
    bucket_name: my-bucket-1234567890-demo
    default_tags:
      CreatedBy: infragraph
    engine:
      max_concurrency: 10
      value_timeout: 300
    network:
      vpc_cidr: 10.0.0.0/16
      public_subnet_cidrs: [10.0.0.0/24, 10.0.1.0/24]
      private_subnet_cidrs: [10.0.128.0/24, 10.0.129.0/24]
    cluster:
      cluster_name: ECommerce
      enable_container_insights: true
"""

import ipaddress
from typing import Any, Optional, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from infragraph.errors import ConfigError

__all__ = [
    "ConfigModel",
    "EngineConfig",
    "NetworkArgs",
    "ClusterArgs",
    "StackConfig",
    "STACK_FILE",
]

STACK_FILE = "stack.yaml"


class ConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_dict(cls, obj: Optional[dict]) -> Self:
        try:
            return cls.model_validate(obj or {})
        except ValidationError as ex:
            raise ConfigError(str(ex)) from ex


class EngineConfig(ConfigModel):
    """Settings of the resolution engine.

    Attributes:
        max_concurrency: Maximum number of provider calls in flight at once.
        value_timeout: Seconds to wait for a resource's property values once
            its dependencies have resolved, or None to wait indefinitely.
            Only values that do not come from another resource, such as
            lookups resolved outside the graph, can still be pending then.
    """

    max_concurrency: int = Field(default=10, ge=1)
    value_timeout: Optional[float] = Field(default=None, gt=0)


class NetworkArgs(ConfigModel):
    vpc_cidr: str = "10.0.0.0/16"
    public_subnet_cidrs: tuple[str, str] = ("10.0.0.0/24", "10.0.1.0/24")
    private_subnet_cidrs: tuple[str, str] = ("10.0.128.0/24", "10.0.129.0/24")

    @field_validator("vpc_cidr")
    @classmethod
    def _valid_vpc_cidr(cls, value: str) -> str:
        ipaddress.ip_network(value)
        return value

    @model_validator(mode="after")
    def _subnets_inside_vpc(self) -> Self:
        vpc = ipaddress.ip_network(self.vpc_cidr)
        subnets = [*self.public_subnet_cidrs, *self.private_subnet_cidrs]
        networks = [ipaddress.ip_network(cidr) for cidr in subnets]
        outside = [str(n) for n in networks if n.version != vpc.version or not n.subnet_of(vpc)]
        if outside:
            raise ValueError(f"subnets {outside} are not inside VPC {vpc}")
        for i, network in enumerate(networks):
            for other in networks[i + 1:]:
                if network.overlaps(other):
                    raise ValueError(f"subnets {network} and {other} overlap")
        return self


class ClusterArgs(ConfigModel):
    cluster_name: str = "ECommerce"
    enable_container_insights: bool = True


class StackConfig(ConfigModel):
    project: str = "ecommerce"
    stack: str = "dev"
    bucket_name: str = "my-bucket-1234567890-infragraph-demo"
    default_tags: dict[str, str] = Field(default_factory=lambda: {"CreatedBy": "infragraph"})
    engine: EngineConfig = Field(default_factory=EngineConfig)
    network: NetworkArgs = Field(default_factory=NetworkArgs)
    cluster: ClusterArgs = Field(default_factory=ClusterArgs)

    @staticmethod
    def parse(path: str = STACK_FILE) -> "StackConfig":
        """Load and validate a stack file.

        Raises:
            ConfigError: If the file cannot be read, is not valid YAML, or
                does not describe a valid stack.
        """
        try:
            with open(path, "r") as file:
                obj: Any = yaml.safe_load(file)
        except (OSError, yaml.YAMLError) as ex:
            raise ConfigError(str(ex), path) from ex
        if obj is not None and not isinstance(obj, dict):
            raise ConfigError("stack file must contain a mapping", path)
        try:
            return StackConfig.model_validate(obj or {})
        except ValidationError as ex:
            raise ConfigError(str(ex), path) from ex
