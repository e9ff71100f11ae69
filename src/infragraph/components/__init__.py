"""Reusable component groups for the ecommerce stack."""

from infragraph.components.cluster import EcsClusterComponent
from infragraph.components.network import NetworkComponent

__all__ = ["EcsClusterComponent", "NetworkComponent"]
