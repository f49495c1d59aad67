"""Topology engine: ownership lineage, descendants and GitOps correlation."""

from kubetopo.topology.ancestors import AncestorResolver
from kubetopo.topology.applications import ApplicationCorrelator, parse_instance_label, parse_tracking_id
from kubetopo.topology.catalog import ResourceTypeCatalog, plural_for_kind
from kubetopo.topology.descendants import DescendantResolver
from kubetopo.topology.management import IN_CLUSTER, ManagementTopologyCache
from kubetopo.topology.resolver import DependencyResolver

__all__ = [
    "IN_CLUSTER",
    "AncestorResolver",
    "ApplicationCorrelator",
    "DependencyResolver",
    "DescendantResolver",
    "ManagementTopologyCache",
    "ResourceTypeCatalog",
    "parse_instance_label",
    "parse_tracking_id",
    "plural_for_kind",
]
