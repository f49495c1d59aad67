"""Prometheus metrics exported on ``/metrics``."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

dependency_requests_total = Counter(
    "kubetopo_dependency_requests_total",
    "Dependency resolution requests by outcome.",
    ["outcome"],  # ok | not_found | timeout | error
)

dependency_resolution_seconds = Histogram(
    "kubetopo_dependency_resolution_seconds",
    "Wall-clock time of a full dependency resolution.",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

branch_failures_total = Counter(
    "kubetopo_branch_failures_total",
    "Best-effort lookups that failed and were degraded to an empty result.",
    ["branch"],  # ancestors | descendants | applications | discovery | topology
)

management_clusters = Gauge(
    "kubetopo_management_clusters",
    "GitOps management clusters found by the topology build.",
)

topology_build_seconds = Histogram(
    "kubetopo_topology_build_seconds",
    "Duration of the one-shot management topology build.",
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)
