"""Cluster access layer: kubeconfig contexts, per-context API clients, errors."""

from kubetopo.cluster.client import ResourceClient
from kubetopo.cluster.errors import (
    ClusterAPIError,
    ContextNotFoundError,
    KubeconfigError,
    KubeTopoError,
    NotFoundError,
    ObjectNotFoundError,
    PermissionDeniedError,
    ResolutionTimeoutError,
    ResourceTypeNotFoundError,
)
from kubetopo.cluster.registry import ClientProvider, ClusterRegistry

__all__ = [
    "ClientProvider",
    "ClusterAPIError",
    "ClusterRegistry",
    "ContextNotFoundError",
    "KubeTopoError",
    "KubeconfigError",
    "NotFoundError",
    "ObjectNotFoundError",
    "PermissionDeniedError",
    "ResolutionTimeoutError",
    "ResourceClient",
    "ResourceTypeNotFoundError",
]
