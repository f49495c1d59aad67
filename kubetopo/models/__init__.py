"""Core data structures for kubetopo."""

from kubetopo.models.config import KubeTopoConfig
from kubetopo.models.resources import (
    ApplicationRef,
    DependencyChain,
    GroupVersionResource,
    OwnerReference,
    ResourceObject,
    ResourceRef,
    ResourceType,
    SecretData,
    dedupe_refs,
)

__all__ = [
    "ApplicationRef",
    "DependencyChain",
    "GroupVersionResource",
    "KubeTopoConfig",
    "OwnerReference",
    "ResourceObject",
    "ResourceRef",
    "ResourceType",
    "SecretData",
    "dedupe_refs",
]
