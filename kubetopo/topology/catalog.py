"""Resource type resolution via API discovery."""

from __future__ import annotations

from collections import defaultdict

import structlog

from kubetopo.cluster.client import ResourceClient
from kubetopo.cluster.errors import ResourceTypeNotFoundError
from kubetopo.models.resources import ResourceType

_log = structlog.get_logger(component="topology.catalog")

# metrics.k8s.io also serves "pods" and "nodes".
_EXCLUDED_GROUP_PREFIX = "metrics.k8s.io"

_IRREGULAR_PLURALS: dict[str, str] = {
    "networkpolicy": "networkpolicies",
    "horizontalpodautoscaler": "horizontalpodautoscalers",
    "poddisruptionbudget": "poddisruptionbudgets",
}


def plural_for_kind(kind: str) -> str:
    """Map a Kind to its plural resource name (``Deployment`` -> ``deployments``)."""
    lowered = kind.lower()
    return _IRREGULAR_PLURALS.get(lowered, lowered + "s")


class ResourceTypeCatalog:
    """Answers "which API resource is this name?" for a cluster."""

    async def listable_types(self, client: ResourceClient) -> list[ResourceType]:
        """Discovered top-level resources that support ``list``, in discovery order."""
        return [
            rtype
            for rtype in await client.discover()
            if not rtype.group_version.startswith(_EXCLUDED_GROUP_PREFIX)
            and "/" not in rtype.name
            and "list" in rtype.verbs
        ]

    async def resolve_type(self, client: ResourceClient, name: str) -> ResourceType:
        """Resolve a plural resource name, case-insensitively; first match wins.

        Raises:
            ResourceTypeNotFoundError: no listable resource has that name.
        """
        wanted = name.lower()
        for rtype in await self.listable_types(client):
            if rtype.name.lower() == wanted:
                _log.debug("resource_type_resolved", context=client.context, name=name, gvr=str(rtype.gvr))
                return rtype
        raise ResourceTypeNotFoundError(name, client.context)

    async def list_resource_types(self, client: ResourceClient) -> dict[str, list[ResourceType]]:
        """Listable resources grouped by group-version."""
        grouped: dict[str, list[ResourceType]] = defaultdict(list)
        for rtype in await self.listable_types(client):
            grouped[rtype.group_version].append(rtype)
        return dict(grouped)
