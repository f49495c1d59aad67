"""Descendant discovery: everything a resource transitively owns.

Three strategies, picked by the target's kind:

Service     -- same-named Endpoints, EndpointSlices labelled for the
               Service, and Pods matched by its selector.
Deployment  -- the active (highest positive replica count) ReplicaSet and
               the Pods it owns.
other kinds -- owner-reference search over a small allow-list of kinds,
               two levels deep, with ReplicaSet children expanded straight
               to their Pods.

Every listing is best-effort: a failed call empties its own branch and is
logged, it never fails the whole lookup.
"""

from __future__ import annotations

import structlog

from kubetopo.cluster.client import ResourceClient
from kubetopo.cluster.errors import KubeTopoError, ObjectNotFoundError
from kubetopo.models.resources import (
    GroupVersionResource,
    ResourceObject,
    ResourceRef,
    ResourceType,
    dedupe_refs,
)
from kubetopo.observability.metrics import branch_failures_total
from kubetopo.topology.catalog import ResourceTypeCatalog

_log = structlog.get_logger(component="topology.descendants")

PODS = GroupVersionResource("", "v1", "pods")
ENDPOINTS = GroupVersionResource("", "v1", "endpoints")
ENDPOINT_SLICES = GroupVersionResource("discovery.k8s.io", "v1", "endpointslices")
REPLICA_SETS = GroupVersionResource("apps", "v1", "replicasets")

SERVICE_NAME_LABEL = "kubernetes.io/service-name"

# Kinds searched by the generic owner-reference walk.
GENERIC_SEARCH_KINDS = frozenset({"pods", "replicasets", "services", "configmaps", "secrets"})
_MAX_DEPTH = 2


class DescendantResolver:
    """Finds the resources owned, directly or transitively, by a target."""

    def __init__(self, catalog: ResourceTypeCatalog | None = None) -> None:
        self._catalog = catalog or ResourceTypeCatalog()

    async def descendants_of(
        self,
        client: ResourceClient,
        obj: ResourceObject,
        namespace: str | None,
        uid: str = "",
    ) -> list[ResourceRef]:
        """Return the UID-unique descendants of *obj*, never including *obj* itself."""
        uid = uid or obj.uid
        kind = obj.kind.lower()
        if kind == "service":
            found = await self.find_service_dependencies(client, obj, namespace)
        elif kind == "deployment":
            found = await self._deployment_descendants(client, namespace, uid)
        else:
            found = await self._generic_descendants(client, namespace, uid)
        return dedupe_refs(found, exclude_uid=uid)

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    async def find_service_dependencies(
        self,
        client: ResourceClient,
        service: ResourceObject,
        namespace: str | None,
    ) -> list[ResourceRef]:
        """Endpoints, EndpointSlices and selected Pods of a Service."""
        name = service.name
        found: list[ResourceRef] = []

        try:
            endpoints = await client.get(ENDPOINTS, name, namespace)
            found.append(endpoints.to_ref(kind="Endpoints", namespace=namespace))
        except ObjectNotFoundError:
            _log.debug("service_has_no_endpoints", context=client.context, service=name)
        except KubeTopoError as exc:
            self._branch_failed(client, "endpoints", name, exc)

        try:
            slices = await client.list(ENDPOINT_SLICES, namespace, f"{SERVICE_NAME_LABEL}={name}")
            found.extend(s.to_ref(kind="EndpointSlice", namespace=namespace) for s in slices)
        except KubeTopoError as exc:
            self._branch_failed(client, "endpointslices", name, exc)

        selector = selector_string(service.get_map("selector", source=service.spec))
        if selector:
            try:
                pods = await client.list(PODS, namespace, selector)
                found.extend(p.to_ref(kind="Pod", namespace=namespace) for p in pods)
            except KubeTopoError as exc:
                self._branch_failed(client, "pods", name, exc)

        _log.debug("service_dependencies_found", context=client.context, service=name, count=len(found))
        return dedupe_refs(found, exclude_uid=service.uid)

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    async def find_active_replicaset(
        self,
        client: ResourceClient,
        namespace: str | None,
        deployment_uid: str,
    ) -> ResourceRef | None:
        """The owned ReplicaSet with the most replicas; later entries win ties.

        ReplicaSets scaled to zero never qualify, so a Deployment that is
        scaled down has no active ReplicaSet.
        """
        active: ResourceRef | None = None
        max_replicas = 0
        for rs in await client.list(REPLICA_SETS, namespace):
            if not rs.is_owned_by(deployment_uid):
                continue
            replicas = rs.get_int("replicas", source=rs.spec)
            if replicas > 0 and replicas >= max_replicas:
                max_replicas = replicas
                active = rs.to_ref(kind="ReplicaSet", namespace=namespace)
        return active

    async def find_pods_for_replicaset(
        self,
        client: ResourceClient,
        namespace: str | None,
        replicaset_uid: str,
    ) -> list[ResourceRef]:
        pods = await client.list(PODS, namespace)
        return [pod.to_ref(kind="Pod", namespace=namespace) for pod in pods if pod.is_owned_by(replicaset_uid)]

    async def _deployment_descendants(
        self,
        client: ResourceClient,
        namespace: str | None,
        deployment_uid: str,
    ) -> list[ResourceRef]:
        try:
            active = await self.find_active_replicaset(client, namespace, deployment_uid)
        except KubeTopoError as exc:
            self._branch_failed(client, "replicasets", deployment_uid, exc)
            return []
        if active is None:
            _log.debug("no_active_replicaset", context=client.context, deployment_uid=deployment_uid)
            return []

        found = [active]
        try:
            found.extend(await self.find_pods_for_replicaset(client, namespace, active.uid))
        except KubeTopoError as exc:
            self._branch_failed(client, "pods", active.name, exc)
        return found

    # ------------------------------------------------------------------
    # Generic owner-reference search
    # ------------------------------------------------------------------

    async def _generic_descendants(
        self,
        client: ResourceClient,
        namespace: str | None,
        owner_uid: str,
    ) -> list[ResourceRef]:
        try:
            types = await self._catalog.listable_types(client)
        except KubeTopoError as exc:
            self._branch_failed(client, "discovery", owner_uid, exc)
            return []
        searchable = [rtype for rtype in types if rtype.name in GENERIC_SEARCH_KINDS]
        return await self._walk(client, searchable, namespace, owner_uid, 0, set())

    async def _walk(
        self,
        client: ResourceClient,
        types: list[ResourceType],
        namespace: str | None,
        owner_uid: str,
        depth: int,
        visited: set[str],
    ) -> list[ResourceRef]:
        if depth >= _MAX_DEPTH or owner_uid in visited:
            return []
        visited.add(owner_uid)

        children = await self._direct_children(client, types, namespace, owner_uid)
        found = list(children)
        if depth + 1 >= _MAX_DEPTH:
            return found

        for child in children:
            if child.kind == "ReplicaSet":
                try:
                    found.extend(await self.find_pods_for_replicaset(client, namespace, child.uid))
                except KubeTopoError as exc:
                    self._branch_failed(client, "pods", child.name, exc)
                continue
            found.extend(await self._walk(client, types, namespace, child.uid, depth + 1, visited))
        return found

    async def _direct_children(
        self,
        client: ResourceClient,
        types: list[ResourceType],
        namespace: str | None,
        owner_uid: str,
    ) -> list[ResourceRef]:
        children: list[ResourceRef] = []
        for rtype in types:
            try:
                items = await client.list(rtype.gvr, namespace if rtype.namespaced else None)
            except KubeTopoError as exc:
                self._branch_failed(client, rtype.name, owner_uid, exc)
                continue
            children.extend(item.to_ref(kind=item.kind or rtype.kind) for item in items if item.is_owned_by(owner_uid))
        return children

    @staticmethod
    def _branch_failed(client: ResourceClient, branch: str, subject: str, exc: Exception) -> None:
        branch_failures_total.labels(branch="descendants").inc()
        _log.info(
            "descendant_lookup_failed",
            context=client.context,
            branch=branch,
            subject=subject,
            error=str(exc),
        )


def selector_string(selector: dict[str, object]) -> str:
    """Render a Service selector as an AND-of-equalities label selector.

    Non-string values are skipped.
    """
    return ",".join(f"{key}={value}" for key, value in selector.items() if isinstance(value, str))
