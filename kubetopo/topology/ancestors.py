"""Ownership lineage: walk owner references up to the root owner."""

from __future__ import annotations

import structlog

from kubetopo.cluster.client import ResourceClient
from kubetopo.cluster.errors import KubeTopoError
from kubetopo.models.resources import (
    GroupVersionResource,
    OwnerReference,
    ResourceObject,
    ResourceRef,
)
from kubetopo.topology.catalog import plural_for_kind

_log = structlog.get_logger(component="topology.ancestors")


class AncestorResolver:
    """Builds the root-first chain of owners above an object.

    Each owner reference is fetched so the walk can continue through the
    owner's own references.  An owner that cannot be fetched still appears
    in the chain, as a leaf.  Objects with several owners contribute one
    chain per owner, appended in owner-reference order.
    """

    async def ancestors_of(
        self,
        client: ResourceClient,
        obj: ResourceObject,
        namespace: str | None,
    ) -> list[ResourceRef]:
        path = frozenset({obj.uid}) if obj.uid else frozenset()
        return await self._walk(client, obj, namespace, path)

    async def fetch_owner(
        self,
        client: ResourceClient,
        owner: OwnerReference,
        namespace: str | None,
    ) -> ResourceObject:
        """Fetch the object an owner reference points at.

        Raises:
            ValueError: the owner's apiVersion cannot be parsed.
            KubeTopoError: the API call failed.
        """
        gvr = GroupVersionResource.from_api_version(owner.api_version, plural_for_kind(owner.kind))
        return await client.get(gvr, owner.name, namespace)

    async def _walk(
        self,
        client: ResourceClient,
        obj: ResourceObject,
        namespace: str | None,
        path: frozenset[str],
    ) -> list[ResourceRef]:
        # path holds the UIDs on the current branch only, so diamonds are
        # walked in full and only genuine cycles are cut.
        ancestors: list[ResourceRef] = []
        for owner in obj.owner_references:
            if not owner.name or not owner.kind:
                continue
            ref = ResourceRef(name=owner.name, kind=owner.kind, uid=owner.uid, namespace=namespace)

            if owner.uid and owner.uid in path:
                _log.warning(
                    "ownership_cycle_detected",
                    context=client.context,
                    kind=owner.kind,
                    name=owner.name,
                    uid=owner.uid,
                )
                ancestors.append(ref)
                continue

            try:
                owner_obj = await self.fetch_owner(client, owner, namespace)
            except (KubeTopoError, ValueError) as exc:
                _log.info(
                    "ancestor_fetch_failed",
                    context=client.context,
                    kind=owner.kind,
                    name=owner.name,
                    error=str(exc),
                )
                ancestors.append(ref)
                continue

            branch = path | {owner.uid} if owner.uid else path
            ancestors.extend(await self._walk(client, owner_obj, namespace, branch))
            ancestors.append(ref)
        return ancestors
