"""DependencyResolver: the single entry point for dependency queries.

Resolution order for one query:

    context -> resource type -> target object     (fatal on failure)
    ancestors -> descendants -> Applications      (best-effort)

Everything runs under one deadline; when it expires the in-flight call is
cancelled and ResolutionTimeoutError is raised.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from kubetopo.cluster.errors import KubeTopoError, NotFoundError, ResolutionTimeoutError
from kubetopo.cluster.registry import ClientProvider
from kubetopo.models.resources import DependencyChain
from kubetopo.observability.metrics import (
    branch_failures_total,
    dependency_requests_total,
    dependency_resolution_seconds,
)
from kubetopo.topology.ancestors import AncestorResolver
from kubetopo.topology.applications import ApplicationCorrelator
from kubetopo.topology.catalog import ResourceTypeCatalog
from kubetopo.topology.descendants import DescendantResolver
from kubetopo.topology.management import ManagementTopologyCache

_log = structlog.get_logger(component="topology.resolver")

_T = TypeVar("_T")


class DependencyResolver:
    """Resolves the full dependency chain of one live object.

    Args:
        provider:          context registry handing out ResourceClients.
        topology:          shared management-cluster cache.
        deadline_seconds:  wall-clock budget for a whole resolution.
        gitops_namespace:  namespace the GitOps controller runs in.

    The catalog and the three walkers can be injected for tests; by default
    they are built here and share one catalog.
    """

    def __init__(
        self,
        provider: ClientProvider,
        topology: ManagementTopologyCache,
        *,
        catalog: ResourceTypeCatalog | None = None,
        ancestors: AncestorResolver | None = None,
        descendants: DescendantResolver | None = None,
        correlator: ApplicationCorrelator | None = None,
        deadline_seconds: float = 60.0,
        gitops_namespace: str = "argocd",
    ) -> None:
        self._provider = provider
        self._topology = topology
        self._catalog = catalog or ResourceTypeCatalog()
        self._ancestors = ancestors or AncestorResolver()
        self._descendants = descendants or DescendantResolver(self._catalog)
        self._correlator = correlator or ApplicationCorrelator(provider, topology, gitops_namespace)
        self._deadline = deadline_seconds

    @property
    def catalog(self) -> ResourceTypeCatalog:
        return self._catalog

    async def get_resource_dependencies(
        self,
        cluster_context: str,
        resource_kind_name: str,
        namespace: str | None,
        resource_name: str,
    ) -> DependencyChain:
        """Resolve ancestors, descendants and Applications of one object.

        Args:
            cluster_context:    kubeconfig context of the workload cluster.
            resource_kind_name: plural resource name, case-insensitive ("Deployments").
            namespace:          object namespace; ignored for cluster-scoped types.
            resource_name:      object name.

        Raises:
            ContextNotFoundError:      unknown context.
            ResourceTypeNotFoundError: no listable type with that name.
            ObjectNotFoundError:       the object does not exist.
            ClusterAPIError:           the object could not be fetched.
            ResolutionTimeoutError:    the deadline expired.
        """
        start = time.monotonic()
        log = _log.bind(cluster=cluster_context, resource=resource_kind_name, namespace=namespace, name=resource_name)
        outcome = "error"
        try:
            async with asyncio.timeout(self._deadline):
                chain = await self._resolve(log, cluster_context, resource_kind_name, namespace, resource_name)
            outcome = "ok"
            return chain
        except TimeoutError as exc:
            outcome = "timeout"
            log.warning("dependency_resolution_timeout", deadline_seconds=self._deadline)
            raise ResolutionTimeoutError(self._deadline) from exc
        except NotFoundError:
            outcome = "not_found"
            raise
        finally:
            elapsed = time.monotonic() - start
            dependency_requests_total.labels(outcome=outcome).inc()
            dependency_resolution_seconds.observe(elapsed)
            log.info("dependency_resolution_finished", outcome=outcome, duration_ms=round(elapsed * 1000, 1))

    async def _resolve(
        self,
        log: structlog.stdlib.BoundLogger,
        cluster_context: str,
        resource_kind_name: str,
        namespace: str | None,
        resource_name: str,
    ) -> DependencyChain:
        client = await self._provider.client_for(cluster_context)
        rtype = await self._catalog.resolve_type(client, resource_kind_name)
        scope = namespace if rtype.namespaced else None
        obj = await client.get(rtype.gvr, resource_name, scope)
        current = obj.to_ref(kind=obj.kind or rtype.kind, namespace=scope)

        ancestors = await self._phase(log, "ancestors", self._ancestors.ancestors_of(client, obj, scope), [])
        descendants = await self._phase(
            log,
            "descendants",
            self._descendants.descendants_of(client, obj, scope, current.uid),
            [],
        )
        applications = await self._phase(
            log,
            "applications",
            self._correlator.find_applications(obj, cluster_context),
            set(),
        )
        return DependencyChain(
            current=current,
            ancestors=ancestors,
            descendants=descendants,
            applications=applications,
        )

    async def _phase(
        self,
        log: structlog.stdlib.BoundLogger,
        branch: str,
        work: Awaitable[_T],
        empty: _T,
    ) -> _T:
        phase_start = time.monotonic()
        try:
            result = await work
        except KubeTopoError as exc:
            branch_failures_total.labels(branch=branch).inc()
            log.warning("dependency_branch_failed", branch=branch, error=str(exc))
            result = empty
        log.debug(
            "dependency_phase_completed",
            branch=branch,
            duration_ms=round((time.monotonic() - phase_start) * 1000, 1),
        )
        return result

