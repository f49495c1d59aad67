"""REST routes, mounted under ``/api/v1`` by ``create_app``.

Handlers read their collaborators from ``request.app.state`` and let
kubetopo errors propagate; the exception handlers in ``kubetopo.api.app``
turn them into the error envelope.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Query, Request

from kubetopo.api.schemas import (
    APIResourcesResponse,
    ClusterInfo,
    ClustersResponse,
    ConnectivityResponse,
    DependencyChainResponse,
    HealthResponse,
    ManagementClustersResponse,
    ResourceTypeModel,
)

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from kubetopo import __version__

    topology = request.app.state.topology
    return HealthResponse(version=__version__, topology_ready=bool(topology.is_ready))


@router.get("/clusters", response_model=ClustersResponse)
async def list_clusters(request: Request) -> ClustersResponse:
    contexts = request.app.state.registry.contexts()
    return ClustersResponse(
        clusters=[ClusterInfo(name=name, default_namespace=ns) for name, ns in sorted(contexts.items())],
    )


@router.get("/clusters/{context}/connectivity", response_model=ConnectivityResponse)
async def cluster_connectivity(context: str, request: Request) -> ConnectivityResponse:
    reachable = await request.app.state.registry.test_connectivity(context)
    return ConnectivityResponse(context=context, reachable=reachable)


@router.get("/clusters/{context}/api-resources", response_model=APIResourcesResponse)
async def api_resources(context: str, request: Request) -> APIResourcesResponse:
    client = await request.app.state.registry.client_for(context)
    grouped = await request.app.state.catalog.list_resource_types(client)
    return APIResourcesResponse(
        context=context,
        groups={gv: [ResourceTypeModel.from_type(rtype) for rtype in types] for gv, types in grouped.items()},
    )


@router.get(
    "/clusters/{context}/dependencies/{resource}/{name}",
    response_model=DependencyChainResponse,
    response_model_exclude_none=True,
)
async def resource_dependencies(
    context: str,
    resource: str,
    name: str,
    request: Request,
    namespace: Annotated[str | None, Query(max_length=253)] = None,
) -> DependencyChainResponse:
    """Ancestors, descendants and GitOps Applications of one object.

    Without ``namespace`` the context's default namespace is used.
    """
    if not namespace:
        namespace = request.app.state.registry.default_namespace(context)
    chain = await request.app.state.resolver.get_resource_dependencies(context, resource, namespace, name)
    _log.debug(
        "dependencies_served",
        context=context,
        resource=resource,
        name=name,
        ancestors=len(chain.ancestors),
        descendants=len(chain.descendants),
    )
    return DependencyChainResponse.from_chain(chain)


@router.get("/topology/management-clusters", response_model=ManagementClustersResponse)
async def management_clusters(request: Request) -> ManagementClustersResponse:
    return ManagementClustersResponse(**request.app.state.topology.snapshot())
