"""Pydantic request/response models for the kubetopo REST API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from kubetopo.models.resources import ApplicationRef, DependencyChain, ResourceRef, ResourceType


class ErrorResponse(BaseModel):
    """Error envelope returned by every non-2xx response."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    topology_ready: bool


class ClusterInfo(BaseModel):
    name: str
    default_namespace: str


class ClustersResponse(BaseModel):
    clusters: list[ClusterInfo]


class ConnectivityResponse(BaseModel):
    context: str
    reachable: bool


class ResourceTypeModel(BaseModel):
    name: str
    kind: str
    namespaced: bool
    verbs: list[str] = Field(default_factory=list)

    @classmethod
    def from_type(cls, rtype: ResourceType) -> ResourceTypeModel:
        return cls(name=rtype.name, kind=rtype.kind, namespaced=rtype.namespaced, verbs=list(rtype.verbs))


class APIResourcesResponse(BaseModel):
    context: str
    groups: dict[str, list[ResourceTypeModel]]


class ResourceRefModel(BaseModel):
    name: str
    kind: str
    uid: str
    namespace: str | None = None

    @classmethod
    def from_ref(cls, ref: ResourceRef) -> ResourceRefModel:
        return cls(name=ref.name, kind=ref.kind, uid=ref.uid, namespace=ref.namespace or None)


class ApplicationRefModel(BaseModel):
    name: str
    namespace: str
    cluster: str

    @classmethod
    def from_ref(cls, ref: ApplicationRef) -> ApplicationRefModel:
        return cls(name=ref.name, namespace=ref.namespace, cluster=ref.cluster)


class DependencyChainResponse(BaseModel):
    """A resource's ancestors (root first), descendants and Applications."""

    ancestors: list[ResourceRefModel]
    current: ResourceRefModel
    descendants: list[ResourceRefModel]
    applications: list[ApplicationRefModel]

    @classmethod
    def from_chain(cls, chain: DependencyChain) -> DependencyChainResponse:
        return cls(
            ancestors=[ResourceRefModel.from_ref(ref) for ref in chain.ancestors],
            current=ResourceRefModel.from_ref(chain.current),
            descendants=[ResourceRefModel.from_ref(ref) for ref in chain.descendants],
            applications=[
                ApplicationRefModel.from_ref(app)
                for app in sorted(chain.applications, key=lambda a: (a.cluster, a.namespace, a.name))
            ],
        )


class ManagementClustersResponse(BaseModel):
    ready: bool
    namespace: str
    management_clusters: dict[str, list[str]]
