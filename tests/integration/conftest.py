"""Shared fixtures for kubetopo integration tests.

Provides a small fleet of in-memory clusters wired into a real
ManagementTopologyCache and DependencyResolver, so integration tests can
exercise full dependency queries without touching real Kubernetes
clusters:

    mgmt      -- runs the GitOps controller (argocd namespace, cluster
                 Secrets for itself and both workload clusters, three
                 Applications)
    prod      -- Service + Deployment + ReplicaSets + Pods, CronJob chain,
                 a Rollout-owned ReplicaSet
    staging   -- one Deployment, reached through a DNS server name
    isolated  -- not registered with any management cluster
"""

from __future__ import annotations

from typing import Any

import pytest

from kubetopo.models.resources import GroupVersionResource, ResourceType
from kubetopo.topology.applications import APPLICATIONS, INSTANCE_LABEL, TRACKING_ID_ANNOTATION
from kubetopo.topology.management import ManagementTopologyCache
from kubetopo.topology.resolver import DependencyResolver

from ..fakes import CONTROL_PLANE, DEFAULT_TYPES, FakeRegistry, FakeResourceClient, make_node, make_obj, owner

CRONJOBS = GroupVersionResource("batch", "v1", "cronjobs")
JOBS = GroupVersionResource("batch", "v1", "jobs")
ROLLOUTS = GroupVersionResource("argoproj.io", "v1alpha1", "rollouts")

FLEET_TYPES: list[ResourceType] = [
    *DEFAULT_TYPES,
    ResourceType("cronjobs", "CronJob", "batch/v1", True, ("get", "list")),
    ResourceType("jobs", "Job", "batch/v1", True, ("get", "list")),
    ResourceType("rollouts", "Rollout", "argoproj.io/v1alpha1", True, ("get", "list")),
]

PROD_API_IP = "10.10.0.1"
STAGING_API_IP = "10.20.0.1"
STAGING_API_HOST = "api.staging.example.com"

_SECRET_LABEL = {"argocd.argoproj.io/secret-type": "cluster"}


# ---------------------------------------------------------------------------
# Cluster builders
# ---------------------------------------------------------------------------


def _tracked(namespace: str, app: str, kind: str, name: str) -> dict[str, str]:
    return {TRACKING_ID_ANNOTATION: f"{namespace}_{app}:apps/{kind}:shop/{name}"}


def build_prod() -> FakeResourceClient:
    prod = FakeResourceClient("prod", types=FLEET_TYPES)
    prod.nodes.extend(
        [
            make_node("prod-cp-0", PROD_API_IP, labels=CONTROL_PLANE),
            make_node("prod-cp-1", "10.10.0.2", labels=CONTROL_PLANE),
            make_node("prod-worker-0", "10.10.1.1"),
        ]
    )

    # Service "web" selects the Deployment's Pods
    prod.add(
        make_obj(
            "Service",
            "web",
            "shop",
            uid="svc-web",
            labels={INSTANCE_LABEL: "argocd_shop"},
            spec={"selector": {"app": "web"}},
        )
    )
    prod.add(make_obj("Endpoints", "web", "shop", uid="ep-web"))
    prod.add(
        make_obj(
            "EndpointSlice",
            "web-abc",
            "shop",
            uid="eps-web",
            api_version="discovery.k8s.io/v1",
            labels={"kubernetes.io/service-name": "web"},
        )
    )

    prod.add(
        make_obj(
            "Deployment",
            "web",
            "shop",
            uid="deploy-web",
            api_version="apps/v1",
            annotations=_tracked("argocd", "shop", "Deployment", "web"),
        )
    )
    for name, uid, replicas in (("web-old", "rs-old", 0), ("web-new", "rs-new", 2)):
        prod.add(
            make_obj(
                "ReplicaSet",
                name,
                "shop",
                uid=uid,
                api_version="apps/v1",
                owners=[owner("Deployment", "web", "deploy-web")],
                spec={"replicas": replicas},
            )
        )
    for i in range(2):
        prod.add(
            make_obj(
                "Pod",
                f"web-new-{i}",
                "shop",
                uid=f"pod-web-{i}",
                labels={"app": "web"},
                owners=[owner("ReplicaSet", "web-new", "rs-new")],
            )
        )

    # CronJob -> Job -> Pod
    prod.add(make_obj("CronJob", "report", "shop", uid="cj-report", api_version="batch/v1"), CRONJOBS)
    prod.add(
        make_obj(
            "Job",
            "report-1",
            "shop",
            uid="job-report-1",
            api_version="batch/v1",
            owners=[owner("CronJob", "report", "cj-report", "batch/v1")],
        ),
        JOBS,
    )
    prod.add(
        make_obj(
            "Pod",
            "report-1-x",
            "shop",
            uid="pod-report",
            owners=[owner("Job", "report-1", "job-report-1", "batch/v1")],
        )
    )

    # Rollout owning a ReplicaSet, app-of-apps tracked
    prod.add(
        make_obj(
            "Rollout",
            "canary",
            "shop",
            uid="ro-canary",
            api_version="argoproj.io/v1alpha1",
            annotations={TRACKING_ID_ANNOTATION: "platform:argoproj.io/Application:argocd/canary"},
        ),
        ROLLOUTS,
    )
    prod.add(
        make_obj(
            "ReplicaSet",
            "canary-1",
            "shop",
            uid="rs-canary",
            api_version="apps/v1",
            owners=[owner("Rollout", "canary", "ro-canary", "argoproj.io/v1alpha1")],
            spec={"replicas": 1},
        )
    )
    prod.add(
        make_obj("Pod", "canary-1-a", "shop", uid="pod-canary", owners=[owner("ReplicaSet", "canary-1", "rs-canary")])
    )
    return prod


def build_staging() -> FakeResourceClient:
    staging = FakeResourceClient("staging", types=FLEET_TYPES)
    staging.nodes.append(make_node("staging-cp-0", STAGING_API_IP, labels=CONTROL_PLANE))
    staging.add(
        make_obj(
            "Deployment",
            "web",
            "shop",
            uid="stg-deploy-web",
            api_version="apps/v1",
            labels={INSTANCE_LABEL: "argocd_shop-staging"},
        )
    )
    return staging


def build_isolated() -> FakeResourceClient:
    isolated = FakeResourceClient("isolated", types=FLEET_TYPES)
    isolated.nodes.append(make_node("iso-cp-0", "10.30.0.1", labels=CONTROL_PLANE))
    isolated.add(
        make_obj(
            "Deployment",
            "web",
            "shop",
            uid="iso-deploy-web",
            api_version="apps/v1",
            annotations=_tracked("argocd", "shop", "Deployment", "web"),
        )
    )
    return isolated


def build_mgmt() -> FakeResourceClient:
    mgmt = FakeResourceClient("mgmt", types=FLEET_TYPES)
    mgmt.namespaces.add("argocd")
    mgmt.nodes.append(make_node("mgmt-cp-0", "10.0.0.1", labels=CONTROL_PLANE))
    for name, server in (
        ("in-cluster", "https://kubernetes.default.svc"),
        ("prod", f"https://{PROD_API_IP}:6443"),
        ("staging", f"https://{STAGING_API_HOST}:6443"),
    ):
        mgmt.add_secret("argocd", name, {"name": name.encode(), "server": server.encode()}, _SECRET_LABEL)
    for app in ("shop", "shop-staging", "platform"):
        mgmt.add(make_obj("Application", app, "argocd", api_version="argoproj.io/v1alpha1"), APPLICATIONS)
    return mgmt


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def resolve_dns(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Route DNS lookups of cluster server names to a fixed table."""
    from kubetopo.topology import management as management_mod

    table = {STAGING_API_HOST: STAGING_API_IP}

    async def fake_resolve(host: str) -> str | None:
        return table.get(host)

    monkeypatch.setattr(management_mod, "resolve_ipv4", fake_resolve)
    return table


@pytest.fixture
def fleet(resolve_dns: dict[str, str]) -> FakeRegistry:
    """Registry over mgmt, prod, staging and isolated clusters."""
    return FakeRegistry(
        build_mgmt(),
        build_prod(),
        build_staging(),
        build_isolated(),
        namespaces={"prod": "shop", "staging": "shop", "isolated": "shop"},
    )


@pytest.fixture
def topology(fleet: FakeRegistry) -> ManagementTopologyCache:
    return ManagementTopologyCache(fleet, wait_timeout=5, probe_timeout=5)


@pytest.fixture
def resolver(fleet: FakeRegistry, topology: ManagementTopologyCache) -> DependencyResolver:
    return DependencyResolver(fleet, topology, deadline_seconds=10)


def uids(refs: list[Any]) -> list[str]:
    return [ref.uid for ref in refs]
