"""Property-based fuzz tests for the kubetopo REST API.

Uses hypothesis to generate randomised path segments and query strings
for the cluster and dependency endpoints and validates that:
 1. No 500s from malformed input
 2. Response body is always valid JSON
 3. Error responses always have ``error`` + ``detail``
 4. Content-Type is always ``application/json``
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import quote

from fastapi.testclient import TestClient
from hypothesis import given, settings
from hypothesis import strategies as st

from kubetopo.api.app import create_app
from kubetopo.cluster.errors import ContextNotFoundError
from kubetopo.models.resources import ApplicationRef, DependencyChain, ResourceRef

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _make_chain() -> DependencyChain:
    return DependencyChain(
        current=ResourceRef("web-1", "ReplicaSet", "u-rs", "default"),
        ancestors=[ResourceRef("web", "Deployment", "u-d", "default")],
        descendants=[ResourceRef("web-1-a", "Pod", "u-p", "default")],
        applications={ApplicationRef("shop", "argocd", "mgmt")},
    )


def _make_registry(contexts: dict[str, str] | None = None) -> MagicMock:
    known = contexts if contexts is not None else {"prod": "default"}

    def default_namespace(context: str) -> str:
        if context not in known:
            raise ContextNotFoundError(context)
        return known[context]

    registry = MagicMock()
    registry.contexts = MagicMock(return_value=known)
    registry.default_namespace = MagicMock(side_effect=default_namespace)
    registry.test_connectivity = AsyncMock(return_value=True)
    return registry


def _make_topology() -> MagicMock:
    topology = MagicMock()
    topology.is_ready = True
    topology.snapshot = MagicMock(
        return_value={"ready": True, "namespace": "argocd", "management_clusters": {"mgmt": ["10.0.0.1"]}},
    )
    return topology


def _make_app(resolver: MagicMock | None = None) -> TestClient:
    if resolver is None:
        resolver = MagicMock()
        resolver.get_resource_dependencies = AsyncMock(return_value=_make_chain())
    app = create_app(resolver=resolver, registry=_make_registry(), topology=_make_topology())
    return TestClient(app, raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# Hypothesis strategies
# ---------------------------------------------------------------------------

_json_safe_text = st.text(
    alphabet=st.characters(codec="utf-8", exclude_categories=("Cs",)),
    min_size=0,
    max_size=300,
)

# Non-empty path segments; quoted before being placed in the URL
_segment = st.text(
    alphabet=st.characters(codec="utf-8", exclude_categories=("Cs",)),
    min_size=1,
    max_size=80,
).filter(lambda s: s not in {".", ".."})

_dns_name = st.from_regex(r"[a-z][a-z0-9\-]{0,40}", fullmatch=True)


def _dependencies_url(context: str, resource: str, name: str) -> str:
    return f"/api/v1/clusters/{quote(context, safe='')}/dependencies/{quote(resource, safe='')}/{quote(name, safe='')}"


# ---------------------------------------------------------------------------
# Shared assertion helpers
# ---------------------------------------------------------------------------


def _assert_valid_json_response(resp, allowed_status_codes: set[int] | None = None):
    """Assert universal invariants on every API response."""
    assert resp.headers.get("content-type", "").startswith("application/json"), (
        f"Expected application/json, got {resp.headers.get('content-type')}"
    )
    body = resp.json()
    assert isinstance(body, dict)

    if allowed_status_codes is not None:
        assert resp.status_code in allowed_status_codes, f"Unexpected status {resp.status_code}, body={body}"

    if resp.status_code >= 400:
        assert "error" in body, f"Error response missing 'error': {body}"
        assert "detail" in body, f"Error response missing 'detail': {body}"


# ===========================================================================
# A. GET /clusters/{context}/dependencies/{resource}/{name}
# ===========================================================================


class TestDependenciesPathFuzz:
    """Fuzz the path segments of the dependency endpoint."""

    @given(context=_segment, resource=_segment, name=_segment)
    @settings(max_examples=50)
    def test_arbitrary_segments_never_500(self, context: str, resource: str, name: str) -> None:
        client = _make_app()
        resp = client.get(_dependencies_url(context, resource, name))
        _assert_valid_json_response(resp, allowed_status_codes={200, 404})

    @given(resource=_dns_name, name=_dns_name)
    @settings(max_examples=30)
    def test_known_context_returns_chain(self, resource: str, name: str) -> None:
        client = _make_app()
        resp = client.get(_dependencies_url("prod", resource, name))
        _assert_valid_json_response(resp, allowed_status_codes={200})
        body = resp.json()
        assert body["current"]["uid"] == "u-rs"
        assert body["applications"] == [{"name": "shop", "namespace": "argocd", "cluster": "mgmt"}]

    @given(context=_dns_name.filter(lambda s: s != "prod"))
    @settings(max_examples=20)
    def test_unknown_context_is_404(self, context: str) -> None:
        client = _make_app()
        resp = client.get(_dependencies_url(context, "pods", "p"))
        _assert_valid_json_response(resp, allowed_status_codes={404})
        assert resp.json()["error"] == "CONTEXT_NOT_FOUND"

    def test_path_traversal_attempts_handled(self) -> None:
        client = _make_app()
        traversals = [
            "/api/v1/clusters/prod/dependencies/pods/..%2f..%2fetc%2fpasswd",
            "/api/v1/clusters/..%2fprod/dependencies/pods/x",
            "/api/v1/clusters/prod/dependencies/pods",
            "/api/v1/clusters/prod/dependencies",
        ]
        for url in traversals:
            resp = client.get(url)
            _assert_valid_json_response(resp, allowed_status_codes={200, 404})


# ===========================================================================
# B. namespace query parameter
# ===========================================================================


class TestNamespaceQueryFuzz:
    """Fuzz the ``namespace`` query param of the dependency endpoint."""

    @given(namespace=_json_safe_text.filter(lambda s: len(s) <= 253))
    @settings(max_examples=50)
    def test_random_namespace_never_500(self, namespace: str) -> None:
        client = _make_app()
        resp = client.get(_dependencies_url("prod", "pods", "p"), params={"namespace": namespace})
        _assert_valid_json_response(resp, allowed_status_codes={200})

    @given(length=st.integers(min_value=254, max_value=2000))
    @settings(max_examples=10)
    def test_overlong_namespace_is_400(self, length: int) -> None:
        client = _make_app()
        resp = client.get(_dependencies_url("prod", "pods", "p"), params={"namespace": "x" * length})
        _assert_valid_json_response(resp, allowed_status_codes={400})
        assert resp.json()["error"] == "INVALID_REQUEST"

    def test_empty_namespace_falls_back_to_context_default(self) -> None:
        resolver = MagicMock()
        resolver.get_resource_dependencies = AsyncMock(return_value=_make_chain())
        client = _make_app(resolver)
        resp = client.get(_dependencies_url("prod", "pods", "p"), params={"namespace": ""})
        _assert_valid_json_response(resp, allowed_status_codes={200})
        resolver.get_resource_dependencies.assert_awaited_once_with("prod", "pods", "default", "p")


# ===========================================================================
# C. Cluster endpoints
# ===========================================================================


class TestClusterEndpointsFuzz:
    """Fuzz the per-context cluster endpoints."""

    @given(context=_segment)
    @settings(max_examples=30)
    def test_connectivity_never_500(self, context: str) -> None:
        client = _make_app()
        resp = client.get(f"/api/v1/clusters/{quote(context, safe='')}/connectivity")
        _assert_valid_json_response(resp, allowed_status_codes={200, 404})

    def test_clusters_listing(self) -> None:
        client = _make_app()
        resp = client.get("/api/v1/clusters")
        _assert_valid_json_response(resp, allowed_status_codes={200})
        assert resp.json() == {"clusters": [{"name": "prod", "default_namespace": "default"}]}


# ===========================================================================
# D. GET /health and topology: robustness
# ===========================================================================


class TestHealthFuzz:
    @given(params=st.dictionaries(st.text(min_size=1, max_size=20), st.text(max_size=50), max_size=5))
    @settings(max_examples=20)
    def test_health_ignores_query_params(self, params: dict) -> None:
        client = _make_app()
        resp = client.get("/api/v1/health", params=params)
        _assert_valid_json_response(resp, allowed_status_codes={200})
        assert resp.json()["topology_ready"] is True

    def test_management_clusters_snapshot(self) -> None:
        client = _make_app()
        resp = client.get("/api/v1/topology/management-clusters")
        _assert_valid_json_response(resp, allowed_status_codes={200})
        assert resp.json()["management_clusters"] == {"mgmt": ["10.0.0.1"]}

    @given(method=st.sampled_from(["POST", "PUT", "DELETE", "PATCH"]))
    @settings(max_examples=10)
    def test_unsupported_methods_return_json_405(self, method: str) -> None:
        client = _make_app()
        resp = client.request(method, "/api/v1/health")
        _assert_valid_json_response(resp, allowed_status_codes={405})
        assert resp.json()["error"] == "HTTP_ERROR"
