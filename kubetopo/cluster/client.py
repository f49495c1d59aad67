"""Per-context Kubernetes API access built on kubernetes-asyncio.

ResourceClient is thin: it issues one GET per call, returns
raw objects wrapped in ResourceObject, and maps API failures onto the
kubetopo error taxonomy (404 -> ObjectNotFoundError, 403 ->
PermissionDeniedError, anything else including transport errors,
per-request timeouts and non-object bodies -> ClusterAPIError).  Arbitrary
group-version-resources are addressed through ``ApiClient.call_api`` the
same way the upstream dynamic client does.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio.client.exceptions import ApiException

from kubetopo.cluster.errors import (
    ClusterAPIError,
    KubeTopoError,
    ObjectNotFoundError,
    PermissionDeniedError,
)
from kubetopo.models.resources import GroupVersionResource, ResourceObject, ResourceType, SecretData

_log = structlog.get_logger(component="cluster.client")

_AUTH_SETTINGS = ["BearerToken"]
_RESPONSE_TYPES = {200: "object"}


def resource_path(gvr: GroupVersionResource, namespace: str | None = None, name: str | None = None) -> str:
    """Build the REST path for *gvr*, optionally namespaced and/or named."""
    parts = ["/apis" if gvr.group else "/api", gvr.api_version]
    if namespace:
        parts += ["namespaces", namespace]
    parts.append(gvr.resource)
    if name:
        parts.append(name)
    return "/".join(parts)


def translate_api_exception(exc: ApiException, what: str) -> KubeTopoError:
    """Map an ApiException onto the kubetopo error taxonomy."""
    if exc.status == 404:
        return ObjectNotFoundError(f"{what}: not found")
    if exc.status == 403:
        return PermissionDeniedError(f"{what}: forbidden")
    return ClusterAPIError(f"{what}: {exc.status} {exc.reason}", status=exc.status)


class ResourceClient:
    """Read-only view of one cluster context.

    Args:
        context:         kubeconfig context name this client talks to.
        api_client:      configured ``kubernetes_asyncio.client.ApiClient``.
        request_timeout: per-request timeout in seconds.
    """

    def __init__(self, context: str, api_client: k8s_client.ApiClient, request_timeout: float = 30.0) -> None:
        self.context = context
        self._api_client = api_client
        self._core = k8s_client.CoreV1Api(api_client)
        self._timeout = request_timeout

    # ------------------------------------------------------------------
    # Generic GVR access
    # ------------------------------------------------------------------

    async def get(self, gvr: GroupVersionResource, name: str, namespace: str | None = None) -> ResourceObject:
        return ResourceObject(await self._call(resource_path(gvr, namespace, name)))

    async def list(
        self,
        gvr: GroupVersionResource,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[ResourceObject]:
        """List objects of *gvr*; ``namespace=None`` lists across all namespaces."""
        query = [("labelSelector", label_selector)] if label_selector else []
        data = await self._call(resource_path(gvr, namespace), query)
        return _list_items(data)

    async def discover(self) -> list[ResourceType]:
        """Discover every API resource served by the cluster, in discovery order.

        A group-version whose resource list cannot be fetched (for example
        an unavailable aggregated metrics API) is logged and skipped.
        Failure to read ``/api`` or ``/apis`` themselves is fatal.
        """
        group_versions: list[str] = []
        core = await self._call("/api")
        group_versions.extend(v for v in core.get("versions") or [] if isinstance(v, str))
        groups = await self._call("/apis")
        for group in groups.get("groups") or []:
            if not isinstance(group, dict):
                continue
            for version in group.get("versions") or []:
                gv = version.get("groupVersion") if isinstance(version, dict) else None
                if isinstance(gv, str) and gv:
                    group_versions.append(gv)

        discovered: list[ResourceType] = []
        failed: list[str] = []
        for gv in group_versions:
            path = f"/api/{gv}" if "/" not in gv else f"/apis/{gv}"
            try:
                listing = await self._call(path)
            except KubeTopoError as exc:
                failed.append(gv)
                _log.debug("group_version_discovery_failed", context=self.context, group_version=gv, error=str(exc))
                continue
            for res in listing.get("resources") or []:
                if not isinstance(res, dict):
                    continue
                discovered.append(
                    ResourceType(
                        name=str(res.get("name", "")),
                        kind=str(res.get("kind", "")),
                        group_version=gv,
                        namespaced=bool(res.get("namespaced", False)),
                        verbs=tuple(res.get("verbs") or ()),
                    )
                )
        if failed:
            _log.warning("partial_discovery_failure", context=self.context, group_versions=failed)
        return discovered

    # ------------------------------------------------------------------
    # Typed core/v1 helpers
    # ------------------------------------------------------------------

    async def read_namespace(self, name: str) -> ResourceObject:
        try:
            ns = await self._core.read_namespace(name, _request_timeout=self._timeout)
        except ApiException as exc:
            raise translate_api_exception(exc, f"{self.context}: namespace {name}") from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ClusterAPIError(f"{self.context}: namespace {name}: {exc}") from exc
        return ResourceObject(self._api_client.sanitize_for_serialization(ns))

    async def list_nodes(self) -> list[ResourceObject]:
        try:
            nodes = await self._core.list_node(_request_timeout=self._timeout)
        except ApiException as exc:
            raise translate_api_exception(exc, f"{self.context}: nodes") from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ClusterAPIError(f"{self.context}: nodes: {exc}") from exc
        return [ResourceObject(self._api_client.sanitize_for_serialization(node)) for node in nodes.items or []]

    async def list_secrets(self, namespace: str, label_selector: str) -> list[SecretData]:
        """List Secrets matching *label_selector* with their values decoded to bytes."""
        try:
            secrets = await self._core.list_namespaced_secret(
                namespace,
                label_selector=label_selector,
                _request_timeout=self._timeout,
            )
        except ApiException as exc:
            raise translate_api_exception(exc, f"{self.context}: secrets in {namespace}") from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ClusterAPIError(f"{self.context}: secrets in {namespace}: {exc}") from exc

        result: list[SecretData] = []
        for secret in secrets.items or []:
            decoded: dict[str, bytes] = {}
            for key, value in (secret.data or {}).items():
                try:
                    decoded[key] = base64.b64decode(value, validate=True)
                except (binascii.Error, TypeError):
                    _log.debug("secret_value_not_base64", context=self.context, secret=secret.metadata.name, key=key)
            result.append(SecretData(name=secret.metadata.name, data=decoded))
        return result

    async def close(self) -> None:
        await self._api_client.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(self, path: str, query_params: list[tuple[str, str]] | None = None) -> dict[str, Any]:
        try:
            data = await self._api_client.call_api(
                path,
                "GET",
                query_params=query_params or [],
                header_params={"Accept": "application/json"},
                response_types_map=_RESPONSE_TYPES,
                auth_settings=_AUTH_SETTINGS,
                _return_http_data_only=True,
                _request_timeout=self._timeout,
            )
        except ApiException as exc:
            raise translate_api_exception(exc, f"{self.context}: GET {path}") from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ClusterAPIError(f"{self.context}: GET {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ClusterAPIError(f"{self.context}: GET {path}: unexpected {type(data).__name__} response body")
        return data

    def __repr__(self) -> str:
        return f"ResourceClient(context={self.context!r})"


def _list_items(data: Any) -> list[ResourceObject]:
    """Unwrap a ``*List`` response, restoring each item's kind and apiVersion.

    The API server omits ``kind``/``apiVersion`` on list items; they are
    recovered from the list envelope (``PodList`` -> ``Pod``).
    """
    if not isinstance(data, dict):
        return []
    list_kind = str(data.get("kind", ""))
    item_kind = list_kind.removesuffix("List") if list_kind.endswith("List") else ""
    api_version = str(data.get("apiVersion", ""))
    items: list[ResourceObject] = []
    for raw in data.get("items") or []:
        if not isinstance(raw, dict):
            continue
        if item_kind:
            raw.setdefault("kind", item_kind)
        if api_version:
            raw.setdefault("apiVersion", api_version)
        items.append(ResourceObject(raw))
    return items
