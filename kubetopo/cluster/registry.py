"""Registry of kubeconfig contexts and their ResourceClients."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog
from kubernetes_asyncio import config as k8s_config
from kubernetes_asyncio.config.config_exception import ConfigException

from kubetopo.cluster.client import ResourceClient
from kubetopo.cluster.errors import ContextNotFoundError, KubeconfigError, KubeTopoError, PermissionDeniedError

_log = structlog.get_logger(component="cluster.registry")

DEFAULT_NAMESPACE = "default"


class ClientProvider(Protocol):
    """What the topology engine needs from a registry."""

    def contexts(self) -> dict[str, str]: ...

    async def client_for(self, context: str) -> ResourceClient: ...


class ClusterRegistry:
    """Known cluster contexts and one lazily created ResourceClient per context.

    The kubeconfig is re-read whenever the context list is requested so
    contexts added while the process runs become visible; API clients are
    built once per context and reused until ``close()``.
    """

    def __init__(self, kubeconfig: str = "", request_timeout: float = 30.0) -> None:
        self._kubeconfig = kubeconfig or None
        self._request_timeout = request_timeout
        self._clients: dict[str, ResourceClient] = {}
        self._lock = asyncio.Lock()

    def contexts(self) -> dict[str, str]:
        """Return ``{context name: default namespace}`` from the kubeconfig."""
        try:
            contexts, _active = k8s_config.list_kube_config_contexts(config_file=self._kubeconfig)
        except (ConfigException, OSError) as exc:
            raise KubeconfigError(f"cannot load kubeconfig: {exc}") from exc
        result: dict[str, str] = {}
        for entry in contexts or []:
            name = entry.get("name")
            if not name:
                continue
            namespace = (entry.get("context") or {}).get("namespace") or DEFAULT_NAMESPACE
            result[name] = namespace
        return result

    def default_namespace(self, context: str) -> str:
        contexts = self.contexts()
        if context not in contexts:
            raise ContextNotFoundError(context)
        return contexts[context]

    async def client_for(self, context: str) -> ResourceClient:
        async with self._lock:
            client = self._clients.get(context)
            if client is not None:
                return client
            if context not in self.contexts():
                raise ContextNotFoundError(context)
            try:
                api_client = await k8s_config.new_client_from_config(
                    config_file=self._kubeconfig,
                    context=context,
                    persist_config=False,
                )
            except (ConfigException, OSError) as exc:
                raise KubeconfigError(f"cannot build client for context {context!r}: {exc}") from exc
            client = ResourceClient(context, api_client, request_timeout=self._request_timeout)
            self._clients[context] = client
            _log.debug("client_created", context=context)
            return client

    async def test_connectivity(self, context: str) -> bool:
        """Return True if the context's API server answers a node listing.

        403 counts as reachable: the credentials were accepted, they just
        lack list rights.  A context whose credentials cannot build a
        client is unreachable; an unknown context still raises.
        """
        try:
            client = await self.client_for(context)
        except KubeconfigError as exc:
            _log.info("connectivity_client_unavailable", context=context, error=str(exc))
            return False
        try:
            await client.list_nodes()
        except PermissionDeniedError:
            return True
        except KubeTopoError as exc:
            _log.info("connectivity_check_failed", context=context, error=str(exc))
            return False
        return True

    async def close(self) -> None:
        async with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                await client.close()
            except Exception as exc:  # noqa: BLE001
                _log.debug("client_close_failed", context=client.context, error=str(exc))
