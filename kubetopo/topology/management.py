"""Management-cluster topology: which GitOps controller manages which cluster.

A context is a management cluster when it runs the GitOps controller
namespace and holds at least one cluster secret whose ``server`` URL
resolves to an IPv4 address (or to the in-cluster sentinel).  The map
``{management context: {ip, ...}}`` is built once, in the background,
and is read-only afterwards.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
import time
from urllib.parse import urlsplit

import structlog

from kubetopo.cluster.errors import (
    KubeTopoError,
    NotFoundError,
    PermissionDeniedError,
)
from kubetopo.cluster.registry import ClientProvider
from kubetopo.observability.metrics import (
    branch_failures_total,
    management_clusters,
    topology_build_seconds,
)

_log = structlog.get_logger(component="topology.management")

IN_CLUSTER = "in-cluster"
CLUSTER_SECRET_SELECTOR = "argocd.argoproj.io/secret-type=cluster"

_CONTROL_PLANE_LABELS = ("node-role.kubernetes.io/master", "node-role.kubernetes.io/control-plane")
_LEGACY_ROLE_LABEL = "kubernetes.io/role"


def extract_host(server_url: str) -> str:
    """Return the hostname part of an API server URL (``https://h:6443`` -> ``h``)."""
    url = server_url.strip()
    if "://" not in url:
        url = "//" + url
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def is_in_cluster_host(host: str) -> bool:
    return host == "kubernetes.default.svc" or host.endswith(".default.svc")


def is_control_plane(labels: dict[str, object]) -> bool:
    if any(label in labels for label in _CONTROL_PLANE_LABELS):
        return True
    return labels.get(_LEGACY_ROLE_LABEL) == "master"


async def resolve_ipv4(host: str) -> str | None:
    """First IPv4 address for *host*, or None if the lookup fails."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    except (OSError, UnicodeError) as exc:
        _log.debug("server_host_lookup_failed", host=host, error=str(exc))
        return None
    for _family, _type, _proto, _canon, sockaddr in infos:
        return str(sockaddr[0])
    return None


async def server_address(server_url: str) -> str | None:
    """Map a managed cluster's server URL to an IPv4 address or ``IN_CLUSTER``."""
    host = extract_host(server_url)
    if not host:
        return None
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return host
    if is_in_cluster_host(host):
        return IN_CLUSTER
    return await resolve_ipv4(host)


class ManagementTopologyCache:
    """One-shot cache of GitOps management clusters and the IPs they manage.

    Args:
        provider:      source of contexts and per-context clients.
        namespace:     namespace the GitOps controller runs in.
        wait_timeout:  how long a lookup waits for the build to finish.
        probe_timeout: bound on each namespace probe, secret listing and
                       server name lookup.
    """

    def __init__(
        self,
        provider: ClientProvider,
        namespace: str = "argocd",
        wait_timeout: float = 35.0,
        probe_timeout: float = 5.0,
    ) -> None:
        self._provider = provider
        self._namespace = namespace
        self._wait_timeout = wait_timeout
        self._probe_timeout = probe_timeout

        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._initialized = False
        self._clusters: dict[str, frozenset[str]] = {}

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task[None]:
        """Schedule the build as a background task; repeated calls are no-ops."""
        if self._task is None:
            self._task = asyncio.create_task(self.build(), name="topology-build")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def build(self) -> None:
        """Discover management clusters across every known context.

        Runs at most once.  Readiness is signalled when the build ends,
        whether it found anything or not; a cancelled build is signalled
        too but publishes nothing.
        """
        async with self._lock:
            if self._initialized:
                return
            start = time.monotonic()
            found: dict[str, frozenset[str]] = {}
            completed = False
            _log.info("topology_build_started", namespace=self._namespace)
            try:
                try:
                    contexts = list(self._provider.contexts())
                except KubeTopoError as exc:
                    branch_failures_total.labels(branch="topology").inc()
                    _log.error("topology_contexts_unavailable", error=str(exc))
                    contexts = []
                for context in contexts:
                    ips = await self._scan_context(context)
                    if ips:
                        found[context] = frozenset(ips)
                completed = True
            finally:
                if completed:
                    self._clusters = found
                self._initialized = True
                self._ready.set()
                elapsed = time.monotonic() - start
                topology_build_seconds.observe(elapsed)
                management_clusters.set(len(self._clusters))
                _log.info(
                    "topology_build_completed",
                    management_clusters=len(self._clusters),
                    completed=completed,
                    duration_ms=round(elapsed * 1000, 1),
                )

    async def wait_ready(self) -> bool:
        """Wait, bounded by the wait timeout, for the build to finish.

        Starts the build lazily when nobody has started it yet.
        """
        if self._ready.is_set():
            return True
        task = self.start()
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=self._wait_timeout)
        except TimeoutError:
            _log.warning("topology_not_ready", waited_seconds=self._wait_timeout, building=not task.done())
            return False
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def find_management_cluster(self, workload_cluster: str) -> str | None:
        """Return the management context that manages *workload_cluster*, if any.

        The workload cluster's control-plane InternalIPs are compared
        against every cached IP set; the first intersection wins.  The
        in-cluster sentinel only matches the management cluster itself.
        """
        if not await self.wait_ready():
            return None
        if not self._clusters:
            return None

        try:
            workload_ips = await self.control_plane_ips(workload_cluster)
        except KubeTopoError as exc:
            branch_failures_total.labels(branch="topology").inc()
            _log.info("control_plane_lookup_failed", cluster=workload_cluster, error=str(exc))
            return None
        if not workload_ips:
            _log.info("control_plane_ips_missing", cluster=workload_cluster)
            return None

        for management, managed in self._clusters.items():
            if workload_ips & managed:
                return management
            if IN_CLUSTER in managed and management == workload_cluster:
                return management
        return None

    async def control_plane_ips(self, cluster: str) -> set[str]:
        """InternalIP addresses of the cluster's control-plane nodes."""
        client = await self._provider.client_for(cluster)
        ips: set[str] = set()
        for node in await client.list_nodes():
            if not is_control_plane(node.labels):
                continue
            for address in node.get_slice("addresses", source=node.status):
                if isinstance(address, dict) and address.get("type") == "InternalIP" and address.get("address"):
                    ips.add(str(address["address"]))
        return ips

    def snapshot(self) -> dict[str, object]:
        return {
            "ready": self.is_ready,
            "namespace": self._namespace,
            "management_clusters": {name: sorted(ips) for name, ips in sorted(self._clusters.items())},
        }

    # ------------------------------------------------------------------
    # Build internals
    # ------------------------------------------------------------------

    async def _scan_context(self, context: str) -> set[str]:
        try:
            if not await self._has_gitops_namespace(context):
                return set()
            ips = await self._managed_cluster_ips(context)
        except (KubeTopoError, TimeoutError) as exc:
            branch_failures_total.labels(branch="topology").inc()
            _log.info("topology_context_skipped", context=context, error=str(exc) or type(exc).__name__)
            return set()
        if ips:
            _log.info("management_cluster_found", context=context, managed=len(ips))
        return ips

    async def _has_gitops_namespace(self, context: str) -> bool:
        client = await self._provider.client_for(context)
        try:
            async with asyncio.timeout(self._probe_timeout):
                await client.read_namespace(self._namespace)
        except NotFoundError:
            return False
        except PermissionDeniedError:
            return True
        except (KubeTopoError, TimeoutError) as exc:
            _log.debug("namespace_probe_failed", context=context, namespace=self._namespace, error=str(exc))
            return False
        return True

    async def _managed_cluster_ips(self, context: str) -> set[str]:
        client = await self._provider.client_for(context)
        async with asyncio.timeout(self._probe_timeout):
            secrets = await client.list_secrets(self._namespace, CLUSTER_SECRET_SELECTOR)

        ips: set[str] = set()
        for secret in secrets:
            raw = secret.data.get("server")
            if not raw:
                continue
            try:
                async with asyncio.timeout(self._probe_timeout):
                    address = await server_address(raw.decode("utf-8", errors="replace"))
            except TimeoutError:
                _log.info("cluster_secret_lookup_timed_out", context=context, secret=secret.name)
                continue
            if address is None:
                _log.debug("cluster_secret_unresolved", context=context, secret=secret.name)
                continue
            ips.add(address)
        return ips
