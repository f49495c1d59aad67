"""Application bootstrap for kubetopo.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → cluster registry → topology cache
              → dependency resolver → REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubetopo.config import load_config
from kubetopo.models.config import KubeTopoConfig
from kubetopo.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubetopo.cluster.registry import ClusterRegistry
    from kubetopo.topology.management import ManagementTopologyCache
    from kubetopo.topology.resolver import DependencyResolver

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeTopoApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` on an app that was never started (or already stopped) is safe.
    """

    def __init__(self, config: KubeTopoConfig | None = None) -> None:
        self.config: KubeTopoConfig | None = config

        self._registry: ClusterRegistry | None = None
        self._topology: ManagementTopologyCache | None = None
        self._resolver: DependencyResolver | None = None
        self._rest_server: object | None = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def resolver(self) -> DependencyResolver | None:
        return self._resolver

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self, serve: bool = True) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) turns this into a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubetopo starting", version=_kubetopo_version())

        # --- 3. Cluster registry ----------------------------------------
        await self._start_registry()

        # --- 4. Management topology cache -------------------------------
        await self._start_topology()

        # --- 5. Dependency resolver -------------------------------------
        await self._start_resolver()

        # --- 6. REST API ------------------------------------------------
        if serve:
            await self._start_rest()

        self._running = True
        self._log.info("kubetopo started", host=self.config.api.host, port=self.config.api.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_registry(self) -> None:
        """Load the kubeconfig; an unreadable kubeconfig is fatal."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting cluster registry")
        try:
            from kubetopo.cluster.registry import ClusterRegistry

            registry = ClusterRegistry(
                kubeconfig=self.config.kube.kubeconfig,
                request_timeout=float(self.config.kube.request_timeout),
            )
            contexts = registry.contexts()
            self._registry = registry
            self._log.info("cluster registry started", contexts=len(contexts))
        except Exception as exc:
            raise _ComponentError("registry", exc) from exc

    async def _start_topology(self) -> None:
        """Create the topology cache and, when eager, kick off its build."""
        assert self._log is not None
        assert self.config is not None
        assert self._registry is not None
        self._log.debug("starting topology cache")
        try:
            from kubetopo.topology.management import ManagementTopologyCache

            topology = ManagementTopologyCache(
                self._registry,
                namespace=self.config.topology.gitops_namespace,
                wait_timeout=float(self.config.topology.wait_seconds),
                probe_timeout=float(self.config.topology.probe_timeout),
            )
            if self.config.topology.eager:
                topology.start()
            self._topology = topology
            self._log.info("topology cache started", eager=self.config.topology.eager)
        except Exception as exc:
            raise _ComponentError("topology", exc) from exc

    async def _start_resolver(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._registry is not None
        assert self._topology is not None
        try:
            from kubetopo.topology.resolver import DependencyResolver

            self._resolver = DependencyResolver(
                self._registry,
                self._topology,
                deadline_seconds=float(self.config.resolution.deadline_seconds),
                gitops_namespace=self.config.topology.gitops_namespace,
            )
            self._log.info("dependency resolver started", deadline_seconds=self.config.resolution.deadline_seconds)
        except Exception as exc:
            raise _ComponentError("resolver", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._resolver is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from kubetopo.api import build_app

            fastapi_app = build_app(
                resolver=self._resolver,
                registry=self._registry,
                topology=self._topology,
                catalog=self._resolver.catalog,
                config=self.config,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubetopo shutting down")

        self._running = False

        if self._rest_server is not None:
            # uvicorn exits its serve() loop on its own once asked to
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._background_tasks:
            _done, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in pending:
                task.cancel()
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        self._resolver = None
        await self._stop_component("topology", self._topology)
        await self._stop_component("registry", self._registry)

        log.info("kubetopo stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() or close() on a component, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None) or getattr(component, "close", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _kubetopo_version() -> str:
    from kubetopo import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeTopoApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        # Block until shutdown is triggered (background tasks run concurrently)
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
