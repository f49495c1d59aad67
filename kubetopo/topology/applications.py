"""Correlate a live object with the GitOps Application that deploys it."""

from __future__ import annotations

import structlog

from kubetopo.cluster.errors import KubeTopoError, NotFoundError
from kubetopo.cluster.registry import ClientProvider
from kubetopo.models.resources import ApplicationRef, GroupVersionResource, ResourceObject
from kubetopo.observability.metrics import branch_failures_total
from kubetopo.topology.management import ManagementTopologyCache

_log = structlog.get_logger(component="topology.applications")

TRACKING_ID_ANNOTATION = "argocd.argoproj.io/tracking-id"
INSTANCE_LABEL = "argocd.argoproj.io/instance"
APPLICATIONS = GroupVersionResource("argoproj.io", "v1alpha1", "applications")

_PARENT_MARKERS = ("argoproj.io/Application:", "argoproj.io/ApplicationSet:")


def _split_instance(instance: str) -> tuple[str, str] | None:
    # namespace and app name are separated by the first underscore
    namespace, sep, name = instance.partition("_")
    if not sep or not namespace or not name:
        return None
    return namespace, name


def parse_tracking_id(value: str, controller_namespace: str = "argocd") -> tuple[str, str] | None:
    """Parse a tracking-id annotation into ``(namespace, application name)``.

    Two shapes are understood::

        parent-app:argoproj.io/Application:ns/child   -> (controller_namespace, "parent-app")
        team-ns_my-app:apps/v1                        -> ("team-ns", "my-app")

    Applications created by a parent Application (or ApplicationSet) are
    attributed to the parent, which lives in the controller namespace.
    """
    head, sep, _rest = value.partition(":")
    if not sep or not head:
        return None
    if any(marker in value for marker in _PARENT_MARKERS):
        return controller_namespace, head
    return _split_instance(head)


def parse_instance_label(value: str) -> tuple[str, str] | None:
    """Parse an instance label; the ``:group/version`` suffix is optional."""
    head = value.partition(":")[0]
    if not head:
        return None
    return _split_instance(head)


class ApplicationCorrelator:
    """Finds the Application managing an object on its management cluster.

    Lookups never raise: every failure is logged and yields no
    Applications.
    """

    def __init__(
        self,
        provider: ClientProvider,
        topology: ManagementTopologyCache,
        gitops_namespace: str = "argocd",
    ) -> None:
        self._provider = provider
        self._topology = topology
        self._gitops_namespace = gitops_namespace

    def application_for(self, obj: ResourceObject) -> tuple[str, str] | None:
        """The ``(namespace, name)`` an object's GitOps metadata points at."""
        tracking_id = obj.get_string(TRACKING_ID_ANNOTATION, source=obj.annotations)
        if tracking_id:
            parsed = parse_tracking_id(tracking_id, self._gitops_namespace)
            if parsed is None:
                _log.info("tracking_id_unparseable", object=obj.name, tracking_id=tracking_id)
            return parsed
        instance = obj.get_string(INSTANCE_LABEL, source=obj.labels)
        if instance:
            parsed = parse_instance_label(instance)
            if parsed is None:
                _log.info("instance_label_unparseable", object=obj.name, instance=instance)
            return parsed
        return None

    async def find_applications(self, obj: ResourceObject, workload_cluster: str) -> set[ApplicationRef]:
        target = self.application_for(obj)
        if target is None:
            return set()
        namespace, name = target

        try:
            management = await self._topology.find_management_cluster(workload_cluster)
        except Exception as exc:  # noqa: BLE001
            self._lookup_failed(workload_cluster, name, exc)
            return set()
        if management is None:
            _log.debug("no_management_cluster", cluster=workload_cluster)
            return set()

        try:
            exists = await self.application_exists(management, namespace, name)
        except Exception as exc:  # noqa: BLE001
            self._lookup_failed(management, name, exc)
            return set()
        if not exists:
            _log.debug("application_absent", cluster=management, namespace=namespace, application=name)
            return set()

        _log.info("application_found", cluster=management, namespace=namespace, application=name)
        return {ApplicationRef(name=name, namespace=namespace, cluster=management)}

    async def application_exists(self, cluster: str, namespace: str, name: str) -> bool:
        """True if the Application exists; NotFound is False, other errors raise."""
        client = await self._provider.client_for(cluster)
        try:
            await client.get(APPLICATIONS, name, namespace)
        except NotFoundError:
            return False
        return True

    @staticmethod
    def _lookup_failed(cluster: str, application: str, exc: Exception) -> None:
        branch_failures_total.labels(branch="applications").inc()
        if isinstance(exc, KubeTopoError):
            _log.info("application_lookup_failed", cluster=cluster, application=application, error=str(exc))
        else:
            _log.warning("application_lookup_failed", cluster=cluster, application=application, error=str(exc))
