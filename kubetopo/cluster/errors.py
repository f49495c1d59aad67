"""Exception taxonomy shared by the cluster client and the topology engine.

NotFoundError and its subclasses are fatal to a dependency query.
PermissionDeniedError and ClusterAPIError are fatal only for the initial
object fetch; best-effort branches log them and carry on.
"""

from __future__ import annotations


class KubeTopoError(Exception):
    """Base class for every error raised by kubetopo."""


class KubeconfigError(KubeTopoError):
    """The kubeconfig could not be loaded or a client could not be built from it."""


class NotFoundError(KubeTopoError):
    """A context, resource type or object does not exist."""


class ContextNotFoundError(NotFoundError):
    """The kubeconfig has no context with the requested name."""

    def __init__(self, context: str) -> None:
        super().__init__(f"context {context!r} not found")
        self.context = context


class ResourceTypeNotFoundError(NotFoundError):
    """No listable API resource matches the requested name."""

    def __init__(self, resource: str, context: str) -> None:
        super().__init__(f"resource {resource!r} not found in context {context!r}")
        self.resource = resource
        self.context = context


class ObjectNotFoundError(NotFoundError):
    """The API server answered 404 for a get."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.status = 404


class PermissionDeniedError(KubeTopoError):
    """The API server answered 403: the object may exist but is not readable."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.status = 403


class ClusterAPIError(KubeTopoError):
    """Any other failure talking to an API server."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ResolutionTimeoutError(KubeTopoError):
    """The dependency resolution deadline expired."""

    def __init__(self, deadline_seconds: float) -> None:
        super().__init__(f"dependency resolution exceeded {deadline_seconds:g}s deadline")
        self.deadline_seconds = deadline_seconds
