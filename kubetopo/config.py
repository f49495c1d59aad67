"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kubetopo.models.config import (
    APIConfig,
    KubeClientConfig,
    KubeTopoConfig,
    LogConfig,
    ResolutionConfig,
    TopologyConfig,
)

_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBETOPO_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_namespace(value: str) -> str:
    if not _DNS_LABEL_RE.match(value):
        raise ValueError(f"Invalid namespace name: {value!r}")
    return value


def load_config() -> KubeTopoConfig:
    """Load configuration from KUBETOPO_* environment variables."""
    return KubeTopoConfig(
        kube=KubeClientConfig(
            kubeconfig=_env("KUBECONFIG", ""),
            request_timeout=_env_int("REQUEST_TIMEOUT", 30, min_val=1, max_val=120),
        ),
        resolution=ResolutionConfig(
            deadline_seconds=_env_int("RESOLUTION_DEADLINE", 60, min_val=5, max_val=600),
        ),
        topology=TopologyConfig(
            gitops_namespace=_validate_namespace(_env("GITOPS_NAMESPACE", "argocd")),
            wait_seconds=_env_int("TOPOLOGY_WAIT", 35, min_val=0, max_val=300),
            probe_timeout=_env_int("TOPOLOGY_PROBE_TIMEOUT", 5, min_val=1, max_val=60),
            eager=_env_bool("TOPOLOGY_EAGER", True),
        ),
        api=APIConfig(
            host=_env("API_HOST", "127.0.0.1"),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
