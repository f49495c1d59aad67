"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubeClientConfig:
    """Kubernetes API client configuration."""

    kubeconfig: str = ""  # empty -> KUBECONFIG / ~/.kube/config
    request_timeout: int = 30


@dataclass
class ResolutionConfig:
    """Dependency resolution configuration."""

    deadline_seconds: int = 60


@dataclass
class TopologyConfig:
    """GitOps management-cluster topology cache configuration."""

    gitops_namespace: str = "argocd"
    wait_seconds: int = 35
    probe_timeout: int = 5
    eager: bool = True


@dataclass
class APIConfig:
    """REST API configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeTopoConfig:
    """Top-level kubetopo configuration."""

    kube: KubeClientConfig = field(default_factory=KubeClientConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    topology: TopologyConfig = field(default_factory=TopologyConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
