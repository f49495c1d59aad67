"""kubetopo: multi-cluster Kubernetes dependency and GitOps topology resolver."""

__version__ = "0.3.1"
