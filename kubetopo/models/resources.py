"""Resource identity, attribute-bag wrapper and dependency-chain structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeVar

_T = TypeVar("_T")


@dataclass(frozen=True)
class GroupVersionResource:
    """Three-part address of an API resource type."""

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        """Render ``group/version``, or just ``version`` for the core group."""
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def from_api_version(cls, api_version: str, resource: str) -> GroupVersionResource:
        """Build a GVR from an ``apiVersion`` string such as ``apps/v1`` or ``v1``.

        Raises:
            ValueError: if *api_version* is empty or has more than one slash.
        """
        if not api_version:
            raise ValueError("apiVersion must not be empty")
        parts = api_version.split("/")
        if len(parts) == 1:
            return cls(group="", version=parts[0], resource=resource)
        if len(parts) == 2 and all(parts):
            return cls(group=parts[0], version=parts[1], resource=resource)
        raise ValueError(f"unexpected apiVersion {api_version!r}")

    def __str__(self) -> str:
        return f"{self.api_version}/{self.resource}"


@dataclass(frozen=True)
class ResourceType:
    """One discovered, listable API resource."""

    name: str  # plural resource name, e.g. "deployments"
    kind: str
    group_version: str
    namespaced: bool
    verbs: tuple[str, ...] = ()

    @property
    def gvr(self) -> GroupVersionResource:
        return GroupVersionResource.from_api_version(self.group_version, self.name)


@dataclass(frozen=True)
class ResourceRef:
    """Identity-only pointer to a live object."""

    name: str
    kind: str
    uid: str
    namespace: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"name": self.name, "kind": self.kind, "uid": self.uid}
        if self.namespace:
            data["namespace"] = self.namespace
        return data


@dataclass(frozen=True)
class ApplicationRef:
    """A GitOps Application and the management cluster it lives on."""

    name: str
    namespace: str
    cluster: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "namespace": self.namespace, "cluster": self.cluster}


@dataclass(frozen=True)
class OwnerReference:
    """Back-pointer from an object to the object that owns it."""

    uid: str
    kind: str
    name: str
    api_version: str


@dataclass(frozen=True)
class SecretData:
    """A Secret with its ``data`` values base64-decoded to raw bytes."""

    name: str
    data: dict[str, bytes] = field(default_factory=dict)


class ResourceObject:
    """Attribute-bag view over the raw JSON of a live Kubernetes object.

    Every accessor takes a default and returns it whenever the key is
    missing or holds a value of an unexpected type, so call sites never
    have to type-check the payload themselves.
    """

    __slots__ = ("raw",)

    def __init__(self, raw: dict[str, Any]) -> None:
        self.raw = raw

    # ------------------------------------------------------------------
    # Defaulting lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _lookup(source: dict[str, Any], key: str, expected: type[_T], default: _T) -> _T:
        value = source.get(key)
        # bool is an int subclass; never let True/False masquerade as a count
        if isinstance(value, expected) and not (expected is int and isinstance(value, bool)):
            return value
        return default

    def get_string(self, key: str, default: str = "", *, source: dict[str, Any] | None = None) -> str:
        return self._lookup(self.raw if source is None else source, key, str, default)

    def get_int(self, key: str, default: int = 0, *, source: dict[str, Any] | None = None) -> int:
        return self._lookup(self.raw if source is None else source, key, int, default)

    def get_map(self, key: str, *, source: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._lookup(self.raw if source is None else source, key, dict, {})

    def get_slice(self, key: str, *, source: dict[str, Any] | None = None) -> list[Any]:
        return self._lookup(self.raw if source is None else source, key, list, [])

    # ------------------------------------------------------------------
    # Well-known fields
    # ------------------------------------------------------------------

    @property
    def metadata(self) -> dict[str, Any]:
        return self.get_map("metadata")

    @property
    def kind(self) -> str:
        return self.get_string("kind")

    @property
    def api_version(self) -> str:
        return self.get_string("apiVersion")

    @property
    def name(self) -> str:
        return self.get_string("name", source=self.metadata)

    @property
    def namespace(self) -> str | None:
        return self.get_string("namespace", source=self.metadata) or None

    @property
    def uid(self) -> str:
        return self.get_string("uid", source=self.metadata)

    @property
    def labels(self) -> dict[str, Any]:
        return self.get_map("labels", source=self.metadata)

    @property
    def annotations(self) -> dict[str, Any]:
        return self.get_map("annotations", source=self.metadata)

    @property
    def spec(self) -> dict[str, Any]:
        return self.get_map("spec")

    @property
    def status(self) -> dict[str, Any]:
        return self.get_map("status")

    @property
    def owner_references(self) -> list[OwnerReference]:
        """Owner references in declaration order; malformed entries are dropped."""
        refs: list[OwnerReference] = []
        for entry in self.get_slice("ownerReferences", source=self.metadata):
            if not isinstance(entry, dict):
                continue
            refs.append(
                OwnerReference(
                    uid=self.get_string("uid", source=entry),
                    kind=self.get_string("kind", source=entry),
                    name=self.get_string("name", source=entry),
                    api_version=self.get_string("apiVersion", source=entry),
                )
            )
        return refs

    def is_owned_by(self, owner_uid: str) -> bool:
        return any(ref.uid == owner_uid for ref in self.owner_references)

    def to_ref(self, kind: str | None = None, namespace: str | None = None) -> ResourceRef:
        return ResourceRef(
            name=self.name,
            kind=kind or self.kind,
            uid=self.uid,
            namespace=namespace if namespace is not None else self.namespace,
        )

    def __repr__(self) -> str:
        return f"ResourceObject(kind={self.kind!r}, namespace={self.namespace!r}, name={self.name!r})"


@dataclass
class DependencyChain:
    """Everything known about one resource's place in the deployment topology."""

    current: ResourceRef
    ancestors: list[ResourceRef] = field(default_factory=list)  # root first
    descendants: list[ResourceRef] = field(default_factory=list)  # unique by UID
    applications: set[ApplicationRef] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ancestors": [ref.to_dict() for ref in self.ancestors],
            "current": self.current.to_dict(),
            "descendants": [ref.to_dict() for ref in self.descendants],
            "applications": [
                app.to_dict()
                for app in sorted(self.applications, key=lambda a: (a.cluster, a.namespace, a.name))
            ],
        }


def dedupe_refs(refs: list[ResourceRef], exclude_uid: str = "") -> list[ResourceRef]:
    """Return *refs* unique by UID in first-seen order, dropping *exclude_uid*.

    Refs without a UID fall back to (kind, namespace, name) identity.
    """
    seen: set[tuple[str, ...]] = set()
    unique: list[ResourceRef] = []
    for ref in refs:
        if exclude_uid and ref.uid == exclude_uid:
            continue
        key: tuple[str, ...] = (ref.uid,) if ref.uid else (ref.kind, ref.namespace or "", ref.name)
        if key in seen:
            continue
        seen.add(key)
        unique.append(ref)
    return unique
