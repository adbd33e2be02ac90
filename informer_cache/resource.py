"""Typed representations of kubernetes resources held in the cache.

A resource class is the identity callers use to name a kind of object: the
scheme maps each class to its `GroupVersionKind` and back. Objects are parsed
from the JSON documents returned by the API server.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import CacheException
from .kind import GroupVersionKind

__all__ = [
    "ObjectKey",
    "ObjectMeta",
    "Object",
    "ObjectList",
    "Pod",
    "PodList",
    "ConfigMap",
    "ConfigMapList",
    "Secret",
    "Service",
    "Namespace",
    "Deployment",
]

T = TypeVar("T", bound="Object")


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Identifier for an object within a kind."""

    namespace: str
    name: str

    @classmethod
    def from_object(cls, obj: "Object") -> "ObjectKey":
        """Return the key identifying the object."""
        return cls(obj.metadata.namespace or "", obj.metadata.name)

    def __str__(self) -> str:
        """Return the namespace and name concatenated as an id."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass
class BaseResource(DataClassDictMixin):
    """Base class for all serializable resource parts."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class ObjectMeta(BaseResource):
    """Metadata common to all objects."""

    name: str = ""
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object, unset for cluster scoped objects."""

    labels: dict[str, str] | None = None
    """Labels used by label selectors."""

    annotations: dict[str, str] | None = None
    """Annotations on the object."""

    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    """Opaque version of the object used for watch resumption."""

    uid: str | None = None
    """Unique identifier of the object."""


@dataclass
class Object(BaseResource):
    """A kubernetes object with a kind and metadata."""

    api_version: ClassVar[str] = ""
    """The apiVersion of the kind."""

    kind: ClassVar[str] = ""
    """The kind of the object."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    """Standard object metadata."""

    @classmethod
    def group_version_kind(cls) -> GroupVersionKind:
        """Return the kind declared by the class."""
        return GroupVersionKind.from_api_version(cls.api_version, cls.kind)

    @classmethod
    def parse_doc(cls: type[T], doc: dict[str, Any]) -> T:
        """Parse an object from a raw kubernetes document."""
        if (kind := doc.get("kind")) is not None and kind != cls.kind:
            raise CacheException(f"Invalid {cls.__name__} document has kind {kind}")
        if not doc.get("metadata"):
            raise CacheException(f"Invalid {cls.__name__} missing metadata: {doc}")
        return cls.from_dict(doc)

    def to_doc(self) -> dict[str, Any]:
        """Return the raw kubernetes document for the object."""
        return {"apiVersion": self.api_version, "kind": self.kind, **self.to_dict()}

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels or {}

    def field_set(self) -> dict[str, str]:
        """Return the fields of the object that field selectors may match."""
        return {
            "metadata.name": self.metadata.name,
            "metadata.namespace": self.metadata.namespace or "",
        }


@dataclass
class ObjectList(BaseResource):
    """A list of objects returned by the API server.

    Lists are registered in the scheme so responses can be decoded, but they
    are not objects and cannot be cached by themselves.
    """

    api_version: ClassVar[str] = ""
    kind: ClassVar[str] = ""

    items: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PodSpec(BaseResource):
    """The subset of the pod spec known to the cache."""

    node_name: str | None = field(
        metadata=field_options(alias="nodeName"), default=None
    )
    restart_policy: str | None = field(
        metadata=field_options(alias="restartPolicy"), default=None
    )
    service_account_name: str | None = field(
        metadata=field_options(alias="serviceAccountName"), default=None
    )
    containers: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PodStatus(BaseResource):
    """Observed state of a pod."""

    phase: str | None = None
    pod_ip: str | None = field(metadata=field_options(alias="podIP"), default=None)


@dataclass
class Pod(Object):
    """A Pod is a group of containers scheduled together on a node."""

    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "Pod"

    spec: PodSpec = field(default_factory=PodSpec)
    status: PodStatus = field(default_factory=PodStatus)

    def field_set(self) -> dict[str, str]:
        fields = super().field_set()
        fields.update(
            {
                "spec.nodeName": self.spec.node_name or "",
                "spec.restartPolicy": self.spec.restart_policy or "",
                "spec.serviceAccountName": self.spec.service_account_name or "",
                "status.phase": self.status.phase or "",
                "status.podIP": self.status.pod_ip or "",
            }
        )
        return fields


@dataclass
class PodList(ObjectList):
    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "PodList"


@dataclass
class ConfigMap(Object):
    """A ConfigMap is an API object used to store data in key-value pairs."""

    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "ConfigMap"

    data: dict[str, str] | None = None
    binary_data: dict[str, str] | None = field(
        metadata=field_options(alias="binaryData"), default=None
    )


@dataclass
class ConfigMapList(ObjectList):
    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "ConfigMapList"


@dataclass
class Secret(Object):
    """A Secret contains a small amount of sensitive data."""

    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "Secret"

    type: str | None = None
    data: dict[str, str] | None = None
    string_data: dict[str, str] | None = field(
        metadata=field_options(alias="stringData"), default=None
    )

    def field_set(self) -> dict[str, str]:
        fields = super().field_set()
        fields["type"] = self.type or ""
        return fields


@dataclass
class Service(Object):
    """A Service exposes a set of pods behind a stable address."""

    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "Service"

    spec: dict[str, Any] | None = None


@dataclass
class Namespace(Object):
    """A Namespace scopes names of the objects within it."""

    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = "Namespace"

    status: dict[str, Any] | None = None

    def field_set(self) -> dict[str, str]:
        fields = super().field_set()
        fields["status.phase"] = (self.status or {}).get("phase", "")
        return fields


@dataclass
class Deployment(Object):
    """A Deployment manages a replicated set of pods."""

    api_version: ClassVar[str] = "apps/v1"
    kind: ClassVar[str] = "Deployment"

    spec: dict[str, Any] | None = None
    status: dict[str, Any] | None = None
