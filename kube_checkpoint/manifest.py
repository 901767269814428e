"""Representation of the pods observed on a node and the manifests written for them.

Pods are read from the kubelet's read-only pod listing. Only the identifying
fields are modeled explicitly, the pod spec is carried as the raw document so
that anything not touched here (images, resources, probes) is written back out
unchanged in the static pod manifest.
"""

from dataclasses import dataclass, field, replace
import json
import logging
from typing import Any, Iterator

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import InputException, ManifestException

__all__ = [
    "PodRecord",
    "PodSnapshot",
    "StaticPodManifest",
    "DEFAULT_MANIFEST_TEMPLATE",
]

_LOGGER = logging.getLogger(__name__)


POD_KIND = "Pod"
POD_LIST_KIND = "PodList"
DEFAULT_NAMESPACE = "default"

DEFAULT_MANIFEST_TEMPLATE = """\
{
  "apiVersion": "v1",
  "kind": "Pod",
  "metadata": {
    "name": "temp-apiserver",
    "namespace": "kube-system"
  },
  "spec": {}
}
"""


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class PodRecord(BaseManifest):
    """A pod as reported by the kubelet."""

    name: str
    """The name of the pod."""

    namespace: str
    """The namespace of the pod."""

    spec: dict[str, Any] = field(default_factory=dict)
    """The raw pod spec."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "PodRecord":
        """Parse a PodRecord from a raw kubernetes Pod object."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid pod object: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid pod missing metadata: {doc}")
        if not isinstance(metadata, dict):
            raise InputException(f"Invalid pod metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid pod missing metadata.name: {doc}")
        if not isinstance(name, str):
            raise InputException(f"Invalid pod metadata.name: {doc}")
        namespace = metadata.get("namespace") or DEFAULT_NAMESPACE
        if not isinstance(namespace, str):
            raise InputException(f"Invalid pod metadata.namespace: {doc}")
        if not isinstance(spec := doc.get("spec") or {}, dict):
            raise InputException(f"Invalid pod spec: {doc}")
        return cls(name=name, namespace=namespace, spec=spec)

    @property
    def containers(self) -> list[dict[str, Any]]:
        return self.spec.get("containers") or []

    @property
    def command(self) -> list[str]:
        """Command line of the first container."""
        if not (containers := self.containers):
            return []
        return containers[0].get("command") or []

    @property
    def volumes(self) -> list[dict[str, Any]]:
        return self.spec.get("volumes") or []

    @property
    def volume_mounts(self) -> list[dict[str, Any]]:
        """Volume mounts of the first container."""
        if not (containers := self.containers):
            return []
        return containers[0].get("volumeMounts") or []

    def with_spec(self, spec: dict[str, Any]) -> "PodRecord":
        """Return a copy of this pod with a replaced spec."""
        return replace(self, spec=spec)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class PodSnapshot(BaseManifest):
    """The pods visible on the node at a single point in time."""

    pods: tuple[PodRecord, ...] = ()

    @classmethod
    def parse_doc(cls, doc: Any) -> "PodSnapshot":
        """Parse a kubelet PodList document (or a bare list of pods)."""
        if doc is None:
            return cls()
        if isinstance(doc, list):
            items = doc
        elif isinstance(doc, dict):
            if (kind := doc.get("kind")) and kind != POD_LIST_KIND:
                raise InputException(f"Expected {POD_LIST_KIND} but got {kind}")
            items = doc.get("items") or []
        else:
            raise InputException(f"Invalid pod list document: {doc}")
        return cls(pods=tuple(PodRecord.parse_doc(item) for item in items))

    def __iter__(self) -> Iterator[PodRecord]:
        return iter(self.pods)

    def __len__(self) -> int:
        return len(self.pods)


@dataclass
class StaticPodManifest(BaseManifest):
    """A static pod manifest that the kubelet runs from its manifest directory."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    """The apiVersion of the pod."""

    kind: str
    """The kind of the object, always Pod."""

    metadata: dict[str, Any]
    """The pod metadata, name and namespace at minimum."""

    spec: dict[str, Any] = field(default_factory=dict)
    """The pod spec."""

    @classmethod
    def from_template(cls, content: str | bytes) -> "StaticPodManifest":
        """Parse the manifest template that captured specs are embedded into."""
        try:
            doc = json.loads(content)
        except ValueError as err:
            raise InputException(f"Invalid manifest template: {err}") from err
        if not isinstance(doc, dict):
            raise InputException(f"Invalid manifest template: {doc}")
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid manifest template missing apiVersion: {doc}")
        if doc.get("kind") != POD_KIND:
            raise InputException(f"Invalid manifest template expected {POD_KIND}: {doc}")
        if not (metadata := doc.get("metadata")) or not metadata.get("name"):
            raise InputException(
                f"Invalid manifest template missing metadata.name: {doc}"
            )
        return cls(
            api_version=api_version,
            kind=POD_KIND,
            metadata=metadata,
            spec=doc.get("spec") or {},
        )

    @property
    def name(self) -> str:
        return str(self.metadata["name"])

    def with_spec(self, spec: dict[str, Any]) -> "StaticPodManifest":
        """Return a manifest running the specified pod spec."""
        return replace(self, spec=spec)

    def to_json(self) -> bytes:
        """Render the manifest as the bytes written to the manifest directory."""
        try:
            content = json.dumps(self.to_dict(), indent=2, sort_keys=True)
        except (TypeError, ValueError) as err:
            raise ManifestException(
                f"Unable to serialize manifest {self.name}: {err}"
            ) from err
        return (content + "\n").encode()
