from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional

import collections.abc
import dataclasses


@dataclasses.dataclass(frozen=True)
class KubernetesGVK:
    """
    Represents a Kubernetes resource type (API group, version and kind).
    """

    api_version: str
    kind: str

    @property
    def api_group(self) -> Optional[str]:
        # These are backward-indexed to support apiVersion: v1, which has a
        # version but no group.
        try:
            return self.api_version.split('/', 1)[-2]
        except IndexError:
            return None

    @property
    def version(self) -> str:
        return self.api_version.split('/', 1)[-1]

    @classmethod
    def for_gateway_api(cls, kind: str, version: str = 'v1') -> KubernetesGVK:
        return cls(f'gateway.networking.k8s.io/{version}', kind)


@dataclasses.dataclass(frozen=True, order=True)
class ObjectKey:
    """
    Identifies a single object by namespace and name. Cluster-scoped objects
    use an empty namespace.
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f'{self.namespace}/{self.name}'

        return self.name


class KubernetesObject (collections.abc.Mapping):
    """
    Represents a raw object from Kubernetes.
    """

    def __init__(self, delegate: Dict[str, Any]) -> None:
        self.delegate = delegate

        try:
            self.name
        except KeyError:
            raise ValueError('delegate is not a valid Kubernetes object')

    def __getitem__(self, key: str) -> Any:
        return self.delegate[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.delegate)

    def __len__(self) -> int:
        return len(self.delegate)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.key})'

    @property
    def gvk(self) -> KubernetesGVK:
        return KubernetesGVK(self.get('apiVersion', 'v1'), self.get('kind', ''))

    @property
    def kind(self) -> str:
        return self.gvk.kind

    @property
    def metadata(self) -> Dict[str, Any]:
        return self['metadata']

    @property
    def namespace(self) -> str:
        return self.metadata.get('namespace') or ''

    @property
    def name(self) -> str:
        return self.metadata['name']

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    @property
    def uid(self) -> Optional[str]:
        return self.metadata.get('uid')

    @property
    def resource_version(self) -> Optional[str]:
        return self.metadata.get('resourceVersion')

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.get('annotations') or {}

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.get('labels') or {}

    @property
    def finalizers(self) -> List[str]:
        return list(self.metadata.get('finalizers') or [])

    @property
    def deletion_timestamp(self) -> Optional[str]:
        return self.metadata.get('deletionTimestamp')

    @property
    def being_deleted(self) -> bool:
        return bool(self.deletion_timestamp)

    @property
    def spec(self) -> Dict[str, Any]:
        return self.get('spec') or {}


class HTTPRoute (KubernetesObject):
    GVK = KubernetesGVK.for_gateway_api('HTTPRoute')
    PLURAL = 'httproutes'

    @property
    def hostnames(self) -> List[str]:
        """
        The route's hostnames, de-duplicated, in the order they were first
        declared.
        """
        seen: Dict[str, None] = {}

        for hostname in self.spec.get('hostnames') or []:
            seen.setdefault(str(hostname), None)

        return list(seen)


class Gateway (KubernetesObject):
    GVK = KubernetesGVK.for_gateway_api('Gateway')
    PLURAL = 'gateways'

    @property
    def listeners(self) -> List[Dict[str, Any]]:
        return list(self.spec.get('listeners') or [])

    @property
    def listener_names(self) -> List[str]:
        return [str(l.get('name', '')) for l in self.listeners]
