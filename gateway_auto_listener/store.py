# Copyright 2018 Datawire. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License

from typing import Any, Dict, List, Optional, Protocol

import datetime
import logging
import os

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .k8sobject import Gateway, HTTPRoute, KubernetesGVK, KubernetesObject, ObjectKey

logger = logging.getLogger("gateway-auto-listener.store")

MERGE_PATCH = 'application/merge-patch+json'


def is_not_found(e: BaseException) -> bool:
    return isinstance(e, ApiException) and e.status == 404


def is_conflict(e: BaseException) -> bool:
    return isinstance(e, ApiException) and e.status == 409


class Store(Protocol):
    """
    The slice of the Kubernetes API the reconciler needs. Reads return None
    when the object does not exist; everything else that goes wrong is an
    ApiException. Patches are JSON merge patches; a patch that carries
    metadata.resourceVersion fails with a 409 if the object has changed.
    """

    def get_route(self, key: ObjectKey) -> Optional[HTTPRoute]:
        ...

    def list_routes(self) -> List[HTTPRoute]:
        ...

    def patch_route(self, key: ObjectKey, body: Dict[str, Any]) -> HTTPRoute:
        ...

    def get_gateway(self, key: ObjectKey) -> Optional[Gateway]:
        ...

    def patch_gateway(self, key: ObjectKey, body: Dict[str, Any]) -> Gateway:
        ...

    def get_namespace(self, name: str) -> Optional[KubernetesObject]:
        ...

    def record_event(self, obj: KubernetesObject, event_type: str, reason: str, message: str) -> None:
        ...


def kube_api_client() -> client.ApiClient:
    # XXX: is there a better way to check if we are inside a cluster or not?
    if "KUBERNETES_SERVICE_HOST" in os.environ:
        config.load_incluster_config()
    else:
        config.load_kube_config()

    return client.ApiClient()


class KubernetesStore:
    """
    A Store backed by a live Kubernetes API server.
    """

    def __init__(self, api_client: client.ApiClient, component: str = 'gateway-auto-listener') -> None:
        self.api_client = api_client
        self.custom = client.CustomObjectsApi(api_client)
        self.core = client.CoreV1Api(api_client)
        self.component = component

    def _gvk_args(self, gvk: KubernetesGVK, plural: str) -> Dict[str, str]:
        return {
            'group': gvk.api_group or '',
            'version': gvk.version,
            'plural': plural,
        }

    def _get(self, cls, key: ObjectKey):
        try:
            obj = self.custom.get_namespaced_custom_object(
                namespace=key.namespace, name=key.name, **self._gvk_args(cls.GVK, cls.PLURAL)
            )
        except ApiException as e:
            if is_not_found(e):
                return None

            raise

        return cls(obj)

    def _patch(self, cls, key: ObjectKey, body: Dict[str, Any]):
        obj = self.custom.patch_namespaced_custom_object(
            namespace=key.namespace, name=key.name, body=body,
            _content_type=MERGE_PATCH, **self._gvk_args(cls.GVK, cls.PLURAL)
        )

        return cls(obj)

    def get_route(self, key: ObjectKey) -> Optional[HTTPRoute]:
        return self._get(HTTPRoute, key)

    def list_routes(self) -> List[HTTPRoute]:
        result = self.custom.list_cluster_custom_object(**self._gvk_args(HTTPRoute.GVK, HTTPRoute.PLURAL))

        return [HTTPRoute(item) for item in result.get('items') or []]

    def patch_route(self, key: ObjectKey, body: Dict[str, Any]) -> HTTPRoute:
        return self._patch(HTTPRoute, key, body)

    def get_gateway(self, key: ObjectKey) -> Optional[Gateway]:
        return self._get(Gateway, key)

    def patch_gateway(self, key: ObjectKey, body: Dict[str, Any]) -> Gateway:
        return self._patch(Gateway, key, body)

    def get_namespace(self, name: str) -> Optional[KubernetesObject]:
        try:
            ns = self.core.read_namespace(name)
        except ApiException as e:
            if is_not_found(e):
                return None

            raise

        return KubernetesObject(self.api_client.sanitize_for_serialization(ns))

    def _find_event(self, obj: KubernetesObject, event_type: str, reason: str, message: str) -> Optional[Any]:
        """
        Find an event we already recorded for the same object and complaint,
        so that a repeat bumps its count instead of piling up new events.
        """

        field_selector = ','.join([
            f'involvedObject.kind={obj.kind}',
            f'involvedObject.name={obj.name}',
            f'reason={reason}',
        ])

        events = self.core.list_namespaced_event(obj.namespace, field_selector=field_selector)

        for event in events.items or []:
            if (event.type == event_type) and (event.message == message) and (event.involved_object.uid == obj.uid):
                return event

        return None

    def record_event(self, obj: KubernetesObject, event_type: str, reason: str, message: str) -> None:
        now = datetime.datetime.now(datetime.timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')

        body = {
            'metadata': {
                'generateName': f'{obj.name}.',
                'namespace': obj.namespace,
            },
            'involvedObject': {
                'apiVersion': obj.gvk.api_version,
                'kind': obj.kind,
                'name': obj.name,
                'namespace': obj.namespace,
                'uid': obj.uid,
                'resourceVersion': obj.resource_version,
            },
            'type': event_type,
            'reason': reason,
            'message': message,
            'source': {
                'component': self.component,
            },
            'firstTimestamp': now,
            'lastTimestamp': now,
            'count': 1,
        }

        # Events are advisory. Losing one must never fail a reconciliation.
        try:
            existing = self._find_event(obj, event_type, reason, message)

            if existing is not None:
                self.core.patch_namespaced_event(existing.metadata.name, obj.namespace, {
                    'count': (existing.count or 1) + 1,
                    'lastTimestamp': now,
                })
            else:
                self.core.create_namespaced_event(obj.namespace, body)
        except ApiException as e:
            logger.warning(f'could not record {reason} event for {obj.key}: {e.status} {e.reason}')
