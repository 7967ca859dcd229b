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

from typing import Any, Dict, List, Optional

import enum
import logging

from .config import ControllerConfig
from .k8sobject import HTTPRoute
from .listenerset import ListenerSet
from .store import Store


@enum.unique
class Phase (enum.Enum):
    # No issuer annotation and no finalizer: none of our business.
    UNMANAGED = enum.auto()

    # Issuer annotation, but no finalizer yet.
    PENDING = enum.auto()

    # Issuer annotation and finalizer: keep listeners in sync.
    MANAGED = enum.auto()

    # Holds our finalizer but is being deleted, or lost its issuer
    # annotations: take its listeners away and let go of it.
    RELEASING = enum.auto()

    # Being deleted without our finalizer; nothing left to do.
    GONE = enum.auto()


def route_patch(route: HTTPRoute, finalizers: Optional[List[str]] = None,
                annotations: Optional[Dict[str, Optional[str]]] = None) -> Dict[str, Any]:
    """
    Build a merge patch for the two fields of a route we are allowed to
    write. The route's resourceVersion rides along so that a concurrent
    change turns into a 409 rather than a lost update.
    """

    metadata: Dict[str, Any] = {
        'resourceVersion': route.resource_version,
    }

    if finalizers is not None:
        metadata['finalizers'] = finalizers

    if annotations:
        metadata['annotations'] = annotations

    return {'metadata': metadata}


class LifecycleManager:
    """
    Decides whether a route is ours to manage and moves the finalizer that
    guarantees we get to clean up after it.
    """

    def __init__(self, aconf: ControllerConfig, store: Store, logger: logging.Logger) -> None:
        self.aconf = aconf
        self.store = store
        self.logger = logger

    def has_issuer(self, route: HTTPRoute) -> bool:
        annotations = route.annotations

        return ((self.aconf.CLUSTER_ISSUER_ANNOTATION in annotations) or
                (self.aconf.ISSUER_ANNOTATION in annotations))

    def has_finalizer(self, route: HTTPRoute) -> bool:
        # A route being deleted can still hold the old token, which can no
        # longer be migrated; it counts as ours.
        finalizers = route.finalizers

        return (self.aconf.FINALIZER in finalizers) or (self.aconf.OLD_FINALIZER in finalizers)

    def phase(self, route: HTTPRoute) -> Phase:
        finalized = self.has_finalizer(route)

        if route.being_deleted:
            return Phase.RELEASING if finalized else Phase.GONE

        if not self.has_issuer(route):
            return Phase.RELEASING if finalized else Phase.UNMANAGED

        return Phase.MANAGED if finalized else Phase.PENDING

    def recorded(self, route: HTTPRoute) -> ListenerSet:
        return ListenerSet.from_annotation(route.annotations.get(self.aconf.MANAGED_LISTENERS_ANNOTATION))

    def migrate_finalizer(self, route: HTTPRoute) -> HTTPRoute:
        finalizers = route.finalizers

        if self.aconf.OLD_FINALIZER not in finalizers:
            return route

        # The API server refuses new finalizers on a deleting object. release()
        # drops the old token instead.
        if route.being_deleted:
            return route

        updated = [f for f in finalizers if f != self.aconf.OLD_FINALIZER]

        if self.aconf.FINALIZER not in updated:
            updated.append(self.aconf.FINALIZER)

        route = self.store.patch_route(route.key, route_patch(route, finalizers=updated))
        self.logger.info(f'{route.key}: migrated finalizer {self.aconf.OLD_FINALIZER} to {self.aconf.FINALIZER}')

        return route

    def add_finalizer(self, route: HTTPRoute) -> HTTPRoute:
        if self.aconf.FINALIZER in route.finalizers:
            return route

        updated = route.finalizers + [self.aconf.FINALIZER]

        route = self.store.patch_route(route.key, route_patch(route, finalizers=updated))
        self.logger.debug(f'{route.key}: added finalizer')

        return route

    def release(self, route: HTTPRoute) -> HTTPRoute:
        """
        Drop our finalizer and our record in one update. Only call this once
        the route's listeners are gone from the gateway.
        """

        ours = (self.aconf.FINALIZER, self.aconf.OLD_FINALIZER)
        updated = [f for f in route.finalizers if f not in ours]
        annotations: Dict[str, Optional[str]] = {}

        if self.aconf.MANAGED_LISTENERS_ANNOTATION in route.annotations:
            annotations[self.aconf.MANAGED_LISTENERS_ANNOTATION] = None

        route = self.store.patch_route(route.key, route_patch(route, finalizers=updated, annotations=annotations))
        self.logger.debug(f'{route.key}: removed finalizer')

        return route

    def record(self, route: HTTPRoute, names: ListenerSet) -> HTTPRoute:
        """
        Persist the set of listeners we now hold for this route, skipping the
        write entirely if nothing changed.
        """

        current = route.annotations.get(self.aconf.MANAGED_LISTENERS_ANNOTATION)
        wanted = names.to_annotation()

        if current == wanted or (current is None and not names):
            return route

        value: Optional[str] = wanted if names else None
        route = self.store.patch_route(
            route.key, route_patch(route, annotations={self.aconf.MANAGED_LISTENERS_ANNOTATION: value})
        )
        self.logger.debug(f'{route.key}: recorded listeners {wanted or "(none)"}')

        return route
