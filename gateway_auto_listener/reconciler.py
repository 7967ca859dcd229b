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

from typing import List, Optional, Tuple

import dataclasses
import logging

from kubernetes.client.rest import ApiException

from .config import ControllerConfig
from .diff import compute_diff
from .k8sobject import HTTPRoute, KubernetesObject, ObjectKey
from .lifecycle import LifecycleManager, Phase
from .metrics import (
    GATEWAY_PATCH_TOTAL,
    HOSTNAME_DENIED_TOTAL,
    LISTENER_CONFLICT_TOTAL,
    RECONCILE_SECONDS,
    RECONCILE_TOTAL,
)
from .patcher import GatewayPatcher, PatchOutcome, PatchResult
from .policy import HostnamePolicy
from .store import Store

#############################################################################
## reconciler.py -- one pass over one HTTPRoute
##
## Every pass starts from fresh reads and recomputes everything, so a pass
## that dies halfway (conflict, API hiccup, crash) is simply run again. The
## only memory between passes is what lives on the objects themselves: the
## route's finalizer and recorded listeners, and the gateway's owner map.

EVENT_WARNING = 'Warning'
REASON_HOSTNAME_DENIED = 'HostnameValidationFailed'
REASON_LISTENER_CONFLICT = 'ListenerNameConflict'


class GatewayMissing (Exception):
    def __init__(self, key: ObjectKey) -> None:
        super().__init__(f'gateway {key} not found')
        self.key = key


@dataclasses.dataclass
class ReconcileResult:
    """
    How a pass ended. A result with requeue set is not a crash: it means
    "run me again later", and the work queue decides when.
    """

    requeue: bool = False
    error: Optional[BaseException] = None
    phase: Optional[Phase] = None
    outcome: Optional[PatchOutcome] = None

    @property
    def label(self) -> str:
        if self.outcome == PatchOutcome.CONFLICT:
            return 'conflict'

        if self.error is not None:
            return 'error'

        return 'requeue' if self.requeue else 'success'

    @classmethod
    def failed(cls, error: BaseException, phase: Optional[Phase] = None,
               outcome: Optional[PatchOutcome] = None) -> 'ReconcileResult':
        return cls(requeue=True, error=error, phase=phase, outcome=outcome)


class HTTPRouteReconciler:
    def __init__(self, aconf: ControllerConfig, store: Store, logger: Optional[logging.Logger] = None) -> None:
        self.aconf = aconf
        self.store = store
        self.logger = logger or logging.getLogger("gateway-auto-listener.reconciler")
        self.lifecycle = LifecycleManager(aconf, store, self.logger)
        self.patcher = GatewayPatcher(aconf, store, self.logger)

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        with RECONCILE_SECONDS.time():
            try:
                result = self._reconcile(key)
            except (ApiException, GatewayMissing) as e:
                self.logger.error(f'{key}: reconcile failed: {e}')
                result = ReconcileResult.failed(e)

        RECONCILE_TOTAL.labels(result.label).inc()

        return result

    def _reconcile(self, key: ObjectKey) -> ReconcileResult:
        route = self.store.get_route(key)

        if route is None:
            self.logger.debug(f'{key}: route is gone')
            return ReconcileResult()

        route = self.lifecycle.migrate_finalizer(route)
        phase = self.lifecycle.phase(route)

        if phase in (Phase.UNMANAGED, Phase.GONE):
            return ReconcileResult(phase=phase)

        if phase == Phase.RELEASING:
            route, patch = self.sync(route, deleting=True)

            if not patch.ok:
                return ReconcileResult.failed(patch.error, phase=phase, outcome=patch.outcome)

            self.lifecycle.release(route)
            self.logger.info(f'{key}: released')

            return ReconcileResult(phase=phase, outcome=patch.outcome)

        if phase == Phase.PENDING:
            route = self.lifecycle.add_finalizer(route)

        route, patch = self.sync(route)

        if not patch.ok:
            return ReconcileResult.failed(patch.error, phase=phase, outcome=patch.outcome)

        return ReconcileResult(phase=phase, outcome=patch.outcome)

    def desired_hostnames(self, route: HTTPRoute) -> List[str]:
        policy = HostnamePolicy(self.aconf, self.store, self.logger)
        allowed: List[str] = []

        for hostname in route.hostnames:
            decision = policy.validate(hostname, route.namespace)

            if not decision:
                self.logger.warning(f'{route.key}: {decision.reason}')
                HOSTNAME_DENIED_TOTAL.inc()
                self.store.record_event(route, EVENT_WARNING, REASON_HOSTNAME_DENIED, decision.reason)
                continue

            allowed.append(hostname)

        return allowed

    def sync(self, route: HTTPRoute, deleting: bool = False) -> Tuple[HTTPRoute, PatchResult]:
        gateway = self.store.get_gateway(self.aconf.gateway_key)

        if gateway is None:
            if deleting:
                # No gateway, no listeners to clean up.
                self.logger.info(f'{route.key}: gateway {self.aconf.gateway_key} not found, nothing to remove')
                return route, PatchResult(PatchOutcome.NOOP)

            raise GatewayMissing(self.aconf.gateway_key)

        hostnames = [] if deleting else self.desired_hostnames(route)

        diff = compute_diff(route.key, hostnames, self.lifecycle.recorded(route),
                            gateway.listener_names, self.patcher.owners(gateway),
                            self.aconf.gateway_namespace, deleting=deleting)

        for conflict in diff.conflicts:
            self.logger.warning(f'{route.key}: {conflict.message}')
            LISTENER_CONFLICT_TOTAL.inc()
            self.store.record_event(route, EVENT_WARNING, REASON_LISTENER_CONFLICT, conflict.message)

        patch = self.patcher.apply(gateway, diff)
        GATEWAY_PATCH_TOTAL.labels(patch.outcome.value).inc()

        if patch.ok and not deleting:
            route = self.lifecycle.record(route, diff.recorded)

        return route, patch

    def gateway_to_routes(self, gateway: KubernetesObject) -> List[ObjectKey]:
        """
        Map a change to the gateway back to every route we manage, so that a
        listener someone deleted by hand comes back on the next pass.
        """

        if gateway.key != self.aconf.gateway_key:
            return []

        try:
            routes = self.store.list_routes()
        except ApiException as e:
            self.logger.error(f'could not list HTTPRoutes for gateway {gateway.key}: {e.status} {e.reason}')
            return []

        return [
            route.key for route in routes
            if self.lifecycle.has_issuer(route) and self.lifecycle.has_finalizer(route)
        ]
