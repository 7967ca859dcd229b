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

from typing import Any, Callable, Dict, List, Optional

import functools
import logging
import random
import threading

from kubernetes import watch
from kubernetes.client.rest import ApiException

from .k8sobject import Gateway, HTTPRoute
from .reconciler import HTTPRouteReconciler, ReconcileResult
from .workqueue import WorkQueue

ListFunc = Callable[..., Dict[str, Any]]
EventHandler = Callable[[str, Dict[str, Any]], None]


class Controller:
    """
    Feeds the reconciler. Two list-then-watch loops turn HTTPRoute and
    Gateway events into route keys on a work queue, and a small pool of
    worker threads drains the queue one key at a time.

    Failed passes are put back on the queue with per-key backoff; the
    reconciler itself never retries anything.
    """

    def __init__(self, reconciler: HTTPRouteReconciler, route_lister: ListFunc, gateway_lister: ListFunc,
                 workers: int = 2, queue: Optional[WorkQueue] = None,
                 logger: Optional[logging.Logger] = None) -> None:
        self.reconciler = reconciler
        self.route_lister = route_lister
        self.gateway_lister = gateway_lister
        self.workers = workers
        self.queue = queue or WorkQueue()
        self.logger = logger or logging.getLogger("gateway-auto-listener.controller")

        self._watchers: List[watch.Watch] = []
        self._watchers_lock = threading.Lock()

    @classmethod
    def for_store(cls, reconciler: HTTPRouteReconciler, **kwargs) -> 'Controller':
        store = reconciler.store
        aconf = reconciler.aconf

        route_lister = functools.partial(
            store.custom.list_cluster_custom_object,
            HTTPRoute.GVK.api_group, HTTPRoute.GVK.version, HTTPRoute.PLURAL,
        )

        gateway_lister = functools.partial(
            store.custom.list_namespaced_custom_object,
            Gateway.GVK.api_group, Gateway.GVK.version, aconf.gateway_namespace, Gateway.PLURAL,
            field_selector=f'metadata.name={aconf.gateway_name}',
        )

        return cls(reconciler, route_lister, gateway_lister, **kwargs)

    def handle_route_event(self, event_type: str, obj: Dict[str, Any]) -> None:
        route = HTTPRoute(obj)
        self.logger.debug(f'{event_type} HTTPRoute {route.key}')
        self.queue.add(route.key)

    def handle_gateway_event(self, event_type: str, obj: Dict[str, Any]) -> None:
        gateway = Gateway(obj)
        keys = self.reconciler.gateway_to_routes(gateway)
        self.logger.debug(f'{event_type} Gateway {gateway.key}: requeueing {len(keys)} routes')

        for key in keys:
            self.queue.add(key)

    def process_next(self, timeout: Optional[float] = None) -> bool:
        key = self.queue.get(timeout=timeout)

        if key is None:
            return False

        try:
            try:
                result = self.reconciler.reconcile(key)
            except Exception as e:
                self.logger.exception(f'{key}: unexpected error during reconcile')
                result = ReconcileResult.failed(e)

            if result.requeue:
                delay = self.queue.add_rate_limited(key)
                self.logger.debug(f'{key}: requeued in {delay:.2f}s ({result.label})')
            else:
                self.queue.forget(key)
        finally:
            self.queue.done(key)

        return True

    def work(self) -> None:
        while self.process_next():
            pass

    def _list(self, what: str, lister: ListFunc, handler: EventHandler) -> Optional[str]:
        result = lister()

        for item in result.get('items') or []:
            handler('ADDED', item)

        resource_version = (result.get('metadata') or {}).get('resourceVersion')
        self.logger.info(f'listed {what}, watching from resourceVersion {resource_version}')

        return resource_version

    def watch_loop(self, what: str, lister: ListFunc, handler: EventHandler, stop: threading.Event) -> None:
        resource_version: Optional[str] = None
        backoff = 1.0

        while not stop.is_set():
            watcher = watch.Watch()

            with self._watchers_lock:
                self._watchers.append(watcher)

            try:
                if resource_version is None:
                    resource_version = self._list(what, lister, handler)

                for event in watcher.stream(lister, resource_version=resource_version, timeout_seconds=300):
                    if stop.is_set():
                        break

                    event_type = str(event.get('type', ''))
                    obj = event.get('object')

                    if event_type == 'ERROR' or not isinstance(obj, dict):
                        # Most likely 410 Gone; start over from a fresh list.
                        self.logger.warning(f'{what} watch returned {event_type}, re-listing')
                        resource_version = None
                        break

                    resource_version = (obj.get('metadata') or {}).get('resourceVersion', resource_version)
                    handler(event_type, obj)

                backoff = 1.0
            except ApiException as e:
                if e.status == 410:
                    self.logger.warning(f'{what} watch resource version expired, re-listing')
                    resource_version = None
                    continue

                self.logger.error(f'{what} watch failed: {e.status} {e.reason}')
                resource_version = None
                stop.wait(backoff * (0.5 + random.random()))
                backoff = min(backoff * 2, 30.0)
            except Exception:
                self.logger.exception(f'unexpected {what} watch error')
                resource_version = None
                stop.wait(backoff * (0.5 + random.random()))
                backoff = min(backoff * 2, 30.0)
            finally:
                watcher.stop()

                with self._watchers_lock:
                    self._watchers.remove(watcher)

    def run(self, stop: threading.Event) -> None:
        threads = [
            threading.Thread(target=self.watch_loop, name='watch-httproutes', daemon=True,
                             args=('HTTPRoutes', self.route_lister, self.handle_route_event, stop)),
            threading.Thread(target=self.watch_loop, name='watch-gateway', daemon=True,
                             args=('Gateway', self.gateway_lister, self.handle_gateway_event, stop)),
        ]

        for i in range(self.workers):
            threads.append(threading.Thread(target=self.work, name=f'worker-{i}', daemon=True))

        for thread in threads:
            thread.start()

        self.logger.info(f'controller started with {self.workers} workers')
        stop.wait()

        self.logger.info('controller stopping')
        self.queue.shutdown()

        with self._watchers_lock:
            for watcher in self._watchers:
                watcher.stop()

        for thread in threads:
            thread.join(timeout=5)
