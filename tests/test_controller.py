import threading

import pytest

from gateway_auto_listener.controller import Controller
from gateway_auto_listener.k8sobject import ObjectKey
from gateway_auto_listener.reconciler import ReconcileResult
from gateway_auto_listener.workqueue import WorkQueue
from tests.utils import gateway_manifest, logger, route_manifest

ISSUER = {"cert-manager.io/issuer": "letsencrypt"}
FINALIZER = "gateway-auto-listener/finalizer"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ScriptedReconciler:
    """
    Hands back canned results, or raises, in order.
    """

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.seen = []

    def reconcile(self, key):
        self.seen.append(key)
        result = self.results.pop(0)

        if isinstance(result, Exception):
            raise result

        return result

    def gateway_to_routes(self, gateway):
        return []


def no_lister(**kwargs):
    raise AssertionError("lister should not be called")


@pytest.fixture
def clock():
    return FakeClock()


def controller_for(reconciler, clock):
    return Controller(reconciler, no_lister, no_lister, workers=1,
                      queue=WorkQueue(clock=clock), logger=logger)


def test_route_event_queues_key(reconciler, clock):
    controller = controller_for(reconciler, clock)

    controller.handle_route_event("ADDED", route_manifest(name="a"))
    controller.handle_route_event("MODIFIED", route_manifest(name="a"))
    controller.handle_route_event("MODIFIED", route_manifest(name="b", namespace="other"))

    assert len(controller.queue) == 2
    assert controller.queue.get(timeout=0) == ObjectKey("default", "a")
    assert controller.queue.get(timeout=0) == ObjectKey("other", "b")


def test_gateway_event_queues_managed_routes(reconciler, store, clock):
    store.add("HTTPRoute", route_manifest(name="managed", annotations=ISSUER, finalizers=[FINALIZER]))
    store.add("HTTPRoute", route_manifest(name="plain"))
    controller = controller_for(reconciler, clock)

    controller.handle_gateway_event("MODIFIED", gateway_manifest())

    assert len(controller.queue) == 1
    assert controller.queue.get(timeout=0) == ObjectKey("default", "managed")


def test_success_forgets_backoff(clock):
    key = ObjectKey("default", "a")
    reconciler = ScriptedReconciler(ReconcileResult(requeue=True), ReconcileResult())
    controller = controller_for(reconciler, clock)

    controller.queue.add(key)
    assert controller.process_next(timeout=0)
    assert controller.queue.retries(key) == 1

    # Held back until the backoff runs out.
    assert not controller.process_next(timeout=0)

    clock.now += 0.5
    assert controller.process_next(timeout=0)
    assert controller.queue.retries(key) == 0
    assert reconciler.seen == [key, key]
    assert len(controller.queue) == 0


def test_unexpected_exception_is_requeued(clock):
    key = ObjectKey("default", "a")
    reconciler = ScriptedReconciler(RuntimeError("boom"))
    controller = controller_for(reconciler, clock)

    controller.queue.add(key)

    assert controller.process_next(timeout=0)
    assert controller.queue.retries(key) == 1


def test_process_next_after_shutdown(clock):
    controller = controller_for(ScriptedReconciler(), clock)

    controller.queue.shutdown()

    assert not controller.process_next()


def test_end_to_end_through_queue(reconciler, store, clock):
    store.add("HTTPRoute", route_manifest(hostnames=["a.example.com"], annotations=ISSUER))
    controller = controller_for(reconciler, clock)

    controller.handle_route_event("ADDED", store.raw("HTTPRoute", ObjectKey("default", "test-route")))

    assert controller.process_next(timeout=0)
    assert store.gateway().listener_names == ["https-a-example-com"]
    assert controller.queue.retries(ObjectKey("default", "test-route")) == 0


def test_initial_list_feeds_handler(reconciler, clock):
    seen = []

    def lister(**kwargs):
        return {
            "metadata": {"resourceVersion": "42"},
            "items": [route_manifest(name="a"), route_manifest(name="b")],
        }

    controller = Controller(reconciler, lister, no_lister, queue=WorkQueue(clock=clock), logger=logger)

    resource_version = controller._list("HTTPRoutes", lister, lambda t, obj: seen.append((t, obj["metadata"]["name"])))

    assert resource_version == "42"
    assert seen == [("ADDED", "a"), ("ADDED", "b")]


def test_watch_loop_exits_when_stopped(reconciler, clock):
    controller = controller_for(reconciler, clock)
    stop = threading.Event()
    stop.set()

    controller.watch_loop("HTTPRoutes", no_lister, controller.handle_route_event, stop)

    assert len(controller.queue) == 0
