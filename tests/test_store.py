from types import SimpleNamespace

import pytest

from kubernetes import client
from kubernetes.client.rest import ApiException

from gateway_auto_listener.k8sobject import HTTPRoute
from gateway_auto_listener.store import KubernetesStore
from tests.utils import route_manifest


class FakeCoreV1:
    """
    Just enough of CoreV1Api for events: created events can be listed back,
    and patches update them in place.
    """

    def __init__(self) -> None:
        self.events = {}
        self.selectors = []

    def list_namespaced_event(self, namespace, field_selector=None):
        self.selectors.append(field_selector)

        return SimpleNamespace(items=[
            SimpleNamespace(
                metadata=SimpleNamespace(name=name),
                type=body['type'],
                message=body['message'],
                count=body['count'],
                involved_object=SimpleNamespace(uid=body['involvedObject']['uid']),
            )
            for name, body in self.events.items()
            if body['reason'] in field_selector
        ])

    def create_namespaced_event(self, namespace, body):
        self.events[f'{body["metadata"]["generateName"]}{len(self.events)}'] = body

    def patch_namespaced_event(self, name, namespace, body):
        self.events[name].update(body)


@pytest.fixture
def core():
    return FakeCoreV1()


@pytest.fixture
def kstore(core):
    store = KubernetesStore(client.ApiClient(), component='test')
    store.core = core
    return store


@pytest.fixture
def route():
    obj = route_manifest(hostnames=["evil.other.com"])
    obj['metadata']['uid'] = 'abc-123'
    return HTTPRoute(obj)


def test_first_event_is_created(kstore, core, route):
    kstore.record_event(route, 'Warning', 'HostnameValidationFailed', 'hostname evil.other.com not allowed')

    assert len(core.events) == 1

    event = list(core.events.values())[0]
    assert event['count'] == 1
    assert event['involvedObject']['kind'] == 'HTTPRoute'
    assert event['involvedObject']['uid'] == 'abc-123'
    assert event['source'] == {'component': 'test'}
    assert core.selectors == ['involvedObject.kind=HTTPRoute,involvedObject.name=test-route,'
                              'reason=HostnameValidationFailed']


def test_repeated_event_bumps_count(kstore, core, route):
    for _ in range(3):
        kstore.record_event(route, 'Warning', 'HostnameValidationFailed', 'hostname evil.other.com not allowed')

    assert len(core.events) == 1
    assert list(core.events.values())[0]['count'] == 3


def test_different_message_gets_its_own_event(kstore, core, route):
    kstore.record_event(route, 'Warning', 'HostnameValidationFailed', 'hostname evil.other.com not allowed')
    kstore.record_event(route, 'Warning', 'HostnameValidationFailed', 'hostname worse.other.com not allowed')

    assert len(core.events) == 2


def test_event_failure_is_not_raised(kstore, core, route):
    def broken(namespace, field_selector=None):
        raise ApiException(status=403, reason='Forbidden')

    core.list_namespaced_event = broken

    kstore.record_event(route, 'Warning', 'HostnameValidationFailed', 'hostname evil.other.com not allowed')

    assert core.events == {}
