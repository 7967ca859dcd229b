import pytest

from gateway_auto_listener.config import ControllerConfig
from gateway_auto_listener.reconciler import HTTPRouteReconciler
from tests.fakestore import FakeStore
from tests.utils import gateway_manifest, logger


@pytest.fixture
def aconf():
    return ControllerConfig(
        gateway_name='default',
        gateway_namespace='nginx-gateway',
        allowed_domain_suffix='example.com',
        validated_ns_prefix='tenant-',
        allowed_hostnames_annotation='gateway-auto-listener/allowed-hostnames',
    )


@pytest.fixture
def store():
    store = FakeStore()
    store.add('Gateway', gateway_manifest())
    return store


@pytest.fixture
def reconciler(aconf, store):
    return HTTPRouteReconciler(aconf, store, logger)
