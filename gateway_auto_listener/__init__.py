from .VERSION import Version

from .config import ConfigError, ControllerConfig
from .k8sobject import Gateway, HTTPRoute, KubernetesObject, ObjectKey
from .listener import Listener, listener_name, secret_name
from .listenerset import ListenerSet
from .reconciler import HTTPRouteReconciler, ReconcileResult

__version__ = Version
