import logging
from typing import Any, Dict, List, Optional

import yaml

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s test %(levelname)s: %(message)s",
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger("gateway-auto-listener")


def k8s_dict_from_yaml(serialization: str) -> Dict[str, Any]:
    return yaml.safe_load(serialization)


def gateway_manifest(listeners: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    gateway = k8s_dict_from_yaml('''
---
apiVersion: gateway.networking.k8s.io/v1
kind: Gateway
metadata:
  name: default
  namespace: nginx-gateway
spec:
  gatewayClassName: nginx
  listeners: []
''')
    gateway['spec']['listeners'] = listeners or []
    return gateway


def route_manifest(name: str = 'test-route', namespace: str = 'default',
                   hostnames: Optional[List[str]] = None,
                   annotations: Optional[Dict[str, str]] = None,
                   finalizers: Optional[List[str]] = None) -> Dict[str, Any]:
    route = k8s_dict_from_yaml(f'''
---
apiVersion: gateway.networking.k8s.io/v1
kind: HTTPRoute
metadata:
  name: {name}
  namespace: {namespace}
spec:
  parentRefs:
  - name: default
    namespace: nginx-gateway
''')

    if annotations:
        route['metadata']['annotations'] = dict(annotations)

    if finalizers:
        route['metadata']['finalizers'] = list(finalizers)

    route['spec']['hostnames'] = list(hostnames or [])
    return route


def namespace_manifest(name: str, annotations: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    namespace = k8s_dict_from_yaml(f'''
---
apiVersion: v1
kind: Namespace
metadata:
  name: {name}
''')

    if annotations:
        namespace['metadata']['annotations'] = dict(annotations)

    return namespace


def manual_listener(name: str, hostname: str) -> Dict[str, Any]:
    return k8s_dict_from_yaml(f'''
name: {name}
hostname: "{hostname}"
port: 443
protocol: HTTPS
tls:
  mode: Terminate
  certificateRefs:
  - name: hand-made-tls
''')
