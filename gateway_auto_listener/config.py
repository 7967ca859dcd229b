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

from typing import ClassVar

import dataclasses

from .k8sobject import ObjectKey


class ConfigError(Exception):
    pass


@dataclasses.dataclass(frozen=True)
class ControllerConfig:
    """
    Everything the reconciler needs to know about its surroundings. There is
    exactly one gateway being managed, and it is named here rather than
    discovered.
    """

    # Names the controller reads and writes on other objects.
    FINALIZER: ClassVar[str] = 'gateway-auto-listener/finalizer'
    OLD_FINALIZER: ClassVar[str] = 'httproute-cert-controller.itsh.dev/finalizer'
    CLUSTER_ISSUER_ANNOTATION: ClassVar[str] = 'cert-manager.io/cluster-issuer'
    ISSUER_ANNOTATION: ClassVar[str] = 'cert-manager.io/issuer'
    MANAGED_LISTENERS_ANNOTATION: ClassVar[str] = 'gateway-auto-listener/managed-listeners'
    LISTENER_OWNERS_ANNOTATION: ClassVar[str] = 'gateway-auto-listener/listener-owners'
    MANAGED_BY_LABEL: ClassVar[str] = 'gateway-auto-listener/managed-by'
    MANAGED_BY_VALUE: ClassVar[str] = 'gateway-auto-listener'
    EVENT_SOURCE: ClassVar[str] = 'gateway-auto-listener'

    gateway_name: str = 'default'
    gateway_namespace: str = 'nginx-gateway'

    # Empty disables hostname validation entirely.
    validated_ns_prefix: str = ''

    # Empty disables the implicit <host>.<namespace>.<suffix> rule.
    allowed_domain_suffix: str = ''

    allowed_hostnames_annotation: str = 'gateway-auto-listener/allowed-hostnames'

    def __post_init__(self) -> None:
        if not self.gateway_name:
            raise ConfigError('gateway name must not be empty')

        if not self.gateway_namespace:
            raise ConfigError('gateway namespace must not be empty')

        if self.allowed_domain_suffix.startswith('.'):
            raise ConfigError(f'allowed domain suffix {self.allowed_domain_suffix!r} must not start with "."')

    @property
    def gateway_key(self) -> ObjectKey:
        return ObjectKey(self.gateway_namespace, self.gateway_name)

    @property
    def validation_enabled(self) -> bool:
        return bool(self.validated_ns_prefix)
