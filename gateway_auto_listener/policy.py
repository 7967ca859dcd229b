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

from typing import Dict, List, Optional

import dataclasses
import logging

from .config import ControllerConfig
from .k8sobject import KubernetesObject
from .store import Store


@dataclasses.dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ''

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls, reason: str = '') -> 'PolicyDecision':
        return cls(True, reason)

    @classmethod
    def deny(cls, reason: str) -> 'PolicyDecision':
        return cls(False, reason)


def parse_allowed_hostnames(value: Optional[str]) -> List[str]:
    if not value:
        return []

    return [entry.strip() for entry in value.split(',') if entry.strip()]


def hostname_matches(hostname: str, allowed: str) -> bool:
    return hostname == allowed or hostname.endswith('.' + allowed)


class HostnamePolicy:
    """
    Decides whether a namespace may claim a hostname.

    Validation only applies to namespaces whose names start with the
    configured prefix; with no prefix configured, everything is allowed. A
    validated namespace always gets its own default subdomain
    (<anything>.<namespace>.<suffix>) and, beyond that, whatever its
    allowed-hostnames annotation lists, including subdomains of each entry.

    Namespace lookups are cached for the life of the policy object, which is
    meant to be one reconciliation pass.
    """

    def __init__(self, aconf: ControllerConfig, store: Store, logger: logging.Logger) -> None:
        self.aconf = aconf
        self.store = store
        self.logger = logger
        self._allowed: Dict[str, List[str]] = {}

    def allowed_for(self, namespace: str) -> List[str]:
        if not self.aconf.allowed_hostnames_annotation:
            return []

        if namespace not in self._allowed:
            # Anything but a 404 propagates: we can't decide without the
            # namespace, so the whole pass has to be retried.
            ns: Optional[KubernetesObject] = self.store.get_namespace(namespace)
            entries: List[str] = []

            if ns is None:
                self.logger.debug(f'namespace {namespace} not found, no custom hostnames allowed')
            else:
                entries = parse_allowed_hostnames(ns.annotations.get(self.aconf.allowed_hostnames_annotation))

            self._allowed[namespace] = entries

        return self._allowed[namespace]

    def validate(self, hostname: str, namespace: str) -> PolicyDecision:
        if not self.aconf.validation_enabled:
            return PolicyDecision.allow('validation disabled')

        if not namespace.startswith(self.aconf.validated_ns_prefix):
            return PolicyDecision.allow(f'namespace {namespace} is not validated')

        if self.aconf.allowed_domain_suffix:
            default_suffix = f'.{namespace}.{self.aconf.allowed_domain_suffix}'

            if hostname.endswith(default_suffix) and len(hostname) > len(default_suffix):
                return PolicyDecision.allow(f'default subdomain of {namespace}')

        for allowed in self.allowed_for(namespace):
            if hostname_matches(hostname, allowed):
                return PolicyDecision.allow(f'listed as {allowed} for {namespace}')

        return PolicyDecision.deny(f'hostname {hostname} not allowed for namespace {namespace}')
