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

import dataclasses
import enum
import logging

import orjson

from kubernetes.client.rest import ApiException

from .config import ControllerConfig
from .diff import ListenerDiff
from .k8sobject import Gateway
from .store import Store, is_conflict


@enum.unique
class PatchOutcome (enum.Enum):
    APPLIED = 'applied'
    NOOP = 'noop'
    CONFLICT = 'conflict'
    FATAL = 'fatal'


@dataclasses.dataclass
class PatchResult:
    outcome: PatchOutcome
    gateway: Optional[Gateway] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (PatchOutcome.APPLIED, PatchOutcome.NOOP)

    @property
    def retry(self) -> bool:
        return not self.ok


def parse_owners(gateway: Gateway, annotation: str) -> Dict[str, str]:
    raw = gateway.annotations.get(annotation)

    if not raw:
        return {}

    try:
        owners = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return {}

    if not isinstance(owners, dict):
        return {}

    return {str(k): str(v) for k, v in owners.items()}


def dump_owners(owners: Dict[str, str]) -> str:
    return orjson.dumps(owners, option=orjson.OPT_SORT_KEYS).decode('utf-8')


class GatewayPatcher:
    """
    Applies a ListenerDiff to the gateway with a single compare-and-swap
    merge patch against the snapshot the diff was computed from.

    Nothing here resolves conflicts. If the gateway moved underneath us the
    outcome is CONFLICT and the caller is expected to run the whole pass
    again from fresh reads.
    """

    def __init__(self, aconf: ControllerConfig, store: Store, logger: logging.Logger) -> None:
        self.aconf = aconf
        self.store = store
        self.logger = logger

    def owners(self, gateway: Gateway) -> Dict[str, str]:
        return parse_owners(gateway, self.aconf.LISTENER_OWNERS_ANNOTATION)

    def merged_listeners(self, base: Gateway, diff: ListenerDiff) -> List[Dict[str, Any]]:
        listeners = [l for l in base.listeners if l.get('name') not in diff.to_remove]
        names = {l.get('name') for l in listeners}

        for listener in diff.to_add:
            if listener.name not in names:
                listeners.append(listener.as_dict())
                names.add(listener.name)

        return listeners

    def merged_owners(self, base: Gateway, listeners: List[Dict[str, Any]], diff: ListenerDiff) -> Dict[str, str]:
        names = {l.get('name') for l in listeners}
        owners = {name: holder for name, holder in self.owners(base).items() if name in names}

        for name in diff.recorded:
            if name in names:
                owners[name] = diff.owner

        return owners

    def body(self, base: Gateway, listeners: List[Dict[str, Any]], owners: Dict[str, str]) -> Dict[str, Any]:
        return {
            'metadata': {
                'resourceVersion': base.resource_version,
                'labels': {
                    self.aconf.MANAGED_BY_LABEL: self.aconf.MANAGED_BY_VALUE,
                },
                'annotations': {
                    self.aconf.LISTENER_OWNERS_ANNOTATION: dump_owners(owners) if owners else None,
                },
            },
            'spec': {
                'listeners': listeners,
            },
        }

    def apply(self, base: Gateway, diff: ListenerDiff) -> PatchResult:
        listeners = self.merged_listeners(base, diff)
        owners = self.merged_owners(base, listeners, diff)

        if listeners == base.listeners and owners == self.owners(base):
            return PatchResult(PatchOutcome.NOOP, gateway=base)

        for listener in diff.to_add:
            self.logger.info(f'{diff.owner}: adding listener {listener.name} for {listener.hostname} '
                             f'(secret {listener.secret_name})')

        for name in diff.to_remove:
            if name in base.listener_names:
                self.logger.info(f'{diff.owner}: removing listener {name}')

        try:
            gateway = self.store.patch_gateway(base.key, self.body(base, listeners, owners))
        except ApiException as e:
            if is_conflict(e):
                self.logger.debug(f'{diff.owner}: gateway {base.key} changed since {base.resource_version}')
                return PatchResult(PatchOutcome.CONFLICT, error=e)

            self.logger.error(f'{diff.owner}: failed to patch gateway {base.key}: {e.status} {e.reason}')
            return PatchResult(PatchOutcome.FATAL, error=e)

        return PatchResult(PatchOutcome.APPLIED, gateway=gateway)
