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

from typing import Any, ClassVar, Dict

import dataclasses

#############################################################################
## listener.py -- how a hostname becomes a Gateway listener
##
## Listener and certificate secret names are pure functions of the hostname,
## so every pass derives the same names for the same hostname without having
## to remember anything but the names themselves.


def sanitize_hostname(hostname: str) -> str:
    return hostname.replace('.', '-').replace('*', 'wildcard')


def listener_name(hostname: str) -> str:
    return f'https-{sanitize_hostname(hostname)}'


def secret_name(hostname: str) -> str:
    return f'{sanitize_hostname(hostname)}-tls'


@dataclasses.dataclass(frozen=True)
class Listener:
    """
    A TLS-terminating HTTPS listener for a single hostname, open to routes in
    all namespaces. The certificate secret lives in the gateway's namespace;
    provisioning it is somebody else's job.
    """

    PORT: ClassVar[int] = 443
    PROTOCOL: ClassVar[str] = 'HTTPS'
    TLS_MODE: ClassVar[str] = 'Terminate'

    hostname: str
    secret_namespace: str

    @property
    def name(self) -> str:
        return listener_name(self.hostname)

    @property
    def secret_name(self) -> str:
        return secret_name(self.hostname)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'hostname': self.hostname,
            'port': self.PORT,
            'protocol': self.PROTOCOL,
            'allowedRoutes': {
                'namespaces': {
                    'from': 'All',
                },
            },
            'tls': {
                'mode': self.TLS_MODE,
                'certificateRefs': [
                    {
                        'name': self.secret_name,
                        'namespace': self.secret_namespace,
                    },
                ],
            },
        }
