#!/usr/bin/env python3

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

import logging
import os
import signal
import socket
import sys
import threading

import click

from kubernetes.leaderelection import electionconfig, leaderelection
from kubernetes.leaderelection.resourcelock.configmaplock import ConfigMapLock
from prometheus_client import start_http_server

from .VERSION import Version
from .config import ConfigError, ControllerConfig
from .controller import Controller
from .reconciler import HTTPRouteReconciler
from .store import KubernetesStore, kube_api_client

__version__ = Version

LEADER_ELECTION_ID = "gateway-auto-listener.an0nfunc.github.io"

logger = logging.getLogger("gateway-auto-listener")


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%%(asctime)s gateway-auto-listener [%%(process)d T%%(threadName)s] %s %%(levelname)s: %%(message)s" % __version__,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # The kubernetes client is very chatty at DEBUG.
    logging.getLogger("kubernetes").setLevel(logging.INFO)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_with_leader_election(controller: Controller, stop: threading.Event, namespace: str) -> None:
    identity = f'{socket.gethostname()}_{os.getpid()}'
    lock = ConfigMapLock(LEADER_ELECTION_ID, namespace, identity)
    leading = threading.Event()
    finished = threading.Event()

    def on_started_leading():
        logger.info(f"acquired leadership as {identity}")
        leading.set()

        try:
            controller.run(stop)
        finally:
            finished.set()

    def on_stopped_leading():
        logger.error("lost leadership, exiting")
        stop.set()

    election = electionconfig.Config(
        lock,
        lease_duration=17,
        renew_deadline=15,
        retry_period=5,
        onstarted_leading=on_started_leading,
        onstopped_leading=on_stopped_leading,
    )

    logger.info(f"waiting for leadership as {identity} in {namespace}")

    # The elector renews forever; it lives in the background and we leave
    # when told to stop.
    elector = threading.Thread(target=leaderelection.LeaderElection(election).run,
                               name="leader-election", daemon=True)
    elector.start()

    stop.wait()

    if leading.is_set():
        finished.wait(timeout=10)


@click.command()
@click.option("--gateway-name", envvar="GATEWAY_NAME", default="default", show_default=True,
              help="Name of the Gateway to manage listeners on.")
@click.option("--gateway-namespace", envvar="GATEWAY_NAMESPACE", default="nginx-gateway", show_default=True,
              help="Namespace of the Gateway.")
@click.option("--allowed-domain-suffix", envvar="ALLOWED_DOMAIN_SUFFIX", default="",
              help="Domain suffix for tenant hostnames (e.g., example.com). Empty disables suffix validation.")
@click.option("--validated-ns-prefix", envvar="VALIDATED_NS_PREFIX", default="",
              help="Namespace prefix triggering hostname validation. Empty disables validation entirely.")
@click.option("--allowed-hostnames-annotation", envvar="ALLOWED_HOSTNAMES_ANNOTATION",
              default="gateway-auto-listener/allowed-hostnames", show_default=True,
              help="Namespace annotation key for allowed custom hostnames.")
@click.option("--workers", envvar="WORKERS", type=click.IntRange(min=1), default=2, show_default=True,
              help="Number of routes reconciled concurrently.")
@click.option("--metrics-port", envvar="METRICS_PORT", type=click.IntRange(min=0), default=8080, show_default=True,
              help="Port for the Prometheus metrics endpoint; 0 disables it.")
@click.option("--leader-elect/--no-leader-elect", envvar="LEADER_ELECT", default=True, show_default=True,
              help="Only run the controller while holding the leader lock.")
@click.option("--leader-election-namespace", envvar="POD_NAMESPACE", default=None,
              help="Namespace for the leader lock; defaults to the gateway namespace.")
@click.option("--debug", is_flag=True, help="Enable debugging")
@click.version_option(version=Version, message="%(version)s")
def main(gateway_name, gateway_namespace, allowed_domain_suffix, validated_ns_prefix,
         allowed_hostnames_annotation, workers, metrics_port, leader_elect, leader_election_namespace, debug):
    setup_logging(debug)

    try:
        aconf = ControllerConfig(
            gateway_name=gateway_name,
            gateway_namespace=gateway_namespace,
            validated_ns_prefix=validated_ns_prefix,
            allowed_domain_suffix=allowed_domain_suffix,
            allowed_hostnames_annotation=allowed_hostnames_annotation,
        )
    except ConfigError as e:
        logger.error(f"invalid configuration: {e}")
        sys.exit(1)

    store = KubernetesStore(kube_api_client(), component=aconf.EVENT_SOURCE)
    reconciler = HTTPRouteReconciler(aconf, store)
    controller = Controller.for_store(reconciler, workers=workers)

    if metrics_port:
        start_http_server(metrics_port)
        logger.info(f"serving metrics on :{metrics_port}")

    stop = threading.Event()

    def on_signal(signum, frame):
        logger.info(f"got signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGTERM, on_signal)
    signal.signal(signal.SIGINT, on_signal)

    logger.info(f"starting gateway-auto-listener {Version}: gateway {aconf.gateway_key}, "
                f"validated prefix {validated_ns_prefix or '(disabled)'}, "
                f"domain suffix {allowed_domain_suffix or '(disabled)'}")

    if leader_elect:
        run_with_leader_election(controller, stop, leader_election_namespace or gateway_namespace)
    else:
        controller.run(stop)


if __name__ == "__main__":
    main()
