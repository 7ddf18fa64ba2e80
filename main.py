#!/usr/bin/env python3
# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
External IP Controller - Entry Point

Mirrors the IPv4 address of local network interfaces into the externalIPs
of Services annotated with the interface name. Runs on every node.
Parses command-line arguments, connects to the cluster and starts the
Service informer and the reconciliation loop.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from kubernetes import client, config

import constants
from address_controller import AddressController
from interface_sampler import InterfaceSampler
from service_informer import ServiceInformer
from service_patcher import ServicePatcher

logger = logging.getLogger(__name__)


def setup_logging(log_level: str, log_file: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=getattr(logging, log_level.upper()),
                        format='%(asctime)s [%(levelname)s] %(message)s',
                        handlers=handlers)

    # Suppress verbose Kubernetes client logs
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def parse_timeout(value: str) -> Optional[float]:
    """Parse --request-timeout. 0 or a negative value disables it."""
    timeout = float(value)
    return timeout if timeout > 0 else None


def parse_interval(value: str) -> float:
    """Parse --interval, which must be a positive number of seconds."""
    interval = float(value)
    if interval <= 0:
        raise argparse.ArgumentTypeError(
            f"interval must be positive, got {value}")
    return interval


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=
        "Mirror local interface IPv4 addresses into the externalIPs of "
        "Services annotated with the interface name")
    parser.add_argument(
        '--interval',
        type=parse_interval,
        default=constants.RECONCILE_INTERVAL,
        help='Seconds between periodic reconciliation passes (default: %(default)s)')
    parser.add_argument(
        '--annotation',
        default=constants.INTERFACE_ANNOTATION,
        help='Service annotation naming the interface (default: %(default)s)')
    parser.add_argument(
        '--request-timeout',
        type=parse_timeout,
        default=constants.API_REQUEST_TIMEOUT,
        help='Timeout in seconds for Service list/replace calls, 0 disables '
        '(default: %(default)s)')
    parser.add_argument('--sysfs-path',
                        type=Path,
                        default=constants.SYSFS_NET_PATH,
                        help='Path to sysfs network interfaces (default: %(default)s)')
    parser.add_argument(
        '--kubeconfig',
        default=None,
        help='Path to a kubeconfig file. Default: in-cluster config, '
        'falling back to the default kubeconfig')
    parser.add_argument('--log-level',
                        default='info',
                        choices=[
                            'debug', 'info', 'warning', 'error', 'DEBUG',
                            'INFO', 'WARNING', 'ERROR'
                        ],
                        help='Log level (default: info)')
    parser.add_argument('--log-file',
                        default=None,
                        help='Also write logs to this file')
    return parser


def load_kubernetes_config(kubeconfig: Optional[str] = None) -> None:
    """Load cluster credentials. Raises if no configuration is usable."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        logger.info("[INIT] Loaded kubeconfig from %s", kubeconfig)
        return

    try:
        config.load_incluster_config()
        logger.info("[INIT] Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("[INIT] Loaded kubeconfig")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the External IP Controller."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        load_kubernetes_config(args.kubeconfig)
    except Exception as e:
        logger.error("[INIT] Failed to load Kubernetes config: %s", e)
        return 1

    logger.info("[INIT] Annotation: %s", args.annotation)
    logger.info("[INIT] Reconcile interval: %.1f seconds", args.interval)
    logger.info("[INIT] API request timeout: %s", args.request_timeout)

    core_v1 = client.CoreV1Api()
    controller = AddressController(
        sampler=InterfaceSampler(args.sysfs_path),
        patcher=ServicePatcher(core_v1,
                               annotation_key=args.annotation,
                               request_timeout=args.request_timeout),
        interval=args.interval)
    informer = ServiceInformer(core_v1, controller.handle_event)

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info("[SHUTDOWN] Received signal %s, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    controller.start()
    informer.start()

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:
        stop_event.set()

    informer.stop()
    controller.stop()
    logger.info("[SHUTDOWN] External IP Controller stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
