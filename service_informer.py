# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Service informer for the External IP Controller.

Watches Services across all namespaces and reports additions and updates
as typed events. The handler is expected to return quickly; it runs on the
informer's own watch thread.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

from kubernetes import client, watch

from constants import LOOP_STOP_TIMEOUT, WATCH_ERROR_BACKOFF, WATCH_RECONNECT_DELAY
from models import ServiceAdded, ServiceEvent, ServiceUpdated

logger = logging.getLogger(__name__)


def _service_key(service: client.V1Service) -> str:
    metadata = service.metadata
    return metadata.uid or f"{metadata.namespace}/{metadata.name}"


class ServiceInformer:
    """Informer for Service resources in all namespaces."""

    def __init__(self, core_v1: client.CoreV1Api,
                 handler: Callable[[ServiceEvent], None]):
        """
        Initialize Service informer.

        Args:
            core_v1: Kubernetes CoreV1Api client
            handler: Called with a ServiceAdded or ServiceUpdated event
        """
        self.core_v1 = core_v1
        self.handler = handler

        # uid -> last seen Service, used to pair MODIFIED events with the
        # previous object. Only accessed from the watch thread.
        self._known: Dict[str, client.V1Service] = {}
        self._resource_version: Optional[str] = None
        self._watch: Optional[watch.Watch] = None

        self.running = False
        self.watch_thread: Optional[threading.Thread] = None
        self.initial_sync_done = False

    def start(self) -> None:
        """Start the informer watch loop"""
        if self.running:
            logger.warning("Service informer already running")
            return

        self.running = True
        self.watch_thread = threading.Thread(target=self._watch_loop,
                                             name="service-informer",
                                             daemon=True)
        self.watch_thread.start()
        logger.info(
            "[SVC-INFORMER] Service informer started (watching all namespaces)")

    def _dispatch(self, event: ServiceEvent) -> None:
        try:
            self.handler(event)
        except Exception as e:
            logger.error("[SVC-INFORMER] Event handler failed: %s",
                         e,
                         exc_info=True)

    def sync(self) -> int:
        """List all Services and deliver each as ServiceAdded.

        Returns the number of Services listed.
        """
        logger.info("[SYNC] Service informer: Starting initial sync...")
        services = self.core_v1.list_service_for_all_namespaces()

        self._known = {}
        for service in services.items or []:
            self._known[_service_key(service)] = service
            self._dispatch(ServiceAdded(service))

        self._resource_version = None
        if services.metadata is not None:
            self._resource_version = services.metadata.resource_version
        self.initial_sync_done = True
        logger.info(
            "[SYNC] Service informer: Initial sync complete (%d services)",
            len(self._known))
        return len(self._known)

    def process_event(self, event_type: str, service: client.V1Service) -> None:
        """Translate one raw watch event into a typed handler call."""
        key = _service_key(service)
        if service.metadata and service.metadata.resource_version:
            self._resource_version = service.metadata.resource_version

        if event_type == 'ADDED':
            self._known[key] = service
            self._dispatch(ServiceAdded(service))
        elif event_type == 'MODIFIED':
            old = self._known.get(key)
            self._known[key] = service
            self._dispatch(ServiceUpdated(old, service))
        elif event_type == 'DELETED':
            self._known.pop(key, None)
        else:
            logger.debug("[SVC-INFORMER] Ignoring %s event", event_type)

    def _watch_loop(self) -> None:
        """Main watch loop with automatic reconnection"""
        while self.running:
            try:
                if not self.initial_sync_done:
                    self.sync()

                self._watch = watch.Watch()
                kwargs = {"timeout_seconds": 0}
                if self._resource_version:
                    kwargs["resource_version"] = self._resource_version
                stream = self._watch.stream(
                    self.core_v1.list_service_for_all_namespaces, **kwargs)

                for event in stream:
                    if not self.running:
                        break
                    if event['type'] == 'ERROR':
                        raw = event.get('raw_object') or {}
                        if raw.get('code') == 410:
                            raise client.exceptions.ApiException(
                                status=410, reason="Gone")
                        logger.warning("[SVC-INFORMER] Watch error event: %s",
                                       raw)
                        continue
                    self.process_event(event['type'], event['object'])

                # Watch stream ended normally, reconnect
                if self.running:
                    logger.debug("Service watch stream ended, reconnecting...")
                    time.sleep(WATCH_RECONNECT_DELAY)

            except client.exceptions.ApiException as e:
                if e.status == 410:  # Gone - resource version too old
                    logger.warning(
                        "Service resource version expired (410), resyncing...")
                    self.initial_sync_done = False  # Force resync
                    self._resource_version = None
                    time.sleep(WATCH_RECONNECT_DELAY)
                else:
                    logger.error(
                        "API error in Service watch: %s. Reconnecting in %.0fs...",
                        e, WATCH_ERROR_BACKOFF)
                    time.sleep(WATCH_ERROR_BACKOFF)

            except Exception as e:
                if self.running:
                    logger.error(
                        "Service informer error: %s, reconnecting in %.0fs...",
                        e, WATCH_ERROR_BACKOFF)
                    time.sleep(WATCH_ERROR_BACKOFF)
                else:
                    break

    def stop(self, timeout: float = LOOP_STOP_TIMEOUT) -> None:
        """Stop the informer"""
        self.running = False
        if self._watch is not None:
            self._watch.stop()
        if self.watch_thread:
            self.watch_thread.join(timeout=timeout)
        logger.info("[SVC-INFORMER] Service informer stopped")
