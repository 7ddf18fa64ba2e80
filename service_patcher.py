# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Service externalIPs patching for the External IP Controller.

Given an interface whose address changed, finds every Service annotated
with that interface and rewrites its spec.externalIPs so the stale address
is replaced by the new one. Addresses from other sources are preserved.
"""

import copy
import logging
from typing import Iterable, List, Optional, Set

from kubernetes import client

from constants import API_REQUEST_TIMEOUT, INTERFACE_ANNOTATION

logger = logging.getLogger(__name__)


def get_interface_annotation(service: client.V1Service,
                             annotation_key: str = INTERFACE_ANNOTATION
                             ) -> Optional[str]:
    """Return the interface named by the Service's annotation, if any."""
    metadata = service.metadata
    if metadata is None or not metadata.annotations:
        return None
    return metadata.annotations.get(annotation_key)


def get_external_ips(service: client.V1Service) -> List[str]:
    if service.spec is None:
        return []
    return list(service.spec.external_i_ps or [])


def compute_target_ips(current: Iterable[str], old_ip: str,
                       new_ip: str) -> Set[str]:
    """Current externalIPs minus the stale address, plus the new one."""
    target = {ip for ip in current if ip != old_ip}
    target.add(new_ip)
    return target


def ips_equal(a: Iterable[str], b: Iterable[str]) -> bool:
    """Order- and duplicate-insensitive comparison of two address lists."""
    return set(a) == set(b)


class ServicePatcher:
    """Rewrites externalIPs of Services annotated with a given interface."""

    def __init__(self,
                 core_v1: client.CoreV1Api,
                 annotation_key: str = INTERFACE_ANNOTATION,
                 request_timeout: Optional[float] = API_REQUEST_TIMEOUT):
        self.core_v1 = core_v1
        self.annotation_key = annotation_key
        self.request_timeout = request_timeout

    def _call_kwargs(self) -> dict:
        if self.request_timeout is None:
            return {}
        return {"_request_timeout": self.request_timeout}

    def list_services(self) -> List[client.V1Service]:
        services = self.core_v1.list_service_for_all_namespaces(
            **self._call_kwargs())
        return list(services.items or [])

    def reconcile_interface(self, interface_name: str, old_ip: str,
                            new_ip: str) -> int:
        """Point every Service annotated with interface_name at new_ip.

        Returns the number of Services written successfully. Listing
        failures abort this interface's update; write failures are logged
        per Service and do not stop the remaining Services.
        """
        try:
            services = self.list_services()
        except client.exceptions.ApiException as e:
            logger.error("[PATCH] Error listing services: %s (status %s)",
                         e.reason, e.status)
            return 0
        except Exception as e:
            logger.error("[PATCH] Error listing services: %s", e)
            return 0

        updated = 0
        for service in services:
            if get_interface_annotation(service,
                                        self.annotation_key) != interface_name:
                continue
            if self._update_service(service, old_ip, new_ip):
                updated += 1

        return updated

    def _update_service(self, service: client.V1Service, old_ip: str,
                        new_ip: str) -> bool:
        namespace = service.metadata.namespace
        name = service.metadata.name

        try:
            current = get_external_ips(service)
            target = compute_target_ips(current, old_ip, new_ip)
            if ips_equal(current, target):
                logger.debug("[PATCH] Service %s/%s already has %s",
                             namespace, name, sorted(target))
                return False

            updated_service = copy.deepcopy(service)
            if updated_service.spec is None:
                updated_service.spec = client.V1ServiceSpec()
            updated_service.spec.external_i_ps = sorted(target)

            self.core_v1.replace_namespaced_service(name=name,
                                                    namespace=namespace,
                                                    body=updated_service,
                                                    **self._call_kwargs())
        except client.exceptions.ApiException as e:
            logger.error("[PATCH] Error updating service %s/%s: %s (status %s)",
                         namespace, name, e.reason, e.status)
            return False
        except Exception as e:
            logger.error("[PATCH] Error updating service %s/%s: %s", namespace,
                         name, e)
            return False

        logger.info("[PATCH] Updated externalIPs for service %s/%s: %s => %s",
                    namespace, name, current, sorted(target))
        return True
