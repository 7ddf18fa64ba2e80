# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Data models for the External IP Controller.

This module contains:
- Reconciliation records (InterfaceChange)
- Service watch events (ServiceAdded, ServiceUpdated)
- The interface state cache owned by the reconciliation worker
- Reconciliation loop states
"""

import enum
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Union

from kubernetes import client

# ============================================================================
# Data Classes
# ============================================================================


@dataclass(frozen=True)
class InterfaceChange:
    """An interface whose IPv4 address differs from the last observed one.

    old_ip is "" when the interface has not been observed before.
    """
    interface: str
    old_ip: str
    new_ip: str


@dataclass(frozen=True)
class ServiceAdded:
    """A Service appeared in the watch (or was listed on initial sync)."""
    service: client.V1Service


@dataclass(frozen=True)
class ServiceUpdated:
    """A Service was modified. old is None if it was not seen before."""
    old: Optional[client.V1Service]
    new: client.V1Service


ServiceEvent = Union[ServiceAdded, ServiceUpdated]


class LoopState(enum.Enum):
    """States of the reconciliation loop."""
    WAITING = "waiting"
    RUNNING = "running"
    TERMINATED = "terminated"


# ============================================================================
# Interface State Cache
# ============================================================================


class InterfaceStateCache:
    """Last observed IPv4 address per interface name.

    Owned by the reconciliation worker and never shared with other threads,
    so no locking is done. Entries are only written after a successful
    sample; a failed sample leaves the previous value in place.
    """

    def __init__(self):
        # Map of interface name -> IPv4 address
        self._addresses: Dict[str, str] = {}

    def get(self, interface_name: str) -> str:
        """Return the cached address, or "" if the interface was never seen."""
        return self._addresses.get(interface_name, "")

    def update(self, interface_name: str, address: str) -> None:
        self._addresses[interface_name] = address

    def snapshot(self) -> Dict[str, str]:
        return dict(self._addresses)

    def __contains__(self, interface_name: str) -> bool:
        return interface_name in self._addresses

    def __len__(self) -> int:
        return len(self._addresses)

    def __iter__(self) -> Iterator[str]:
        return iter(self._addresses)
