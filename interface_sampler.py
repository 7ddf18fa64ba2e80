# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""Local network interface address sampling.

Reads the node's network interfaces from sysfs and resolves the IPv4
address bound to a named interface. The enumeration is repeated on every
call so that interfaces appearing or disappearing (re-plug, VLAN creation)
are picked up without restarting the controller.

Runs in hostNetwork mode, so the interfaces seen here are the node's own.
"""

import fcntl
import ipaddress
import logging
import socket
import struct
from pathlib import Path
from typing import List, Optional

from constants import IFNAME_MAX_LEN, SIOCGIFADDR, SYSFS_NET_PATH

logger = logging.getLogger(__name__)


class InterfaceNotFoundError(LookupError):
    """Interface is missing or has no IPv4 address bound to it."""

    def __init__(self, interface_name: str, known_interfaces: List[str]):
        self.interface_name = interface_name
        self.known_interfaces = list(known_interfaces)
        super().__init__(
            f"no address found for interface [{interface_name}] in "
            f"[{','.join(self.known_interfaces)}]")


def list_interfaces(sysfs_path: Path = SYSFS_NET_PATH) -> List[str]:
    """Return the names of all network interfaces known to the kernel."""
    try:
        return sorted(entry.name for entry in sysfs_path.iterdir())
    except OSError as e:
        logger.error("[SCAN] Failed to list interfaces in %s: %s", sysfs_path,
                     e)
        return []


def read_ipv4_address(interface_name: str) -> Optional[str]:
    """Get the IPv4 address of an interface using the SIOCGIFADDR ioctl.

    Returns None when the kernel reports no address for the interface
    (EADDRNOTAVAIL) or the interface vanished between enumeration and read.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        ifreq = struct.pack('256s',
                            interface_name[:IFNAME_MAX_LEN].encode('utf-8'))
        result = fcntl.ioctl(sock.fileno(), SIOCGIFADDR, ifreq)
        return socket.inet_ntoa(result[20:24])
    except OSError as e:
        logger.debug("No IPv4 for %s: %s", interface_name, e)
        return None
    finally:
        sock.close()


def _is_ipv4(address: Optional[str]) -> bool:
    if not address:
        return False
    try:
        ipaddress.IPv4Address(address)
    except ValueError:
        return False
    return True


class InterfaceSampler:
    """Resolve the current IPv4 address of a named local interface."""

    def __init__(self, sysfs_path: Path = SYSFS_NET_PATH):
        self.sysfs_path = Path(sysfs_path)

    def list_interfaces(self) -> List[str]:
        return list_interfaces(self.sysfs_path)

    def read_addresses(self, interface_name: str) -> List[str]:
        """Addresses bound to the interface, in kernel order."""
        address = read_ipv4_address(interface_name)
        return [address] if address else []

    def sample(self, interface_name: str) -> str:
        """Return the first IPv4 address bound to ``interface_name``.

        Raises:
            InterfaceNotFoundError: the interface does not exist or has no
                IPv4 address. The error lists every known interface name.
        """
        names = self.list_interfaces()
        if interface_name in names:
            for address in self.read_addresses(interface_name):
                if _is_ipv4(address):
                    return address

        raise InterfaceNotFoundError(interface_name, names)
