# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Constants and configuration for the External IP Controller.

This module contains all constants used across the application:
- Service annotation contract
- Reconciliation timing configuration
- Kubernetes API call configuration
- Interface sampling configuration
"""

from pathlib import Path
from typing import Optional

# ============================================================================
# Service Annotation Contract
# ============================================================================
# A Service opts in by setting this annotation to the exact name of a local
# network interface (e.g. "eth0"). The interface's IPv4 address is mirrored
# into the Service's spec.externalIPs.
INTERFACE_ANNOTATION = "external-ip-interface"

# ============================================================================
# Reconciliation Timing Configuration
# ============================================================================
# Periodic full scan, independent of service events. Covers missed watch
# notifications and cold start before the watch delivers anything.
RECONCILE_INTERVAL: float = 60.0  # seconds

# Maximum time to wait for worker threads to finish on shutdown
LOOP_STOP_TIMEOUT: float = 10.0  # seconds

# ============================================================================
# Kubernetes API Configuration
# ============================================================================
# Timeout applied to service list/replace calls so a hung API server cannot
# starve the single reconciliation worker. None disables the timeout.
API_REQUEST_TIMEOUT: Optional[float] = 30.0  # seconds

# Delay before re-opening a watch stream that ended normally
WATCH_RECONNECT_DELAY: float = 1.0  # seconds

# Delay before re-opening a watch stream after an error
WATCH_ERROR_BACKOFF: float = 5.0  # seconds

# ============================================================================
# Interface Sampling Configuration
# ============================================================================
# Path to sysfs network interfaces
SYSFS_NET_PATH = Path("/sys/class/net")

# ioctl request number for reading an interface's IPv4 address
SIOCGIFADDR = 0x8915

# Kernel limit on interface name length (IFNAMSIZ - 1)
IFNAME_MAX_LEN = 15
