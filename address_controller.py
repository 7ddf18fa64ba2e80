# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Reconciliation loop for the External IP Controller.

A single worker thread scans the node's interfaces, detects IPv4 address
changes against its own cache and hands each change to the ServicePatcher.
Passes run on a fixed timer and whenever a Service event arrives; events
feed a one-slot trigger so bursts collapse into a single pass.
"""

import logging
import queue
import threading
import time
from typing import Iterator, List, Optional

from constants import LOOP_STOP_TIMEOUT, RECONCILE_INTERVAL
from interface_sampler import InterfaceNotFoundError, InterfaceSampler
from models import (
    InterfaceChange,
    InterfaceStateCache,
    LoopState,
    ServiceAdded,
    ServiceEvent,
    ServiceUpdated,
)
from service_patcher import ServicePatcher

logger = logging.getLogger(__name__)


class TriggerCoalescer:
    """One-slot pending-work signal.

    trigger() never blocks; while a unit of work is pending further
    triggers are dropped, since the next pass re-derives every change.
    """

    def __init__(self):
        self._queue: queue.Queue = queue.Queue(maxsize=1)

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

    def trigger(self) -> bool:
        """Queue a unit of work. Returns False if one was already pending."""
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            return False
        return True

    def wait(self, timeout: Optional[float]) -> bool:
        """Consume the pending unit, waiting up to timeout seconds for one.

        Returns True if a unit was consumed, False on timeout.
        """
        try:
            if timeout is not None and timeout <= 0:
                self._queue.get_nowait()
            else:
                self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        return True


class AddressController:
    """Mirrors local interface addresses into annotated Services."""

    def __init__(self,
                 sampler: InterfaceSampler,
                 patcher: ServicePatcher,
                 interval: float = RECONCILE_INTERVAL):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.sampler = sampler
        self.patcher = patcher
        self.interval = interval

        # Only touched by the worker thread
        self.cache = InterfaceStateCache()

        self._trigger = TriggerCoalescer()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.state = LoopState.WAITING
        self.pass_count = 0

    # ========== Event Boundary ==========

    def trigger(self) -> bool:
        return self._trigger.trigger()

    def handle_event(self, event: ServiceEvent) -> None:
        """Request a pass for a Service event. Safe to call from any thread."""
        if isinstance(event, ServiceAdded):
            logger.debug("[TRIGGER] Re-evaluation triggered by add")
        elif isinstance(event, ServiceUpdated):
            logger.debug("[TRIGGER] Re-evaluation triggered by update")
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")

        if not self.trigger():
            logger.debug("[TRIGGER] Pass already pending, coalesced")

    # ========== Reconciliation ==========

    def scan_and_detect_changes(self) -> Iterator[InterfaceChange]:
        """Sample every interface and yield those whose address changed.

        The cache is updated before each change is yielded. Interfaces that
        fail to sample are skipped and keep their cached address.
        """
        for interface_name in self.sampler.list_interfaces():
            try:
                new_ip = self.sampler.sample(interface_name)
            except InterfaceNotFoundError as e:
                logger.debug("[SCAN] Skipping %s: %s", interface_name, e)
                continue

            old_ip = self.cache.get(interface_name)
            if old_ip == new_ip:
                continue

            logger.info("[SCAN] IP changed for [%s] from [%s] => [%s]",
                        interface_name, old_ip, new_ip)
            self.cache.update(interface_name, new_ip)
            yield InterfaceChange(interface_name, old_ip, new_ip)

    def reconcile(self) -> List[InterfaceChange]:
        """Run one full scan-and-patch pass. Returns the changes handled."""
        changes = []
        for change in self.scan_and_detect_changes():
            self.patcher.reconcile_interface(change.interface, change.old_ip,
                                             change.new_ip)
            changes.append(change)
        return changes

    def _run_pass(self, cause: str) -> None:
        self.state = LoopState.RUNNING
        logger.debug("[LOOP] Starting reconciliation pass (%s)", cause)
        try:
            changes = self.reconcile()
            if changes:
                logger.info("[LOOP] Pass (%s) handled %d interface change(s)",
                            cause, len(changes))
            logger.debug("[LOOP] Known addresses: %s", self.cache.snapshot())
        except Exception as e:
            logger.error("[LOOP] Reconciliation pass failed: %s",
                         e,
                         exc_info=True)
        finally:
            self.pass_count += 1
            self.state = LoopState.WAITING

    # ========== Main Loop ==========

    def run(self) -> None:
        """Loop until stopped: immediate pass, then timer or trigger."""
        logger.info("[LOOP] Address controller started (interval: %.1fs)",
                    self.interval)
        self.state = LoopState.WAITING
        next_tick = time.monotonic() + self.interval

        if not self._stop_event.is_set():
            self._run_pass("startup")

        while not self._stop_event.is_set():
            timeout = max(0.0, next_tick - time.monotonic())
            triggered = self._trigger.wait(timeout)

            # Stop is honoured only between passes
            if self._stop_event.is_set():
                break

            if triggered:
                self._run_pass("trigger")
                continue

            now = time.monotonic()
            while next_tick <= now:
                next_tick += self.interval
            self._run_pass("timer")

        self.state = LoopState.TERMINATED
        logger.info("[LOOP] Address controller stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Address controller already running")
            return

        self._stop_event.clear()
        # Discard the wake-up left behind by a previous stop()
        self._trigger.wait(0)
        self._thread = threading.Thread(target=self.run,
                                        name="address-controller",
                                        daemon=True)
        self._thread.start()

    def stop(self, timeout: float = LOOP_STOP_TIMEOUT) -> None:
        """Signal the loop to stop and wait for the current pass to finish."""
        self._stop_event.set()
        # Wake the worker if it is idle
        self._trigger.trigger()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(
                    "[SHUTDOWN] Address controller did not stop within %.1fs",
                    timeout)
