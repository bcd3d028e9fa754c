#!/usr/bin/env python3
"""
Upload Driver for the Log Upload Strategy
Consults an upload policy and hands the buffer to an uploader

The driver owns the check loop. It reads storage status, asks the policy for
a decision and, on UPLOAD, calls the injected uploader. Transport and storage
clearing are the uploader's business.
"""

import logging
import threading
import time
from typing import Callable, Optional

from upload_strategy.decision import Decision, StorageStatus
from upload_strategy.event_sink import EVENT_UPLOAD_FAILED, EventSink
from upload_strategy.upload_policy import UploadDecisionPolicy
from upload_strategy.utils import format_bytes, is_positive_number

logger = logging.getLogger(__name__)


class UploadDriver:
    """
    Runs an upload policy against a storage status source.

    Entry points:
    - check(): pull status and evaluate (timer tick)
    - on_status_changed(status): evaluate a pushed status (storage event)
    - flush(): manual upload, then policy.reset() and re-arm
    - start()/stop(): background thread calling check() periodically

    Example:
        >>> driver = UploadDriver(
        ...     policy=PeriodicPolicy(interval=60),
        ...     status_provider=monitor.get_status,
        ...     uploader=lambda status: transport.send_all(),
        ... )
        >>> driver.start()
        >>> # ... runs ...
        >>> driver.stop()

    Attributes:
        policy (UploadDecisionPolicy): Decision policy
        stats (dict): Runtime statistics (checks/uploads/failures)
    """

    def __init__(
        self,
        policy: UploadDecisionPolicy,
        status_provider: Callable[[], StorageStatus],
        uploader: Callable[[StorageStatus], object],
        clock: Callable[[], float] = time.monotonic,
        event_sink: Optional[EventSink] = None,
        check_interval: float = 1.0,
    ):
        """
        Initialize upload driver.

        Args:
            policy: Policy consulted on every check
            status_provider: Returns the current StorageStatus
            uploader: Called with the status when an upload is due
            clock: Time source in seconds (default: time.monotonic)
            event_sink: Receives upload_failed events
            check_interval: Seconds between background checks
        """
        if not is_positive_number(check_interval):
            raise ValueError(f"check_interval must be > 0 and finite, got {check_interval}")

        self.policy = policy
        self.status_provider = status_provider
        self.uploader = uploader
        self.clock = clock
        self.event_sink = event_sink or EventSink()
        self.check_interval = check_interval

        self._upload_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

        self.stats = {"checks": 0, "uploads": 0, "failures": 0}

        # Timer policies start counting from driver creation
        self.policy.arm(self.clock())

    def check(self) -> Decision:
        """Read the current status and act on the policy's decision."""
        try:
            status = self.status_provider()
        except Exception as e:
            logger.error(f"Failed to read storage status: {e}")
            return Decision.NO_OP

        return self.on_status_changed(status)

    def on_status_changed(self, status: StorageStatus) -> Decision:
        """
        Evaluate the policy for a given status and upload if needed.

        Returns:
            Decision: What the policy decided
        """
        with self._upload_lock:
            self.stats["checks"] += 1
            decision = self.policy.evaluate(status, self.clock())

            if decision is Decision.UPLOAD:
                logger.info(
                    f"Upload needed - records: {status.record_count}, "
                    f"size: {format_bytes(status.total_bytes)}"
                )
                self._upload(status)

        return decision

    def flush(self) -> bool:
        """
        Upload now regardless of the policy, then restart its timer.

        Returns:
            bool: True if the uploader succeeded
        """
        try:
            status = self.status_provider()
        except Exception as e:
            logger.error(f"Failed to read storage status for flush: {e}")
            return False

        with self._upload_lock:
            logger.info(f"Manual flush - records: {status.record_count}")
            success = self._upload(status)
            self.policy.reset()
            self.policy.arm(self.clock())

        return success

    def _upload(self, status: StorageStatus) -> bool:
        try:
            self.uploader(status)
        except Exception as e:
            self.stats["failures"] += 1
            logger.error(f"Upload failed: {e}")
            self.event_sink.emit(
                EVENT_UPLOAD_FAILED,
                error=type(e).__name__,
                record_count=status.record_count,
            )
            return False

        self.stats["uploads"] += 1
        return True

    def start(self):
        """
        Start the background check loop.

        Note:
            Safe to call multiple times - will not start if already running
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._check_loop, daemon=True)
        self._thread.start()
        logger.info(f"Upload driver started (check every {self.check_interval}s)")

    def stop(self, timeout: float = 5.0):
        """Stop the background loop, waiting up to `timeout` seconds."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Upload driver stopped")

    def _check_loop(self):
        """
        Background thread body.

        Note:
            Logs errors but continues running
        """
        while not self._stop_event.is_set():
            try:
                self.check()
            except Exception as e:
                logger.error(f"Error in check loop: {e}")

            self._stop_event.wait(self.check_interval)

    def get_statistics(self) -> dict:
        """Public snapshot for tests/monitoring."""
        return dict(self.stats)
