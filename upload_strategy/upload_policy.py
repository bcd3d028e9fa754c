#!/usr/bin/env python3
"""
Upload Decision Policies for the Log Upload Strategy
Decides, on each status check, whether buffered log records should be uploaded

A driver consults a policy every time storage status changes or a timer
ticks. The policy looks at the status snapshot and its own timer state and
answers NO_OP or UPLOAD. It never touches the buffer itself.

Policies are composed, not subclassed: a driver that needs "every 10 minutes
or once 1000 records are buffered" wraps a PeriodicPolicy and a
CountThresholdPolicy in an AnyOfPolicy.
"""

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from upload_strategy.decision import Decision, InvalidConfiguration, StorageStatus
from upload_strategy.event_sink import EVENT_UPLOAD_DECISION, EventSink
from upload_strategy.utils import TIME_UNITS, is_number, is_positive_number, to_seconds


class ArmingRule(Enum):
    """
    How a PeriodicPolicy establishes its timer baseline.

    FIRST_EVALUATE: the first evaluate() while unarmed returns NO_OP and
        records `now` as the baseline.
    EXTERNAL: evaluate() while unarmed returns NO_OP and leaves state alone.
        Only arm() or on_upload() establish the baseline.
    """

    FIRST_EVALUATE = "first_evaluate"
    EXTERNAL = "external"


class UploadDecisionPolicy(ABC):
    """
    Interface for upload decision policies.

    Subclasses implement evaluate(). reset(), arm() and on_upload() default
    to no-ops, which is right for stateless threshold policies.
    """

    name = "policy"

    def __init__(self, event_sink: Optional[EventSink] = None):
        self.event_sink = event_sink or EventSink()

    @abstractmethod
    def evaluate(self, status: StorageStatus, now: float) -> Decision:
        """
        Decide whether the buffer should be uploaded.

        Args:
            status: Current storage status (read-only)
            now: Current time in seconds from the injected clock

        Returns:
            Decision: NO_OP or UPLOAD
        """

    def reset(self) -> None:
        """Return to the initial state."""

    def arm(self, now: float) -> None:
        """Establish any timer baseline at `now`."""

    def on_upload(self, now: float) -> None:
        """Called when an upload happened for a reason other than this policy."""

    def _signal_upload(self, status: StorageStatus, **fields) -> Decision:
        self.event_sink.emit(
            EVENT_UPLOAD_DECISION,
            policy=self.name,
            record_count=status.record_count,
            total_bytes=status.total_bytes,
            **fields,
        )
        return Decision.UPLOAD


class PeriodicPolicy(UploadDecisionPolicy):
    """
    Triggers an upload every `interval` seconds.

    States:
    - UNARMED: no baseline yet (last_upload_instant is None)
    - ARMED: baseline set, UPLOAD fires once `interval` has elapsed

    Evaluation is serialized by a lock so two threads can never get UPLOAD
    for the same interval window.

    Example:
        >>> policy = PeriodicPolicy(interval=10)
        >>> policy.evaluate(status, now=0.0)      # NO_OP, arms at 0.0
        >>> policy.evaluate(status, now=9.999)    # NO_OP
        >>> policy.evaluate(status, now=10.0)     # UPLOAD
        >>> policy.evaluate(status, now=10.001)   # NO_OP

    Attributes:
        interval (float): Threshold in seconds, None until configured
        arming (ArmingRule): How the baseline gets established
        last_upload_instant (float): Baseline, None while unarmed
    """

    name = "periodic"

    def __init__(
        self,
        interval: Optional[float] = None,
        unit: str = "seconds",
        arming: ArmingRule = ArmingRule.FIRST_EVALUATE,
        event_sink: Optional[EventSink] = None,
    ):
        super().__init__(event_sink)
        try:
            self.arming = ArmingRule(arming)
        except ValueError:
            raise InvalidConfiguration(f"unknown arming rule: {arming}")
        self._interval = None
        self._last_upload_instant = None
        self._lock = threading.Lock()

        if interval is not None:
            self.configure(interval, unit)

    def configure(self, interval: float, unit: str = "seconds") -> None:
        """
        Set the upload interval.

        Args:
            interval: Interval magnitude, must be > 0
            unit: milliseconds, seconds, minutes, hours or days

        Raises:
            InvalidConfiguration: If interval is not a positive number or
                unit is unknown
        """
        if not is_number(interval):
            raise InvalidConfiguration(
                f"interval must be a number, got {type(interval).__name__}"
            )
        if not is_positive_number(interval):
            raise InvalidConfiguration(f"interval must be > 0 and finite, got {interval}")
        if unit not in TIME_UNITS:
            raise InvalidConfiguration(
                f"unit must be one of {list(TIME_UNITS)}, got: {unit}"
            )

        with self._lock:
            self._interval = to_seconds(interval, unit)

    @property
    def interval(self) -> Optional[float]:
        return self._interval

    @property
    def last_upload_instant(self) -> Optional[float]:
        return self._last_upload_instant

    @property
    def is_armed(self) -> bool:
        return self._last_upload_instant is not None

    def evaluate(self, status: StorageStatus, now: float) -> Decision:
        with self._lock:
            if self._interval is None:
                raise InvalidConfiguration("interval is not configured")

            if self._last_upload_instant is None:
                if self.arming is ArmingRule.FIRST_EVALUATE:
                    self._last_upload_instant = now
                return Decision.NO_OP

            # A clock stepping backwards yields a negative elapsed time: NO_OP
            elapsed = now - self._last_upload_instant
            if elapsed < self._interval:
                return Decision.NO_OP

            last_upload = self._last_upload_instant
            self._last_upload_instant = now

        return self._signal_upload(
            status, last_upload_instant=last_upload, interval=self._interval
        )

    def arm(self, now: float) -> None:
        """
        Establish the timer baseline at `now`.

        If already armed, the baseline only ever moves forward.
        """
        with self._lock:
            if self._last_upload_instant is None or now > self._last_upload_instant:
                self._last_upload_instant = now

    def on_upload(self, now: float) -> None:
        self.arm(now)

    def reset(self) -> None:
        with self._lock:
            self._last_upload_instant = None


class CountThresholdPolicy(UploadDecisionPolicy):
    """Triggers an upload once the buffer holds at least `threshold` records."""

    name = "record_count"

    def __init__(self, threshold: int, event_sink: Optional[EventSink] = None):
        super().__init__(event_sink)
        self.threshold = _positive_int(threshold, "threshold")

    def evaluate(self, status: StorageStatus, now: float) -> Decision:
        if status.record_count >= self.threshold:
            return self._signal_upload(status, threshold=self.threshold)
        return Decision.NO_OP


class VolumeThresholdPolicy(UploadDecisionPolicy):
    """Triggers an upload once buffered bytes reach `threshold_bytes`."""

    name = "volume"

    def __init__(self, threshold_bytes: int, event_sink: Optional[EventSink] = None):
        super().__init__(event_sink)
        self.threshold_bytes = _positive_int(threshold_bytes, "threshold_bytes")

    def evaluate(self, status: StorageStatus, now: float) -> Decision:
        if status.total_bytes >= self.threshold_bytes:
            return self._signal_upload(status, threshold_bytes=self.threshold_bytes)
        return Decision.NO_OP


class AnyOfPolicy(UploadDecisionPolicy):
    """
    Uploads when any child policy says so.

    Children are evaluated in order and the first UPLOAD wins. Every other
    child is then told about the upload through on_upload(), so periodic
    timers restart after a threshold-triggered upload.

    The composite emits no event of its own; the firing child does.
    """

    name = "any_of"

    def __init__(self, policies: List[UploadDecisionPolicy], event_sink: Optional[EventSink] = None):
        super().__init__(event_sink)
        if not policies:
            raise InvalidConfiguration("any_of requires at least one policy")
        self.policies = list(policies)

    def evaluate(self, status: StorageStatus, now: float) -> Decision:
        for index, policy in enumerate(self.policies):
            if policy.evaluate(status, now) is Decision.UPLOAD:
                for other_index, other in enumerate(self.policies):
                    if other_index != index:
                        other.on_upload(now)
                return Decision.UPLOAD
        return Decision.NO_OP

    def arm(self, now: float) -> None:
        for policy in self.policies:
            policy.arm(now)

    def on_upload(self, now: float) -> None:
        for policy in self.policies:
            policy.on_upload(now)

    def reset(self) -> None:
        for policy in self.policies:
            policy.reset()


def _positive_int(value, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidConfiguration(f"{field_name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise InvalidConfiguration(f"{field_name} must be > 0, got {value}")
    return value
