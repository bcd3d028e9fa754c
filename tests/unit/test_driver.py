#!/usr/bin/env python3
"""Tests for upload driver"""

import time
from unittest.mock import Mock

import pytest

from upload_strategy.decision import Decision, StorageStatus
from upload_strategy.upload_driver import UploadDriver
from upload_strategy.upload_policy import (
    AnyOfPolicy,
    ArmingRule,
    CountThresholdPolicy,
    PeriodicPolicy,
)


@pytest.fixture
def uploader():
    """Mock uploader"""
    return Mock()


def make_driver(policy, uploader, clock, status=None, **kwargs):
    status = status or StorageStatus(record_count=7, total_bytes=700)
    return UploadDriver(
        policy=policy,
        status_provider=lambda: status,
        uploader=uploader,
        clock=clock,
        **kwargs,
    )


class TestCheck:
    """Test timer-driven checks"""

    def test_periodic_upload_cycle(self, uploader, clock):
        """Test uploader is called once per elapsed interval"""
        driver = make_driver(PeriodicPolicy(interval=10), uploader, clock)

        assert driver.check() is Decision.NO_OP  # armed at t=0 on creation
        clock.advance(9.5)
        assert driver.check() is Decision.NO_OP
        clock.advance(0.5)
        assert driver.check() is Decision.UPLOAD
        assert driver.check() is Decision.NO_OP

        uploader.assert_called_once()
        assert uploader.call_args[0][0].record_count == 7
        assert driver.get_statistics() == {"checks": 4, "uploads": 1, "failures": 0}

    def test_status_provider_error(self, uploader, clock):
        """Test failing status source yields NO_OP without raising"""
        driver = UploadDriver(
            policy=CountThresholdPolicy(threshold=1),
            status_provider=Mock(side_effect=OSError("disk gone")),
            uploader=uploader,
            clock=clock,
        )

        assert driver.check() is Decision.NO_OP
        uploader.assert_not_called()

    def test_upload_failure_is_reported(self, clock, sink):
        """Test uploader exceptions are counted and emitted, not raised"""
        failing = Mock(side_effect=ConnectionError("offline"))
        driver = make_driver(CountThresholdPolicy(threshold=1), failing, clock, event_sink=sink)

        assert driver.check() is Decision.UPLOAD
        assert driver.get_statistics()["failures"] == 1
        assert driver.get_statistics()["uploads"] == 0
        assert sink.events == [
            ("upload_failed", {"error": "ConnectionError", "record_count": 7})
        ]

    def test_invalid_check_interval(self, uploader, clock):
        """Test check_interval must be positive"""
        with pytest.raises(ValueError):
            make_driver(CountThresholdPolicy(threshold=1), uploader, clock, check_interval=0)

    @pytest.mark.parametrize("check_interval", [float("nan"), float("inf")])
    def test_non_finite_check_interval(self, uploader, clock, check_interval):
        """Test NaN and infinite check intervals are rejected"""
        with pytest.raises(ValueError, match="finite"):
            make_driver(
                CountThresholdPolicy(threshold=1), uploader, clock, check_interval=check_interval
            )


class TestStatusChanged:
    """Test push-style evaluation"""

    def test_pushed_status_is_evaluated(self, uploader, clock):
        """Test on_status_changed uses the pushed status"""
        driver = make_driver(CountThresholdPolicy(threshold=10), uploader, clock)

        assert driver.on_status_changed(StorageStatus(record_count=3)) is Decision.NO_OP
        assert driver.on_status_changed(StorageStatus(record_count=10)) is Decision.UPLOAD
        assert uploader.call_args[0][0].record_count == 10


class TestFlush:
    """Test manual flush"""

    def test_flush_uploads_and_restarts_timer(self, uploader, clock):
        """Test flush uploads regardless of policy and restarts the interval"""
        policy = PeriodicPolicy(interval=10)
        driver = make_driver(policy, uploader, clock)
        driver.check()

        clock.advance(3)
        assert driver.flush() is True

        uploader.assert_called_once()
        assert policy.last_upload_instant == 3
        clock.advance(9)
        assert driver.check() is Decision.NO_OP
        clock.advance(1)
        assert driver.check() is Decision.UPLOAD

    def test_flush_failure(self, clock):
        """Test flush reports uploader failure and still restarts the timer"""
        policy = PeriodicPolicy(interval=10)
        driver = make_driver(policy, Mock(side_effect=RuntimeError("boom")), clock)
        clock.advance(4)

        assert driver.flush() is False
        assert policy.last_upload_instant == 4


class TestArming:
    """Test the driver establishes timer baselines"""

    def test_external_policy_armed_at_creation(self, uploader, clock):
        """Test an externally armed policy uploads one interval after the driver starts"""
        clock.advance(100)
        policy = PeriodicPolicy(interval=10, arming=ArmingRule.EXTERNAL)
        driver = make_driver(policy, uploader, clock)

        assert policy.last_upload_instant == 100
        clock.advance(10)
        assert driver.check() is Decision.UPLOAD

    def test_external_policy_keeps_uploading_after_flush(self, uploader, clock):
        """Test flush does not leave an externally armed policy unarmed"""
        policy = PeriodicPolicy(interval=10, arming=ArmingRule.EXTERNAL)
        driver = make_driver(policy, uploader, clock)

        clock.advance(5)
        driver.flush()
        assert policy.is_armed is True

        clock.advance(10)
        assert driver.check() is Decision.UPLOAD
        clock.advance(10)
        assert driver.check() is Decision.UPLOAD
        assert uploader.call_count == 3

    def test_composite_arms_children(self, uploader, clock):
        """Test arming reaches periodic children of any_of"""
        periodic = PeriodicPolicy(interval=10, arming=ArmingRule.EXTERNAL)
        make_driver(AnyOfPolicy([CountThresholdPolicy(threshold=100), periodic]), uploader, clock)

        assert periodic.is_armed is True


class TestBackgroundLoop:
    """Test start/stop of the check thread"""

    def test_loop_checks_periodically(self, uploader):
        """Test background thread calls check() repeatedly"""
        driver = make_driver(
            CountThresholdPolicy(threshold=1), uploader, time.monotonic, check_interval=0.05
        )

        driver.start()
        time.sleep(0.3)
        driver.stop()

        assert driver.get_statistics()["checks"] >= 2
        assert uploader.call_count >= 2

    def test_start_twice(self, uploader, clock):
        """Test second start() is ignored"""
        driver = make_driver(PeriodicPolicy(interval=10), uploader, clock, check_interval=0.05)
        driver.start()
        thread = driver._thread
        driver.start()

        assert driver._thread is thread
        driver.stop()

    def test_stop_without_start(self, uploader, clock):
        """Test stop() before start() is a no-op"""
        driver = make_driver(PeriodicPolicy(interval=10), uploader, clock)
        driver.stop()
