#!/usr/bin/env python3
"""Tests for event sinks"""

import logging
from unittest.mock import Mock, patch

import pytest

from upload_strategy.event_sink import (
    CloudWatchEventSink,
    EventSink,
    LoggingEventSink,
    MultiEventSink,
)


class TestLoggingEventSink:
    """Test key=value logging"""

    def test_emit_formats_fields(self, caplog):
        """Test fields are sorted key=value pairs"""
        sink = LoggingEventSink(logging.getLogger("test.events"))

        with caplog.at_level(logging.INFO, logger="test.events"):
            sink.emit("upload_decision", record_count=3, policy="periodic")

        assert caplog.records[0].getMessage() == "upload_decision policy=periodic record_count=3"

    def test_emit_without_fields(self, caplog):
        """Test bare event name"""
        sink = LoggingEventSink(logging.getLogger("test.events"), level=logging.WARNING)

        with caplog.at_level(logging.WARNING, logger="test.events"):
            sink.emit("started")

        assert caplog.records[0].getMessage() == "started"
        assert caplog.records[0].levelno == logging.WARNING


class TestMultiEventSink:
    """Test fan-out"""

    def test_fan_out(self, sink):
        """Test every sink receives the event"""
        other = Mock(spec=EventSink)
        MultiEventSink([sink, other]).emit("upload_failed", error="X")

        assert sink.events == [("upload_failed", {"error": "X"})]
        other.emit.assert_called_once_with("upload_failed", error="X")


class TestCloudWatchEventSink:
    """Test CloudWatch metric aggregation and publishing"""

    def test_init_disabled(self):
        """Test disabled sink creates no client"""
        cw = CloudWatchEventSink("us-east-1", "gateway-01", enabled=False)
        assert cw.cw_client is None

    def test_aggregation(self):
        """Test events are counted"""
        cw = CloudWatchEventSink("us-east-1", "gateway-01", enabled=False)

        cw.emit("upload_decision", total_bytes=100)
        cw.emit("upload_decision", total_bytes=250)
        cw.emit("upload_failed", error="X")
        cw.emit("something_else")

        assert cw.upload_decisions == 2
        assert cw.upload_failures == 1
        assert cw.bytes_pending == 250

    def test_publish_disabled(self):
        """Test publish does nothing when disabled"""
        cw = CloudWatchEventSink("us-east-1", "gateway-01", enabled=False)
        cw.emit("upload_decision")
        cw.publish_metrics()

        assert cw.upload_decisions == 1

    @patch("upload_strategy.event_sink.boto3.client")
    def test_publish_metrics(self, mock_boto_client, monkeypatch):
        """Test publishing metrics to CloudWatch"""
        monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
        mock_cw = Mock()
        mock_boto_client.return_value = mock_cw

        cw = CloudWatchEventSink("us-east-1", "gateway-01")
        mock_cw.put_metric_data.reset_mock()

        cw.emit("upload_decision", total_bytes=2048)
        cw.emit("upload_failed")
        cw.publish_metrics()

        mock_cw.put_metric_data.assert_called_once()
        kwargs = mock_cw.put_metric_data.call_args[1]
        assert kwargs["Namespace"] == "LogUpload/Policy"
        names = [m["MetricName"] for m in kwargs["MetricData"]]
        assert names == ["UploadDecisions", "UploadFailures", "BytesPending"]
        assert kwargs["MetricData"][0]["Dimensions"] == [{"Name": "SourceId", "Value": "gateway-01"}]

        assert cw.upload_decisions == 0
        assert cw.upload_failures == 0
        assert cw.bytes_pending is None

    @patch("upload_strategy.event_sink.boto3.client")
    def test_publish_nothing_pending(self, mock_boto_client, monkeypatch):
        """Test no API call without accumulated events"""
        monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
        mock_cw = Mock()
        mock_boto_client.return_value = mock_cw

        cw = CloudWatchEventSink("us-east-1", "gateway-01")
        mock_cw.put_metric_data.reset_mock()
        cw.publish_metrics()

        mock_cw.put_metric_data.assert_not_called()

    @patch("upload_strategy.event_sink.boto3.client")
    def test_publish_error_keeps_counters(self, mock_boto_client, monkeypatch):
        """Test failed publish keeps accumulated values for next attempt"""
        monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
        mock_cw = Mock()
        mock_boto_client.return_value = mock_cw

        cw = CloudWatchEventSink("us-east-1", "gateway-01")
        mock_cw.put_metric_data.side_effect = Exception("throttled")
        cw.emit("upload_decision")
        cw.publish_metrics()

        assert cw.upload_decisions == 1

    @patch("upload_strategy.event_sink.boto3.client")
    def test_init_failure_raises(self, mock_boto_client, monkeypatch):
        """Test enabled sink fails fast when the startup metric can't be published"""
        monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
        mock_boto_client.return_value.put_metric_data.side_effect = Exception("AccessDenied")

        with pytest.raises(RuntimeError, match="CloudWatch initialization failed"):
            CloudWatchEventSink("us-east-1", "gateway-01")

    @patch("upload_strategy.event_sink.boto3.client")
    def test_endpoint_override(self, mock_boto_client, monkeypatch):
        """Test AWS_ENDPOINT_URL is passed to the client"""
        monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:4566")

        CloudWatchEventSink("us-east-1", "gateway-01")

        assert mock_boto_client.call_args[1]["endpoint_url"] == "http://localhost:4566"
