#!/usr/bin/env python3
"""
Event sinks for the log upload strategy
Structured observability collaborators injected into policies and drivers

Policies never log through a process-wide logger directly. They emit named
events with keyword fields to whatever sink they were constructed with.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

import boto3

logger = logging.getLogger(__name__)

CLOUDWATCH_NAMESPACE = "LogUpload/Policy"
METRIC_UPLOAD_DECISIONS = "UploadDecisions"
METRIC_UPLOAD_FAILURES = "UploadFailures"
METRIC_BYTES_PENDING = "BytesPending"
METRIC_SERVICE_STARTUP = "ServiceStartup"

EVENT_UPLOAD_DECISION = "upload_decision"
EVENT_UPLOAD_FAILED = "upload_failed"


class EventSink:
    """
    Receives structured events.

    Subclasses override emit(). The base class discards everything.
    """

    def emit(self, event: str, **fields) -> None:
        pass


class LoggingEventSink(EventSink):
    """
    Writes events as key=value records to a logger.

    Example:
        >>> sink = LoggingEventSink(logging.getLogger('uploads'))
        >>> sink.emit('upload_decision', record_count=42)
        # INFO upload_decision record_count=42
    """

    def __init__(self, target: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.target = target or logger
        self.level = level

    def emit(self, event: str, **fields) -> None:
        details = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        message = f"{event} {details}" if details else event
        self.target.log(self.level, message)


class MultiEventSink(EventSink):
    """Fans every event out to several sinks."""

    def __init__(self, sinks: List[EventSink]):
        self.sinks = list(sinks)

    def emit(self, event: str, **fields) -> None:
        for sink in self.sinks:
            sink.emit(event, **fields)


class CloudWatchEventSink(EventSink):
    """
    Aggregates upload events and publishes them as CloudWatch metrics.

    Metrics Published:
    - LogUpload/Policy/UploadDecisions (count since last publish)
    - LogUpload/Policy/UploadFailures (count since last publish)
    - LogUpload/Policy/BytesPending (bytes seen at last upload decision)

    Example:
        >>> sink = CloudWatchEventSink('us-east-1', 'gateway-01')
        >>> sink.emit('upload_decision', total_bytes=1024)
        >>> sink.publish_metrics()
    """

    def __init__(
        self, region: str, source_id: str, enabled: bool = True, profile_name: str = None
    ):
        """Initialize CloudWatch sink."""
        self.region = region
        self.source_id = source_id
        self.enabled = enabled
        self.profile_name = profile_name
        self.cw_client = None
        self.upload_decisions = 0
        self.upload_failures = 0
        self.bytes_pending = None

        if not self.enabled:
            logger.info("CloudWatch disabled (enabled=False)")
            return

        try:
            endpoint_url = os.getenv("AWS_ENDPOINT_URL")

            if endpoint_url:
                logger.info(f"CloudWatch in TEST mode (endpoint: {endpoint_url})")
                self.cw_client = boto3.client(
                    "cloudwatch",
                    region_name=region,
                    endpoint_url=endpoint_url,
                    aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "test"),
                    aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "test"),
                )
            elif profile_name:
                session = boto3.Session(profile_name=profile_name)
                self.cw_client = session.client("cloudwatch", region_name=region)
                logger.info(
                    f"CloudWatch initialized with profile '{profile_name}' for region: {region}"
                )
            else:
                self.cw_client = boto3.client("cloudwatch", region_name=region)
                logger.info(f"CloudWatch initialized for region: {region}")

            self.cw_client.put_metric_data(
                Namespace=CLOUDWATCH_NAMESPACE,
                MetricData=[self._metric(METRIC_SERVICE_STARTUP, 1, "Count")],
            )
        except Exception as e:
            logger.error(f"CloudWatch initialization failed: {e}")
            logger.error("Set monitoring.cloudwatch_enabled: false if metrics are optional")
            raise RuntimeError(f"CloudWatch initialization failed: {e}")

    def emit(self, event: str, **fields) -> None:
        if event == EVENT_UPLOAD_DECISION:
            self.upload_decisions += 1
            if "total_bytes" in fields:
                self.bytes_pending = fields["total_bytes"]
        elif event == EVENT_UPLOAD_FAILED:
            self.upload_failures += 1

    def _metric(self, name: str, value: float, unit: str) -> dict:
        return {
            "MetricName": name,
            "Value": value,
            "Unit": unit,
            "Timestamp": datetime.now(timezone.utc),
            "Dimensions": [{"Name": "SourceId", "Value": self.source_id}],
        }

    def publish_metrics(self):
        """Publish accumulated metrics to CloudWatch and reset accumulators."""
        if not self.enabled:
            logger.debug("CloudWatch disabled, skipping publish")
            return

        if self.cw_client is None:
            logger.error("CloudWatch client not initialized, cannot publish metrics")
            return

        metrics = []
        if self.upload_decisions > 0:
            metrics.append(self._metric(METRIC_UPLOAD_DECISIONS, self.upload_decisions, "Count"))
        if self.upload_failures > 0:
            metrics.append(self._metric(METRIC_UPLOAD_FAILURES, self.upload_failures, "Count"))
        if self.bytes_pending is not None:
            metrics.append(self._metric(METRIC_BYTES_PENDING, self.bytes_pending, "Bytes"))

        if not metrics:
            return

        try:
            self.cw_client.put_metric_data(Namespace=CLOUDWATCH_NAMESPACE, MetricData=metrics)
            logger.info(f"Published {len(metrics)} metrics to CloudWatch")
            self.upload_decisions = 0
            self.upload_failures = 0
            self.bytes_pending = None
        except Exception as e:
            logger.error(f"Failed to publish CloudWatch metrics: {e}")
