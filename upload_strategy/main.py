#!/usr/bin/env python3
"""
Log Upload Strategy - Main Application
Runs an upload policy against a watched log directory

Wires the configured policy, directory monitor, event sinks and upload
driver together. Transport is not part of this service: the uploader logs
what would be handed over to the upload subsystem.
"""

import logging
import signal
import sys
import threading
import time
from typing import List, Optional

from upload_strategy.config_manager import ConfigManager, ConfigValidationError
from upload_strategy.decision import StorageStatus
from upload_strategy.event_sink import (
    CloudWatchEventSink,
    EventSink,
    LoggingEventSink,
    MultiEventSink,
)
from upload_strategy.storage_monitor import DirectoryStatusMonitor
from upload_strategy.upload_driver import UploadDriver
from upload_strategy.utils import format_bytes

logger = logging.getLogger(__name__)


class LogUploadService:
    """
    Main coordinator for the log upload strategy.

    Coordinates:
    - Configuration management (config_manager)
    - Directory status monitoring (storage_monitor)
    - Upload decisions (upload_policy via upload_driver)
    - Decision metrics (event_sink)

    Example:
        >>> service = LogUploadService('/etc/log-upload/config.yaml')
        >>> service.start()
        >>> # ... service runs ...
        >>> service.stop()

    Attributes:
        config (ConfigManager): Configuration manager
        monitor (DirectoryStatusMonitor): Storage status source
        driver (UploadDriver): Policy driver
        cloudwatch (CloudWatchEventSink): Metrics sink, None when disabled
        publish_interval (float): Seconds between CloudWatch publishes
    """

    def __init__(self, config_path: str):
        """
        Initialize the service.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigValidationError: If config is invalid
        """
        self.config = ConfigManager(config_path)

        directory = self.config.get("storage.directory")
        if not directory:
            raise ConfigValidationError("storage.directory is required to run the service")

        self.cloudwatch = None
        sinks: List[EventSink] = [LoggingEventSink(logging.getLogger("upload_strategy.events"))]
        if self.config.get("monitoring.cloudwatch_enabled", False):
            self.cloudwatch = CloudWatchEventSink(
                region=self.config.get("monitoring.region"),
                source_id=self.config.get("source_id", "default"),
                profile_name=self.config.get("monitoring.profile"),
            )
            sinks.append(self.cloudwatch)
        event_sink = MultiEventSink(sinks)
        self.publish_interval = self.config.get("monitoring.publish_interval_seconds", 300)
        self._stop_event = threading.Event()
        self._publish_thread = None

        self.monitor = DirectoryStatusMonitor(
            directory,
            pattern=self.config.get("storage.pattern", "*"),
            recursive=self.config.get("storage.recursive", False),
        )

        self.driver = UploadDriver(
            policy=self.config.build_policy(event_sink),
            status_provider=self.monitor.get_status,
            uploader=self._request_upload,
            event_sink=event_sink,
            check_interval=self.config.get("driver.check_interval_seconds", 1),
        )
        self.monitor.add_listener(self.driver.on_status_changed)

        logger.info(f"Policy: {self.config.get('policy.type')}")
        logger.info("Initialization complete")

    def _request_upload(self, status: StorageStatus):
        """Hand the buffer over to the upload subsystem."""
        logger.info(
            f"Upload requested: {status.record_count} files "
            f"({format_bytes(status.total_bytes)}) in {self.monitor.directory}"
        )

    def start(self):
        self.monitor.start()
        self.driver.start()

        if self.cloudwatch is not None:
            self._stop_event.clear()
            self._publish_thread = threading.Thread(target=self._publish_loop, daemon=True)
            self._publish_thread.start()
            logger.info(f"Publishing metrics every {self.publish_interval}s")

        logger.info("Service started successfully")

    def _publish_loop(self):
        """
        Background thread publishing CloudWatch metrics.

        Note:
            Logs errors but continues running
        """
        while not self._stop_event.wait(self.publish_interval):
            try:
                self.cloudwatch.publish_metrics()
            except Exception as e:
                logger.error(f"Error publishing metrics: {e}")

    def stop(self):
        """Stop monitoring and background loops, flush metrics, then print statistics."""
        self.monitor.stop()
        self.driver.stop()

        if self._publish_thread is not None:
            self._stop_event.set()
            self._publish_thread.join(timeout=5)
            self._publish_thread = None

        # Counters accumulated since the last publish
        if self.cloudwatch is not None:
            self.cloudwatch.publish_metrics()

        stats = self.driver.get_statistics()
        logger.info(
            f"Checks: {stats['checks']}, uploads: {stats['uploads']}, "
            f"failures: {stats['failures']}"
        )
        logger.info("Shutdown complete")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Command-line arguments:
        --config: Path to configuration file
        --test-config: Test configuration and exit
        --log-level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    import argparse

    parser = argparse.ArgumentParser(description="Log Upload Strategy")
    parser.add_argument(
        "--config", default="/etc/log-upload/config.yaml", help="Path to configuration file"
    )
    parser.add_argument("--test-config", action="store_true", help="Test configuration and exit")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.test_config:
        try:
            config = ConfigManager(args.config)
            config.build_policy()
            logger.info("Configuration valid!")
            logger.info(f"Policy: {config.get('policy')}")
            logger.info(f"Storage: {config.get('storage')}")
            return 0
        except Exception as e:
            logger.error(f"Configuration error: {e}")
            return 1

    try:
        service = LogUploadService(args.config)
    except Exception as e:
        logger.error(f"FATAL ERROR: {e}")
        return 1

    def handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}")
        service.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    service.start()
    logger.info("Running... Press Ctrl+C to stop")
    while True:
        time.sleep(1)


if __name__ == "__main__":
    sys.exit(main())
