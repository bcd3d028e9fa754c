#!/usr/bin/env python3
"""
Configuration Manager for the Log Upload Strategy
Loads, validates, and manages YAML configuration

Also builds the configured upload policy, so callers never assemble policy
objects from raw dictionaries themselves.
"""

import logging
import os
import signal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from upload_strategy.decision import InvalidConfiguration
from upload_strategy.event_sink import EventSink
from upload_strategy.upload_policy import (
    AnyOfPolicy,
    ArmingRule,
    CountThresholdPolicy,
    PeriodicPolicy,
    UploadDecisionPolicy,
    VolumeThresholdPolicy,
)
from upload_strategy.utils import TIME_UNITS, is_positive_number

logger = logging.getLogger(__name__)

POLICY_TYPES = ["periodic", "record_count", "volume", "any_of"]
ARMING_RULES = [rule.value for rule in ArmingRule]


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is raised when the configuration file is malformed,
    missing required fields, or contains invalid values.
    """

    pass


class ConfigManager:
    """
    Manages system configuration from YAML file.

    Features:
    - Load and validate YAML config
    - Revalidate on SIGHUP signal
    - Dot-notation access to nested values
    - Build the configured upload policy

    Example:
        >>> config = ConfigManager('/etc/log-upload/config.yaml')
        >>> directory = config.get('storage.directory')
        >>> policy = config.build_policy()

    Attributes:
        config_path (Path): Path to the configuration file
        config (dict): Loaded configuration dictionary
    """

    def __init__(self, config_path: str):
        """
        Initialize config manager and load configuration.

        Args:
            config_path: Path to YAML config file

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML syntax is invalid
            ConfigValidationError: If validation fails
        """
        self.config_path = Path(config_path)
        self.config = {}
        signal.signal(signal.SIGHUP, self._handle_reload_signal)
        self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load and validate configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ConfigValidationError("Config file is empty or contains only whitespace")

        config = self._expand_env_vars(config)
        self.validate_config(config)
        self.config = config
        logger.info(f"Loaded config from {self.config_path}")
        return self.config

    def reload_config(self) -> Dict[str, Any]:
        """
        Reload configuration from disk (SIGHUP handler).

        NOTE: Running drivers keep the policy they were built with. Reload
        only validates and refreshes get() values.
        """
        logger.info("Reloading configuration...")

        try:
            old_policy = self.config.get("policy")
            new_config = self.load_config()

            if old_policy != new_config.get("policy"):
                logger.warning("Policy settings changed - restart required to apply them")

            logger.info("Config validation successful")
            return new_config

        except Exception as e:
            logger.error(f"Failed to reload config: {e}")
            logger.info("Keeping existing configuration")
            return self.config

    def _expand_env_vars(self, config: Any) -> Any:
        """
        Recursively expand environment variables in configuration values.

        Supports ${VAR_NAME}, $VAR_NAME and ~ expansion in strings.
        """
        if isinstance(config, dict):
            return {key: self._expand_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._expand_env_vars(item) for item in config]
        elif isinstance(config, str):
            return os.path.expandvars(os.path.expanduser(config))
        else:
            return config

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration schema and values."""
        if not isinstance(config, dict):
            raise ConfigValidationError("Config root must be a mapping")

        if "policy" not in config:
            raise ConfigValidationError("Missing required key: policy")

        if "source_id" in config:
            if not isinstance(config["source_id"], str) or not config["source_id"]:
                raise ConfigValidationError("source_id must be a non-empty string")

        self._validate_policy_config(config["policy"], "policy")

        if "storage" in config:
            self._validate_storage_config(config["storage"])

        if "driver" in config:
            self._validate_driver_config(config["driver"])

        if "monitoring" in config:
            self._validate_monitoring_config(config["monitoring"])

        logger.info("Configuration validated successfully")
        return True

    def _validate_policy_config(self, policy_config: Any, path: str) -> None:
        """Validate a policy section (recurses into any_of children)."""
        if not isinstance(policy_config, dict):
            raise ConfigValidationError(f"{path} must be a mapping")

        if "type" not in policy_config:
            raise ConfigValidationError(f"Missing {path}.type")

        policy_type = policy_config["type"]
        if policy_type not in POLICY_TYPES:
            raise ConfigValidationError(
                f"{path}.type must be one of {POLICY_TYPES}, got: {policy_type}"
            )

        if policy_type == "periodic":
            if "interval" not in policy_config:
                raise ConfigValidationError(f"Missing {path}.interval")

            interval = policy_config["interval"]
            if not is_positive_number(interval):
                raise ConfigValidationError(f"{path}.interval must be a finite number > 0")

            unit = policy_config.get("unit", "seconds")
            if unit not in TIME_UNITS:
                raise ConfigValidationError(
                    f"{path}.unit must be one of {list(TIME_UNITS)}, got: {unit}"
                )

            arming = policy_config.get("arming", ArmingRule.FIRST_EVALUATE.value)
            if arming not in ARMING_RULES:
                raise ConfigValidationError(
                    f"{path}.arming must be one of {ARMING_RULES}, got: {arming}"
                )

        elif policy_type == "record_count":
            self._validate_positive_int(policy_config, "threshold", path)

        elif policy_type == "volume":
            self._validate_positive_int(policy_config, "threshold_bytes", path)

        elif policy_type == "any_of":
            children = policy_config.get("policies")
            if not isinstance(children, list) or not children:
                raise ConfigValidationError(f"{path}.policies must be a non-empty list")

            for idx, child in enumerate(children):
                self._validate_policy_config(child, f"{path}.policies[{idx}]")

    def _validate_positive_int(self, section: Dict[str, Any], key: str, path: str) -> None:
        if key not in section:
            raise ConfigValidationError(f"Missing {path}.{key}")

        value = section[key]
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigValidationError(f"{path}.{key} must be a positive integer")

    def _validate_storage_config(self, storage_config: Dict[str, Any]) -> None:
        """Validate storage configuration section."""
        if not isinstance(storage_config, dict):
            raise ConfigValidationError("storage must be a mapping")

        if "directory" not in storage_config:
            raise ConfigValidationError("Missing storage.directory")

        if not isinstance(storage_config["directory"], str) or not storage_config["directory"]:
            raise ConfigValidationError("storage.directory must be a non-empty string")

        if "pattern" in storage_config and not isinstance(storage_config["pattern"], str):
            raise ConfigValidationError("storage.pattern must be string")

        if "recursive" in storage_config and not isinstance(storage_config["recursive"], bool):
            raise ConfigValidationError("storage.recursive must be boolean")

    def _validate_driver_config(self, driver_config: Dict[str, Any]) -> None:
        """Validate driver configuration section."""
        if not isinstance(driver_config, dict):
            raise ConfigValidationError("driver must be a mapping")

        if "check_interval_seconds" in driver_config:
            value = driver_config["check_interval_seconds"]
            if not is_positive_number(value):
                raise ConfigValidationError(
                    "driver.check_interval_seconds must be a finite number > 0"
                )

    def _validate_monitoring_config(self, monitoring_config: Dict[str, Any]) -> None:
        """Validate monitoring configuration section."""
        if not isinstance(monitoring_config, dict):
            raise ConfigValidationError("monitoring must be a mapping")

        if "cloudwatch_enabled" in monitoring_config:
            if not isinstance(monitoring_config["cloudwatch_enabled"], bool):
                raise ConfigValidationError("monitoring.cloudwatch_enabled must be boolean")

            if monitoring_config["cloudwatch_enabled"] and not monitoring_config.get("region"):
                raise ConfigValidationError(
                    "monitoring.region is required when cloudwatch_enabled is true"
                )

        if "publish_interval_seconds" in monitoring_config:
            if not is_positive_number(monitoring_config["publish_interval_seconds"]):
                raise ConfigValidationError(
                    "monitoring.publish_interval_seconds must be a finite number > 0"
                )

    def _handle_reload_signal(self, signum, frame):
        """Signal handler for SIGHUP."""
        self.reload_config()

    def get(self, key: str, default=None) -> Any:
        """
        Get configuration value by dot-separated key path.

        Args:
            key: Dot-separated key path (e.g., 'policy.interval')
            default: Default value if key not found

        Returns:
            Configuration value or default if not found

        Examples:
            >>> config.get('policy.type')  # 'periodic'
            >>> config.get('missing.key', 'default')  # 'default'
        """
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def build_policy(self, event_sink: Optional[EventSink] = None) -> UploadDecisionPolicy:
        """
        Build the upload policy described by the 'policy' section.

        Args:
            event_sink: Sink shared by every policy in the tree

        Raises:
            ConfigValidationError: If a policy rejects its configuration
        """
        try:
            return build_policy(self.config["policy"], event_sink)
        except InvalidConfiguration as e:
            raise ConfigValidationError(f"Invalid policy configuration: {e}") from e


def build_policy(
    policy_config: Dict[str, Any], event_sink: Optional[EventSink] = None
) -> UploadDecisionPolicy:
    """
    Build a policy tree from a validated config mapping.

    Raises:
        InvalidConfiguration: If the mapping describes an invalid policy
    """
    policy_type = policy_config.get("type")

    if policy_type == "periodic":
        policy = PeriodicPolicy(
            arming=policy_config.get("arming", ArmingRule.FIRST_EVALUATE.value),
            event_sink=event_sink,
        )
        policy.configure(policy_config.get("interval"), policy_config.get("unit", "seconds"))
        return policy

    if policy_type == "record_count":
        return CountThresholdPolicy(policy_config.get("threshold"), event_sink=event_sink)

    if policy_type == "volume":
        return VolumeThresholdPolicy(policy_config.get("threshold_bytes"), event_sink=event_sink)

    if policy_type == "any_of":
        children = [build_policy(child, event_sink) for child in policy_config.get("policies", [])]
        return AnyOfPolicy(children, event_sink=event_sink)

    raise InvalidConfiguration(f"Unknown policy type: {policy_type}")
