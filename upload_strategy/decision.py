#!/usr/bin/env python3
"""
Decision types for the log upload strategy
Storage status snapshot, upload decision and configuration error
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class InvalidConfiguration(ValueError):
    """
    Raised when an upload policy is configured with an invalid value.

    Examples:
    - interval <= 0
    - interval that is not a number
    - unknown time unit
    - non-positive record count or volume threshold
    """

    pass


class Decision(Enum):
    """Result of a single policy evaluation."""

    NO_OP = "noop"
    UPLOAD = "upload"


@dataclass(frozen=True)
class StorageStatus:
    """
    Snapshot of the log buffer observed at check time.

    Owned by the storage collaborator. Policies only read it.

    Attributes:
        record_count (int): Number of buffered log records
        total_bytes (int): Total size of buffered records in bytes
        extra (dict): Any other externally tracked metric
    """

    record_count: int = 0
    total_bytes: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)
