"""Upload decision policies for buffered log records."""

from upload_strategy.decision import Decision, InvalidConfiguration, StorageStatus
from upload_strategy.upload_policy import (
    AnyOfPolicy,
    ArmingRule,
    CountThresholdPolicy,
    PeriodicPolicy,
    UploadDecisionPolicy,
    VolumeThresholdPolicy,
)

__all__ = [
    "Decision",
    "InvalidConfiguration",
    "StorageStatus",
    "UploadDecisionPolicy",
    "PeriodicPolicy",
    "CountThresholdPolicy",
    "VolumeThresholdPolicy",
    "AnyOfPolicy",
    "ArmingRule",
]
