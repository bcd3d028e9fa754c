# tests/conftest.py
"""
Common fixtures for all test types
"""

import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to Python path so 'upload_strategy' can be imported
# This allows tests to run without installing the package
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from upload_strategy.decision import StorageStatus  # noqa: E402


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def status():
    """Storage status with some buffered records"""
    return StorageStatus(record_count=42, total_bytes=4096)


class FakeClock:
    """Manually advanced time source"""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    """Fake clock starting at t=0"""
    return FakeClock()


class RecordingSink:
    """Event sink that keeps every event"""

    def __init__(self):
        self.events = []

    def emit(self, event, **fields):
        self.events.append((event, fields))


@pytest.fixture
def sink():
    """Recording event sink"""
    return RecordingSink()
