"""
Global pytest configuration and fixtures for SafeTrail testing.
"""
import sys
from pathlib import Path

import pytest

# Make the src/ package and the tests package importable without installation
ROOT_DIR = Path(__file__).parent.parent
for path in (ROOT_DIR / "src", ROOT_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from safetrail.core.config import ConfigurationManager
from safetrail.models.safety import Contact, LocationSample
from tests.mocks.safety_mocks import (
    MockAlertTransport, MockCallPlacer, MockCaptureDevice, MockContactDirectory,
    MockLocationSource, MockThreatSensor
)

TEST_USER = "user-123"


@pytest.fixture
def temp_dir(tmp_path):
    """Create a temporary directory for test files."""
    return tmp_path


@pytest.fixture
def test_config():
    """Provide test configuration with a short grace period."""
    config = ConfigurationManager(config_dir="nonexistent-config-dir")
    config.load_dict({
        "app": {"test_mode": True},
        "logging": {"level": "DEBUG", "file": None},
        "emergency": {
            "auto_sos": {"grace_period_seconds": 0.05}
        }
    })
    return config


@pytest.fixture
def sample_contacts():
    """Provide sample trusted contacts, in display order."""
    return [
        Contact(id="c1", name="Alice", phone="+15550000001", owner_id=TEST_USER),
        Contact(id="c2", name="Bob", phone="+15550000002", owner_id=TEST_USER,
                email="bob@example.com"),
        Contact(id="c3", name="Carol", phone="+15550000003", owner_id=TEST_USER),
    ]


@pytest.fixture
def sample_location():
    """Provide a location sample."""
    return LocationSample(latitude=40.7128, longitude=-74.0060, accuracy=12.0)


@pytest.fixture
def contact_directory(sample_contacts):
    return MockContactDirectory({TEST_USER: list(sample_contacts)})


@pytest.fixture
def transport():
    return MockAlertTransport()


@pytest.fixture
def location_source(sample_location):
    return MockLocationSource([sample_location])


@pytest.fixture
def threat_sensor():
    return MockThreatSensor()


@pytest.fixture
def capture_device():
    return MockCaptureDevice()


@pytest.fixture
def call_placer():
    return MockCallPlacer()
