"""
Unit tests for configuration management
"""

import json
import pytest
import yaml

from safetrail.core.config import ConfigurationManager
from safetrail.core.errors import ConfigurationError
from tests.base import BaseTestCase


class TestConfigurationManager(BaseTestCase):
    """Test layered configuration loading and validation"""

    def test_defaults(self, temp_dir):
        config = ConfigurationManager(config_dir=str(temp_dir))
        config.load_config()

        assert config.get_grace_period() == 5.0
        assert config.get_send_timeout() is None
        assert config.get_message_template('distress') == "EMERGENCY! I need help immediately!"
        assert "911" in config.get_emergency_numbers()
        assert config.get_fallback_location() is None
        assert config.is_test_mode() is False

    def test_yaml_file_overrides_defaults(self, temp_dir):
        (temp_dir / "default.yaml").write_text(yaml.dump({
            "emergency": {"auto_sos": {"grace_period_seconds": 10}}
        }))
        (temp_dir / "config.yaml").write_text(yaml.dump({
            "emergency": {
                "auto_sos": {"grace_period_seconds": 3},
                "fallback_location": {"latitude": 37.7749, "longitude": -122.4194}
            }
        }))

        config = ConfigurationManager(config_dir=str(temp_dir))
        config.load_config()

        assert config.get_grace_period() == 3.0
        assert config.get_fallback_location()['latitude'] == 37.7749
        # Untouched defaults survive the merge
        assert config.get_message_template('share_location').endswith("{maps_url}")

    def test_environment_overrides_files(self, temp_dir, monkeypatch):
        (temp_dir / "config.yaml").write_text(yaml.dump({
            "emergency": {"auto_sos": {"grace_period_seconds": 3}}
        }))
        monkeypatch.setenv("SAFETRAIL_GRACE_PERIOD", "2.5")
        monkeypatch.setenv("SAFETRAIL_SEND_TIMEOUT", "15")
        monkeypatch.setenv("SAFETRAIL_TEST_MODE", "true")
        monkeypatch.setenv("SAFETRAIL_EMERGENCY_NUMBERS", "911, 112")

        config = ConfigurationManager(config_dir=str(temp_dir))
        config.load_config()

        assert config.get_grace_period() == 2.5
        assert config.get_send_timeout() == 15.0
        assert config.is_test_mode() is True
        assert config.get_emergency_numbers() == ["911", "112"]

    def test_invalid_grace_period_rejected(self):
        config = ConfigurationManager()

        with pytest.raises(ConfigurationError, match="grace period"):
            config.load_dict({"emergency": {"auto_sos": {"grace_period_seconds": 0}}})

    def test_invalid_fallback_location_rejected(self):
        config = ConfigurationManager()

        with pytest.raises(ConfigurationError, match="Fallback location"):
            config.load_dict({"emergency": {"fallback_location": {"latitude": 95, "longitude": 0}}})

    def test_empty_template_rejected(self):
        config = ConfigurationManager()

        with pytest.raises(ConfigurationError, match="auto_distress"):
            config.load_dict({"emergency": {"templates": {"auto_distress": ""}}})

    def test_unknown_template(self):
        config = ConfigurationManager()
        config.load_dict({})

        with pytest.raises(ConfigurationError):
            config.get_message_template('missing')

    def test_set_notifies_watchers(self):
        config = ConfigurationManager()
        config.load_dict({})
        changes = []
        config.watch('emergency.auto_sos.grace_period_seconds', lambda k, v: changes.append((k, v)))

        config.set('emergency.auto_sos.grace_period_seconds', 8)

        assert config.get_grace_period() == 8.0
        assert changes == [('emergency.auto_sos.grace_period_seconds', 8)]

    def test_export_config(self, temp_dir):
        config = ConfigurationManager()
        config.load_dict({"app": {"test_mode": True}})

        config.export_config(str(temp_dir / "exported.json"))
        exported = json.loads((temp_dir / "exported.json").read_text())

        assert exported['app']['test_mode'] is True
        assert exported['emergency']['auto_sos']['grace_period_seconds'] == 5

    def test_export_unsupported_format(self, temp_dir):
        config = ConfigurationManager()
        config.load_dict({})

        with pytest.raises(ConfigurationError):
            config.export_config(str(temp_dir / "exported.txt"))
