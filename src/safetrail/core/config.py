"""
Configuration Management System for SafeTrail

Handles loading configuration from environment variables, config files,
and provides validation and runtime updates.
"""

import os
import json
import yaml
import logging
from typing import Any, Dict, List, Optional, Callable
from pathlib import Path
from dataclasses import dataclass

from safetrail.core.errors import ConfigurationError


@dataclass
class ConfigSource:
    """Configuration source definition"""
    name: str
    priority: int
    loader: Callable
    path: Optional[str] = None


DEFAULT_EMERGENCY_NUMBERS = ["911", "112", "999", "100", "101", "102", "108", "000"]


class ConfigurationManager:
    """
    Manages system configuration with support for multiple sources,
    validation, and runtime updates.
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.config: Dict[str, Any] = {}
        self.watchers: Dict[str, List[Callable]] = {}
        self.sources: List[ConfigSource] = []
        self.logger = logging.getLogger(__name__)

        # Default configuration values
        self.defaults = {
            "app": {
                "name": "SafeTrail",
                "version": "1.0.0",
                "debug": False,
                "log_level": "INFO",
                "test_mode": False
            },
            "logging": {
                "level": "INFO",
                "file": "logs/safetrail.log",
                "max_size": "10MB",
                "backup_count": 5,
                "console": True
            },
            "emergency": {
                "auto_sos": {
                    "grace_period_seconds": 5
                },
                "dispatch": {
                    "send_timeout": None
                },
                "templates": {
                    "distress": "EMERGENCY! I need help immediately!",
                    "auto_distress": "EMERGENCY! Distress detected automatically. I may need help!",
                    "share_location": "I'm sharing my live location with you for safety: {maps_url}"
                },
                "emergency_numbers": list(DEFAULT_EMERGENCY_NUMBERS),
                "fallback_location": None
            }
        }

        self._setup_sources()

    def _setup_sources(self):
        """Set up configuration sources in priority order"""
        # Environment variables (highest priority)
        self.sources.append(ConfigSource(
            name="environment",
            priority=4,
            loader=self._load_from_env
        ))

        local_config_path = str(self.config_dir / "config.yaml")
        self.sources.append(ConfigSource(
            name="local_config",
            priority=3,
            loader=lambda: self._load_from_file(local_config_path),
            path=local_config_path
        ))

        default_config_path = str(self.config_dir / "default.yaml")
        self.sources.append(ConfigSource(
            name="default_config",
            priority=2,
            loader=lambda: self._load_from_file(default_config_path),
            path=default_config_path
        ))

        # Built-in defaults (lowest priority)
        self.sources.append(ConfigSource(
            name="defaults",
            priority=1,
            loader=lambda: self.defaults
        ))

    def load_config(self) -> None:
        """Load configuration from all sources"""
        self.logger.info("Loading configuration from all sources")

        merged_config = {}

        # Lowest priority first so later sources override
        for source in sorted(self.sources, key=lambda x: x.priority):
            try:
                source_config = source.loader()
                if source_config:
                    merged_config = self._deep_merge(merged_config, source_config)
                    self.logger.debug(f"Loaded configuration from {source.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load config from {source.name}: {e}")

        self.config = merged_config
        self._validate_config()
        self.logger.info("Configuration loaded successfully")

    def load_dict(self, overrides: Dict[str, Any]) -> None:
        """Load configuration from built-in defaults merged with a dictionary"""
        self.config = self._deep_merge(self.defaults, overrides or {})
        self._validate_config()

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config = {}

        env_mappings = {
            "SAFETRAIL_DEBUG": "app.debug",
            "SAFETRAIL_TEST_MODE": "app.test_mode",
            "SAFETRAIL_LOG_LEVEL": "app.log_level",
            "SAFETRAIL_GRACE_PERIOD": "emergency.auto_sos.grace_period_seconds",
            "SAFETRAIL_SEND_TIMEOUT": "emergency.dispatch.send_timeout",
            "SAFETRAIL_EMERGENCY_NUMBERS": "emergency.emergency_numbers"
        }

        for env_var, config_key in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            if config_key == "emergency.emergency_numbers":
                # JSON array or comma-separated list
                try:
                    value = [str(number) for number in json.loads(value)]
                except (json.JSONDecodeError, TypeError):
                    value = [number.strip() for number in value.split(',') if number.strip()]
            elif value.lower() in ('true', 'false'):
                value = value.lower() == 'true'
            elif value.isdigit():
                value = int(value)
            else:
                try:
                    value = float(value)
                except ValueError:
                    pass

            self._set_nested_value(config, config_key, value)

        return config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        path = Path(file_path)

        if not path.exists():
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    self.logger.warning(f"Unsupported config file format: {path}")
                    return {}
        except Exception as e:
            self.logger.error(f"Error loading config file {path}: {e}")
            return {}

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation"""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """Validate configuration values"""
        errors = []

        for section in ['app', 'emergency']:
            if section not in self.config:
                errors.append(f"Missing required configuration section: {section}")

        log_level = self.get('app.log_level', 'INFO')
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(log_level).upper() not in valid_levels:
            errors.append(f"Invalid log level: {log_level}")

        grace_period = self.get('emergency.auto_sos.grace_period_seconds')
        if (isinstance(grace_period, bool) or not isinstance(grace_period, (int, float))
                or grace_period <= 0):
            errors.append(f"Invalid grace period: {grace_period}")

        send_timeout = self.get('emergency.dispatch.send_timeout')
        if send_timeout is not None and (
                isinstance(send_timeout, bool) or not isinstance(send_timeout, (int, float))
                or send_timeout <= 0):
            errors.append(f"Invalid send timeout: {send_timeout}")

        templates = self.get('emergency.templates', {}) or {}
        for name in ['distress', 'auto_distress', 'share_location']:
            template = templates.get(name)
            if not isinstance(template, str) or not template.strip():
                errors.append(f"Missing message template: {name}")

        numbers = self.get('emergency.emergency_numbers', [])
        if not isinstance(numbers, list):
            errors.append(f"Invalid emergency number list: {numbers}")

        fallback = self.get('emergency.fallback_location')
        if fallback is not None:
            try:
                lat = float(fallback['latitude'])
                lon = float(fallback['longitude'])
                if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
                    errors.append(f"Fallback location out of range: {fallback}")
            except (KeyError, TypeError, ValueError):
                errors.append(f"Invalid fallback location: {fallback}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        current = self.config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        self._set_nested_value(self.config, key, value)

        if key in self.watchers:
            for callback in self.watchers[key]:
                try:
                    callback(key, value)
                except Exception as e:
                    self.logger.error(f"Error in config watcher for {key}: {e}")

    def watch(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Watch for configuration changes"""
        if key not in self.watchers:
            self.watchers[key] = []
        self.watchers[key].append(callback)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self.get(section, {})

    def is_test_mode(self) -> bool:
        """Check if alerts are sent in demo mode"""
        return bool(self.get('app.test_mode', False))

    def get_grace_period(self) -> float:
        """Get the auto-SOS grace period in seconds"""
        return float(self.get('emergency.auto_sos.grace_period_seconds', 5))

    def get_send_timeout(self) -> Optional[float]:
        """Get the per-contact delivery timeout in seconds (None = no timeout)"""
        timeout = self.get('emergency.dispatch.send_timeout')
        return float(timeout) if timeout is not None else None

    def get_message_template(self, name: str) -> str:
        """Get a named message template"""
        template = self.get(f'emergency.templates.{name}')
        if not template:
            raise ConfigurationError(f"Unknown message template: {name}")
        return template

    def get_emergency_numbers(self) -> List[str]:
        """Get the emergency-services numbers that may not be stored as contacts"""
        return [str(number) for number in self.get('emergency.emergency_numbers', [])]

    def get_fallback_location(self) -> Optional[Dict[str, float]]:
        """Get the fallback location used when location permission is denied"""
        return self.get('emergency.fallback_location')

    def export_config(self, file_path: str) -> None:
        """Export current configuration to file"""
        path = Path(file_path)

        try:
            with open(path, 'w') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    yaml.dump(self.config, f, default_flow_style=False, indent=2)
                elif path.suffix.lower() == '.json':
                    json.dump(self.config, f, indent=2)
                else:
                    raise ValueError(f"Unsupported file format: {path.suffix}")

            self.logger.info(f"Configuration exported to {path}")
        except Exception as e:
            self.logger.error(f"Failed to export configuration: {e}")
            raise ConfigurationError(f"Export failed: {e}")


# Global configuration manager instance
_config_manager: Optional[ConfigurationManager] = None


def get_config_manager(config_dir: str = "config") -> ConfigurationManager:
    """Get the global configuration manager, loading it on first use"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigurationManager(config_dir)
        _config_manager.load_config()
    return _config_manager
