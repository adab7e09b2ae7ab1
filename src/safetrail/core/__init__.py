"""
Core module for SafeTrail

Contains configuration management, logging, the error taxonomy and the
external collaborator interfaces (safetrail.core.interfaces).
"""

from .config import ConfigurationManager, get_config_manager

__all__ = [
    'ConfigurationManager',
    'get_config_manager'
]
