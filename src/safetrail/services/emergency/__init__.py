"""
Emergency Orchestration Module

Provides the personal-safety emergency capabilities:
- SOS fan-out to trusted contacts with partial-failure reporting
- Automatic threat detection with a cancellable grace period
- Independent video/audio evidence recording bookkeeping
"""

from .sos_dispatcher import SOSDispatcher
from .detection_session import DetectionSession
from .recording_registry import RecordingRegistry
from .contact_directory import InMemoryContactDirectory
from .safety_service import SafetyService, FallbackLocationSource

__all__ = [
    'SOSDispatcher',
    'DetectionSession',
    'RecordingRegistry',
    'InMemoryContactDirectory',
    'SafetyService',
    'FallbackLocationSource'
]
