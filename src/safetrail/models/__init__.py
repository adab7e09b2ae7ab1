"""
Data models for SafeTrail

Contains the data classes shared by the emergency orchestration services.
"""

from .safety import (
    LocationSample, Contact, DispatchOutcome, SOSReport,
    DetectionState, NotificationKind, DetectionNotification, ThreatEvent,
    RecordingKind, RecordingState, RecordingSession, CallType,
    validate_contact, normalize_phone
)

__all__ = [
    'LocationSample', 'Contact', 'DispatchOutcome', 'SOSReport',
    'DetectionState', 'NotificationKind', 'DetectionNotification', 'ThreatEvent',
    'RecordingKind', 'RecordingState', 'RecordingSession', 'CallType',
    'validate_contact', 'normalize_phone'
]
