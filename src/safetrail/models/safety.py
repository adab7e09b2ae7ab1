"""
Safety data models for SafeTrail

Defines the location, contact, dispatch and session structures shared by the
emergency orchestration services.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from safetrail.core.errors import InvalidContactError


class DetectionState(Enum):
    """Automatic threat-detection session state"""
    IDLE = "idle"
    ARMED = "armed"
    COUNTDOWN = "countdown"
    DISPATCHING = "dispatching"


class NotificationKind(Enum):
    """Notifications emitted by a detection session to its listener"""
    COUNTDOWN_STARTED = "countdown_started"
    COUNTDOWN_CANCELLED = "countdown_cancelled"
    DISPATCH_STARTED = "dispatch_started"
    DISPATCH_COMPLETED = "dispatch_completed"
    DISPATCH_FAILED = "dispatch_failed"
    SENSOR_LOST = "sensor_lost"


class RecordingKind(Enum):
    """Evidence capture stream kinds"""
    VIDEO = "video"
    AUDIO = "audio"


class RecordingState(Enum):
    """Evidence capture stream state"""
    STOPPED = "stopped"
    RECORDING = "recording"


class CallType(Enum):
    """Emergency call types"""
    VOICE = "voice"
    VIDEO = "video"


@dataclass(frozen=True)
class LocationSample:
    """A single location reading"""
    latitude: float
    longitude: float
    accuracy: float = 0.0
    captured_at: datetime = field(default_factory=datetime.utcnow)

    def is_valid(self) -> bool:
        """Check coordinate ranges"""
        try:
            return (-90.0 <= float(self.latitude) <= 90.0
                    and -180.0 <= float(self.longitude) <= 180.0
                    and float(self.accuracy) >= 0.0)
        except (TypeError, ValueError):
            return False

    def maps_url(self) -> str:
        """Get a shareable map link for this location"""
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'accuracy': self.accuracy,
            'captured_at': self.captured_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocationSample':
        """Create a location sample from a dictionary"""
        captured_at = data.get('captured_at')
        if isinstance(captured_at, str):
            captured_at = datetime.fromisoformat(captured_at.replace('Z', '+00:00'))

        return cls(
            latitude=float(data['latitude']),
            longitude=float(data['longitude']),
            accuracy=float(data.get('accuracy') or 0.0),
            captured_at=captured_at or datetime.utcnow()
        )


@dataclass(frozen=True)
class Contact:
    """A trusted emergency contact"""
    name: str
    phone: str
    owner_id: str = ""
    email: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'owner_id': self.owner_id
        }


def normalize_phone(phone: str) -> str:
    """Strip everything but digits from a phone number"""
    return re.sub(r'\D', '', phone or '')


def validate_contact(contact: Contact, emergency_numbers: Iterable[str]) -> Contact:
    """
    Validate a contact before it is stored

    Args:
        contact: The contact to validate
        emergency_numbers: Emergency-services numbers that may not be stored

    Returns:
        The contact, unchanged

    Raises:
        InvalidContactError: If the name or phone is missing, or the phone
            is an emergency-services number
    """
    if not contact.name or not contact.name.strip():
        raise InvalidContactError("Contact name is required")

    digits = normalize_phone(contact.phone)
    if not digits:
        raise InvalidContactError("Contact phone number is required")

    blocked = {normalize_phone(number) for number in emergency_numbers}
    if digits in blocked:
        raise InvalidContactError(
            f"{contact.phone} is an emergency-services number and cannot be a contact"
        )

    return contact


@dataclass(frozen=True)
class DispatchOutcome:
    """Delivery result for one contact"""
    contact: Contact
    delivered: bool
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contact': self.contact.to_dict(),
            'delivered': self.delivered,
            'failure_reason': self.failure_reason
        }


@dataclass
class SOSReport:
    """Aggregated result of one SOS fan-out"""
    success: bool
    outcomes: List[DispatchOutcome]
    location: LocationSample
    message: str
    dispatched_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def delivered_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.delivered)

    @property
    def failed_count(self) -> int:
        return len(self.outcomes) - self.delivered_count

    @property
    def delivered_contacts(self) -> List[Contact]:
        return [outcome.contact for outcome in self.outcomes if outcome.delivered]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'outcomes': [outcome.to_dict() for outcome in self.outcomes],
            'location': self.location.to_dict(),
            'message': self.message,
            'dispatched_at': self.dispatched_at.isoformat(),
            'delivered_count': self.delivered_count,
            'failed_count': self.failed_count
        }


@dataclass(frozen=True)
class ThreatEvent:
    """A threat detected by the sensor (loud sound, distress keyword)"""
    reason: str = "unknown"
    confidence: Optional[float] = None
    detected_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class DetectionNotification:
    """Notification delivered to a detection session listener"""
    kind: NotificationKind
    timestamp: datetime = field(default_factory=datetime.utcnow)
    grace_period: Optional[float] = None
    event: Optional[ThreatEvent] = None
    report: Optional[SOSReport] = None
    error: Optional[BaseException] = None


@dataclass
class RecordingSession:
    """Lifecycle of one capture stream kind"""
    kind: RecordingKind
    state: RecordingState = RecordingState.STOPPED
    started_at: Optional[datetime] = None
    last_duration: Optional[float] = None

    def is_recording(self) -> bool:
        return self.state == RecordingState.RECORDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'state': self.state.value,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'last_duration': self.last_duration
        }
