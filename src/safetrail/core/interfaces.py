"""
External collaborator interfaces for SafeTrail

The emergency core never talks to hardware, storage or carriers directly.
Location, contacts, message delivery, threat sensing, capture devices and
call placement are provided by implementations of these abstract classes.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

from safetrail.models.safety import (
    CallType, Contact, LocationSample, RecordingKind, ThreatEvent
)


class LocationSource(ABC):
    """Supplies the device's current coordinates"""

    @abstractmethod
    async def get_current(self) -> LocationSample:
        """
        Read the current location

        Raises:
            LocationPermissionError: If location access is denied
        """
        pass


class ContactDirectory(ABC):
    """Supplies the ordered trusted contacts of a user"""

    @abstractmethod
    async def list_contacts(self, user_id: str) -> Sequence[Contact]:
        """Get the user's contacts in display order (may be empty)"""
        pass

    async def add_contact(self, contact: Contact) -> Contact:
        """Store a contact; storage implementations override this"""
        raise NotImplementedError(f"{type(self).__name__} is read-only")

    async def delete_contact(self, user_id: str, contact_id: str) -> bool:
        """Remove a contact; storage implementations override this"""
        raise NotImplementedError(f"{type(self).__name__} is read-only")


class AlertTransport(ABC):
    """Delivers one alert message to one contact (SMS, push, ...)"""

    @abstractmethod
    async def send(self, contact: Contact, message: str) -> bool:
        """
        Attempt delivery

        Returns:
            True if the message was delivered, False if it was rejected

        Raises:
            TransportError: If the delivery channel failed
        """
        pass


ThreatCallback = Callable[[ThreatEvent], None]
SensorLostCallback = Callable[[Optional[BaseException]], None]


class ThreatSensor(ABC):
    """
    Emits threat-detected events while subscribed

    Callbacks may be invoked from any thread.
    """

    @abstractmethod
    async def subscribe(self, on_event: ThreatCallback,
                        on_lost: SensorLostCallback) -> Any:
        """
        Start listening

        Args:
            on_event: Called for every detected threat
            on_lost: Called once if the sensor disconnects

        Returns:
            Subscription handle passed back to unsubscribe()

        Raises:
            SensorUnavailableError: If the sensor cannot be acquired
        """
        pass

    @abstractmethod
    async def unsubscribe(self, handle: Any) -> None:
        """Stop listening"""
        pass


class CaptureDevice(ABC):
    """Raw video/audio capture hardware"""

    @abstractmethod
    async def start(self, kind: RecordingKind) -> None:
        """Start a capture stream; raises CaptureError on failure"""
        pass

    @abstractmethod
    async def stop(self, kind: RecordingKind) -> float:
        """Stop a capture stream and return its device-reported duration in seconds"""
        pass


class CallPlacer(ABC):
    """Places voice or video calls"""

    @abstractmethod
    async def place_call(self, phone: str, call_type: CallType) -> None:
        """Place a call; raises TransportError on failure"""
        pass
