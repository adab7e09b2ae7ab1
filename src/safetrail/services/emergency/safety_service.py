"""
Personal Safety Service

Thin coordination layer the presentation layer talks to:
- Manual SOS and live-location sharing through the SOS dispatcher
- Automatic threat detection sessions with a configurable grace period
- Emergency calls to the first trusted contact
- Evidence recording toggles
It owns no business invariants; those live in the dispatcher, the detection
session and the recording registry.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from safetrail.core.config import ConfigurationManager
from safetrail.core.errors import (
    LocationPermissionError, LocationUnavailableError, NoContactsError,
    NoPendingCountdownError, SessionAlreadyArmedError, TransportError
)
from safetrail.core.interfaces import (
    AlertTransport, CallPlacer, CaptureDevice, ContactDirectory, LocationSource,
    ThreatSensor
)
from safetrail.core.logging import get_logger
from safetrail.models.safety import (
    CallType, Contact, DetectionState, LocationSample, RecordingKind,
    RecordingSession, SOSReport
)
from .detection_session import DetectionListener, DetectionSession
from .message_templates import summarize_report
from .recording_registry import RecordingRegistry
from .sos_dispatcher import SOSDispatcher


class FallbackLocationSource(LocationSource):
    """
    Substitutes a configured fallback sample when location permission is
    denied. Without a fallback the denial surfaces as LocationUnavailableError.
    """

    def __init__(self, source: LocationSource, fallback: Optional[Dict[str, float]] = None):
        self.logger = get_logger('emergency.service')
        self.source = source
        self.fallback = fallback

    async def get_current(self) -> LocationSample:
        try:
            return await self.source.get_current()
        except LocationPermissionError as e:
            if not self.fallback:
                raise LocationUnavailableError(f"Location unavailable: {e}") from e

            self.logger.warning(f"Location permission denied, using fallback location: {e}")
            return LocationSample(
                latitude=float(self.fallback['latitude']),
                longitude=float(self.fallback['longitude']),
                accuracy=float(self.fallback.get('accuracy') or 0.0),
                captured_at=datetime.utcnow()
            )


class SafetyService:
    """
    Coordinates the emergency orchestration components for one app instance
    """

    def __init__(self, location_source: LocationSource, contact_directory: ContactDirectory,
                 transport: AlertTransport, sensor: ThreatSensor, capture_device: CaptureDevice,
                 call_placer: Optional[CallPlacer] = None,
                 config: Optional[ConfigurationManager] = None):
        self.logger = get_logger('emergency.service')

        if config is None:
            config = ConfigurationManager()
            config.load_dict({})
        self.config = config

        self.location_source = FallbackLocationSource(location_source, config.get_fallback_location())
        self.contact_directory = contact_directory
        self.sensor = sensor
        self.call_placer = call_placer

        self.dispatcher = SOSDispatcher(contact_directory, transport,
                                        send_timeout=config.get_send_timeout())
        self.recordings = RecordingRegistry(capture_device)
        self.detection_session: Optional[DetectionSession] = None
        # Serializes enable/disable so at most one session is ever armed
        self._detection_lock = asyncio.Lock()

        self.stats = {
            'manual_sos': 0,
            'location_shares': 0,
            'calls': 0
        }

    async def send_sos(self, user_id: str, message_template: Optional[str] = None) -> SOSReport:
        """
        Send a manual SOS to every contact

        Args:
            user_id: The authenticated user
            message_template: Overrides the configured distress template

        Returns:
            The dispatch report (success may be False if every delivery failed)
        """
        template = message_template or self.config.get_message_template('distress')
        location = await self.location_source.get_current()

        report = await self.dispatcher.dispatch(user_id, location, template)
        self.stats['manual_sos'] += 1
        return report

    async def share_location(self, user_id: str) -> SOSReport:
        """Share the current location with every contact"""
        template = self.config.get_message_template('share_location')
        location = await self.location_source.get_current()

        report = await self.dispatcher.dispatch(user_id, location, template)
        self.stats['location_shares'] += 1
        return report

    async def place_emergency_call(self, user_id: str,
                                   call_type: CallType = CallType.VOICE) -> Contact:
        """
        Call the first trusted contact

        Returns:
            The contact that was called

        Raises:
            NoContactsError: If the user has no contacts
            TransportError: If no call placer is configured or the call failed
        """
        if self.call_placer is None:
            raise TransportError("Calling is not available on this device")

        contacts = list(await self.contact_directory.list_contacts(user_id))
        if not contacts:
            raise NoContactsError(user_id)

        contact = contacts[0]
        self.logger.info(f"Placing {call_type.value} call to {contact.name}")
        await self.call_placer.place_call(contact.phone, call_type)
        self.stats['calls'] += 1
        return contact

    @property
    def detection_state(self) -> DetectionState:
        if self.detection_session is None:
            return DetectionState.IDLE
        return self.detection_session.state

    async def enable_auto_detection(self, user_id: str,
                                    listener: Optional[DetectionListener] = None) -> DetectionSession:
        """
        Start listening for threats; a detection triggers an SOS after the
        configured grace period unless cancelled

        Raises:
            SessionAlreadyArmedError: If detection is already enabled
            SensorUnavailableError: If the sensor cannot be acquired
            SensorLostError: If the sensor disconnected while arming
        """
        async with self._detection_lock:
            if self.detection_session is not None and self.detection_session.is_armed:
                raise SessionAlreadyArmedError("Auto-detection is already enabled")

            session = DetectionSession(
                user_id=user_id,
                sensor=self.sensor,
                location_source=self.location_source,
                dispatcher=self.dispatcher,
                message_template=self.config.get_message_template('auto_distress'),
                grace_period=self.config.get_grace_period()
            )
            await session.arm(listener)

            self.detection_session = session
            return session

    async def disable_auto_detection(self) -> None:
        """Stop listening and discard the detection session"""
        async with self._detection_lock:
            session = self.detection_session
            self.detection_session = None
            if session is not None:
                await session.disarm()

    def cancel_auto_sos(self) -> None:
        """
        Cancel a pending automatic SOS

        Raises:
            NoPendingCountdownError: If nothing is pending
            AlreadyDispatchingError: If the SOS is already being sent
        """
        if self.detection_session is None:
            raise NoPendingCountdownError("Auto-detection is not enabled")
        self.detection_session.cancel()

    async def start_recording(self, kind: RecordingKind) -> RecordingSession:
        return await self.recordings.start(kind)

    async def stop_recording(self, kind: RecordingKind) -> float:
        return await self.recordings.stop(kind)

    async def toggle_recording(self, kind: RecordingKind) -> RecordingSession:
        return await self.recordings.toggle(kind)

    async def logout(self) -> None:
        """
        Tear down detection and recording state for the signed-in user.
        An automatic SOS already being sent is allowed to finish first.
        """
        session = self.detection_session
        await self.disable_auto_detection()
        if session is not None:
            await session.wait_for_dispatch()
        await self.recordings.stop_all()
        self.logger.info("Safety session closed")

    def summarize(self, report: SOSReport) -> str:
        """Human-readable dispatch summary"""
        return summarize_report(report, test_mode=self.config.is_test_mode())

    def get_service_status(self) -> Dict[str, Any]:
        """Get service status information"""
        return {
            'detection_state': self.detection_state.value,
            'detection': self.detection_session.get_status() if self.detection_session else None,
            'recordings': self.recordings.snapshot(),
            'grace_period': self.config.get_grace_period(),
            'stats': dict(self.stats)
        }
