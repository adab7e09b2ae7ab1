"""
Evidence Recording Registry

Tracks the video and audio capture streams. Each kind is an independent
STOPPED/RECORDING state machine with its own lock; a start/stop of one kind
never waits on the other.
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, Optional

from safetrail.core.errors import AlreadyRecordingError, CaptureError, NotRecordingError
from safetrail.core.interfaces import CaptureDevice
from safetrail.core.logging import get_logger
from safetrail.models.safety import RecordingKind, RecordingSession, RecordingState


class RecordingRegistry:
    """Holds at most one capture session per recording kind"""

    def __init__(self, capture_device: CaptureDevice,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.logger = get_logger('emergency.recording')
        self.capture_device = capture_device
        self.clock = clock
        self._sessions: Dict[RecordingKind, RecordingSession] = {
            kind: RecordingSession(kind=kind) for kind in RecordingKind
        }
        self._locks: Dict[RecordingKind, asyncio.Lock] = {
            kind: asyncio.Lock() for kind in RecordingKind
        }

    def session(self, kind: RecordingKind) -> RecordingSession:
        """Get a copy of the session for a kind"""
        current = self._sessions[kind]
        return RecordingSession(
            kind=current.kind,
            state=current.state,
            started_at=current.started_at,
            last_duration=current.last_duration
        )

    def is_recording(self, kind: RecordingKind) -> bool:
        return self._sessions[kind].is_recording()

    async def start(self, kind: RecordingKind) -> RecordingSession:
        """
        Start capturing a stream

        Raises:
            AlreadyRecordingError: If this kind is already recording
            CaptureError: If the device failed to start; the kind stays stopped
        """
        if self._sessions[kind].is_recording():
            raise AlreadyRecordingError(kind)

        async with self._locks[kind]:
            session = self._sessions[kind]
            # Re-check: another start may have completed while we waited
            if session.is_recording():
                raise AlreadyRecordingError(kind)

            try:
                await self.capture_device.start(kind)
            except CaptureError:
                self.logger.error(f"Capture device failed to start {kind.value} recording")
                raise
            except Exception as e:
                self.logger.error(f"Capture device failed to start {kind.value} recording: {e}")
                raise CaptureError(f"Failed to start {kind.value} recording: {e}") from e

            session.state = RecordingState.RECORDING
            session.started_at = self.clock()
            self.logger.info(f"Started {kind.value} recording")
            return self.session(kind)

    async def stop(self, kind: RecordingKind) -> float:
        """
        Stop capturing a stream

        Returns:
            Recorded duration in seconds

        Raises:
            NotRecordingError: If this kind is not recording
            CaptureError: If the device failed to stop; the kind stays recording
                so the stop can be retried
        """
        if not self._sessions[kind].is_recording():
            raise NotRecordingError(kind)

        async with self._locks[kind]:
            session = self._sessions[kind]
            if not session.is_recording():
                raise NotRecordingError(kind)

            try:
                device_duration = await self.capture_device.stop(kind)
            except CaptureError:
                self.logger.error(f"Capture device failed to stop {kind.value} recording")
                raise
            except Exception as e:
                self.logger.error(f"Capture device failed to stop {kind.value} recording: {e}")
                raise CaptureError(f"Failed to stop {kind.value} recording: {e}") from e

            duration = max((self.clock() - session.started_at).total_seconds(), 0.0)
            if device_duration is not None and abs(device_duration - duration) > 1.0:
                self.logger.debug(
                    f"{kind.value} device reported {device_duration:.1f}s, registry measured {duration:.1f}s"
                )

            session.state = RecordingState.STOPPED
            session.started_at = None
            session.last_duration = duration
            self.logger.info(f"Stopped {kind.value} recording after {duration:.1f}s")
            return duration

    async def toggle(self, kind: RecordingKind) -> RecordingSession:
        """Start the kind if stopped, stop it if recording"""
        if self.is_recording(kind):
            await self.stop(kind)
        else:
            await self.start(kind)
        return self.session(kind)

    async def stop_all(self) -> Dict[RecordingKind, float]:
        """
        Stop every active stream

        Each kind is attempted even if another fails; the first device
        failure is raised after all attempts.
        """
        durations: Dict[RecordingKind, float] = {}
        first_error: Optional[Exception] = None

        for kind in RecordingKind:
            if not self.is_recording(kind):
                continue
            try:
                durations[kind] = await self.stop(kind)
            except NotRecordingError:
                continue
            except CaptureError as e:
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error
        return durations

    def snapshot(self) -> Dict[str, Dict]:
        """Get all sessions as dictionaries"""
        return {kind.value: session.to_dict() for kind, session in self._sessions.items()}
