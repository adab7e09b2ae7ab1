"""
Automatic Threat Detection Session

Bridges threat sensor events to SOS dispatch with a user-cancellable grace
period:

    IDLE -> ARMED -> COUNTDOWN -> DISPATCHING -> ARMED
                     COUNTDOWN -> ARMED (cancelled)

Every transition happens under one lock and is keyed on a per-countdown
token, so cancel() and timer expiry can never both take effect for the same
countdown. Sensor callbacks may come from any thread; they are marshalled
onto the event loop the session was armed on.
"""

import asyncio
import threading
from typing import Any, Callable, Dict, Optional, Set

from safetrail.core.errors import (
    AlreadyDispatchingError, LocationUnavailableError, LocationPermissionError,
    NoPendingCountdownError, SensorLostError, SensorUnavailableError,
    SessionAlreadyArmedError
)
from safetrail.core.interfaces import LocationSource, ThreatSensor
from safetrail.core.logging import get_logger
from safetrail.models.safety import (
    DetectionNotification, DetectionState, NotificationKind, ThreatEvent
)
from .sos_dispatcher import SOSDispatcher

DEFAULT_GRACE_PERIOD = 5.0

DetectionListener = Callable[[DetectionNotification], None]


class DetectionSession:
    """
    Armed/listening/countdown state machine for one user session
    """

    def __init__(self, user_id: str, sensor: ThreatSensor, location_source: LocationSource,
                 dispatcher: SOSDispatcher, message_template: str,
                 grace_period: float = DEFAULT_GRACE_PERIOD):
        if grace_period <= 0:
            raise ValueError(f"Grace period must be positive, got {grace_period}")

        self.logger = get_logger('emergency.detection')
        self.user_id = user_id
        self.sensor = sensor
        self.location_source = location_source
        self.dispatcher = dispatcher
        self.message_template = message_template
        self.grace_period = grace_period

        # State guard: every read-modify-write of the fields below holds it
        self._lock = threading.Lock()
        self._state = DetectionState.IDLE
        self._countdown_token: Optional[object] = None
        self._countdown_task: Optional[asyncio.Task] = None
        # Fired countdowns stay referenced until their dispatch finishes
        self._dispatch_tasks: Set[asyncio.Task] = set()
        self._subscription: Any = None
        # Bumped on arm/disarm/sensor loss; stale sensor callbacks are dropped
        self._generation = 0
        # Generation being armed, and a sensor loss reported while subscribing
        self._arming_generation: Optional[int] = None
        self._pending_loss: Optional[SensorLostError] = None

        # Serializes arm() and disarm() across their awaits
        self._lifecycle_lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._listener: Optional[DetectionListener] = None

        self.stats = {
            'triggers': 0,
            'ignored_triggers': 0,
            'cancelled': 0,
            'dispatches': 0,
            'failed_dispatches': 0
        }

    @property
    def state(self) -> DetectionState:
        with self._lock:
            return self._state

    @property
    def is_armed(self) -> bool:
        return self.state != DetectionState.IDLE

    async def arm(self, listener: Optional[DetectionListener] = None) -> None:
        """
        Subscribe to the threat sensor and start listening

        Args:
            listener: Receives DetectionNotification objects, e.g. to show a
                cancel affordance when a countdown starts

        Raises:
            SessionAlreadyArmedError: If the session is not idle
            SensorUnavailableError: If the sensor cannot be acquired; the
                session stays idle
            SensorLostError: If the sensor disconnected before subscribing
                finished; SENSOR_LOST is also sent and the session stays idle
        """
        async with self._lifecycle_lock:
            with self._lock:
                if self._state != DetectionState.IDLE:
                    raise SessionAlreadyArmedError(f"Detection already {self._state.value}")
                self._generation += 1
                generation = self._generation
                self._arming_generation = generation
                self._pending_loss = None

            self._loop = asyncio.get_running_loop()
            self._listener = listener

            try:
                handle = await self.sensor.subscribe(
                    lambda event: self._on_sensor_event(generation, event),
                    lambda error=None: self._on_sensor_lost(generation, error)
                )
            except SensorUnavailableError as e:
                self.logger.error(f"Threat sensor unavailable for {self.user_id}: {e}")
                raise
            except Exception as e:
                self.logger.error(f"Failed to subscribe to threat sensor: {e}")
                raise SensorUnavailableError(str(e)) from e
            finally:
                with self._lock:
                    self._arming_generation = None
                    lost = self._pending_loss
                    self._pending_loss = None
                    if lost is not None:
                        self._generation += 1

            if lost is not None:
                try:
                    await self.sensor.unsubscribe(handle)
                except Exception as e:
                    self.logger.warning(f"Error unsubscribing threat sensor: {e}")
                self.logger.error(f"Threat sensor lost for {self.user_id} while arming: {lost}")
                self._notify(DetectionNotification(kind=NotificationKind.SENSOR_LOST, error=lost))
                raise lost

            with self._lock:
                self._subscription = handle
                self._state = DetectionState.ARMED

            self.logger.info(f"Auto-detection armed for {self.user_id}")

    async def disarm(self) -> None:
        """
        Stop listening; cancels any pending countdown. Idempotent when idle.

        A dispatch that already started is not interrupted, but the session
        stays idle when it completes.
        """
        async with self._lifecycle_lock:
            with self._lock:
                if self._state == DetectionState.IDLE:
                    return
                previous = self._state
                handle = self._subscription
                task = self._countdown_task if previous == DetectionState.COUNTDOWN else None

                self._state = DetectionState.IDLE
                self._generation += 1
                self._subscription = None
                self._countdown_token = None
                self._countdown_task = None
                if task is not None:
                    self.stats['cancelled'] += 1

            if task is not None:
                task.cancel()
                self._notify(DetectionNotification(kind=NotificationKind.COUNTDOWN_CANCELLED))

            if handle is not None:
                try:
                    await self.sensor.unsubscribe(handle)
                except Exception as e:
                    self.logger.warning(f"Error unsubscribing threat sensor: {e}")

            self.logger.info(f"Auto-detection disarmed for {self.user_id} (was {previous.value})")

    def cancel(self) -> None:
        """
        Cancel the pending countdown; safe to call from any thread

        Raises:
            AlreadyDispatchingError: If the countdown already fired
            NoPendingCountdownError: If no countdown is pending
        """
        with self._lock:
            if self._state == DetectionState.DISPATCHING:
                raise AlreadyDispatchingError("SOS is already being sent")
            if self._state != DetectionState.COUNTDOWN:
                raise NoPendingCountdownError(f"No countdown to cancel ({self._state.value})")

            task = self._countdown_task
            self._state = DetectionState.ARMED
            self._countdown_token = None
            self._countdown_task = None
            self.stats['cancelled'] += 1

        if task is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(task.cancel)

        self.logger.info(f"Auto-SOS countdown cancelled by {self.user_id}")
        self._notify(DetectionNotification(kind=NotificationKind.COUNTDOWN_CANCELLED))

    def get_status(self) -> Dict[str, Any]:
        """Get session status"""
        with self._lock:
            state = self._state
            stats = dict(self.stats)
        return {
            'user_id': self.user_id,
            'state': state.value,
            'grace_period': self.grace_period,
            'stats': stats
        }

    # Sensor callbacks (any thread)

    def _on_sensor_event(self, generation: int, event: Optional[ThreatEvent] = None) -> None:
        self._marshal(self._handle_threat, generation, event or ThreatEvent())

    def _on_sensor_lost(self, generation: int, error: Optional[BaseException] = None) -> None:
        self._marshal(self._handle_sensor_lost, generation, error)

    def _marshal(self, callback, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self.logger.debug("Dropping sensor callback: no running event loop")
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError as e:
            self.logger.debug(f"Dropping sensor callback: {e}")

    # Event loop handlers

    def _handle_threat(self, generation: int, event: ThreatEvent) -> None:
        with self._lock:
            if generation != self._generation or self._state != DetectionState.ARMED:
                if generation == self._generation:
                    self.stats['ignored_triggers'] += 1
                self.logger.debug(f"Ignoring threat event in state {self._state.value}")
                return

            token = object()
            self._state = DetectionState.COUNTDOWN
            self._countdown_token = token
            self._countdown_task = self._loop.create_task(self._run_countdown(token))
            self.stats['triggers'] += 1

        self.logger.warning(
            f"Threat detected for {self.user_id} ({event.reason}); "
            f"auto-SOS in {self.grace_period:g}s unless cancelled"
        )
        self._notify(DetectionNotification(
            kind=NotificationKind.COUNTDOWN_STARTED,
            grace_period=self.grace_period,
            event=event
        ))

    def _handle_sensor_lost(self, generation: int, error: Optional[BaseException]) -> None:
        lost = error if isinstance(error, SensorLostError) else SensorLostError(
            f"Threat sensor disconnected{': ' + str(error) if error else ''}"
        )

        with self._lock:
            if generation != self._generation:
                return
            if self._arming_generation == generation:
                # arm() applies it once subscribe() returns
                self._pending_loss = lost
                return
            if self._state == DetectionState.IDLE:
                return
            previous = self._state
            task = self._countdown_task if previous == DetectionState.COUNTDOWN else None

            self._state = DetectionState.IDLE
            self._generation += 1
            self._subscription = None
            self._countdown_token = None
            self._countdown_task = None

        if task is not None:
            task.cancel()

        self.logger.error(f"Threat sensor lost for {self.user_id} while {previous.value}: {lost}")
        self._notify(DetectionNotification(kind=NotificationKind.SENSOR_LOST, error=lost))

    async def _run_countdown(self, token: object) -> None:
        await asyncio.sleep(self.grace_period)

        with self._lock:
            if self._countdown_token is not token or self._state != DetectionState.COUNTDOWN:
                return
            self._state = DetectionState.DISPATCHING
            self._countdown_task = None
            task = asyncio.current_task()
            self._dispatch_tasks.add(task)

        self.logger.critical(f"Auto-SOS countdown expired for {self.user_id}; dispatching")
        self._notify(DetectionNotification(kind=NotificationKind.DISPATCH_STARTED))

        try:
            try:
                location = await self.location_source.get_current()
            except LocationPermissionError as e:
                raise LocationUnavailableError(f"Location unavailable: {e}") from e

            report = await self.dispatcher.dispatch(self.user_id, location, self.message_template)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            with self._lock:
                self.stats['failed_dispatches'] += 1
            self.logger.error(f"Auto-SOS dispatch failed for {self.user_id}: {e}")
            self._notify(DetectionNotification(kind=NotificationKind.DISPATCH_FAILED, error=e))
        else:
            with self._lock:
                self.stats['dispatches'] += 1
            self._notify(DetectionNotification(kind=NotificationKind.DISPATCH_COMPLETED, report=report))
        finally:
            with self._lock:
                self._dispatch_tasks.discard(task)
                if self._countdown_token is token and self._state == DetectionState.DISPATCHING:
                    self._state = DetectionState.ARMED
                    self._countdown_token = None

    async def wait_for_dispatch(self) -> None:
        """Wait for any automatic SOS that is already being sent to finish"""
        with self._lock:
            tasks = list(self._dispatch_tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _notify(self, notification: DetectionNotification) -> None:
        if not self._listener:
            return
        try:
            self._listener(notification)
        except Exception as e:
            self.logger.error(f"Error in detection listener for {notification.kind.value}: {e}")
