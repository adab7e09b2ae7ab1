"""
Property-Based Tests for the Detection Session

Tests that cancellation and countdown expiry are mutually exclusive and that
repeated triggers never start a second countdown or dispatch.
"""

import asyncio
from hypothesis import given, settings, strategies as st

from safetrail.core.errors import AlreadyDispatchingError, NoPendingCountdownError
from safetrail.models.safety import Contact, DetectionState, LocationSample, NotificationKind
from safetrail.services.emergency.detection_session import DetectionSession
from safetrail.services.emergency.sos_dispatcher import SOSDispatcher
from tests.base import NotificationRecorder
from tests.mocks.safety_mocks import (
    MockAlertTransport, MockContactDirectory, MockLocationSource, MockThreatSensor
)

USER = "user-123"
GRACE = 0.02


def build_session(transport_delay: float = 0.0):
    contact = Contact(id="c1", name="Alice", phone="+15550000001", owner_id=USER)
    transport = MockAlertTransport(delays={contact.phone: transport_delay})
    dispatcher = SOSDispatcher(MockContactDirectory({USER: [contact]}), transport)
    sensor = MockThreatSensor()
    session = DetectionSession(
        user_id=USER,
        sensor=sensor,
        location_source=MockLocationSource([LocationSample(latitude=1.0, longitude=1.0)]),
        dispatcher=dispatcher,
        message_template="Distress detected!",
        grace_period=GRACE
    )
    return session, sensor, transport


async def settle(session: DetectionSession, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while session.state not in (DetectionState.ARMED, DetectionState.IDLE) and loop.time() < deadline:
        await asyncio.sleep(0.005)


@settings(max_examples=30, deadline=None)
@given(cancel_after_ms=st.integers(min_value=0, max_value=40))
def test_cancel_and_fire_are_mutually_exclusive(cancel_after_ms):
    """For any cancel timing, exactly one of cancel or dispatch takes effect"""

    async def scenario():
        session, sensor, transport = build_session(transport_delay=0.01)
        recorder = NotificationRecorder()
        await session.arm(recorder)
        sensor.emit()
        await asyncio.sleep(0)

        await asyncio.sleep(cancel_after_ms / 1000)
        try:
            session.cancel()
            cancelled = True
        except (AlreadyDispatchingError, NoPendingCountdownError):
            cancelled = False

        await asyncio.sleep(GRACE * 2)
        await settle(session)
        await session.disarm()
        return cancelled, recorder, transport

    cancelled, recorder, transport = asyncio.run(scenario())

    dispatched = NotificationKind.DISPATCH_STARTED in recorder.kinds
    assert cancelled != dispatched
    if cancelled:
        assert transport.sent == []
        assert recorder.kinds.count(NotificationKind.COUNTDOWN_CANCELLED) == 1
    else:
        assert len(transport.sent) == 1
        assert NotificationKind.COUNTDOWN_CANCELLED not in recorder.kinds


@settings(max_examples=30, deadline=None)
@given(triggers=st.integers(min_value=1, max_value=10))
def test_repeated_triggers_start_one_countdown(triggers):
    """Any burst of triggers yields one countdown and one dispatch"""

    async def scenario():
        session, sensor, transport = build_session()
        recorder = NotificationRecorder()
        await session.arm(recorder)
        for _ in range(triggers):
            sensor.emit()
        await asyncio.sleep(GRACE * 3)
        await settle(session)
        state = session.state
        await session.disarm()
        return state, recorder, transport

    state, recorder, transport = asyncio.run(scenario())

    assert state == DetectionState.ARMED
    assert recorder.kinds.count(NotificationKind.COUNTDOWN_STARTED) == 1
    assert recorder.kinds.count(NotificationKind.DISPATCH_STARTED) == 1
    assert len(transport.sent) == 1
