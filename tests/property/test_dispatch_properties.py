"""
Property-Based Tests for SOS Dispatch

Tests universal properties of the fan-out protocol using Hypothesis.
"""

import asyncio
import pytest
from hypothesis import given, settings, strategies as st

from safetrail.core.errors import NoContactsError, TransportError
from safetrail.models.safety import Contact, LocationSample
from safetrail.services.emergency.message_templates import render_message
from safetrail.services.emergency.sos_dispatcher import SOSDispatcher
from tests.mocks.safety_mocks import MockAlertTransport, MockContactDirectory

USER = "user-123"


# Strategies for generating test data

@st.composite
def delivery_plan(draw):
    """Generate contacts with a result and a completion delay each"""
    count = draw(st.integers(min_value=1, max_value=12))
    results = draw(st.lists(
        st.sampled_from(['delivered', 'rejected', 'error']),
        min_size=count,
        max_size=count
    ))
    delays = draw(st.lists(
        st.integers(min_value=0, max_value=5),
        min_size=count,
        max_size=count
    ))
    contacts = [
        Contact(id=f"c{i}", name=f"Contact {i}", phone=f"+1555{i:07d}", owner_id=USER)
        for i in range(count)
    ]
    return contacts, results, delays


locations = st.builds(
    LocationSample,
    latitude=st.floats(min_value=-90, max_value=90, allow_nan=False),
    longitude=st.floats(min_value=-180, max_value=180, allow_nan=False),
    accuracy=st.floats(min_value=0, max_value=5000, allow_nan=False)
)


def run_dispatch(contacts, results, delays, location=None):
    transport = MockAlertTransport(
        results={
            contact.phone: {
                'delivered': True,
                'rejected': False,
                'error': TransportError("failed"),
            }[result]
            for contact, result in zip(contacts, results)
        },
        delays={contact.phone: delay / 1000 for contact, delay in zip(contacts, delays)}
    )
    dispatcher = SOSDispatcher(MockContactDirectory({USER: list(contacts)}), transport)
    location = location or LocationSample(latitude=1.0, longitude=2.0)
    return asyncio.run(dispatcher.dispatch(USER, location, "Help!")), transport


# Property Tests

@settings(max_examples=50, deadline=None)
@given(plan=delivery_plan())
def test_one_outcome_per_contact_in_snapshot_order(plan):
    """For N >= 1 contacts there are exactly N outcomes in contact order"""
    contacts, results, delays = plan

    report, _ = run_dispatch(contacts, results, delays)

    assert len(report.outcomes) == len(contacts)
    assert [outcome.contact for outcome in report.outcomes] == contacts
    assert [outcome.delivered for outcome in report.outcomes] == [r == 'delivered' for r in results]


@settings(max_examples=50, deadline=None)
@given(plan=delivery_plan())
def test_success_iff_any_delivered(plan):
    """Report success is true exactly when at least one delivery succeeded"""
    contacts, results, delays = plan

    report, _ = run_dispatch(contacts, results, delays)

    assert report.success == any(outcome.delivered for outcome in report.outcomes)
    assert report.success == ('delivered' in results)
    assert all(outcome.failure_reason for outcome in report.outcomes if not outcome.delivered)


@settings(max_examples=50, deadline=None)
@given(plan=delivery_plan())
def test_every_contact_attempted(plan):
    """Failures never abort delivery to the remaining contacts"""
    contacts, results, delays = plan

    _, transport = run_dispatch(contacts, results, delays)

    assert sorted(transport.completed) == sorted(contact.phone for contact in contacts)


@settings(max_examples=50, deadline=None)
@given(location=locations)
def test_message_always_carries_coordinates(location):
    """Rendered text contains the numeric latitude and longitude"""
    message = render_message("EMERGENCY! I need help immediately!", location)

    assert f"{location.latitude:.4f}" in message
    assert f"{location.longitude:.4f}" in message


def test_empty_snapshot_never_reports():
    """Zero contacts takes the precondition path, never a report"""
    transport = MockAlertTransport()
    dispatcher = SOSDispatcher(MockContactDirectory({USER: []}), transport)

    with pytest.raises(NoContactsError):
        asyncio.run(dispatcher.dispatch(USER, LocationSample(latitude=0.0, longitude=0.0), "Help!"))

    assert transport.sent == []
