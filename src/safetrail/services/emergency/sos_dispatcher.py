"""
SOS Dispatch

Fans one alert out to every trusted contact of a user and folds the
per-contact results into a single SOSReport:
- Contact snapshot is copied on read; later edits never touch a report
- Deliveries run concurrently and independently of each other
- Outcomes keep snapshot order regardless of completion order
- Partial failure is a successful report, not an error
"""

import asyncio
from datetime import datetime
from typing import List, Optional

from safetrail.core.errors import (
    InvalidLocationError, InvalidMessageError, LocationUnavailableError,
    MissingUserError, NoContactsError, TransportError
)
from safetrail.core.interfaces import AlertTransport, ContactDirectory
from safetrail.core.logging import get_logger, get_structured_logger
from safetrail.models.safety import Contact, DispatchOutcome, LocationSample, SOSReport
from .message_templates import render_message


class SOSDispatcher:
    """Executes the fan-out alert protocol"""

    def __init__(self, contact_directory: ContactDirectory, transport: AlertTransport,
                 send_timeout: Optional[float] = None):
        self.logger = get_logger('emergency.dispatcher')
        self.audit_logger = get_structured_logger('emergency.dispatch')
        self.contact_directory = contact_directory
        self.transport = transport
        self.send_timeout = send_timeout

    async def dispatch(self, user_id: str, location: Optional[LocationSample],
                       message_template: str) -> SOSReport:
        """
        Send an alert to every contact of a user

        Args:
            user_id: The authenticated user raising the alert
            location: Location to embed in the message
            message_template: Alert text, may contain location placeholders

        Returns:
            SOSReport with one outcome per contact, in contact order

        Raises:
            PreconditionError: If the user, location, template or contacts
                are missing; no delivery is attempted
        """
        self._check_preconditions(user_id, location, message_template)
        dispatched_at = datetime.utcnow()

        contacts: List[Contact] = list(await self.contact_directory.list_contacts(user_id))
        if not contacts:
            self.logger.warning(f"SOS for user {user_id} aborted: no contacts")
            raise NoContactsError(user_id)

        message = render_message(message_template, location)
        self.logger.critical(
            f"SOS ALERT from {user_id}: notifying {len(contacts)} contacts "
            f"at {location.latitude:.4f}, {location.longitude:.4f}"
        )

        outcomes = await asyncio.gather(
            *(self._deliver(contact, message) for contact in contacts)
        )

        report = SOSReport(
            success=any(outcome.delivered for outcome in outcomes),
            outcomes=list(outcomes),
            location=location,
            message=message,
            dispatched_at=dispatched_at
        )

        self.audit_logger.info(
            "sos_dispatched",
            user_id=user_id,
            success=report.success,
            delivered=report.delivered_count,
            failed=report.failed_count,
            latitude=location.latitude,
            longitude=location.longitude
        )
        return report

    def _check_preconditions(self, user_id: str, location: Optional[LocationSample],
                             message_template: str) -> None:
        if not user_id or not str(user_id).strip():
            raise MissingUserError("A user id is required to send an SOS")

        if location is None:
            raise LocationUnavailableError("Location is not available")

        if not isinstance(location, LocationSample) or not location.is_valid():
            raise InvalidLocationError(f"Invalid location: {location!r}")

        if not message_template or not message_template.strip():
            raise InvalidMessageError("Message template must not be empty")

    async def _deliver(self, contact: Contact, message: str) -> DispatchOutcome:
        """Deliver to one contact; never raises except on cancellation"""
        try:
            if self.send_timeout is not None:
                delivered = await asyncio.wait_for(
                    self.transport.send(contact, message), timeout=self.send_timeout
                )
            else:
                delivered = await self.transport.send(contact, message)
        except asyncio.TimeoutError:
            self.logger.warning(f"Alert to {contact.name} timed out after {self.send_timeout}s")
            return DispatchOutcome(contact=contact, delivered=False, failure_reason="timed out")
        except TransportError as e:
            self.logger.warning(f"Alert to {contact.name} failed: {e}")
            return DispatchOutcome(contact=contact, delivered=False, failure_reason=str(e) or "transport error")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Unexpected error sending alert to {contact.name}: {e}")
            return DispatchOutcome(contact=contact, delivered=False,
                                   failure_reason=f"{type(e).__name__}: {e}")

        if not delivered:
            self.logger.warning(f"Alert to {contact.name} was not delivered")
            return DispatchOutcome(contact=contact, delivered=False, failure_reason="not delivered")

        self.logger.debug(f"Alert delivered to {contact.name}")
        return DispatchOutcome(contact=contact, delivered=True)
