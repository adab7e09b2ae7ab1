"""
In-memory trusted contact storage

Implements ContactDirectory for development and tests. Contacts are
validated at this boundary (emergency-services numbers are rejected) and
every read returns a point-in-time copy.
"""

import asyncio
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from safetrail.core.config import DEFAULT_EMERGENCY_NUMBERS
from safetrail.core.interfaces import ContactDirectory
from safetrail.core.logging import get_logger
from safetrail.models.safety import Contact, validate_contact


class InMemoryContactDirectory(ContactDirectory):
    """Contact storage keyed by owner id, preserving insertion order"""

    def __init__(self, emergency_numbers: Optional[Iterable[str]] = None):
        self.logger = get_logger('emergency.contacts')
        self.emergency_numbers = list(
            emergency_numbers if emergency_numbers is not None else DEFAULT_EMERGENCY_NUMBERS
        )
        self._contacts: Dict[str, List[Contact]] = {}
        self._lock = asyncio.Lock()

    async def list_contacts(self, user_id: str) -> List[Contact]:
        async with self._lock:
            return list(self._contacts.get(user_id, []))

    async def add_contact(self, contact: Contact) -> Contact:
        """
        Validate and store a contact

        Raises:
            InvalidContactError: If validation fails
        """
        validate_contact(contact, self.emergency_numbers)
        stored = replace(
            contact,
            name=contact.name.strip(),
            phone=contact.phone.strip(),
            id=contact.id or str(uuid.uuid4())
        )

        async with self._lock:
            self._contacts.setdefault(stored.owner_id, []).append(stored)

        self.logger.info(f"Added contact {stored.name} for {stored.owner_id}")
        return stored

    async def delete_contact(self, user_id: str, contact_id: str) -> bool:
        async with self._lock:
            contacts = self._contacts.get(user_id, [])
            remaining = [c for c in contacts if c.id != contact_id]
            if len(remaining) == len(contacts):
                return False
            self._contacts[user_id] = remaining

        self.logger.info(f"Deleted contact {contact_id} for {user_id}")
        return True
