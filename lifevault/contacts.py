"""
lifevault/contacts.py
Trusted contacts: CRUD, favorites, search/filter, and the call/email/share
actions. Every mutation and action writes an activity row (category 'contact').
"""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from lifevault.activity.logger import ActivityLogger
from lifevault.backend.base import BackendAdapter
from lifevault.errors import ContactError, NotFoundError, ValidationError
from lifevault.models.record import RELATIONSHIPS, Contact
from lifevault.timeutil import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

CONTACT_TABLE  = 'contacts'
RECENT_DAYS    = 7
CONTACT_FILTERS = ('all', 'favorites', 'recent') + RELATIONSHIPS
CONTACT_ACTIONS = ('call', 'email', 'share')

_ACTION_LOG_TYPES = {'call': 'called', 'email': 'emailed', 'share': 'shared'}


# ── FORM ─────────────────────────────────────────────────────

@dataclass
class ContactForm:
    name:                 str  = ''
    email:                str  = ''
    phone:                str  = ''
    relationship:         str  = 'family'
    notes:                str  = ''
    is_favorite:          bool = False
    is_emergency_contact: bool = False

    @classmethod
    def from_contact(cls, contact: Contact) -> "ContactForm":
        return cls(
            name                 = contact.name,
            email                = contact.email or '',
            phone                = contact.phone or '',
            relationship         = contact.relationship,
            notes                = contact.notes or '',
            is_favorite          = contact.is_favorite,
            is_emergency_contact = contact.is_emergency_contact,
        )

    def reset(self) -> None:
        fresh = ContactForm()
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(fresh, name))

    def validate(self) -> None:
        if not self.name.strip():
            raise ValidationError("Name is required.")
        if self.relationship not in RELATIONSHIPS:
            raise ValidationError(
                f"Unknown relationship '{self.relationship}'. Use one of: {', '.join(RELATIONSHIPS)}"
            )

    def to_values(self) -> Dict[str, object]:
        """Column values; empty optional strings are stored as NULL."""
        return {
            'name':                 self.name.strip(),
            'email':                self.email.strip() or None,
            'phone':                self.phone.strip() or None,
            'relationship':         self.relationship,
            'notes':                self.notes.strip() or None,
            'is_favorite':          bool(self.is_favorite),
            'is_emergency_contact': bool(self.is_emergency_contact),
        }


# ── FILTERING ────────────────────────────────────────────────

def _matches_query(contact: Contact, q: str) -> bool:
    if not q:
        return True
    lowered = q.lower()
    if lowered in contact.name.lower():
        return True
    if contact.email and lowered in contact.email.lower():
        return True
    return bool(contact.phone) and q in contact.phone


def filter_contacts(
    contacts:  Iterable[Contact],
    query:     str                = '',
    filter_by: str                = 'all',
    now:       Optional[datetime] = None,
) -> List[Contact]:
    """
    Search AND filter. Search: name/email case-insensitive, phone verbatim.
    Filter: all / favorites / recent (created in the last 7 days) /
    otherwise relationship equality.
    """
    q = (query or '').strip()
    now = parse_timestamp(now) if now is not None else utc_now()
    cutoff = now - timedelta(days=RECENT_DAYS)

    result = []
    for c in contacts:
        if not _matches_query(c, q):
            continue
        if filter_by == 'favorites':
            if not c.is_favorite:
                continue
        elif filter_by == 'recent':
            created = parse_timestamp(c.created_at)
            if created is None or created <= cutoff:
                continue
        elif filter_by and filter_by != 'all':
            if c.relationship != filter_by:
                continue
        result.append(c)
    return result


# ── ACTIONS ──────────────────────────────────────────────────

def contact_action(action: str, contact: Contact) -> str:
    """tel: / mailto: URI, or the share text."""
    if action == 'call':
        if not contact.phone:
            raise ContactError(f"{contact.name} has no phone number")
        return f"tel:{contact.phone}"
    if action == 'email':
        if not contact.email:
            raise ContactError(f"{contact.name} has no email address")
        return f"mailto:{contact.email}"
    if action == 'share':
        parts = [contact.name, contact.phone or '', contact.email or '']
        return "Contact: " + ' - '.join(parts)
    raise ValidationError(f"Unknown action '{action}'. Use one of: {', '.join(CONTACT_ACTIONS)}")


def share_uri(contact: Contact) -> str:
    """mailto: fallback used when no share sheet is available."""
    body = urllib.parse.quote(contact_action('share', contact))
    subject = urllib.parse.quote(f"Contact: {contact.name}")
    return f"mailto:?subject={subject}&body={body}"


# ── SERVICE ──────────────────────────────────────────────────

class ContactService:

    def __init__(self, backend: BackendAdapter, activity: Optional[ActivityLogger] = None):
        self.backend  = backend
        self.activity = activity or ActivityLogger(backend)

    def list_contacts(self, user_id: str) -> List[Contact]:
        rows = self.backend.select(
            CONTACT_TABLE, {'user_id': user_id}, order_by='created_at', descending=True,
        )
        return [Contact.from_row(r) for r in rows]

    def get_contact(self, user_id: str, contact_id: str) -> Contact:
        rows = self.backend.select(CONTACT_TABLE, {'id': contact_id, 'user_id': user_id}, limit=1)
        if not rows:
            raise NotFoundError(f"Contact not found: {contact_id}")
        return Contact.from_row(rows[0])

    def create_contact(self, user_id: str, form: ContactForm) -> Contact:
        form.validate()
        row = self.backend.insert(CONTACT_TABLE, {'user_id': user_id, **form.to_values()})
        contact = Contact.from_row(row)
        self.activity.log_contact(user_id, 'added', contact.name, contact.id)
        logger.info("Contact added")
        return contact

    def update_contact(self, user_id: str, contact_id: str, form: ContactForm) -> Contact:
        form.validate()
        rows = self.backend.update(
            CONTACT_TABLE, form.to_values(), {'id': contact_id, 'user_id': user_id},
        )
        if not rows:
            raise NotFoundError(f"Contact not found: {contact_id}")
        contact = Contact.from_row(rows[0])
        self.activity.log_contact(user_id, 'updated', contact.name, contact.id)
        return contact

    def delete_contact(self, user_id: str, contact_id: str) -> Contact:
        contact = self.get_contact(user_id, contact_id)
        count = self.backend.delete(CONTACT_TABLE, {'id': contact_id, 'user_id': user_id})
        if count == 0:
            raise NotFoundError(f"Contact not found: {contact_id}")
        self.activity.log_contact(user_id, 'deleted', contact.name, contact.id)
        return contact

    def toggle_favorite(self, user_id: str, contact_id: str) -> Contact:
        contact = self.get_contact(user_id, contact_id)
        rows = self.backend.update(
            CONTACT_TABLE,
            {'is_favorite': not contact.is_favorite},
            {'id': contact_id, 'user_id': user_id},
        )
        if not rows:
            raise NotFoundError(f"Contact not found: {contact_id}")
        updated = Contact.from_row(rows[0])
        action = 'favorited' if updated.is_favorite else 'unfavorited'
        self.activity.log_contact(user_id, action, updated.name, updated.id)
        return updated

    def perform_action(self, user_id: str, contact_id: str, action: str) -> str:
        contact = self.get_contact(user_id, contact_id)
        result = contact_action(action, contact)
        self.activity.log_contact(user_id, _ACTION_LOG_TYPES[action], contact.name, contact.id)
        return result
