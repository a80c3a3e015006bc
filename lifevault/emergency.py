"""
lifevault/emergency.py
Emergency tab: the contact / medical / insurance summary, its edit form,
and the call / message / print / QR actions.

The profile is held per user in memory only. It starts from a sample
profile and is lost when the process restarts.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import urllib.parse
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from lifevault.activity.logger import ActivityLogger
from lifevault.errors import ContactError, ValidationError
from lifevault.models.record import EmergencyContact, InsuranceInfo, MedicalInfo

logger = logging.getLogger(__name__)

EDIT_MODES        = ('contact', 'medical', 'insurance')
ARRAY_FIELDS      = ('allergies', 'conditions', 'medications')
EMERGENCY_ACTIONS = ('call', 'message', 'print', 'qr')
EMERGENCY_MESSAGE = (
    "Emergency: This is an automated message from LifeVault. "
    "Please contact me immediately."
)

_RECORD_TYPES = {
    'contact':   EmergencyContact,
    'medical':   MedicalInfo,
    'insurance': InsuranceInfo,
}


# ── PROFILE ──────────────────────────────────────────────────

def _sample_contact() -> EmergencyContact:
    return EmergencyContact(
        name         = 'Dr. Sarah Johnson',
        relationship = 'Primary Physician',
        phone        = '+1 (555) 123-4567',
        email        = 'sarah.johnson@hospital.com',
    )


def _sample_medical() -> MedicalInfo:
    return MedicalInfo(
        blood_group = 'A+',
        allergies   = ['Penicillin', 'Shellfish'],
        conditions  = ['Type 2 Diabetes', 'Hypertension'],
        medications = ['Metformin', 'Lisinopril'],
    )


def _sample_insurance() -> InsuranceInfo:
    return InsuranceInfo(
        provider      = 'HealthCare Plus',
        policy_number = 'HP-2024-789456',
        membership_id = 'HC789456123',
    )


@dataclass
class EmergencyProfile:
    contact:   EmergencyContact = field(default_factory=_sample_contact)
    medical:   MedicalInfo      = field(default_factory=_sample_medical)
    insurance: InsuranceInfo    = field(default_factory=_sample_insurance)

    def record(self, mode: str):
        _check_mode(mode)
        return getattr(self, mode)

    def replace(self, mode: str, record) -> None:
        _check_mode(mode)
        if not isinstance(record, _RECORD_TYPES[mode]):
            raise ValidationError(f"Expected {_RECORD_TYPES[mode].__name__} for mode '{mode}'")
        setattr(self, mode, record)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_mode(mode: str) -> None:
    if mode not in EDIT_MODES:
        raise ValidationError(f"Unknown section '{mode}'. Use one of: {', '.join(EDIT_MODES)}")


# ── EDIT FORM ────────────────────────────────────────────────

class EmergencyEditForm:
    """
    Working copy of one profile section. Edits touch the copy only;
    save() hands back the edited record for the caller to store.
    """

    def __init__(self, mode: str, data):
        _check_mode(mode)
        self.mode = mode
        if isinstance(data, dict):
            data = _RECORD_TYPES[mode].from_row(data)
        self.data = copy.deepcopy(data)

    def set_field(self, name: str, value: Any) -> None:
        if name not in self.data.__dataclass_fields__:
            raise ValidationError(f"Unknown field '{name}' for {self.mode}")
        if name in ARRAY_FIELDS:
            if not isinstance(value, list):
                raise ValidationError(f"{name} must be a list")
            value = [str(v).strip() for v in value if str(v).strip()]
        elif value is None:
            value = ''
        else:
            value = str(value)
        setattr(self.data, name, value)

    def _array(self, name: str) -> list:
        if self.mode != 'medical' or name not in ARRAY_FIELDS:
            raise ValidationError(f"'{name}' is not a list field of {self.mode}")
        return getattr(self.data, name)

    def array_add(self, name: str, value: str) -> None:
        """Append the trimmed value. Blank values are ignored; duplicates are kept."""
        items = self._array(name)
        value = (value or '').strip()
        if value:
            items.append(value)

    def array_remove(self, name: str, index: int) -> None:
        items = self._array(name)
        if 0 <= index < len(items):
            del items[index]

    def save(self):
        return copy.deepcopy(self.data)


# ── STORE ────────────────────────────────────────────────────

class EmergencyStore:
    """Per-user profiles. Thread-safe; FastAPI runs sync endpoints in a pool."""

    def __init__(self):
        self._profiles: Dict[str, EmergencyProfile] = {}
        self._lock = threading.Lock()

    def _profile(self, user_id: str) -> EmergencyProfile:
        # caller holds self._lock
        if user_id not in self._profiles:
            self._profiles[user_id] = EmergencyProfile()
        return self._profiles[user_id]

    def get(self, user_id: str) -> EmergencyProfile:
        with self._lock:
            return self._profile(user_id)

    def update(self, user_id: str, mode: str, data: Dict[str, Any]) -> EmergencyProfile:
        with self._lock:
            profile = self._profile(user_id)
            form = EmergencyEditForm(mode, profile.record(mode))
            for name, value in data.items():
                form.set_field(name, value)
            profile.replace(mode, form.save())
        logger.info(f"Emergency {mode} information updated")
        return profile

    def reset(self, user_id: str) -> None:
        with self._lock:
            self._profiles.pop(user_id, None)


# ── ACTIONS ──────────────────────────────────────────────────

def call_uri(profile: EmergencyProfile) -> str:
    if not profile.contact.phone:
        raise ContactError("No emergency contact phone number")
    return f"tel:{profile.contact.phone}"


def sms_uri(profile: EmergencyProfile) -> str:
    if not profile.contact.phone:
        raise ContactError("No emergency contact phone number")
    return f"sms:{profile.contact.phone}?body={urllib.parse.quote(EMERGENCY_MESSAGE)}"


def emergency_card(profile: EmergencyProfile) -> str:
    """Plain-text card for printing."""
    c, m, i = profile.contact, profile.medical, profile.insurance
    lines = [
        'EMERGENCY INFORMATION',
        '',
        'Emergency Contact',
        f"  {c.name} ({c.relationship})",
        f"  Phone: {c.phone}",
        f"  Email: {c.email}",
        '',
        'Medical Information',
        f"  Blood Group: {m.blood_group}",
        f"  Allergies:   {', '.join(m.allergies) or 'None'}",
        f"  Conditions:  {', '.join(m.conditions) or 'None'}",
        f"  Medications: {', '.join(m.medications) or 'None'}",
        '',
        'Insurance',
        f"  Provider:      {i.provider}",
        f"  Policy Number: {i.policy_number}",
        f"  Member ID:     {i.membership_id}",
    ]
    return '\n'.join(lines) + '\n'


def qr_payload(profile: EmergencyProfile) -> str:
    """Compact JSON for a QR code generator."""
    c, m, i = profile.contact, profile.medical, profile.insurance
    data = {
        'contact':   {'name': c.name, 'phone': c.phone},
        'blood':     m.blood_group,
        'allergies': m.allergies,
        'meds':      m.medications,
        'insurance': {'provider': i.provider, 'policy': i.policy_number},
    }
    return json.dumps(data, separators=(',', ':'), ensure_ascii=False)


_ACTION_DESCRIPTIONS = {
    'call':    ('called',    'Called emergency contact {name}'),
    'message': ('messaged',  'Sent emergency message to {name}'),
    'print':   ('printed',   'Printed emergency card'),
    'qr':      ('generated', 'Generated emergency QR code'),
}


def perform_action(
    action:   str,
    profile:  EmergencyProfile,
    user_id:  Optional[str]            = None,
    activity: Optional[ActivityLogger] = None,
) -> str:
    """Run one emergency action and return its URI or text payload."""
    builders = {'call': call_uri, 'message': sms_uri, 'print': emergency_card, 'qr': qr_payload}
    if action not in builders:
        raise ValidationError(f"Unknown action '{action}'. Use one of: {', '.join(EMERGENCY_ACTIONS)}")
    result = builders[action](profile)

    if activity is not None:
        action_type, template = _ACTION_DESCRIPTIONS[action]
        activity.log(
            user_id,
            action_type        = action_type,
            action_description = template.format(name=profile.contact.name),
            category           = 'emergency',
            entity_type        = 'emergency_profile',
            metadata           = {'action': action},
        )
    return result
