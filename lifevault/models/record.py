"""
lifevault/models/record.py
Shared dataclass schema. Services, backends and the API all use these types.
Data only, plus the row mapping needed to read records back from the backend.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

# ── CATEGORIES ───────────────────────────────────────────────

VAULT_CATEGORIES    = ('medical', 'legal', 'digital', 'personal')
ACTIVITY_CATEGORIES = ('medical', 'legal', 'digital', 'personal', 'contact', 'emergency')
RELATIONSHIPS       = ('family', 'doctor', 'lawyer', 'friend', 'work', 'emergency')


class _RowMixin:
    """from_row() ignores columns the dataclass does not declare."""

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


# ── VAULT ────────────────────────────────────────────────────

@dataclass
class VaultEntry(_RowMixin):
    """Uploaded file plus its descriptive metadata."""
    id:           str
    user_id:      str
    title:        str
    category:     str                   # medical / legal / digital / personal
    file_name:    str
    file_path:    str                   # object key inside the vault bucket
    file_size:    Optional[int]  = None
    file_type:    Optional[str]  = None
    description:  Optional[str]  = None
    is_important: bool           = False
    created_at:   str            = ''
    updated_at:   str            = ''


# ── CONTACTS ─────────────────────────────────────────────────

@dataclass
class Contact(_RowMixin):
    """Trusted contact, optionally designated for emergency access."""
    id:                   str
    user_id:              str
    name:                 str
    email:                Optional[str] = None
    phone:                Optional[str] = None
    relationship:         str           = 'family'
    avatar_url:           Optional[str] = None
    is_favorite:          bool          = False
    is_emergency_contact: bool          = False
    notes:                Optional[str] = None
    created_at:           str           = ''
    updated_at:           str           = ''


# ── ACTIVITY ─────────────────────────────────────────────────

@dataclass
class ActivityLog(_RowMixin):
    """One append-only audit record of a user action."""
    id:                 str
    user_id:            str
    action_type:        str             # added / updated / deleted / uploaded / called ...
    action_description: str
    category:           str
    entity_id:          Optional[str]   = None
    entity_type:        Optional[str]   = None
    metadata:           Dict[str, Any]  = field(default_factory=dict)
    created_at:         str             = ''


# ── EMERGENCY PROFILE (session-held, never persisted) ────────

@dataclass
class EmergencyContact(_RowMixin):
    name:         str = ''
    relationship: str = ''
    phone:        str = ''
    email:        str = ''


@dataclass
class MedicalInfo(_RowMixin):
    blood_group: str       = ''
    allergies:   List[str] = field(default_factory=list)
    conditions:  List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)


@dataclass
class InsuranceInfo(_RowMixin):
    provider:      str = ''
    policy_number: str = ''
    membership_id: str = ''


# ── AUTH ─────────────────────────────────────────────────────

@dataclass
class AuthUser(_RowMixin):
    id:            str
    email:         Optional[str]  = None
    phone:         Optional[str]  = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    created_at:    str            = ''


@dataclass
class AuthSession:
    access_token:  str
    user:          AuthUser
    refresh_token: str           = ''
    expires_at:    Optional[int] = None   # unix seconds
