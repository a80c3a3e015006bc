"""
lifevault/settings.py
Settings tab: display name, password change, notification/privacy toggles,
user-data export and the account deletion notice.

Preferences live in memory per user, like the emergency profile.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from lifevault.activity.export import EXPORT_FORMAT_VERSION, content_hash
from lifevault.activity.service import ActivityService
from lifevault.backend.base import BackendAdapter
from lifevault.contacts import ContactService
from lifevault.errors import AuthError, BackendError, ValidationError
from lifevault.models.record import AuthUser
from lifevault.signing import sign_export
from lifevault.timeutil import to_iso, utc_now
from lifevault.vault import VaultService

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH  = 6
PASSWORD_MISMATCH    = "New password and confirmation do not match."
PASSWORD_TOO_SHORT   = "Password must be at least 6 characters long."
ACCOUNT_DELETION_MSG = "Please contact support to delete your account."


def display_name_for(user: AuthUser) -> str:
    """full_name from user metadata, else the local part of the email."""
    name = (user.user_metadata or {}).get('full_name')
    if name:
        return name
    if user.email:
        return user.email.split('@')[0]
    return ''


def validate_new_password(new_password: str, confirm_password: str) -> None:
    if new_password != confirm_password:
        raise ValidationError(PASSWORD_MISMATCH)
    if len(new_password or '') < MIN_PASSWORD_LENGTH:
        raise ValidationError(PASSWORD_TOO_SHORT)


# ── PREFERENCES ──────────────────────────────────────────────

@dataclass
class Preferences:
    # notifications
    email_notifications: bool = True
    emergency_alerts:    bool = True
    document_reminders:  bool = False
    weekly_reports:      bool = True
    # privacy
    profile_visibility:  bool = False
    data_sharing:        bool = False
    analytics_tracking:  bool = True

    def apply(self, changes: Dict[str, Any]) -> None:
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            if not isinstance(value, bool):
                raise ValidationError(f"Preference '{name}' must be true or false")
            setattr(self, name, value)


class PreferenceStore:

    def __init__(self):
        self._prefs: Dict[str, Preferences] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Preferences:
        with self._lock:
            return self._prefs.setdefault(user_id, Preferences())

    def update(self, user_id: str, changes: Dict[str, Any]) -> Preferences:
        prefs = self.get(user_id)
        with self._lock:
            prefs.apply(changes)
        return prefs


# ── SERVICE ──────────────────────────────────────────────────

class SettingsService:

    def __init__(
        self,
        backend:        BackendAdapter,
        preferences:    Optional[PreferenceStore] = None,
        signing_secret: Optional[str]             = None,
        activity_limit: int                       = 100,
    ):
        self.backend        = backend
        self.preferences    = preferences or PreferenceStore()
        self.signing_secret = signing_secret
        self.activity_limit = activity_limit

    def profile(self, access_token: str) -> Dict[str, Any]:
        user = self.backend.get_user(access_token)
        return {
            'id':           user.id,
            'email':        user.email,
            'phone':        user.phone,
            'display_name': display_name_for(user),
            'created_at':   user.created_at,
        }

    def update_display_name(self, access_token: str, name: str) -> AuthUser:
        name = (name or '').strip()
        if not name:
            raise ValidationError("Display name cannot be empty.")
        user = self.backend.update_user(access_token, data={'full_name': name})
        logger.info("Profile display name updated")
        return user

    def change_password(self, access_token: str, new_password: str, confirm_password: str) -> None:
        validate_new_password(new_password, confirm_password)
        try:
            self.backend.update_user(access_token, password=new_password)
        except (AuthError, BackendError) as e:
            logger.error(f"Password change failed: {e}")
            raise
        logger.info("Password changed")

    def get_preferences(self, user_id: str) -> Dict[str, bool]:
        return asdict(self.preferences.get(user_id))

    def update_preferences(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, bool]:
        return asdict(self.preferences.update(user_id, changes))

    def export_user_data(self, user: AuthUser) -> Dict[str, Any]:
        """
        Everything the account holds except file contents: entry metadata,
        contacts, activity log and preferences. Hashed, and signed when a
        signing secret is configured.
        """
        entries    = VaultService(self.backend).list_entries(user.id)
        contacts   = ContactService(self.backend).list_contacts(user.id)
        activities = ActivityService(self.backend, self.activity_limit).list_activities(user.id)

        payload = {
            'export_format_version': EXPORT_FORMAT_VERSION,
            'export_metadata': {
                'generated_at': to_iso(utc_now()),
                'user_id':      user.id,
                'email':        user.email,
                'display_name': display_name_for(user),
            },
            'vault_entries': [e.to_row() for e in entries],
            'contacts':      [c.to_row() for c in contacts],
            'activities':    [a.to_row() for a in activities],
            'preferences':   self.get_preferences(user.id),
        }
        document = {**payload, 'content_hash_sha256': content_hash(payload)}
        logger.info(
            f"User data exported: {len(entries)} entries, {len(contacts)} contacts, "
            f"{len(activities)} activities"
        )
        return sign_export(document, self.signing_secret)

    @staticmethod
    def request_account_deletion() -> str:
        return ACCOUNT_DELETION_MSG
