"""
lifevault/vault.py
Vault tab: categorized document uploads.

Upload = object written to the `vault` bucket, then the metadata row
inserted. The two calls are independent: if the insert fails after the upload
succeeded the object stays orphaned in storage (no compensating delete).

Delete = object removed first (a storage failure is logged, not fatal),
then the row removed (a failure here aborts the delete).
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from lifevault.activity.logger import ActivityLogger
from lifevault.backend.base import BackendAdapter
from lifevault.errors import LifeVaultError, NotFoundError, ValidationError, VaultError
from lifevault.models.record import VAULT_CATEGORIES, VaultEntry
from lifevault.timeutil import to_iso, utc_now

logger = logging.getLogger(__name__)

ENTRY_TABLE    = 'vault_entries'
DEFAULT_BUCKET = 'vault'

CATEGORY_DESCRIPTIONS = {
    'medical':  'Health records, medications, emergency contacts',
    'legal':    'Wills, insurance, important documents',
    'digital':  'Passwords, accounts, digital assets',
    'personal': 'Personal information, contacts, notes',
}

_SIZE_UNITS = ('Bytes', 'KB', 'MB', 'GB')


# ── PURE HELPERS ─────────────────────────────────────────────

def build_storage_path(user_id: str, category: str, file_name: str,
                       timestamp: Optional[datetime] = None) -> str:
    """{user_id}/{category}/{iso timestamp}_{file name}"""
    stamp = to_iso(timestamp or utc_now())
    safe_name = file_name.replace('/', '_').replace('\\', '_')
    return f"{user_id}/{category}/{stamp}_{safe_name}"


def count_by_category(entries: Iterable[VaultEntry]) -> Dict[str, int]:
    """All four categories are always present; totals sum to len(entries)."""
    counts = {c: 0 for c in VAULT_CATEGORIES}
    for e in entries:
        if e.category in counts:
            counts[e.category] += 1
    return counts


def filter_entries(
    entries:        Iterable[VaultEntry],
    category:       Optional[str] = None,
    query:          str           = '',
    important_only: bool          = False,
) -> List[VaultEntry]:
    """Category equality AND case-insensitive text match AND importance flag."""
    q = (query or '').strip().lower()
    result = []
    for e in entries:
        if category and category != 'all' and e.category != category:
            continue
        if important_only and not e.is_important:
            continue
        if q:
            haystack = ' '.join(filter(None, (e.title, e.description, e.file_name))).lower()
            if q not in haystack:
                continue
        result.append(e)
    return result


def format_file_size(size: Optional[int]) -> str:
    if size is None:
        return 'Unknown size'
    if size <= 0:
        return '0 Bytes'
    value = float(size)
    i = 0
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    value = round(value, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZE_UNITS[i]}"


def _check_category(category: str) -> None:
    if category not in VAULT_CATEGORIES:
        raise ValidationError(
            f"Unknown category '{category}'. Use one of: {', '.join(VAULT_CATEGORIES)}"
        )


# ── DASHBOARD VIEW STATE ─────────────────────────────────────

@dataclass
class VaultDashboard:
    """Per-category counters shown on the vault cards, plus the open category."""
    counts:   Dict[str, int] = field(default_factory=lambda: {c: 0 for c in VAULT_CATEGORIES})
    selected: Optional[str]  = None

    @classmethod
    def from_entries(cls, entries: Iterable[VaultEntry]) -> "VaultDashboard":
        return cls(counts=count_by_category(entries))

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def select(self, category: Optional[str]) -> None:
        if category is not None:
            _check_category(category)
        self.selected = category

    def apply_upload(self, category: str) -> None:
        _check_category(category)
        self.counts[category] += 1

    def apply_delete(self, entry: VaultEntry) -> None:
        if entry.category in self.counts and self.counts[entry.category] > 0:
            self.counts[entry.category] -= 1

    def apply_move(self, old_category: str, new_category: str) -> None:
        if old_category == new_category:
            return
        _check_category(new_category)
        if self.counts.get(old_category, 0) > 0:
            self.counts[old_category] -= 1
        self.counts[new_category] += 1


# ── SERVICE ──────────────────────────────────────────────────

class VaultService:

    def __init__(
        self,
        backend:  BackendAdapter,
        activity: Optional[ActivityLogger] = None,
        bucket:   str                      = DEFAULT_BUCKET,
    ):
        self.backend  = backend
        self.activity = activity or ActivityLogger(backend)
        self.bucket   = bucket

    # ── QUERY ────────────────────────────────────────────────

    def list_entries(self, user_id: str, category: Optional[str] = None) -> List[VaultEntry]:
        filters = {'user_id': user_id}
        if category and category != 'all':
            _check_category(category)
            filters['category'] = category
        rows = self.backend.select(ENTRY_TABLE, filters, order_by='created_at', descending=True)
        return [VaultEntry.from_row(r) for r in rows]

    def get_entry(self, user_id: str, entry_id: str) -> VaultEntry:
        rows = self.backend.select(ENTRY_TABLE, {'id': entry_id, 'user_id': user_id}, limit=1)
        if not rows:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return VaultEntry.from_row(rows[0])

    def dashboard(self, user_id: str) -> VaultDashboard:
        return VaultDashboard.from_entries(self.list_entries(user_id))

    # ── UPLOAD ───────────────────────────────────────────────

    def upload_entry(
        self,
        user_id:      str,
        title:        str,
        category:     str,
        file_name:    str,
        content:      Optional[bytes],
        description:  Optional[str] = None,
        is_important: bool          = False,
        file_type:    Optional[str] = None,
    ) -> VaultEntry:
        title = (title or '').strip()
        if not title or not file_name or content is None or not category:
            raise ValidationError("Please fill in all required fields.")
        _check_category(category)

        file_type = file_type or mimetypes.guess_type(file_name)[0] or 'application/octet-stream'
        path = build_storage_path(user_id, category, file_name)

        try:
            self.backend.upload(self.bucket, path, content, file_type)
        except LifeVaultError as e:
            logger.error(f"Upload error: {e}")
            raise VaultError("Failed to upload file. Please try again.") from e

        try:
            row = self.backend.insert(ENTRY_TABLE, {
                'user_id':      user_id,
                'title':        title,
                'description':  (description or '').strip() or None,
                'category':     category,
                'file_name':    file_name,
                'file_path':    path,
                'file_size':    len(content),
                'file_type':    file_type,
                'is_important': bool(is_important),
            })
        except LifeVaultError as e:
            # Uploaded object is left in place; see module docstring.
            logger.error(f"Entry insert failed after upload of {path}: {e}")
            raise VaultError("Failed to save entry. Please try again.") from e

        entry = VaultEntry.from_row(row)
        self.activity.log(
            user_id,
            action_type        = 'uploaded',
            action_description = f"Uploaded {category} document {entry.title}",
            category           = category,
            entity_id          = entry.id,
            entity_type        = 'vault_entry',
            metadata           = {'file_name': file_name, 'file_size': entry.file_size},
        )
        logger.info(f"Entry added to {category}")
        return entry

    # ── UPDATE ───────────────────────────────────────────────

    def update_entry(
        self,
        user_id:      str,
        entry_id:     str,
        title:        Optional[str]   = None,
        description:  Optional[str]   = None,
        category:     Optional[str]   = None,
        is_important: Optional[bool]  = None,
        file_name:    Optional[str]   = None,
        content:      Optional[bytes] = None,
        file_type:    Optional[str]   = None,
    ) -> VaultEntry:
        """
        Metadata update. When `content` is given the file is re-uploaded under
        a fresh path and the previous object removed.
        """
        entry = self.get_entry(user_id, entry_id)
        values: Dict[str, object] = {}

        if title is not None:
            if not title.strip():
                raise ValidationError("Title cannot be empty.")
            values['title'] = title.strip()
        if description is not None:
            values['description'] = description.strip() or None
        if category is not None:
            _check_category(category)
            values['category'] = category
        if is_important is not None:
            values['is_important'] = bool(is_important)

        old_path = None
        if content is not None:
            new_name = file_name or entry.file_name
            new_type = file_type or mimetypes.guess_type(new_name)[0] or 'application/octet-stream'
            new_path = build_storage_path(user_id, values.get('category', entry.category), new_name)
            try:
                self.backend.upload(self.bucket, new_path, content, new_type)
            except LifeVaultError as e:
                logger.error(f"Re-upload error: {e}")
                raise VaultError("Failed to upload file. Please try again.") from e
            values.update({
                'file_name': new_name,
                'file_path': new_path,
                'file_size': len(content),
                'file_type': new_type,
            })
            old_path = entry.file_path

        if not values:
            return entry

        try:
            rows = self.backend.update(ENTRY_TABLE, values, {'id': entry_id, 'user_id': user_id})
        except LifeVaultError as e:
            logger.error(f"Entry update failed: {e}")
            raise VaultError("Failed to update entry. Please try again.") from e
        if not rows:
            raise NotFoundError(f"Entry not found: {entry_id}")

        if old_path:
            try:
                self.backend.remove(self.bucket, [old_path])
            except LifeVaultError as e:
                logger.error(f"Storage delete error for replaced file: {e}")

        updated = VaultEntry.from_row(rows[0])
        self.activity.log(
            user_id,
            action_type        = 'updated',
            action_description = f"Updated {updated.category} document {updated.title}",
            category           = updated.category,
            entity_id          = updated.id,
            entity_type        = 'vault_entry',
            metadata           = {'fields': sorted(values)},
        )
        return updated

    # ── DELETE / DOWNLOAD ────────────────────────────────────

    def delete_entry(self, user_id: str, entry_id: str) -> VaultEntry:
        entry = self.get_entry(user_id, entry_id)

        try:
            self.backend.remove(self.bucket, [entry.file_path])
        except LifeVaultError as e:
            logger.error(f"Storage delete error: {e}")

        try:
            count = self.backend.delete(ENTRY_TABLE, {'id': entry_id, 'user_id': user_id})
        except LifeVaultError as e:
            logger.error(f"Database delete error: {e}")
            raise VaultError("Failed to delete entry. Please try again.") from e
        if count == 0:
            raise NotFoundError(f"Entry not found: {entry_id}")

        self.activity.log(
            user_id,
            action_type        = 'deleted',
            action_description = f"Deleted {entry.category} document {entry.title}",
            category           = entry.category,
            entity_id          = entry.id,
            entity_type        = 'vault_entry',
            metadata           = {'file_name': entry.file_name},
        )
        return entry

    def download_entry(self, user_id: str, entry_id: str) -> Tuple[str, bytes, str]:
        """Returns (file_name, content, content_type)."""
        entry = self.get_entry(user_id, entry_id)
        try:
            content = self.backend.download(self.bucket, entry.file_path)
        except LifeVaultError as e:
            logger.error(f"Download error: {e}")
            raise VaultError("Failed to download file. Please try again.") from e
        return entry.file_name, content, entry.file_type or 'application/octet-stream'
