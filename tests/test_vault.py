"""
tests/test_vault.py
Vault uploads, edits, deletes and the per-category counters.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from lifevault.activity.service import ActivityService
from lifevault.errors import BackendError, NotFoundError, ValidationError, VaultError
from lifevault.models.record import VaultEntry
from lifevault.vault import (
    VaultDashboard,
    VaultService,
    build_storage_path,
    count_by_category,
    filter_entries,
    format_file_size,
)


def _entry(category, **kw):
    return VaultEntry(
        id=kw.get("id", category), user_id="u1", title=kw.get("title", f"{category} doc"),
        category=category, file_name=kw.get("file_name", "f.pdf"), file_path="p",
        description=kw.get("description"), is_important=kw.get("is_important", False),
    )


@pytest.fixture
def vault(backend):
    return VaultService(backend)


def _upload(vault, user_id, category="medical", title="Blood test", content=b"%PDF-1.4"):
    return vault.upload_entry(user_id, title, category, "report.pdf", content)


class TestHelpers:
    def test_storage_path_layout(self):
        ts = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
        path = build_storage_path("u1", "legal", "will.pdf", ts)
        assert path == "u1/legal/2026-10-19T08:30:00+00:00_will.pdf"

    def test_storage_path_strips_separators(self):
        path = build_storage_path("u1", "legal", "../etc/passwd")
        assert path.count("/") == 2

    def test_counts_sum_to_total(self):
        entries = [_entry("medical"), _entry("medical"), _entry("legal"), _entry("personal")]
        counts = count_by_category(entries)
        assert counts == {"medical": 2, "legal": 1, "digital": 0, "personal": 1}
        assert sum(counts.values()) == len(entries)

    def test_filter_entries_conjunction(self):
        entries = [
            _entry("medical", id="a", title="Blood test", is_important=True),
            _entry("medical", id="b", title="X-ray"),
            _entry("legal", id="c", title="Blood oath", is_important=True),
        ]
        assert [e.id for e in filter_entries(entries, "medical", "blood")] == ["a"]
        assert [e.id for e in filter_entries(entries, None, "", important_only=True)] == ["a", "c"]
        assert [e.id for e in filter_entries(entries, "all", "RAY")] == ["b"]

    @pytest.mark.parametrize("size,expected", [
        (None, "Unknown size"),
        (0, "0 Bytes"),
        (500, "500 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
    ])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected


class TestDashboard:
    def test_delete_decrements_only_own_category(self):
        dash = VaultDashboard.from_entries([_entry("medical"), _entry("legal", id="l")])
        dash.apply_delete(_entry("legal", id="l"))
        assert dash.counts == {"medical": 1, "legal": 0, "digital": 0, "personal": 0}

    def test_never_below_zero(self):
        dash = VaultDashboard()
        dash.apply_delete(_entry("digital"))
        assert dash.counts["digital"] == 0

    def test_upload_and_move(self):
        dash = VaultDashboard()
        dash.apply_upload("personal")
        dash.apply_move("personal", "legal")
        assert dash.counts["personal"] == 0
        assert dash.counts["legal"] == 1
        assert dash.total == 1

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            VaultDashboard().apply_upload("secret")


class TestVaultService:
    def test_upload_stores_file_row_and_activity(self, backend, vault, session):
        uid = session.user.id
        entry = _upload(vault, uid)
        assert entry.file_size == 8
        assert entry.file_type == "application/pdf"
        assert entry.file_path.startswith(f"{uid}/medical/")
        assert backend.download("vault", entry.file_path) == b"%PDF-1.4"

        logs = ActivityService(backend).list_activities(uid)
        assert [(l.action_type, l.category) for l in logs] == [("uploaded", "medical")]

    def test_required_fields(self, vault, session):
        with pytest.raises(ValidationError):
            vault.upload_entry(session.user.id, "  ", "medical", "a.pdf", b"x")
        with pytest.raises(ValidationError):
            vault.upload_entry(session.user.id, "Title", "medical", "a.pdf", None)

    def test_unknown_category(self, vault, session):
        with pytest.raises(ValidationError):
            _upload(vault, session.user.id, category="secrets")

    def test_insert_failure_leaves_uploaded_object(self, backend, vault, session):
        with patch.object(backend, "insert", side_effect=BackendError("insert failed")):
            with pytest.raises(VaultError):
                _upload(vault, session.user.id)
        stored = list((backend.storage_dir / "vault").rglob("*.pdf"))
        assert len(stored) == 1
        assert vault.list_entries(session.user.id) == []

    def test_delete_removes_exactly_one(self, backend, vault, session):
        uid = session.user.id
        keep = _upload(vault, uid, "medical", "Keep")
        gone = _upload(vault, uid, "legal", "Gone")
        _upload(vault, uid, "legal", "Other legal")

        before = vault.dashboard(uid)
        vault.delete_entry(uid, gone.id)
        before.apply_delete(gone)

        remaining = vault.list_entries(uid)
        assert len(remaining) == 2
        assert gone.id not in {e.id for e in remaining}
        assert count_by_category(remaining) == before.counts
        assert before.counts["legal"] == 1 and before.counts["medical"] == 1
        with pytest.raises(BackendError):
            backend.download("vault", gone.file_path)
        assert backend.download("vault", keep.file_path)

    def test_storage_failure_does_not_block_delete(self, backend, vault, session):
        entry = _upload(vault, session.user.id)
        with patch.object(backend, "remove", side_effect=BackendError("storage down")):
            vault.delete_entry(session.user.id, entry.id)
        assert vault.list_entries(session.user.id) == []

    def test_delete_missing(self, vault, session):
        with pytest.raises(NotFoundError):
            vault.delete_entry(session.user.id, "nope")

    def test_other_user_cannot_touch_entry(self, vault, session, other_session):
        entry = _upload(vault, session.user.id)
        with pytest.raises(NotFoundError):
            vault.delete_entry(other_session.user.id, entry.id)
        with pytest.raises(NotFoundError):
            vault.download_entry(other_session.user.id, entry.id)
        assert len(vault.list_entries(session.user.id)) == 1

    def test_update_metadata(self, vault, session):
        entry = _upload(vault, session.user.id)
        updated = vault.update_entry(
            session.user.id, entry.id, title="Renamed", category="personal", is_important=True,
        )
        assert updated.title == "Renamed"
        assert updated.category == "personal"
        assert updated.is_important is True
        assert updated.file_path == entry.file_path

    def test_update_replaces_file(self, backend, vault, session):
        entry = _upload(vault, session.user.id)
        updated = vault.update_entry(
            session.user.id, entry.id, file_name="scan.png", content=b"\x89PNG",
        )
        assert updated.file_name == "scan.png"
        assert updated.file_size == 4
        assert backend.download("vault", updated.file_path) == b"\x89PNG"
        with pytest.raises(BackendError):
            backend.download("vault", entry.file_path)

    def test_download(self, vault, session):
        entry = _upload(vault, session.user.id, content=b"hello")
        name, content, media_type = vault.download_entry(session.user.id, entry.id)
        assert (name, content, media_type) == ("report.pdf", b"hello", "application/pdf")
