"""
tests/test_local_backend.py
On-device backend: owner-scoped tables, bucket storage, auth sessions.
"""

import sqlite3
from datetime import timedelta

import pytest

from lifevault.backend.sqlite_backend import SCHEMA_VERSION, LocalBackend
from lifevault.errors import AuthError, BackendError


def _contact(user_id, name, **kw):
    return {"user_id": user_id, "name": name, **kw}


class TestTables:
    def test_insert_fills_id_and_timestamps(self, backend):
        row = backend.insert("contacts", _contact("u1", "Ann"))
        assert row["id"]
        assert row["created_at"] == row["updated_at"]
        assert row["is_favorite"] is False

    def test_owner_scoping(self, backend):
        backend.insert("contacts", _contact("u1", "Ann"))
        backend.insert("contacts", _contact("u2", "Bob"))
        assert [r["name"] for r in backend.select("contacts", {"user_id": "u1"})] == ["Ann"]

    def test_update_and_delete_respect_filters(self, backend):
        ann = backend.insert("contacts", _contact("u1", "Ann"))
        assert backend.update("contacts", {"name": "X"}, {"id": ann["id"], "user_id": "u2"}) == []
        assert backend.delete("contacts", {"id": ann["id"], "user_id": "u2"}) == 0
        updated = backend.update("contacts", {"is_favorite": True}, {"id": ann["id"], "user_id": "u1"})
        assert updated[0]["is_favorite"] is True
        assert backend.delete("contacts", {"id": ann["id"], "user_id": "u1"}) == 1

    def test_unfiltered_mutations_refused(self, backend):
        with pytest.raises(BackendError):
            backend.delete("contacts", {})
        with pytest.raises(BackendError):
            backend.update("contacts", {"name": "X"}, {})

    def test_unknown_column_and_table(self, backend):
        with pytest.raises(BackendError) as exc:
            backend.insert("contacts", _contact("u1", "Ann", shoe_size=9))
        assert exc.value.status_code == 400
        with pytest.raises(BackendError):
            backend.select("auth_users")

    def test_json_metadata_round_trip(self, backend):
        row = backend.insert("activity_logs", {
            "user_id": "u1", "action_type": "added", "action_description": "x",
            "category": "contact", "metadata": {"contact_name": "Ann", "n": 2},
        })
        assert backend.select("activity_logs", {"id": row["id"]})[0]["metadata"] == {"contact_name": "Ann", "n": 2}

    def test_order_and_limit(self, backend):
        for i, ts in enumerate(["2026-01-03", "2026-01-01", "2026-01-02"]):
            backend.insert("contacts", _contact("u1", f"c{i}", created_at=f"{ts}T00:00:00+00:00"))
        rows = backend.select("contacts", {"user_id": "u1"}, order_by="created_at", descending=True, limit=2)
        assert [r["name"] for r in rows] == ["c0", "c2"]

    def test_schema_version_recorded(self, backend):
        conn = sqlite3.connect(str(backend.db_path))
        try:
            row = conn.execute("SELECT schema_version FROM lifevault_meta").fetchone()
        finally:
            conn.close()
        assert row[0] == SCHEMA_VERSION


class TestStorage:
    def test_upload_download_remove(self, backend):
        backend.upload("vault", "u1/medical/a.pdf", b"data")
        assert backend.download("vault", "u1/medical/a.pdf") == b"data"
        backend.remove("vault", ["u1/medical/a.pdf", "u1/medical/missing.pdf"])
        with pytest.raises(BackendError) as exc:
            backend.download("vault", "u1/medical/a.pdf")
        assert exc.value.status_code == 404

    def test_existing_object_not_overwritten(self, backend):
        backend.upload("vault", "u1/a.pdf", b"one")
        with pytest.raises(BackendError) as exc:
            backend.upload("vault", "u1/a.pdf", b"two")
        assert exc.value.status_code == 409
        assert backend.download("vault", "u1/a.pdf") == b"one"

    @pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", "u1/../../x", ""])
    def test_path_traversal_rejected(self, backend, path):
        with pytest.raises(BackendError):
            backend.upload("vault", path, b"x")


class TestAuth:
    def test_duplicate_sign_up(self, backend, session):
        with pytest.raises(AuthError, match="User already registered"):
            backend.sign_up("ALICE@example.com", "whatever1")

    def test_email_is_case_insensitive(self, backend, session):
        assert backend.sign_in_with_password("Alice@Example.com", "secret123").user.id == session.user.id

    def test_update_user_merges_metadata(self, backend, session):
        backend.update_user(session.access_token, data={"full_name": "Alice"})
        user = backend.update_user(session.access_token, data={"theme": "dark"})
        assert user.user_metadata == {"full_name": "Alice", "theme": "dark"}

    def test_expired_session_rejected(self, tmp_path):
        backend = LocalBackend(
            tmp_path / "x.db", tmp_path / "s",
            session_ttl=timedelta(seconds=-1), iterations=1_000,
        )
        session = backend.sign_up("a@example.com", "secret1")
        with pytest.raises(AuthError, match="Invalid or expired session"):
            backend.get_user(session.access_token)

    def test_oauth_unavailable_locally(self, backend):
        with pytest.raises(BackendError, match="Provider not found"):
            backend.oauth_authorize_url("google")
