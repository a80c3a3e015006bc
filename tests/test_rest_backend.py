"""
tests/test_rest_backend.py
Hosted-platform adapter, with urllib patched out.
"""

import io
import json
import urllib.error
import urllib.parse
from unittest.mock import MagicMock, patch

import pytest

from lifevault.backend.rest_backend import RestBackend
from lifevault.errors import AuthError, BackendError

URL = "https://project.example.co"
KEY = "anon-key"
URLOPEN = "lifevault.backend.rest_backend.urllib.request.urlopen"


def _response(payload):
    resp = MagicMock()
    resp.read.return_value = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    cm = MagicMock()
    cm.__enter__.return_value = resp
    return cm


def _http_error(code, body):
    return urllib.error.HTTPError(URL, code, "error", {}, io.BytesIO(json.dumps(body).encode()))


def _request(mock_urlopen):
    return mock_urlopen.call_args.args[0]


class TestConstruction:
    def test_url_and_key_required(self):
        with pytest.raises(BackendError):
            RestBackend("", KEY)
        with pytest.raises(BackendError):
            RestBackend(URL, "")

    def test_for_session_carries_token(self):
        scoped = RestBackend(URL, KEY).for_session("user-jwt")
        assert scoped.access_token == "user-jwt"
        assert scoped._headers()["Authorization"] == "Bearer user-jwt"
        assert RestBackend(URL, KEY)._headers()["Authorization"] == f"Bearer {KEY}"


class TestTables:
    def test_select_builds_postgrest_query(self):
        with patch(URLOPEN, return_value=_response([{"id": "1"}])) as mock_urlopen:
            rows = RestBackend(URL, KEY, "jwt").select(
                "contacts", {"user_id": "u1", "is_favorite": True},
                order_by="created_at", descending=True, limit=5,
            )
        assert rows == [{"id": "1"}]
        req = _request(mock_urlopen)
        parsed = urllib.parse.urlparse(req.full_url)
        assert parsed.path == "/rest/v1/contacts"
        query = dict(urllib.parse.parse_qsl(parsed.query))
        assert query == {
            "select": "*", "user_id": "eq.u1", "is_favorite": "eq.true",
            "order": "created_at.desc", "limit": "5",
        }
        assert req.get_header("Apikey") == KEY
        assert req.get_header("Authorization") == "Bearer jwt"
        assert req.get_method() == "GET"

    def test_insert_returns_representation(self):
        with patch(URLOPEN, return_value=_response([{"id": "new", "name": "Ann"}])) as mock_urlopen:
            row = RestBackend(URL, KEY).insert("contacts", {"name": "Ann"})
        assert row["id"] == "new"
        req = _request(mock_urlopen)
        assert req.get_header("Prefer") == "return=representation"
        assert json.loads(req.data) == [{"name": "Ann"}]

    def test_delete_counts_returned_rows(self):
        with patch(URLOPEN, return_value=_response([{"id": "a"}, {"id": "b"}])) as mock_urlopen:
            count = RestBackend(URL, KEY).delete("activity_logs", {"user_id": "u1"})
        assert count == 2
        assert _request(mock_urlopen).get_method() == "DELETE"

    def test_unfiltered_delete_refused_without_request(self):
        with patch(URLOPEN) as mock_urlopen:
            with pytest.raises(BackendError):
                RestBackend(URL, KEY).delete("contacts", {})
        mock_urlopen.assert_not_called()


class TestStorage:
    def test_upload_posts_raw_bytes(self):
        with patch(URLOPEN, return_value=_response({"Key": "vault/u1/a.pdf"})) as mock_urlopen:
            RestBackend(URL, KEY).upload("vault", "u1/medical/a b.pdf", b"%PDF", "application/pdf")
        req = _request(mock_urlopen)
        assert req.full_url == f"{URL}/storage/v1/object/vault/u1/medical/a%20b.pdf"
        assert req.data == b"%PDF"
        assert req.get_header("Content-type") == "application/pdf"

    def test_download_returns_bytes(self):
        with patch(URLOPEN, return_value=_response(b"\x00\x01")):
            assert RestBackend(URL, KEY).download("vault", "u1/a.bin") == b"\x00\x01"

    def test_remove_sends_prefixes(self):
        with patch(URLOPEN, return_value=_response([])) as mock_urlopen:
            RestBackend(URL, KEY).remove("vault", ["u1/a.pdf"])
        assert json.loads(_request(mock_urlopen).data) == {"prefixes": ["u1/a.pdf"]}


class TestErrors:
    def test_http_error_becomes_backend_error(self):
        with patch(URLOPEN, side_effect=_http_error(500, {"message": "boom"})):
            with pytest.raises(BackendError) as exc:
                RestBackend(URL, KEY).select("contacts", {"user_id": "u1"})
        assert exc.value.status_code == 500
        assert exc.value.message == "boom"

    def test_unauthorized_becomes_auth_error(self):
        with patch(URLOPEN, side_effect=_http_error(401, {"message": "JWT expired"})):
            with pytest.raises(AuthError, match="JWT expired"):
                RestBackend(URL, KEY).select("contacts", {"user_id": "u1"})

    def test_auth_path_errors_are_auth_errors(self):
        with patch(URLOPEN, side_effect=_http_error(400, {"error_description": "Invalid login credentials"})):
            with pytest.raises(AuthError, match="Invalid login credentials"):
                RestBackend(URL, KEY).sign_in_with_password("a@example.com", "x")

    def test_unreachable(self):
        with patch(URLOPEN, side_effect=urllib.error.URLError("connection refused")):
            with pytest.raises(BackendError, match="not reachable"):
                RestBackend(URL, KEY).select("contacts", {"user_id": "u1"})

    def test_is_available_false_when_down(self):
        with patch(URLOPEN, side_effect=urllib.error.URLError("down")):
            assert RestBackend(URL, KEY).is_available() is False


class TestAuth:
    SESSION = {
        "access_token": "jwt", "refresh_token": "r", "expires_at": 1700000000,
        "user": {"id": "u1", "email": "a@example.com", "aud": "authenticated"},
    }

    def test_sign_in_parses_session(self):
        with patch(URLOPEN, return_value=_response(self.SESSION)) as mock_urlopen:
            session = RestBackend(URL, KEY).sign_in_with_password("a@example.com", "pw")
        assert session.access_token == "jwt"
        assert session.user.id == "u1"
        assert _request(mock_urlopen).full_url == f"{URL}/auth/v1/token?grant_type=password"

    def test_sign_up_pending_confirmation(self):
        with patch(URLOPEN, return_value=_response({"id": "u1", "email": "a@example.com"})):
            assert RestBackend(URL, KEY).sign_up("a@example.com", "pw") is None

    def test_oauth_url_is_built_locally(self):
        with patch(URLOPEN) as mock_urlopen:
            url = RestBackend(URL, KEY).oauth_authorize_url("google", "https://app/x")
        mock_urlopen.assert_not_called()
        assert url.startswith(f"{URL}/auth/v1/authorize?provider=google")

    def test_update_user_sends_metadata_with_user_token(self):
        with patch(URLOPEN, return_value=_response({"id": "u1", "user_metadata": {"full_name": "A"}})) as mock_urlopen:
            user = RestBackend(URL, KEY).update_user("jwt", data={"full_name": "A"})
        req = _request(mock_urlopen)
        assert req.get_method() == "PUT"
        assert req.get_header("Authorization") == "Bearer jwt"
        assert json.loads(req.data) == {"data": {"full_name": "A"}}
        assert user.user_metadata == {"full_name": "A"}

    @pytest.mark.parametrize("payload", [b"", {}, {"access_token": "jwt", "user": {}}])
    def test_malformed_session_is_backend_error(self, payload):
        with patch(URLOPEN, return_value=_response(payload)):
            with pytest.raises(BackendError, match="Malformed auth response"):
                RestBackend(URL, KEY).sign_in_with_password("a@example.com", "pw")

    def test_empty_user_body_is_backend_error(self):
        with patch(URLOPEN, return_value=_response(b"")):
            with pytest.raises(BackendError, match="Malformed auth response"):
                RestBackend(URL, KEY).get_user("jwt")
        with patch(URLOPEN, return_value=_response({})):
            with pytest.raises(BackendError, match="Malformed auth response"):
                RestBackend(URL, KEY).update_user("jwt", data={"full_name": "A"})
