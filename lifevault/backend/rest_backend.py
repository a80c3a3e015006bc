"""
lifevault/backend/rest_backend.py
Hosted platform adapter. Speaks the platform's REST dialect directly:

  tables   →  {url}/rest/v1/{table}?col=eq.value        (PostgREST)
  storage  →  {url}/storage/v1/object/{bucket}/{path}
  auth     →  {url}/auth/v1/...                         (GoTrue)

Every request carries the project `apikey` header. Table and storage calls
also carry the user's bearer token so the platform's row-level rules apply;
services still pass user_id filters explicitly.

No retries. A timeout or HTTP error surfaces as BackendError / AuthError.
"""

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional

from lifevault.backend.base import BackendAdapter
from lifevault.errors import AuthError, BackendError
from lifevault.models.record import AuthSession, AuthUser

logger = logging.getLogger(__name__)


class RestBackend(BackendAdapter):

    def __init__(
        self,
        url:          str,
        api_key:      str,
        access_token: Optional[str] = None,
        timeout_sec:  int           = 30,
    ):
        if not url or not api_key:
            raise BackendError("backend_url and api_key are required for the REST backend")
        self.url          = url.rstrip('/')
        self.api_key      = api_key
        self.access_token = access_token
        self.timeout_sec  = timeout_sec

    def for_session(self, access_token: str) -> "RestBackend":
        """Copy of this adapter that acts on behalf of one signed-in user."""
        return RestBackend(self.url, self.api_key, access_token, self.timeout_sec)

    # ── HTTP ─────────────────────────────────────────────────

    def _headers(self, token: Optional[str] = None, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        bearer = token or self.access_token or self.api_key
        headers = {
            'apikey':        self.api_key,
            'Authorization': f"Bearer {bearer}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method:  str,
        path:    str,
        body:    Optional[bytes]           = None,
        headers: Optional[Dict[str, str]]  = None,
        raw:     bool                      = False,
    ):
        req = urllib.request.Request(
            f"{self.url}{path}",
            data    = body,
            headers = headers or self._headers(),
            method  = method,
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                payload = resp.read()
        except urllib.error.HTTPError as e:
            message = _error_message(e)
            logger.error(f"{method} {path.split('?')[0]} failed: HTTP {e.code} {message}")
            if e.code in (401, 403) or path.startswith('/auth/'):
                raise AuthError(message) from e
            raise BackendError(message, status_code=e.code) from e
        except urllib.error.URLError as e:
            logger.error(f"Backend not reachable at {self.url}: {e.reason}")
            raise BackendError(f"Backend not reachable: {e.reason}") from e
        except TimeoutError as e:
            raise BackendError("Backend request timed out") from e

        if raw:
            return payload
        if not payload:
            return None
        try:
            return json.loads(payload.decode('utf-8'))
        except json.JSONDecodeError as e:
            raise BackendError(f"Malformed backend response: {e}") from e

    def _json(self, method: str, path: str, data: Any = None, token: Optional[str] = None,
              extra: Optional[Dict[str, str]] = None):
        headers = self._headers(token, {'Content-Type': 'application/json', **(extra or {})})
        body = json.dumps(data).encode('utf-8') if data is not None else None
        return self._request(method, path, body=body, headers=headers)

    @staticmethod
    def _filter_query(filters: Optional[Dict[str, Any]]) -> List[tuple]:
        params = []
        for col, val in (filters or {}).items():
            if val is None:
                params.append((col, 'is.null'))
            elif isinstance(val, bool):
                params.append((col, f"eq.{str(val).lower()}"))
            else:
                params.append((col, f"eq.{val}"))
        return params

    # ── TABLES ───────────────────────────────────────────────

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        params = [('select', '*')] + self._filter_query(filters)
        if order_by:
            params.append(('order', f"{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            params.append(('limit', str(int(limit))))
        query = urllib.parse.urlencode(params)
        return self._json('GET', f"/rest/v1/{table}?{query}") or []

    def insert(self, table, row):
        rows = self._json(
            'POST', f"/rest/v1/{table}", [row],
            extra={'Prefer': 'return=representation'},
        ) or []
        if not rows:
            raise BackendError(f"Insert into {table} returned no row")
        return rows[0]

    def update(self, table, values, filters):
        if not filters:
            raise BackendError("Refusing unfiltered update", status_code=400)
        query = urllib.parse.urlencode(self._filter_query(filters))
        return self._json(
            'PATCH', f"/rest/v1/{table}?{query}", values,
            extra={'Prefer': 'return=representation'},
        ) or []

    def delete(self, table, filters):
        if not filters:
            raise BackendError("Refusing unfiltered delete", status_code=400)
        query = urllib.parse.urlencode(self._filter_query(filters))
        rows = self._json(
            'DELETE', f"/rest/v1/{table}?{query}",
            extra={'Prefer': 'return=representation'},
        ) or []
        return len(rows)

    # ── STORAGE ──────────────────────────────────────────────

    @staticmethod
    def _object_url(bucket: str, path: str) -> str:
        return f"/storage/v1/object/{urllib.parse.quote(bucket)}/{urllib.parse.quote(path)}"

    def upload(self, bucket, path, content, content_type=None):
        headers = self._headers(extra={
            'Content-Type': content_type or 'application/octet-stream',
            'x-upsert':     'false',
        })
        self._request('POST', self._object_url(bucket, path), body=content, headers=headers)
        return path

    def download(self, bucket, path):
        return self._request('GET', self._object_url(bucket, path), raw=True)

    def remove(self, bucket, paths):
        self._json('DELETE', f"/storage/v1/object/{urllib.parse.quote(bucket)}", {'prefixes': list(paths)})

    # ── AUTH ─────────────────────────────────────────────────

    @staticmethod
    def _user_from(data: Optional[Dict[str, Any]]) -> AuthUser:
        if not isinstance(data, dict) or not data.get('id'):
            raise BackendError("Malformed auth response")
        return AuthUser.from_row(data)

    @classmethod
    def _session_from(cls, data: Optional[Dict[str, Any]]) -> AuthSession:
        if not isinstance(data, dict) or not data.get('access_token'):
            raise BackendError("Malformed auth response")
        return AuthSession(
            access_token  = data['access_token'],
            refresh_token = data.get('refresh_token', ''),
            user          = cls._user_from(data.get('user')),
            expires_at    = data.get('expires_at'),
        )

    def sign_up(self, email, password, redirect_to=None):
        path = '/auth/v1/signup'
        if redirect_to:
            path += '?' + urllib.parse.urlencode({'redirect_to': redirect_to})
        data = self._json('POST', path, {'email': email, 'password': password}) or {}
        # With email confirmation enabled the platform returns only the user.
        if data.get('access_token'):
            return self._session_from(data)
        return None

    def sign_in_with_password(self, email, password):
        data = self._json(
            'POST', '/auth/v1/token?grant_type=password',
            {'email': email, 'password': password},
        )
        return self._session_from(data)

    def sign_in_with_otp(self, phone, create_user=True):
        self._json('POST', '/auth/v1/otp', {'phone': phone, 'create_user': create_user})

    def verify_otp(self, phone, token):
        data = self._json('POST', '/auth/v1/verify', {'phone': phone, 'token': token, 'type': 'sms'})
        return self._session_from(data)

    def oauth_authorize_url(self, provider, redirect_to=None):
        params = {'provider': provider}
        if redirect_to:
            params['redirect_to'] = redirect_to
        return f"{self.url}/auth/v1/authorize?{urllib.parse.urlencode(params)}"

    def reset_password_for_email(self, email, redirect_to=None):
        path = '/auth/v1/recover'
        if redirect_to:
            path += '?' + urllib.parse.urlencode({'redirect_to': redirect_to})
        self._json('POST', path, {'email': email})

    def get_user(self, access_token):
        data = self._json('GET', '/auth/v1/user', token=access_token)
        return self._user_from(data)

    def update_user(self, access_token, password=None, data=None):
        body: Dict[str, Any] = {}
        if password is not None:
            body['password'] = password
        if data:
            body['data'] = data
        result = self._json('PUT', '/auth/v1/user', body, token=access_token)
        return self._user_from(result)

    def sign_out(self, access_token):
        self._json('POST', '/auth/v1/logout', token=access_token)

    def is_available(self) -> bool:
        """Ping the auth health endpoint."""
        try:
            self._request('GET', '/auth/v1/health')
            return True
        except (BackendError, AuthError) as e:
            logger.warning(f"Backend availability check failed: {e}")
            return False


def _error_message(e: urllib.error.HTTPError) -> str:
    """Pull the human-readable message out of a platform error body."""
    try:
        data = json.loads(e.read().decode('utf-8'))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError, AttributeError):
        return f"HTTP {e.code}"
    if isinstance(data, dict):
        for key in ('msg', 'message', 'error_description', 'error'):
            if data.get(key):
                return str(data[key])
    return f"HTTP {e.code}"
