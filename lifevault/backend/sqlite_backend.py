"""
lifevault/backend/sqlite_backend.py
On-device backend adapter: SQLite tables, a directory-backed object bucket,
and password / one-time-code auth.

Used for offline runs (`lifevault serve --local`) and by the test-suite.
It mirrors the hosted platform's contract closely enough that services
cannot tell the difference: uuid ids, ISO-8601 UTC timestamps, owner-scoped
rows, and the same error messages for the auth paths the UI distinguishes.

SCHEMA DESIGN NOTES:
- vault_entries / contacts / activity_logs mirror the hosted tables 1:1
- JSON columns (metadata, user_metadata) are stored as TEXT
- booleans are stored as INTEGER 0/1 and converted back on read
- passwords are PBKDF2-SHA256 hashes with a per-user salt
"""

import hashlib
import hmac
import json
import logging
import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Iterator, List, Optional

from lifevault.backend.base import BackendAdapter
from lifevault.errors import AuthError, BackendError
from lifevault.models.record import AuthSession, AuthUser
from lifevault.timeutil import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '1.0'

JSON_COLUMNS = {'metadata', 'user_metadata'}
BOOL_COLUMNS = {'is_important', 'is_favorite', 'is_emergency_contact'}

# Tables reachable through select/insert/update/delete.
DATA_TABLES = ('vault_entries', 'contacts', 'activity_logs')

OTP_TTL          = timedelta(minutes=5)
SESSION_TTL      = timedelta(hours=1)
PBKDF2_ITERATIONS = 120_000


class LocalBackend(BackendAdapter):

    def __init__(
        self,
        db_path:     Path                                    = Path('lifevault.db'),
        storage_dir: Path                                    = Path('vault_storage'),
        otp_sender:  Optional[Callable[[str, str], None]]    = None,
        session_ttl: timedelta                               = SESSION_TTL,
        iterations:  int                                     = PBKDF2_ITERATIONS,
    ):
        self.db_path     = Path(db_path)
        self.storage_dir = Path(storage_dir)
        self.otp_sender  = otp_sender
        self.session_ttl = session_ttl
        self.iterations  = iterations
        self._columns: Dict[str, List[str]] = {}

        with self._session() as conn:
            _create_schema(conn)
            for table in DATA_TABLES:
                self._columns[table] = [
                    r['name'] for r in conn.execute(f"PRAGMA table_info({table})")
                ]

    # ── INTERNAL ─────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"SQLite operation failed: {e}")
            raise BackendError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _check_columns(self, table: str, names) -> None:
        if table not in self._columns:
            raise BackendError(f"Unknown table: {table}", status_code=404)
        unknown = [n for n in names if n not in self._columns[table]]
        if unknown:
            raise BackendError(
                f"Unknown column(s) for {table}: {', '.join(unknown)}",
                status_code=400,
            )

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in JSON_COLUMNS:
            return json.dumps(value if value is not None else {})
        if column in BOOL_COLUMNS:
            return int(bool(value))
        return value

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        d = {k: row[k] for k in row.keys()}
        for col in JSON_COLUMNS:
            if col in d and isinstance(d[col], str):
                try:
                    d[col] = json.loads(d[col])
                except (json.JSONDecodeError, TypeError):
                    pass  # leave as-is
        for col in BOOL_COLUMNS:
            if col in d and d[col] is not None:
                d[col] = bool(d[col])
        return d

    @staticmethod
    def _where(filters: Optional[Dict[str, Any]]):
        if not filters:
            return '', []
        clauses = []
        params: list = []
        for col, val in filters.items():
            if val is None:
                clauses.append(f"{col} IS NULL")
            else:
                clauses.append(f"{col} = ?")
                params.append(LocalBackend._encode(col, val))
        return ' WHERE ' + ' AND '.join(clauses), params

    # ── TABLES ───────────────────────────────────────────────

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        self._check_columns(table, list(filters or {}) + ([order_by] if order_by else []))
        where, params = self._where(filters)
        sql = f"SELECT * FROM {table}{where}"
        if order_by:
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(int(limit), 0))
        with self._session() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def insert(self, table, row):
        now = to_iso(utc_now())
        record = dict(row)
        record.setdefault('id', str(uuid.uuid4()))
        record.setdefault('created_at', now)
        if 'updated_at' in self._columns.get(table, []):
            record.setdefault('updated_at', record['created_at'])
        self._check_columns(table, record)

        cols = list(record)
        sql = (
            f"INSERT INTO {table} ({', '.join(cols)}) "
            f"VALUES ({', '.join('?' for _ in cols)})"
        )
        with self._session() as conn:
            conn.execute(sql, [self._encode(c, record[c]) for c in cols])
            stored = conn.execute(
                f"SELECT * FROM {table} WHERE id = ?", (record['id'],)
            ).fetchone()
        logger.debug(f"Inserted 1 row into {table}")
        return self._row_to_dict(stored)

    def update(self, table, values, filters):
        if not filters:
            raise BackendError("Refusing unfiltered update", status_code=400)
        values = dict(values)
        if 'updated_at' in self._columns.get(table, []):
            values.setdefault('updated_at', to_iso(utc_now()))
        self._check_columns(table, list(values) + list(filters))

        where, where_params = self._where(filters)
        assignments = ', '.join(f"{c} = ?" for c in values)
        params = [self._encode(c, v) for c, v in values.items()] + where_params
        with self._session() as conn:
            ids = [r['id'] for r in conn.execute(f"SELECT id FROM {table}{where}", where_params)]
            if not ids:
                return []
            conn.execute(f"UPDATE {table} SET {assignments}{where}", params)
            placeholders = ', '.join('?' for _ in ids)
            rows = conn.execute(
                f"SELECT * FROM {table} WHERE id IN ({placeholders})", ids
            ).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def delete(self, table, filters):
        if not filters:
            raise BackendError("Refusing unfiltered delete", status_code=400)
        self._check_columns(table, filters)
        where, params = self._where(filters)
        with self._session() as conn:
            cur = conn.execute(f"DELETE FROM {table}{where}", params)
            count = cur.rowcount
        logger.debug(f"Deleted {count} row(s) from {table}")
        return count

    # ── STORAGE ──────────────────────────────────────────────

    def _object_path(self, bucket: str, path: str) -> Path:
        rel = PurePosixPath(path)
        if not path or rel.is_absolute() or '..' in rel.parts or '..' in PurePosixPath(bucket).parts:
            raise BackendError(f"Invalid object path: {path}", status_code=400)
        return self.storage_dir / bucket / Path(*rel.parts)

    def upload(self, bucket, path, content, content_type=None):
        target = self._object_path(bucket, path)
        if target.exists():
            raise BackendError(f"The resource already exists: {path}", status_code=409)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            raise BackendError(f"Upload failed: {e}") from e
        logger.debug(f"Stored object {bucket}/{path} ({len(content)} bytes)")
        return path

    def download(self, bucket, path):
        target = self._object_path(bucket, path)
        if not target.is_file():
            raise BackendError(f"Object not found: {path}", status_code=404)
        return target.read_bytes()

    def remove(self, bucket, paths):
        for path in paths:
            target = self._object_path(bucket, path)
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                raise BackendError(f"Remove failed: {e}") from e

    # ── AUTH ─────────────────────────────────────────────────

    def _hash_password(self, password: str, salt: str) -> str:
        return hashlib.pbkdf2_hmac(
            'sha256', password.encode('utf-8'), bytes.fromhex(salt), self.iterations
        ).hex()

    def _user_from_row(self, row: sqlite3.Row) -> AuthUser:
        d = self._row_to_dict(row)
        return AuthUser.from_row(d)

    def _issue_session(self, conn: sqlite3.Connection, user_row: sqlite3.Row) -> AuthSession:
        token   = secrets.token_urlsafe(32)
        refresh = secrets.token_urlsafe(32)
        expires = utc_now() + self.session_ttl
        conn.execute(
            "INSERT INTO auth_sessions (token, refresh_token, user_id, expires_at) VALUES (?,?,?,?)",
            (token, refresh, user_row['id'], to_iso(expires)),
        )
        return AuthSession(
            access_token  = token,
            refresh_token = refresh,
            user          = self._user_from_row(user_row),
            expires_at    = int(expires.timestamp()),
        )

    def sign_up(self, email, password, redirect_to=None):
        email = (email or '').strip().lower()
        if not email or not password:
            raise AuthError("Email and password are required")
        salt = secrets.token_hex(16)
        with self._session() as conn:
            if conn.execute("SELECT 1 FROM auth_users WHERE email = ?", (email,)).fetchone():
                raise AuthError("User already registered")
            user_id = str(uuid.uuid4())
            conn.execute(
                "INSERT INTO auth_users (id, email, password_hash, salt, user_metadata, created_at) "
                "VALUES (?,?,?,?,?,?)",
                (user_id, email, self._hash_password(password, salt), salt, '{}', to_iso(utc_now())),
            )
            row = conn.execute("SELECT * FROM auth_users WHERE id = ?", (user_id,)).fetchone()
            session = self._issue_session(conn, row)
        logger.info("Local user registered")
        return session

    def sign_in_with_password(self, email, password):
        email = (email or '').strip().lower()
        with self._session() as conn:
            row = conn.execute("SELECT * FROM auth_users WHERE email = ?", (email,)).fetchone()
            if row is None or not row['password_hash'] or not hmac.compare_digest(
                self._hash_password(password or '', row['salt']), row['password_hash']
            ):
                raise AuthError("Invalid login credentials")
            return self._issue_session(conn, row)

    def sign_in_with_otp(self, phone, create_user=True):
        phone = (phone or '').strip()
        if not phone:
            raise AuthError("Phone number is required")
        if self.otp_sender is None:
            raise BackendError("Error sending confirmation sms: SMS provider not configured")
        with self._session() as conn:
            row = conn.execute("SELECT id FROM auth_users WHERE phone = ?", (phone,)).fetchone()
            if row is None and not create_user:
                raise AuthError("Signups not allowed for otp")
            code = f"{secrets.randbelow(1_000_000):06d}"
            conn.execute(
                "INSERT OR REPLACE INTO auth_otp (phone, code, expires_at, create_user) VALUES (?,?,?,?)",
                (phone, code, to_iso(utc_now() + OTP_TTL), int(create_user)),
            )
        self.otp_sender(phone, code)

    def verify_otp(self, phone, token):
        phone = (phone or '').strip()
        with self._session() as conn:
            otp = conn.execute("SELECT * FROM auth_otp WHERE phone = ?", (phone,)).fetchone()
            if (
                otp is None
                or parse_timestamp(otp['expires_at']) < utc_now()
                or not hmac.compare_digest(otp['code'], (token or '').strip())
            ):
                raise AuthError("Token has expired or is invalid")
            conn.execute("DELETE FROM auth_otp WHERE phone = ?", (phone,))
            row = conn.execute("SELECT * FROM auth_users WHERE phone = ?", (phone,)).fetchone()
            if row is None:
                user_id = str(uuid.uuid4())
                conn.execute(
                    "INSERT INTO auth_users (id, phone, user_metadata, created_at) VALUES (?,?,?,?)",
                    (user_id, phone, '{}', to_iso(utc_now())),
                )
                row = conn.execute("SELECT * FROM auth_users WHERE id = ?", (user_id,)).fetchone()
            return self._issue_session(conn, row)

    def oauth_authorize_url(self, provider, redirect_to=None):
        raise BackendError(f"Provider not found: {provider}", status_code=400)

    def reset_password_for_email(self, email, redirect_to=None):
        # No mail transport on-device; the request is accepted without
        # revealing whether the address is registered.
        logger.info("Password reset requested (local backend sends no email)")

    def _user_row_for_token(self, conn: sqlite3.Connection, access_token: str) -> sqlite3.Row:
        sess = conn.execute(
            "SELECT * FROM auth_sessions WHERE token = ?", (access_token or '',)
        ).fetchone()
        if sess is None or parse_timestamp(sess['expires_at']) < utc_now():
            raise AuthError("Invalid or expired session")
        row = conn.execute("SELECT * FROM auth_users WHERE id = ?", (sess['user_id'],)).fetchone()
        if row is None:
            raise AuthError("User not found")
        return row

    def get_user(self, access_token):
        with self._session() as conn:
            return self._user_from_row(self._user_row_for_token(conn, access_token))

    def update_user(self, access_token, password=None, data=None):
        with self._session() as conn:
            row = self._user_row_for_token(conn, access_token)
            if password is not None:
                salt = secrets.token_hex(16)
                conn.execute(
                    "UPDATE auth_users SET password_hash = ?, salt = ? WHERE id = ?",
                    (self._hash_password(password, salt), salt, row['id']),
                )
            if data:
                meta = json.loads(row['user_metadata'] or '{}')
                meta.update(data)
                conn.execute(
                    "UPDATE auth_users SET user_metadata = ? WHERE id = ?",
                    (json.dumps(meta), row['id']),
                )
            row = conn.execute("SELECT * FROM auth_users WHERE id = ?", (row['id'],)).fetchone()
            return self._user_from_row(row)

    def sign_out(self, access_token):
        with self._session() as conn:
            conn.execute("DELETE FROM auth_sessions WHERE token = ?", (access_token or '',))


# ── SCHEMA ───────────────────────────────────────────────────

def _create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS lifevault_meta (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at      TEXT    NOT NULL,
            schema_version  TEXT    NOT NULL
        );

        CREATE TABLE IF NOT EXISTS vault_entries (
            id              TEXT PRIMARY KEY,
            user_id         TEXT NOT NULL,
            title           TEXT NOT NULL,
            description     TEXT,
            category        TEXT NOT NULL,
            file_name       TEXT NOT NULL,
            file_path       TEXT NOT NULL,
            file_size       INTEGER,
            file_type       TEXT,
            is_important    INTEGER DEFAULT 0,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS contacts (
            id                   TEXT PRIMARY KEY,
            user_id              TEXT NOT NULL,
            name                 TEXT NOT NULL,
            email                TEXT,
            phone                TEXT,
            relationship         TEXT DEFAULT 'family',
            avatar_url           TEXT,
            is_favorite          INTEGER DEFAULT 0,
            is_emergency_contact INTEGER DEFAULT 0,
            notes                TEXT,
            created_at           TEXT NOT NULL,
            updated_at           TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS activity_logs (
            id                 TEXT PRIMARY KEY,
            user_id            TEXT NOT NULL,
            action_type        TEXT NOT NULL,
            action_description TEXT NOT NULL,
            category           TEXT NOT NULL,
            entity_id          TEXT,
            entity_type        TEXT,
            metadata           TEXT,    -- JSON object
            created_at         TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS auth_users (
            id              TEXT PRIMARY KEY,
            email           TEXT UNIQUE,
            phone           TEXT UNIQUE,
            password_hash   TEXT,
            salt            TEXT,
            user_metadata   TEXT,    -- JSON object
            created_at      TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS auth_sessions (
            token           TEXT PRIMARY KEY,
            refresh_token   TEXT,
            user_id         TEXT NOT NULL,
            expires_at      TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS auth_otp (
            phone           TEXT PRIMARY KEY,
            code            TEXT NOT NULL,
            expires_at      TEXT NOT NULL,
            create_user     INTEGER DEFAULT 1
        );

        CREATE INDEX IF NOT EXISTS idx_entry_user    ON vault_entries(user_id, category);
        CREATE INDEX IF NOT EXISTS idx_contact_user  ON contacts(user_id);
        CREATE INDEX IF NOT EXISTS idx_activity_user ON activity_logs(user_id, created_at);
    """)
    if conn.execute("SELECT COUNT(*) FROM lifevault_meta").fetchone()[0] == 0:
        conn.execute(
            "INSERT INTO lifevault_meta (created_at, schema_version) VALUES (?, ?)",
            (to_iso(utc_now()), SCHEMA_VERSION),
        )
