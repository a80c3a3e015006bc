"""
lifevault/api.py
─────────────────────────────────────────────────────────────────────────────
LifeVault — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module:
         from lifevault.api import LifeVaultAPI
         api = LifeVaultAPI.from_config(ensure_config())
         session = api.sign_in("me@example.com", "secret")
         entries = api.list_entries(session["access_token"])

  2. FastAPI HTTP server:
         python -m lifevault.api                  # default: port 8787
         python -m lifevault.api --port 9000 --local
         uvicorn lifevault.api:app --port 8787

ENDPOINTS:
  /auth/...        sign-up, sign-in, phone OTP, OAuth redirect, reset, sign-out
  /vault/...       list / upload / download / edit / delete entries, summary
  /contacts/...    trusted contacts CRUD, favorite toggle, call/email/share
  /emergency/...   emergency profile, section edits, call/message/print/qr
  /activity/...    analytics + timeline, clear, CSV/JSON export
  /settings/...    profile, password, preferences, data export, deletion
  /health          liveness + backend reachability

AUTH:
  Every route except /auth/* (minus sign-out) and /health needs
  `Authorization: Bearer <access_token>`. The token is resolved through the
  backend's auth API and every table query is scoped to that user id.

ERRORS:
  ValidationError / ContactError → 400     AuthError     → 401
  NotFoundError                  → 404     VaultError    → 500
  BackendError → its own 4xx status when it has one, otherwise 502
"""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Body, FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from lifevault import __version__
from lifevault.activity.analytics import DEFAULT_RANGE
from lifevault.activity.logger import ActivityLogger
from lifevault.activity.export import EXPORT_FORMATS, export_csv, export_filename, export_json
from lifevault.activity.service import ActivityService
from lifevault.auth import AuthService
from lifevault.backend.base import BackendAdapter
from lifevault.config import DEFAULT_CONFIG, build_backend, ensure_config
from lifevault.contacts import ContactForm, ContactService, filter_contacts
from lifevault.emergency import EmergencyStore, perform_action
from lifevault.errors import (
    AuthError,
    BackendError,
    ContactError,
    LifeVaultError,
    NotFoundError,
    ValidationError,
    VaultError,
)
from lifevault.models.record import AuthSession, AuthUser
from lifevault.settings import PreferenceStore, SettingsService, display_name_for
from lifevault.vault import (
    CATEGORY_DESCRIPTIONS,
    VaultService,
    filter_entries,
    format_file_size,
)

logger = logging.getLogger(__name__)


def _session_dict(session: AuthSession) -> Dict[str, Any]:
    return {
        "access_token":  session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at":    session.expires_at,
        "user":          asdict(session.user),
    }


def _entry_dict(entry) -> Dict[str, Any]:
    return {**entry.to_row(), "size_label": format_file_size(entry.file_size)}


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class LifeVaultAPI:
    """
    Pure-Python facade over the services. No HTTP layer required.
    Methods take the caller's access token and return plain dicts.
    """

    def __init__(
        self,
        backend:        BackendAdapter,
        signing_secret: Optional[str] = None,
        activity_limit: int           = 100,
        bucket:         str           = "vault",
        backend_kind:   str           = "local",
    ):
        self.backend        = backend
        self.signing_secret = signing_secret or None
        self.activity_limit = int(activity_limit)
        self.bucket         = bucket
        self.backend_kind   = backend_kind
        self.auth           = AuthService(backend)
        self.emergency      = EmergencyStore()
        self.preferences    = PreferenceStore()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "LifeVaultAPI":
        return cls(
            backend        = build_backend(config),
            signing_secret = config.get("signing_secret"),
            activity_limit = config.get("activity_limit", 100),
            bucket         = config.get("bucket", "vault"),
            backend_kind   = config.get("backend", "local"),
        )

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def authenticate(self, access_token: str) -> Tuple[AuthUser, BackendAdapter]:
        """Resolve the token to a user and an adapter acting on their behalf."""
        user = self.auth.get_user(access_token)
        return user, self.backend.for_session(access_token)

    def _vault(self, backend: BackendAdapter) -> VaultService:
        return VaultService(backend, bucket=self.bucket)

    def _settings(self, backend: BackendAdapter) -> SettingsService:
        return SettingsService(
            backend,
            preferences    = self.preferences,
            signing_secret = self.signing_secret,
            activity_limit = self.activity_limit,
        )

    # ── AUTH ──────────────────────────────────────────────────────────────

    def sign_up(self, email: str, password: str, confirm_password: str) -> Dict[str, Any]:
        session = self.auth.sign_up(email, password, confirm_password)
        if session is None:
            return {"status": "confirmation_pending",
                    "message": "Please check your email to confirm your account."}
        return {"status": "ok", "session": _session_dict(session)}

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        return _session_dict(self.auth.sign_in(email, password))

    def send_otp(self, phone: str, create_user: bool = True) -> Dict[str, Any]:
        self.auth.send_otp(phone, create_user)
        return {"status": "sent", "message": "Check your phone for the verification code."}

    def verify_otp(self, phone: str, token: str) -> Dict[str, Any]:
        return _session_dict(self.auth.verify_otp(phone, token))

    def oauth_url(self, provider: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        return {"provider": provider, "url": self.auth.oauth_url(provider, redirect_to)}

    def reset_password(self, email: str) -> Dict[str, Any]:
        self.auth.reset_password(email)
        return {"status": "sent", "message": "Check your email for the password reset link."}

    def sign_out(self, access_token: str) -> Dict[str, Any]:
        self.auth.sign_out(access_token)
        return {"status": "ok"}

    # ── VAULT ─────────────────────────────────────────────────────────────

    def list_entries(
        self,
        access_token:   str,
        category:       Optional[str] = None,
        query:          str           = "",
        important_only: bool          = False,
    ) -> List[Dict[str, Any]]:
        user, backend = self.authenticate(access_token)
        entries = self._vault(backend).list_entries(user.id, category)
        return [_entry_dict(e) for e in filter_entries(entries, category, query, important_only)]

    def vault_summary(self, access_token: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        dashboard = self._vault(backend).dashboard(user.id)
        return {
            "counts":       dict(dashboard.counts),
            "total":        dashboard.total,
            "descriptions": CATEGORY_DESCRIPTIONS,
        }

    def upload_entry(
        self,
        access_token: str,
        title:        str,
        category:     str,
        file_name:    str,
        content:      bytes,
        description:  Optional[str] = None,
        is_important: bool          = False,
        file_type:    Optional[str] = None,
    ) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        vault = self._vault(backend)
        dashboard = vault.dashboard(user.id)
        entry = vault.upload_entry(
            user.id, title, category, file_name, content,
            description=description, is_important=is_important, file_type=file_type,
        )
        dashboard.apply_upload(entry.category)
        return {"entry": _entry_dict(entry), "summary": dict(dashboard.counts)}

    def update_entry(self, access_token: str, entry_id: str, **changes) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return _entry_dict(self._vault(backend).update_entry(user.id, entry_id, **changes))

    def delete_entry(self, access_token: str, entry_id: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        vault = self._vault(backend)
        dashboard = vault.dashboard(user.id)
        entry = vault.delete_entry(user.id, entry_id)
        dashboard.apply_delete(entry)
        return {"deleted": _entry_dict(entry), "summary": dict(dashboard.counts)}

    def download_entry(self, access_token: str, entry_id: str) -> Tuple[str, bytes, str]:
        user, backend = self.authenticate(access_token)
        return self._vault(backend).download_entry(user.id, entry_id)

    # ── CONTACTS ──────────────────────────────────────────────────────────

    def list_contacts(self, access_token: str, query: str = "", filter_by: str = "all") -> List[Dict[str, Any]]:
        user, backend = self.authenticate(access_token)
        contacts = ContactService(backend).list_contacts(user.id)
        return [c.to_row() for c in filter_contacts(contacts, query, filter_by)]

    def create_contact(self, access_token: str, form: ContactForm) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return ContactService(backend).create_contact(user.id, form).to_row()

    def update_contact(self, access_token: str, contact_id: str, form: ContactForm) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return ContactService(backend).update_contact(user.id, contact_id, form).to_row()

    def delete_contact(self, access_token: str, contact_id: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return ContactService(backend).delete_contact(user.id, contact_id).to_row()

    def toggle_favorite(self, access_token: str, contact_id: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return ContactService(backend).toggle_favorite(user.id, contact_id).to_row()

    def contact_action(self, access_token: str, contact_id: str, action: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        result = ContactService(backend).perform_action(user.id, contact_id, action)
        return {"action": action, "result": result}

    # ── EMERGENCY ─────────────────────────────────────────────────────────

    def get_emergency(self, access_token: str) -> Dict[str, Any]:
        user, _ = self.authenticate(access_token)
        return self.emergency.get(user.id).to_dict()

    def update_emergency(self, access_token: str, mode: str, data: Dict[str, Any]) -> Dict[str, Any]:
        user, _ = self.authenticate(access_token)
        return self.emergency.update(user.id, mode, data).to_dict()

    def emergency_action(self, access_token: str, action: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        result = perform_action(action, self.emergency.get(user.id), user.id, ActivityLogger(backend))
        return {"action": action, "result": result}

    # ── ACTIVITY ──────────────────────────────────────────────────────────

    def activity_overview(self, access_token: str, category: str = "all", days: int = DEFAULT_RANGE) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return ActivityService(backend, self.activity_limit).overview(user.id, category, days)

    def clear_activity(self, access_token: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return {"deleted": ActivityService(backend, self.activity_limit).delete_all(user.id)}

    def export_activity(
        self,
        access_token: str,
        fmt:          str = "csv",
        category:     str = "all",
        days:         int = DEFAULT_RANGE,
    ) -> Tuple[str, str, str]:
        """Returns (filename, body, media_type) for the filtered timeline."""
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(f"Unsupported export format '{fmt}'. Use one of: {', '.join(EXPORT_FORMATS)}")
        user, backend = self.authenticate(access_token)
        logs = ActivityService(backend, self.activity_limit).timeline(user.id, category, days)
        if fmt == "csv":
            return export_filename("csv"), export_csv(logs), "text/csv"
        body = export_json(logs, parameters={"category": category, "days": int(days)})
        return export_filename("json"), body, "application/json"

    # ── SETTINGS ──────────────────────────────────────────────────────────

    def get_settings(self, access_token: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        settings = self._settings(backend)
        return {
            "profile": {
                "id":           user.id,
                "email":        user.email,
                "phone":        user.phone,
                "display_name": display_name_for(user),
                "created_at":   user.created_at,
            },
            "preferences": settings.get_preferences(user.id),
        }

    def update_profile(self, access_token: str, display_name: str) -> Dict[str, Any]:
        _, backend = self.authenticate(access_token)
        user = self._settings(backend).update_display_name(access_token, display_name)
        return {"display_name": display_name_for(user)}

    def change_password(self, access_token: str, new_password: str, confirm_password: str) -> Dict[str, Any]:
        _, backend = self.authenticate(access_token)
        self._settings(backend).change_password(access_token, new_password, confirm_password)
        return {"status": "ok", "message": "Your password has been updated successfully."}

    def update_preferences(self, access_token: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return self._settings(backend).update_preferences(user.id, changes)

    def export_user_data(self, access_token: str) -> Dict[str, Any]:
        user, backend = self.authenticate(access_token)
        return self._settings(backend).export_user_data(user)

    def request_account_deletion(self, access_token: str) -> Dict[str, Any]:
        self.authenticate(access_token)
        return {"status": "not_supported", "message": SettingsService.request_account_deletion()}

    # ── HEALTH ────────────────────────────────────────────────────────────

    def health(self) -> Dict[str, Any]:
        return {
            "status":            "ok",
            "backend":           self.backend_kind,
            "backend_available": self.backend.is_available(),
            "version":           __version__,
        }


# ═══════════════════════════════════════════════════════════════════════════
# ERROR MAPPING
# ═══════════════════════════════════════════════════════════════════════════

def _http_error(exc: LifeVaultError, where: str) -> HTTPException:
    if isinstance(exc, (ValidationError, ContactError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, BackendError):
        if exc.status_code and 400 <= exc.status_code < 500:
            return HTTPException(status_code=exc.status_code, detail=exc.message)
        logger.error(f"{where} backend error: {exc}", exc_info=True)
        return HTTPException(status_code=502, detail=exc.message)
    if isinstance(exc, VaultError):
        logger.error(f"{where} error: {exc}", exc_info=True)
        return HTTPException(status_code=500, detail=str(exc))
    logger.error(f"{where} error: {exc}", exc_info=True)
    return HTTPException(status_code=500, detail=str(exc))


def _bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Expected 'Authorization: Bearer <token>'")
    return token.strip()


def _attachment(file_name: str) -> str:
    """Content-Disposition with an ASCII fallback plus the RFC 5987 UTF-8 name."""
    fallback = "".join(
        ch if " " <= ch <= "~" and ch not in '"\\' else "_"
        for ch in file_name
    ) or "download"
    quoted = urllib.parse.quote(file_name, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quoted}"


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class SignUpRequest(BaseModel):
    email:            str
    password:         str
    confirm_password: str


class SignInRequest(BaseModel):
    email:    str
    password: str


class OtpRequest(BaseModel):
    phone:       str
    create_user: bool = True


class OtpVerifyRequest(BaseModel):
    phone: str
    token: str


class ResetRequest(BaseModel):
    email: str


class EntryUpdateRequest(BaseModel):
    title:        Optional[str]  = None
    description:  Optional[str]  = None
    category:     Optional[str]  = None
    is_important: Optional[bool] = None


class ContactRequest(BaseModel):
    name:                 str
    email:                str  = ""
    phone:                str  = ""
    relationship:         str  = "family"
    notes:                str  = ""
    is_favorite:          bool = False
    is_emergency_contact: bool = False

    def to_form(self) -> ContactForm:
        return ContactForm(
            name                 = self.name,
            email                = self.email or "",
            phone                = self.phone or "",
            relationship         = self.relationship,
            notes                = self.notes or "",
            is_favorite          = self.is_favorite,
            is_emergency_contact = self.is_emergency_contact,
        )


class ProfileRequest(BaseModel):
    display_name: str


class PasswordRequest(BaseModel):
    new_password:     str
    confirm_password: str


def _build_app(
    config:  Optional[Dict[str, Any]] = None,
    backend: Optional[BackendAdapter] = None,
) -> FastAPI:
    """
    Build and return the FastAPI application instance.
    `backend` overrides the adapter named in config (used by tests).
    """
    config = {**DEFAULT_CONFIG, **(config or {})}
    if backend is None:
        _api = LifeVaultAPI.from_config(config)
    else:
        _api = LifeVaultAPI(
            backend,
            signing_secret = config.get("signing_secret"),
            activity_limit = config.get("activity_limit", 100),
            bucket         = config.get("bucket", "vault"),
            backend_kind   = config.get("backend", "local"),
        )

    _app = FastAPI(
        title       = "LifeVault API",
        description = "Personal document vault, trusted contacts, emergency profile and activity log",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )
    _app.state.api = _api

    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            f"http://localhost:{config.get('port', 8787)}",
            "http://127.0.0.1",
            f"http://127.0.0.1:{config.get('port', 8787)}",
        ],
        allow_methods     = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers     = ["Content-Type", "Authorization"],
        allow_credentials = False,
    )

    # ── AUTH ────────────────────────────────────────────────────────────

    @_app.post("/auth/signup", summary="Create account")
    def signup(req: SignUpRequest):
        try:
            return _api.sign_up(req.email, req.password, req.confirm_password)
        except LifeVaultError as exc:
            raise _http_error(exc, "Sign-up") from exc

    @_app.post("/auth/signin", summary="Email + password sign-in")
    def signin(req: SignInRequest):
        try:
            return _api.sign_in(req.email, req.password)
        except LifeVaultError as exc:
            raise _http_error(exc, "Sign-in") from exc

    @_app.post("/auth/otp", summary="Send SMS one-time code")
    def send_otp(req: OtpRequest):
        try:
            return _api.send_otp(req.phone, req.create_user)
        except LifeVaultError as exc:
            raise _http_error(exc, "OTP") from exc

    @_app.post("/auth/otp/verify", summary="Verify SMS one-time code")
    def verify_otp(req: OtpVerifyRequest):
        try:
            return _api.verify_otp(req.phone, req.token)
        except LifeVaultError as exc:
            raise _http_error(exc, "OTP verify") from exc

    @_app.post("/auth/reset", summary="Send password reset email")
    def reset(req: ResetRequest):
        try:
            return _api.reset_password(req.email)
        except LifeVaultError as exc:
            raise _http_error(exc, "Password reset") from exc

    @_app.get("/auth/oauth/{provider}", summary="OAuth authorize URL")
    def oauth(provider: str, redirect_to: Optional[str] = Query(None)):
        try:
            return _api.oauth_url(provider, redirect_to)
        except LifeVaultError as exc:
            raise _http_error(exc, "OAuth") from exc

    @_app.post("/auth/signout", summary="Sign out")
    def signout(authorization: Optional[str] = Header(None)):
        try:
            return _api.sign_out(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Sign-out") from exc

    # ── VAULT ───────────────────────────────────────────────────────────

    @_app.get("/vault/entries", summary="List vault entries")
    def list_entries(
        category:      Optional[str] = Query(None, description="medical, legal, digital, personal"),
        q:             str           = Query("", description="Search title, description, file name"),
        important:     bool          = Query(False),
        authorization: Optional[str] = Header(None),
    ):
        try:
            data = _api.list_entries(_bearer(authorization), category, q, important)
            return {"count": len(data), "entries": data}
        except LifeVaultError as exc:
            raise _http_error(exc, "List entries") from exc

    @_app.post("/vault/entries", summary="Upload a document", status_code=201)
    def upload_entry(
        file:          UploadFile    = File(...),
        title:         str           = Form(...),
        category:      str           = Form(...),
        description:   Optional[str] = Form(None),
        is_important:  bool          = Form(False),
        authorization: Optional[str] = Header(None),
    ):
        try:
            content = file.file.read()
            return _api.upload_entry(
                _bearer(authorization), title, category, file.filename or "", content,
                description=description, is_important=is_important,
                file_type=file.content_type,
            )
        except LifeVaultError as exc:
            raise _http_error(exc, "Upload") from exc

    @_app.get("/vault/entries/{entry_id}/download", summary="Download an entry's file")
    def download_entry(entry_id: str, authorization: Optional[str] = Header(None)):
        try:
            name, content, media_type = _api.download_entry(_bearer(authorization), entry_id)
        except LifeVaultError as exc:
            raise _http_error(exc, "Download") from exc
        return Response(
            content    = content,
            media_type = media_type,
            headers    = {"Content-Disposition": _attachment(name)},
        )

    @_app.patch("/vault/entries/{entry_id}", summary="Edit entry metadata")
    def update_entry(entry_id: str, req: EntryUpdateRequest, authorization: Optional[str] = Header(None)):
        changes = req.model_dump(exclude_none=True)
        try:
            return _api.update_entry(_bearer(authorization), entry_id, **changes)
        except LifeVaultError as exc:
            raise _http_error(exc, "Update entry") from exc

    @_app.delete("/vault/entries/{entry_id}", summary="Delete an entry and its file")
    def delete_entry(entry_id: str, authorization: Optional[str] = Header(None)):
        try:
            return _api.delete_entry(_bearer(authorization), entry_id)
        except LifeVaultError as exc:
            raise _http_error(exc, "Delete entry") from exc

    @_app.get("/vault/summary", summary="Entry counts per category")
    def vault_summary(authorization: Optional[str] = Header(None)):
        try:
            return _api.vault_summary(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Vault summary") from exc

    # ── CONTACTS ────────────────────────────────────────────────────────

    @_app.get("/contacts", summary="List trusted contacts")
    def list_contacts(
        q:             str           = Query(""),
        filter:        str           = Query("all", description="all, favorites, recent, or a relationship"),
        authorization: Optional[str] = Header(None),
    ):
        try:
            data = _api.list_contacts(_bearer(authorization), q, filter)
            return {"count": len(data), "contacts": data}
        except LifeVaultError as exc:
            raise _http_error(exc, "List contacts") from exc

    @_app.post("/contacts", summary="Add contact", status_code=201)
    def create_contact(req: ContactRequest, authorization: Optional[str] = Header(None)):
        try:
            return _api.create_contact(_bearer(authorization), req.to_form())
        except LifeVaultError as exc:
            raise _http_error(exc, "Create contact") from exc

    @_app.put("/contacts/{contact_id}", summary="Edit contact")
    def update_contact(contact_id: str, req: ContactRequest, authorization: Optional[str] = Header(None)):
        try:
            return _api.update_contact(_bearer(authorization), contact_id, req.to_form())
        except LifeVaultError as exc:
            raise _http_error(exc, "Update contact") from exc

    @_app.delete("/contacts/{contact_id}", summary="Delete contact")
    def delete_contact(contact_id: str, authorization: Optional[str] = Header(None)):
        try:
            return _api.delete_contact(_bearer(authorization), contact_id)
        except LifeVaultError as exc:
            raise _http_error(exc, "Delete contact") from exc

    @_app.post("/contacts/{contact_id}/favorite", summary="Toggle favorite")
    def favorite(contact_id: str, authorization: Optional[str] = Header(None)):
        try:
            return _api.toggle_favorite(_bearer(authorization), contact_id)
        except LifeVaultError as exc:
            raise _http_error(exc, "Favorite") from exc

    @_app.post("/contacts/{contact_id}/actions/{action}", summary="Call / email / share")
    def contact_action(contact_id: str, action: str, authorization: Optional[str] = Header(None)):
        try:
            return _api.contact_action(_bearer(authorization), contact_id, action)
        except LifeVaultError as exc:
            raise _http_error(exc, "Contact action") from exc

    # ── EMERGENCY ───────────────────────────────────────────────────────

    @_app.get("/emergency", summary="Emergency profile")
    def get_emergency(authorization: Optional[str] = Header(None)):
        try:
            return _api.get_emergency(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Emergency profile") from exc

    @_app.put("/emergency/{mode}", summary="Edit contact, medical or insurance section")
    def update_emergency(
        mode:          str,
        data:          Dict[str, Any] = Body(...),
        authorization: Optional[str]  = Header(None),
    ):
        try:
            return _api.update_emergency(_bearer(authorization), mode, data)
        except LifeVaultError as exc:
            raise _http_error(exc, "Emergency update") from exc

    @_app.post("/emergency/actions/{action}", summary="Call / message / print / qr")
    def emergency_action(action: str, authorization: Optional[str] = Header(None)):
        try:
            return _api.emergency_action(_bearer(authorization), action)
        except LifeVaultError as exc:
            raise _http_error(exc, "Emergency action") from exc

    # ── ACTIVITY ────────────────────────────────────────────────────────

    @_app.get("/activity", summary="Analytics and filtered timeline")
    def activity(
        category:      str           = Query("all"),
        days:          int           = Query(DEFAULT_RANGE, ge=1),
        authorization: Optional[str] = Header(None),
    ):
        try:
            return _api.activity_overview(_bearer(authorization), category, days)
        except LifeVaultError as exc:
            raise _http_error(exc, "Activity") from exc

    @_app.delete("/activity", summary="Clear all activity")
    def clear_activity(authorization: Optional[str] = Header(None)):
        try:
            return _api.clear_activity(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Clear activity") from exc

    @_app.get("/activity/export", summary="Export the filtered timeline")
    def export_activity(
        format:        str           = Query("csv", description="csv or json"),
        category:      str           = Query("all"),
        days:          int           = Query(DEFAULT_RANGE, ge=1),
        authorization: Optional[str] = Header(None),
    ):
        try:
            name, body, media_type = _api.export_activity(_bearer(authorization), format, category, days)
        except LifeVaultError as exc:
            raise _http_error(exc, "Activity export") from exc
        return Response(
            content    = body,
            media_type = media_type,
            headers    = {"Content-Disposition": _attachment(name)},
        )

    # ── SETTINGS ────────────────────────────────────────────────────────

    @_app.get("/settings", summary="Profile and preferences")
    def get_settings(authorization: Optional[str] = Header(None)):
        try:
            return _api.get_settings(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Settings") from exc

    @_app.put("/settings/profile", summary="Update display name")
    def update_profile(req: ProfileRequest, authorization: Optional[str] = Header(None)):
        try:
            return _api.update_profile(_bearer(authorization), req.display_name)
        except LifeVaultError as exc:
            raise _http_error(exc, "Profile update") from exc

    @_app.post("/settings/password", summary="Change password")
    def change_password(req: PasswordRequest, authorization: Optional[str] = Header(None)):
        try:
            return _api.change_password(_bearer(authorization), req.new_password, req.confirm_password)
        except LifeVaultError as exc:
            raise _http_error(exc, "Password change") from exc

    @_app.put("/settings/preferences", summary="Update notification / privacy toggles")
    def update_preferences(
        changes:       Dict[str, Any] = Body(...),
        authorization: Optional[str]  = Header(None),
    ):
        try:
            return _api.update_preferences(_bearer(authorization), changes)
        except LifeVaultError as exc:
            raise _http_error(exc, "Preferences") from exc

    @_app.get("/settings/export", summary="Export all account data")
    def export_data(authorization: Optional[str] = Header(None)):
        try:
            return _api.export_user_data(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Data export") from exc

    @_app.delete("/settings/account", summary="Request account deletion")
    def delete_account(authorization: Optional[str] = Header(None)):
        try:
            return _api.request_account_deletion(_bearer(authorization))
        except LifeVaultError as exc:
            raise _http_error(exc, "Account deletion") from exc

    @_app.get("/health", summary="Health check")
    def health():
        return _api.health()

    return _app


_app_instance: Optional[FastAPI] = None


def __getattr__(name: str):
    # `uvicorn lifevault.api:app` resolves this attribute. Built on first
    # access so importing the module never opens a database.
    global _app_instance
    if name == "app":
        if _app_instance is None:
            _app_instance = _build_app(ensure_config())
        return _app_instance
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m lifevault.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        prog        = "lifevault.api",
        description = "LifeVault API server",
    )
    parser.add_argument("--port",  type=int, default=None, help="Port to bind (default: 8787)")
    parser.add_argument("--host",  type=str, default=None, help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--local", action="store_true", help="Use the on-device SQLite backend")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
    )

    cfg = ensure_config(Path.cwd())
    if args.local:
        cfg["backend"] = "local"
    host = args.host or cfg["host"]
    port = args.port or int(cfg["port"])

    uvicorn.run(_build_app(cfg), host=host, port=port, log_level="info")
