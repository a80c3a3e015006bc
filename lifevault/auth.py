"""
lifevault/auth.py
Sign-up / sign-in flows over the backend's auth API: email+password,
phone OTP, OAuth redirect, password reset, sign-out.

Provider configuration failures come back from the platform as raw
messages; they are rewritten into something a user can act on.
"""

import logging
from typing import Optional

from lifevault.backend.base import BackendAdapter
from lifevault.errors import AuthError, BackendError, LifeVaultError, ValidationError
from lifevault.models.record import AuthSession, AuthUser

logger = logging.getLogger(__name__)

OAUTH_NOT_CONFIGURED = (
    "{provider} authentication is not configured. "
    "Please enable the {provider} provider in the backend's authentication settings."
)
PHONE_NOT_CONFIGURED = (
    "Phone authentication is not configured. "
    "Please enable the phone provider and configure SMS in the backend's authentication settings."
)
SMS_NOT_CONFIGURED = (
    "SMS service is not configured. "
    "Please set up an SMS provider in the backend's authentication settings."
)


def friendly_message(message: str, provider: Optional[str] = None) -> str:
    """Rewrite known provider-configuration errors. Anything else passes through."""
    if 'Provider not found' in message or 'Provider disabled' in message:
        name = provider.capitalize() if provider else 'OAuth'
        return OAUTH_NOT_CONFIGURED.format(provider=name)
    if 'otp_disabled' in message or 'Signups not allowed for otp' in message:
        return PHONE_NOT_CONFIGURED
    if 'SMS provider' in message:
        return SMS_NOT_CONFIGURED
    return message


def _reraise_friendly(e: LifeVaultError, provider: Optional[str] = None):
    message = friendly_message(str(e), provider)
    if message == str(e):
        raise e
    if isinstance(e, BackendError):
        raise BackendError(message, status_code=e.status_code or 400) from e
    raise AuthError(message) from e


class AuthService:

    def __init__(self, backend: BackendAdapter, redirect_base: Optional[str] = None):
        self.backend       = backend
        self.redirect_base = redirect_base.rstrip('/') if redirect_base else None

    def _redirect(self, path: str) -> Optional[str]:
        return f"{self.redirect_base}{path}" if self.redirect_base else None

    # ── EMAIL / PASSWORD ─────────────────────────────────────

    def sign_up(self, email: str, password: str, confirm_password: str) -> Optional[AuthSession]:
        """None means the platform sent a confirmation email first."""
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        if not email or not password:
            raise ValidationError("Email and password are required")
        session = self.backend.sign_up(email, password, redirect_to=self._redirect('/dashboard'))
        logger.info("Sign-up accepted" + ("" if session else ", confirmation pending"))
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise ValidationError("Email and password are required")
        return self.backend.sign_in_with_password(email, password)

    # ── PHONE OTP ────────────────────────────────────────────

    def send_otp(self, phone: str, create_user: bool = True) -> None:
        if not phone:
            raise ValidationError("Please enter your phone number")
        try:
            self.backend.sign_in_with_otp(phone, create_user=create_user)
        except (AuthError, BackendError) as e:
            logger.warning(f"OTP request failed: {e}")
            _reraise_friendly(e)

    def verify_otp(self, phone: str, token: str) -> AuthSession:
        if not phone or not token:
            raise ValidationError("Phone number and code are required")
        try:
            return self.backend.verify_otp(phone, token.strip())
        except (AuthError, BackendError) as e:
            _reraise_friendly(e)

    # ── OAUTH / RESET ────────────────────────────────────────

    def oauth_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        try:
            return self.backend.oauth_authorize_url(provider, redirect_to or self._redirect(''))
        except (AuthError, BackendError) as e:
            logger.warning(f"OAuth redirect failed for {provider}: {e}")
            _reraise_friendly(e, provider)

    def reset_password(self, email: str) -> None:
        if not email or not email.strip():
            raise ValidationError("Please enter your email address")
        self.backend.reset_password_for_email(email.strip(), redirect_to=self._redirect('/auth'))

    # ── SESSION ──────────────────────────────────────────────

    def get_user(self, access_token: str) -> AuthUser:
        if not access_token:
            raise AuthError("Not signed in")
        return self.backend.get_user(access_token)

    def sign_out(self, access_token: str) -> None:
        self.backend.sign_out(access_token)
        logger.info("Signed out")
