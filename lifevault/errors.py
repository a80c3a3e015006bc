"""
lifevault/errors.py
Exception hierarchy shared by services, backends and the API layer.
The API maps each class to an HTTP status; services never build responses.
"""

from typing import Optional


class LifeVaultError(Exception):
    """Base class for every error raised by lifevault."""


class BackendError(LifeVaultError):
    """A call to the backend platform failed (network, HTTP status, storage)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message     = message
        self.status_code = status_code


class AuthError(LifeVaultError):
    """Missing, expired or rejected credentials."""


class ValidationError(LifeVaultError):
    """User input rejected before any backend call was made."""


class NotFoundError(LifeVaultError):
    """Record does not exist or is not owned by the caller."""


class VaultError(LifeVaultError):
    """Vault upload/update/delete could not be completed."""


class ContactError(LifeVaultError):
    """Contact action cannot be performed (e.g. calling a contact with no phone)."""
