"""
lifevault/backend — platform adapters.

  LocalBackend  on-device SQLite + directory bucket (offline / tests)
  RestBackend   hosted platform over HTTP
"""

from lifevault.backend.base import BackendAdapter
from lifevault.backend.rest_backend import RestBackend
from lifevault.backend.sqlite_backend import LocalBackend

__all__ = [
    "BackendAdapter",
    "LocalBackend",
    "RestBackend",
]
