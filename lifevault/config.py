"""
lifevault/config.py
JSON config persisted to lifevault_config.json, with environment overrides
for deployment. Secrets (api_key, signing_secret) are usually supplied via
the environment rather than written to disk.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from lifevault.backend.base import BackendAdapter
from lifevault.errors import ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "lifevault_config.json"

DEFAULT_CONFIG = {
    "backend": "local",                 # local | rest
    "backend_url": "",
    "api_key": "",
    "local_db_path": "lifevault.db",
    "storage_dir": "vault_storage",
    "bucket": "vault",
    "activity_limit": 100,
    "request_timeout_sec": 30,
    "signing_secret": "",
    "host": "127.0.0.1",
    "port": 8787,
}

ENV_OVERRIDES = {
    "LIFEVAULT_BACKEND": "backend",
    "LIFEVAULT_BACKEND_URL": "backend_url",
    "LIFEVAULT_API_KEY": "api_key",
    "LIFEVAULT_SIGNING_SECRET": "signing_secret",
    "LIFEVAULT_DB_PATH": "local_db_path",
}

BACKENDS = ("local", "rest")


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from lifevault_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to lifevault_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def apply_env_overrides(config: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    result = dict(config)
    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            result[key] = value
    return result


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Config file merged over defaults, then environment on top."""
    return apply_env_overrides(load_config(project_root))


def build_backend(config: Dict[str, Any]) -> BackendAdapter:
    """Construct the adapter named by config['backend']."""
    kind = config.get("backend", "local")
    if kind == "local":
        from lifevault.backend.sqlite_backend import LocalBackend
        return LocalBackend(
            db_path=Path(config.get("local_db_path") or DEFAULT_CONFIG["local_db_path"]),
            storage_dir=Path(config.get("storage_dir") or DEFAULT_CONFIG["storage_dir"]),
        )
    if kind == "rest":
        from lifevault.backend.rest_backend import RestBackend
        return RestBackend(
            url=config.get("backend_url", ""),
            api_key=config.get("api_key", ""),
            timeout_sec=int(config.get("request_timeout_sec", 30)),
        )
    raise ValidationError(f"Unknown backend '{kind}'. Use one of: {', '.join(BACKENDS)}")
