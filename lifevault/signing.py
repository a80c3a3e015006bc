"""
lifevault/signing.py
Integrity signatures for user-data and activity exports.

HMAC-SHA256 over the canonical JSON of an export document (the signature
field itself excluded). Verification fails closed: a missing, malformed or
mismatched signature is never accepted.
The secret never appears in logs, exceptions or output.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Optional, Union

SIGNATURE_FIELD = "signature_hmac_sha256"


def _key(secret: str) -> bytes:
    return hashlib.sha256(secret.encode("utf-8")).digest()


def canonical_bytes(document: Dict[str, Any]) -> bytes:
    body = {k: v for k, v in document.items() if k != SIGNATURE_FIELD}
    return json.dumps(body, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def sign_bytes(content: Union[bytes, str], secret: str) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hmac.new(_key(secret), content, hashlib.sha256).hexdigest()


def verify_bytes(content: Union[bytes, str], signature: Optional[str], secret: str) -> bool:
    if not secret or not signature or not isinstance(signature, str):
        return False
    return hmac.compare_digest(sign_bytes(content, secret), signature)


def sign_export(document: Dict[str, Any], secret: Optional[str]) -> Dict[str, Any]:
    """Copy of `document` with the signature attached. No secret, no signature."""
    if not secret:
        return dict(document)
    return {**document, SIGNATURE_FIELD: sign_bytes(canonical_bytes(document), secret)}


def verify_export(document: Dict[str, Any], secret: Optional[str]) -> bool:
    return verify_bytes(canonical_bytes(document), document.get(SIGNATURE_FIELD), secret or "")
