"""
Conduit Webhook Ingress — Inbound Event Envelope.

Inbound provider webhooks arrive as a raw body plus headers. This module
provides the envelope types and HMAC helpers shared by every
integration kind:
- Case-insensitive header access
- HMAC-SHA256 / SHA512 signing and constant-time verification
- JSON body decoding that reports failures as values, not exceptions
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
import hashlib
import hmac
import json

import httpx

INVALID_PAYLOAD = "Invalid payload"

_ALGORITHMS = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


@dataclass
class WebhookPayload:
    """Raw inbound webhook."""
    body: str | bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.headers = httpx.Headers(dict(self.headers))

    @property
    def text(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    @property
    def raw(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")

    def header(self, name: str) -> str | None:
        return self.headers.get(name)

    def json(self) -> Any:
        return json.loads(self.text)


@dataclass
class WebhookResult:
    """Outcome of processing an inbound webhook."""
    success: bool
    event_type: Optional[str] = None
    error: Optional[str] = None
    response: Any = None

    @classmethod
    def ok(cls, event_type: str | None = None, response: Any = None) -> "WebhookResult":
        return cls(success=True, event_type=event_type, response=response)

    @classmethod
    def failed(cls, error: str, event_type: str | None = None) -> "WebhookResult":
        return cls(success=False, event_type=event_type, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "event_type": self.event_type,
            "error": self.error,
        }


def sign_payload(payload: str | bytes, secret: str, algorithm: str = "sha256") -> str:
    """Generate a hex HMAC signature for a payload."""
    digest = _ALGORITHMS.get(algorithm)
    if digest is None:
        raise ValueError(f"Unsupported signature algorithm: {algorithm}")
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    return hmac.new(secret.encode("utf-8"), body, digest).hexdigest()


def verify_webhook_signature(
    payload: str | bytes,
    signature: str,
    secret: str,
    algorithm: str = "sha256",
) -> bool:
    """
    Verify an HMAC signature. Accepts a bare hex digest or one prefixed
    with the algorithm name (``sha256=<hex>``).
    """
    if not signature or not secret:
        return False
    prefix = f"{algorithm}="
    if signature.startswith(prefix):
        signature = signature[len(prefix):]
    expected = sign_payload(payload, secret, algorithm)
    return hmac.compare_digest(expected, signature.strip().lower())
