"""HMAC-SHA256 signing for outbound webhook payloads.

Payloads are serialized canonically (sorted keys, compact separators,
UTF-8) and the exact same bytes are signed and sent, so a subscriber can
verify the signature over the raw request body it received.

Example:
    ```python
    body = serialize_payload(payload)
    signature = sign(payload, secret)
    assert verify_signature(body, signature, secret)
    ```
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
CONTENT_TYPE = "application/json"


def serialize_payload(payload: Mapping[str, Any]) -> bytes:
    """Deterministic JSON encoding of a payload."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def compute_signature(body: bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()


def sign(payload: Mapping[str, Any], secret: str) -> str:
    """Sign a payload.

    Args:
        payload: JSON-compatible payload; serialized with serialize_payload().
        secret: Shared secret for HMAC.

    Returns:
        Lowercase hex digest.
    """
    return compute_signature(serialize_payload(payload), secret)


def verify_signature(raw_body: bytes | str, signature: str, secret: str) -> bool:
    """Verify a signature over the exact bytes received.

    The comparison is constant-time. Malformed signatures simply fail.

    Args:
        raw_body: Request body as received (str is UTF-8 encoded).
        signature: Hex digest from the signature header.
        secret: Shared secret for HMAC.
    """
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    expected = compute_signature(raw_body, secret)
    try:
        return hmac.compare_digest(expected, signature)
    except TypeError:
        # non-ASCII str or a non-str signature
        return False


def build_headers(
    body: bytes,
    secret: str,
    event: str,
    timestamp: str,
    user_agent: str,
    custom_headers: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Outgoing request headers for a delivery.

    Custom headers are merged last and replace defaults with the same
    name, compared case-insensitively.
    """
    headers = {
        "Content-Type": CONTENT_TYPE,
        "User-Agent": user_agent,
        EVENT_HEADER: event,
        TIMESTAMP_HEADER: timestamp,
        SIGNATURE_HEADER: compute_signature(body, secret),
    }
    return merge_headers(headers, custom_headers)


def merge_headers(
    base: Mapping[str, str], overrides: Mapping[str, str] | None
) -> dict[str, str]:
    """Case-insensitive header merge; ``overrides`` win."""
    if not overrides:
        return dict(base)
    overridden = {name.lower() for name in overrides}
    merged = {name: value for name, value in base.items() if name.lower() not in overridden}
    merged.update(overrides)
    return merged


def overrides_header(headers: Mapping[str, str], name: str) -> bool:
    """Whether ``headers`` contains ``name`` (case-insensitive)."""
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)
