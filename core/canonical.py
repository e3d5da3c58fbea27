"""
Canonical JSON for certificate hashing.

The canonical string is the exact byte sequence that is hashed. Keys are
sorted lexicographically and the output matches what ``JSON.stringify``
produces for a key-sorted object, so any independent verifier can
reproduce it bit for bit.

Example usage:
    from core.canonical import canonicalize

    text = canonicalize("Ada Lovelace", "Intro to Algorithms",
                        timestamp=1700000000000, nonce="00" * 16)
"""

import json
import secrets
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core.errors import CertificateInputError
from core.models import CanonicalPayload

# Fixed constants of the current protocol version
PROTOCOL_VERSION = "4.0"
ISSUER = "GDPR-Compliant Certificate System"
INTEGRITY = "SHA-512"

NONCE_BYTES = 16


def current_millis() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_nonce() -> str:
    """Fresh 128-bit random nonce, hex encoded."""
    return secrets.token_hex(NONCE_BYTES)


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CertificateInputError(f"{field} is required", field=field)
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise CertificateInputError(f"{field} is not valid Unicode text", field=field) from None
    return value.strip()


def build_payload(
    user: str,
    exam: str,
    timestamp: Optional[int] = None,
    nonce: Optional[str] = None
) -> CanonicalPayload:
    """
    Build the semantic payload for a certificate.

    Args:
        user: Recipient name (trimmed)
        exam: Course or exam name (trimmed)
        timestamp: Epoch milliseconds (defaults to now)
        nonce: Hex nonce (defaults to a fresh 128-bit value)

    Returns:
        CanonicalPayload with protocol constants filled in

    Raises:
        CertificateInputError: If user, exam or nonce is missing, blank or
            not encodable, or the timestamp is not a non-negative integer
    """
    user = _require_text(user, "user")
    exam = _require_text(exam, "exam")

    if timestamp is None:
        timestamp = current_millis()
    elif isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
        raise CertificateInputError("timestamp must be a non-negative integer", field="timestamp")

    nonce = new_nonce() if nonce is None else _require_text(nonce, "nonce")

    try:
        return CanonicalPayload(
            user=user,
            exam=exam,
            timestamp=timestamp,
            nonce=nonce,
            version=PROTOCOL_VERSION,
            issuer=ISSUER,
            integrity=INTEGRITY,
        )
    except ValidationError as e:
        errors = e.errors()
        loc = errors[0]["loc"] if errors else ()
        field = str(loc[0]) if loc else None
        raise CertificateInputError(f"Invalid certificate input: {e.error_count()} error(s)", field=field) from e


def dumps_canonical(obj: Dict[str, Any]) -> str:
    """Key-sorted compact JSON with non-ASCII characters kept verbatim."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonicalize(
    user: str,
    exam: str,
    timestamp: Optional[int] = None,
    nonce: Optional[str] = None
) -> str:
    """
    Produce the canonical JSON string for a certificate.

    Args:
        user: Recipient name
        exam: Course or exam name
        timestamp: Epoch milliseconds (defaults to now)
        nonce: Hex nonce (defaults to a fresh random value)

    Returns:
        Canonical JSON string; the input of compute_hash()
    """
    payload = build_payload(user, exam, timestamp, nonce)
    return dumps_canonical(payload.model_dump())


def parse_canonical(canonical_json: str) -> CanonicalPayload:
    """
    Parse a canonical string back into its payload.

    Raises:
        ValueError: If the text is not valid JSON or misses required fields
    """
    return CanonicalPayload.model_validate(json.loads(canonical_json))
