"""
Hash & signature engine.

SHA-512 over the canonical JSON, human-readable certificate IDs derived from
the hash and creation time, and an HMAC-SHA512 signature over the identity
fields.

Certificate ID layout::

    CERT-XXXX-XXXX-XXXX-TTTT-CCCC
         \\___________/  |    |
          hash[:12]     |    md5(hash + timestamp)[:4]
                        base-36 timestamp

Example usage:
    from core.canonical import canonicalize
    from core.hashing import compute_hash, generate_certificate_id

    digest = compute_hash(canonicalize("Jane Doe", "Data Structures 101"))
    cert_id = generate_certificate_id(digest, 1700000000000)
"""

import hashlib
import hmac
import re
import secrets
from typing import Dict

from core.errors import CertificateInputError, IntegrityViolationError
from core.models import CERTIFICATE_ID_PATTERN, HASH_PATTERN

HASH_HEX_LENGTH = 128
COURSE_CODE_MAX_LENGTH = 20

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_CERTIFICATE_ID_RE = re.compile(CERTIFICATE_ID_PATTERN)
_HASH_RE = re.compile(HASH_PATTERN)
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


def compute_hash(canonical_json: str) -> str:
    """
    SHA-512 of the UTF-8 canonical string.

    Args:
        canonical_json: Output of canonicalize()

    Returns:
        128 lowercase hex characters
    """
    return hashlib.sha512(canonical_json.encode("utf-8")).hexdigest()


def to_base36(value: int) -> str:
    """Upper-case base-36 encoding of a non-negative integer."""
    if value < 0:
        raise ValueError("base-36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_certificate_id(hash_hex: str, timestamp: int) -> str:
    """
    Derive the human-readable certificate ID.

    Args:
        hash_hex: Certificate hash (128 hex chars)
        timestamp: Creation time in epoch milliseconds

    Returns:
        ID of the form CERT-XXXX-XXXX-XXXX-TTTT-CCCC
    """
    hash_part = hash_hex[:12].upper()
    time_part = to_base36(timestamp)
    checksum = hashlib.md5(f"{hash_hex}{timestamp}".encode("utf-8")).hexdigest()[:4].upper()
    return f"CERT-{hash_part[0:4]}-{hash_part[4:8]}-{hash_part[8:12]}-{time_part}-{checksum}"


def is_valid_certificate_id(certificate_id: str) -> bool:
    return isinstance(certificate_id, str) and bool(_CERTIFICATE_ID_RE.match(certificate_id))


def parse_certificate_id(certificate_id: str) -> Dict[str, object]:
    """
    Split a certificate ID into its groups.

    Returns:
        Dict with hash_prefix, timestamp (decoded) and checksum

    Raises:
        CertificateInputError: If the ID does not match the format
    """
    if not is_valid_certificate_id(certificate_id):
        raise CertificateInputError(f"Malformed certificate ID: {certificate_id!r}", field="certificate_id")
    _, g1, g2, g3, time_part, checksum = certificate_id.split("-")
    return {
        "hash_prefix": f"{g1}{g2}{g3}".lower(),
        "timestamp": int(time_part, 36),
        "checksum": checksum,
    }


def certificate_id_matches(certificate_id: str, hash_hex: str) -> bool:
    """True when the ID was derived from this hash (prefix and checksum)."""
    try:
        parts = parse_certificate_id(certificate_id)
    except CertificateInputError:
        return False
    return generate_certificate_id(hash_hex, parts["timestamp"]) == certificate_id


def sign_certificate(certificate_id: str, hash_hex: str, timestamp: int, secret: str) -> str:
    """
    HMAC-SHA512 over ``certificate_id:hash:timestamp``.

    Proves knowledge of the server secret at generation time.
    """
    message = f"{certificate_id}:{hash_hex}:{timestamp}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha512).hexdigest()


def verify_signature(certificate_id: str, hash_hex: str, timestamp: int, signature: str, secret: str) -> bool:
    """
    Constant-time signature check for out-of-band audits.

    The verification pipeline does not call this.
    """
    expected = sign_certificate(certificate_id, hash_hex, timestamp, secret)
    return hmac.compare_digest(expected, signature or "")


def generate_serial_number() -> str:
    """Random 96-bit serial number, upper-case hex. Not derived from the hash."""
    return secrets.token_hex(12).upper()


def generate_verification_code() -> str:
    """Random 48-bit verification code, upper-case hex."""
    return secrets.token_hex(6).upper()


def derive_course_code(course_name: str) -> str:
    """
    Alphanumeric, upper-cased course code of at most 20 characters.

    Example:
        >>> derive_course_code("Data Structures 101")
        'DATASTRUCTURES101'
    """
    code = _NON_ALNUM_RE.sub("", course_name or "").upper()[:COURSE_CODE_MAX_LENGTH]
    return code or "UNKNOWN"


def ensure_valid_hash(hash_hex: str) -> str:
    """Raise IntegrityViolationError unless the value is a 128-char hex digest."""
    if not isinstance(hash_hex, str) or not _HASH_RE.match(hash_hex):
        length = len(hash_hex) if isinstance(hash_hex, str) else None
        raise IntegrityViolationError(
            f"Certificate hash violates the {HASH_HEX_LENGTH}-hex-character contract",
            {'length': length}
        )
    return hash_hex


def ensure_valid_certificate_id(certificate_id: str) -> str:
    """Raise IntegrityViolationError unless the value matches the ID format."""
    if not is_valid_certificate_id(certificate_id):
        raise IntegrityViolationError(
            "Certificate ID violates the CERT-XXXX-XXXX-XXXX-TTTT-CCCC format",
            {'certificate_id': certificate_id}
        )
    return certificate_id
