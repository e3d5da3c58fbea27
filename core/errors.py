"""Centralized error kinds for the certificate integrity pipeline."""

from typing import Any, Dict, Optional


class CertSealError(Exception):
    """Base class for all CertSeal errors."""

    code = "CERTSEAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': type(self).__name__,
            'code': self.code,
            'message': str(self),
            'details': self.details,
        }


class CertificateInputError(CertSealError):
    """
    Raised when caller-supplied input is unusable.

    Covers blank names or course titles, unsupported asset MIME types and
    out-of-range render parameters. The caller can retry after correcting
    the input.
    """

    code = "INVALID_INPUT"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.field = field
        details = dict(details or {})
        if field:
            details.setdefault('field', field)
        super().__init__(message, details)


class RenderError(CertSealError):
    """Raised when the PDF engine fails mid-render."""

    code = "RENDER_FAILED"


class StoreUnavailableError(CertSealError):
    """
    Raised when the persistence collaborator cannot be reached.

    Distinct from an invalid certificate: the verifier could not check.
    """

    code = "STORE_UNAVAILABLE"


class DuplicateCertificateError(CertSealError):
    """Raised when a hash, certificate ID or serial number already exists."""

    code = "DUPLICATE_CERTIFICATE"


class IntegrityViolationError(CertSealError):
    """
    Raised when persisted data breaks the hash or ID format contract.

    Indicates data corruption or a protocol-version mismatch and should be
    alerted on, never coerced.
    """

    code = "INTEGRITY_VIOLATION"


class ConfigurationError(CertSealError):
    """Raised when required settings are missing or malformed."""

    code = "CONFIGURATION_ERROR"
