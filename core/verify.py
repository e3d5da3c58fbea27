"""
CertSeal Certificate Verification

Verifies an uploaded certificate PDF by pulling the embedded metadata out of
the extracted text, recomputing SHA-512 over the embedded canonical JSON and
looking the recomputed hash up in the authoritative store. The embedded
metadata is untrusted: only the recomputed hash and the persisted record
decide validity, and every detail in a successful result comes from the
persisted record.

Example usage:
    from core.store import InMemoryCertificateStore
    from core.verify import CertificateVerifier

    verifier = CertificateVerifier(store)
    result = asyncio.run(verifier.verify(pdf_bytes))

    if result.valid:
        print(f"Verified {result.certificate_details.certificate_id}")
    else:
        print(f"Rejected: {result.reason.value}")
"""

import asyncio
import logging
import uuid
from concurrent.futures import Executor
from io import BytesIO
from typing import Optional, Sequence

import PyPDF2

from core.embed import DEFAULT_CHANNELS, MetadataChannel, extract_metadata
from core.errors import IntegrityViolationError
from core.hashing import compute_hash, ensure_valid_hash, is_valid_certificate_id
from core.logging import operation_logging
from core.models import (
    AuditEventType, AuditSeverity, CertificateDetails, CertificateRecord,
    EmbeddedMetadata, SecurityAssessment, VerificationReason, VerificationResult
)
from core.security import SECURITY_FEATURES, compute_security_checksum, security_seed
from core.stats import ServiceStats
from core.store import CertificateStore, audit_event
from core.templates import DEFAULT_TEMPLATE_ID

logger = logging.getLogger(__name__)

METHOD_PDF = "PDF_METADATA"
METHOD_ID = "ID_LOOKUP"
METHOD_SECURITY = "PDF_SECURITY_ANALYSIS"

DEFAULT_MIN_SECURITY_FEATURES = 4
CHECKSUM_POINTS = 2

# (minimum score percent, grade), best first
GRADE_THRESHOLDS = (
    (97.0, "A+"),
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
)


def new_verification_id() -> str:
    return f"VER-{uuid.uuid4().hex[:12].upper()}"


def security_grade(score_percent: float) -> str:
    """Letter grade for a security score in percent."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score_percent >= threshold:
            return grade
    return "F"


def extract_pdf_text(pdf_bytes: bytes) -> Optional[str]:
    """
    Extract text from every page of a PDF.

    Returns:
        Concatenated page text, or None when the bytes are not a readable PDF
    """
    try:
        reader = PyPDF2.PdfReader(BytesIO(pdf_bytes))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except Exception as e:
        logger.warning(f"Could not extract text from PDF: {e}")
        return None


def assess_security(metadata: EmbeddedMetadata) -> SecurityAssessment:
    """
    Score the visual security features declared in the metadata.

    Features count one point each; a checksum that matches the one recomputed
    from (certificate ID, hash, template) adds CHECKSUM_POINTS.
    """
    features = {name: bool(metadata.security_features.get(name)) for name in SECURITY_FEATURES}
    present = sum(features.values())

    template_id = metadata.template_id or DEFAULT_TEMPLATE_ID
    expected = compute_security_checksum(
        metadata.certificate_id,
        metadata.hash,
        security_seed(metadata.certificate_id, metadata.hash),
        template_id,
    )
    checksum_valid = metadata.security_checksum == expected

    points = present + (CHECKSUM_POINTS if checksum_valid else 0)
    score = round(points / (len(SECURITY_FEATURES) + CHECKSUM_POINTS) * 100, 1)
    return SecurityAssessment(
        features=features,
        features_present=present,
        features_total=len(SECURITY_FEATURES),
        checksum_valid=checksum_valid,
        expected_checksum=expected,
        embedded_checksum=metadata.security_checksum,
        score_percent=score,
        grade=security_grade(score),
    )


class CertificateVerifier:
    """
    Verification pipeline over an injected store.

    Verification failures are returned as results with a reason code.
    StoreUnavailableError propagates so callers never mistake an outage for
    a forged certificate.
    """

    def __init__(
        self,
        store: CertificateStore,
        stats: Optional[ServiceStats] = None,
        channels: Sequence[MetadataChannel] = DEFAULT_CHANNELS,
        min_security_features: int = DEFAULT_MIN_SECURITY_FEATURES,
        executor: Optional[Executor] = None
    ):
        self.store = store
        self.stats = stats
        self.channels = channels
        self.min_security_features = min_security_features
        self.executor = executor

    async def _extract_text(self, pdf_bytes: bytes) -> Optional[str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, extract_pdf_text, pdf_bytes)

    async def verify(self, pdf_bytes: bytes) -> VerificationResult:
        """Verify an uploaded certificate PDF."""
        with operation_logging(logger, "verify_pdf") as ctx:
            result = await self._verify_text(await self._extract_text(pdf_bytes), ctx, METHOD_PDF)
            ctx["status"] = result.reason.value
        return result

    async def verify_text(self, raw_text: str) -> VerificationResult:
        """Verify from text that was already extracted from a PDF."""
        with operation_logging(logger, "verify_text") as ctx:
            result = await self._verify_text(raw_text, ctx, METHOD_PDF)
            ctx["status"] = result.reason.value
        return result

    async def verify_security(self, pdf_bytes: bytes) -> VerificationResult:
        """
        Verify a PDF and score its visual security features.

        Validity additionally requires at least ``min_security_features``
        of the declared features.
        """
        with operation_logging(logger, "verify_security") as ctx:
            result = await self._verify_text(
                await self._extract_text(pdf_bytes), ctx, METHOD_SECURITY, with_security=True
            )
            ctx["status"] = result.reason.value
        return result

    async def verify_by_id(self, certificate_id: str) -> VerificationResult:
        """Look a certificate up by its printed ID."""
        with operation_logging(logger, "verify_id") as ctx:
            certificate_id = (certificate_id or "").strip().upper()
            if not is_valid_certificate_id(certificate_id):
                result = await self._fail(
                    VerificationReason.INVALID_CERTIFICATE_ID,
                    "Certificate ID format is invalid",
                )
            else:
                ctx["certificate_id"] = certificate_id
                record = await self.store.find_by_id(certificate_id)
                result = await self._accept_record(record, METHOD_ID)
            ctx["status"] = result.reason.value
        return result

    async def _verify_text(self, raw_text: Optional[str], ctx, method: str,
                           with_security: bool = False) -> VerificationResult:
        metadata = extract_metadata(raw_text or "", self.channels)
        if metadata is None:
            return await self._fail(
                VerificationReason.NO_METADATA_FOUND,
                "No verification metadata found in the document",
            )

        ctx["certificate_id"] = metadata.certificate_id
        if not metadata.canonical_json:
            return await self._fail(
                VerificationReason.MISSING_CANONICAL_JSON,
                "Embedded metadata has no canonical JSON",
            )

        computed_hash = compute_hash(metadata.canonical_json)
        if computed_hash != metadata.hash:
            return await self._fail(
                VerificationReason.HASH_MISMATCH,
                "Certificate content does not match its hash",
                tampered=True,
                debug_info={
                    'extracted_hash': metadata.hash,
                    'computed_hash': computed_hash,
                    'canonical_json': metadata.canonical_json,
                },
                certificate_hash=computed_hash,
            )

        security = None
        if with_security:
            security = assess_security(metadata)
            if security.features_present < self.min_security_features:
                return await self._fail(
                    VerificationReason.INSUFFICIENT_SECURITY_FEATURES,
                    f"Only {security.features_present} of {security.features_total} security features present",
                    security=security,
                    certificate_hash=computed_hash,
                )

        record = await self.store.find_by_hash(computed_hash)
        if record is not None and record.hash != computed_hash:
            raise IntegrityViolationError(
                "Store returned a record for a different hash",
                {'certificate_id': record.certificate_id}
            )
        return await self._accept_record(record, method, security=security)

    async def _accept_record(self, record: Optional[CertificateRecord], method: str,
                             security: Optional[SecurityAssessment] = None) -> VerificationResult:
        if record is None or not record.is_active:
            return await self._fail(
                VerificationReason.NOT_FOUND_OR_REVOKED,
                "Certificate not found or no longer active",
                security=security,
                certificate_hash=record.hash if record else None,
            )

        ensure_valid_hash(record.hash)
        updated = await self.store.increment_verification(record.hash)
        if updated is None or not updated.is_active:
            return await self._fail(
                VerificationReason.NOT_FOUND_OR_REVOKED,
                "Certificate not found or no longer active",
                security=security,
                certificate_hash=record.hash,
            )

        if self.stats is not None:
            self.stats.record_verification(success=True)
        await self.store.log_event(audit_event(
            AuditEventType.CERTIFICATE_VERIFIED,
            certificate_hash=updated.hash,
            method=method,
            verification_count=updated.verification_count,
        ))
        return VerificationResult(
            valid=True,
            reason=VerificationReason.VERIFIED,
            message="Certificate is authentic and active",
            verification_id=new_verification_id(),
            certificate_details=CertificateDetails.from_record(updated, method),
            security=security,
        )

    async def _fail(
        self,
        reason: VerificationReason,
        message: str,
        tampered: bool = False,
        debug_info: Optional[dict] = None,
        security: Optional[SecurityAssessment] = None,
        certificate_hash: Optional[str] = None
    ) -> VerificationResult:
        if self.stats is not None:
            self.stats.record_verification(success=False, tampered=tampered)

        if tampered:
            event_type, severity = AuditEventType.TAMPER_DETECTED, AuditSeverity.CRITICAL
        else:
            event_type, severity = AuditEventType.VERIFICATION_FAILED, AuditSeverity.WARNING
        await self.store.log_event(audit_event(
            event_type,
            severity,
            certificate_hash=certificate_hash,
            reason=reason.value,
        ))

        return VerificationResult(
            valid=False,
            reason=reason,
            message=message,
            verification_id=new_verification_id(),
            debug_info=debug_info or {},
            security=security,
        )
