"""
CertSeal Certificate Issuer

Generation pipeline: canonicalize the recipient and course, hash, derive the
certificate ID, sign, render the PDF with embedded metadata, then persist
the non-personal verification record.

Rendering happens before persistence, so a render failure never leaves an
orphaned record behind.

Example usage:
    issuer = CertificateIssuer(store, TemplateRegistry(), Settings.from_env())
    issued = asyncio.run(issuer.issue("Jane Doe", "Data Structures 101", "healthcare"))
    Path(f"{issued.certificate.certificate_id}.pdf").write_bytes(issued.pdf_bytes)
"""

import asyncio
import functools
import logging
import uuid
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel

from core.canonical import build_payload, dumps_canonical
from core.config import Settings
from core.hashing import (
    compute_hash, derive_course_code, generate_certificate_id, generate_serial_number,
    generate_verification_code, sign_certificate
)
from core.logging import operation_logging
from core.models import (
    AuditEventType, CertificateData, CertificateRecord, EmbeddedMetadata, UploadedAssets
)
from core.render_certificate import QrFactory, make_qr_png, render_certificate_with_metadata
from core.stats import ServiceStats
from core.store import CertificateStore, audit_event
from core.templates import TemplateRegistry

logger = logging.getLogger(__name__)


class IssuedCertificate(BaseModel):
    """Outcome of one successful generation."""
    certificate: CertificateData
    record: CertificateRecord
    metadata: EmbeddedMetadata
    pdf_bytes: bytes


class CertificateIssuer:
    """
    Issues certificates against an injected store and template registry.

    Raises ConfigurationError on construction when no signing secret is set.
    """

    def __init__(
        self,
        store: CertificateStore,
        registry: TemplateRegistry,
        settings: Settings,
        stats: Optional[ServiceStats] = None,
        executor: Optional[Executor] = None,
        qr_factory: QrFactory = make_qr_png
    ):
        self.store = store
        self.registry = registry
        self.settings = settings
        self.stats = stats
        self.executor = executor
        self.qr_factory = qr_factory
        self._secret = settings.require_signing_secret()

    def prepare(
        self,
        student_name: str,
        course_name: str,
        now_ms: Optional[int] = None,
        nonce: Optional[str] = None
    ) -> CertificateData:
        """
        Build the generation bundle for one certificate.

        One creation timestamp feeds the canonical JSON, the certificate ID
        and the signature.

        Raises:
            CertificateInputError: If the name or course is blank
        """
        payload = build_payload(student_name, course_name, timestamp=now_ms, nonce=nonce)
        canonical_json = dumps_canonical(payload.model_dump())
        digest = compute_hash(canonical_json)
        certificate_id = generate_certificate_id(digest, payload.timestamp)

        return CertificateData(
            certificate_id=certificate_id,
            serial_number=generate_serial_number(),
            verification_code=generate_verification_code(),
            hash=digest,
            canonical_json=canonical_json,
            digital_signature=sign_certificate(certificate_id, digest, payload.timestamp, self._secret),
            student_name=payload.user,
            course_name=payload.exam,
            issue_date=datetime.fromtimestamp(payload.timestamp / 1000, tz=timezone.utc),
            timestamp=payload.timestamp,
            nonce=payload.nonce,
            version=payload.version,
            request_id=str(uuid.uuid4()),
        )

    def build_document(
        self,
        certificate: CertificateData,
        template_id: Optional[str] = None,
        assets: Optional[UploadedAssets] = None,
        scale: float = 1.0,
        deterministic: bool = False
    ) -> Tuple[bytes, EmbeddedMetadata]:
        """Render the PDF synchronously; returns the bytes and embedded metadata."""
        return render_certificate_with_metadata(
            certificate,
            template_id,
            self.registry,
            base_url=self.settings.base_url,
            uploaded_assets=assets,
            scale=scale,
            qr_factory=self.qr_factory,
            deterministic=deterministic,
        )

    async def issue(
        self,
        student_name: str,
        course_name: str,
        template_id: Optional[str] = None,
        assets: Optional[UploadedAssets] = None,
        scale: float = 1.0,
        now_ms: Optional[int] = None
    ) -> IssuedCertificate:
        """
        Generate, render and persist one certificate.

        Raises:
            CertificateInputError: Unusable input
            RenderError: The PDF engine failed; nothing was persisted
            DuplicateCertificateError: The identity collided in the store
            StoreUnavailableError: Persistence failed
        """
        with operation_logging(logger, "issue_certificate") as ctx:
            certificate = self.prepare(student_name, course_name, now_ms=now_ms)
            ctx["certificate_id"] = certificate.certificate_id

            loop = asyncio.get_running_loop()
            pdf_bytes, metadata = await loop.run_in_executor(
                self.executor,
                functools.partial(self.build_document, certificate, template_id, assets, scale)
            )

            record = CertificateRecord(
                hash=certificate.hash,
                certificate_id=certificate.certificate_id,
                course_code=derive_course_code(certificate.course_name),
                issue_date=certificate.issue_date.date(),
                serial_number=certificate.serial_number,
                verification_code=certificate.verification_code,
                digital_signature=certificate.digital_signature,
                status=certificate.status,
                request_id=certificate.request_id,
                template_id=metadata.template_id,
            )
            await self.store.insert_certificate(record)
            await self.store.log_event(audit_event(
                AuditEventType.CERTIFICATE_GENERATED,
                certificate_hash=certificate.hash,
                request_id=certificate.request_id,
                template_id=record.template_id,
                size_bytes=len(pdf_bytes),
            ))
            if self.stats is not None:
                self.stats.record_generated()
            ctx["template_id"] = record.template_id

        return IssuedCertificate(
            certificate=certificate,
            record=record,
            metadata=metadata,
            pdf_bytes=pdf_bytes,
        )
