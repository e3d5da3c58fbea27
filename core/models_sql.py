"""
SQLModel database models for CertSeal

Defines the persisted entities: CertificateHash (the authoritative
verification record, no personal data) and AuditLog.
Uses SQLModel for type-safe ORM with async PostgreSQL support
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel, Column, JSON

from core.models import AuditEventType, AuditSeverity, CertificateRecord, CertificateStatus


class CertificateHash(SQLModel, table=True):
    __tablename__ = "certificate_hashes"
    __table_args__ = (
        CheckConstraint("length(hash) = 128", name="ck_certificate_hashes_hash_length"),
        CheckConstraint("certificate_id LIKE 'CERT-%'", name="ck_certificate_hashes_id_prefix"),
        CheckConstraint(
            "status IN ('ACTIVE', 'REVOKED', 'SUSPENDED')",
            name="ck_certificate_hashes_status"
        ),
        CheckConstraint("verification_count >= 0", name="ck_certificate_hashes_count"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    hash: str = Field(unique=True, index=True, max_length=128)
    certificate_id: str = Field(unique=True, index=True, max_length=64)
    course_code: str = Field(max_length=20)
    issue_date: date
    serial_number: str = Field(unique=True, max_length=64)
    verification_code: str = Field(max_length=32)
    digital_signature: str
    status: str = Field(default=CertificateStatus.ACTIVE.value, index=True, max_length=20)
    security_level: str = Field(default="GDPR_COMPLIANT", max_length=50)
    request_id: str = Field(max_length=64)
    template_id: str = Field(default="standard", max_length=100)
    verification_count: int = Field(default=0)
    last_verified: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: CertificateRecord) -> "CertificateHash":
        data = record.model_dump()
        data["status"] = record.status.value
        return cls(**data)

    def to_record(self) -> CertificateRecord:
        """Validate the row back into the domain model."""
        return CertificateRecord(
            hash=self.hash,
            certificate_id=self.certificate_id,
            course_code=self.course_code,
            issue_date=self.issue_date,
            serial_number=self.serial_number,
            verification_code=self.verification_code,
            digital_signature=self.digital_signature,
            status=self.status,
            security_level=self.security_level,
            request_id=self.request_id,
            template_id=self.template_id,
            verification_count=self.verification_count,
            last_verified=self.last_verified,
            created_at=self.created_at,
        )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_log"
    __table_args__ = (
        CheckConstraint(
            "event_type IN ('CERTIFICATE_GENERATED', 'CERTIFICATE_VERIFIED', 'VERIFICATION_FAILED', "
            "'TAMPER_DETECTED', 'SECURITY_ALERT', 'SYSTEM_ERROR', 'GDPR_COMPLIANCE_CHECK')",
            name="ck_audit_log_event_type"
        ),
        CheckConstraint(
            "severity IN ('INFO', 'WARNING', 'ERROR', 'CRITICAL')",
            name="ck_audit_log_severity"
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_type: str = Field(index=True, max_length=50)
    severity: str = Field(default=AuditSeverity.INFO.value, max_length=20)
    certificate_hash: Optional[str] = Field(default=None, index=True, max_length=128)
    request_id: Optional[str] = Field(default=None, max_length=64)
    details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    @classmethod
    def for_event(cls, event_type: AuditEventType, severity: AuditSeverity, **kwargs) -> "AuditLog":
        return cls(event_type=event_type.value, severity=severity.value, **kwargs)
