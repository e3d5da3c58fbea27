"""
CertSeal Core Models

Pydantic v2 models for certificate records, canonical payloads, embedded
verification metadata, templates and verification results. These models
are the data contracts between the pipeline stages and the external
collaborators (persistence, template storage, callers).

Example usage:
    from core.models import CertificateRecord, CertificateStatus

    record = CertificateRecord(
        hash="ab" * 64,
        certificate_id="CERT-ABAB-ABAB-ABAB-LXYZ12-1A2B",
        course_code="DATASTRUCTURES101",
        issue_date="2026-01-15",
        serial_number="0A1B2C3D4E5F60718293A4B5",
        verification_code="A1B2C3D4E5F6",
        digital_signature="cd" * 64,
        request_id="8a9b0c1d-...",
    )
    print(record.status is CertificateStatus.ACTIVE)
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

HASH_PATTERN = r"^[0-9a-f]{128}$"
CERTIFICATE_ID_PATTERN = r"^CERT-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-Z]+-[0-9A-F]{4}$"
HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class CertificateStatus(str, Enum):
    """Lifecycle status of a persisted certificate."""
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"
    SUSPENDED = "SUSPENDED"


class VerificationReason(str, Enum):
    """Outcome codes for verification results."""
    VERIFIED = "VERIFIED"
    NO_METADATA_FOUND = "NO_METADATA_FOUND"
    MISSING_CANONICAL_JSON = "MISSING_CANONICAL_JSON"
    HASH_MISMATCH = "HASH_MISMATCH"
    NOT_FOUND_OR_REVOKED = "NOT_FOUND_OR_REVOKED"
    INVALID_CERTIFICATE_ID = "INVALID_CERTIFICATE_ID"
    INSUFFICIENT_SECURITY_FEATURES = "INSUFFICIENT_SECURITY_FEATURES"


class CanonicalPayload(BaseModel):
    """Semantic fields of a certificate; the exact input of the hash."""
    user: str = Field(..., min_length=1)
    exam: str = Field(..., min_length=1)
    timestamp: int = Field(..., ge=0, description="Creation time in epoch milliseconds")
    nonce: str = Field(..., min_length=1)
    version: str
    issuer: str
    integrity: str


class CertificateRecord(BaseModel):
    """
    Authoritative persisted verification record.

    Holds no personal data. The model is frozen: the identity tuple
    (hash, certificate_id, serial_number, digital_signature) never changes
    and stores produce updated copies for the mutable counters.
    """
    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., pattern=HASH_PATTERN)
    certificate_id: str = Field(..., pattern=CERTIFICATE_ID_PATTERN)
    course_code: str = Field(..., min_length=1, max_length=20)
    issue_date: date
    serial_number: str = Field(..., min_length=1)
    verification_code: str = Field(..., min_length=1)
    digital_signature: str = Field(..., min_length=1)
    status: CertificateStatus = CertificateStatus.ACTIVE
    security_level: str = "GDPR_COMPLIANT"
    request_id: str
    template_id: str = "standard"
    verification_count: int = Field(0, ge=0)
    last_verified: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status == CertificateStatus.ACTIVE


class CertificateData(BaseModel):
    """Everything the renderer needs for one certificate (ephemeral)."""
    certificate_id: str
    serial_number: str
    verification_code: str
    hash: str
    canonical_json: str
    digital_signature: str
    student_name: str
    course_name: str
    issue_date: datetime
    timestamp: int
    nonce: str
    version: str
    request_id: str
    status: CertificateStatus = CertificateStatus.ACTIVE


class EmbeddedMetadata(BaseModel):
    """
    Verification payload written into the rendered PDF.

    Untrusted input on the way back in: only the recomputed hash and the
    persisted record decide validity.
    """
    model_config = ConfigDict(populate_by_name=True)

    version: str
    issuer: Optional[str] = None
    integrity: Optional[str] = None
    user: Optional[str] = None
    exam: Optional[str] = None
    timestamp: Optional[int] = None
    nonce: Optional[str] = None
    canonical_json: Optional[str] = Field(None, alias="canonicalJSON")
    hash: str
    certificate_id: str = Field(..., alias="certificateId")
    serial_number: Optional[str] = Field(None, alias="serialNumber")
    digital_signature: Optional[str] = Field(None, alias="digitalSignature")
    course_name: Optional[str] = Field(None, alias="courseName")
    issue_date: Optional[str] = Field(None, alias="issueDate")
    template_id: Optional[str] = Field(None, alias="templateId")
    security_seed: Optional[str] = Field(None, alias="securitySeed")
    security_features: Dict[str, bool] = Field(default_factory=dict, alias="securityFeatures")
    security_checksum: Optional[str] = Field(None, alias="securityChecksum")
    gdpr_compliant: bool = Field(True, alias="gdprCompliant")

    def to_json(self) -> str:
        """
        Serialize with wire (camelCase) field names.

        Output is pure ASCII so the standard PDF fonts carry it losslessly;
        non-ASCII characters survive as JSON escapes.
        """
        return json.dumps(self.model_dump(mode="json", by_alias=True), separators=(",", ":"))


class FontSpec(BaseModel):
    """Font size and family for one text role."""
    size: int = Field(..., ge=1, le=200)
    family: str = Field("Helvetica", min_length=1)


class TemplateColors(BaseModel):
    """Template palette as #RRGGBB strings."""
    primary: str = Field("#1e3a8a", pattern=HEX_COLOR_PATTERN)
    secondary: str = Field("#d97706", pattern=HEX_COLOR_PATTERN)
    accent: str = Field("#059669", pattern=HEX_COLOR_PATTERN)
    background: str = Field("#ffffff", pattern=HEX_COLOR_PATTERN)
    text: str = Field("#6b7280", pattern=HEX_COLOR_PATTERN)


class TemplateFonts(BaseModel):
    """Font specs per text role, already normalized."""
    title: FontSpec = Field(default_factory=lambda: FontSpec(size=48, family="Helvetica"))
    subtitle: FontSpec = Field(default_factory=lambda: FontSpec(size=28, family="Helvetica"))
    name: FontSpec = Field(default_factory=lambda: FontSpec(size=42, family="Helvetica"))
    body: FontSpec = Field(default_factory=lambda: FontSpec(size=16, family="Helvetica"))


class TemplateAsset(BaseModel):
    """Raw image bytes with their declared MIME type."""
    data: bytes
    mime_type: str

    @field_validator('mime_type')
    @classmethod
    def normalize_mime_type(cls, v: str) -> str:
        return v.strip().lower()


class CertificateTemplate(BaseModel):
    """Resolved certificate template."""
    template_id: str
    name: str
    industry: str = "General"
    badge: str = "Professional Certification"
    colors: TemplateColors = Field(default_factory=TemplateColors)
    fonts: TemplateFonts = Field(default_factory=TemplateFonts)
    cert_title: str = "CERTIFICATE"
    cert_subtitle: str = "of Completion"
    authority: str = "GDPR-COMPLIANT CERTIFICATE AUTHORITY"
    logo: Optional[TemplateAsset] = None
    signature: Optional[TemplateAsset] = None
    background_asset: Optional[TemplateAsset] = None


class UploadedAssets(BaseModel):
    """Per-request assets uploaded by the caller; each takes precedence."""
    logo: Optional[TemplateAsset] = None
    signature: Optional[TemplateAsset] = None
    background: Optional[TemplateAsset] = None


class CertificateDetails(BaseModel):
    """Non-personal certificate details, sourced from the persisted record."""
    certificate_id: str
    course_code: str
    issue_date: date
    formatted_issue_date: str
    serial_number: str
    status: CertificateStatus
    verification_method: str
    verification_count: int = 0

    @classmethod
    def from_record(cls, record: CertificateRecord, verification_method: str) -> "CertificateDetails":
        return cls(
            certificate_id=record.certificate_id,
            course_code=record.course_code,
            issue_date=record.issue_date,
            formatted_issue_date=format_issue_date(record.issue_date),
            serial_number=record.serial_number,
            status=record.status,
            verification_method=verification_method,
            verification_count=record.verification_count,
        )


class SecurityAssessment(BaseModel):
    """Auxiliary visual-security score; never a pass/fail gate on its own."""
    features: Dict[str, bool]
    features_present: int
    features_total: int
    checksum_valid: bool
    expected_checksum: Optional[str] = None
    embedded_checksum: Optional[str] = None
    score_percent: float
    grade: str


class VerificationResult(BaseModel):
    """Verdict of one verification call."""
    valid: bool
    reason: VerificationReason
    message: str
    verification_id: str
    verified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    certificate_details: Optional[CertificateDetails] = None
    debug_info: Dict[str, Optional[str]] = Field(default_factory=dict)
    security: Optional[SecurityAssessment] = None


def format_issue_date(value) -> str:
    """Format a date the way it is printed on certificates: 'January 5, 2026'."""
    return f"{value:%B} {value.day}, {value.year}"


class AuditEventType(str, Enum):
    """Kinds of events written to the audit log."""
    CERTIFICATE_GENERATED = "CERTIFICATE_GENERATED"
    CERTIFICATE_VERIFIED = "CERTIFICATE_VERIFIED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    TAMPER_DETECTED = "TAMPER_DETECTED"
    SECURITY_ALERT = "SECURITY_ALERT"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    GDPR_COMPLIANCE_CHECK = "GDPR_COMPLIANCE_CHECK"


class AuditSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditEvent(BaseModel):
    """One audit log entry. Carries identifiers only, never personal data."""
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO
    certificate_hash: Optional[str] = None
    request_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
