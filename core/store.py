"""
Certificate persistence.

CertificateStore is the contract the issuer and verifier depend on. Two
implementations ship: InMemoryCertificateStore for tests and single-process
tools, and SqlCertificateStore backed by the async SQLModel tables.

Records hold identifiers and course codes only; recipient names never reach
the store.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.db import Database
from core.errors import DuplicateCertificateError, IntegrityViolationError, StoreUnavailableError
from core.models import (
    AuditEvent, AuditEventType, AuditSeverity, CertificateRecord, CertificateStatus
)
from core.models_sql import AuditLog, CertificateHash

logger = logging.getLogger(__name__)


class CertificateStore(Protocol):
    """Async persistence contract for certificate records and audit events."""

    async def insert_certificate(self, record: CertificateRecord) -> CertificateRecord:
        ...

    async def find_by_hash(self, hash_hex: str) -> Optional[CertificateRecord]:
        ...

    async def find_by_id(self, certificate_id: str) -> Optional[CertificateRecord]:
        ...

    async def increment_verification(self, hash_hex: str) -> Optional[CertificateRecord]:
        """Count one verification of an ACTIVE record; None when missing or inactive."""
        ...

    async def update_status(self, certificate_id: str, status: CertificateStatus) -> Optional[CertificateRecord]:
        ...

    async def log_event(self, event: AuditEvent) -> None:
        ...

    async def health_check(self) -> Dict[str, Any]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCertificateStore:
    """
    Dict-backed store with the same uniqueness rules as the SQL tables.

    Hash, certificate ID and serial number are each unique.
    """

    def __init__(self):
        self._by_hash: Dict[str, CertificateRecord] = {}
        self._hash_by_id: Dict[str, str] = {}
        self._serials: set = set()
        self._lock = asyncio.Lock()
        self.events: List[AuditEvent] = []

    def __len__(self) -> int:
        return len(self._by_hash)

    async def insert_certificate(self, record: CertificateRecord) -> CertificateRecord:
        async with self._lock:
            for field, taken in (
                ("hash", record.hash in self._by_hash),
                ("certificate_id", record.certificate_id in self._hash_by_id),
                ("serial_number", record.serial_number in self._serials),
            ):
                if taken:
                    raise DuplicateCertificateError(
                        f"Certificate {field} already exists",
                        {'field': field, 'certificate_id': record.certificate_id}
                    )
            self._by_hash[record.hash] = record
            self._hash_by_id[record.certificate_id] = record.hash
            self._serials.add(record.serial_number)
            return record

    async def find_by_hash(self, hash_hex: str) -> Optional[CertificateRecord]:
        return self._by_hash.get(hash_hex)

    async def find_by_id(self, certificate_id: str) -> Optional[CertificateRecord]:
        hash_hex = self._hash_by_id.get(certificate_id)
        return self._by_hash.get(hash_hex) if hash_hex else None

    async def increment_verification(self, hash_hex: str) -> Optional[CertificateRecord]:
        async with self._lock:
            record = self._by_hash.get(hash_hex)
            if record is None or not record.is_active:
                return None
            updated = record.model_copy(update={
                'verification_count': record.verification_count + 1,
                'last_verified': _utcnow(),
            })
            self._by_hash[hash_hex] = updated
            return updated

    async def update_status(self, certificate_id: str, status: CertificateStatus) -> Optional[CertificateRecord]:
        async with self._lock:
            hash_hex = self._hash_by_id.get(certificate_id)
            if hash_hex is None:
                return None
            updated = self._by_hash[hash_hex].model_copy(update={'status': CertificateStatus(status)})
            self._by_hash[hash_hex] = updated
            return updated

    async def log_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    async def health_check(self) -> Dict[str, Any]:
        return {'status': 'healthy', 'backend': 'memory', 'certificates': len(self._by_hash)}


class SqlCertificateStore:
    """
    Store backed by the ``certificate_hashes`` and ``audit_log`` tables.

    Database failures surface as StoreUnavailableError; unique-constraint
    violations on insert surface as DuplicateCertificateError.
    """

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _to_record(row: Optional[CertificateHash]) -> Optional[CertificateRecord]:
        if row is None:
            return None
        try:
            return row.to_record()
        except ValidationError as e:
            raise IntegrityViolationError(
                "Persisted certificate record is corrupt",
                {'certificate_id': row.certificate_id, 'errors': e.error_count()}
            )

    async def insert_certificate(self, record: CertificateRecord) -> CertificateRecord:
        try:
            async with self.database.session() as session:
                session.add(CertificateHash.from_record(record))
        except IntegrityError as e:
            raise DuplicateCertificateError(
                "Certificate already exists",
                {'certificate_id': record.certificate_id}
            ) from e
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to store certificate: {e}") from e
        return record

    async def _find_one(self, statement) -> Optional[CertificateRecord]:
        try:
            async with self.database.session() as session:
                result = await session.execute(statement)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Certificate lookup failed: {e}") from e
        return self._to_record(row)

    async def find_by_hash(self, hash_hex: str) -> Optional[CertificateRecord]:
        return await self._find_one(select(CertificateHash).where(CertificateHash.hash == hash_hex))

    async def find_by_id(self, certificate_id: str) -> Optional[CertificateRecord]:
        return await self._find_one(
            select(CertificateHash).where(CertificateHash.certificate_id == certificate_id)
        )

    async def _update(self, statement, changes: Dict[str, Any]) -> Optional[CertificateRecord]:
        try:
            async with self.database.session() as session:
                result = await session.execute(statement.with_for_update())
                row = result.scalar_one_or_none()
                if row is None:
                    return None
                for key, value in changes.items():
                    setattr(row, key, value(row) if callable(value) else value)
                row.updated_at = _utcnow()
                session.add(row)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Certificate update failed: {e}") from e
        return self._to_record(row)

    async def increment_verification(self, hash_hex: str) -> Optional[CertificateRecord]:
        return await self._update(
            select(CertificateHash).where(
                CertificateHash.hash == hash_hex,
                CertificateHash.status == CertificateStatus.ACTIVE.value
            ),
            {
                'verification_count': lambda row: row.verification_count + 1,
                'last_verified': _utcnow(),
            }
        )

    async def update_status(self, certificate_id: str, status: CertificateStatus) -> Optional[CertificateRecord]:
        return await self._update(
            select(CertificateHash).where(CertificateHash.certificate_id == certificate_id),
            {'status': CertificateStatus(status).value}
        )

    async def log_event(self, event: AuditEvent) -> None:
        """Write an audit row; failures are logged and never fail the caller."""
        try:
            async with self.database.session() as session:
                session.add(AuditLog.for_event(
                    event.event_type,
                    event.severity,
                    certificate_hash=event.certificate_hash,
                    request_id=event.request_id,
                    details=event.details,
                    created_at=event.created_at,
                ))
        except SQLAlchemyError as e:
            logger.error(f"Failed to write audit event {event.event_type.value}: {e}")

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self.database.session() as session:
                await session.execute(select(1))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Database health check failed: {e}") from e
        return {'status': 'healthy', 'backend': 'postgresql'}


def audit_event(
    event_type: AuditEventType,
    severity: AuditSeverity = AuditSeverity.INFO,
    certificate_hash: Optional[str] = None,
    request_id: Optional[str] = None,
    **details
) -> AuditEvent:
    """Shorthand for building an AuditEvent."""
    return AuditEvent(
        event_type=event_type,
        severity=severity,
        certificate_hash=certificate_hash,
        request_id=request_id,
        details=details,
    )
