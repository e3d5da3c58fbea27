"""
CertSeal CLI Main Module

Command-line interface for CertSeal using Typer.
Issues, verifies, inspects and revokes certificates; configuration comes
from the environment (see core.config).
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import typer

from core.config import Settings
from core.db import Database
from core.embed import extract_metadata
from core.errors import CertSealError
from core.hashing import certificate_id_matches, compute_hash, verify_signature
from core.issue import CertificateIssuer
from core.logging import setup_logging
from core.models import CertificateStatus, TemplateAsset, UploadedAssets, VerificationResult
from core.stats import ServiceStats
from core.store import CertificateStore, InMemoryCertificateStore, SqlCertificateStore
from core.templates import TemplateRegistry, YamlTemplateSource, guess_mime_type
from core.verify import CertificateVerifier, extract_pdf_text

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="certseal",
    help="CertSeal - tamper-evident certificate issuing and verification",
    add_completion=False
)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    log_format: str = typer.Option("text", "--log-format", help="Log format: json or text")
) -> None:
    """CertSeal certificate integrity tools."""
    setup_logging(level=log_level, format_type=log_format, stream=sys.stderr)


def load_settings() -> Settings:
    return Settings.from_env()


def build_registry(settings: Settings) -> TemplateRegistry:
    sources = [YamlTemplateSource(settings.template_file)] if settings.template_file else []
    return TemplateRegistry(sources)


def build_store(settings: Settings, dry_run: bool = False) -> Tuple[CertificateStore, Optional[Database]]:
    """
    Store for CLI commands.

    Returns the store and the Database to close afterwards (None for the
    in-memory store).
    """
    if dry_run:
        return InMemoryCertificateStore(), None
    if not settings.database_url:
        typer.echo("DATABASE_URL is not set", err=True)
        raise typer.Exit(2)
    database = Database.from_settings(settings)
    return SqlCertificateStore(database), database


def _run(coro, database: Optional[Database]):
    async def runner():
        try:
            return await coro
        finally:
            if database is not None:
                await database.close()
    return asyncio.run(runner())


def _asset(path: Optional[Path]) -> Optional[TemplateAsset]:
    if path is None:
        return None
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(1)
    return TemplateAsset(data=path.read_bytes(), mime_type=guess_mime_type(path))


def _read_pdf(path: Path) -> bytes:
    if not path.exists():
        typer.echo(f"Certificate PDF not found: {path}", err=True)
        raise typer.Exit(1)
    return path.read_bytes()


def _report(result: VerificationResult, output_json: Optional[Path]) -> None:
    if output_json:
        output_json.write_text(result.model_dump_json(indent=2), encoding='utf-8')

    if result.valid:
        details = result.certificate_details
        typer.echo("✓ Certificate VERIFIED")
        typer.echo(f"  Certificate ID: {details.certificate_id}")
        typer.echo(f"  Course code: {details.course_code}")
        typer.echo(f"  Issued: {details.formatted_issue_date}")
        typer.echo(f"  Serial: {details.serial_number}")
        typer.echo(f"  Method: {details.verification_method}")
    else:
        typer.echo(f"✗ Certificate NOT VERIFIED ({result.reason.value})")
        typer.echo(f"  {result.message}")
        for key, value in result.debug_info.items():
            if key != "canonical_json":
                typer.echo(f"  {key}: {value}")

    if result.security is not None:
        security = result.security
        typer.echo(
            f"  Security: {security.features_present}/{security.features_total} features, "
            f"checksum {'valid' if security.checksum_valid else 'invalid'}, "
            f"grade {security.grade} ({security.score_percent}%)"
        )
    typer.echo(f"  Verification ID: {result.verification_id}")


@app.command()
def generate(
    student_name: str = typer.Argument(..., help="Recipient name"),
    course_name: str = typer.Argument(..., help="Course or exam name"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template ID"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output PDF path"),
    logo: Optional[Path] = typer.Option(None, "--logo", help="Logo image (PNG/JPEG/GIF)"),
    signature: Optional[Path] = typer.Option(None, "--signature", help="Signature image"),
    background: Optional[Path] = typer.Option(None, "--background", help="Background image"),
    scale: float = typer.Option(1.0, "--scale", help="Font and asset scale, 0 < scale <= 4"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Render without persisting the record")
) -> None:
    """
    Issue a certificate and write the PDF.

    With --dry-run the record is kept in memory only, so the resulting PDF
    will not verify against the database.
    """
    settings = load_settings()
    assets = UploadedAssets(logo=_asset(logo), signature=_asset(signature), background=_asset(background))
    store, database = build_store(settings, dry_run=dry_run)

    try:
        issuer = CertificateIssuer(store, build_registry(settings), settings, stats=ServiceStats())
        issued = _run(issuer.issue(student_name, course_name, template, assets, scale), database)
    except CertSealError as e:
        typer.echo(f"Failed to generate certificate: {e}", err=True)
        raise typer.Exit(1)

    certificate = issued.certificate
    path = output or Path(f"{certificate.certificate_id}.pdf")
    path.write_bytes(issued.pdf_bytes)

    typer.echo("✓ Certificate generated")
    typer.echo(f"  Certificate ID: {certificate.certificate_id}")
    typer.echo(f"  Serial: {certificate.serial_number}")
    typer.echo(f"  Verification code: {certificate.verification_code}")
    typer.echo(f"  Template: {issued.record.template_id}")
    typer.echo(f"  Hash: {certificate.hash[:32]}...")
    typer.echo(f"  Path: {path}")
    typer.echo(f"  Size: {len(issued.pdf_bytes):,} bytes")
    if dry_run:
        typer.echo("  Mode: dry run (record not persisted)")


@app.command()
def verify(
    pdf: Path = typer.Argument(..., help="Certificate PDF to verify"),
    security: bool = typer.Option(False, "--security", help="Also score visual security features"),
    output_json: Optional[Path] = typer.Option(None, "--output-json", help="Save the result as JSON")
) -> None:
    """Verify a certificate PDF against the database."""
    pdf_bytes = _read_pdf(pdf)
    settings = load_settings()
    store, database = build_store(settings)
    verifier = CertificateVerifier(store)

    try:
        check = verifier.verify_security(pdf_bytes) if security else verifier.verify(pdf_bytes)
        result = _run(check, database)
    except CertSealError as e:
        typer.echo(f"Verification could not be completed: {e}", err=True)
        raise typer.Exit(2)

    _report(result, output_json)
    if not result.valid:
        raise typer.Exit(1)


@app.command("verify-id")
def verify_id(
    certificate_id: str = typer.Argument(..., help="Certificate ID (CERT-XXXX-XXXX-XXXX-TTTT-CCCC)"),
    output_json: Optional[Path] = typer.Option(None, "--output-json", help="Save the result as JSON")
) -> None:
    """Verify a certificate by its printed ID."""
    settings = load_settings()
    store, database = build_store(settings)

    try:
        result = _run(CertificateVerifier(store).verify_by_id(certificate_id), database)
    except CertSealError as e:
        typer.echo(f"Verification could not be completed: {e}", err=True)
        raise typer.Exit(2)

    _report(result, output_json)
    if not result.valid:
        raise typer.Exit(1)


@app.command()
def inspect(
    pdf: Path = typer.Argument(..., help="Certificate PDF"),
    check_signature: bool = typer.Option(
        False, "--check-signature", help="Audit the HMAC signature with the configured secret"
    ),
    show_json: bool = typer.Option(False, "--json", help="Print the embedded metadata as JSON")
) -> None:
    """
    Offline inspection of the embedded metadata.

    Recomputes the hash and checks the certificate ID against it; does not
    consult the database.
    """
    metadata = extract_metadata(extract_pdf_text(_read_pdf(pdf)) or "")
    if metadata is None:
        typer.echo("✗ No verification metadata found", err=True)
        raise typer.Exit(1)

    if show_json:
        typer.echo(json.dumps(json.loads(metadata.to_json()), indent=2, ensure_ascii=False))
        return

    computed = compute_hash(metadata.canonical_json) if metadata.canonical_json else None
    hash_ok = computed == metadata.hash
    id_ok = certificate_id_matches(metadata.certificate_id, metadata.hash)

    typer.echo(f"Certificate ID: {metadata.certificate_id}")
    typer.echo(f"  Protocol version: {metadata.version}")
    typer.echo(f"  Template: {metadata.template_id}")
    typer.echo(f"  Serial: {metadata.serial_number}")
    typer.echo(f"  Issue date: {metadata.issue_date}")
    typer.echo(f"  Hash: {'✓ matches canonical JSON' if hash_ok else '✗ does not match canonical JSON'}")
    typer.echo(f"  Certificate ID: {'✓ derived from hash' if id_ok else '✗ not derived from hash'}")

    features = metadata.security_features
    typer.echo(f"  Security features: {sum(1 for v in features.values() if v)}/{len(features)}")

    signature_ok = True
    if check_signature:
        settings = load_settings()
        try:
            secret = settings.require_signing_secret()
        except CertSealError as e:
            typer.echo(f"Cannot audit signature: {e}", err=True)
            raise typer.Exit(2)
        signature_ok = metadata.timestamp is not None and verify_signature(
            metadata.certificate_id, metadata.hash, metadata.timestamp, metadata.digital_signature, secret
        )
        typer.echo(f"  Signature: {'✓ valid' if signature_ok else '✗ invalid'}")

    if not (hash_ok and id_ok and signature_ok):
        raise typer.Exit(1)


@app.command()
def revoke(
    certificate_id: str = typer.Argument(..., help="Certificate ID"),
    status: CertificateStatus = typer.Option(
        CertificateStatus.REVOKED, "--status", case_sensitive=False, help="New status"
    )
) -> None:
    """Change a certificate's status (revoke, suspend or reinstate)."""
    settings = load_settings()
    store, database = build_store(settings)

    try:
        record = _run(store.update_status(certificate_id.strip().upper(), status), database)
    except CertSealError as e:
        typer.echo(f"Status update failed: {e}", err=True)
        raise typer.Exit(2)

    if record is None:
        typer.echo(f"Certificate not found: {certificate_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ {record.certificate_id} is now {record.status.value}")


@app.command()
def templates() -> None:
    """List available certificate templates."""
    settings = load_settings()
    try:
        available = build_registry(settings).list_templates()
    except CertSealError as e:
        typer.echo(f"Failed to load templates: {e}", err=True)
        raise typer.Exit(1)

    for template in available:
        typer.echo(f"{template.template_id:<16} {template.name:<24} {template.industry}")


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    settings = load_settings()
    _, database = build_store(settings)
    try:
        _run(database.init_db(), database)
    except Exception as e:
        typer.echo(f"Database initialization failed: {e}", err=True)
        logger.exception("Database initialization failed")
        raise typer.Exit(1)
    typer.echo("✓ Database tables created")


@app.command()
def health() -> None:
    """Check database connectivity."""
    settings = load_settings()
    store, database = build_store(settings)
    try:
        status = _run(store.health_check(), database)
    except CertSealError as e:
        typer.echo(f"✗ Unhealthy: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ {status['status']} ({status['backend']})")


if __name__ == "__main__":
    app()
