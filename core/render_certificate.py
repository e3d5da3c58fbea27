"""
CertSeal Certificate Renderer

Renders a single-page A4 landscape certificate with ReportLab: deterministic
security layers underneath, the recipient/course content, a verification
panel, optional logo and signature images, a QR code pointing at the public
verification page, and the triple-embedded verification metadata drawn last.

Example usage:
    from core.render_certificate import render_certificate
    from core.templates import TemplateRegistry

    pdf_bytes = render_certificate(certificate, "healthcare", TemplateRegistry(),
                                   base_url="https://certs.example.com")
"""

import logging
from io import BytesIO
from typing import Callable, Optional, Tuple

import qrcode
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from core.embed import DEFAULT_CHANNELS, build_embedded_metadata, embed_metadata
from core.errors import CertificateInputError, CertSealError, RenderError
from core.models import (
    CertificateData, CertificateTemplate, EmbeddedMetadata, TemplateAsset,
    UploadedAssets, format_issue_date
)
from core.security import SecurityPatternGenerator
from core.templates import SUPPORTED_IMAGE_TYPES, TemplateRegistry, resolve_font

logger = logging.getLogger(__name__)

# Landscape A4, 841.89 x 595.27 points
PAGE_WIDTH, PAGE_HEIGHT = landscape(A4)

MAX_SCALE = 4.0
MIN_NAME_FONT_SIZE = 12
NAME_MAX_WIDTH = PAGE_WIDTH - 160
COURSE_MAX_WIDTH = PAGE_WIDTH - 200

QR_SIZE = 90
FINGERPRINT_SIZE = 50
LOGO_SIZE = 70
SIGNATURE_WIDTH, SIGNATURE_HEIGHT = 140, 45

CREATOR = "CertSeal Certificate Engine"

QrFactory = Callable[[str], bytes]


def verification_url(base_url: str, certificate_id: str) -> str:
    """Stable public verification URL encoded in the QR code."""
    return f"{base_url.rstrip('/')}/verify/{certificate_id}"


def make_qr_png(data: str) -> bytes:
    """
    Create a QR code PNG for the verification URL.

    Args:
        data: String data to encode in QR code

    Returns:
        PNG image bytes
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)

    qr_img = qr.make_image(fill_color="black", back_color="white")
    img_buffer = BytesIO()
    qr_img.save(img_buffer, format='PNG')
    return img_buffer.getvalue()


def _top(y: float) -> float:
    """Convert a distance from the top edge into a ReportLab y coordinate."""
    return PAGE_HEIGHT - y


def _validate_scale(scale) -> float:
    if isinstance(scale, bool) or not isinstance(scale, (int, float)):
        raise CertificateInputError("scale must be a number", field="scale")
    if not 0 < scale <= MAX_SCALE:
        raise CertificateInputError(
            f"scale must be in (0, {MAX_SCALE:g}], got {scale}",
            field="scale",
            details={'scale': scale}
        )
    return float(scale)


def _validate_uploads(uploaded_assets: Optional[UploadedAssets]) -> None:
    if uploaded_assets is None:
        return
    for field in ("logo", "signature", "background"):
        asset = getattr(uploaded_assets, field)
        if asset is not None and asset.mime_type not in SUPPORTED_IMAGE_TYPES:
            raise CertificateInputError(
                f"Unsupported {field} image type: {asset.mime_type}",
                field=field,
                details={'mime_type': asset.mime_type}
            )


def _load_image(asset: Optional[TemplateAsset], role: str) -> Optional[ImageReader]:
    """Decode an optional image; anything unreadable is logged and skipped."""
    if asset is None:
        return None
    if asset.mime_type not in SUPPORTED_IMAGE_TYPES:
        logger.warning(f"Skipping {role} with unsupported type {asset.mime_type}")
        return None
    try:
        image = ImageReader(BytesIO(asset.data))
        image.getSize()
        return image
    except Exception as e:
        logger.warning(f"Skipping unreadable {role} image", extra={"error": str(e)})
        return None


def _draw_image(c, image: Optional[ImageReader], role: str, x: float, y: float,
                width: float, height: float) -> bool:
    if image is None:
        return False
    try:
        c.drawImage(image, x, y, width=width, height=height,
                    preserveAspectRatio=True, anchor='c', mask='auto')
        return True
    except Exception as e:
        logger.warning(f"Failed to draw {role} image", extra={"error": str(e)})
        return False


def _fit_font_size(text: str, font_name: str, size: float, max_width: float) -> float:
    while size > MIN_NAME_FONT_SIZE and pdfmetrics.stringWidth(text, font_name, size) > max_width:
        size -= 1
    return size


def _draw_background(c, template: CertificateTemplate,
                     uploaded_assets: Optional[UploadedAssets]) -> str:
    """Fill the page; returns which background source was used."""
    candidates = (
        ("uploaded", uploaded_assets.background if uploaded_assets else None),
        ("template", template.background_asset),
    )
    for source, asset in candidates:
        image = _load_image(asset, f"{source} background")
        if _draw_image(c, image, f"{source} background", 0, 0, PAGE_WIDTH, PAGE_HEIGHT):
            return source

    c.saveState()
    c.setFillColor(colors.HexColor(template.colors.background or "#ffffff"))
    c.rect(0, 0, PAGE_WIDTH, PAGE_HEIGHT, stroke=0, fill=1)
    c.restoreState()
    return "color"


def _draw_content(c, certificate: CertificateData, template: CertificateTemplate, scale: float) -> None:
    palette = template.colors
    fonts = template.fonts
    primary = colors.HexColor(palette.primary)
    secondary = colors.HexColor(palette.secondary)
    text_color = colors.HexColor(palette.text)
    center = PAGE_WIDTH / 2

    title_font = resolve_font(fonts.title.family, bold=True)
    c.setFillColor(primary)
    c.setFont(title_font, fonts.title.size * scale)
    c.drawCentredString(center, _top(110), template.cert_title)

    c.setFillColor(secondary)
    c.setFont(resolve_font(fonts.subtitle.family), fonts.subtitle.size * scale)
    c.drawCentredString(center, _top(145), template.cert_subtitle)

    c.setStrokeColor(secondary)
    c.setLineWidth(1.5)
    c.line(center - 120, _top(160), center + 120, _top(160))

    body_font = resolve_font(fonts.body.family)
    body_size = fonts.body.size * scale
    c.setFillColor(text_color)
    c.setFont(body_font, body_size)
    c.drawCentredString(center, _top(190), "This certifies that")

    name_font = resolve_font(fonts.name.family, bold=True)
    name_size = _fit_font_size(certificate.student_name, name_font, fonts.name.size * scale, NAME_MAX_WIDTH)
    name_width = pdfmetrics.stringWidth(certificate.student_name, name_font, name_size)
    c.setFillColor(primary)
    c.setFont(name_font, name_size)
    c.drawCentredString(center, _top(240), certificate.student_name)
    c.setStrokeColor(primary)
    c.setLineWidth(1)
    c.line(center - name_width / 2 - 10, _top(248), center + name_width / 2 + 10, _top(248))

    c.setFillColor(text_color)
    c.setFont(body_font, body_size)
    c.drawCentredString(center, _top(278), "has successfully completed the course")

    course_font = resolve_font(fonts.subtitle.family, bold=True)
    course_size = _fit_font_size(certificate.course_name, course_font, 22 * scale, COURSE_MAX_WIDTH)
    c.setFillColor(secondary)
    c.setFont(course_font, course_size)
    c.drawCentredString(center, _top(310), certificate.course_name)

    c.setFillColor(text_color)
    c.setFont(body_font, body_size * 0.85)
    c.drawCentredString(center, _top(338), f"Issued on {format_issue_date(certificate.issue_date)}")

    c.setFillColor(colors.HexColor(palette.accent))
    c.setFont(resolve_font(fonts.body.family, bold=True), 10 * scale)
    c.drawCentredString(center, _top(360), template.badge.upper())


def _draw_verification_panel(c, certificate: CertificateData, template: CertificateTemplate,
                             seed: str, scale: float) -> None:
    """Two-column block of verification identifiers."""
    primary = colors.HexColor(template.colors.primary)
    x, y_top, width, height = 60, 378, PAGE_WIDTH - 230, 90

    c.saveState()
    c.setFillColor(colors.HexColor(template.colors.background), alpha=0.85)
    c.setStrokeColor(colors.HexColor(template.colors.accent))
    c.setLineWidth(0.8)
    c.roundRect(x, _top(y_top + height), width, height, 6, stroke=1, fill=1)

    rows = (
        (("Certificate ID", certificate.certificate_id),
         ("Serial Number", certificate.serial_number)),
        (("Issue Date", format_issue_date(certificate.issue_date)),
         ("Template", template.name)),
        (("Security Seed", seed.upper()),
         ("SHA-512", f"{certificate.hash[:32]}...")),
    )
    column_width = width / 2
    label_size = 7 * min(scale, 1.5)
    value_size = 8 * min(scale, 1.5)
    for row_index, row in enumerate(rows):
        baseline = _top(y_top + 24 + row_index * 24)
        for column_index, (label, value) in enumerate(row):
            left = x + 14 + column_index * column_width
            c.setFillColor(colors.HexColor(template.colors.text))
            c.setFont("Helvetica", label_size)
            c.drawString(left, baseline + 9, label.upper())
            c.setFillColor(primary)
            c.setFont("Courier-Bold", value_size)
            c.drawString(left, baseline - 1, value)
    c.restoreState()


def _draw_qr(c, url: str, qr_factory: QrFactory, scale: float) -> bool:
    try:
        image = ImageReader(BytesIO(qr_factory(url)))
    except Exception as e:
        logger.warning("QR code generation failed", extra={"error": str(e)})
        return False

    size = QR_SIZE
    x = PAGE_WIDTH - 150
    if not _draw_image(c, image, "QR code", x, _top(372 + size), size, size):
        return False
    c.setFillColor(colors.black)
    c.setFont("Helvetica", 7 * min(scale, 1.5))
    c.drawCentredString(x + size / 2, _top(372 + size + 10), "Scan to Verify")
    return True


def _draw_signature(c, image: Optional[ImageReader], template: CertificateTemplate, scale: float) -> None:
    width = min(SIGNATURE_WIDTH * scale, 240)
    height = min(SIGNATURE_HEIGHT * scale, 80)
    x, baseline = 70, _top(528)
    _draw_image(c, image, "signature", x, baseline + 4, width, height)

    c.setStrokeColor(colors.HexColor(template.colors.text))
    c.setLineWidth(0.7)
    c.line(x, baseline, x + max(width, SIGNATURE_WIDTH), baseline)
    c.setFillColor(colors.HexColor(template.colors.text))
    c.setFont("Helvetica", 8)
    c.drawString(x, baseline - 11, "Authorized Signature")


def _draw_footer(c, template: CertificateTemplate) -> None:
    c.setFillColor(colors.HexColor(template.colors.primary))
    c.setFont("Helvetica-Bold", 9)
    c.drawCentredString(PAGE_WIDTH / 2, _top(560), template.authority)


def render_certificate_with_metadata(
    certificate: CertificateData,
    template_id: Optional[str],
    registry: TemplateRegistry,
    *,
    base_url: str,
    uploaded_assets: Optional[UploadedAssets] = None,
    scale: float = 1.0,
    metadata: Optional[EmbeddedMetadata] = None,
    qr_factory: QrFactory = make_qr_png,
    deterministic: bool = False
) -> Tuple[bytes, EmbeddedMetadata]:
    """
    Render a certificate and return the PDF with the metadata embedded in it.

    When ``metadata`` is None it is assembled after drawing, from the
    security layers that were actually drawn.

    Raises:
        CertificateInputError: Bad scale or unsupported uploaded image type
        RenderError: The PDF engine failed
    """
    scale = _validate_scale(scale)
    _validate_uploads(uploaded_assets)
    template = registry.resolve_template(template_id)

    try:
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT), invariant=1 if deterministic else 0)
        c.setTitle(f"Certificate {certificate.certificate_id}")
        c.setAuthor(template.authority)
        c.setSubject(certificate.student_name)
        c.setKeywords(f"certificate,{certificate.certificate_id}")
        c.setCreator(CREATOR)

        background = _draw_background(c, template, uploaded_assets)

        generator = SecurityPatternGenerator(certificate.certificate_id, certificate.hash, template.colors)
        generator.draw_background_layers(c, PAGE_WIDTH, PAGE_HEIGHT)

        logo = _load_image(uploaded_assets.logo if uploaded_assets and uploaded_assets.logo else template.logo, "logo")
        logo_size = min(LOGO_SIZE * scale, 120)
        _draw_image(c, logo, "logo", 60, _top(50 + logo_size), logo_size, logo_size)

        generator.draw_fingerprint(c, (PAGE_WIDTH - 60 - FINGERPRINT_SIZE, _top(50 + FINGERPRINT_SIZE)),
                                   FINGERPRINT_SIZE)

        _draw_content(c, certificate, template, scale)
        _draw_verification_panel(c, certificate, template, generator.seed, scale)
        _draw_qr(c, verification_url(base_url, certificate.certificate_id), qr_factory, scale)

        signature = _load_image(
            uploaded_assets.signature if uploaded_assets and uploaded_assets.signature else template.signature,
            "signature"
        )
        _draw_signature(c, signature, template, scale)
        _draw_footer(c, template)

        if metadata is None:
            metadata = build_embedded_metadata(
                certificate,
                template.template_id,
                generator.seed,
                generator.features,
                generator.checksum(template.template_id),
            )
        embed_metadata(c, metadata, DEFAULT_CHANNELS)

        c.showPage()
        c.save()
    except CertSealError:
        raise
    except Exception as e:
        raise RenderError(
            f"Failed to render certificate {certificate.certificate_id}: {e}",
            {'certificate_id': certificate.certificate_id}
        ) from e

    logger.debug(
        f"Rendered certificate {certificate.certificate_id}",
        extra={"template_id": template.template_id, "background": background, "scale": scale}
    )
    return buffer.getvalue(), metadata


def render_certificate(
    certificate: CertificateData,
    template_id: Optional[str],
    registry: TemplateRegistry,
    *,
    base_url: str,
    uploaded_assets: Optional[UploadedAssets] = None,
    scale: float = 1.0,
    metadata: Optional[EmbeddedMetadata] = None,
    qr_factory: QrFactory = make_qr_png,
    deterministic: bool = False
) -> bytes:
    """
    Render a certificate PDF.

    Args:
        certificate: Generation bundle from the issuer
        template_id: Template to resolve; unknown IDs fall back to ``standard``
        registry: Template registry
        base_url: Public base URL for the QR verification link
        uploaded_assets: Per-request logo, signature and background
        scale: Font and asset size multiplier in (0, 4]
        metadata: Metadata to embed instead of the generated one
        qr_factory: Callable returning PNG bytes for a URL
        deterministic: Produce byte-identical output for identical input

    Returns:
        PDF file bytes
    """
    pdf_bytes, _ = render_certificate_with_metadata(
        certificate, template_id, registry,
        base_url=base_url,
        uploaded_assets=uploaded_assets,
        scale=scale,
        metadata=metadata,
        qr_factory=qr_factory,
        deterministic=deterministic,
    )
    return pdf_bytes
