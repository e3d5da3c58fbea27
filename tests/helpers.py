"""
CertSeal Test Helper Utilities

Builders for PDFs and images used across the test suite.

Example usage:
    pdf_bytes = pdf_with_metadata(metadata)
    png = make_png((255, 0, 0))
"""

import asyncio
from io import BytesIO
from typing import Optional, Sequence

from PIL import Image
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

from core.canonical import dumps_canonical, parse_canonical
from core.embed import DEFAULT_CHANNELS, MetadataChannel, embed_metadata
from core.models import EmbeddedMetadata


def run(coro):
    """Run a coroutine to completion."""
    return asyncio.run(coro)


def make_png(color=(30, 58, 138), size=(40, 20)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(color=(200, 200, 200), size=(40, 20)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


def pdf_with_text(text: Optional[str] = None) -> bytes:
    """Single landscape page with optional visible text."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=landscape(A4), invariant=1)
    if text:
        c.setFont("Helvetica", 10)
        c.drawString(50, 300, text)
    c.showPage()
    c.save()
    return buffer.getvalue()


def pdf_with_metadata(
    metadata: EmbeddedMetadata,
    channels: Sequence[MetadataChannel] = DEFAULT_CHANNELS
) -> bytes:
    """Blank page carrying only the embedded metadata."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=landscape(A4), invariant=1)
    embed_metadata(c, metadata, channels)
    c.showPage()
    c.save()
    return buffer.getvalue()


def with_altered_field(metadata: EmbeddedMetadata, field: str, value: str) -> EmbeddedMetadata:
    """Copy of the metadata with one canonical field (user or exam) rewritten; the hash is kept."""
    payload = parse_canonical(metadata.canonical_json)
    altered = dumps_canonical({**payload.model_dump(), field: value})
    return metadata.model_copy(update={'canonical_json': altered, field: value})
