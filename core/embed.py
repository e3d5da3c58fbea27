"""
Metadata embedding and extraction.

The verification metadata is written into the rendered page as near
invisible text, once per channel. Different PDF text extractors normalize
whitespace and encodings differently, so the verifier tries every channel
in order and keeps the first payload that parses.

This is a steganographic channel, not a cryptographic one: the verifier's
hash recomputation and persisted-record lookup are what protect it.

Example usage:
    from core.embed import embed_metadata, extract_metadata

    embed_metadata(canvas_obj, metadata)
    ...
    recovered = extract_metadata(extracted_text)
"""

import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, Optional, Sequence

from pydantic import ValidationError
from reportlab.lib import colors

from core.canonical import INTEGRITY, ISSUER
from core.models import CertificateData, EmbeddedMetadata

logger = logging.getLogger(__name__)

EMBED_FONT = "Helvetica"
EMBED_FONT_SIZE = 0.1
EMBED_OPACITY = 0.01


class MetadataChannel(ABC):
    """One convention for wrapping the metadata JSON in page text."""

    name: str

    @abstractmethod
    def encode(self, payload: str) -> str:
        """Wrap the JSON payload for embedding."""

    @abstractmethod
    def candidates(self, raw_text: str) -> Iterator[str]:
        """Yield JSON strings found in extracted text, in page order."""


class DelimitedChannel(MetadataChannel):
    """Plain JSON between a start and an end marker."""

    def __init__(self, name: str, start: str, end: str):
        self.name = name
        self.start = start
        self.end = end

    def encode(self, payload: str) -> str:
        return f"{self.start}{self.wrap(payload)}{self.end}"

    def wrap(self, payload: str) -> str:
        return payload

    def unwrap(self, body: str) -> Optional[str]:
        return body

    def candidates(self, raw_text: str) -> Iterator[str]:
        position = raw_text.find(self.start)
        while position != -1:
            body_start = position + len(self.start)
            end = raw_text.find(self.end, body_start)
            if end == -1:
                return
            payload = self.unwrap(raw_text[body_start:end])
            if payload is not None:
                yield payload
            position = raw_text.find(self.start, body_start)


class Base64Channel(DelimitedChannel):
    """Base64-wrapped JSON between markers; immune to quoting and spacing."""

    def wrap(self, payload: str) -> str:
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    def unwrap(self, body: str) -> Optional[str]:
        try:
            return base64.b64decode("".join(body.split()), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None


DEFAULT_CHANNELS: Sequence[MetadataChannel] = (
    DelimitedChannel("cert-verify", "---CERT-VERIFY-START---", "---CERT-VERIFY-END---"),
    DelimitedChannel("certdata", "CERTDATA:", ":ENDDATA"),
    Base64Channel("metadata-b64", "METADATA", "ENDMETA"),
)

# Distinct page offsets (points from the top-left corner) per channel
_CHANNEL_OFFSETS = ((1, 1), (1, 5), (1, 10))


def build_embedded_metadata(
    certificate: CertificateData,
    template_id: str,
    seed: str,
    features: Dict[str, bool],
    checksum: str
) -> EmbeddedMetadata:
    """Assemble the metadata written into the document."""
    return EmbeddedMetadata(
        version=certificate.version,
        issuer=ISSUER,
        integrity=INTEGRITY,
        user=certificate.student_name,
        exam=certificate.course_name,
        timestamp=certificate.timestamp,
        nonce=certificate.nonce,
        canonical_json=certificate.canonical_json,
        hash=certificate.hash,
        certificate_id=certificate.certificate_id,
        serial_number=certificate.serial_number,
        digital_signature=certificate.digital_signature,
        course_name=certificate.course_name,
        issue_date=certificate.issue_date.isoformat(),
        template_id=template_id,
        security_seed=seed,
        security_features=dict(features),
        security_checksum=checksum,
    )


def embed_metadata(
    c,
    metadata: EmbeddedMetadata,
    channels: Sequence[MetadataChannel] = DEFAULT_CHANNELS
) -> None:
    """
    Write the metadata into the current page once per channel.

    Args:
        c: ReportLab canvas positioned on the certificate page
        metadata: Metadata to embed
        channels: Wrapping conventions, one text run each
    """
    payload = metadata.to_json()
    _, page_height = c._pagesize

    c.saveState()
    c.setFont(EMBED_FONT, EMBED_FONT_SIZE)
    c.setFillColor(colors.white, alpha=EMBED_OPACITY)
    for index, channel in enumerate(channels):
        dx, dy = _CHANNEL_OFFSETS[index % len(_CHANNEL_OFFSETS)]
        c.drawString(dx, page_height - dy - 2 * (index // len(_CHANNEL_OFFSETS)), channel.encode(payload))
    c.restoreState()


def _parse(payload: str) -> Optional[EmbeddedMetadata]:
    try:
        return EmbeddedMetadata.model_validate(json.loads(payload))
    except (ValueError, ValidationError):
        return None


def _text_variants(raw_text: str) -> Iterable[str]:
    yield raw_text
    # Extractors may break long runs into lines
    joined = raw_text.replace("\r", "").replace("\n", "")
    if joined != raw_text:
        yield joined


def extract_metadata(
    raw_text: str,
    channels: Sequence[MetadataChannel] = DEFAULT_CHANNELS
) -> Optional[EmbeddedMetadata]:
    """
    Recover embedded metadata from extracted document text.

    Args:
        raw_text: Text extracted from the PDF
        channels: Conventions to try, in order

    Returns:
        First metadata payload that parses, or None
    """
    if not raw_text:
        return None

    for text in _text_variants(raw_text):
        for channel in channels:
            for payload in channel.candidates(text):
                metadata = _parse(payload)
                if metadata is not None:
                    logger.debug(f"Metadata recovered via channel {channel.name}")
                    return metadata
    return None
