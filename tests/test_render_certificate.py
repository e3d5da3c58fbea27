"""
Certificate renderer tests.

Checks page geometry, document info, embedded metadata, asset handling and
graceful degradation of optional elements.
"""

import logging
from io import BytesIO

import PyPDF2
import pytest

from core.embed import extract_metadata
from core.errors import CertificateInputError, RenderError
from core.models import TemplateAsset, UploadedAssets
from core.render_certificate import (
    PAGE_HEIGHT, PAGE_WIDTH, make_qr_png, render_certificate, render_certificate_with_metadata,
    verification_url
)
from core.security import SECURITY_FEATURES, compute_security_checksum, security_seed
from core.verify import extract_pdf_text

from tests.helpers import make_jpeg, make_png

BASE_URL = "https://certs.example.test"


def _render(certificate, registry, **kwargs):
    kwargs.setdefault("base_url", BASE_URL)
    return render_certificate(certificate, kwargs.pop("template_id", "standard"), registry, **kwargs)


class TestDocument:
    def test_single_landscape_a4_page(self, certificate, registry):
        reader = PyPDF2.PdfReader(BytesIO(_render(certificate, registry)))

        assert len(reader.pages) == 1
        box = reader.pages[0].mediabox
        assert float(box.width) == pytest.approx(PAGE_WIDTH, abs=0.5)
        assert float(box.height) == pytest.approx(PAGE_HEIGHT, abs=0.5)
        assert PAGE_WIDTH > PAGE_HEIGHT

    def test_document_info(self, certificate, registry):
        info = PyPDF2.PdfReader(BytesIO(_render(certificate, registry))).metadata

        assert info.title == f"Certificate {certificate.certificate_id}"
        assert info.subject == "Ada Lovelace"
        assert info.author == "GDPR-COMPLIANT CERTIFICATE AUTHORITY"
        assert certificate.certificate_id in info["/Keywords"]

    def test_visible_content(self, certificate, registry):
        text = extract_pdf_text(_render(certificate, registry))

        assert "Ada Lovelace" in text
        assert "Intro to Algorithms" in text
        assert certificate.certificate_id in text
        assert "January 5, 2026" in text

    def test_deterministic_output(self, certificate, registry):
        first = _render(certificate, registry, deterministic=True)
        second = _render(certificate, registry, deterministic=True)

        assert first == second


class TestEmbeddedMetadata:
    def test_metadata_recoverable(self, certificate, registry):
        metadata = extract_metadata(extract_pdf_text(_render(certificate, registry)))

        assert metadata is not None
        assert metadata.canonical_json == certificate.canonical_json
        assert metadata.hash == certificate.hash
        assert metadata.certificate_id == certificate.certificate_id

    def test_all_security_features_recorded(self, certificate, registry):
        _, metadata = render_certificate_with_metadata(certificate, "healthcare", registry, base_url=BASE_URL)

        assert metadata.template_id == "healthcare"
        assert metadata.security_features == {name: True for name in SECURITY_FEATURES}
        seed = security_seed(certificate.certificate_id, certificate.hash)
        assert metadata.security_seed == seed
        assert metadata.security_checksum == compute_security_checksum(
            certificate.certificate_id, certificate.hash, seed, "healthcare"
        )

    def test_unknown_template_falls_back(self, certificate, registry):
        _, metadata = render_certificate_with_metadata(certificate, "nope", registry, base_url=BASE_URL)

        assert metadata.template_id == "standard"

    def test_explicit_metadata_embedded_verbatim(self, certificate, registry):
        _, generated = render_certificate_with_metadata(certificate, "standard", registry, base_url=BASE_URL)
        custom = generated.model_copy(update={'template_id': 'archived'})

        pdf_bytes = _render(certificate, registry, metadata=custom)

        assert extract_metadata(extract_pdf_text(pdf_bytes)).template_id == "archived"


class TestQrCode:
    def test_verification_url(self):
        assert verification_url("https://x.test/", "CERT-1") == "https://x.test/verify/CERT-1"

    def test_qr_factory_receives_url(self, certificate, registry):
        seen = []

        def factory(url):
            seen.append(url)
            return make_qr_png(url)

        _render(certificate, registry, qr_factory=factory)

        assert seen == [f"{BASE_URL}/verify/{certificate.certificate_id}"]

    def test_make_qr_png(self):
        assert make_qr_png("https://x.test").startswith(b"\x89PNG")

    def test_qr_failure_degrades(self, certificate, registry, caplog):
        caplog.set_level(logging.WARNING)

        def broken(url):
            raise RuntimeError("qr engine down")

        pdf_bytes = _render(certificate, registry, qr_factory=broken)

        assert extract_metadata(extract_pdf_text(pdf_bytes)) is not None
        assert "QR code generation failed" in caplog.text


class TestAssets:
    def test_uploaded_assets_rendered(self, certificate, registry):
        assets = UploadedAssets(
            logo=TemplateAsset(data=make_png(), mime_type="image/png"),
            signature=TemplateAsset(data=make_png((0, 0, 0)), mime_type="image/png"),
            background=TemplateAsset(data=make_jpeg(), mime_type="IMAGE/JPEG"),
        )

        pdf_bytes = _render(certificate, registry, uploaded_assets=assets)

        assert extract_metadata(extract_pdf_text(pdf_bytes)) is not None

    def test_unsupported_upload_rejected(self, certificate, registry):
        assets = UploadedAssets(logo=TemplateAsset(data=b"<svg/>", mime_type="image/svg+xml"))

        with pytest.raises(CertificateInputError) as exc_info:
            _render(certificate, registry, uploaded_assets=assets)
        assert exc_info.value.field == "logo"

    def test_corrupt_logo_skipped(self, certificate, registry, caplog):
        caplog.set_level(logging.WARNING)
        assets = UploadedAssets(logo=TemplateAsset(data=b"not an image", mime_type="image/png"))

        pdf_bytes = _render(certificate, registry, uploaded_assets=assets)

        assert extract_metadata(extract_pdf_text(pdf_bytes)) is not None
        assert "unreadable logo" in caplog.text


class TestScale:
    @pytest.mark.parametrize("scale", [0, -1, 4.01, True, "2"])
    def test_out_of_range(self, certificate, registry, scale):
        with pytest.raises(CertificateInputError):
            _render(certificate, registry, scale=scale)

    @pytest.mark.parametrize("scale", [0.5, 4])
    def test_page_geometry_unchanged(self, certificate, registry, scale):
        reader = PyPDF2.PdfReader(BytesIO(_render(certificate, registry, scale=scale)))

        assert float(reader.pages[0].mediabox.width) == pytest.approx(PAGE_WIDTH, abs=0.5)

    def test_long_name_still_renders(self, issuer, registry):
        certificate = issuer.prepare("Maximiliana " * 12, "A very long course title " * 4)

        assert extract_metadata(extract_pdf_text(_render(certificate, registry))) is not None


def test_engine_failure_wrapped(certificate, registry, monkeypatch):
    def explode(*args, **kwargs):
        raise ValueError("engine exploded")

    monkeypatch.setattr("core.render_certificate._draw_footer", explode)

    with pytest.raises(RenderError) as exc_info:
        _render(certificate, registry)
    assert exc_info.value.details['certificate_id'] == certificate.certificate_id
