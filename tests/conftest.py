"""
CertSeal Test Configuration and Shared Fixtures

Provides settings, an in-memory store, the template registry and ready-made
issuer/verifier instances used across the CertSeal test suite.

Example usage:
    def test_round_trip(issuer, verifier):
        issued = run(issuer.issue("Ada Lovelace", "Intro to Algorithms"))
        assert run(verifier.verify(issued.pdf_bytes)).valid
"""

import pytest

from core.config import Settings
from core.issue import CertificateIssuer
from core.stats import ServiceStats
from core.store import InMemoryCertificateStore
from core.templates import TemplateRegistry
from core.verify import CertificateVerifier

from tests.helpers import make_png, run

FIXED_NOW_MS = 1767614400000  # 2026-01-05T12:00:00Z
FIXED_NONCE = "0123456789abcdef" * 2


@pytest.fixture
def settings():
    return Settings(signing_secret="test-signing-secret", base_url="https://certs.example.test")


@pytest.fixture
def registry():
    return TemplateRegistry()


@pytest.fixture
def store():
    return InMemoryCertificateStore()


@pytest.fixture
def stats():
    return ServiceStats()


@pytest.fixture
def issuer(store, registry, settings, stats):
    return CertificateIssuer(store, registry, settings, stats=stats)


@pytest.fixture
def verifier(store, stats):
    return CertificateVerifier(store, stats=stats)


@pytest.fixture
def certificate(issuer):
    """Prepared (not rendered, not persisted) generation bundle."""
    return issuer.prepare("Ada Lovelace", "Intro to Algorithms", now_ms=FIXED_NOW_MS, nonce=FIXED_NONCE)


@pytest.fixture
def issued(issuer):
    """Certificate issued and persisted in the in-memory store."""
    return run(issuer.issue("Ada Lovelace", "Intro to Algorithms", template_id="standard"))


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def temp_dir(tmp_path):
    return tmp_path
