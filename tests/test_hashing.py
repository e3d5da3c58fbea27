"""Hash, certificate ID and signature tests."""

import hashlib
import re

import pytest

from core.canonical import canonicalize
from core.errors import CertificateInputError, IntegrityViolationError
from core.hashing import (
    certificate_id_matches, compute_hash, derive_course_code, ensure_valid_certificate_id,
    ensure_valid_hash, generate_certificate_id, generate_serial_number,
    generate_verification_code, is_valid_certificate_id, parse_certificate_id,
    sign_certificate, to_base36, verify_signature
)

SHA512_ABC = (
    "ddaf35a193617abacc417349ae20413112e6fa4e89a97ea20a9eeee64b55d39a"
    "2192992a274fc1a836ba3c23a3feebbd454d4423643ce80e2a9ac94fa54ca49f"
)
TIMESTAMP = 1700000000000


@pytest.fixture
def digest():
    return compute_hash(canonicalize("Ada Lovelace", "Intro to Algorithms", timestamp=TIMESTAMP, nonce="00" * 16))


class TestComputeHash:
    def test_known_vector(self):
        assert compute_hash("abc") == SHA512_ABC

    def test_lowercase_128_hex(self, digest):
        assert re.fullmatch(r"[0-9a-f]{128}", digest)

    def test_utf8_encoding(self):
        assert compute_hash("é") == hashlib.sha512("é".encode("utf-8")).hexdigest()


class TestBase36:
    @pytest.mark.parametrize("value,expected", [(0, "0"), (35, "Z"), (36, "10"), (1295, "ZZ")])
    def test_known_values(self, value, expected):
        assert to_base36(value) == expected

    def test_decodes_back(self):
        assert int(to_base36(TIMESTAMP), 36) == TIMESTAMP

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_base36(-1)


class TestCertificateId:
    def test_layout(self, digest):
        cert_id = generate_certificate_id(digest, TIMESTAMP)
        prefix = digest[:12].upper()
        checksum = hashlib.md5(f"{digest}{TIMESTAMP}".encode()).hexdigest()[:4].upper()

        assert cert_id == f"CERT-{prefix[:4]}-{prefix[4:8]}-{prefix[8:]}-{to_base36(TIMESTAMP)}-{checksum}"
        assert is_valid_certificate_id(cert_id)

    def test_parse(self, digest):
        parts = parse_certificate_id(generate_certificate_id(digest, TIMESTAMP))

        assert parts['hash_prefix'] == digest[:12]
        assert parts['timestamp'] == TIMESTAMP
        assert len(parts['checksum']) == 4

    @pytest.mark.parametrize("bad", ["", "CERT-", "cert-abcd-abcd-abcd-1-abcd", "CERT-ABCD-ABCD-ABCD-LX-ABC", 123])
    def test_malformed_rejected(self, bad):
        assert not is_valid_certificate_id(bad)
        with pytest.raises(CertificateInputError):
            parse_certificate_id(bad)

    def test_matches_only_its_hash(self, digest):
        cert_id = generate_certificate_id(digest, TIMESTAMP)
        other = compute_hash("something else")

        assert certificate_id_matches(cert_id, digest)
        assert not certificate_id_matches(cert_id, other)
        assert not certificate_id_matches("garbage", digest)


class TestSignature:
    def test_deterministic_hmac_sha512(self, digest):
        cert_id = generate_certificate_id(digest, TIMESTAMP)
        first = sign_certificate(cert_id, digest, TIMESTAMP, "secret")

        assert first == sign_certificate(cert_id, digest, TIMESTAMP, "secret")
        assert len(first) == 128

    def test_depends_on_secret(self, digest):
        cert_id = generate_certificate_id(digest, TIMESTAMP)

        assert sign_certificate(cert_id, digest, TIMESTAMP, "a") != sign_certificate(cert_id, digest, TIMESTAMP, "b")

    def test_verify_signature(self, digest):
        cert_id = generate_certificate_id(digest, TIMESTAMP)
        signature = sign_certificate(cert_id, digest, TIMESTAMP, "secret")

        assert verify_signature(cert_id, digest, TIMESTAMP, signature, "secret")
        assert not verify_signature(cert_id, digest, TIMESTAMP + 1, signature, "secret")
        assert not verify_signature(cert_id, digest, TIMESTAMP, signature, "other")
        assert not verify_signature(cert_id, digest, TIMESTAMP, None, "secret")


class TestRandomIdentifiers:
    def test_serial_number(self):
        serial = generate_serial_number()

        assert re.fullmatch(r"[0-9A-F]{24}", serial)
        assert serial != generate_serial_number()

    def test_verification_code(self):
        assert re.fullmatch(r"[0-9A-F]{12}", generate_verification_code())


class TestCourseCode:
    def test_strips_and_uppercases(self):
        assert derive_course_code("Data Structures 101") == "DATASTRUCTURES101"

    def test_truncated_after_stripping(self):
        code = derive_course_code("Advanced Topics in Distributed Systems")

        assert code == "ADVANCEDTOPICSINDIST"
        assert len(code) == 20

    @pytest.mark.parametrize("name", ["", "!!! ---", None])
    def test_empty_falls_back(self, name):
        assert derive_course_code(name) == "UNKNOWN"


class TestContracts:
    def test_ensure_valid_hash(self, digest):
        assert ensure_valid_hash(digest) == digest
        with pytest.raises(IntegrityViolationError) as exc_info:
            ensure_valid_hash(digest[:127])
        assert exc_info.value.details['length'] == 127

    def test_uppercase_hash_rejected(self, digest):
        with pytest.raises(IntegrityViolationError):
            ensure_valid_hash(digest.upper())

    def test_ensure_valid_certificate_id(self, digest):
        cert_id = generate_certificate_id(digest, TIMESTAMP)

        assert ensure_valid_certificate_id(cert_id) == cert_id
        with pytest.raises(IntegrityViolationError):
            ensure_valid_certificate_id("CERT-XYZ")
