"""
Canonical JSON tests.

The canonical string is the exact hash input, so these tests pin its byte
layout rather than only its parsed content.
"""

import json

import pytest
from freezegun import freeze_time

from core.canonical import (
    INTEGRITY, ISSUER, PROTOCOL_VERSION, build_payload, canonicalize, current_millis,
    dumps_canonical, new_nonce, parse_canonical
)
from core.errors import CertificateInputError

NONCE = "ab" * 16


class TestCanonicalize:
    def test_exact_layout(self):
        text = canonicalize("Ada Lovelace", "Intro to Algorithms", timestamp=1700000000000, nonce=NONCE)

        assert text == (
            '{"exam":"Intro to Algorithms","integrity":"SHA-512",'
            '"issuer":"GDPR-Compliant Certificate System",'
            f'"nonce":"{NONCE}","timestamp":1700000000000,'
            '"user":"Ada Lovelace","version":"4.0"}'
        )

    def test_keys_sorted_and_compact(self):
        text = canonicalize("A", "B", timestamp=1, nonce=NONCE)
        keys = list(json.loads(text).keys())

        assert keys == sorted(keys)
        assert ", " not in text and ": " not in text

    def test_inputs_are_trimmed(self):
        padded = canonicalize("  Ada Lovelace ", "\tIntro to Algorithms\n", timestamp=5, nonce=NONCE)
        clean = canonicalize("Ada Lovelace", "Intro to Algorithms", timestamp=5, nonce=NONCE)

        assert padded == clean

    def test_non_ascii_kept_verbatim(self):
        text = canonicalize("Zoë Ñúñez", "Математика", timestamp=5, nonce=NONCE)

        assert "Zoë Ñúñez" in text
        assert "\\u" not in text

    def test_protocol_constants(self):
        payload = parse_canonical(canonicalize("A", "B", timestamp=1, nonce=NONCE))

        assert payload.version == PROTOCOL_VERSION == "4.0"
        assert payload.issuer == ISSUER
        assert payload.integrity == INTEGRITY == "SHA-512"

    def test_fresh_nonce_per_call(self):
        first = canonicalize("A", "B", timestamp=1)
        second = canonicalize("A", "B", timestamp=1)

        assert first != second

    @freeze_time("2026-01-05 12:00:00")
    def test_default_timestamp_is_now(self):
        payload = build_payload("A", "B", nonce=NONCE)

        assert payload.timestamp == current_millis() == 1767614400000


class TestInputValidation:
    @pytest.mark.parametrize("user", ["", "   ", None, 42])
    def test_bad_user_rejected(self, user):
        with pytest.raises(CertificateInputError) as exc_info:
            canonicalize(user, "Course")
        assert exc_info.value.field == "user"

    def test_blank_exam_rejected(self):
        with pytest.raises(CertificateInputError) as exc_info:
            canonicalize("Ada", "  ")
        assert exc_info.value.details['field'] == "exam"

    @pytest.mark.parametrize("timestamp", [-1, 1.5, True, "1700000000000"])
    def test_bad_timestamp_rejected(self, timestamp):
        with pytest.raises(CertificateInputError):
            build_payload("Ada", "Course", timestamp=timestamp)

    @pytest.mark.parametrize("user,exam,field", [
        ("Ada \udcff", "Course", "user"),
        ("Ada", "Course \ud800", "exam"),
    ])
    def test_unencodable_text_rejected(self, user, exam, field):
        with pytest.raises(CertificateInputError) as exc_info:
            build_payload(user, exam, timestamp=1700000000000, nonce=NONCE)
        assert exc_info.value.field == field

    @pytest.mark.parametrize("nonce", [12345, b"ab" * 16, "   "])
    def test_bad_nonce_rejected(self, nonce):
        with pytest.raises(CertificateInputError) as exc_info:
            build_payload("Ada", "Course", timestamp=1700000000000, nonce=nonce)
        assert exc_info.value.field == "nonce"


def test_new_nonce_is_128_bit_hex():
    nonce = new_nonce()

    assert len(nonce) == 32
    int(nonce, 16)


def test_dumps_canonical_matches_sorted_json():
    assert dumps_canonical({"b": 1, "a": [1, 2], "c": "é"}) == '{"a":[1,2],"b":1,"c":"é"}'


def test_parse_canonical_rejects_garbage():
    with pytest.raises(ValueError):
        parse_canonical("{not json")
