"""
Property-based tests for the integrity primitives.

Random recipients, courses and timestamps through canonical JSON, hashing,
certificate IDs, signatures and metadata embedding.
"""
import json
import re

from hypothesis import assume, given, settings, strategies as st

from core.canonical import canonicalize, dumps_canonical, parse_canonical
from core.embed import DEFAULT_CHANNELS, extract_metadata
from core.hashing import (
    certificate_id_matches,
    compute_hash,
    derive_course_code,
    generate_certificate_id,
    is_valid_certificate_id,
    parse_certificate_id,
    sign_certificate,
    verify_signature
)
from core.models import EmbeddedMetadata
from core.security import SeedStream, pattern_variant, security_seed

names = st.text(min_size=1, max_size=80).filter(lambda s: s.strip())
timestamps = st.integers(min_value=0, max_value=4_102_444_800_000)
nonces = st.binary(min_size=16, max_size=16).map(bytes.hex)
hashes = st.binary(min_size=64, max_size=64).map(bytes.hex)


@given(user=names, exam=names, timestamp=timestamps, nonce=nonces)
def test_canonical_json_is_stable_and_sorted(user, exam, timestamp, nonce):
    text = canonicalize(user, exam, timestamp, nonce)
    parsed = json.loads(text)

    assert list(parsed) == sorted(parsed)
    assert parsed["user"] == user.strip()
    assert parsed["exam"] == exam.strip()
    assert parsed["timestamp"] == timestamp
    assert dumps_canonical(parse_canonical(text).model_dump()) == text
    assert canonicalize(user, exam, timestamp, nonce) == text


@given(user=names, exam=names, timestamp=timestamps, nonce=nonces)
def test_hash_is_lowercase_sha512_hex(user, exam, timestamp, nonce):
    digest = compute_hash(canonicalize(user, exam, timestamp, nonce))

    assert re.fullmatch(r"[0-9a-f]{128}", digest)


def _replace_char(text, index, char):
    index %= len(text)
    return text[:index] + char + text[index + 1:]


@given(user=names, exam=names, timestamp=timestamps, nonce=nonces,
       field=st.sampled_from(["user", "exam"]), index=st.integers(min_value=0), char=st.text(min_size=1, max_size=1))
def test_one_character_change_changes_hash(user, exam, timestamp, nonce, field, index, char):
    fields = {"user": user, "exam": exam}
    altered = _replace_char(fields[field], index, char)
    assume(altered.strip() and altered.strip() != fields[field].strip())

    original = compute_hash(canonicalize(user, exam, timestamp, nonce))
    changed = compute_hash(canonicalize(**{**fields, field: altered}, timestamp=timestamp, nonce=nonce))

    assert changed != original


@given(hash_hex=hashes, timestamp=timestamps)
def test_certificate_id_derived_from_hash(hash_hex, timestamp):
    certificate_id = generate_certificate_id(hash_hex, timestamp)

    assert is_valid_certificate_id(certificate_id)
    assert certificate_id_matches(certificate_id, hash_hex)
    assert parse_certificate_id(certificate_id)["timestamp"] == timestamp
    assert parse_certificate_id(certificate_id)["hash_prefix"] == hash_hex[:12]


@given(hash_hex=hashes, other=hashes, timestamp=timestamps)
def test_certificate_id_rejects_other_hash(hash_hex, other, timestamp):
    certificate_id = generate_certificate_id(hash_hex, timestamp)

    assert certificate_id_matches(certificate_id, other) == (other == hash_hex)


@given(hash_hex=hashes, timestamp=timestamps, secret=st.text(min_size=1, max_size=40))
def test_signature_verifies_only_with_same_inputs(hash_hex, timestamp, secret):
    certificate_id = generate_certificate_id(hash_hex, timestamp)
    signature = sign_certificate(certificate_id, hash_hex, timestamp, secret)

    assert verify_signature(certificate_id, hash_hex, timestamp, signature, secret)
    assert not verify_signature(certificate_id, hash_hex, timestamp + 1, signature, secret)
    assert not verify_signature(certificate_id, hash_hex, timestamp, signature, secret + "x")


@given(course=st.text(max_size=120))
def test_course_code_bounded_alphanumeric(course):
    code = derive_course_code(course)

    assert len(code) <= 20
    assert re.fullmatch(r"[A-Z0-9]*", code)


@given(hash_hex=hashes, timestamp=timestamps)
def test_security_seed_deterministic(hash_hex, timestamp):
    certificate_id = generate_certificate_id(hash_hex, timestamp)
    seed = security_seed(certificate_id, hash_hex)

    assert re.fullmatch(r"[0-9a-f]{8}", seed)
    assert seed == security_seed(certificate_id, hash_hex)
    assert pattern_variant(seed) == pattern_variant(seed)
    values = [SeedStream(seed).value_at(i) for i in range(5)]
    assert all(0.0 <= v <= 1.0 for v in values)


@given(hash_hex=hashes, timestamp=timestamps, other_timestamp=timestamps)
def test_security_seed_depends_on_certificate_id(hash_hex, timestamp, other_timestamp):
    certificate_id = generate_certificate_id(hash_hex, timestamp)
    other_id = generate_certificate_id(hash_hex, other_timestamp)
    assume(other_id != certificate_id)

    assert security_seed(other_id, hash_hex) != security_seed(certificate_id, hash_hex)


@given(hash_hex=hashes, index=st.integers(min_value=0, max_value=31), digit=st.sampled_from("0123456789abcdef"))
def test_security_seed_depends_on_hash_prefix(hash_hex, index, digit):
    altered = _replace_char(hash_hex, index, digit)
    assume(altered != hash_hex)
    certificate_id = generate_certificate_id(hash_hex, 1_700_000_000_000)

    assert security_seed(certificate_id, altered) != security_seed(certificate_id, hash_hex)


@given(hash_hex=hashes, index=st.integers(min_value=32, max_value=127), digit=st.sampled_from("0123456789abcdef"))
def test_security_seed_ignores_hash_tail(hash_hex, index, digit):
    certificate_id = generate_certificate_id(hash_hex, 1_700_000_000_000)
    altered = _replace_char(hash_hex, index, digit)

    assert security_seed(certificate_id, altered) == security_seed(certificate_id, hash_hex)


@settings(max_examples=50)
@given(user=names, exam=names, timestamp=timestamps, nonce=nonces)
def test_embedded_metadata_recovered_from_channel_text(user, exam, timestamp, nonce):
    canonical = canonicalize(user, exam, timestamp, nonce)
    digest = compute_hash(canonical)
    metadata = EmbeddedMetadata(
        version="4.0",
        user=user.strip(),
        exam=exam.strip(),
        timestamp=timestamp,
        nonce=nonce,
        canonical_json=canonical,
        hash=digest,
        certificate_id=generate_certificate_id(digest, timestamp),
    )
    payload = metadata.to_json()
    text = "\n".join(channel.encode(payload) for channel in DEFAULT_CHANNELS)

    assert payload.isascii()
    assert extract_metadata(text) == metadata
