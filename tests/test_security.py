"""Deterministic security pattern tests."""

import hashlib
from io import BytesIO

import numpy as np
import pytest
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

from core.models import TemplateColors
from core.security import (
    GEOMETRIC_PATTERNS, SECURITY_FEATURES, SeedStream, SecurityPatternGenerator,
    compute_security_checksum, fingerprint_cells, fingerprint_pattern, geometric_pattern,
    gradient_stops, guilloche_spirals, microtext_line, pattern_variant, security_border_wave,
    security_seed
)

CERT_ID = "CERT-1A2B-3C4D-5E6F-LXYZ1234-ABCD"
HASH = "1a2b3c4d5e6f" + "0" * 116
BOUNDS = (45.0, 45.0, 750.0, 500.0)


class TestSeed:
    def test_seed_formula(self):
        expected = hashlib.md5(f"{CERT_ID}{HASH[:32]}".encode()).hexdigest()[:8]

        assert security_seed(CERT_ID, HASH) == expected

    def test_seed_changes_with_either_input(self):
        seed = security_seed(CERT_ID, HASH)

        assert security_seed(CERT_ID.replace("ABCD", "ABCE"), HASH) != seed
        assert security_seed(CERT_ID, "f" + HASH[1:]) != seed
        assert security_seed(CERT_ID, HASH[:32] + "f" * 96) == seed

    def test_checksum_depends_on_template(self):
        seed = security_seed(CERT_ID, HASH)
        standard = compute_security_checksum(CERT_ID, HASH, seed, "standard")

        assert len(standard) == 16
        assert standard != compute_security_checksum(CERT_ID, HASH, seed, "healthcare")


class TestSeedStream:
    def test_value_formula(self):
        digest = hashlib.sha256(b"abc:3").digest()
        expected = int.from_bytes(digest[:8], "big") / (2 ** 64 - 1)

        assert SeedStream("abc").value_at(3) == expected

    def test_reproducible(self):
        first, second = SeedStream("deadbeef"), SeedStream("deadbeef")

        assert [first.next() for _ in range(20)] == [second.next() for _ in range(20)]

    def test_range(self):
        stream = SeedStream("cafebabe")
        values = [stream.next() for _ in range(200)]

        assert all(0.0 <= v <= 1.0 for v in values)
        assert all(3 <= stream.randint(3, 5) <= 5 for _ in range(100))


class TestPatterns:
    def test_variant_is_seed_mod_four(self):
        assert pattern_variant("00000000") == GEOMETRIC_PATTERNS[0]
        assert pattern_variant("00000003") == GEOMETRIC_PATTERNS[3]
        assert pattern_variant("0000000f") == GEOMETRIC_PATTERNS[3]

    def test_guilloche_three_curves_inside_bounds(self):
        curves = guilloche_spirals("deadbeef", BOUNDS)
        x, y, w, h = BOUNDS
        cx, cy, r = x + w / 2, y + h / 2, min(w, h) / 2

        assert len(curves) == 3
        for curve in curves:
            distances = np.hypot(curve[:, 0] - cx, curve[:, 1] - cy)
            assert distances.max() <= r + 1e-6

    @pytest.mark.parametrize("seed", ["00000000", "00000001", "00000002", "00000003"])
    def test_each_variant_draws_something(self, seed):
        variant, lines = geometric_pattern(seed, BOUNDS)

        assert variant == pattern_variant(seed)
        assert lines
        assert all(line.shape[1] == 2 for line in lines)

    def test_geometric_pattern_reproducible(self):
        _, first = geometric_pattern("12345678", BOUNDS)
        _, second = geometric_pattern("12345678", BOUNDS)

        assert len(first) == len(second)
        assert all(np.array_equal(a, b) for a, b in zip(first, second))

    def test_fingerprint_cells_rule(self):
        pattern = fingerprint_pattern(CERT_ID, HASH)
        cells = fingerprint_cells(pattern)

        assert len(cells) == 8 and all(len(row) == 8 for row in cells)
        assert cells[0][0] == (int(pattern[0], 16) > 7)
        assert cells[7][7] == (int(pattern[63], 16) > 7)

    def test_border_wave_stays_between_frames(self):
        width, height = landscape(A4)
        points = security_border_wave("deadbeef", width, height)

        assert points[:, 0].min() > 20 and points[:, 0].max() < width - 20
        assert points[:, 1].min() > 20 and points[:, 1].max() < height - 20

    def test_gradient_starts_and_ends_on_primary(self):
        palette = TemplateColors()
        stops = gradient_stops(palette, 10)

        assert len(stops) == 10
        assert stops[0].hexval() == stops[-1].hexval()

    def test_microtext_fits_width(self):
        from reportlab.pdfbase import pdfmetrics

        line = microtext_line("AUTHENTIC · ", 200)
        assert pdfmetrics.stringWidth(line, "Helvetica", 3) <= 200
        assert line.startswith("AUTHENTIC")


class TestGenerator:
    def test_all_features_drawn(self):
        generator = SecurityPatternGenerator(CERT_ID, HASH, TemplateColors())
        c = canvas.Canvas(BytesIO(), pagesize=landscape(A4))
        width, height = landscape(A4)

        assert not any(generator.features.values())
        generator.draw_background_layers(c, width, height)
        generator.draw_fingerprint(c, (700, 480), 50)

        assert set(generator.features) == set(SECURITY_FEATURES)
        assert all(generator.features.values())
        assert generator.variant in GEOMETRIC_PATTERNS

    def test_checksum_matches_module_function(self):
        generator = SecurityPatternGenerator(CERT_ID, HASH, TemplateColors())

        assert generator.checksum("standard") == compute_security_checksum(
            CERT_ID, HASH, generator.seed, "standard"
        )
        assert generator.seed.upper() in generator.microtext
