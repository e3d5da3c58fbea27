"""
CertSeal Security Pattern Generator

Deterministic, per-certificate anti-forgery ornamentation. Every layer is a
pure function of (certificate ID, hash, template colours): re-rendering a
certificate for audit reproduces the same pattern without re-hashing, while
a forger without the seed cannot predict it.

Randomness comes from SeedStream, an explicit hash-to-float mapping that is
portable across runtimes: value i is the first 8 bytes of
sha256("<seed>:<i>") as an unsigned big-endian integer divided by 2**64 - 1.

Example usage:
    from core.security import SecurityPatternGenerator

    generator = SecurityPatternGenerator(cert_id, digest, template.colors)
    generator.draw_background_layers(canvas_obj, page_width, page_height)
    generator.draw_fingerprint(canvas_obj, (x, y), 48)
    print(generator.features)
"""

import hashlib
import math
from typing import Dict, List, Sequence, Tuple

import numpy as np
from reportlab.lib import colors
from reportlab.pdfbase import pdfmetrics

from core.models import TemplateColors

# (x, y, width, height) in PDF points, origin bottom-left
Bounds = Tuple[float, float, float, float]

GEOMETRIC_PATTERNS = (
    "diamond_mesh",
    "wave_interference",
    "hexagonal_grid",
    "fibonacci_spiral",
)

SECURITY_FEATURES = (
    "guillochePattern",
    "geometricPattern",
    "securityFingerprint",
    "securityBorder",
    "rainbowGradient",
    "microtext",
)

FINGERPRINT_GRID = 8
SEED_LENGTH = 8
CHECKSUM_LENGTH = 16

GOLDEN_RATIO = (1 + math.sqrt(5)) / 2


def security_seed(certificate_id: str, hash_hex: str) -> str:
    """
    Short deterministic seed for the visual security layers.

    Args:
        certificate_id: Certificate ID
        hash_hex: Certificate hash

    Returns:
        First 8 hex characters of md5(certificate_id + hash[:32])
    """
    digest = hashlib.md5(f"{certificate_id}{hash_hex[:32]}".encode("utf-8")).hexdigest()
    return digest[:SEED_LENGTH]


def compute_security_checksum(certificate_id: str, hash_hex: str, seed: str, template_id: str) -> str:
    """Short digest binding the visual layers to the certificate and template."""
    material = f"{certificate_id}{hash_hex}{seed}{template_id}".encode("utf-8")
    return hashlib.sha256(material).hexdigest()[:CHECKSUM_LENGTH]


class SeedStream:
    """Deterministic stream of floats in [0, 1] derived from a seed."""

    MAX_VALUE = 2 ** 64 - 1

    def __init__(self, seed: str):
        self.seed = seed
        self._index = 0

    def value_at(self, index: int) -> float:
        digest = hashlib.sha256(f"{self.seed}:{index}".encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") / self.MAX_VALUE

    def next(self) -> float:
        value = self.value_at(self._index)
        self._index += 1
        return value

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.next()

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high] inclusive."""
        return min(high, low + int(self.next() * (high - low + 1)))


def pattern_variant(seed: str) -> str:
    """Geometric fill selected by seed mod 4."""
    return GEOMETRIC_PATTERNS[int(seed, 16) % len(GEOMETRIC_PATTERNS)]


def guilloche_spirals(seed: str, bounds: Bounds, samples: int = 720) -> List[np.ndarray]:
    """
    Three interlaced spirals with sinusoidally modulated radius.

    Each curve is phase-offset by 120 degrees and stays inside the largest
    circle that fits the bounds.

    Returns:
        List of three (samples, 2) arrays of x/y points
    """
    stream = SeedStream(f"{seed}:guilloche")
    x, y, width, height = bounds
    cx, cy = x + width / 2, y + height / 2
    max_radius = min(width, height) / 2

    turns = stream.randint(6, 9)
    lobes = stream.randint(8, 17)
    amplitude = stream.uniform(0.08, 0.2)

    t = np.linspace(0.0, 2 * math.pi * turns, samples)
    growth = t / t[-1]

    curves = []
    for k in range(3):
        phase = k * 2 * math.pi / 3
        radius = max_radius * growth * (1 - amplitude + amplitude * np.sin(lobes * t + phase))
        xs = cx + radius * np.cos(t + phase)
        ys = cy + radius * np.sin(t + phase)
        curves.append(np.column_stack((xs, ys)))
    return curves


def _diamond_mesh(stream: SeedStream, bounds: Bounds) -> List[np.ndarray]:
    x, y, width, height = bounds
    spacing = stream.uniform(18, 30)
    half = spacing / 2
    xs = np.arange(x, x + width + 1e-9, half)
    zig = half * (np.arange(len(xs)) % 2)
    lines = []
    row = y
    while row + half <= y + height:
        lines.append(np.column_stack((xs, row + zig)))
        lines.append(np.column_stack((xs, row + half - zig)))
        row += spacing
    return lines


def _wave_interference(stream: SeedStream, bounds: Bounds) -> List[np.ndarray]:
    x, y, width, height = bounds
    count = stream.randint(10, 18)
    amplitude = stream.uniform(3, 8)
    freq_a = stream.uniform(2, 5)
    freq_b = stream.uniform(5, 9)
    phase = stream.uniform(0, 2 * math.pi)

    xs = np.linspace(x, x + width, 240)
    u = (xs - x) / width
    lines = []
    usable = height - 2 * amplitude
    for i in range(count):
        base = y + amplitude + usable * i / max(count - 1, 1)
        ys = base + amplitude * 0.5 * (
            np.sin(2 * math.pi * freq_a * u) + np.sin(2 * math.pi * freq_b * u + phase + i * 0.3)
        )
        lines.append(np.column_stack((xs, ys)))
    return lines


def _hexagonal_grid(stream: SeedStream, bounds: Bounds) -> List[np.ndarray]:
    x, y, width, height = bounds
    radius = stream.uniform(10, 18)
    rotation = stream.uniform(0, math.pi / 3)
    row_height = math.sqrt(3) * radius
    angles = rotation + np.arange(7) * math.pi / 3

    hexagons = []
    col = 0
    cx = x + radius
    while cx + radius <= x + width:
        cy = y + radius + (row_height / 2 if col % 2 else 0)
        while cy + radius <= y + height:
            hexagons.append(np.column_stack((cx + radius * np.cos(angles), cy + radius * np.sin(angles))))
            cy += row_height
        cx += 1.5 * radius
        col += 1
    return hexagons


def _fibonacci_spiral(stream: SeedStream, bounds: Bounds) -> List[np.ndarray]:
    x, y, width, height = bounds
    cx, cy = x + width / 2, y + height / 2
    max_radius = min(width, height) / 2
    arms = stream.randint(3, 6)
    start = stream.uniform(0, 2 * math.pi)

    # r = a * phi^(2*theta/pi), grown until it leaves the bounding circle
    a = 1.5
    theta_max = math.log(max_radius / a, GOLDEN_RATIO) * math.pi / 2
    theta = np.linspace(0.0, theta_max, 400)
    radius = a * np.power(GOLDEN_RATIO, 2 * theta / math.pi)

    spirals = []
    for arm in range(arms):
        offset = start + arm * 2 * math.pi / arms
        spirals.append(np.column_stack((cx + radius * np.cos(theta + offset), cy + radius * np.sin(theta + offset))))
    return spirals


_PATTERN_BUILDERS = {
    "diamond_mesh": _diamond_mesh,
    "wave_interference": _wave_interference,
    "hexagonal_grid": _hexagonal_grid,
    "fibonacci_spiral": _fibonacci_spiral,
}


def geometric_pattern(seed: str, bounds: Bounds) -> Tuple[str, List[np.ndarray]]:
    """
    Polylines of the seed-selected geometric fill.

    Returns:
        Tuple of (variant name, list of (n, 2) point arrays)
    """
    variant = pattern_variant(seed)
    stream = SeedStream(f"{seed}:{variant}")
    return variant, _PATTERN_BUILDERS[variant](stream, bounds)


def fingerprint_pattern(certificate_id: str, hash_hex: str) -> str:
    """Seed-derived hex string feeding the 8x8 fingerprint grid."""
    seed = security_seed(certificate_id, hash_hex)
    return hashlib.sha256(f"{seed}{certificate_id}{hash_hex[:32]}".encode("utf-8")).hexdigest()


def fingerprint_cells(pattern: str, grid: int = FINGERPRINT_GRID) -> List[List[bool]]:
    """Cell (i, j) is filled iff hex digit (i*grid + j) mod len(pattern) exceeds 7."""
    return [
        [int(pattern[(i * grid + j) % len(pattern)], 16) > 7 for j in range(grid)]
        for i in range(grid)
    ]


def _draw_polyline(c, points: np.ndarray, close: bool = False) -> None:
    if len(points) < 2:
        return
    path = c.beginPath()
    path.moveTo(float(points[0][0]), float(points[0][1]))
    for px, py in points[1:]:
        path.lineTo(float(px), float(py))
    if close:
        path.close()
    c.drawPath(path, stroke=1, fill=0)


def draw_guilloche(c, seed: str, bounds: Bounds, color, opacity: float = 0.12) -> str:
    """
    Draw the spirals and the geometric fill.

    Returns:
        Name of the geometric variant drawn
    """
    variant, polylines = geometric_pattern(seed, bounds)

    c.saveState()
    c.setLineWidth(0.35)
    c.setStrokeColor(color, alpha=opacity)
    for curve in guilloche_spirals(seed, bounds):
        _draw_polyline(c, curve)

    c.setStrokeColor(color, alpha=opacity * 0.7)
    for line in polylines:
        _draw_polyline(c, line, close=variant == "hexagonal_grid")
    c.restoreState()
    return variant


def draw_security_fingerprint(c, cells: Sequence[Sequence[bool]], position: Tuple[float, float],
                              size: float, color) -> None:
    """Draw the fingerprint grid with its lower-left corner at position."""
    x, y = position
    grid = len(cells)
    cell = size / grid

    c.saveState()
    c.setFillColor(color)
    c.setStrokeColor(color)
    c.setLineWidth(0.5)
    c.rect(x, y, size, size, stroke=1, fill=0)
    for i, row in enumerate(cells):
        for j, filled in enumerate(row):
            if filled:
                # Row 0 is the top row
                c.rect(x + j * cell, y + size - (i + 1) * cell, cell, cell, stroke=0, fill=1)
    c.restoreState()


def security_border_wave(seed: str, page_width: float, page_height: float,
                         inset: float = 27.5, amplitude: float = 2.5) -> np.ndarray:
    """Closed sine track running between the outer and inner borders."""
    stream = SeedStream(f"{seed}:border")
    waves_per_100pt = stream.uniform(2.0, 4.0)

    left, right = inset, page_width - inset
    bottom, top = inset, page_height - inset
    perimeter = 2 * (right - left) + 2 * (top - bottom)
    samples = int(perimeter / 2)
    s = np.linspace(0.0, perimeter, samples, endpoint=False)
    offset = amplitude * np.sin(2 * math.pi * waves_per_100pt * s / 100.0)

    points = np.empty((samples, 2))
    w, h = right - left, top - bottom
    for idx, (dist, off) in enumerate(zip(s, offset)):
        if dist < w:
            points[idx] = (left + dist, bottom + off)
        elif dist < w + h:
            points[idx] = (right + off, bottom + dist - w)
        elif dist < 2 * w + h:
            points[idx] = (right - (dist - w - h), top + off)
        else:
            points[idx] = (left + off, top - (dist - 2 * w - h))
    return points


def draw_security_border(c, seed: str, page_width: float, page_height: float, palette: TemplateColors) -> None:
    """Double frame with a seed-derived sine track between the two lines."""
    primary = colors.HexColor(palette.primary)
    secondary = colors.HexColor(palette.secondary)

    c.saveState()
    c.setStrokeColor(primary)
    c.setLineWidth(4)
    c.rect(20, 20, page_width - 40, page_height - 40, stroke=1, fill=0)

    c.setStrokeColor(secondary)
    c.setLineWidth(2)
    c.rect(35, 35, page_width - 70, page_height - 70, stroke=1, fill=0)

    c.setStrokeColor(secondary, alpha=0.6)
    c.setLineWidth(0.4)
    _draw_polyline(c, security_border_wave(seed, page_width, page_height), close=True)
    c.restoreState()


def gradient_stops(palette: TemplateColors, steps: int) -> List[colors.Color]:
    """Colours interpolated primary -> secondary -> accent -> primary."""
    anchors = [
        colors.HexColor(palette.primary),
        colors.HexColor(palette.secondary),
        colors.HexColor(palette.accent),
        colors.HexColor(palette.primary),
    ]
    segments = len(anchors) - 1
    result = []
    for step in range(steps):
        position = step / max(steps - 1, 1) * segments
        index = min(int(position), segments - 1)
        result.append(colors.linearlyInterpolatedColor(
            anchors[index], anchors[index + 1], index, index + 1, position
        ))
    return result


def draw_rainbow_gradient(c, bounds: Bounds, palette: TemplateColors,
                          opacity: float = 0.35, steps: int = 60) -> None:
    """Horizontal band of thin slices blending through the template palette."""
    x, y, width, height = bounds
    slice_width = width / steps

    c.saveState()
    for i, color in enumerate(gradient_stops(palette, steps)):
        c.setFillColor(color, alpha=opacity)
        # Slight overlap avoids hairline gaps in some viewers
        c.rect(x + i * slice_width, y, slice_width + 0.2, height, stroke=0, fill=1)
    c.restoreState()


def microtext_line(text: str, width: float, font_name: str = "Helvetica", font_size: float = 3) -> str:
    """Repeat text until it fills width points."""
    unit = pdfmetrics.stringWidth(text, font_name, font_size)
    if unit <= 0:
        return ""
    repeated = text * (int(width / unit) + 1)
    while repeated and pdfmetrics.stringWidth(repeated, font_name, font_size) > width:
        repeated = repeated[:-1]
    return repeated


def draw_microtext(c, text: str, x: float, y: float, width: float, color,
                   font_size: float = 3, opacity: float = 0.5) -> None:
    """Draw one horizontal micro-text security line."""
    c.saveState()
    c.setFont("Helvetica", font_size)
    c.setFillColor(color, alpha=opacity)
    c.drawString(x, y, microtext_line(text, width, "Helvetica", font_size))
    c.restoreState()


class SecurityPatternGenerator:
    """
    Draws all visual security layers for one certificate.

    Tracks which layers were drawn in ``features``; the renderer embeds the
    map in the certificate metadata.
    """

    def __init__(self, certificate_id: str, hash_hex: str, palette: TemplateColors):
        self.certificate_id = certificate_id
        self.hash_hex = hash_hex
        self.palette = palette
        self.seed = security_seed(certificate_id, hash_hex)
        self.variant = pattern_variant(self.seed)
        self.features: Dict[str, bool] = {name: False for name in SECURITY_FEATURES}

    @property
    def microtext(self) -> str:
        return f"AUTHENTIC CERTIFICATE {self.certificate_id} SEED {self.seed.upper()} · "

    def draw_background_layers(self, c, page_width: float, page_height: float) -> None:
        """Gradient bands, guilloche, border and micro-text; drawn under the content."""
        primary = colors.HexColor(self.palette.primary)

        band_width = page_width - 80
        draw_rainbow_gradient(c, (40, page_height - 44, band_width, 4), self.palette)
        draw_rainbow_gradient(c, (40, 40, band_width, 4), self.palette)
        self.features["rainbowGradient"] = True

        inner = (45, 45, page_width - 90, page_height - 90)
        self.variant = draw_guilloche(c, self.seed, inner, primary)
        self.features["guillochePattern"] = True
        self.features["geometricPattern"] = True

        draw_security_border(c, self.seed, page_width, page_height, self.palette)
        self.features["securityBorder"] = True

        draw_microtext(c, self.microtext, 40, page_height - 50, band_width, primary)
        draw_microtext(c, self.microtext, 40, 47, band_width, primary)
        self.features["microtext"] = True

    def draw_fingerprint(self, c, position: Tuple[float, float], size: float) -> None:
        cells = fingerprint_cells(fingerprint_pattern(self.certificate_id, self.hash_hex))
        draw_security_fingerprint(c, cells, position, size, colors.HexColor(self.palette.primary))
        self.features["securityFingerprint"] = True

    def checksum(self, template_id: str) -> str:
        return compute_security_checksum(self.certificate_id, self.hash_hex, self.seed, template_id)
