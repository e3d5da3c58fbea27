"""
Certificate template registry.

Built-in templates ship as constants; admin-managed templates come from a
TemplateSource (a YAML file by default). Font definitions are normalized
once, here, into FontSpec and font families are mapped onto the standard
PDF fonts the rendering engine always has.

Example usage:
    from core.templates import TemplateRegistry, YamlTemplateSource

    registry = TemplateRegistry([YamlTemplateSource("templates.yaml")])
    template = registry.resolve_template("healthcare")
    print(template.colors.primary)
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import yaml
from pydantic import ValidationError

from core.errors import CertificateInputError, ConfigurationError
from core.models import CertificateTemplate, FontSpec, TemplateAsset, TemplateColors, TemplateFonts

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = "standard"
DEFAULT_FONT = "Helvetica"

SUPPORTED_IMAGE_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/gif"})

# family -> (regular, bold) standard PDF fonts
_FONT_FAMILIES = {
    "helvetica": ("Helvetica", "Helvetica-Bold"),
    "times": ("Times-Roman", "Times-Bold"),
    "courier": ("Courier", "Courier-Bold"),
}

FONT_SUBSTITUTIONS = {
    "helvetica": "helvetica",
    "arial": "helvetica",
    "inter": "helvetica",
    "roboto": "helvetica",
    "open sans": "helvetica",
    "montserrat": "helvetica",
    "lato": "helvetica",
    "sans-serif": "helvetica",
    "times": "times",
    "times new roman": "times",
    "times-roman": "times",
    "georgia": "times",
    "garamond": "times",
    "eb garamond": "times",
    "playfair display": "times",
    "merriweather": "times",
    "serif": "times",
    "courier": "courier",
    "courier new": "courier",
    "monospace": "courier",
}

_DEFAULT_FONTS = {
    "title": FontSpec(size=48, family="Helvetica"),
    "subtitle": FontSpec(size=28, family="Helvetica"),
    "name": FontSpec(size=42, family="Helvetica"),
    "body": FontSpec(size=16, family="Helvetica"),
}


def resolve_font(family: Optional[str], bold: bool = False) -> str:
    """
    Map a font family name onto a standard PDF font.

    Args:
        family: Family name as configured in the template
        bold: Return the bold face

    Returns:
        ReportLab font name; Helvetica for unknown families
    """
    key = FONT_SUBSTITUTIONS.get((family or "").strip().lower(), "helvetica")
    regular, bold_face = _FONT_FAMILIES[key]
    return bold_face if bold else regular


def normalize_font_spec(value: Any, default: FontSpec) -> FontSpec:
    """
    Normalize a font definition into a FontSpec.

    Accepts a FontSpec, a mapping with ``size`` and/or ``family`` (``fontSize``
    and ``fontFamily`` are accepted too), a bare family name or a bare size.
    Missing parts come from ``default``.
    """
    if value is None:
        return default
    if isinstance(value, FontSpec):
        return value
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return FontSpec(size=int(value), family=default.family)
    if isinstance(value, str):
        return FontSpec(size=default.size, family=value.strip() or default.family)
    if isinstance(value, dict):
        size = value.get("size", value.get("fontSize", default.size))
        family = value.get("family", value.get("fontFamily", default.family))
        try:
            return FontSpec(size=int(size), family=str(family) or default.family)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed font definition", extra={"font": str(value)})
            return default
    logger.warning("Ignoring unsupported font definition type", extra={"font_type": type(value).__name__})
    return default


def normalize_fonts(raw: Optional[Dict[str, Any]]) -> TemplateFonts:
    raw = raw or {}
    return TemplateFonts(**{
        role: normalize_font_spec(raw.get(role), default)
        for role, default in _DEFAULT_FONTS.items()
    })


def _builtin(template_id: str, name: str, industry: str, badge: str,
             primary: str, secondary: str, accent: str, background: str) -> CertificateTemplate:
    return CertificateTemplate(
        template_id=template_id,
        name=name,
        industry=industry,
        badge=badge,
        colors=TemplateColors(primary=primary, secondary=secondary, accent=accent, background=background),
    )


BUILTIN_TEMPLATES: Dict[str, CertificateTemplate] = {
    t.template_id: t for t in (
        _builtin("standard", "Standard", "General", "Professional Certification",
                 "#1e3a8a", "#d97706", "#059669", "#ffffff"),
        _builtin("healthcare", "Healthcare", "Healthcare", "Healthcare Professional Certification",
                 "#dc2626", "#0891b2", "#65a30d", "#fefefe"),
        _builtin("financial", "Financial Services", "Financial Services", "Financial Services Certification",
                 "#0f172a", "#fbbf24", "#3b82f6", "#f8fafc"),
        _builtin("education", "Education", "Education", "Academic Achievement Certification",
                 "#7c3aed", "#f59e0b", "#10b981", "#fffbeb"),
        _builtin("professional", "Professional", "Professional", "Professional Association Certification",
                 "#059669", "#dc2626", "#7c3aed", "#f0fdf4"),
        _builtin("custom", "Custom", "Custom", "Certified Achievement",
                 "#6366f1", "#ec4899", "#14b8a6", "#fafafa"),
    )
}


class TemplateSource(Protocol):
    """Storage of admin-managed templates."""

    def get_template(self, template_id: str) -> Optional[Dict[str, Any]]:
        ...

    def list_templates(self) -> List[Dict[str, Any]]:
        ...


def _load_asset(spec: Any, base_dir: Path) -> Optional[TemplateAsset]:
    """Load an asset declared as {path, mime_type}; unreadable assets are dropped."""
    if not spec:
        return None
    if isinstance(spec, TemplateAsset):
        return spec
    if not isinstance(spec, dict) or "path" not in spec:
        logger.warning("Ignoring template asset without a path")
        return None

    path = Path(spec["path"])
    if not path.is_absolute():
        path = base_dir / path
    mime_type = spec.get("mime_type") or spec.get("mimeType") or guess_mime_type(path)
    try:
        return TemplateAsset(data=path.read_bytes(), mime_type=mime_type)
    except OSError as e:
        logger.warning(f"Template asset unreadable: {path.name}", extra={"error": str(e)})
        return None


def guess_mime_type(path: Path) -> str:
    return {
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".gif": "image/gif",
        ".svg": "image/svg+xml",
    }.get(path.suffix.lower(), "application/octet-stream")


class YamlTemplateSource:
    """
    Admin-managed templates stored in a YAML file.

    Expected layout::

        templates:
          - id: acme
            name: ACME Academy
            industry: Education
            colors: {primary: "#112233", secondary: "#445566"}
            fonts:
              title: {size: 44, family: Georgia}
              name: Playfair Display
            logo: {path: assets/acme.png, mime_type: image/png}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._templates: Optional[Dict[str, Dict[str, Any]]] = None

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if self._templates is None:
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    document = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Cannot load template file {self.path}: {e}")

            entries = document.get("templates", []) if isinstance(document, dict) else []
            templates = {}
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("id"):
                    logger.warning("Skipping template entry without an id")
                    continue
                entry = dict(entry)
                for key in ("logo", "signature", "background_asset"):
                    entry[key] = _load_asset(entry.get(key), self.path.parent)
                templates[str(entry["id"])] = entry
            self._templates = templates
        return self._templates

    def get_template(self, template_id: str) -> Optional[Dict[str, Any]]:
        return self._load().get(template_id)

    def list_templates(self) -> List[Dict[str, Any]]:
        return list(self._load().values())


def template_from_dict(raw: Dict[str, Any]) -> CertificateTemplate:
    """
    Build a CertificateTemplate from a raw storage record.

    Raises:
        ConfigurationError: If colours or other fields are invalid
    """
    template_id = str(raw.get("id") or raw.get("template_id"))
    base = BUILTIN_TEMPLATES[DEFAULT_TEMPLATE_ID]
    try:
        return CertificateTemplate(
            template_id=template_id,
            name=raw.get("name", template_id),
            industry=raw.get("industry", base.industry),
            badge=raw.get("badge", f"{raw.get('industry', 'Professional')} Certification"),
            colors=TemplateColors(**{**base.colors.model_dump(), **(raw.get("colors") or {})}),
            fonts=normalize_fonts(raw.get("fonts")),
            cert_title=raw.get("cert_title", raw.get("certTitle", base.cert_title)),
            cert_subtitle=raw.get("cert_subtitle", base.cert_subtitle),
            authority=raw.get("authority", base.authority),
            logo=raw.get("logo"),
            signature=raw.get("signature"),
            background_asset=raw.get("background_asset"),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Template {template_id!r} is invalid: {e}", {'template_id': template_id})


class TemplateRegistry:
    """Resolves template IDs against admin sources, then built-ins."""

    def __init__(self, sources: Optional[Iterable[TemplateSource]] = None):
        self.sources = list(sources or [])

    def resolve_template(self, template_id: Optional[str]) -> CertificateTemplate:
        """
        Resolve a template, falling back to ``standard`` when not found.

        Raises:
            CertificateInputError: If template_id is not a string
        """
        if template_id is not None and not isinstance(template_id, str):
            raise CertificateInputError("template_id must be a string", field="template_id")

        template_id = (template_id or DEFAULT_TEMPLATE_ID).strip()
        for source in self.sources:
            raw = source.get_template(template_id)
            if raw is not None:
                return template_from_dict(raw)

        if template_id in BUILTIN_TEMPLATES:
            return BUILTIN_TEMPLATES[template_id]

        logger.info(f"Template {template_id!r} not found, using {DEFAULT_TEMPLATE_ID!r}")
        return BUILTIN_TEMPLATES[DEFAULT_TEMPLATE_ID]

    def list_templates(self) -> List[CertificateTemplate]:
        seen = {}
        for template_id, template in BUILTIN_TEMPLATES.items():
            seen[template_id] = template
        for source in self.sources:
            for raw in source.list_templates():
                template = template_from_dict(raw)
                seen[template.template_id] = template
        return list(seen.values())
