"""Override normalization.

User-supplied overrides arrive in whatever shape the caller felt like
sending: a bare string, a list of strings, a list of objects, a single
object, numbers, null. normalize_overrides() decodes every value into one
of three shapes (string / object / other) and runs one normalizer per
shape, so publications, certifications and extras always come out typed.

It never raises. Unknown shapes degrade to a best-effort string.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)

MIN_PUBLICATION_LENGTH = 40
MAX_PUBLICATION_LENGTH = 400
MAX_CERT_NAME_LENGTH = 200
MAX_CERT_DESCRIPTION_LENGTH = 140
MAX_EXTRA_TEXT_LENGTH = 140
DEFAULT_EXTRA_CATEGORY = "misc"
PUBLICATION_SUFFIX = (
    " — {year}. A published article describing architecture, "
    "performance improvements, and key takeaways."
)
KNOWN_KEYS = ("publications", "certifications", "extras")


@dataclass
class Certification:
    name: str
    issuer: str = ""
    date: str = ""
    url: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        out = {"name": self.name}
        for key in ("issuer", "date", "url", "description"):
            value = getattr(self, key)
            if value:
                out[key] = value
        return out


@dataclass
class ExtraItem:
    category: str
    text: str

    def to_dict(self) -> dict:
        return {"category": self.category, "text": self.text}


@dataclass
class Overrides:
    publications: list = field(default_factory=list)
    certifications: list = field(default_factory=list)
    extras: list = field(default_factory=list)
    other: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Map form used in content-service payloads. Empty lists are omitted."""
        out = {}
        if self.publications:
            out["publications"] = list(self.publications)
        if self.certifications:
            out["certifications"] = [c.to_dict() for c in self.certifications]
        if self.extras:
            out["extras"] = [e.to_dict() for e in self.extras]
        for key, value in self.other.items():
            if key not in out:
                out[key] = value
        return out


# ---------------------------------------------------------------------------
# Decode step
# ---------------------------------------------------------------------------

class Shape(Enum):
    STRING = "string"
    OBJECT = "object"
    OTHER = "other"


def _decode(value):
    """Classify one item as (Shape, value)."""
    if isinstance(value, str):
        return Shape.STRING, value
    if isinstance(value, dict):
        return Shape.OBJECT, value
    return Shape.OTHER, value


def _decode_items(value) -> list:
    """A list decodes item by item; anything else is a single item. None items are skipped."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    return [_decode(item) for item in items if item is not None]


def stringify(value) -> str:
    """Best-effort string form of an arbitrary decoded JSON value."""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def truncate_words(text: str, limit: int) -> str:
    """Cut text to at most `limit` characters, backing up to a word boundary."""
    if len(text) <= limit:
        return text
    cut = text[:limit]
    space = cut.rfind(" ")
    if space > 0:
        cut = cut[:space]
    return cut.rstrip(" ,;:")


def _str_field(obj: dict, *keys) -> str:
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


# ---------------------------------------------------------------------------
# Publications
# ---------------------------------------------------------------------------

def format_publication(text: str, year: int = None) -> str:
    """Pad short publication strings with a deterministic descriptive suffix.

    Long ones are cut on a word boundary to MAX_PUBLICATION_LENGTH.
    """
    text = text.strip()
    if len(text) >= MIN_PUBLICATION_LENGTH:
        return truncate_words(text, MAX_PUBLICATION_LENGTH)
    year = year or datetime.now().year
    return text + PUBLICATION_SUFFIX.format(year=year)


def _publication_from_string(value: str):
    return format_publication(value) if value.strip() else None


def _publication_from_object(value: dict):
    title = _str_field(value, "title")
    outline = _str_field(value, "outline", "summary", "description")
    if title and outline:
        return format_publication(f"{title} — {outline}")
    if title or outline:
        return format_publication(title or outline)
    return format_publication(stringify(value))


def _publication_from_other(value):
    return format_publication(stringify(value))


_PUBLICATION_NORMALIZERS = {
    Shape.STRING: _publication_from_string,
    Shape.OBJECT: _publication_from_object,
    Shape.OTHER: _publication_from_other,
}


def normalize_publications(value) -> list:
    out = []
    for shape, item in _decode_items(value):
        pub = _PUBLICATION_NORMALIZERS[shape](item)
        if pub:
            out.append(pub)
    return out


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------

def _cert_name(text: str) -> str:
    return truncate_words(text.strip(), MAX_CERT_NAME_LENGTH)


def _certification_from_string(value: str):
    name = _cert_name(value)
    return Certification(name=name) if name else None


def _certification_from_object(value: dict):
    name = _str_field(value, "name", "title")
    return Certification(
        name=_cert_name(name or stringify(value)),
        issuer=_str_field(value, "issuer", "organization"),
        date=_str_field(value, "date", "date_obtained", "issued_at"),
        url=_str_field(value, "url"),
        description=truncate_words(_str_field(value, "description"), MAX_CERT_DESCRIPTION_LENGTH),
    )


def _certification_from_other(value):
    return Certification(name=_cert_name(stringify(value)))


_CERTIFICATION_NORMALIZERS = {
    Shape.STRING: _certification_from_string,
    Shape.OBJECT: _certification_from_object,
    Shape.OTHER: _certification_from_other,
}


def normalize_certifications(value) -> list:
    out = []
    for shape, item in _decode_items(value):
        cert = _CERTIFICATION_NORMALIZERS[shape](item)
        if cert is not None:
            out.append(cert)
    return out


# ---------------------------------------------------------------------------
# Extras
# ---------------------------------------------------------------------------

def _truncate(text: str, limit: int = MAX_EXTRA_TEXT_LENGTH) -> str:
    return text.strip()[:limit].strip()


def _extra_from_string(value: str):
    text = _truncate(value)
    return ExtraItem(category=DEFAULT_EXTRA_CATEGORY, text=text) if text else None


def _extra_from_object(value: dict):
    category = _str_field(value, "category") or DEFAULT_EXTRA_CATEGORY
    text = _truncate(_str_field(value, "text"))
    if not text:
        return None
    return ExtraItem(category=category, text=text)


def _extra_from_other(value):
    text = _truncate(stringify(value))
    return ExtraItem(category=DEFAULT_EXTRA_CATEGORY, text=text) if text else None


_EXTRA_NORMALIZERS = {
    Shape.STRING: _extra_from_string,
    Shape.OBJECT: _extra_from_object,
    Shape.OTHER: _extra_from_other,
}


def normalize_extras(value) -> list:
    out = []
    for shape, item in _decode_items(value):
        extra = _EXTRA_NORMALIZERS[shape](item)
        if extra is not None:
            out.append(extra)
    return out


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def normalize_overrides(raw) -> Overrides:
    """Convert arbitrary user overrides into an Overrides instance. Never raises.

    Keys other than publications/certifications/extras are kept verbatim in
    `other`. A non-mapping input yields empty overrides.
    """
    out = Overrides()
    if raw is None:
        return out
    if not isinstance(raw, dict):
        logger.warning("Overrides are not an object (%s); ignoring", type(raw).__name__)
        return out

    out.publications = normalize_publications(raw.get("publications"))
    out.certifications = normalize_certifications(raw.get("certifications"))
    out.extras = normalize_extras(raw.get("extras"))
    for key, value in raw.items():
        if key not in KNOWN_KEYS:
            out.other[key] = value
    return out
