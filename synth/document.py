"""Working and final resume documents.

PartialResume is the loosely-typed in-progress document: a plain dict plus
a per-key state (unset / present-but-invalid / present-and-valid) computed
against the key's schema fragment. ResumeDocument is the strict typed form,
built only after the hard gate has passed.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum

from synth.overrides import Certification, ExtraItem
from synth.schema_validator import get_validator

logger = logging.getLogger(__name__)

TOP_LEVEL_KEYS = (
    "meta", "summary", "snapshot", "experience", "projects",
    "publications", "certifications", "extras", "labels",
)


class FieldState(Enum):
    UNSET = "unset"
    INVALID = "invalid"
    VALID = "valid"


class PartialResume:
    """In-progress resume with scoped, non-regressing merges."""

    def __init__(self, data: dict = None, validator=None):
        self._data = copy.deepcopy(data) if data else {}
        self._validator = validator or get_validator()

    @property
    def data(self) -> dict:
        """The live dict. Callers that need a stable view use snapshot()."""
        return self._data

    def snapshot(self) -> dict:
        return copy.deepcopy(self._data)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        self._data[key] = value

    def state(self, key: str) -> FieldState:
        if key not in self._data or self._data[key] is None:
            return FieldState.UNSET
        if self._validator.is_fragment_valid(self._data, key):
            return FieldState.VALID
        return FieldState.INVALID

    def states(self) -> dict:
        return {key: self.state(key) for key in TOP_LEVEL_KEYS}

    def merge_scoped(self, candidate: dict, keys) -> list:
        """Copy only `keys` from candidate, and only values that validate.

        A key whose current value is VALID is never replaced by an invalid
        one; an invalid candidate value is never merged at all. Returns the
        keys actually merged.
        """
        if not isinstance(candidate, dict):
            return []
        merged = []
        for key in keys:
            if key not in candidate or candidate[key] is None:
                continue
            if not self._validator.is_fragment_valid(candidate, key):
                logger.debug("Not merging %s: candidate value fails its schema", key)
                continue
            self._data[key] = copy.deepcopy(candidate[key])
            merged.append(key)
        return merged


# ---------------------------------------------------------------------------
# Typed document
# ---------------------------------------------------------------------------

def _str(value) -> str:
    return value if isinstance(value, str) else ""


def _str_list(value) -> list:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


@dataclass
class Meta:
    name: str
    headline: str
    contact: dict = field(default_factory=dict)
    website: str = ""
    social_links: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Meta":
        return cls(
            name=_str(data.get("name")),
            headline=_str(data.get("headline")),
            contact=dict(data.get("contact") or {}),
            website=_str(data.get("website")),
            social_links=dict(data.get("social_links") or {}),
        )

    def to_dict(self) -> dict:
        out = {"name": self.name, "headline": self.headline, "contact": dict(self.contact)}
        if self.website:
            out["website"] = self.website
        if self.social_links:
            out["social_links"] = dict(self.social_links)
        return out


@dataclass
class Snapshot:
    tech: str
    achievements: list = field(default_factory=list)
    selected_projects: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Snapshot":
        return cls(
            tech=_str(data.get("tech")),
            achievements=_str_list(data.get("achievements")),
            selected_projects=_str_list(data.get("selected_projects")),
        )

    def to_dict(self) -> dict:
        out = {"tech": self.tech}
        if self.achievements:
            out["achievements"] = list(self.achievements)
        if self.selected_projects:
            out["selected_projects"] = list(self.selected_projects)
        return out


@dataclass
class Role:
    company: str
    role: str
    bullets: list
    period: str = ""
    location: str = ""
    summary: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Role":
        return cls(
            company=_str(data.get("company")),
            role=_str(data.get("role")),
            bullets=_str_list(data.get("bullets")),
            period=_str(data.get("period")),
            location=_str(data.get("location")),
            summary=_str(data.get("summary")),
        )

    def to_dict(self) -> dict:
        out = {"company": self.company, "role": self.role, "bullets": list(self.bullets)}
        for key in ("period", "location", "summary"):
            if getattr(self, key):
                out[key] = getattr(self, key)
        return out


@dataclass
class Project:
    title: str
    description: str
    url: str = ""
    stack: str = ""
    bullets: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            title=_str(data.get("title")),
            description=_str(data.get("description")),
            url=_str(data.get("url")),
            stack=_str(data.get("stack")),
            bullets=_str_list(data.get("bullets")),
        )

    def to_dict(self) -> dict:
        out = {"title": self.title, "description": self.description}
        for key in ("url", "stack"):
            if getattr(self, key):
                out[key] = getattr(self, key)
        if self.bullets:
            out["bullets"] = list(self.bullets)
        return out


@dataclass
class ResumeCertification(Certification):
    url_label: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ResumeCertification":
        return cls(
            name=_str(data.get("name")),
            issuer=_str(data.get("issuer")),
            date=_str(data.get("date")),
            url=_str(data.get("url")),
            description=_str(data.get("description")),
            url_label=_str(data.get("url_label")),
        )

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.url_label:
            out["url_label"] = self.url_label
        return out


@dataclass
class ResumeDocument:
    """Schema-valid resume. Build with from_dict() after the hard gate."""

    meta: Meta
    summary: str
    snapshot: Snapshot
    experience: list
    projects: list
    publications: list = field(default_factory=list)
    certifications: list = field(default_factory=list)
    extras: list = field(default_factory=list)
    labels: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ResumeDocument":
        return cls(
            meta=Meta.from_dict(data.get("meta") or {}),
            summary=_str(data.get("summary")),
            snapshot=Snapshot.from_dict(data.get("snapshot") or {}),
            experience=[Role.from_dict(r) for r in data.get("experience") or []],
            projects=[Project.from_dict(p) for p in data.get("projects") or []],
            publications=_str_list(data.get("publications")),
            certifications=[
                ResumeCertification.from_dict(c) for c in data.get("certifications") or []
            ],
            extras=[
                ExtraItem(category=_str(e.get("category")), text=_str(e.get("text")))
                for e in data.get("extras") or []
            ],
            labels=dict(data.get("labels") or {}),
        )

    def to_dict(self) -> dict:
        out = {
            "meta": self.meta.to_dict(),
            "summary": self.summary,
            "snapshot": self.snapshot.to_dict(),
            "experience": [r.to_dict() for r in self.experience],
            "projects": [p.to_dict() for p in self.projects],
        }
        if self.publications:
            out["publications"] = list(self.publications)
        if self.certifications:
            out["certifications"] = [c.to_dict() for c in self.certifications]
        if self.extras:
            out["extras"] = [e.to_dict() for e in self.extras]
        if self.labels:
            out["labels"] = dict(self.labels)
        return out
