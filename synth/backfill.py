"""Post-merge backfill, the last-known-good base document, and pre-gate polish.

Aggregated source data is the authority for identity (name, headline,
contact, social links); the content service may not invent or drop it.
Nothing in this module makes a network call.
"""

import copy
import json
import logging
import re
from urllib.parse import urlparse

from synth.overrides import (
    normalize_certifications,
    normalize_extras,
    normalize_publications,
    truncate_words,
)

logger = logging.getLogger(__name__)

SHOWCASE_KEYS = ("publications", "certifications", "extras")

MAX_TECH = 250
MAX_SUMMARY = 330
MIN_SUMMARY = 80
MAX_BULLET = 300
MAX_ROLE_SUMMARY = 400
MAX_PROJECT_DESCRIPTION = 400
MAX_SELECTED_PROJECT = 200

_YEAR_PREFIX = re.compile(r"^(\d{4})")


def _first_str(row: dict, *keys) -> str:
    for key in keys:
        value = row.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _rows(aggregate: dict, key: str) -> list:
    value = aggregate.get(key) if isinstance(aggregate, dict) else None
    if not isinstance(value, list):
        return []
    return [row for row in value if isinstance(row, dict)]


def first_profile(aggregate: dict) -> dict:
    profiles = _rows(aggregate, "profiles")
    return profiles[0] if profiles else {}


# ---------------------------------------------------------------------------
# Profile meta
# ---------------------------------------------------------------------------

def decode_social_links(value) -> dict:
    """social_links as stored: an object, a JSON-encoded object, or junk."""
    if isinstance(value, str) and value.strip():
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return {}
    if not isinstance(value, dict):
        return {}
    return {k: v for k, v in value.items() if isinstance(v, str) and v.strip()}


def extract_profile_meta(profile: dict) -> dict:
    """Meta fields from a profile row, nested ({"meta": {...}}) or flat.

    Only non-empty values are returned.
    """
    if not isinstance(profile, dict):
        return {}
    nested = profile.get("meta") if isinstance(profile.get("meta"), dict) else {}
    sources = (nested, profile)

    meta = {}
    for src in sources:
        name = _first_str(src, "name", "full_name")
        if name:
            meta["name"] = name
            break
    for src in sources:
        headline = _first_str(src, "headline", "title")
        if headline:
            meta["headline"] = headline
            break

    for src in sources:
        contact = src.get("contact")
        if isinstance(contact, str) and contact.strip():
            contact = {"email": contact.strip()}
        if isinstance(contact, dict) and contact:
            meta["contact"] = dict(contact)
            break
    if "contact" not in meta:
        contact = {}
        for key in ("email", "location", "phone"):
            value = _first_str(profile, key)
            if value:
                contact[key] = value
        if contact:
            meta["contact"] = contact

    for src in sources:
        website = _first_str(src, "website", "url")
        if website:
            meta["website"] = website
            break
    for src in sources:
        links = decode_social_links(src.get("social_links"))
        if links:
            meta["social_links"] = links
            break
    return meta


def backfill_meta(doc: dict, aggregate: dict) -> list:
    """Fill missing meta fields from the first aggregated profile.

    A non-empty value already in the document always wins, including
    social_links supplied by the content service.
    """
    source = extract_profile_meta(first_profile(aggregate))
    if not source:
        return []
    meta = doc.get("meta")
    if not isinstance(meta, dict):
        meta = {}
        doc["meta"] = meta

    filled = []
    for key in ("name", "headline", "contact", "website", "social_links"):
        if key not in source:
            continue
        current = meta.get(key)
        if isinstance(current, str):
            empty = not current.strip()
        else:
            empty = not current
        if empty:
            meta[key] = copy.deepcopy(source[key])
            filled.append(f"meta.{key}")
    if filled:
        logger.info("Backfilled from aggregated profile: %s", filled)
    return filled


# ---------------------------------------------------------------------------
# Publications / certifications / extras
# ---------------------------------------------------------------------------

def showcase_sources(aggregate: dict, overrides) -> dict:
    """Normalized publications/certifications/extras: overrides first, then aggregated rows."""
    out = {}
    pubs = list(overrides.publications)
    if not pubs and isinstance(aggregate, dict):
        pubs = normalize_publications(aggregate.get("publications"))
    out["publications"] = pubs
    certs = list(overrides.certifications) or normalize_certifications(_rows(aggregate, "certifications"))
    out["certifications"] = [c.to_dict() for c in certs]
    extras = list(overrides.extras) or normalize_extras(_rows(aggregate, "extras"))
    out["extras"] = [e.to_dict() for e in extras]
    return out


def backfill_showcase(doc: dict, aggregate: dict, overrides) -> list:
    """Fill absent or empty publications/certifications/extras without a network call."""
    sources = showcase_sources(aggregate, overrides)
    filled = []
    for key in SHOWCASE_KEYS:
        current = doc.get(key)
        if isinstance(current, list) and current:
            continue
        if sources[key]:
            doc[key] = sources[key]
            filled.append(key)
    if filled:
        logger.info("Backfilled from overrides/aggregated rows: %s", filled)
    return filled


# ---------------------------------------------------------------------------
# Base document
# ---------------------------------------------------------------------------

def _tech_list(aggregate: dict) -> list:
    seen = []
    for row in _rows(aggregate, "project_technologies"):
        name = _first_str(row, "name", "technology", "tech")
        if name and name not in seen:
            seen.append(name)
    for row in _rows(aggregate, "projects"):
        stack = row.get("stack") or row.get("technologies")
        items = stack if isinstance(stack, list) else str(stack or "").split(",")
        for item in items:
            item = str(item).strip()
            if item and item not in seen:
                seen.append(item)
    return seen


def _period(row: dict) -> str:
    period = _first_str(row, "period")
    if period:
        return period
    start = _first_str(row, "start_date", "started_at")
    end = _first_str(row, "end_date", "ended_at")
    if not start:
        return ""
    start_year = start[:4]
    end_year = end[:4] if end else "Present"
    return f"{start_year} – {end_year}"


def _bullets(row: dict) -> list:
    for key in ("bullets", "highlights", "achievements"):
        value = row.get(key)
        if isinstance(value, list):
            items = [truncate_words(str(v).strip(), MAX_BULLET) for v in value if str(v).strip()]
            if items:
                return items
    description = _first_str(row, "description", "summary")
    return [truncate_words(description, MAX_BULLET)] if description else []


def base_experience(aggregate: dict) -> list:
    out = []
    for row in _rows(aggregate, "experiences"):
        company = _first_str(row, "company", "company_name", "organization")
        role = _first_str(row, "role", "title", "position")
        bullets = _bullets(row)
        if not (company and role and bullets):
            continue
        item = {"company": company, "role": role, "bullets": bullets}
        period = _period(row)
        if period:
            item["period"] = period
        location = _first_str(row, "location")
        if location:
            item["location"] = location
        out.append(item)
    return out


def base_projects(aggregate: dict) -> list:
    out = []
    for row in _rows(aggregate, "projects"):
        title = _first_str(row, "title", "name")
        description = _first_str(row, "description", "summary")
        if not (title and description):
            continue
        item = {
            "title": truncate_words(title, 120),
            "description": truncate_words(description, MAX_PROJECT_DESCRIPTION),
        }
        url = _first_str(row, "url", "repo_url")
        if url:
            item["url"] = url
        stack = row.get("stack") or row.get("technologies")
        if isinstance(stack, list):
            stack = ", ".join(str(s) for s in stack if str(s).strip())
        if isinstance(stack, str) and stack.strip():
            item["stack"] = stack.strip()
        out.append(item)
    return out


def base_summary(profile: dict, meta: dict, tech: list) -> str:
    """Profile bio fitted into the summary bounds, padded with headline and tech."""
    summary = _first_str(profile, "summary", "bio", "about")
    if isinstance(profile.get("meta"), dict):
        summary = summary or _first_str(profile["meta"], "bio", "summary")
    parts = [summary] if summary else []
    if len(" ".join(parts)) < MIN_SUMMARY and meta.get("headline"):
        parts.append(meta["headline"].rstrip(".") + ".")
    if len(" ".join(parts)) < MIN_SUMMARY and tech:
        parts.append("Core technologies: " + ", ".join(tech[:8]) + ".")
    return truncate_words(" ".join(parts).strip(), MAX_SUMMARY)


def build_base_document(aggregate: dict, overrides) -> dict:
    """Deterministic projection of aggregated rows and overrides onto the resume shape.

    Used as the last-known-good base for the hard gate's targeted merge.
    Keys with no source data are left out rather than invented.
    """
    aggregate = aggregate if isinstance(aggregate, dict) else {}
    profile = first_profile(aggregate)
    meta = extract_profile_meta(profile)

    experience = base_experience(aggregate)
    if not meta.get("headline") and experience:
        meta["headline"] = f"{experience[0]['role']} at {experience[0]['company']}"
    if "contact" not in meta:
        user = aggregate.get("user") if isinstance(aggregate.get("user"), dict) else {}
        email = _first_str(user, "email")
        if email:
            meta["contact"] = {"email": email}

    tech = _tech_list(aggregate)
    projects = base_projects(aggregate)
    doc = {"meta": meta, "experience": experience, "projects": projects}

    if len(", ".join(tech)) >= 2:
        snapshot = {"tech": truncate_words(", ".join(tech), MAX_TECH)}
        selected = [
            truncate_words(f"{p['title']} — {p['description']}", MAX_SELECTED_PROJECT)
            for p in projects[:3]
        ]
        selected = [s for s in selected if len(s) >= 10]
        if selected:
            snapshot["selected_projects"] = selected
        doc["snapshot"] = snapshot

    summary = base_summary(profile, meta, tech)
    if summary:
        doc["summary"] = summary

    for key, value in showcase_sources(aggregate, overrides).items():
        if value:
            doc[key] = value
    return doc


# ---------------------------------------------------------------------------
# Pre-gate polish
# ---------------------------------------------------------------------------

def compact_certification_dates(doc: dict):
    """Certification dates are shown as a year: "2024-01-01" -> "2024"."""
    for cert in doc.get("certifications") or []:
        if isinstance(cert, dict) and isinstance(cert.get("date"), str):
            match = _YEAR_PREFIX.match(cert["date"].strip())
            if match:
                cert["date"] = match.group(1)


def url_label(cert: dict) -> str:
    """Short link text: URL host without www., else the issuer, else 'link'."""
    url = cert.get("url")
    if isinstance(url, str) and url.strip():
        host = urlparse(url.strip()).hostname or ""
        if host.startswith("www."):
            host = host[4:]
        if host:
            return host
    issuer = cert.get("issuer")
    if isinstance(issuer, str) and issuer.strip():
        return issuer.strip()
    return "link"


def add_url_labels(doc: dict):
    for cert in doc.get("certifications") or []:
        if isinstance(cert, dict) and not cert.get("url_label"):
            cert["url_label"] = url_label(cert)


def finalize_document(doc: dict, labels: dict) -> dict:
    """Apply certification polish and attach labels. Mutates and returns doc."""
    compact_certification_dates(doc)
    add_url_labels(doc)
    doc["labels"] = dict(labels)
    return doc
