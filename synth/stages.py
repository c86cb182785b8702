"""The four synthesis stages: validators, enrichers and the stage table.

Stage order is fixed:

    1 Foundation              meta, snapshot
    2 Professional History    experience
    3 Showcase                projects, publications, certifications
    4 Synthesis               summary, extras (+ add-only meta polish)

For each stage: validate; if invalid call the stage's narrow content
operation; merge only the stage's own keys and only values that pass their
schema fragment; if keys are still bad, escalate to enrich_fields with just
those keys, then to enrich_full. Enrichment failures are logged and the
pipeline moves on.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Optional

from synth.errors import ContentServiceError
from synth.schema_validator import get_validator

logger = logging.getLogger(__name__)

SUMMARY_MIN = 80
SUMMARY_MAX = 330

# Sub-fields stage 4 may fill when they are absent or empty. name and
# social_links are never polished.
POLISHABLE_META_FIELDS = ("headline", "contact", "website")


@dataclass(frozen=True)
class StageValidationResult:
    valid: bool
    missing: tuple = ()
    partial: dict = field(default_factory=dict)
    error: Optional[str] = None


def _non_empty_str(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _non_empty_list(value) -> bool:
    return isinstance(value, list) and len(value) > 0


def _owner(path: str) -> str:
    """Top-level key a field path belongs to: "experience[0].role" -> "experience"."""
    return path.split(".")[0].split("[")[0]


def _result(doc: dict, keys, missing: list) -> StageValidationResult:
    """Combine hand-checked gaps with schema violations for keys that passed them."""
    errors = []
    if isinstance(doc, dict):
        flagged = {_owner(m) for m in missing}
        checked = [k for k in keys if k in doc and k not in flagged]
        for key, found in get_validator().fragment_violations(doc, checked).items():
            if found:
                missing.append(key)
                errors.extend(found)
        partial = {k: copy.deepcopy(doc[k]) for k in keys if k in doc}
    else:
        partial = {}
    return StageValidationResult(
        valid=not missing,
        missing=tuple(missing),
        partial=partial,
        error="; ".join(errors) or None,
    )


# ---------------------------------------------------------------------------
# Stage validators (pure)
# ---------------------------------------------------------------------------

def validate_foundation(doc: dict) -> StageValidationResult:
    """meta.name, meta.headline non-empty; meta.contact a non-empty object; snapshot.tech present."""
    missing = []
    meta = doc.get("meta") if isinstance(doc, dict) else None
    if not isinstance(meta, dict):
        missing.append("meta")
    else:
        if not _non_empty_str(meta.get("name")):
            missing.append("meta.name")
        if not _non_empty_str(meta.get("headline")):
            missing.append("meta.headline")
        contact = meta.get("contact")
        if not isinstance(contact, dict) or not contact:
            missing.append("meta.contact")
    snapshot = doc.get("snapshot") if isinstance(doc, dict) else None
    if not isinstance(snapshot, dict):
        missing.append("snapshot")
    elif not _non_empty_str(snapshot.get("tech")):
        missing.append("snapshot.tech")
    return _result(doc, ("meta", "snapshot"), missing)


def validate_history(doc: dict) -> StageValidationResult:
    """A non-empty experience array; every role has role, company and bullets."""
    missing = []
    experience = doc.get("experience") if isinstance(doc, dict) else None
    if not _non_empty_list(experience):
        missing.append("experience")
    else:
        for i, item in enumerate(experience):
            if not isinstance(item, dict):
                missing.append(f"experience[{i}]")
                continue
            if not _non_empty_str(item.get("role")):
                missing.append(f"experience[{i}].role")
            if not _non_empty_str(item.get("company")):
                missing.append(f"experience[{i}].company")
            if not _non_empty_list(item.get("bullets")):
                missing.append(f"experience[{i}].bullets")
    return _result(doc, ("experience",), missing)


def validate_showcase(doc: dict) -> StageValidationResult:
    missing = []
    for key in ("projects", "publications", "certifications"):
        value = doc.get(key) if isinstance(doc, dict) else None
        if not _non_empty_list(value):
            missing.append(key)
    return _result(doc, ("projects", "publications", "certifications"), missing)


def validate_synthesis(doc: dict) -> StageValidationResult:
    missing = []
    summary = doc.get("summary") if isinstance(doc, dict) else None
    if not isinstance(summary, str) or not SUMMARY_MIN <= len(summary) <= SUMMARY_MAX:
        missing.append("summary")
    extras = doc.get("extras") if isinstance(doc, dict) else None
    if not _non_empty_list(extras):
        missing.append("extras")
    return _result(doc, ("summary", "extras"), missing)


@dataclass(frozen=True)
class Stage:
    number: int
    name: str
    keys: tuple
    operation: str
    validate: object
    polish_meta: bool = False


STAGES = (
    Stage(1, "Foundation", ("meta", "snapshot"), "generate_meta", validate_foundation),
    Stage(2, "Professional History", ("experience",), "generate_experience", validate_history),
    Stage(3, "Showcase", ("projects", "publications", "certifications"), "generate_showcase", validate_showcase),
    Stage(4, "Synthesis", ("summary", "extras"), "generate_synthesis", validate_synthesis, polish_meta=True),
)


@dataclass
class StageReport:
    stage: int
    name: str
    valid_before: bool
    valid_after: bool
    enriched: Optional[str] = None
    missing: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "name": self.name,
            "valid_before": self.valid_before,
            "valid_after": self.valid_after,
            "enriched": self.enriched,
            "missing": list(self.missing),
        }


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

def polish_meta(doc, candidate_meta) -> list:
    """Fill absent or empty meta sub-fields from candidate_meta. Never replaces a value.

    Returns the sub-fields that were filled.
    """
    if not isinstance(candidate_meta, dict):
        return []
    meta = doc.get("meta")
    if not isinstance(meta, dict):
        meta = {}
    filled = []
    for key in POLISHABLE_META_FIELDS:
        current = meta.get(key)
        if current:
            continue
        value = candidate_meta.get(key)
        if key == "contact":
            ok = isinstance(value, dict) and bool(value)
        else:
            ok = _non_empty_str(value)
        if ok:
            meta[key] = copy.deepcopy(value)
            filled.append(key)
    if filled:
        doc.set("meta", meta)
        logger.info("Meta polish filled: %s", filled)
    return filled


def _offending_keys(stage: Stage, doc) -> list:
    """Stage keys that are not yet acceptable in the working document."""
    result = stage.validate(doc.data)
    flagged = {_owner(m) for m in result.missing}
    return [key for key in stage.keys if key in flagged]


def _merge(stage: Stage, doc, candidate: dict, keys) -> list:
    merged = doc.merge_scoped(candidate, keys)
    if stage.polish_meta and isinstance(candidate, dict):
        polish_meta(doc, candidate.get("meta"))
    if merged:
        logger.info("Stage %d merged keys: %s", stage.number, merged)
    return merged


def _escalate(stage: Stage, doc, client, payload: dict, overrides: dict) -> Optional[str]:
    """Narrow call, then enrich_fields, then enrich_full. Returns the strategy that succeeded."""
    candidate = getattr(client, stage.operation)(payload)
    _merge(stage, doc, candidate, stage.keys)
    offending = _offending_keys(stage, doc)
    if not offending:
        return "narrow"

    logger.info("Stage %d: escalating to field enrichment for %s", stage.number, offending)
    fields = {}
    for key in offending:
        value = candidate.get(key) if isinstance(candidate, dict) else None
        fields[key] = value if value is not None else doc.get(key)
    narrowed = client.enrich_fields(fields, context=payload)
    _merge(stage, doc, narrowed, offending)
    offending = _offending_keys(stage, doc)
    if not offending:
        return "fields"

    logger.info("Stage %d: escalating to full enrichment for %s", stage.number, offending)
    full = client.enrich_full(doc.snapshot(), overrides)
    _merge(stage, doc, full, offending)
    if not _offending_keys(stage, doc):
        return "full"
    return None


def enrich_stage(stage: Stage, doc, client, base_payload: dict, overrides: dict) -> StageReport:
    """Validate one stage and enrich it if needed. Never raises for content failures.

    Args:
        stage: entry from STAGES.
        doc: the job's PartialResume; mutated through scoped merges only.
        client: ContentClient bound to the job.
        base_payload: {"aggregated": ..., "overrides": ...}.
        overrides: override map sent with broad enrichment.

    Returns:
        StageReport for job metadata.
    """
    logger.info("Stage %d - %s (%s)", stage.number, stage.name, ", ".join(stage.keys))
    before = stage.validate(doc.data)
    if before.valid:
        logger.info("Stage %d already valid, skipping enrichment", stage.number)
        return StageReport(stage.number, stage.name, True, True)

    logger.info("Stage %d missing: %s", stage.number, list(before.missing))
    payload = dict(base_payload)
    payload["resume"] = doc.snapshot()
    strategy = None
    try:
        strategy = _escalate(stage, doc, client, payload, overrides)
    except ContentServiceError as e:
        logger.warning("Stage %d enrichment failed, keeping current state: %s", stage.number, e)

    after = stage.validate(doc.data)
    if after.valid:
        logger.info("Stage %d validated", stage.number)
    else:
        logger.warning("Stage %d still invalid after enrichment: %s", stage.number, list(after.missing))
    return StageReport(
        stage=stage.number,
        name=stage.name,
        valid_before=False,
        valid_after=after.valid,
        enriched=strategy,
        missing=list(after.missing),
    )


def run_stages(doc, client, base_payload: dict, overrides: dict, cancel=None) -> list:
    """Run every stage in order and return their reports."""
    reports = []
    for stage in STAGES:
        if cancel is not None:
            cancel.raise_if_cancelled()
        reports.append(enrich_stage(stage, doc, client, base_payload, overrides))
    return reports
