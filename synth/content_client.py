"""Content Service Client: one operation per stage, plus narrow and broad enrichment.

Every operation builds a prompt (instructions + schema fragment + JSON
context), sends it through the shared transport with bounded retry on
retryable transport errors, extracts the JSON object from the text answer
and sanitizes well-known producer mistakes before handing it back.
Schema validation is the caller's job.
"""

import json
import logging
import re

from synth import prompts
from synth.api_utils import RETRY_DELAYS, CancelToken, call_with_retry
from synth.errors import ContentServiceError, ContentTransportError, JobCancelledError
from synth.json_extract import extract_json_object
from synth.overrides import MAX_CERT_DESCRIPTION_LENGTH, truncate_words
from synth.schema_validator import get_validator

logger = logging.getLogger(__name__)

_YEAR_ONLY = re.compile(r"^\d{4}$")
_YEAR_MONTH = re.compile(r"^\d{4}-\d{2}$")


# ---------------------------------------------------------------------------
# Response sanitizers
# ---------------------------------------------------------------------------

def normalize_cert_date(value: str) -> str:
    """YYYY -> YYYY-01-01, YYYY-MM -> YYYY-MM-01; anything else unchanged."""
    value = value.strip()
    if _YEAR_ONLY.match(value):
        return value + "-01-01"
    if _YEAR_MONTH.match(value):
        return value + "-01"
    return value


def sanitize_contact(doc: dict) -> dict:
    """Coerce a bare-string meta.contact into {"email": <string>}."""
    meta = doc.get("meta")
    if isinstance(meta, dict) and isinstance(meta.get("contact"), str):
        contact = meta["contact"].strip()
        if contact:
            meta["contact"] = {"email": contact}
        else:
            del meta["contact"]
    return doc


def sanitize_certifications(doc: dict) -> dict:
    certs = doc.get("certifications")
    if not isinstance(certs, list):
        return doc
    for cert in certs:
        if not isinstance(cert, dict):
            continue
        if isinstance(cert.get("date"), str):
            cert["date"] = normalize_cert_date(cert["date"])
        if isinstance(cert.get("description"), str):
            cert["description"] = truncate_words(cert["description"].strip(), MAX_CERT_DESCRIPTION_LENGTH)
    return doc


def sanitize_response(doc: dict) -> dict:
    """Apply every sanitizer in place and return the document."""
    sanitize_contact(doc)
    sanitize_certifications(doc)
    return doc


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, ContentTransportError) and exc.retryable


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ContentClient:
    """Per-job facade over a shared transport.

    The transport is shared across jobs; language and cancel token are
    per job, so build one client per job.
    """

    def __init__(self, transport, language: str = "english", retry_delays=RETRY_DELAYS,
                 cancel: CancelToken = None, validator=None):
        self.transport = transport
        self.language = language or "english"
        self.retry_delays = tuple(retry_delays)
        self.cancel = cancel or CancelToken()
        self.validator = validator or get_validator()

    def _instructions(self, template: str, keys=None, schema=None) -> str:
        parts = [
            prompts.LANGUAGE_INSTRUCTION.format(language=self.language),
            template.format(language=self.language),
            prompts.JSON_ONLY,
        ]
        if schema is None and keys:
            schema = self.validator.fragment_schema(keys)
        if schema is not None:
            parts.append("JSON-SCHEMA:\n" + json.dumps(schema, ensure_ascii=False))
        return "\n\n".join(parts)

    def _request(self, header: str, instructions: str, payload, label: str) -> dict:
        context = {"payload": payload, "instructions": instructions}
        prompt = f"{header}:\n" + json.dumps(context, ensure_ascii=False, default=str)

        def _send():
            self.cancel.raise_if_cancelled()
            return self.transport.send(prompt)

        output = call_with_retry(
            _send,
            delays=self.retry_delays,
            is_retryable=_is_retryable,
            cancel=self.cancel,
            label=f"content service {label}",
        )
        logger.debug("%s output: %s", label, output[:500])
        return sanitize_response(extract_json_object(output))

    # -- stage operations ---------------------------------------------------

    def generate_meta(self, payload: dict) -> dict:
        """Stage 1: meta and snapshot."""
        return self._request(
            prompts.HEADER_META,
            self._instructions(prompts.META_INSTRUCTIONS, keys=("meta", "snapshot")),
            payload,
            "generate_meta",
        )

    def generate_experience(self, payload: dict) -> dict:
        """Stage 2: experience."""
        return self._request(
            prompts.HEADER_EXPERIENCE,
            self._instructions(prompts.EXPERIENCE_INSTRUCTIONS, keys=("experience",)),
            payload,
            "generate_experience",
        )

    def generate_showcase(self, payload: dict) -> dict:
        """Stage 3: projects, publications and certifications."""
        return self._request(
            prompts.HEADER_SHOWCASE,
            self._instructions(
                prompts.SHOWCASE_INSTRUCTIONS,
                keys=("projects", "publications", "certifications"),
            ),
            payload,
            "generate_showcase",
        )

    def generate_synthesis(self, payload: dict) -> dict:
        """Stage 4: summary, extras and meta polish."""
        return self._request(
            prompts.HEADER_SYNTHESIS,
            self._instructions(prompts.SYNTHESIS_INSTRUCTIONS, keys=("summary", "extras", "meta")),
            payload,
            "generate_synthesis",
        )

    # -- enrichment -----------------------------------------------------------

    def enrich_fields(self, fields: dict, context: dict = None) -> dict:
        """Narrow enrichment: ask only for the named keys.

        Args:
            fields: key -> current (invalid or missing) value for each offending key.
            context: optional facts the service may draw on (aggregated, overrides).

        Returns:
            The parsed response object; callers keep only the keys they asked for.
        """
        keys = list(fields)
        payload = {"fields": fields}
        if context:
            payload["context"] = context
        return self._request(
            prompts.HEADER_ENRICH_FIELDS,
            self._instructions(prompts.ENRICH_FIELDS_INSTRUCTIONS, keys=keys),
            payload,
            "enrich_fields",
        )

    def enrich_full(self, document: dict, overrides: dict) -> dict:
        """Broad enrichment: whole working document plus overrides."""
        return self._request(
            prompts.HEADER_ENRICH_FULL,
            self._instructions(
                prompts.ENRICH_FULL_INSTRUCTIONS,
                schema=self.validator.resolved_schema("resume"),
            ),
            {"base_resume": document, "overrides": overrides},
            "enrich_full",
        )

    def generate_resume(self, payload: dict) -> dict:
        """Single-call flow used when the staged flow is switched off."""
        return self._request(
            prompts.HEADER_SINGLE_SHOT,
            self._instructions(
                prompts.SINGLE_SHOT_INSTRUCTIONS,
                schema=self.validator.resolved_schema("resume"),
            ),
            payload,
            "generate_resume",
        )

    # -- labels -------------------------------------------------------------

    def format_labels(self) -> dict:
        """Section headings in the job's language, falling back to English.

        English needs no network call. Missing or non-string keys in the
        service's answer are filled from DEFAULT_LABELS.
        """
        labels = dict(prompts.DEFAULT_LABELS)
        if self.language.strip().lower() in ("english", "en"):
            return labels

        template = prompts.LABELS_INSTRUCTIONS.format(
            language=self.language,
            labels=json.dumps(prompts.DEFAULT_LABELS, ensure_ascii=False, indent=2),
        )
        instructions = template + "\n\n" + prompts.JSON_ONLY
        try:
            translated = self._request(
                f"{prompts.HEADER_LABELS} to {self.language}",
                instructions,
                {"language": self.language},
                "format_labels",
            )
        except JobCancelledError:
            raise
        except ContentServiceError as e:
            logger.warning("Label translation failed, using English labels: %s", e)
            return labels

        for key in labels:
            value = translated.get(key)
            if isinstance(value, str) and value.strip():
                labels[key] = value.strip()
        return labels
