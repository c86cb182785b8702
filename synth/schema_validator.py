"""Named JSON Schema validation for resume documents and their slices.

Schemas live in synth/schemas/ and are loaded once into a referencing
Registry, so the slice schemas ($ref into resume.schema.json) resolve
without touching the filesystem again. Validators are read-only after
construction and safe to share between jobs.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path

from jsonschema import Draft202012Validator
from referencing import Registry, Resource

from synth.errors import SchemaValidationError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"

FULL_RESUME = "resume"
PROFILE_SLICE = "profile"
EXPERIENCE_SLICE = "experience"
PUBLICATIONS_SLICE = "publications"

SCHEMA_FILES = {
    FULL_RESUME: "resume.schema.json",
    PROFILE_SLICE: "profile.schema.json",
    EXPERIENCE_SLICE: "experience.schema.json",
    PUBLICATIONS_SLICE: "publications.schema.json",
}

# Logical names used in docs and logs map onto the file keys above.
ALIASES = {
    "full resume": FULL_RESUME,
    "profile slice": PROFILE_SLICE,
    "experience slice": EXPERIENCE_SLICE,
    "publications slice": PUBLICATIONS_SLICE,
}


def _format_path(path) -> str:
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out or "(root)"


class SchemaValidator:
    """Validates documents against named schemas and per-key fragments."""

    def __init__(self, schema_dir: Path = SCHEMA_DIR):
        self._schemas = {}
        resources = []
        for name, filename in SCHEMA_FILES.items():
            with open(Path(schema_dir) / filename, "r") as f:
                contents = json.load(f)
            self._schemas[name] = contents
            resources.append((contents["$id"], Resource.from_contents(contents)))
        self._registry = Registry().with_resources(resources)
        self._validators = {
            name: Draft202012Validator(schema, registry=self._registry)
            for name, schema in self._schemas.items()
        }
        self._full_id = self._schemas[FULL_RESUME]["$id"]
        self._fragment_validators = {}

    def _resolve_name(self, schema_name: str) -> str:
        name = ALIASES.get(schema_name, schema_name)
        if name not in self._validators:
            raise KeyError(f"unknown schema: {schema_name}")
        return name

    def violations(self, document, schema_name: str = FULL_RESUME) -> list:
        """Return every violation as 'path: message', sorted by path."""
        validator = self._validators[self._resolve_name(schema_name)]
        found = [
            f"{_format_path(e.absolute_path)}: {e.message}"
            for e in validator.iter_errors(document)
        ]
        return sorted(found)

    def validate(self, document, schema_name: str = FULL_RESUME):
        """Raise SchemaValidationError listing all violations; return None when valid."""
        found = self.violations(document, schema_name)
        if found:
            raise SchemaValidationError(ALIASES.get(schema_name, schema_name), found)

    def is_valid(self, document, schema_name: str = FULL_RESUME) -> bool:
        return not self.violations(document, schema_name)

    # -----------------------------------------------------------------------
    # Per-key fragments of the full resume schema
    # -----------------------------------------------------------------------

    def _fragment_validator(self, key: str) -> Draft202012Validator:
        validator = self._fragment_validators.get(key)
        if validator is None:
            if key not in self._schemas[FULL_RESUME]["$defs"]:
                raise KeyError(f"no schema fragment for key: {key}")
            schema = {
                "type": "object",
                "required": [key],
                "properties": {key: {"$ref": f"{self._full_id}#/$defs/{key}"}},
            }
            validator = Draft202012Validator(schema, registry=self._registry)
            # Plain dict assignment: concurrent builders produce identical validators.
            self._fragment_validators[key] = validator
        return validator

    def fragment_violations(self, document, keys) -> dict:
        """Violations per top-level key; keys that validate map to an empty list."""
        out = {}
        for key in keys:
            validator = self._fragment_validator(key)
            out[key] = sorted(
                f"{_format_path(e.absolute_path)}: {e.message}"
                for e in validator.iter_errors(document)
            )
        return out

    def is_fragment_valid(self, document, key: str) -> bool:
        return not self.fragment_violations(document, [key])[key]

    # -----------------------------------------------------------------------
    # Prompt helpers
    # -----------------------------------------------------------------------

    def _inline(self, node):
        defs = self._schemas[FULL_RESUME]["$defs"]
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str) and "#/$defs/" in ref:
                return self._inline(defs[ref.rsplit("/", 1)[1]])
            return {
                k: self._inline(v) for k, v in node.items()
                if k not in ("$schema", "$id", "$defs")
            }
        if isinstance(node, list):
            return [self._inline(v) for v in node]
        return node

    def resolved_schema(self, schema_name: str) -> dict:
        """The named schema with every $ref inlined, for embedding in prompts."""
        return self._inline(self._schemas[self._resolve_name(schema_name)])

    def fragment_schema(self, keys) -> dict:
        defs = self._schemas[FULL_RESUME]["$defs"]
        return {
            "type": "object",
            "required": list(keys),
            "properties": {k: self._inline(defs[k]) for k in keys},
        }


@lru_cache(maxsize=1)
def get_validator() -> SchemaValidator:
    """Process-wide validator over the bundled schemas."""
    return SchemaValidator()
