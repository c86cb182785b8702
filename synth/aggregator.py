"""File-backed aggregation collaborator.

Aggregated source data for a user lives in <data_dir>/aggregates/<user_id>.json,
an object with any of: profiles, experiences, projects, publications,
certifications, extras, job_applications, project_technologies, user.
Missing collections are simply absent keys.
"""

import json
import logging
from pathlib import Path

from synth.backfill import decode_social_links
from synth.errors import AggregationError

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "profiles",
    "experiences",
    "projects",
    "publications",
    "certifications",
    "extras",
    "job_applications",
    "project_technologies",
)


class FileAggregator:
    """Reads one JSON document per user."""

    def __init__(self, data_dir):
        self.root = Path(data_dir) / "aggregates"

    def _path(self, user_id: str) -> Path:
        # user ids are validated as UUIDs at the boundary; guard anyway
        safe = Path(str(user_id)).name
        return self.root / f"{safe}.json"

    def _load(self, user_id: str) -> dict:
        path = self._path(user_id)
        if not path.exists():
            logger.info("No aggregated data for user %s (%s)", user_id, path)
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise AggregationError(f"corrupt aggregate file {path}: {e}") from e
        if not isinstance(data, dict):
            raise AggregationError(f"aggregate file {path} is not an object")
        return data

    def aggregate(self, user_id: str) -> dict:
        """Return the user's aggregate. Unknown users yield an empty dict.

        Raises:
            AggregationError: the file exists but cannot be parsed.
        """
        data = self._load(user_id)
        out = {}
        for key, value in data.items():
            if key in COLLECTIONS and not isinstance(value, list):
                logger.warning("Aggregate key %s is not a list, dropping it", key)
                continue
            out[key] = value

        profiles = []
        for profile in out.get("profiles", []):
            if isinstance(profile, dict) and "social_links" in profile:
                profile = dict(profile)
                profile["social_links"] = decode_social_links(profile["social_links"])
            profiles.append(profile)
        if profiles:
            out["profiles"] = profiles

        logger.info(
            "Aggregated %s for user %s",
            ", ".join(f"{k}={len(out[k])}" for k in COLLECTIONS if k in out) or "nothing",
            user_id,
        )
        return out

    def get_job_application(self, user_id: str, application_id: str):
        """The job application with this id, or None."""
        for app in self._load(user_id).get("job_applications") or []:
            if isinstance(app, dict) and str(app.get("id")) == str(application_id):
                return app
        return None
