"""Shared fixtures: sample documents, aggregates, and stub collaborators (no network)."""

import copy
import json

import pytest

from synth.config import Settings
from synth.errors import ContentTransportError
from synth.jobs import Job

VALID_META = {
    "name": "Ada Lovelace",
    "headline": "Staff Backend Engineer",
    "contact": {"email": "ada@example.com", "location": "London"},
    "social_links": {"github": "https://github.com/ada"},
}
VALID_SNAPSHOT = {
    "tech": "Python, Go, PostgreSQL, Kafka, Kubernetes",
    "achievements": ["Cut p99 latency of the payments API by 45% through query tuning"],
    "selected_projects": ["Ledger — double-entry accounting service"],
}
VALID_SUMMARY = (
    "Backend engineer with ten years of experience building reliable payment and data "
    "platforms in Python and Go, focused on latency, correctness and clear APIs."
)
VALID_EXPERIENCE = [
    {
        "company": "Acme Pay",
        "role": "Staff Engineer",
        "period": "2019 – Present",
        "bullets": ["Led the migration of the ledger service to PostgreSQL partitioning."],
    }
]
VALID_PROJECTS = [
    {
        "title": "Ledger",
        "description": "Double-entry accounting service handling two million postings a day.",
        "url": "https://github.com/ada/ledger",
    }
]
VALID_PUBLICATIONS = [
    "Scaling Postgres Ledgers — 2023. Partitioning strategies for write-heavy workloads."
]
VALID_CERTIFICATIONS = [
    {
        "name": "Certified Kubernetes Administrator",
        "issuer": "CNCF",
        "date": "2023-05-01",
        "url": "https://www.cncf.io/certification/cka/",
    }
]
VALID_EXTRAS = [{"category": "Speaking", "text": "Talk at PyCon 2024 on idempotent payment APIs"}]

USER_ID = "6f1c2a4e-8b7d-4c3a-9e2f-1a2b3c4d5e6f"


def valid_resume() -> dict:
    return copy.deepcopy({
        "meta": VALID_META,
        "summary": VALID_SUMMARY,
        "snapshot": VALID_SNAPSHOT,
        "experience": VALID_EXPERIENCE,
        "projects": VALID_PROJECTS,
        "publications": VALID_PUBLICATIONS,
        "certifications": VALID_CERTIFICATIONS,
        "extras": VALID_EXTRAS,
    })


def stage_outputs() -> dict:
    """Well-formed content-service answers keyed by the request header they answer."""
    return {
        "Format profile and snapshot": json.dumps({"meta": VALID_META, "snapshot": VALID_SNAPSHOT}),
        "Format professional history": json.dumps({"experience": VALID_EXPERIENCE}),
        "Format projects, publications and certifications": json.dumps({
            "projects": VALID_PROJECTS,
            "publications": VALID_PUBLICATIONS,
            "certifications": VALID_CERTIFICATIONS,
        }),
        "Polish summary, extras and meta": json.dumps({"summary": VALID_SUMMARY, "extras": VALID_EXTRAS}),
    }


# ---------------------------------------------------------------------------
# Stub collaborators
# ---------------------------------------------------------------------------

class ScriptedTransport:
    """Answers prompts by their header ("<header>:\\n..."). Unrouted headers are unreachable.

    A route maps to a string, an exception, or a list of those consumed in
    order (the last item repeats).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.prompts = []

    def headers(self) -> list:
        return [p.split(":\n", 1)[0] for p in self.prompts]

    def send(self, prompt: str) -> str:
        self.prompts.append(prompt)
        header = prompt.split(":\n", 1)[0]
        for prefix, answer in self.routes.items():
            if header.startswith(prefix):
                if isinstance(answer, list):
                    answer = answer.pop(0) if len(answer) > 1 else answer[0]
                if isinstance(answer, Exception):
                    raise answer
                return answer
        raise ContentTransportError("content service unreachable", retryable=True)


class StubRenderer:
    """Returns (or raises) scripted outputs; the last one repeats."""

    def __init__(self, outputs=None):
        self.outputs = list(outputs or [b"%PDF-1.4\n%stub\n"])
        self.calls = 0

    def render_html_to_pdf(self, html: str) -> bytes:
        self.calls += 1
        out = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(out, Exception):
            raise out
        return out


class MemoryRepo:
    def __init__(self):
        self.jobs = {}
        self.history = []

    def save(self, job):
        self.jobs[job.id] = copy.deepcopy(job.to_dict())
        self.history.append(job.status.value)

    def get(self, job_id):
        raw = self.jobs.get(job_id)
        return Job.from_dict(raw) if raw else None


class StubAggregator:
    def __init__(self, aggregate=None, error=None):
        self.data = aggregate or {}
        self.error = error
        self.calls = 0

    def aggregate(self, user_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.data)

    def get_job_application(self, user_id, application_id):
        for app in self.data.get("job_applications", []):
            if str(app.get("id")) == str(application_id):
                return app
        return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def aggregate():
    return {
        "profiles": [
            {
                "full_name": "Ada Lovelace",
                "title": "Staff Backend Engineer",
                "email": "ada@example.com",
                "location": "London",
                "website": "https://ada.dev",
                "bio": (
                    "Backend engineer who builds payment platforms and data pipelines, "
                    "with a long record of shipping reliable systems."
                ),
                "social_links": json.dumps({
                    "github": "https://github.com/ada",
                    "linkedin": "https://linkedin.com/in/ada",
                }),
            }
        ],
        "experiences": [
            {
                "company": "Acme Pay",
                "title": "Staff Engineer",
                "start_date": "2019-03-01",
                "end_date": None,
                "highlights": [
                    "Led the migration of the ledger service to PostgreSQL partitioning.",
                    "Introduced idempotency keys across the payments API.",
                ],
            }
        ],
        "projects": [
            {
                "title": "Ledger",
                "description": "Double-entry accounting service handling two million postings a day.",
                "url": "https://github.com/ada/ledger",
                "technologies": ["Python", "PostgreSQL"],
            }
        ],
        "project_technologies": [{"name": "Kafka"}],
        "publications": [
            {"id": "p1", "title": "Scaling Postgres Ledgers", "outline": "Partitioning strategies for write-heavy workloads"}
        ],
        "certifications": [
            {
                "id": "c1",
                "name": "AWS Solutions Architect",
                "issuer": "Amazon",
                "date_obtained": "2022-06-15",
                "url": "https://aws.amazon.com/certification/",
            }
        ],
        "extras": [{"id": "e1", "category": "Community", "text": "Organizer of the London Python meetup"}],
        "job_applications": [{"id": "42", "job_title": "Principal Engineer", "company_name": "Globex"}],
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(
        output_root=tmp_path / "out",
        data_dir=tmp_path / "data",
        retry_delays=(0.0, 0.0),
        render_delays=(0.0, 0.0),
    )


@pytest.fixture
def repo():
    return MemoryRepo()


@pytest.fixture
def job():
    return Job(user_id=USER_ID)
