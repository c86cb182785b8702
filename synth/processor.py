"""Synthesis Orchestrator.

process(job) runs one job end to end:

    aggregate -> normalize overrides -> seed working document
    -> stages 1..4 (or one single-shot call) -> backfill -> labels
    -> hard gate (targeted merge onto the base document on failure)
    -> typed document -> HTML / PDF artifacts -> status -> save

Every content-service failure before the gate is absorbed. A gate failure,
a failure to write the HTML artifact, cancellation, or any unexpected
error ends the job as failed; the job is always saved on the way out.
"""

import copy
import logging

from synth import backfill
from synth.aggregator import FileAggregator
from synth.api_utils import CancelToken, call_with_retry
from synth.content_client import ContentClient
from synth.document import PartialResume, ResumeDocument
from synth.errors import (
    AggregationError,
    ContentServiceError,
    HardGateError,
    JobCancelledError,
)
from synth.jobs import JobStatus, JsonJobRepository
from synth.overrides import normalize_overrides
from synth.render import ReportlabRenderer, persist_artifacts
from synth.schema_validator import (
    EXPERIENCE_SLICE,
    FULL_RESUME,
    PROFILE_SLICE,
    PUBLICATIONS_SLICE,
    get_validator,
)
from synth.stages import run_stages
from synth.transport import build_transport

logger = logging.getLogger(__name__)

# Keys a caller-supplied profile may seed directly when they already validate.
SEED_KEYS = ("meta", "summary", "snapshot", "experience", "projects")
ALL_KEYS = SEED_KEYS + backfill.SHOWCASE_KEYS


class Processor:
    """Drives one job at a time; safe to share across worker threads."""

    def __init__(self, settings, transport, renderer, repo, aggregator, validator=None):
        self.settings = settings
        self.transport = transport
        self.renderer = renderer
        self.repo = repo
        self.aggregator = aggregator
        self.validator = validator or get_validator()

    # -- helpers ------------------------------------------------------------

    def _aggregate(self, job, cancel: CancelToken) -> dict:
        """Fetch aggregated data; persistent failure degrades to an empty aggregate."""
        try:
            aggregate = call_with_retry(
                lambda: self.aggregator.aggregate(job.user_id),
                delays=self.settings.retry_delays,
                is_retryable=lambda e: isinstance(e, OSError),
                cancel=cancel,
                label="aggregation",
            )
        except (AggregationError, OSError) as e:
            logger.warning("Aggregation failed for user %s, using overrides only: %s", job.user_id, e)
            job.metadata.setdefault("ai_warnings", []).append(f"aggregation failed: {e}")
            return {}

        app_id = job.metadata.get("job_application_id")
        if app_id:
            app = self.aggregator.get_job_application(job.user_id, app_id)
            if app is not None:
                aggregate["job_application"] = app
            else:
                logger.warning("Job application %s not found for user %s", app_id, job.user_id)
        return aggregate

    def _seed(self, profile: dict, overrides) -> PartialResume:
        doc = PartialResume(validator=self.validator)
        if isinstance(profile, dict):
            seeded = doc.merge_scoped(profile, SEED_KEYS)
            if seeded:
                logger.info("Seeded working document from profile: %s", seeded)
        doc.merge_scoped(backfill.showcase_sources({}, overrides), backfill.SHOWCASE_KEYS)
        return doc

    def _single_shot(self, doc: PartialResume, client: ContentClient, payload: dict) -> bool:
        try:
            candidate = client.generate_resume(payload)
        except ContentServiceError as e:
            logger.warning("Single-shot generation failed, keeping current state: %s", e)
            return False
        merged = doc.merge_scoped(candidate, ALL_KEYS)
        logger.info("Single-shot merged keys: %s", merged)
        return bool(merged)

    def _gate(self, working: dict, aggregate: dict, overrides, labels: dict) -> dict:
        """Hard gate with one targeted-merge fallback.

        Raises:
            HardGateError: neither the working document nor the targeted merge validates.
        """
        final = backfill.finalize_document(copy.deepcopy(working), labels)
        found = self.validator.violations(final, FULL_RESUME)
        if not found:
            return final

        logger.warning("Final document failed the schema (%d violations), trying targeted merge", len(found))
        base = backfill.build_base_document(aggregate, overrides)
        # Keys that validated during the stages are the last known good values.
        for key in SEED_KEYS:
            if key in working and self.validator.is_fragment_valid(working, key):
                base[key] = copy.deepcopy(working[key])
        for key in backfill.SHOWCASE_KEYS:
            if working.get(key) and self.validator.is_fragment_valid(working, key):
                base[key] = copy.deepcopy(working[key])
        backfill.backfill_meta(base, aggregate)
        merged = backfill.finalize_document(base, labels)

        remaining = self.validator.violations(merged, FULL_RESUME)
        if remaining:
            logger.error("Hard gate failed: %s", "; ".join(remaining))
            raise HardGateError(FULL_RESUME, remaining)
        logger.info("Targeted merge passed the hard gate")
        return merged

    def _slice_report(self, doc: dict) -> dict:
        return {
            name: self.validator.violations(doc, name)
            for name in (PROFILE_SLICE, EXPERIENCE_SLICE, PUBLICATIONS_SLICE)
        }

    # -- entry point ----------------------------------------------------------

    def process(self, job, cancel: CancelToken = None):
        """Run the pipeline for one job and persist the outcome.

        Args:
            job: Job in pending state; profile holds the caller's raw input.
            cancel: token tripped by the runner to abort the job.

        Returns:
            The job, completed.

        Raises:
            HardGateError: no schema-valid document could be produced.
            JobCancelledError: the job was cancelled.
            OSError: the HTML artifact could not be written.
        """
        cancel = cancel or CancelToken()
        job.metadata.setdefault("ai_warnings", [])
        self.repo.save(job)
        logger.info("Processing job %s for user %s", job.id, job.user_id)

        try:
            self._run(job, cancel)
        except HardGateError as e:
            job.status = JobStatus.FAILED
            job.metadata["error"] = str(e)
            job.metadata["gate_violations"] = list(e.violations)
            raise
        except JobCancelledError as e:
            job.status = JobStatus.FAILED
            job.metadata["error"] = f"cancelled: {e}"
            raise
        except OSError as e:
            job.status = JobStatus.FAILED
            job.metadata["error"] = f"could not write artifacts: {e}"
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.metadata["error"] = f"unexpected error: {e}"
            raise
        finally:
            self.repo.save(job)
        return job

    def _run(self, job, cancel: CancelToken):
        aggregate = self._aggregate(job, cancel)
        overrides = normalize_overrides(job.profile)
        overrides_map = overrides.to_dict()
        client = ContentClient(
            self.transport,
            language=job.language or self.settings.default_language,
            retry_delays=self.settings.retry_delays,
            cancel=cancel,
            validator=self.validator,
        )

        doc = self._seed(job.profile, overrides)
        payload = {"aggregated": aggregate, "overrides": overrides_map}
        if job.job_description:
            payload["job_description"] = job.job_description

        synthesized = False
        if self.settings.split_flow:
            reports = run_stages(doc, client, payload, overrides_map, cancel=cancel)
            job.metadata["stage_report"] = [r.to_dict() for r in reports]
            for r in reports:
                if r.enriched:
                    synthesized = True
                if not r.valid_after:
                    job.metadata["ai_warnings"].append(
                        f"stage {r.stage} ({r.name}) incomplete: {', '.join(r.missing)}"
                    )
        else:
            synthesized = self._single_shot(doc, client, payload)
        job.metadata["ai_synthesized"] = synthesized

        cancel.raise_if_cancelled()
        working = doc.snapshot()
        filled = backfill.backfill_meta(working, aggregate)
        filled += backfill.backfill_showcase(working, aggregate, overrides)
        if filled:
            job.metadata["backfilled"] = filled

        labels = client.format_labels()
        try:
            final = self._gate(working, aggregate, overrides, labels)
        except HardGateError:
            job.metadata["slice_violations"] = self._slice_report(working)
            raise

        document = ResumeDocument.from_dict(final)
        job.profile = document.to_dict()

        cancel.raise_if_cancelled()
        artifacts = persist_artifacts(
            document,
            job.user_id,
            self.settings.generated_dir,
            self.settings.user_resumes_dir,
            self.renderer,
            attempts=self.settings.render_attempts,
            delays=self.settings.render_delays,
            cancel=cancel,
            language=job.language or self.settings.default_language,
        )
        job.metadata.update(artifacts)
        job.status = JobStatus.COMPLETED
        logger.info("Job %s completed (pdf: %s)", job.id, artifacts.get("generated_pdf") or "none")


def build_processor(settings) -> Processor:
    """Wire the default collaborators from settings."""
    return Processor(
        settings,
        transport=build_transport(settings),
        renderer=ReportlabRenderer(),
        repo=JsonJobRepository(settings.jobs_file),
        aggregator=FileAggregator(settings.data_dir),
    )
