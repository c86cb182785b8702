"""Resume jobs: the record, its JSON-file repository, and the background runner."""

import json
import logging
import os
import tempfile
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from synth.api_utils import CancelToken
from synth.errors import SynthesisError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Job:
    user_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    profile: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    language: str = "english"
    job_description: str = ""
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def touch(self):
        self.updated_at = _now()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status.value,
            "profile": self.profile,
            "metadata": self.metadata,
            "language": self.language,
            "job_description": self.job_description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            status=JobStatus(data.get("status", "pending")),
            profile=data.get("profile") or {},
            metadata=data.get("metadata") or {},
            language=data.get("language") or "english",
            job_description=data.get("job_description") or "",
            created_at=data.get("created_at") or _now(),
            updated_at=data.get("updated_at") or _now(),
        )


class JsonJobRepository:
    """All jobs in one JSON object keyed by job id.

    save() is an idempotent upsert. Writes go to a temp file in the same
    directory and are swapped in with os.replace.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".jobs-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def save(self, job: Job):
        with self._lock:
            job.touch()
            data = self._read()
            data[job.id] = job.to_dict()
            self._write(data)
        logger.debug("Saved job %s (%s)", job.id, job.status.value)

    def get(self, job_id: str):
        with self._lock:
            raw = self._read().get(job_id)
        return Job.from_dict(raw) if raw else None


class JobRunner:
    """Submits jobs to a thread pool; one CancelToken per running job.

    Tokens and futures are dropped as soon as the job's worker returns.
    """

    def __init__(self, processor, repo, max_workers: int = 2):
        self.processor = processor
        self.repo = repo
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="resume-job")
        self._tokens = {}
        self._futures = {}
        self._lock = threading.Lock()

    def submit(self, job: Job) -> str:
        """Persist the pending job and start processing it in the background."""
        job.status = JobStatus.PENDING
        self.repo.save(job)
        token = CancelToken()
        with self._lock:
            self._tokens[job.id] = token
            self._futures[job.id] = self._pool.submit(self._run, job, token)
        logger.info("Submitted job %s for user %s", job.id, job.user_id)
        return job.id

    def _run(self, job: Job, token: CancelToken):
        try:
            self.processor.process(job, cancel=token)
        except SynthesisError as e:
            logger.error("Job %s failed: %s", job.id, e)
        except Exception:
            logger.exception("Job %s crashed", job.id)
        finally:
            with self._lock:
                self._tokens.pop(job.id, None)
                self._futures.pop(job.id, None)

    def cancel(self, job_id: str) -> bool:
        """Trip the job's cancel token. False if the job is not running."""
        with self._lock:
            token = self._tokens.get(job_id)
        if token is None:
            return False
        token.cancel()
        logger.info("Cancellation requested for job %s", job_id)
        return True

    def future(self, job_id: str):
        """The Future of a job that is still queued or running, else None."""
        with self._lock:
            return self._futures.get(job_id)

    def shutdown(self, wait: bool = True):
        with self._lock:
            tokens = list(self._tokens.values())
        if not wait:
            for token in tokens:
                token.cancel()
        self._pool.shutdown(wait=wait)
