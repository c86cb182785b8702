"""Job routes: submit a resume synthesis job, read it back, cancel it."""

import logging
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from synth.jobs import Job

logger = logging.getLogger(__name__)

router = APIRouter()


def _default_language(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    return settings.default_language if settings is not None else "english"


@router.post("", response_class=JSONResponse)
async def create_job(request: Request):
    """Accept {userId, jobApplicationId?, jobDescription?, profile?, language?} and start processing."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "invalid json"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "invalid body"}, status_code=400)

    user_id = str(body.get("userId") or "").strip()
    try:
        user_id = str(uuid.UUID(user_id))
    except ValueError:
        return JSONResponse({"error": "invalid userId"}, status_code=400)

    profile = body.get("profile") or {}
    if not isinstance(profile, dict):
        return JSONResponse({"error": "invalid profile"}, status_code=400)

    job = Job(
        user_id=user_id,
        profile=profile,
        language=str(body.get("language") or _default_language(request)),
        job_description=str(body.get("jobDescription") or ""),
    )
    if body.get("jobApplicationId"):
        job.metadata["job_application_id"] = str(body["jobApplicationId"])

    job_id = request.app.state.runner.submit(job)
    return JSONResponse({"jobId": job_id, "status": "started"}, status_code=202)


@router.get("/{job_id}", response_class=JSONResponse)
async def get_job(request: Request, job_id: str):
    job = request.app.state.runner.repo.get(job_id)
    if job is None:
        return JSONResponse({"detail": "Job not found."}, status_code=404)
    return JSONResponse(job.to_dict())


@router.delete("/{job_id}", response_class=JSONResponse)
async def cancel_job(request: Request, job_id: str):
    """Cancel a running job. Finished jobs answer 409."""
    runner = request.app.state.runner
    if runner.cancel(job_id):
        return JSONResponse({"jobId": job_id, "status": "cancelling"}, status_code=202)
    if runner.repo.get(job_id) is not None:
        return JSONResponse({"detail": "Job is not running."}, status_code=409)
    return JSONResponse({"detail": "Job not found."}, status_code=404)
