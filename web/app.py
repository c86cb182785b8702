"""FastAPI app for the resume synthesis service."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from synth.config import Settings
from web import config
from web.routes import jobs

logger = logging.getLogger(__name__)

app = FastAPI(title="Resume Synthesis Service", version="0.1.0")


@app.on_event("startup")
def startup():
    # Tests install their own runner before the first request.
    if getattr(app.state, "runner", None) is not None:
        return
    settings = Settings.from_env()
    app.state.settings = settings
    app.state.runner = config.build_runner(settings)
    logger.info("Job runner started with %d workers", settings.max_workers)


@app.on_event("shutdown")
def shutdown():
    runner = getattr(app.state, "runner", None)
    if runner is not None:
        runner.shutdown(wait=False)


app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])


@app.exception_handler(Exception)
async def catch_all_exception_handler(request: Request, exc: Exception):
    """JSON body for unexpected errors instead of a bare 500 page."""
    logger.exception("Unhandled exception for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"detail": "internal error"}, status_code=500)
