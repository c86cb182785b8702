"""Shared config for the HTTP boundary."""

from synth.config import Settings
from synth.jobs import JobRunner
from synth.processor import build_processor


def build_runner(settings: Settings) -> JobRunner:
    """Processor, repository and worker pool for one server process."""
    processor = build_processor(settings)
    return JobRunner(processor, processor.repo, max_workers=settings.max_workers)
