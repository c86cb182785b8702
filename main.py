"""Resume Synthesis — CLI

Runs one synthesis job synchronously:
  1. Aggregate source data for the user
  2. Normalize overrides
  3. Stages 1-4 against the content service
  4. Backfill and hard gate
  5. HTML / PDF artifacts

Usage:
    python main.py --user-id 5f0c... --profile-file overrides.json
    python main.py --user-id 5f0c... --job-application-id 42 --language portuguese
    python main.py --serve   (start the HTTP service)
"""

import argparse
import json
import logging
import os
import sys
import uuid

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("resume-synth")


def run_job(settings, user_id: str, profile: dict = None, job_application_id: str = None,
            language: str = None, job_description: str = ""):
    """Build a job and process it in the foreground.

    Args:
        settings: Settings for this process.
        user_id: UUID of the user whose aggregate is used.
        profile: raw overrides/profile input.
        job_application_id: optional application to tailor for.
        language: output language; defaults to settings.default_language.

    Returns:
        The processed Job (status completed).
    """
    from synth.jobs import Job
    from synth.processor import build_processor

    processor = build_processor(settings)
    job = Job(
        user_id=user_id,
        profile=profile or {},
        language=language or settings.default_language,
        job_description=job_description or "",
    )
    if job_application_id:
        job.metadata["job_application_id"] = job_application_id
    return processor.process(job)


def _load_profile(path: str) -> dict:
    if not os.path.exists(path):
        logger.error("Profile file not found: %s", path)
        sys.exit(1)
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Profile file is not valid JSON: %s", e)
            sys.exit(1)
    if not isinstance(data, dict):
        logger.error("Profile file must contain a JSON object: %s", path)
        sys.exit(1)
    return data


def main():
    parser = argparse.ArgumentParser(description="Resume Synthesis")
    parser.add_argument("--user-id", type=str, help="User UUID whose aggregated data is used")
    parser.add_argument("--profile-file", type=str, help="JSON file with profile overrides")
    parser.add_argument("--job-application-id", type=str, help="Tailor the resume to this job application")
    parser.add_argument("--job-description", type=str, default="", help="Job description text")
    parser.add_argument("--language", type=str, help="Output language (default from DEFAULT_LANGUAGE)")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP service instead")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose/debug logging")

    args = parser.parse_args()

    from synth.config import Settings
    from synth.errors import HardGateError, JobCancelledError

    settings = Settings.from_env()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger().setLevel(settings.log_level)

    if args.serve:
        from run import serve

        serve()
        return

    if not args.user_id:
        parser.print_help()
        sys.exit(2)
    try:
        user_id = str(uuid.UUID(args.user_id))
    except ValueError:
        logger.error("Invalid --user-id (expected a UUID): %s", args.user_id)
        sys.exit(1)

    profile = _load_profile(args.profile_file) if args.profile_file else {}

    try:
        job = run_job(
            settings,
            user_id,
            profile=profile,
            job_application_id=args.job_application_id,
            language=args.language,
            job_description=args.job_description,
        )
    except HardGateError as e:
        logger.error("Could not produce a schema-valid resume: %s", e)
        sys.exit(1)
    except JobCancelledError as e:
        logger.error("%s", e)
        sys.exit(1)
    except OSError as e:
        logger.error("Could not write artifacts: %s", e)
        sys.exit(1)

    result = {
        "job_id": job.id,
        "status": job.status.value,
        "generated_html": job.metadata.get("generated_html", ""),
        "generated_pdf": job.metadata.get("generated_pdf", ""),
        "user_copy": job.metadata.get("user_copy", ""),
    }
    if job.metadata.get("pdf_render_error"):
        result["pdf_render_error"] = job.metadata["pdf_render_error"]
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
