"""Runtime settings for the resume synthesis service.

Settings are read once at bootstrap (main.py / web/app.py) and passed
down explicitly; nothing below this module calls os.getenv.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_AI_SERVICE_URL = "http://ai-service:8000"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class Settings:
    content_backend: str = "http"
    ai_service_url: str = DEFAULT_AI_SERVICE_URL
    chat_path: str = "/v1/chat"
    request_timeout: float = 60.0
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    anthropic_max_tokens: int = 8000
    # Backoff between content-service attempts: 3 attempts total.
    retry_delays: tuple = (1.0, 2.0)
    render_attempts: int = 3
    render_delays: tuple = (1.0, 2.0)
    output_root: Path = field(default_factory=lambda: Path("resume-data"))
    data_dir: Path = field(default_factory=lambda: Path("data"))
    default_language: str = "english"
    split_flow: bool = True
    max_workers: int = 2
    log_level: str = "INFO"

    @property
    def generated_dir(self) -> Path:
        return Path(self.output_root) / "generated"

    @property
    def user_resumes_dir(self) -> Path:
        return Path(self.output_root) / "resumes"

    @property
    def jobs_file(self) -> Path:
        return Path(self.data_dir) / "resume_jobs.json"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file, if any)."""
        load_dotenv()
        return cls(
            content_backend=os.getenv("CONTENT_BACKEND", "http").strip().lower(),
            ai_service_url=os.getenv("AI_SERVICE_URL") or DEFAULT_AI_SERVICE_URL,
            chat_path=os.getenv("AI_CHAT_PATH", "/v1/chat"),
            request_timeout=_env_float("AI_REQUEST_TIMEOUT", 60.0),
            anthropic_model=os.getenv("ANTHROPIC_MODEL") or DEFAULT_ANTHROPIC_MODEL,
            output_root=Path(os.getenv("RESUME_OUTPUT_DIR", "resume-data")),
            data_dir=Path(os.getenv("RESUME_DATA_DIR", "data")),
            default_language=os.getenv("DEFAULT_LANGUAGE", "english"),
            split_flow=_env_bool("AI_SPLIT_FLOW", True),
            max_workers=_env_int("JOB_WORKERS", 2),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
