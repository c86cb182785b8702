"""Exception types shared across the synthesis pipeline.

Everything up to the hard gate is absorbed by the processor; only
HardGateError and failures to write the HTML artifact end a job.
"""


class SynthesisError(Exception):
    """Base class for pipeline errors."""


class AggregationError(SynthesisError):
    """Raised when aggregated source data exists but cannot be read."""


class ContentServiceError(SynthesisError):
    """Base class for failures talking to the content-generation service."""


class ContentTransportError(ContentServiceError):
    """Network, timeout or non-2xx failure. Only retryable ones are retried."""

    def __init__(self, message: str, retryable: bool = True, status_code: int = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class ContentFormatError(ContentServiceError):
    """The service answered, but no JSON object could be extracted."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class SchemaValidationError(SynthesisError):
    """A document failed a named schema. Carries every violation, not just the first."""

    def __init__(self, schema_name: str, violations: list):
        self.schema_name = schema_name
        self.violations = list(violations)
        super().__init__(
            f"schema validation failed ({schema_name}): " + "; ".join(self.violations)
        )


class HardGateError(SchemaValidationError):
    """The final document failed the full schema after backfill and targeted merge."""


class RenderError(SynthesisError):
    """The PDF renderer raised or returned bytes that are not a PDF."""


class JobCancelledError(SynthesisError):
    """The job's cancel token was tripped while work was in flight."""
