"""Content-service transports.

A transport takes one prompt string and returns the service's raw text
output. It knows nothing about stages or schemas. Both transports are
stateless after construction and shared by all jobs.

HttpChatTransport speaks the chat wire contract:
    POST {base}/v1/chat  {"agent": "auto", "input": "<prompt>"}
    -> {"agent": "...", "output": "<text containing one JSON object>"}

AnthropicTransport sends the same prompt to the Anthropic Messages API.
"""

import json
import logging

import anthropic
import requests

from synth.errors import ContentFormatError, ContentTransportError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504, 529}


class HttpChatTransport:
    """POSTs prompts to the content service's chat endpoint."""

    def __init__(self, base_url: str, chat_path: str = "/v1/chat", timeout: float = 60.0,
                 session: requests.Session = None):
        self.url = base_url.rstrip("/") + "/" + chat_path.lstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, prompt: str) -> str:
        """Send one prompt and return the envelope's `output` text.

        Raises:
            ContentTransportError: network failure, timeout or non-200 status.
            ContentFormatError: the body is not a {agent, output} envelope.
        """
        body = {"agent": "auto", "input": prompt}
        logger.debug("POST %s input=%s", self.url, prompt[:500])
        try:
            resp = self.session.post(self.url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ContentTransportError(f"content service unreachable: {e}", retryable=True) from e

        logger.debug("Response status=%d body=%s", resp.status_code, resp.text[:500])
        if resp.status_code != 200:
            raise ContentTransportError(
                f"content service returned non-200 status: {resp.status_code}",
                retryable=resp.status_code in RETRYABLE_STATUS,
                status_code=resp.status_code,
            )

        try:
            envelope = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ContentFormatError("content service returned a non-json envelope", raw=resp.text[:500]) from e
        if not isinstance(envelope, dict) or not isinstance(envelope.get("output"), str):
            raise ContentFormatError("content service envelope has no output text", raw=resp.text[:500])
        return envelope["output"]


def _is_retryable_anthropic_error(exc: Exception) -> bool:
    """Overloaded (529), rate limits, 5xx and connection errors are transient."""
    if isinstance(exc, (anthropic.APIConnectionError, anthropic.RateLimitError)):
        return True
    if isinstance(exc, anthropic.APIStatusError):
        return exc.status_code in RETRYABLE_STATUS or exc.status_code >= 500
    msg = str(exc).lower()
    return "529" in str(exc) or "overloaded" in msg or "rate limit" in msg


class AnthropicTransport:
    """Sends prompts to Claude and returns the first text block."""

    def __init__(self, model: str, max_tokens: int = 8000, timeout: float = 60.0, client=None):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or anthropic.Anthropic(timeout=timeout)

    def send(self, prompt: str) -> str:
        logger.debug("Anthropic %s input=%s", self.model, prompt[:500])
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise ContentTransportError(
                f"anthropic request failed: {e}",
                retryable=_is_retryable_anthropic_error(e),
                status_code=getattr(e, "status_code", None),
            ) from e

        for block in message.content:
            text = getattr(block, "text", None)
            if text:
                return text
        raise ContentFormatError("anthropic response contained no text block")


def build_transport(settings):
    """Pick the transport named by settings.content_backend."""
    backend = (settings.content_backend or "http").lower()
    if backend == "anthropic":
        logger.info("Using Anthropic content backend (%s)", settings.anthropic_model)
        return AnthropicTransport(
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            timeout=settings.request_timeout,
        )
    if backend != "http":
        raise ValueError(f"unknown content backend: {settings.content_backend}")
    logger.info("Using HTTP content backend at %s", settings.ai_service_url)
    return HttpChatTransport(
        base_url=settings.ai_service_url,
        chat_path=settings.chat_path,
        timeout=settings.request_timeout,
    )
