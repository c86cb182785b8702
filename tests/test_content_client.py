"""Tests for content_client.py and transport.py — prompts, retry, extraction, sanitizers."""

import json

import pytest
import requests

from conftest import VALID_META, VALID_SNAPSHOT, ScriptedTransport
from synth.api_utils import CancelToken, call_with_retry
from synth.content_client import (
    ContentClient,
    normalize_cert_date,
    sanitize_response,
    truncate_words,
)
from synth.errors import ContentFormatError, ContentTransportError, JobCancelledError
from synth.prompts import DEFAULT_LABELS
from synth.transport import HttpChatTransport


def _client(transport, language="english"):
    return ContentClient(transport, language=language, retry_delays=(0.0, 0.0))


class TestPrompts:
    def test_request_carries_payload_schema_and_language(self):
        transport = ScriptedTransport({"Format profile and snapshot": json.dumps({"meta": VALID_META})})
        _client(transport, language="portuguese").generate_meta({"aggregated": {"profiles": []}, "overrides": {}})
        prompt = transport.prompts[0]
        header, body = prompt.split(":\n", 1)
        assert header == "Format profile and snapshot"
        context = json.loads(body)
        assert context["payload"] == {"aggregated": {"profiles": []}, "overrides": {}}
        assert "portuguese" in context["instructions"]
        assert "JSON-SCHEMA:" in context["instructions"]

    def test_each_stage_has_its_own_header(self):
        transport = ScriptedTransport({"": "{}"})
        client = _client(transport)
        client.generate_meta({})
        client.generate_experience({})
        client.generate_showcase({})
        client.generate_synthesis({})
        client.enrich_fields({"summary": "short"})
        client.enrich_full({"summary": "short"}, {"extras": []})
        assert transport.headers() == [
            "Format profile and snapshot",
            "Format professional history",
            "Format projects, publications and certifications",
            "Polish summary, extras and meta",
            "Enrich only specific fields",
            "Enrich resume with overrides",
        ]

    def test_enrich_fields_sends_only_named_keys(self):
        transport = ScriptedTransport({"Enrich only specific fields": "{}"})
        _client(transport).enrich_fields({"extras": "Mentor"})
        context = json.loads(transport.prompts[0].split(":\n", 1)[1])
        assert context["payload"] == {"fields": {"extras": "Mentor"}}


class TestRetry:
    def test_transport_errors_are_retried_three_times(self):
        transport = ScriptedTransport({
            "Format profile and snapshot": [
                ContentTransportError("timeout"),
                ContentTransportError("503", status_code=503),
                json.dumps({"snapshot": VALID_SNAPSHOT}),
            ]
        })
        out = _client(transport).generate_meta({})
        assert out == {"snapshot": VALID_SNAPSHOT}
        assert len(transport.prompts) == 3

    def test_exhausted_retries_raise_transport_error(self):
        transport = ScriptedTransport()
        with pytest.raises(ContentTransportError):
            _client(transport).generate_experience({})
        assert len(transport.prompts) == 3

    def test_non_retryable_status_is_not_retried(self):
        transport = ScriptedTransport({"": ContentTransportError("bad request", retryable=False, status_code=400)})
        with pytest.raises(ContentTransportError):
            _client(transport).generate_showcase({})
        assert len(transport.prompts) == 1

    def test_unparseable_output_is_a_format_error_without_retry(self):
        transport = ScriptedTransport({"": "I cannot help with that."})
        with pytest.raises(ContentFormatError):
            _client(transport).generate_synthesis({})
        assert len(transport.prompts) == 1

    def test_cancel_during_backoff_raises_cancelled(self):
        token = CancelToken()
        calls = []

        def fn():
            calls.append(1)
            token.cancel()
            raise ContentTransportError("down")

        with pytest.raises(JobCancelledError):
            call_with_retry(fn, delays=(30.0, 30.0), cancel=token)
        assert len(calls) == 1


class TestSanitizers:
    def test_fenced_output_with_string_contact(self):
        meta = dict(VALID_META, contact="ada@example.com")
        output = "Here it is:\n```json\n" + json.dumps({"meta": meta}) + "\n```"
        out = _client(ScriptedTransport({"": output})).generate_meta({})
        assert out["meta"]["contact"] == {"email": "ada@example.com"}

    def test_certification_dates_and_descriptions(self):
        doc = {"certifications": [
            {"name": "A", "date": "2024"},
            {"name": "B", "date": "2023-07", "description": "word " * 60},
            {"name": "C", "date": "2022-01-15"},
            "not an object",
        ]}
        sanitize_response(doc)
        certs = doc["certifications"]
        assert certs[0]["date"] == "2024-01-01"
        assert certs[1]["date"] == "2023-07-01"
        assert certs[2]["date"] == "2022-01-15"
        assert len(certs[1]["description"]) <= 140
        assert not certs[1]["description"].endswith(" ")

    def test_truncate_words_breaks_on_space(self):
        assert truncate_words("alpha beta gamma", 12) == "alpha beta"
        assert truncate_words("short", 140) == "short"

    def test_normalize_cert_date_leaves_other_formats(self):
        assert normalize_cert_date("June 2021") == "June 2021"


class TestLabels:
    def test_english_needs_no_network(self):
        transport = ScriptedTransport()
        assert _client(transport).format_labels() == DEFAULT_LABELS
        assert transport.prompts == []

    def test_translation_is_merged_over_defaults(self):
        transport = ScriptedTransport({"Translate UI labels": json.dumps({
            "professional_summary": "Resumo Profissional",
            "experience": "Experiência",
            "extras": 7,
        })})
        labels = _client(transport, language="portuguese").format_labels()
        assert labels["professional_summary"] == "Resumo Profissional"
        assert labels["experience"] == "Experiência"
        assert labels["extras"] == DEFAULT_LABELS["extras"]
        assert set(labels) == set(DEFAULT_LABELS)

    def test_failure_falls_back_to_defaults(self):
        labels = _client(ScriptedTransport(), language="german").format_labels()
        assert labels == DEFAULT_LABELS


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class TestHttpChatTransport:
    def test_wire_format(self):
        session = FakeSession(FakeResponse(body={"agent": "formatter", "output": '{"a": 1}'}))
        transport = HttpChatTransport("http://ai-service:8000/", "/v1/chat", timeout=5, session=session)
        assert transport.send("hello") == '{"a": 1}'
        sent = session.requests[0]
        assert sent["url"] == "http://ai-service:8000/v1/chat"
        assert sent["json"] == {"agent": "auto", "input": "hello"}
        assert sent["timeout"] == 5

    def test_server_errors_are_retryable(self):
        transport = HttpChatTransport("http://x", session=FakeSession(FakeResponse(503, text="busy")))
        with pytest.raises(ContentTransportError) as exc:
            transport.send("p")
        assert exc.value.retryable
        assert exc.value.status_code == 503

    def test_client_errors_are_not_retryable(self):
        transport = HttpChatTransport("http://x", session=FakeSession(FakeResponse(400, text="bad")))
        with pytest.raises(ContentTransportError) as exc:
            transport.send("p")
        assert not exc.value.retryable

    def test_connection_errors_are_retryable(self):
        session = FakeSession(error=requests.ConnectionError("refused"))
        with pytest.raises(ContentTransportError) as exc:
            HttpChatTransport("http://x", session=session).send("p")
        assert exc.value.retryable

    def test_bad_envelope_is_a_format_error(self):
        session = FakeSession(FakeResponse(200, body={"agent": "auto"}))
        with pytest.raises(ContentFormatError):
            HttpChatTransport("http://x", session=session).send("p")
        session = FakeSession(FakeResponse(200, text="<html>"))
        with pytest.raises(ContentFormatError):
            HttpChatTransport("http://x", session=session).send("p")
