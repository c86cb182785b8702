"""Tests for stages.py and document.py — validators, escalation, scoped merges."""

import copy
import typing

import pytest

from conftest import (
    VALID_CERTIFICATIONS,
    VALID_EXPERIENCE,
    VALID_EXTRAS,
    VALID_META,
    VALID_PROJECTS,
    VALID_PUBLICATIONS,
    VALID_SNAPSHOT,
    VALID_SUMMARY,
    valid_resume,
)
from synth.document import FieldState, PartialResume, ResumeDocument
from synth.errors import ContentFormatError, ContentTransportError, JobCancelledError
from synth.stages import (
    STAGES,
    StageReport,
    StageValidationResult,
    enrich_stage,
    polish_meta,
    run_stages,
    validate_foundation,
    validate_history,
    validate_showcase,
    validate_synthesis,
)

FOUNDATION, HISTORY, SHOWCASE, SYNTHESIS = STAGES


class FakeClient:
    """Returns scripted dicts per operation and records every call."""

    def __init__(self, **answers):
        self.answers = answers
        self.calls = []

    def _answer(self, name, *args):
        self.calls.append(name)
        answer = self.answers.get(name, {})
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        return copy.deepcopy(answer)

    def generate_meta(self, payload):
        return self._answer("generate_meta", payload)

    def generate_experience(self, payload):
        return self._answer("generate_experience", payload)

    def generate_showcase(self, payload):
        return self._answer("generate_showcase", payload)

    def generate_synthesis(self, payload):
        return self._answer("generate_synthesis", payload)

    def enrich_fields(self, fields, context=None):
        self.calls.append(("enrich_fields", tuple(sorted(fields))))
        answer = self.answers.get("enrich_fields", {})
        if isinstance(answer, Exception):
            raise answer
        return copy.deepcopy(answer)

    def enrich_full(self, document, overrides):
        return self._answer("enrich_full", document)


BASE_PAYLOAD = {"aggregated": {}, "overrides": {}}


class TestValidators:
    def test_foundation(self):
        assert validate_foundation({"meta": VALID_META, "snapshot": VALID_SNAPSHOT}).valid
        result = validate_foundation({"meta": {"name": "Ada", "contact": {}}})
        assert not result.valid
        assert result.missing == ("meta.headline", "meta.contact", "snapshot")

    def test_foundation_rejects_string_contact(self):
        meta = dict(VALID_META, contact="ada@example.com")
        assert "meta.contact" in validate_foundation({"meta": meta, "snapshot": VALID_SNAPSHOT}).missing

    def test_history_lists_each_gap(self):
        doc = {"experience": [{"company": "Acme", "role": "", "bullets": []}, "junk"]}
        result = validate_history(doc)
        assert result.missing == ("experience[0].role", "experience[0].bullets", "experience[1]")
        assert not validate_history({"experience": []}).valid

    def test_showcase_requires_non_empty_arrays(self):
        doc = {"projects": VALID_PROJECTS, "publications": [], "certifications": VALID_CERTIFICATIONS}
        assert validate_showcase(doc).missing == ("publications",)

    @pytest.mark.parametrize("length,valid", [(79, False), (80, True), (330, True), (331, False)])
    def test_summary_bounds(self, length, valid):
        doc = {"summary": "x" * length, "extras": VALID_EXTRAS}
        assert validate_synthesis(doc).valid is valid

    def test_schema_violation_behind_hand_checks(self):
        experience = copy.deepcopy(VALID_EXPERIENCE)
        experience[0]["bullets"] = ["x" * 400]
        result = validate_history({"experience": experience})
        assert not result.valid
        assert result.missing == ("experience",)
        assert "experience[0].bullets[0]" in result.error

    def test_validation_is_idempotent(self):
        doc = {"meta": {"name": "Ada"}, "snapshot": VALID_SNAPSHOT}
        assert validate_foundation(doc) == validate_foundation(doc)
        assert validate_foundation(doc).partial == {"meta": {"name": "Ada"}, "snapshot": VALID_SNAPSHOT}


class TestPartialResume:
    def test_field_states(self):
        doc = PartialResume({"summary": "short", "meta": VALID_META})
        assert doc.state("meta") is FieldState.VALID
        assert doc.state("summary") is FieldState.INVALID
        assert doc.state("experience") is FieldState.UNSET

    def test_merge_only_named_valid_keys(self):
        doc = PartialResume({"meta": VALID_META})
        merged = doc.merge_scoped(
            {"meta": {"name": ""}, "summary": VALID_SUMMARY, "extras": VALID_EXTRAS},
            ["meta", "summary"],
        )
        assert merged == ["summary"]
        assert doc.get("meta") == VALID_META
        assert doc.get("extras") is None

    def test_snapshot_is_a_copy(self):
        doc = PartialResume({"meta": VALID_META})
        snap = doc.snapshot()
        snap["meta"]["name"] = "changed"
        assert doc.get("meta")["name"] == "Ada Lovelace"


class TestEscalation:
    def test_valid_stage_skips_enrichment(self):
        client = FakeClient()
        doc = PartialResume({"meta": VALID_META, "snapshot": VALID_SNAPSHOT})
        report = enrich_stage(FOUNDATION, doc, client, BASE_PAYLOAD, {})
        assert report.valid_before and report.valid_after
        assert client.calls == []

    def test_narrow_call_succeeds(self):
        client = FakeClient(generate_experience={"experience": VALID_EXPERIENCE})
        doc = PartialResume()
        report = enrich_stage(HISTORY, doc, client, BASE_PAYLOAD, {})
        assert report.enriched == "narrow"
        assert report.valid_after
        assert doc.get("experience") == VALID_EXPERIENCE

    def test_escalates_to_enrich_fields_for_offending_keys_only(self):
        bad_meta = dict(VALID_META)
        del bad_meta["contact"]
        client = FakeClient(
            generate_meta={"meta": bad_meta, "snapshot": VALID_SNAPSHOT},
            enrich_fields={"meta": VALID_META},
        )
        doc = PartialResume()
        report = enrich_stage(FOUNDATION, doc, client, BASE_PAYLOAD, {})
        assert report.enriched == "fields"
        assert ("enrich_fields", ("meta",)) in client.calls
        assert "enrich_full" not in client.calls
        assert doc.get("snapshot") == VALID_SNAPSHOT

    def test_escalates_to_enrich_full(self):
        client = FakeClient(
            generate_synthesis={"summary": "too short", "extras": VALID_EXTRAS},
            enrich_fields={"summary": "still short"},
            enrich_full=valid_resume(),
        )
        doc = PartialResume()
        report = enrich_stage(SYNTHESIS, doc, client, BASE_PAYLOAD, {})
        assert report.enriched == "full"
        assert doc.get("summary") == VALID_SUMMARY
        assert doc.get("extras") == VALID_EXTRAS

    def test_full_enrichment_cannot_touch_other_stages(self):
        client = FakeClient(
            generate_showcase={"projects": VALID_PROJECTS, "publications": ["short"]},
            enrich_fields={},
            enrich_full=dict(valid_resume(), experience=[{"company": "Evil", "role": "X", "bullets": ["y"]}]),
        )
        doc = PartialResume({"experience": VALID_EXPERIENCE})
        enrich_stage(SHOWCASE, doc, client, BASE_PAYLOAD, {})
        assert doc.get("experience") == VALID_EXPERIENCE
        assert doc.get("publications") == VALID_PUBLICATIONS

    def test_transport_failure_is_soft(self):
        client = FakeClient(generate_meta=ContentTransportError("down"))
        doc = PartialResume({"summary": VALID_SUMMARY})
        report = enrich_stage(FOUNDATION, doc, client, BASE_PAYLOAD, {})
        assert not report.valid_after
        assert report.enriched is None
        assert "meta" in report.missing
        assert doc.data == {"summary": VALID_SUMMARY}

    def test_format_failure_during_escalation_is_soft(self):
        client = FakeClient(
            generate_experience={"experience": []},
            enrich_fields=ContentFormatError("not json"),
        )
        report = enrich_stage(HISTORY, PartialResume(), client, BASE_PAYLOAD, {})
        assert not report.valid_after

    def test_cancellation_propagates(self):
        client = FakeClient(generate_meta=JobCancelledError("job cancelled"))
        with pytest.raises(JobCancelledError):
            enrich_stage(FOUNDATION, PartialResume(), client, BASE_PAYLOAD, {})


class TestScopedMerges:
    def test_showcase_never_changes_meta_or_experience(self):
        rogue = valid_resume()
        rogue["meta"] = {"name": "Someone Else", "headline": "CEO", "contact": {"email": "x@y.z"}}
        rogue["experience"] = [{"company": "Other", "role": "Other", "bullets": ["Other bullet text"]}]
        client = FakeClient(generate_showcase=rogue)
        doc = PartialResume({"meta": VALID_META, "snapshot": VALID_SNAPSHOT, "experience": VALID_EXPERIENCE})
        before = doc.snapshot()
        enrich_stage(SHOWCASE, doc, client, BASE_PAYLOAD, {})
        assert doc.get("meta") == before["meta"]
        assert doc.get("experience") == before["experience"]
        assert doc.get("projects") == VALID_PROJECTS

    def test_synthesis_never_overwrites_name_or_social_links(self):
        meta = {"name": "Ada Lovelace", "headline": "Engineer", "contact": {"email": "ada@example.com"},
                "social_links": {"github": "https://github.com/ada"}}
        client = FakeClient(generate_synthesis={
            "summary": VALID_SUMMARY,
            "extras": VALID_EXTRAS,
            "meta": {"name": "A. L.", "headline": "Polished headline", "website": "https://ada.dev",
                     "social_links": {}},
        })
        doc = PartialResume({"meta": meta})
        enrich_stage(SYNTHESIS, doc, client, BASE_PAYLOAD, {})
        out = doc.get("meta")
        assert out["name"] == "Ada Lovelace"
        assert out["social_links"] == {"github": "https://github.com/ada"}
        assert out["headline"] == "Engineer"
        assert out["website"] == "https://ada.dev"

    def test_polish_meta_fills_only_empty_fields(self):
        doc = PartialResume({"meta": {"name": "Ada", "headline": ""}})
        filled = polish_meta(doc, {"name": "Bob", "headline": "Engineer", "contact": {"email": "a@b.c"}})
        assert filled == ["headline", "contact"]
        assert doc.get("meta")["name"] == "Ada"


class TestRunStages:
    def test_all_stages_run_in_order(self):
        client = FakeClient(
            generate_meta={"meta": VALID_META, "snapshot": VALID_SNAPSHOT},
            generate_experience={"experience": VALID_EXPERIENCE},
            generate_showcase={"projects": VALID_PROJECTS, "publications": VALID_PUBLICATIONS,
                               "certifications": VALID_CERTIFICATIONS},
            generate_synthesis={"summary": VALID_SUMMARY, "extras": VALID_EXTRAS},
        )
        doc = PartialResume()
        reports = run_stages(doc, client, BASE_PAYLOAD, {})
        assert [r.stage for r in reports] == [1, 2, 3, 4]
        assert all(r.valid_after for r in reports)
        assert client.calls == ["generate_meta", "generate_experience", "generate_showcase", "generate_synthesis"]
        ResumeDocument.from_dict(doc.data)

    def test_typed_document_round_trips(self):
        doc = valid_resume()
        doc["certifications"][0]["url_label"] = "cncf.io"
        assert ResumeDocument.from_dict(doc).to_dict() == doc

    def test_optional_fields_are_annotated(self):
        assert typing.get_type_hints(StageReport)["enriched"] == typing.Optional[str]
        assert typing.get_type_hints(StageValidationResult)["error"] == typing.Optional[str]
        assert StageReport(stage=1, name="Foundation", valid_before=False, valid_after=False).enriched is None
