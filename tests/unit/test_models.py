"""Unit tests for models, evidence helpers, time coercion and settings."""

import json
from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from kag.config import KagSettings
from kag.engine.signals import SignalEngine
from kag.models.enums import EventType
from kag.models.events import KagEvent, as_event
from kag.models.evidence import EvidenceRef, dedupe_evidence_refs, merge_evidence, parse_evidence_ref
from kag.models.recommendations import Recommendation
from kag.models.state import SignalState
from kag.utils.timeutils import count_in_last_days, diff_minutes, to_datetime, to_float
from tests.conftest import NOW, days_ago, make_event, make_evidence


class TestEvidenceRef:
    def test_evidence_identifiers_coerced_to_strings(self):
        ref = EvidenceRef.model_validate({"message_id": 42, "doc_url": "  "})
        assert ref.message_id == "42"
        assert ref.doc_url is None

    def test_evidence_generic_pair_is_identifiable(self):
        assert EvidenceRef(source_table="messages", source_pk="9").is_identifiable
        assert not EvidenceRef(source_table="messages").is_identifiable

    def test_parse_evidence_ref_rejects_non_mappings(self):
        assert parse_evidence_ref("msg-1") is None
        assert parse_evidence_ref({}) is None

    def test_dedupe_preserves_first_seen_order(self):
        refs = dedupe_evidence_refs([
            make_evidence("b"),
            {"rag_chunk_id": "r1"},
            make_evidence("b"),
            EvidenceRef(message_id="a"),
        ])
        assert refs == [
            EvidenceRef(message_id="b"),
            EvidenceRef(rag_chunk_id="r1"),
            EvidenceRef(message_id="a"),
        ]

    def test_dedupe_limit(self):
        refs = dedupe_evidence_refs([make_evidence(i) for i in range(10)], limit=4)
        assert len(refs) == 4

    def test_dedupe_none_is_empty(self):
        assert dedupe_evidence_refs(None) == []

    def test_merge_evidence_keeps_existing_first(self):
        merged = merge_evidence([make_evidence("old")], [make_evidence("new"), make_evidence("old")])
        assert [ref.message_id for ref in merged] == ["old", "new"]


class TestKagEvent:
    def test_event_aliases(self):
        event = KagEvent.model_validate({
            "event_id": 7,
            "event_type": " Message_Sent ",
            "created_at": "2024-03-15T12:00:00Z",
            "evidence": [make_evidence()],
        })
        assert event.id == 7
        assert event.kind == EventType.MESSAGE_SENT
        assert event.event_ts == NOW
        assert len(event.evidence_refs) == 1

    def test_event_tolerates_garbage(self):
        event = KagEvent.model_validate({
            "id": True,
            "event_type": None,
            "event_ts": "yesterday",
            "payload": "not a dict",
            "evidence_refs": "nope",
        })
        assert event.id is None
        assert event.event_type == ""
        assert event.event_ts is None
        assert event.payload == {}
        assert event.evidence_refs == []

    def test_event_numeric_id(self):
        assert make_event(" 15 ").numeric_id == 15
        assert make_event(3.0).numeric_id == 3
        assert make_event("abc").numeric_id is None

    def test_unknown_kind_is_none(self):
        assert make_event(1, event_type="something_else").kind is None

    def test_as_event_handles_non_mappings(self):
        assert as_event(None).event_type == ""


class TestTimeUtils:
    def test_to_datetime_variants(self):
        assert to_datetime("2024-03-15T12:00:00Z") == NOW
        assert to_datetime(datetime(2024, 3, 15, 12)) == NOW
        assert to_datetime(date(2024, 3, 15)) == datetime(2024, 3, 15, tzinfo=timezone.utc)
        assert to_datetime(NOW.timestamp()) == NOW

    def test_to_datetime_default(self):
        assert to_datetime("not a date", NOW) == NOW
        assert to_datetime(float("nan")) is None

    def test_to_float(self):
        assert to_float("2.5") == 2.5
        assert to_float("inf", None) is None
        assert to_float(None, 1.0) == 1.0

    def test_diff_minutes_never_negative(self):
        assert diff_minutes(days_ago(1), NOW) == 0.0

    def test_count_in_last_days(self):
        assert count_in_last_days([days_ago(1), days_ago(7), days_ago(8)], NOW, 7) == 2


class TestSignalStateSerialization:
    def test_state_json_round_trip(self, kag_settings):
        engine = SignalEngine(kag_settings)
        state = engine.apply_events_incrementally(None, [
            make_event(1, payload={"sender": "client", "sentiment_score": 0.2}, evidence=[make_evidence()]),
            make_event(2, EventType.TASK_BLOCKED, payload={"blocker_id": "B"}),
            make_event(3, EventType.AGREEMENT_CREATED, payload={"agreement_id": "A", "due_at": "2024-03-20"}),
            make_event(4, EventType.STAGE_STARTED, payload={"stage_name": "Build"}),
        ], now=NOW)["state"]
        restored = SignalState.model_validate(json.loads(json.dumps(state.model_dump(mode="json"))))
        assert restored.model_dump() == state.model_dump()


class TestRecommendationModel:
    def test_recommendation_requires_evidence(self):
        with pytest.raises(ValidationError):
            Recommendation(
                category="finance_risk",
                priority=4,
                title="t",
                rationale="r",
                evidence_refs=[],
                suggested_template_key="finance_risk_review",
                dedupe_key="k",
            )

    def test_recommendation_priority_bounds(self):
        with pytest.raises(ValidationError):
            Recommendation(
                category="finance_risk",
                priority=6,
                title="t",
                rationale="r",
                evidence_refs=[make_evidence()],
                suggested_template_key="finance_risk_review",
                dedupe_key="k",
            )


class TestKagSettings:
    def test_settings_defaults(self, kag_settings):
        assert kag_settings.sentiment_alpha == 0.35
        assert kag_settings.event_batch_limit == 500
        assert kag_settings.signal_evidence_limit == 20

    def test_settings_env_override(self, monkeypatch):
        monkeypatch.setenv("KAG_EVENT_BATCH_LIMIT", "50")
        monkeypatch.setenv("KAG_LOG_FORMAT", "Console")
        settings = KagSettings(_env_file=None)
        assert settings.event_batch_limit == 50
        assert settings.log_format == "console"

    def test_settings_invalid_log_format(self):
        with pytest.raises(ValidationError):
            KagSettings(_env_file=None, log_format="xml")

    def test_settings_alpha_bounds(self):
        with pytest.raises(ValidationError):
            KagSettings(_env_file=None, sentiment_alpha=0.95)
