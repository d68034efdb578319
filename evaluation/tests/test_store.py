"""
Unit tests for the patient store: typed records at the boundary, ordering, consent rules.
"""
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from evaluation.models import ConsentType, MessageRole
from evaluation.store import PatientStore
from evaluation.types import RecommendationData
from preop_eval.exceptions import (
    BlockError,
    PatientNotFound,
    StaleWrite,
    TransientIO,
    ValidationError,
)


@pytest.fixture
def store():
    return PatientStore()


@pytest.mark.django_db
class TestPatientLookup:

    def test_get_by_token(self, store, patient):
        assert store.get(patient.token).pk == patient.pk

    def test_unknown_token_raises(self, store):
        with pytest.raises(PatientNotFound):
            store.get("bogus")

    def test_empty_token_raises(self, store):
        with pytest.raises(PatientNotFound):
            store.get("")

    def test_update_allowed_fields(self, store, token):
        patient = store.update(token, {"phone": "+34 611 000 000", "procedure": "Hernioplastia"})
        assert patient.phone == "+34 611 000 000"
        assert store.get(token).procedure == "Hernioplastia"

    def test_update_rejects_protected_fields(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.update(token, {"status": "Validado"})
        assert exc_info.value.code == "FIELD_NOT_UPDATABLE"

    def test_database_error_becomes_transient_io(self, store, token):
        with patch("evaluation.store.Patient.objects.get", side_effect=DatabaseError("down")):
            with pytest.raises(TransientIO):
                store.get(token)


@pytest.mark.django_db
class TestConversation:

    def test_messages_are_returned_in_order(self, store, token):
        store.append_conversation_message(token, MessageRole.ASSISTANT, "Hola")
        store.append_conversation_message(token, MessageRole.PATIENT, "Buenos días")
        store.append_conversation_message(token, MessageRole.ASSISTANT, "¿Alergias?")

        history = store.list_conversation(token)
        assert [e.content for e in history] == ["Hola", "Buenos días", "¿Alergias?"]
        assert history[1].role == "patient"

    def test_invalid_role_rejected(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.append_conversation_message(token, "doctor", "Hola")
        assert exc_info.value.code == "INVALID_MESSAGE_ROLE"

    def test_empty_message_rejected(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.append_conversation_message(token, MessageRole.PATIENT, "   ")
        assert exc_info.value.code == "EMPTY_MESSAGE"


@pytest.mark.django_db
class TestRecommendations:

    def test_insert_then_list_orders_by_priority_then_recency(self, store, token):
        store.insert_recommendations(token, [
            {"title": "Baja", "description": "d", "category": "seguimiento", "priority": "low"},
            {"title": "Alta 1", "description": "d", "category": "riesgo", "priority": "high"},
            {"title": "Media", "description": "d", "category": "anestesia", "priority": "medium"},
        ])
        store.insert_recommendations(token, [
            {"title": "Alta 2", "description": "d", "category": "riesgo", "priority": "alta"},
        ])

        titles = [r.title for r in store.list_recommendations(token)]
        assert titles == ["Alta 2", "Alta 1", "Media", "Baja"]

    def test_inserted_set_matches_listed_set(self, store, token, sample_recommendations):
        inserted = store.insert_recommendations(token, sample_recommendations)
        listed = store.list_recommendations(token)
        assert {r.key() for r in inserted} == {r.key() for r in listed}

    def test_spanish_priorities_are_normalised(self, store, token):
        [rec] = store.insert_recommendations(
            token, [{"title": "T", "description": "D", "category": "medicamentos", "priority": "Baja"}]
        )
        assert rec.priority == "low"

    def test_invalid_payload_reports_all_fields(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.insert_recommendations(token, [{"title": "", "category": "otra", "priority": "urgente"}])
        fields = {e["field"] for e in exc_info.value.detail["errors"]}
        assert fields == {"title", "description", "category", "priority"}
        assert store.has_recommendations(token) is False

    def test_empty_list_rejected(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.insert_recommendations(token, [])
        assert exc_info.value.code == "EMPTY_RECOMMENDATIONS"

    def test_replace_removes_previous(self, store, token, sample_recommendations):
        store.insert_recommendations(token, sample_recommendations)
        store.replace_recommendations(token, [
            {"title": "Nueva", "description": "d", "category": "riesgo", "priority": "high"},
        ])
        assert [r.title for r in store.list_recommendations(token)] == ["Nueva"]

    def test_replace_accepts_typed_records(self, store, token, sample_recommendations):
        records = [RecommendationData.from_payload(item) for item in sample_recommendations]
        store.replace_recommendations(token, records)
        assert [r.title for r in store.list_recommendations(token)] == ["Ayuno", "Control de presión"]

    def test_replace_with_empty_list_keeps_existing(self, store, token, sample_recommendations):
        store.insert_recommendations(token, sample_recommendations)
        with pytest.raises(ValidationError) as exc_info:
            store.replace_recommendations(token, [])
        assert exc_info.value.code == "EMPTY_RECOMMENDATIONS"
        assert len(store.list_recommendations(token)) == 2


@pytest.mark.django_db
class TestConsent:

    def test_accept_pre_anesthetic_with_signature(self, store, token):
        consent = store.upsert_consent(token, ConsentType.PRE_ANESTHETIC, True, "data:image/png;base64,AAA")
        assert consent.accepted is True
        assert consent.accepted_at is not None
        assert consent.version == 1
        assert consent.to_dict()["has_signature"] is True

    def test_signature_required_for_pre_anesthetic(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.upsert_consent(token, ConsentType.PRE_ANESTHETIC, True, "")
        assert exc_info.value.code == "SIGNATURE_REQUIRED"

    def test_data_processing_needs_no_signature(self, store, token):
        consent = store.upsert_consent(token, ConsentType.DATA_PROCESSING, True, "")
        assert consent.accepted is True

    def test_acceptance_is_one_way(self, store, token):
        store.upsert_consent(token, ConsentType.DATA_PROCESSING, True, "")
        with pytest.raises(BlockError) as exc_info:
            store.upsert_consent(token, ConsentType.DATA_PROCESSING, False, "")
        assert exc_info.value.code == "CONSENT_ALREADY_ACCEPTED"
        assert store.get_consents(token)[0].accepted is True

    def test_one_record_per_type(self, store, token):
        store.upsert_consent(token, ConsentType.PRE_ANESTHETIC, False, "")
        store.upsert_consent(token, ConsentType.PRE_ANESTHETIC, True, "firma")
        consents = store.get_consents(token)
        assert len(consents) == 1
        assert consents[0].version == 2

    def test_stale_version_rejected(self, store, token):
        store.upsert_consent(token, ConsentType.PRE_ANESTHETIC, False, "")
        with pytest.raises(StaleWrite):
            store.upsert_consent(token, ConsentType.PRE_ANESTHETIC, True, "firma", expected_version=0)
        assert store.get_consents(token)[0].accepted is False

    def test_unknown_consent_type_rejected(self, store, token):
        with pytest.raises(ValidationError) as exc_info:
            store.upsert_consent(token, "marketing", True, "")
        assert exc_info.value.code == "INVALID_CONSENT_TYPE"


@pytest.mark.django_db
class TestQuestionnaire:

    def test_missing_questionnaire_is_none(self, store, token):
        assert store.get_questionnaire(token) is None

    def test_save_and_update(self, store, token, questionnaire_payload):
        saved = store.save_questionnaire(token, questionnaire_payload)
        assert saved["allergies"] == "Penicilina"

        store.save_questionnaire(token, {**questionnaire_payload, "stress_level": 8})
        assert store.get_questionnaire(token)["stress_level"] == 8
