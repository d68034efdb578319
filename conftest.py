"""
Pytest configuration and shared fixtures.
"""
from datetime import date
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def sms_gateway():
    """Replace the HTTP SMS gateway; every test gets a successful response by default."""
    response = MagicMock()
    response.ok = True
    response.status_code = 200
    response.json.return_value = {"success": True, "messageId": "msg-001"}
    with patch("evaluation.sms.requests.post", return_value=response) as mock_post:
        yield mock_post


@pytest.fixture
def sample_patient_data():
    """Sample roster row for tests."""
    return {
        "dni": "12345678",
        "name": "María García López",
        "email": "maria@example.com",
        "phone": "+34 600 123 456",
        "birth_date": "1980-04-12",
        "procedure": "Colecistectomía",
        "procedure_date": "2025-03-10",
    }


@pytest.fixture
def patient(db):
    from evaluation.models import Patient

    return Patient.objects.create(
        dni="12345678",
        name="María García López",
        email="maria@example.com",
        phone="+34 600 123 456",
        birth_date=date(1980, 4, 12),
        procedure="Colecistectomía",
        procedure_date=date(2025, 3, 10),
    )


@pytest.fixture
def token(patient):
    return patient.token


@pytest.fixture
def sample_recommendations():
    return [
        {
            "title": "Ayuno",
            "description": "Ayuno de 8 horas antes de la cirugía.",
            "category": "preoperatorio",
            "priority": "high",
        },
        {
            "title": "Control de presión",
            "description": "Tome su medicación antihipertensiva habitual.",
            "category": "medicamentos",
            "priority": "low",
        },
    ]


@pytest.fixture
def complete_steps():
    """Mark the given steps in order; fails the test if the ledger refuses one."""
    from evaluation import ledger

    def _complete(token, *steps):
        for step in steps:
            assert ledger.mark_completed(token, step) is True, f"could not mark {step}"

    return _complete


@pytest.fixture
def questionnaire_payload():
    return {
        "emergency_contact_name": "Juan García",
        "emergency_contact_phone": "+34 600 999 888",
        "emergency_contact_relationship": "Hermano",
        "has_allergies": True,
        "allergies": "Penicilina",
        "current_medications": "Enalapril 10mg",
        "medical_history": "Hipertensión",
        "previous_surgeries": "Apendicectomía (2005)",
        "family_history": "",
        "smoking": False,
        "alcohol": False,
        "exercise": "Caminar 30 minutos",
        "diet": "Mediterránea",
        "sleep_hours": 7,
        "stress_level": 4,
        "additional_concerns": "",
    }
