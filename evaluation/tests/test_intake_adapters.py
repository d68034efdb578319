"""
Unit tests for roster intake adapters (JSON and CSV sources)
"""
import json
from datetime import date

import pytest

from preop_eval.exceptions import ValidationError

from evaluation.intake import Roster, get_adapter
from evaluation.intake.adapters import CsvRosterAdapter, JsonRosterAdapter, normalize_date


SPREADSHEET_CSV = """DNI,Nombre,Email,Teléfono,Fecha Nacimiento,Procedimiento,Fecha Procedimiento
12345678,María García López,maria@example.com,+34 600 123 456,12/04/1980,Colecistectomía,10/03/2025
87654321Z,Juan Pérez,juan@example.com,,1975-09-01,Hernioplastia,
,,,,,,
"""


class TestJsonRosterAdapter:
    """JSON API roster."""

    def test_process_valid_payload(self, sample_patient_data):
        raw = json.dumps({"patients": [sample_patient_data], "confirm": True})
        roster = JsonRosterAdapter().process(raw)
        assert isinstance(roster, Roster)
        assert roster.source == "json"
        assert roster.confirm is True
        assert roster.send_links is True
        [info] = roster.patients
        assert info.dni == "12345678"
        assert info.procedure_date == "2025-03-10"

    def test_bare_list_and_camel_case_dates(self):
        raw = json.dumps([{"dni": "1234567", "name": "Ana", "birthDate": "01/02/1990"}])
        roster = JsonRosterAdapter().process(raw)
        assert roster.patients[0].birth_date == "1990-02-01"
        assert roster.confirm is False

    def test_send_links_can_be_disabled(self, sample_patient_data):
        raw = json.dumps({"patients": [sample_patient_data], "send_links": False})
        assert JsonRosterAdapter().process(raw).send_links is False

    def test_invalid_json(self):
        with pytest.raises(ValidationError) as exc_info:
            JsonRosterAdapter().process("{not json")
        assert exc_info.value.code == "INVALID_JSON"

    def test_empty_roster(self):
        with pytest.raises(ValidationError) as exc_info:
            JsonRosterAdapter().process(json.dumps({"patients": []}))
        assert exc_info.value.code == "EMPTY_ROSTER"

    def test_row_errors_are_collected(self):
        raw = json.dumps({"patients": [
            {"dni": "12", "name": "", "email": "no-es-email", "procedure_date": "31/31/2025"},
        ]})
        with pytest.raises(ValidationError) as exc_info:
            JsonRosterAdapter().process(raw)
        fields = {e["field"] for e in exc_info.value.detail["errors"]}
        assert fields == {
            "patients[0].dni",
            "patients[0].name",
            "patients[0].email",
            "patients[0].procedure_date",
        }

    def test_to_model_fields_parses_dates(self, sample_patient_data):
        roster = JsonRosterAdapter().process(json.dumps([sample_patient_data]))
        fields = roster.patients[0].to_model_fields()
        assert fields["birth_date"] == date(1980, 4, 12)
        assert fields["procedure_date"] == date(2025, 3, 10)


class TestCsvRosterAdapter:
    """Spreadsheet CSV export."""

    def test_process_spreadsheet(self):
        roster = CsvRosterAdapter().process(SPREADSHEET_CSV.encode("utf-8"))
        assert roster.source == "csv"
        assert len(roster.patients) == 2
        maria, juan = roster.patients
        assert maria.name == "María García López"
        assert maria.birth_date == "1980-04-12"
        assert maria.procedure_date == "2025-03-10"
        assert juan.dni == "87654321Z"
        assert juan.procedure_date == ""

    def test_semicolon_delimiter_and_bom(self):
        raw = "﻿DNI;Nombre;Procedimiento\n12345678;Ana Ruiz;Rinoplastia\n".encode("utf-8")
        roster = CsvRosterAdapter().process(raw)
        assert roster.patients[0].name == "Ana Ruiz"
        assert roster.patients[0].procedure == "Rinoplastia"

    def test_missing_required_columns(self):
        with pytest.raises(ValidationError) as exc_info:
            CsvRosterAdapter().process("Nombre,Email\nAna,ana@example.com\n")
        assert exc_info.value.code == "INVALID_CSV"


class TestGetAdapter:

    def test_known_sources(self):
        assert isinstance(get_adapter("json"), JsonRosterAdapter)
        assert isinstance(get_adapter("CSV"), CsvRosterAdapter)
        assert isinstance(get_adapter("spreadsheet"), CsvRosterAdapter)

    def test_unknown_source(self):
        with pytest.raises(ValueError) as exc_info:
            get_adapter("xlsx")
        assert "Unknown roster source" in str(exc_info.value)


def test_normalize_date_leaves_unknown_formats_for_validation():
    assert normalize_date("2025-03-10") == "2025-03-10"
    assert normalize_date("10-03-2025") == "2025-03-10"
    assert normalize_date("marzo") == "marzo"
    assert normalize_date(None) == ""
