"""Tests for MutationRecord parsing rules."""
from datetime import timezone

import pytest
from pydantic import ValidationError

from pt_tracker.schemas.activity_log import MutationRecord, Parameter, SetEntry
from pt_tracker.services.ingestion_service import RecordValidationError, validate_record
from tests.conftest import hold_record


class TestParameter:

    def test_short_names_accepted(self):
        param = Parameter.model_validate({"name": "weight", "value": 12.5, "unit": "lb"})
        assert param.parameter_name == "weight"
        assert param.parameter_value == "12.5"
        assert param.parameter_unit == "lb"

    def test_blank_unit_is_none(self):
        assert Parameter.model_validate({"name": "band_color", "value": "red", "unit": " "}).parameter_unit is None

    def test_blank_value_rejected(self):
        with pytest.raises(ValidationError):
            Parameter.model_validate({"name": "band_color", "value": "  "})


class TestSetEntry:

    def test_defaults(self):
        entry = SetEntry.model_validate({"set_number": 1, "manual_log": None, "side": "", "distance": 30})
        assert entry.manual_log is False
        assert entry.partial_rep is False
        assert entry.side is None
        assert entry.distance_feet == 30

    @pytest.mark.parametrize("set_number", [0, -1, "1", 1.5])
    def test_set_number_must_be_positive_int(self, set_number):
        with pytest.raises(ValidationError):
            SetEntry.model_validate({"set_number": set_number})


class TestMutationRecord:

    def test_naive_timestamp_read_as_utc(self):
        record = MutationRecord.model_validate(hold_record(performed_at="2024-03-01T09:30:00"))
        assert record.performed_at.tzinfo == timezone.utc
        assert record.performed_at.hour == 9

    def test_blank_patient_id_is_none(self):
        assert MutationRecord.model_validate(hold_record(patient_id="")).patient_id is None

    def test_validate_record_reports_field(self):
        with pytest.raises(RecordValidationError) as exc_info:
            validate_record(hold_record(exercise_name="  "))
        assert exc_info.value.field == "exercise_name"
        assert exc_info.value.message.startswith("exercise_name: ")

    def test_duplicate_set_number_message(self):
        sets = [{"set_number": 1, "reps": 1}, {"set_number": 1, "reps": 2}]
        with pytest.raises(RecordValidationError) as exc_info:
            validate_record(hold_record(sets=sets))
        assert "duplicate set_number 1" in exc_info.value.message

    def test_mutation_id_not_normalized(self):
        assert MutationRecord.model_validate(hold_record(" abc-1 ")).client_mutation_id == " abc-1 "

    @pytest.mark.parametrize("client_mutation_id", ["", "   ", "x" * 256])
    def test_unusable_mutation_id_rejected(self, client_mutation_id):
        with pytest.raises(RecordValidationError) as exc_info:
            validate_record(hold_record(client_mutation_id))
        assert exc_info.value.field == "client_mutation_id"
