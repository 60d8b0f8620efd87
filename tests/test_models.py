"""Tests for Pydantic models - identity, events, records and access types."""

from datetime import date, time

import pytest
from pydantic import TypeAdapter, ValidationError

from medtimeline.errors import InvalidCompositeId
from medtimeline.models.access import AccessScope, RequesterContext
from medtimeline.models.events import (
    PAYLOAD_FIELDS,
    Consultation,
    Diagnosis,
    EventCategory,
    EventFragment,
    EventPayload,
    LabExam,
    ServiceEvent,
    Symptom,
    VitalsCheck,
)
from medtimeline.models.identity import (
    Allergy,
    HistoryStatus,
    MedicalProfile,
    PatientIdentity,
)
from medtimeline.models.record import CompositeId

# --- Identity ---


class TestPatientIdentity:
    def test_full_name_skips_blank_parts(self):
        p = PatientIdentity(id="p1", first_names="Ana Lucia", first_surname="Torres")
        assert p.full_name == "Ana Lucia Torres"

    def test_sex_label(self):
        assert PatientIdentity(id="p1", sex="M").sex_label == "Male"
        assert PatientIdentity(id="p1", sex="F").sex_label == "Female"
        assert PatientIdentity(id="p1").sex_label == "Not specified"

    def test_birth_date_parsed(self):
        p = PatientIdentity(id="p1", birth_date="1987-04-12")
        assert p.birth_date == date(1987, 4, 12)


class TestMedicalProfile:
    def test_allergies_deduplicated_by_id(self):
        profile = MedicalProfile(
            id="p1",
            allergies=[
                Allergy(id="a1", name="Penicillin"),
                Allergy(id="a2", name="Latex"),
                Allergy(id="a1", name="Penicillin (again)"),
            ],
        )
        assert [a.id for a in profile.allergies] == ["a1", "a2"]
        assert profile.allergies[0].name == "Penicillin"

    def test_defaults_empty(self):
        profile = MedicalProfile()
        assert profile.blood_type is None
        assert profile.allergies == []

    def test_independent_list_defaults(self):
        p1 = MedicalProfile()
        p2 = MedicalProfile()
        p1.allergies.append(Allergy(id="a1"))
        assert p2.allergies == []


class TestHistoryStatus:
    def test_from_label_case_insensitive(self):
        assert HistoryStatus.from_label("archived") == HistoryStatus.ARCHIVED
        assert HistoryStatus.from_label(" Pending ") == HistoryStatus.PENDING

    def test_missing_label_is_active(self):
        assert HistoryStatus.from_label(None) == HistoryStatus.ACTIVE
        assert HistoryStatus.from_label("") == HistoryStatus.ACTIVE

    def test_unknown_label_rejected(self):
        with pytest.raises(ValueError):
            HistoryStatus.from_label("Deleted")


# --- Events ---


def _fragment(encounter_id="enc-1", payload=None, **header) -> EventFragment:
    values = {
        "date": date(2024, 1, 10),
        "start_time": time(9, 0),
        "provider_name": "Dr. Carlos Rojas",
    }
    values.update(header)
    return EventFragment(
        encounter_id=encounter_id,
        payload=payload or Consultation(id="c1"),
        **values,
    )


class TestEventCategory:
    def test_precedence_order(self):
        order = sorted(EventCategory, key=lambda c: c.precedence)
        assert order == [
            EventCategory.CONSULTATION,
            EventCategory.LAB_EXAM,
            EventCategory.THERAPY,
            EventCategory.SURGICAL_INTERVENTION,
            EventCategory.VITALS_CHECK,
            EventCategory.HOSPITAL_ADMISSION,
            EventCategory.HOSPITAL_DISCHARGE,
        ]

    def test_findings_rank_as_consultation(self):
        assert Diagnosis(id="d1").category == EventCategory.CONSULTATION


class TestEventPayload:
    def test_discriminator_selects_model(self):
        adapter = TypeAdapter(EventPayload)
        payload = adapter.validate_python({"kind": "vitals_check", "id": "v1", "heart_rate": 80})
        assert isinstance(payload, VitalsCheck)
        assert payload.heart_rate == 80

    def test_unknown_kind_rejected(self):
        adapter = TypeAdapter(EventPayload)
        with pytest.raises(ValidationError):
            adapter.validate_python({"kind": "teleconsult", "id": "x"})

    def test_every_kind_has_an_owning_list(self):
        for name in PAYLOAD_FIELDS.values():
            assert name in ServiceEvent.model_fields

    def test_symptom_severity_bounded(self):
        with pytest.raises(ValidationError):
            Symptom(name="Pain", severity=11)


class TestServiceEvent:
    def test_from_fragment(self):
        event = ServiceEvent.from_fragment(_fragment())
        assert event.id == "enc-1"
        assert event.category == EventCategory.CONSULTATION
        assert len(event.consultations) == 1
        assert event.payload_count() == 1

    def test_absorb_accumulates_payloads(self):
        event = ServiceEvent.from_fragment(_fragment(payload=LabExam(id="l1")))
        event.absorb(_fragment(payload=Consultation(id="c1")))
        event.absorb(_fragment(payload=Diagnosis(id="d1")))
        event.absorb(_fragment(payload=Diagnosis(id="d2")))
        assert len(event.lab_exams) == 1
        assert len(event.consultations) == 1
        assert len(event.diagnoses) == 2
        assert event.category == EventCategory.CONSULTATION

    def test_absorb_last_header_wins(self):
        event = ServiceEvent.from_fragment(_fragment(provider_name="Dr. A"))
        event.absorb(_fragment(payload=LabExam(id="l1"), provider_name="Dr. B", start_time=time(10, 0)))
        assert event.provider_name == "Dr. B"
        assert event.start_time == time(10, 0)

    def test_same_payload_id_replaced(self):
        event = ServiceEvent.from_fragment(_fragment(payload=Consultation(id="c1", reason="first")))
        event.absorb(_fragment(payload=Consultation(id="c1", reason="second")))
        assert len(event.consultations) == 1
        assert event.consultations[0].reason == "second"

    def test_display_fields(self):
        event = ServiceEvent.from_fragment(_fragment())
        assert event.display_date == "10/01/2024"
        assert event.display_time == "09:00"
        assert event.display_when == "10/01/2024 09:00"

    def test_display_date_only(self):
        event = ServiceEvent.from_fragment(_fragment(start_time=None))
        assert event.display_time is None
        assert event.display_when == "10/01/2024"


# --- Composite ids ---


class TestCompositeId:
    def test_encode_parse(self):
        key = CompositeId(patient_id="p-001", history_id="h-001")
        assert key.encode() == "p-001:h-001"
        assert CompositeId.parse("p-001:h-001") == key

    def test_separator_inside_ids_is_lossless(self):
        key = CompositeId(patient_id="org:42", history_id="h/7")
        assert CompositeId.parse(key.encode()) == key

    @pytest.mark.parametrize("value", ["", "p-001", "p:h:x", ":h-001", "p-001:"])
    def test_malformed(self, value):
        with pytest.raises(InvalidCompositeId):
            CompositeId.parse(value)

    def test_invalid_composite_is_value_error(self):
        with pytest.raises(ValueError):
            CompositeId.parse("nope")


# --- Access ---


class TestAccessScope:
    def test_unbounded_allows_all(self):
        scope = AccessScope.unbounded()
        assert scope.is_unbounded
        assert scope.allows("anyone")

    def test_of_dedupes_and_keeps_order(self):
        scope = AccessScope.of(["p1", "p2", "p1", "", "p3"])
        assert scope.patient_ids == ("p1", "p2", "p3")
        assert scope.allows("p2")
        assert not scope.allows("p9")

    def test_requester_defaults(self):
        ctx = RequesterContext()
        assert ctx.requester_id is None
        assert ctx.dependent_ids == []
