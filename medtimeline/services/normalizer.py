"""Map raw category rows onto the common event model.

Each ``normalize_*`` function takes one row (already joined with its encounter
and provider) and returns an ``EventFragment``. They are pure: no I/O, no
shared state. A row that cannot be placed on the timeline (no encounter id,
missing or unparseable date, out-of-range values, malformed child entries)
raises; ``normalize_rows`` counts those as skipped instead of failing the batch.
"""

import logging
from datetime import datetime
from typing import Callable

from medtimeline.models.events import (
    Consultation,
    Diagnosis,
    EventFragment,
    HospitalAdmission,
    HospitalDischarge,
    LabExam,
    Medication,
    Morbidity,
    SurgicalIntervention,
    Symptom,
    Therapy,
    Treatment,
    VitalsCheck,
)

logger = logging.getLogger(__name__)

UNSPECIFIED_PROVIDER = "Unspecified provider"


class RowValidationError(ValueError):
    """A source row is missing data the timeline cannot do without."""


def _provider_name(row: dict) -> str:
    first = (row.get("provider_first_names") or "").strip()
    surname = (row.get("provider_surname") or "").strip()
    full = " ".join(part for part in [first, surname] if part)
    if not full:
        return UNSPECIFIED_PROVIDER
    return f"Dr. {full}"


def _header(row: dict) -> dict:
    if not row.get("encounter_id"):
        raise RowValidationError("row has no encounter id")
    if not row.get("service_date"):
        raise RowValidationError(f"encounter {row['encounter_id']} has no service date")
    return {
        "encounter_id": str(row["encounter_id"]),
        "date": row["service_date"],
        "start_time": row.get("start_time") or None,
        "end_time": row.get("end_time") or None,
        "provider_name": _provider_name(row),
        "provider_specialty": row.get("provider_specialty"),
    }


def _as_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def normalize_consultation(row: dict) -> EventFragment:
    payload = Consultation(
        id=str(row["id"]),
        reason=row.get("reason"),
        general_observations=row.get("general_observations"),
        service_type=row.get("service_type") or "Medical Consultation",
        service_subtype=row.get("service_subtype"),
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_diagnosis(row: dict) -> EventFragment:
    morbidity = Morbidity(
        description=row.get("morbidity_description") or "",
        identification_date=row.get("morbidity_identification_date") or None,
        type=row.get("morbidity_type"),
        severity_level=row.get("morbidity_severity_level"),
        contagious=row.get("morbidity_contagious"),
        classification_code=row.get("morbidity_classification_code"),
    )
    symptoms = [
        Symptom(
            name=s["name"],
            first_manifestation_date=s.get("first_manifestation_date") or None,
            description=s.get("description"),
            severity=s.get("severity"),
            current_state=s.get("current_state"),
        )
        for s in row.get("symptoms") or []
    ]
    payload = Diagnosis(
        id=str(row["id"]),
        detail=row.get("detail"),
        morbidity=morbidity,
        symptoms=symptoms,
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_treatment(row: dict) -> EventFragment:
    medications = [
        Medication(
            commercial_name=m["commercial_name"],
            administration_route=m.get("administration_route"),
            concentration=m.get("concentration"),
            manufacturer=m.get("manufacturer"),
            reason_for_use=m.get("reason_for_use"),
            dose_quantity=m.get("dose_quantity"),
            frequency=m.get("frequency"),
        )
        for m in row.get("medications") or []
    ]
    payload = Treatment(
        id=str(row["id"]),
        reason=row.get("reason"),
        duration_quantity=row.get("duration_quantity"),
        duration_unit=row.get("duration_unit"),
        notes=row.get("notes"),
        medications=medications,
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_lab_exam(row: dict) -> EventFragment:
    """Lab exams carry their own attention timestamp, which wins over the encounter slot."""
    performed_at = _as_datetime(row.get("performed_at"))
    if performed_at is not None:
        row = {**row, "service_date": performed_at.date(), "start_time": performed_at.time()}
    payload = LabExam(
        id=str(row["id"]),
        procedure_description=row.get("procedure_description"),
        description=row.get("description"),
        procedure_type=row.get("procedure_type"),
        lab_type=row.get("lab_type"),
        result=row.get("result"),
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_therapy(row: dict) -> EventFragment:
    payload = Therapy(
        id=str(row["id"]),
        description=row.get("description"),
        observations=row.get("observations"),
        results=row.get("results"),
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_surgical_intervention(row: dict) -> EventFragment:
    payload = SurgicalIntervention(
        id=str(row["id"]),
        procedure=row.get("procedure_name"),
        anesthesia_type=row.get("anesthesia_type"),
        observations=row.get("observations"),
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_vitals_check(row: dict) -> EventFragment:
    payload = VitalsCheck(
        id=str(row["id"]),
        heart_rate=row.get("heart_rate"),
        systolic=row.get("systolic"),
        diastolic=row.get("diastolic"),
        oxygen_saturation=row.get("oxygen_saturation"),
        patient_state=row.get("patient_state"),
        notes=row.get("notes"),
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_hospital_admission(row: dict) -> EventFragment:
    payload = HospitalAdmission(
        id=str(row["id"]),
        reason=row.get("reason"),
        ward=row.get("ward"),
        room=row.get("room"),
        bed=row.get("bed"),
    )
    return EventFragment(**_header(row), payload=payload)


def normalize_hospital_discharge(row: dict) -> EventFragment:
    payload = HospitalDischarge(
        id=str(row["id"]),
        discharge_condition=row.get("discharge_condition"),
        instructions=row.get("instructions"),
        follow_up=row.get("follow_up"),
    )
    return EventFragment(**_header(row), payload=payload)


NORMALIZERS: dict[str, Callable[[dict], EventFragment]] = {
    "consultation": normalize_consultation,
    "diagnosis": normalize_diagnosis,
    "treatment": normalize_treatment,
    "lab_exam": normalize_lab_exam,
    "therapy": normalize_therapy,
    "surgical_intervention": normalize_surgical_intervention,
    "vitals_check": normalize_vitals_check,
    "hospital_admission": normalize_hospital_admission,
    "hospital_discharge": normalize_hospital_discharge,
}


def normalize_rows(kind: str, rows: list[dict]) -> tuple[list[EventFragment], int]:
    """Normalize every row of one source. Returns (fragments, skipped row count)."""
    normalize = NORMALIZERS[kind]
    fragments: list[EventFragment] = []
    skipped = 0
    for row in rows:
        try:
            fragments.append(normalize(row))
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            skipped += 1
            logger.warning("Skipping malformed %s row %s: %s", kind, row.get("id"), exc)
    return fragments, skipped
