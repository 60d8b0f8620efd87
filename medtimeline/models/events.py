"""Polymorphic clinical event model.

Every category row normalizes into an ``EventFragment``: the shared encounter
header plus exactly one payload. Payloads form a tagged union on ``kind`` so a
fragment can only ever carry one well-formed category record. Fragments that
share an encounter id are folded into a single ``ServiceEvent`` envelope, which
owns one list per payload kind.
"""

from datetime import date, time
from enum import Enum
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, Field, computed_field

from medtimeline.formatting import format_date, format_datetime, format_time_of_day


class EventCategory(str, Enum):
    """Clinical-event categories, declared in tie-break precedence order."""
    CONSULTATION = "consultation"
    LAB_EXAM = "lab_exam"
    THERAPY = "therapy"
    SURGICAL_INTERVENTION = "surgical_intervention"
    VITALS_CHECK = "vitals_check"
    HOSPITAL_ADMISSION = "hospital_admission"
    HOSPITAL_DISCHARGE = "hospital_discharge"

    @property
    def precedence(self) -> int:
        return list(EventCategory).index(self)


# --- Consultation-owned findings ---


class Morbidity(BaseModel):
    description: str = ""
    identification_date: date | None = None
    type: str | None = None
    severity_level: str | None = None
    contagious: bool | None = None
    classification_code: str | None = None      # e.g. ICD-10


class Symptom(BaseModel):
    name: str
    first_manifestation_date: date | None = None
    description: str | None = None
    severity: int | None = Field(None, ge=0, le=10)
    current_state: str | None = None


class Medication(BaseModel):
    commercial_name: str
    administration_route: str | None = None
    concentration: str | None = None
    manufacturer: str | None = None
    reason_for_use: str | None = None
    dose_quantity: str | None = None
    frequency: str | None = None


# --- Payload kinds ---


class Consultation(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.CONSULTATION
    kind: Literal["consultation"] = "consultation"
    id: str
    reason: str | None = None
    general_observations: str | None = None
    service_type: str = "Medical Consultation"
    service_subtype: str | None = None


class Diagnosis(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.CONSULTATION
    kind: Literal["diagnosis"] = "diagnosis"
    id: str
    detail: str | None = None
    morbidity: Morbidity = Morbidity()
    symptoms: list[Symptom] = []


class Treatment(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.CONSULTATION
    kind: Literal["treatment"] = "treatment"
    id: str
    reason: str | None = None
    duration_quantity: int | None = None
    duration_unit: str | None = None
    notes: str | None = None
    medications: list[Medication] = []


class LabExam(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.LAB_EXAM
    kind: Literal["lab_exam"] = "lab_exam"
    id: str
    procedure_description: str | None = None
    description: str | None = None
    procedure_type: str | None = None
    lab_type: str | None = None
    result: str | None = None


class Therapy(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.THERAPY
    kind: Literal["therapy"] = "therapy"
    id: str
    description: str | None = None
    observations: str | None = None
    results: str | None = None


class SurgicalIntervention(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.SURGICAL_INTERVENTION
    kind: Literal["surgical_intervention"] = "surgical_intervention"
    id: str
    procedure: str | None = None
    anesthesia_type: str | None = None
    observations: str | None = None


class VitalsCheck(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.VITALS_CHECK
    kind: Literal["vitals_check"] = "vitals_check"
    id: str
    heart_rate: int | None = None               # bpm
    systolic: int | None = None                 # mmHg
    diastolic: int | None = None                # mmHg
    oxygen_saturation: int | None = None        # %
    patient_state: str | None = None
    notes: str | None = None


class HospitalAdmission(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.HOSPITAL_ADMISSION
    kind: Literal["hospital_admission"] = "hospital_admission"
    id: str
    reason: str | None = None
    ward: str | None = None
    room: str | None = None
    bed: str | None = None


class HospitalDischarge(BaseModel):
    category: ClassVar[EventCategory] = EventCategory.HOSPITAL_DISCHARGE
    kind: Literal["hospital_discharge"] = "hospital_discharge"
    id: str
    discharge_condition: str | None = None
    instructions: str | None = None
    follow_up: str | None = None


EventPayload = Annotated[
    Union[
        Consultation,
        Diagnosis,
        Treatment,
        LabExam,
        Therapy,
        SurgicalIntervention,
        VitalsCheck,
        HospitalAdmission,
        HospitalDischarge,
    ],
    Field(discriminator="kind"),
]

# Envelope list that owns each payload kind
PAYLOAD_FIELDS: dict[str, str] = {
    "consultation": "consultations",
    "diagnosis": "diagnoses",
    "treatment": "treatments",
    "lab_exam": "lab_exams",
    "therapy": "therapies",
    "surgical_intervention": "surgical_interventions",
    "vitals_check": "vitals_checks",
    "hospital_admission": "hospital_admissions",
    "hospital_discharge": "hospital_discharges",
}


class EventFragment(BaseModel):
    """One normalized category row: encounter header plus a single payload."""
    encounter_id: str
    date: date
    start_time: time | None = None
    end_time: time | None = None
    provider_name: str
    provider_specialty: str | None = None
    payload: EventPayload


class ServiceEvent(BaseModel):
    """One clinical encounter with every payload recorded against it."""
    id: str
    date: date
    start_time: time | None = None
    end_time: time | None = None
    provider_name: str
    provider_specialty: str | None = None
    category: EventCategory
    consultations: list[Consultation] = []
    diagnoses: list[Diagnosis] = []
    treatments: list[Treatment] = []
    lab_exams: list[LabExam] = []
    therapies: list[Therapy] = []
    surgical_interventions: list[SurgicalIntervention] = []
    vitals_checks: list[VitalsCheck] = []
    hospital_admissions: list[HospitalAdmission] = []
    hospital_discharges: list[HospitalDischarge] = []

    @classmethod
    def from_fragment(cls, fragment: EventFragment) -> "ServiceEvent":
        event = cls(
            id=fragment.encounter_id,
            date=fragment.date,
            start_time=fragment.start_time,
            end_time=fragment.end_time,
            provider_name=fragment.provider_name,
            provider_specialty=fragment.provider_specialty,
            category=fragment.payload.category,
        )
        event.attach(fragment.payload)
        return event

    def absorb(self, fragment: EventFragment) -> None:
        """Fold a later fragment for the same encounter into this envelope.

        Header fields take the fragment's values (last-normalized wins). Lab
        exams are normalized after consultation findings and carry their own
        attention timestamp, so an encounter that holds a lab exam is dated
        by that exam.
        """
        self.date = fragment.date
        self.start_time = fragment.start_time
        self.end_time = fragment.end_time
        self.provider_name = fragment.provider_name
        self.provider_specialty = fragment.provider_specialty
        self.attach(fragment.payload)

    def attach(self, payload: EventPayload) -> None:
        """Add a payload to its owning list, replacing any earlier copy with the same id."""
        items = getattr(self, PAYLOAD_FIELDS[payload.kind])
        for idx, existing in enumerate(items):
            if existing.id == payload.id:
                items[idx] = payload
                break
        else:
            items.append(payload)
        if payload.category.precedence < self.category.precedence:
            self.category = payload.category

    def payload_count(self) -> int:
        return sum(len(getattr(self, name)) for name in PAYLOAD_FIELDS.values())

    @computed_field
    @property
    def display_date(self) -> str:
        return format_date(self.date)

    @computed_field
    @property
    def display_time(self) -> str | None:
        if self.start_time is None:
            return None
        return format_time_of_day(self.start_time)

    @computed_field
    @property
    def display_when(self) -> str:
        if self.start_time is None:
            return format_date(self.date)
        return format_datetime(self.date, self.start_time)
