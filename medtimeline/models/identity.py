"""Pydantic models for patient identity, clinical profile and history header."""

from datetime import date
from enum import Enum

from pydantic import BaseModel, computed_field, field_validator


class PatientIdentity(BaseModel):
    """Civil identity of a patient, owned by the registry subsystem.

    ``address``, ``personal_phone``, ``emergency_phone`` and ``email`` are
    sensitive. They are always populated here; hiding them is a presentation
    concern handled by the sensitivity gate.
    """
    id: str
    first_names: str = ""
    first_surname: str = ""
    second_surname: str = ""
    national_id: str = ""
    birth_date: date | None = None
    sex: str | None = None                  # "M" / "F"
    address: str = ""
    personal_phone: str = ""
    emergency_phone: str = ""
    email: str = ""

    @computed_field
    @property
    def full_name(self) -> str:
        parts = [self.first_names, self.first_surname, self.second_surname]
        return " ".join(p.strip() for p in parts if p and p.strip())

    @computed_field
    @property
    def sex_label(self) -> str:
        if self.sex == "M":
            return "Male"
        if self.sex == "F":
            return "Female"
        return "Not specified"


class Allergy(BaseModel):
    id: str
    name: str = ""
    allergen_component: str | None = None


class MedicalProfile(BaseModel):
    """Clinical baseline for a patient. Shares its id with PatientIdentity."""
    id: str = ""
    blood_type: str | None = None
    residence_environment: str | None = None
    allergies: list[Allergy] = []

    @field_validator("allergies")
    @classmethod
    def _dedupe_allergies(cls, allergies: list[Allergy]) -> list[Allergy]:
        seen: set[str] = set()
        unique = []
        for allergy in allergies:
            if allergy.id in seen:
                continue
            seen.add(allergy.id)
            unique.append(allergy)
        return unique


class HistoryStatus(str, Enum):
    ACTIVE = "Active"
    ARCHIVED = "Archived"
    PENDING = "Pending"

    @classmethod
    def from_label(cls, label: str | None) -> "HistoryStatus":
        """Map a stored status label onto the enum; missing labels read as Active."""
        if not label:
            return cls.ACTIVE
        for status in cls:
            if status.value.lower() == label.strip().lower():
                return status
        raise ValueError(f"Unknown history status {label!r}")


class MedicalHistoryRecord(BaseModel):
    id: str
    profile_id: str
    created_at: date
    status: HistoryStatus = HistoryStatus.ACTIVE
