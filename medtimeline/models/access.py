from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    PATIENT = "patient"
    ADMIN = "admin"
    CLINICIAN = "clinician"


class RequesterContext(BaseModel):
    """Who is asking. Supplied explicitly by the caller on every request.

    For patients ``requester_id`` is their own profile id and
    ``dependent_ids`` the profiles they manage; for clinicians it is their
    staff id.
    """
    requester_id: str | None = None
    dependent_ids: list[str] = []


@dataclass(frozen=True)
class AccessScope:
    """Patient ids a requester may see, in listing order. ``None`` means unbounded."""
    patient_ids: tuple[str, ...] | None

    @classmethod
    def unbounded(cls) -> "AccessScope":
        return cls(patient_ids=None)

    @classmethod
    def of(cls, patient_ids) -> "AccessScope":
        return cls(patient_ids=tuple(dict.fromkeys(pid for pid in patient_ids if pid)))

    @property
    def is_unbounded(self) -> bool:
        return self.patient_ids is None

    def allows(self, patient_id: str) -> bool:
        return self.patient_ids is None or patient_id in self.patient_ids
