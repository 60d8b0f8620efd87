from datetime import date
from enum import Enum
from urllib.parse import quote, unquote

from pydantic import BaseModel

from medtimeline.errors import InvalidCompositeId
from medtimeline.models.events import ServiceEvent
from medtimeline.models.identity import (
    HistoryStatus,
    MedicalHistoryRecord,
    MedicalProfile,
    PatientIdentity,
)

COMPOSITE_SEPARATOR = ":"


class CompositeId(BaseModel):
    """(patient id, history id) pair addressing one medical record.

    The string form percent-encodes each part before joining, so ids that
    themselves contain the separator still split back losslessly.
    """
    patient_id: str
    history_id: str

    def encode(self) -> str:
        return (
            f"{quote(self.patient_id, safe='')}"
            f"{COMPOSITE_SEPARATOR}"
            f"{quote(self.history_id, safe='')}"
        )

    @classmethod
    def parse(cls, value: str) -> "CompositeId":
        parts = (value or "").split(COMPOSITE_SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise InvalidCompositeId(f"Malformed composite record id {value!r}")
        return cls(patient_id=unquote(parts[0]), history_id=unquote(parts[1]))

    def __str__(self) -> str:
        return self.encode()


class IndexEntry(BaseModel):
    """Summary row for record list views."""
    composite_id: str
    patient_display_name: str
    last_update_date: date
    history_status: HistoryStatus


class SourceFilters(BaseModel):
    """Optional narrowing applied by every category source."""
    date_from: date | None = None
    date_to: date | None = None


class DiagnosticKind(str, Enum):
    PARTIAL_CATEGORY_FAILURE = "partial_category_failure"
    VALIDATION_GAP = "validation_gap"


class CategoryDiagnostic(BaseModel):
    """Structured note about a category that contributed fewer events than it could."""
    source: str
    kind: DiagnosticKind
    reason: str                     # "error", "timeout", "empty", "invalid_rows"
    detail: str = ""
    skipped_rows: int = 0


class MedicalRecord(BaseModel):
    """Unified, chronologically ordered record for one patient history."""
    composite_id: str
    identity: PatientIdentity
    profile: MedicalProfile
    history: MedicalHistoryRecord
    events: list[ServiceEvent] = []
    diagnostics: list[CategoryDiagnostic] = []
