"""Identity, profile and history lookups against the clinical store.

These functions return ``None`` on a miss and let driver errors propagate;
callers decide whether a miss or an outage is fatal for their operation.
"""

import logging

from medtimeline.database import DatabaseAdapter
from medtimeline.models.identity import (
    Allergy,
    HistoryStatus,
    MedicalHistoryRecord,
    MedicalProfile,
    PatientIdentity,
)

logger = logging.getLogger(__name__)

HISTORY_SUMMARY_QUERY = """
    SELECT
        h.id AS history_id,
        h.profile_id AS patient_id,
        h.created_at,
        s.label AS status_label,
        p.first_names,
        p.first_surname,
        p.second_surname,
        (SELECT MAX(se.service_date) FROM service_event se WHERE se.patient_id = h.profile_id)
            AS last_service_date
    FROM medical_history h
    JOIN person p ON p.id = h.profile_id
    LEFT JOIN history_status s ON s.id = h.status_id
"""


def parse_status(label: str | None) -> HistoryStatus:
    try:
        return HistoryStatus.from_label(label)
    except ValueError:
        logger.warning("Unrecognized history status %r, treating as Active", label)
        return HistoryStatus.ACTIVE


async def fetch_identity(db: DatabaseAdapter, patient_id: str) -> PatientIdentity | None:
    row = await db.fetch_one("SELECT * FROM person WHERE id = ?", (patient_id,))
    if not row:
        return None
    return PatientIdentity(
        id=row["id"],
        first_names=row["first_names"] or "",
        first_surname=row["first_surname"] or "",
        second_surname=row["second_surname"] or "",
        national_id=row["national_id"] or "",
        birth_date=row["birth_date"] or None,
        sex=row["sex"],
        address=row["address"] or "",
        personal_phone=row["personal_phone"] or "",
        emergency_phone=row["emergency_phone"] or "",
        email=row["email"] or "",
    )


async def fetch_history(db: DatabaseAdapter, history_id: str) -> MedicalHistoryRecord | None:
    row = await db.fetch_one(
        "SELECT h.id, h.profile_id, h.created_at, s.label AS status_label "
        "FROM medical_history h LEFT JOIN history_status s ON s.id = h.status_id "
        "WHERE h.id = ?",
        (history_id,),
    )
    if not row:
        return None
    return MedicalHistoryRecord(
        id=row["id"],
        profile_id=row["profile_id"],
        created_at=row["created_at"],
        status=parse_status(row["status_label"]),
    )


async def fetch_profile(db: DatabaseAdapter, profile_id: str) -> MedicalProfile | None:
    row = await db.fetch_one(
        "SELECT id, blood_type, residence_environment FROM medical_profile WHERE id = ?",
        (profile_id,),
    )
    if not row:
        return None
    allergy_rows = await db.fetch_all(
        "SELECT a.id, a.name, a.allergen_component "
        "FROM profile_allergy pa JOIN allergy a ON a.id = pa.allergy_id "
        "WHERE pa.profile_id = ? ORDER BY a.name",
        (profile_id,),
    )
    return MedicalProfile(
        id=row["id"],
        blood_type=row["blood_type"],
        residence_environment=row["residence_environment"],
        allergies=[
            Allergy(id=a["id"], name=a["name"], allergen_component=a["allergen_component"])
            for a in allergy_rows
        ],
    )


async def fetch_history_summary(db: DatabaseAdapter, profile_id: str) -> dict | None:
    """Index summary for the history owned by one profile, or None if it has none."""
    row = await db.fetch_one(
        f"{HISTORY_SUMMARY_QUERY} WHERE h.profile_id = ? ORDER BY h.id LIMIT 1",
        (profile_id,),
    )
    return dict(row) if row else None


async def list_history_summaries(db: DatabaseAdapter, limit: int, offset: int = 0) -> list[dict]:
    rows = await db.fetch_all(
        f"{HISTORY_SUMMARY_QUERY} ORDER BY h.id LIMIT ? OFFSET ?",
        (limit, offset),
    )
    return [dict(row) for row in rows]


async def attended_patient_ids(db: DatabaseAdapter, provider_id: str) -> list[str]:
    """Patients with at least one encounter attended by the given provider."""
    rows = await db.fetch_all(
        "SELECT patient_id FROM service_event WHERE provider_id = ? "
        "GROUP BY patient_id ORDER BY patient_id",
        (provider_id,),
    )
    return [row["patient_id"] for row in rows]
