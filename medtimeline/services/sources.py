"""Per-category source queries.

Each source returns raw rows for one payload kind, scoped to a patient and
pre-joined with the owning encounter and its provider (name and specialty).
Rows come back as plain dicts in store order; shaping them into the event
model is the normalizer's job.
"""

import logging

from medtimeline.database import DatabaseAdapter, get_db
from medtimeline.models.record import SourceFilters

logger = logging.getLogger(__name__)

ENCOUNTER_COLUMNS = """
    se.id AS encounter_id,
    se.service_date,
    se.start_time,
    se.end_time,
    p.first_names AS provider_first_names,
    p.surname AS provider_surname,
    sp.name AS provider_specialty
"""

ENCOUNTER_JOINS = """
    JOIN service_event se ON se.id = x.service_event_id
    LEFT JOIN provider p ON p.id = se.provider_id
    LEFT JOIN specialty sp ON sp.id = p.specialty_id
"""


class CategorySource:
    """Query capability for one payload kind: ``fetch(patient_id, filters) -> rows``."""

    name: str

    async def fetch(self, patient_id: str, filters: SourceFilters | None = None) -> list[dict]:  # pragma: no cover - interface
        raise NotImplementedError


class SqlCategorySource(CategorySource):
    def __init__(
        self,
        name: str,
        table: str,
        columns: str,
        extra_joins: str = "",
        db: DatabaseAdapter | None = None,
    ) -> None:
        self.name = name
        self.table = table
        self.columns = columns
        self.extra_joins = extra_joins
        self._db = db

    def build_query(self, patient_id: str, filters: SourceFilters | None) -> tuple[str, list]:
        clauses = ["se.patient_id = ?"]
        params: list = [patient_id]
        if filters and filters.date_from:
            clauses.append("se.service_date >= ?")
            params.append(filters.date_from.isoformat())
        if filters and filters.date_to:
            clauses.append("se.service_date <= ?")
            params.append(filters.date_to.isoformat())
        query = (
            f"SELECT {self.columns}, {ENCOUNTER_COLUMNS} "
            f"FROM {self.table} x {ENCOUNTER_JOINS} {self.extra_joins} "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY se.service_date, se.start_time, x.id"
        )
        return query, params

    async def fetch(self, patient_id: str, filters: SourceFilters | None = None) -> list[dict]:
        db = self._db or await get_db()
        query, params = self.build_query(patient_id, filters)
        rows = [dict(row) for row in await db.fetch_all(query, params)]
        if rows:
            await self.attach_children(db, rows)
        logger.debug("Source %s returned %d rows for patient %s", self.name, len(rows), patient_id)
        return rows

    async def attach_children(self, db: DatabaseAdapter, rows: list[dict]) -> None:
        """Hook for sources whose rows own child collections."""
        return


class DiagnosisSource(SqlCategorySource):
    """Diagnoses joined with their morbidity; symptoms attached as a child list."""

    def __init__(self, db: DatabaseAdapter | None = None) -> None:
        super().__init__(
            name="diagnosis",
            table="diagnosis",
            columns=(
                "x.id, x.detail, m.description AS morbidity_description, "
                "m.identification_date AS morbidity_identification_date, m.type AS morbidity_type, "
                "m.severity_level AS morbidity_severity_level, m.contagious AS morbidity_contagious, "
                "m.classification_code AS morbidity_classification_code"
            ),
            extra_joins="LEFT JOIN morbidity m ON m.id = x.morbidity_id",
            db=db,
        )

    async def attach_children(self, db: DatabaseAdapter, rows: list[dict]) -> None:
        ids = [row["id"] for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        symptoms = await db.fetch_all(
            "SELECT diagnosis_id, name, first_manifestation_date, description, severity, current_state "
            f"FROM symptom WHERE diagnosis_id IN ({placeholders}) ORDER BY id",
            ids,
        )
        by_parent: dict[str, list[dict]] = {}
        for symptom in symptoms:
            by_parent.setdefault(symptom["diagnosis_id"], []).append(dict(symptom))
        for row in rows:
            row["symptoms"] = by_parent.get(row["id"], [])


class TreatmentSource(SqlCategorySource):
    """Treatments with their prescribed medications attached as a child list."""

    def __init__(self, db: DatabaseAdapter | None = None) -> None:
        super().__init__(
            name="treatment",
            table="treatment",
            columns="x.id, x.reason, x.duration_quantity, x.duration_unit, x.notes",
            db=db,
        )

    async def attach_children(self, db: DatabaseAdapter, rows: list[dict]) -> None:
        ids = [row["id"] for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        medications = await db.fetch_all(
            "SELECT tm.treatment_id, m.commercial_name, m.administration_route, m.concentration, "
            "m.manufacturer, tm.reason_for_use, tm.dose_quantity, tm.frequency "
            "FROM treatment_medication tm JOIN medication m ON m.id = tm.medication_id "
            f"WHERE tm.treatment_id IN ({placeholders}) ORDER BY m.commercial_name",
            ids,
        )
        by_parent: dict[str, list[dict]] = {}
        for medication in medications:
            by_parent.setdefault(medication["treatment_id"], []).append(dict(medication))
        for row in rows:
            row["medications"] = by_parent.get(row["id"], [])


def default_sources(db: DatabaseAdapter | None = None) -> dict[str, CategorySource]:
    """All store-backed sources, keyed by payload kind, in merge order."""
    sources: list[CategorySource] = [
        SqlCategorySource(
            "consultation",
            "consultation",
            "x.id, x.reason, x.general_observations, x.service_type, x.service_subtype",
            db=db,
        ),
        DiagnosisSource(db=db),
        TreatmentSource(db=db),
        SqlCategorySource(
            "lab_exam",
            "lab_exam",
            "x.id, x.procedure_description, x.description, x.procedure_type, x.lab_type, "
            "x.result, x.performed_at",
            db=db,
        ),
        SqlCategorySource(
            "therapy",
            "therapy",
            "x.id, x.description, x.observations, x.results",
            db=db,
        ),
        SqlCategorySource(
            "surgical_intervention",
            "surgical_intervention",
            "x.id, x.procedure_name, x.anesthesia_type, x.observations",
            db=db,
        ),
        SqlCategorySource(
            "vitals_check",
            "vitals_check",
            "x.id, x.heart_rate, x.systolic, x.diastolic, x.oxygen_saturation, x.patient_state, x.notes",
            db=db,
        ),
        SqlCategorySource(
            "hospital_admission",
            "hospital_admission",
            "x.id, x.reason, x.ward, x.room, x.bed",
            db=db,
        ),
        SqlCategorySource(
            "hospital_discharge",
            "hospital_discharge",
            "x.id, x.discharge_condition, x.instructions, x.follow_up",
            db=db,
        ),
    ]
    return {source.name: source for source in sources}
