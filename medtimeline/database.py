from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import urlparse

import aiosqlite

from medtimeline.config import DATABASE_MAX_CONNECTIONS, DATABASE_PATH, DATABASE_URL, SEED_DEMO_DATA

try:  # Optional: only required when DATABASE_URL is set (Cloud SQL / Postgres)
    import asyncpg  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    asyncpg = None

logger = logging.getLogger(__name__)


class DatabaseAdapter:
    engine: str

    async def execute(self, query: str, params: Sequence | None = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_one(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_all(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def commit(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class SQLiteAdapter(DatabaseAdapter):
    conn: aiosqlite.Connection
    engine: str = "sqlite"

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        await self.conn.execute(query, params or ())

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        await self.conn.executemany(query, seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchone()

    async def fetch_all(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchall()

    async def commit(self) -> None:
        await self.conn.commit()

    async def close(self) -> None:
        await self.conn.close()


@dataclass
class PostgresAdapter(DatabaseAdapter):
    pool: "asyncpg.Pool"  # type: ignore[name-defined]
    engine: str = "postgres"

    @staticmethod
    def _translate_query(query: str) -> str:
        # Convert SQLite-style ? placeholders to asyncpg-style $1, $2, ...
        if "$1" in query:
            return query
        idx = 1
        out = []
        for ch in query:
            if ch == "?":
                out.append(f"${idx}")
                idx += 1
            else:
                out.append(ch)
        return "".join(out)

    async def execute(self, query: str, params: Sequence | None = None) -> None:
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            await conn.execute(q, *(params or ()))

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            await conn.executemany(q, seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(q, *(params or ()))

    async def fetch_all(self, query: str, params: Sequence | None = None):
        q = self._translate_query(query)
        async with self.pool.acquire() as conn:
            return await conn.fetch(q, *(params or ()))

    async def commit(self) -> None:
        # asyncpg autocommits per statement unless an explicit transaction is used.
        return

    async def close(self) -> None:
        await self.pool.close()


_db: DatabaseAdapter | None = None


async def get_db() -> DatabaseAdapter:
    global _db
    if _db is None:
        if DATABASE_URL and not DATABASE_URL.startswith("sqlite"):
            if asyncpg is None:
                raise RuntimeError(
                    "DATABASE_URL is set but asyncpg is not installed. "
                    "Install asyncpg or unset DATABASE_URL."
                )
            pool = await asyncpg.create_pool(
                dsn=DATABASE_URL,
                min_size=1,
                max_size=DATABASE_MAX_CONNECTIONS,
            )
            _db = PostgresAdapter(pool)
            logger.info("Connected to Postgres database")
        else:
            sqlite_path = _sqlite_path_from_url(DATABASE_URL) if DATABASE_URL else ""
            sqlite_path = sqlite_path or DATABASE_PATH
            conn = await aiosqlite.connect(sqlite_path)
            conn.row_factory = aiosqlite.Row
            _db = SQLiteAdapter(conn)
            logger.info("Connected to SQLite database at %s", sqlite_path)
    return _db


def _sqlite_path_from_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or ""
    if not path or path == "/":
        return ""
    # sqlite:////absolute/path.db -> keep absolute path
    if url.startswith("sqlite:////"):
        return path
    # sqlite:///relative.db -> strip leading slash
    if path.startswith("/"):
        return path[1:]
    return path


# Dates are stored as ISO-8601 text so the same DDL runs on SQLite and Postgres.
SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS person (
        id TEXT PRIMARY KEY,
        first_names TEXT NOT NULL DEFAULT '',
        first_surname TEXT NOT NULL DEFAULT '',
        second_surname TEXT NOT NULL DEFAULT '',
        national_id TEXT NOT NULL DEFAULT '',
        birth_date TEXT,
        sex TEXT,
        address TEXT DEFAULT '',
        personal_phone TEXT DEFAULT '',
        emergency_phone TEXT DEFAULT '',
        email TEXT DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS medical_profile (
        id TEXT PRIMARY KEY REFERENCES person(id),
        blood_type TEXT,
        residence_environment TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS allergy (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        allergen_component TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profile_allergy (
        profile_id TEXT NOT NULL REFERENCES medical_profile(id),
        allergy_id TEXT NOT NULL REFERENCES allergy(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS history_status (
        id INTEGER PRIMARY KEY,
        label TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS medical_history (
        id TEXT PRIMARY KEY,
        profile_id TEXT NOT NULL REFERENCES medical_profile(id),
        created_at TEXT NOT NULL,
        status_id INTEGER REFERENCES history_status(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS specialty (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS provider (
        id TEXT PRIMARY KEY,
        first_names TEXT NOT NULL DEFAULT '',
        surname TEXT NOT NULL DEFAULT '',
        specialty_id TEXT REFERENCES specialty(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS service_event (
        id TEXT PRIMARY KEY,
        patient_id TEXT NOT NULL REFERENCES person(id),
        provider_id TEXT REFERENCES provider(id),
        service_date TEXT,
        start_time TEXT,
        end_time TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS consultation (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        reason TEXT,
        general_observations TEXT,
        service_type TEXT,
        service_subtype TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS morbidity (
        id TEXT PRIMARY KEY,
        description TEXT NOT NULL DEFAULT '',
        identification_date TEXT,
        type TEXT,
        severity_level TEXT,
        contagious INTEGER,
        classification_code TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS diagnosis (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        morbidity_id TEXT REFERENCES morbidity(id),
        detail TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS symptom (
        id TEXT PRIMARY KEY,
        diagnosis_id TEXT NOT NULL REFERENCES diagnosis(id),
        name TEXT NOT NULL,
        first_manifestation_date TEXT,
        description TEXT,
        severity INTEGER,
        current_state TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS treatment (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        reason TEXT,
        duration_quantity INTEGER,
        duration_unit TEXT,
        notes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS medication (
        id TEXT PRIMARY KEY,
        commercial_name TEXT NOT NULL,
        administration_route TEXT,
        concentration TEXT,
        manufacturer TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS treatment_medication (
        treatment_id TEXT NOT NULL REFERENCES treatment(id),
        medication_id TEXT NOT NULL REFERENCES medication(id),
        reason_for_use TEXT,
        dose_quantity TEXT,
        frequency TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS lab_exam (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        procedure_description TEXT,
        description TEXT,
        procedure_type TEXT,
        lab_type TEXT,
        result TEXT,
        performed_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS therapy (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        description TEXT,
        observations TEXT,
        results TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS surgical_intervention (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        procedure_name TEXT,
        anesthesia_type TEXT,
        observations TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vitals_check (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        heart_rate INTEGER,
        systolic INTEGER,
        diastolic INTEGER,
        oxygen_saturation INTEGER,
        patient_state TEXT,
        notes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hospital_admission (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        reason TEXT,
        ward TEXT,
        room TEXT,
        bed TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hospital_discharge (
        id TEXT PRIMARY KEY,
        service_event_id TEXT NOT NULL REFERENCES service_event(id),
        discharge_condition TEXT,
        instructions TEXT,
        follow_up TEXT
    )
    """,
]

HISTORY_STATUSES = [(1, "Active"), (2, "Archived"), (3, "Pending")]


async def init_db() -> None:
    db = await get_db()

    for stmt in SCHEMA:
        await db.execute(stmt)

    existing = await db.fetch_all("SELECT id FROM history_status")
    known = {row["id"] for row in existing}
    missing = [status for status in HISTORY_STATUSES if status[0] not in known]
    if missing:
        await db.executemany("INSERT INTO history_status (id, label) VALUES (?, ?)", missing)

    await db.commit()
    logger.info("Initialized %s schema (%d tables)", db.engine, len(SCHEMA))

    if SEED_DEMO_DATA:
        await _seed_demo_data(db)


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def _seed_demo_data(db: DatabaseAdapter) -> None:
    """Seed two demo patients with a small clinical history for UI previews."""
    existing = await db.fetch_one("SELECT id FROM person WHERE id = 'demo-ana'")
    if existing:
        return

    await db.executemany(
        """INSERT INTO person (
            id, first_names, first_surname, second_surname, national_id, birth_date, sex,
            address, personal_phone, emergency_phone, email
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            ("demo-ana", "Ana Lucia", "Torres", "Vega", "40582934", "1987-04-12", "F",
             "Av. Los Olivos 221, Lima", "+51 987 654 321", "+51 912 345 678", "ana.torres@example.com"),
            ("demo-mateo", "Mateo", "Torres", "Ruiz", "72839104", "2015-09-30", "M",
             "Av. Los Olivos 221, Lima", "", "+51 987 654 321", ""),
        ],
    )
    await db.executemany(
        "INSERT INTO medical_profile (id, blood_type, residence_environment) VALUES (?, ?, ?)",
        [("demo-ana", "O+", "Urban"), ("demo-mateo", "A+", "Urban")],
    )
    await db.executemany(
        "INSERT INTO allergy (id, name, allergen_component) VALUES (?, ?, ?)",
        [("alg-pen", "Penicillin", "Beta-lactam"), ("alg-lat", "Latex", "Natural rubber latex")],
    )
    await db.executemany(
        "INSERT INTO profile_allergy (profile_id, allergy_id) VALUES (?, ?)",
        [("demo-ana", "alg-pen"), ("demo-ana", "alg-lat")],
    )
    await db.executemany(
        "INSERT INTO medical_history (id, profile_id, created_at, status_id) VALUES (?, ?, ?, ?)",
        [("hist-ana", "demo-ana", "2019-02-01", 1), ("hist-mateo", "demo-mateo", "2015-10-02", 1)],
    )
    await db.executemany(
        "INSERT INTO specialty (id, name) VALUES (?, ?)",
        [("sp-im", "Internal Medicine"), ("sp-ped", "Pediatrics"), ("sp-sur", "General Surgery")],
    )
    await db.executemany(
        "INSERT INTO provider (id, first_names, surname, specialty_id) VALUES (?, ?, ?, ?)",
        [("doc-rojas", "Carlos", "Rojas", "sp-im"), ("doc-paz", "Elena", "Paz", "sp-ped"),
         ("doc-quispe", "Jorge", "Quispe", "sp-sur")],
    )
    await db.executemany(
        """INSERT INTO service_event (id, patient_id, provider_id, service_date, start_time, end_time)
        VALUES (?, ?, ?, ?, ?, ?)""",
        [
            ("enc-1", "demo-ana", "doc-rojas", "2024-01-10", "09:00", "09:30"),
            ("enc-2", "demo-ana", None, "2024-01-10", "09:00", None),
            ("enc-3", "demo-ana", "doc-quispe", "2024-03-04", "07:30", "10:15"),
            ("enc-4", "demo-ana", "doc-quispe", "2024-03-06", "12:00", None),
            ("enc-5", "demo-mateo", "doc-paz", "2024-05-20", "16:00", "16:20"),
        ],
    )
    await db.execute(
        """INSERT INTO consultation (id, service_event_id, reason, general_observations, service_type, service_subtype)
        VALUES (?, ?, ?, ?, ?, ?)""",
        ("cons-1", "enc-1", "Persistent abdominal pain", "Tenderness in right lower quadrant",
         "General Consultation", "Follow-up"),
    )
    await db.execute(
        """INSERT INTO morbidity (id, description, identification_date, type, severity_level, contagious, classification_code)
        VALUES (?, ?, ?, ?, ?, ?, ?)""",
        ("mor-1", "Acute appendicitis", "2024-01-10", "Acute", "High", 0, "K35.8"),
    )
    await db.execute(
        "INSERT INTO diagnosis (id, service_event_id, morbidity_id, detail) VALUES (?, ?, ?, ?)",
        ("dx-1", "enc-1", "mor-1", "Suspected appendicitis, surgical referral"),
    )
    await db.execute(
        """INSERT INTO symptom (id, diagnosis_id, name, first_manifestation_date, description, severity, current_state)
        VALUES (?, ?, ?, ?, ?, ?, ?)""",
        ("sym-1", "dx-1", "Abdominal pain", "2024-01-08", "Periumbilical, migrating", 7, "Worsening"),
    )
    await db.execute(
        """INSERT INTO treatment (id, service_event_id, reason, duration_quantity, duration_unit, notes)
        VALUES (?, ?, ?, ?, ?, ?)""",
        ("tx-1", "enc-1", "Pain control before surgery", 2, "days", "Avoid NSAIDs"),
    )
    await db.execute(
        """INSERT INTO medication (id, commercial_name, administration_route, concentration, manufacturer)
        VALUES (?, ?, ?, ?, ?)""",
        ("med-1", "Paracetamol", "Oral", "500 mg", "Genfar"),
    )
    await db.execute(
        """INSERT INTO treatment_medication (treatment_id, medication_id, reason_for_use, dose_quantity, frequency)
        VALUES (?, ?, ?, ?, ?)""",
        ("tx-1", "med-1", "Analgesia", "1 tablet", "Every 8 hours"),
    )
    await db.execute(
        """INSERT INTO lab_exam (id, service_event_id, procedure_description, description, procedure_type, lab_type, result, performed_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        ("lab-1", "enc-2", "Complete blood count", "Fasting sample", "Blood draw", "Hematology",
         "Leukocytosis 14,500/uL", "2024-01-10T09:00:00"),
    )
    await db.execute(
        """INSERT INTO surgical_intervention (id, service_event_id, procedure_name, anesthesia_type, observations)
        VALUES (?, ?, ?, ?, ?)""",
        ("sur-1", "enc-3", "Laparoscopic appendectomy", "General", "No complications"),
    )
    await db.execute(
        """INSERT INTO hospital_admission (id, service_event_id, reason, ward, room, bed)
        VALUES (?, ?, ?, ?, ?, ?)""",
        ("adm-1", "enc-3", "Scheduled appendectomy", "Surgery", "204", "B"),
    )
    await db.execute(
        """INSERT INTO vitals_check (id, service_event_id, heart_rate, systolic, diastolic, oxygen_saturation, patient_state, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        ("vit-1", "enc-4", 78, 118, 76, 98, "Stable", "Afebrile"),
    )
    await db.execute(
        """INSERT INTO hospital_discharge (id, service_event_id, discharge_condition, instructions, follow_up)
        VALUES (?, ?, ?, ?, ?)""",
        ("dis-1", "enc-4", "Improved", "Light diet for one week", "Surgical control in 10 days"),
    )
    await db.execute(
        """INSERT INTO therapy (id, service_event_id, description, observations, results)
        VALUES (?, ?, ?, ?, ?)""",
        ("ther-1", "enc-5", "Respiratory physiotherapy", "Good tolerance", "Improved air entry"),
    )
    await db.commit()
    logger.info("Seeded demo clinical records")
