"""Tests for database initialization and operations."""

import logging

from medtimeline.database import (
    HISTORY_STATUSES,
    PostgresAdapter,
    _seed_demo_data,
    _sqlite_path_from_url,
    init_db,
)


async def test_init_creates_tables(db):
    """Test that init_db creates the clinical tables."""
    rows = await db.fetch_all(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    )
    tables = [row[0] for row in rows]
    for table in [
        "person",
        "medical_profile",
        "medical_history",
        "history_status",
        "service_event",
        "consultation",
        "diagnosis",
        "symptom",
        "treatment",
        "treatment_medication",
        "lab_exam",
        "therapy",
        "surgical_intervention",
        "vitals_check",
        "hospital_admission",
        "hospital_discharge",
    ]:
        assert table in tables


async def test_history_statuses_seeded(db):
    """Test that the status lookup table is populated."""
    rows = await db.fetch_all("SELECT id, label FROM history_status ORDER BY id")
    assert [(row["id"], row["label"]) for row in rows] == HISTORY_STATUSES


async def test_init_is_idempotent(db):
    """Test that running init_db again does not duplicate lookup rows."""
    await init_db()
    rows = await db.fetch_all("SELECT id FROM history_status")
    assert len(rows) == len(HISTORY_STATUSES)


async def test_init_logs_engine(db, caplog):
    """Test that schema initialization reports the backing engine."""
    caplog.set_level(logging.INFO, logger="medtimeline.database")
    await init_db()
    assert db.engine == "sqlite"
    assert "Initialized sqlite schema" in caplog.text


async def test_no_demo_data_by_default_in_tests(db):
    """Test that the test database starts empty."""
    row = await db.fetch_one("SELECT COUNT(*) AS n FROM person")
    assert row["n"] == 0


async def test_demo_seed(db):
    """Test that demo seeding creates patients, histories and encounters once."""
    await _seed_demo_data(db)
    await _seed_demo_data(db)

    people = await db.fetch_all("SELECT id FROM person ORDER BY id")
    assert [row["id"] for row in people] == ["demo-ana", "demo-mateo"]

    histories = await db.fetch_all("SELECT id, profile_id FROM medical_history ORDER BY id")
    assert [(row["id"], row["profile_id"]) for row in histories] == [
        ("hist-ana", "demo-ana"),
        ("hist-mateo", "demo-mateo"),
    ]

    row = await db.fetch_one("SELECT COUNT(*) AS n FROM service_event")
    assert row["n"] == 5


async def test_insert_encounter(db):
    """Test inserting an encounter and reading it back."""
    await db.execute("INSERT INTO person (id) VALUES (?)", ("p-1",))
    await db.execute(
        "INSERT INTO service_event (id, patient_id, service_date, start_time) VALUES (?, ?, ?, ?)",
        ("enc-1", "p-1", "2024-01-10", "09:00"),
    )
    await db.commit()

    row = await db.fetch_one("SELECT * FROM service_event WHERE id = ?", ("enc-1",))
    assert row["patient_id"] == "p-1"
    assert row["service_date"] == "2024-01-10"
    assert row["provider_id"] is None


class TestUrlHelpers:
    def test_sqlite_relative_path(self):
        assert _sqlite_path_from_url("sqlite:///medtimeline.db") == "medtimeline.db"

    def test_sqlite_absolute_path(self):
        assert _sqlite_path_from_url("sqlite:////var/data/medtimeline.db") == "/var/data/medtimeline.db"

    def test_sqlite_without_path(self):
        assert _sqlite_path_from_url("sqlite://") == ""

    def test_postgres_placeholder_translation(self):
        query = "SELECT * FROM person WHERE id = ? AND sex = ?"
        assert PostgresAdapter._translate_query(query) == "SELECT * FROM person WHERE id = $1 AND sex = $2"
