import os

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory DB and no demo data for tests
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["DATABASE_URL"] = ""
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["CLINICIAN_SCOPE_POLICY"] = "assigned"

from medtimeline.database import close_db, init_db
from medtimeline.main import app


@pytest_asyncio.fixture
async def db():
    """Provide a fresh in-memory database for each test."""
    import medtimeline.database as db_mod

    # Close any existing connection
    if db_mod._db is not None:
        try:
            await db_mod._db.close()
        except Exception:
            pass
    db_mod._db = None

    # Override module-level config directly (avoids fragile importlib.reload)
    db_mod.DATABASE_PATH = ":memory:"
    db_mod.DATABASE_URL = ""
    db_mod.SEED_DEMO_DATA = False

    await init_db()
    database = await db_mod.get_db()
    yield database
    await close_db()


class ClinicalData:
    """Small helper for inserting clinical rows in tests."""

    def __init__(self, db) -> None:
        self.db = db

    async def insert(self, table: str, **values) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        await self.db.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        await self.db.commit()

    async def patient(
        self,
        patient_id: str,
        history_id: str | None = None,
        first_names: str = "Ana",
        first_surname: str = "Torres",
        second_surname: str = "Vega",
        created_at: str = "2023-01-01",
        status_id: int | None = 1,
        with_profile: bool = True,
        **identity,
    ) -> None:
        await self.insert(
            "person",
            id=patient_id,
            first_names=first_names,
            first_surname=first_surname,
            second_surname=second_surname,
            **identity,
        )
        if with_profile:
            await self.insert("medical_profile", id=patient_id, blood_type="O+")
        if history_id:
            await self.insert(
                "medical_history",
                id=history_id,
                profile_id=patient_id,
                created_at=created_at,
                status_id=status_id,
            )

    async def provider(self, provider_id: str, first_names: str, surname: str, specialty: str | None = None) -> None:
        specialty_id = None
        if specialty:
            specialty_id = f"sp-{provider_id}"
            await self.insert("specialty", id=specialty_id, name=specialty)
        await self.insert(
            "provider",
            id=provider_id,
            first_names=first_names,
            surname=surname,
            specialty_id=specialty_id,
        )

    async def encounter(
        self,
        encounter_id: str,
        patient_id: str,
        service_date: str | None,
        start_time: str | None = None,
        provider_id: str | None = None,
        end_time: str | None = None,
    ) -> None:
        await self.insert(
            "service_event",
            id=encounter_id,
            patient_id=patient_id,
            provider_id=provider_id,
            service_date=service_date,
            start_time=start_time,
            end_time=end_time,
        )


@pytest_asyncio.fixture
async def clinical(db):
    return ClinicalData(db)


@pytest_asyncio.fixture
async def async_client(db):
    """Provide an async httpx client for async HTTP tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
