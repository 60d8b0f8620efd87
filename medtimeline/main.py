import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from medtimeline.database import close_db, init_db
from medtimeline.routers import records

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Medical Timeline...")
    await init_db()
    logger.info("Database initialized")
    yield
    await close_db()
    logger.info("Medical Timeline shut down")


app = FastAPI(
    title="Medical Timeline",
    description="Role-scoped, chronologically ordered patient medical records",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(records.router)
