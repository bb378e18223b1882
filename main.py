import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from dal.record_store import RecordStore
from routes.csv_route import router as csv_router
from routes.record_route import router as record_router
from services.attachment_pipeline import AttachmentPipeline
from services.record_repository import RecordRepository
from utils.database_init import AsyncDatabaseInitializer

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the survey record store (DATABASE_DIR/survey.db, created or upgraded in place)
      - the repository and attachment pipeline built on it
    and attach them to `app.state`.
    """
    db_initializer = AsyncDatabaseInitializer()
    store = RecordStore(db_initializer)
    await store.open()

    app.state.db_initializer = db_initializer
    app.state.record_store = store
    app.state.repository = RecordRepository(store)
    app.state.attachment_pipeline = AttachmentPipeline()

    try:
        yield
    finally:
        await store.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports whether the record store is open.
        """
        store = getattr(request.app.state, "record_store", None)
        db_initializer = getattr(request.app.state, "db_initializer", None)
        return {
            "ok": True,
            "store_open": bool(store is not None and store.is_open),
            "schema_version": getattr(db_initializer, "schema_version", None),
        }

    # Register application routers
    app.include_router(record_router)
    app.include_router(csv_router)

    return app


app = create_app()
