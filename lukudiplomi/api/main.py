"""
lukudiplomi.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn lukudiplomi.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from lukudiplomi.api.deps import get_engine  # noqa: E402
from lukudiplomi.api.routes.admin import router as admin_router  # noqa: E402
from lukudiplomi.api.routes.game import router as game_router  # noqa: E402
from lukudiplomi.api.routes.students import router as students_router  # noqa: E402
from lukudiplomi.api.routes.teachers import router as teachers_router  # noqa: E402
from lukudiplomi.database.engine import init_db  # noqa: E402
from lukudiplomi.errors import NotFound, ValidationError  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and seed achievements."""
    engine = get_engine()
    init_db(engine)
    logger.info("Lukudiplomi API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Lukudiplomi API shutting down")


app = FastAPI(
    title="Lukudiplomi Game API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def _invalid(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


app.include_router(game_router, prefix="/api")
app.include_router(students_router, prefix="/api")
app.include_router(teachers_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
