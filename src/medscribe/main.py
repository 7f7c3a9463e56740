import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.medscribe.api.v1.routes_ai import router as ai_router_v1
from src.medscribe.api.v1.routes_system import router as system_router_v1
from src.medscribe.api.v1.routes_sessions import router as sessions_router_v1
from src.medscribe.api.v1.routes_transcription import router as transcription_router_v1
from src.medscribe.config import settings
from src.medscribe.infra.db.bootstrap import init_sql_repositories
from src.medscribe.services.transcription.coordinator import transcription_coordinator
from src.medscribe.services.transcription.reaper import IdleSessionReaper

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Medical Consultation Scribe API")

idle_session_reaper = IdleSessionReaper(transcription_coordinator)


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    Switches to the SQL session store when USE_SQL_REPOS and DATABASE_URL are
    configured (otherwise the in-memory store stays active) and starts the
    idle transcription reaper.
    """

    init_sql_repositories()
    idle_session_reaper.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await idle_session_reaper.shutdown()


# Browser clients (the consultation web app) call the API cross-origin.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# v1 routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(sessions_router_v1, prefix="/api/v1")
app.include_router(transcription_router_v1, prefix="/api/v1")
app.include_router(ai_router_v1, prefix="/api/v1")
