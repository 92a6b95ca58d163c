"""HTTP entry point for the Clinic Pulse dashboard.

Serves the data endpoints and the agent endpoints under ``/api``::

    uvicorn clinic_pulse.server:app --reload --host 0.0.0.0 --port 3001
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from clinic_pulse.api.agent_routes import router as agent_router
from clinic_pulse.api.routes import router
from clinic_pulse.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from clinic_pulse.database import init_db
from clinic_pulse.services.audit import audit_logger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create missing tables, then the run registry and the audit logger."""
    init_db()
    # "<date>:<provider_id|all>" -> ScoringProgress
    application.state.scoring_progress = {}
    application.state.audit_logger = audit_logger
    logger.info("Clinic Pulse API ready.")
    yield


app = FastAPI(
    title="Clinic Pulse",
    description=(
        "Scheduling dashboard API: appointments, no-show risk, waitlist, "
        "outreach campaigns and daily briefings."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# The dashboard runs on its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Tag the request with an id and send it back as ``X-Request-ID``.

    Route logs and audit rows for agent calls carry the same id.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# /risk-assessments/progress must be matched before /risk-assessments/{appointment_id}
app.include_router(agent_router, prefix="/api")
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {
        "service": "Clinic Pulse",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Clinic Pulse API listening on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "clinic_pulse.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
