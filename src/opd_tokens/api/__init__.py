from contextlib import asynccontextmanager
import argparse
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
import uvicorn
from rich.console import Console

from opd_tokens.api.endpoints import (
    allocate_token_core,
    cancel_token_core,
    create_doctor_core,
    create_slot_core,
    get_doctor_schedule_core,
    list_doctors_core,
)
from opd_tokens.api.helpers import error_response
from opd_tokens.config import settings
from opd_tokens.db import TokenSource, get_session, init_db, utcnow
from opd_tokens.errors import TokenEngineError
from opd_tokens.schemas import (
    AllocationResponse,
    CancellationResponse,
    DoctorCreateRequest,
    DoctorResponse,
    DoctorScheduleResponse,
    EmergencyTokenRequest,
    SimulationResponse,
    SlotCreateRequest,
    SlotResponse,
    TokenCreateRequest,
    TokenResponse,
)
from opd_tokens.simulation import simulate_day

console = Console()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and make sure the schema exists."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.auto_create_schema:
        try:
            await init_db()
        except Exception as e:
            # Surface through /health instead of refusing to start
            console.print(f"[yellow]Warning: Could not initialize schema: {e}[/yellow]")
    console.print("[green]OPD token API ready[/green]")
    yield


api = FastAPI(
    title="OPD Tokens - Slot Allocation API",
    description="Priority-aware token allocation for doctors' OPD slots",
    version="0.1.0",
    lifespan=lifespan,
)

api.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@api.exception_handler(TokenEngineError)
async def engine_error_handler(request: Request, exc: TokenEngineError) -> JSONResponse:
    if exc.retryable:
        logger.warning(
            "Retryable failure on %s %s: %s", request.method, request.url.path, exc
        )
    return error_response(exc)


@api.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """Storage failures are retryable; they never mean the request was refused."""
    if isinstance(exc, OperationalError) or exc.connection_invalidated:
        logger.warning(
            "Database unavailable during %s %s: %s", request.method, request.url.path, exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Storage temporarily unavailable; retry later"},
            headers={"Retry-After": str(settings.lock_retry_after_seconds)},
        )
    logger.error(
        "Database error during %s %s: %s", request.method, request.url.path, exc
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# =============================================================================
# Health
# =============================================================================


@api.get("/health")
async def health():
    """Health check endpoint."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "timestamp": utcnow().isoformat(),
    }


# =============================================================================
# Doctor & Slot Endpoints
# =============================================================================


@api.post("/api/doctors", response_model=DoctorResponse, status_code=201)
async def create_doctor(payload: DoctorCreateRequest):
    """Register a doctor."""
    async with get_session() as session:
        return await create_doctor_core(session, payload)


@api.get("/api/doctors", response_model=list[DoctorResponse])
async def list_doctors():
    async with get_session() as session:
        return await list_doctors_core(session)


@api.post(
    "/api/doctors/{doctor_id}/slots", response_model=SlotResponse, status_code=201
)
async def create_slot(doctor_id: str, payload: SlotCreateRequest):
    """Add a slot to a doctor's day."""
    async with get_session() as session:
        return await create_slot_core(session, doctor_id=doctor_id, payload=payload)


@api.get("/api/doctors/{doctor_id}/slots", response_model=DoctorScheduleResponse)
async def get_doctor_slots(doctor_id: str):
    """A doctor's slots in start-time order, each with its tokens."""
    async with get_session() as session:
        return await get_doctor_schedule_core(session, doctor_id=doctor_id)


# =============================================================================
# Token Endpoints
# =============================================================================


@api.post("/api/tokens", response_model=AllocationResponse, status_code=201)
async def create_token(payload: TokenCreateRequest):
    """
    Book a token into a slot.

    A full slot admits the token only by bumping a strictly lower priority
    token to the doctor's next slot with room.
    """
    async with get_session() as session:
        return await allocate_token_core(
            session,
            doctor_id=payload.doctor_id,
            slot_id=payload.slot_id,
            source=payload.source,
        )


@api.post("/api/tokens/emergency", response_model=AllocationResponse, status_code=201)
async def create_emergency_token(payload: EmergencyTokenRequest):
    """Book an emergency token. Always admitted, never counted against capacity."""
    async with get_session() as session:
        return await allocate_token_core(
            session,
            doctor_id=payload.doctor_id,
            slot_id=payload.slot_id,
            source=TokenSource.EMERGENCY,
        )


@api.patch("/api/tokens/{token_id}/cancel", response_model=CancellationResponse)
async def cancel_token(token_id: str):
    """Cancel a token and pull the best waiting token into the freed place."""
    async with get_session() as session:
        return await cancel_token_core(session, token_id=token_id)


# =============================================================================
# Simulation
# =============================================================================


@api.post("/api/simulate/day", response_model=SimulationResponse)
async def simulate():
    """Wipe all data and replay the demo day. For demos only."""
    async with get_session() as session:
        snapshot = await simulate_day(session)
        return SimulationResponse(
            doctors=[DoctorResponse.model_validate(d) for d in snapshot.doctors],
            slots=[SlotResponse.model_validate(s) for s in snapshot.slots],
            tokens=[TokenResponse.model_validate(t) for t in snapshot.tokens],
        )


def run_server(
    host: str | None = None,
    port: int | None = None,
    reload: bool = False,
):
    """Start the API server.

    Args:
        host: Override API host
        port: Override API port
        reload: Restart on code changes (development only)
    """
    uvicorn.run(
        "opd_tokens.api:api",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="OPD token API server")
    parser.add_argument("--host", type=str, help="API host")
    parser.add_argument("--port", type=int, help="API port")
    parser.add_argument("--reload", action="store_true", help="Auto-reload on changes")

    args = parser.parse_args()
    run_server(host=args.host, port=args.port, reload=args.reload)
