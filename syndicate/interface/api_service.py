from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from syndicate.governance.thesis import ThesisProposal, evaluate_thesis
from syndicate.shared.config.settings import Settings
from syndicate.shared.execution.errors import (
    ConfigurationError,
    LegStillPendingError,
    ResumeInProgressError,
    SyndicateError,
)
from syndicate.shared.system.logging import Logger
from syndicate.shared.system.startup import SyndicateServices


# --- Pydantic Models ---
class DepositRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount_lamports: int = Field(Settings.DEFAULT_DEPOSIT_LAMPORTS, alias="amountLamports", gt=0)


class ThesisRequest(BaseModel):
    token: str
    direction: str = "long"
    timeframe: str = "3d"
    conviction: str = "medium"
    reasoning: str = ""


# --- Error Mapping ---
async def syndicate_error_handler(request: Request, exc: SyndicateError) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        status = 500
    elif isinstance(exc, (ResumeInProgressError, LegStillPendingError)):
        # Retryable conflict on a pending entry, not an upstream failure
        status = 409
    else:
        status = 502
    Logger.error(f"[API] {request.method} {request.url.path} -> {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": {"type": type(exc).__name__, "message": str(exc)}},
    )


def build_router(services: SyndicateServices) -> APIRouter:
    router = APIRouter(prefix="/api/syndicate")
    ledger = services.ledger

    @router.get("/status")
    async def status():
        doc = ledger.load()
        return {
            "syndicate": doc.syndicate,
            "treasury": doc.treasury.to_dict(),
            "memberCount": len(doc.members),
            "thesesCount": len(doc.theses),
            "tradeCount": len(doc.trades),
            "pendingCount": len(doc.pending_conversions),
        }

    @router.get("/leaderboard")
    async def leaderboard():
        return {"leaderboard": [m.to_dict() for m in ledger.get_leaderboard()]}

    @router.get("/members")
    async def members():
        return {"members": [m.to_dict() for m in ledger.load().members]}

    @router.get("/theses")
    async def theses():
        return {"theses": [t.to_dict() for t in ledger.load().theses]}

    @router.get("/trades")
    async def trades():
        return {"trades": [t.to_dict() for t in ledger.load().trades]}

    @router.get("/pending")
    async def pending():
        return {"pending": [p.to_dict() for p in ledger.load().pending_conversions]}

    @router.post("/deposit-piggy")
    async def deposit_piggy(body: Optional[DepositRequest] = None):
        amount = body.amount_lamports if body else Settings.DEFAULT_DEPOSIT_LAMPORTS
        result = await services.require_orchestrator().deposit_to_target(amount)
        # Partial results still report success=false but keep the leg-1 trade
        return result.to_dict()

    @router.post("/pending/{pending_id}/resume")
    async def resume(pending_id: str):
        orchestrator = services.require_orchestrator()
        if ledger.get_pending(pending_id) is None:
            raise HTTPException(status_code=404, detail=f"No pending conversion {pending_id}")
        try:
            result = await orchestrator.resume_pending(pending_id)
        except KeyError:
            # Resolved by another caller after the lookup above
            raise HTTPException(status_code=404, detail=f"No pending conversion {pending_id}")
        return result.to_dict()

    @router.post("/theses/evaluate")
    async def evaluate(body: ThesisRequest):
        proposal = ThesisProposal(**body.model_dump())
        return evaluate_thesis(proposal).to_dict()

    return router


def create_app(services: SyndicateServices) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Logger.info(f"[API] {Settings.SYNDICATE_NAME} API online")
        yield
        await services.aclose()
        Logger.info("[API] Shutting down")

    app = FastAPI(
        title="Agent Syndicate API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SyndicateError, syndicate_error_handler)
    app.include_router(build_router(services))

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.state.services = services
    return app
