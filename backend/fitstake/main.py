from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fitstake.config import settings
from fitstake.errors import BusinessRuleRejected, Conflict, FitstakeError, LedgerIntegrityError
from fitstake.logging_setup import configure_logging
from fitstake.routes.system import router as system_router
from fitstake.routes.wallet import router as wallet_router
from fitstake.routes.stripe_webhooks import router as stripe_router
from fitstake.routes.challenges import router as challenges_router
from fitstake.routes.submissions import router as submissions_router
from fitstake.routes.settlement import router as settlement_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for paid fitness challenges and prize payouts"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(wallet_router)
app.include_router(stripe_router)
app.include_router(challenges_router)
app.include_router(submissions_router)
app.include_router(settlement_router)

@app.exception_handler(FitstakeError)
async def fitstake_error_handler(request: Request, exc: FitstakeError):
    fields = {"error": exc.code, "detail": exc.detail, "path": request.url.path}
    if isinstance(exc, LedgerIntegrityError):
        log.critical("ledger_integrity_error", **fields)
    elif isinstance(exc, Conflict):
        # retries and races land here; the caller's desired state already holds
        log.info("request_conflict", **fields)
    elif isinstance(exc, BusinessRuleRejected):
        log.warning("request_rejected", **fields)
    else:
        log.info("request_failed", **fields)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.detail})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    try:
        response: Response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers["X-Request-ID"] = rid
    return response
