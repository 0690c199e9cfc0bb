from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app import database
from app.core.logging import configure_logging
from app import models  # noqa: F401
from app.routers.aggregation import router as aggregation_router
from app.routers.auth import router as auth_router
from app.routers.rates import router as rates_router
from app.services.ledger_immutability import install_snapshot_immutability

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    database.configure_database()
    install_snapshot_immutability(database.engine)
    logger.info("Service started", extra={"database_dialect": database.engine.dialect.name})
    yield


app = FastAPI(
    title="Shop-floor Billing Aggregation",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(aggregation_router)
app.include_router(rates_router)


@app.get("/")
def root():
    return {"status": "Shop-floor Billing Aggregation running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
