from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from backend.app.logging_config import setup_logging
from backend.app.addons.api.router import router as addons_router

logger = logging.getLogger("curator.core")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_dir = setup_logging()
    logger.info("Curator backend starting (logs in %s)", log_dir)
    yield
    logger.info("Curator backend shutting down")


app = FastAPI(
    title="Curator",
    response_model_by_alias=False,
    lifespan=lifespan,
)

app.include_router(addons_router)
logger.info("Mounted addon routers")


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": "Curator"}
