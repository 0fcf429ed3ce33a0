"""FastAPI application entry point."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from landrecord.api import chain, records
from landrecord.config import ALLOWED_ORIGINS, RECORDS_DIR

logger = logging.getLogger(__name__)

TMP_TTL_SECONDS = 60 * 60  # 1 hour


def _cleanup_stale_temp_files():
    """Delete temp files left behind by interrupted record writes."""
    now = time.time()
    cleaned = 0
    for f in RECORDS_DIR.glob("rec_*.tmp"):
        try:
            if now - f.stat().st_mtime > TMP_TTL_SECONDS:
                f.unlink(missing_ok=True)
                cleaned += 1
        except OSError:
            logger.warning(f"Startup cleanup: could not remove {f.name}")
    if cleaned:
        logger.info(f"Startup cleanup: removed {cleaned} stale temp file(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: cleanup interrupted writes on startup."""
    _cleanup_stale_temp_files()
    yield


app = FastAPI(
    title="Land Record Chain Resolver",
    description="Nondh validity chain and area distribution for 7/12 mutation registers",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chain.router, prefix="/api/chain", tags=["Chain"])
app.include_router(records.router, prefix="/api/records", tags=["Records"])


@app.get("/api/health")
async def health():
    return {"status": "operational", "platform": "Land Record Chain Resolver"}
