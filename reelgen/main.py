import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from . import metrics
from .config import init_settings
from .pipeline import PipelineOrchestrator, pipeline_router

settings = init_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Worker starting up...")
    metrics.set_gauge("start_time", time.time())
    app.state.orchestrator = PipelineOrchestrator(settings)
    yield
    logger.info("Worker shutting down...")
    await app.state.orchestrator.aclose()


app = FastAPI(lifespan=lifespan)
app.include_router(pipeline_router)


@app.get("/health")
def health_check():
    """Verify the worker is running and which backends are configured."""
    return {
        "status": "ok",
        "gemini_api_key_set": settings.has_gemini,
        "tts_api_key_set": settings.has_tts,
        "runway_api_key_set": settings.has_runway,
        "storage_configured": settings.has_storage,
        "missing": settings.missing(),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all worker metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("reelgen.main:app", host="0.0.0.0", port=port)
