"""
Meeting Co-pilot - real-time assistant for one-on-one meetings
FastAPI Backend with a multi-agent LLM pipeline
"""

from contextlib import asynccontextmanager
import asyncio
import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import assistant, assistant_debug
from routers.assistant_orchestration import get_orchestrator
from logging_config import setup_logging
from services.llm_client import get_text_client
from config import runtime_config

setup_logging()
logger = logging.getLogger(__name__)

# Instance ID - changes on every startup, used by the frontend to detect restarts
INSTANCE_ID = str(uuid.uuid4())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    logger.info(f"Meeting co-pilot starting ({runtime_config.app_env})")
    logger.info(f"LLM gateway: {runtime_config.llm_base_url} (pipeline model {runtime_config.model_pipeline})")

    # Probe the gateway in the background; the pipeline degrades to silence while it is down
    async def _probe_llm():
        loop = asyncio.get_running_loop()
        healthy = await loop.run_in_executor(None, get_text_client().is_healthy)
        if healthy:
            logger.info("LLM gateway reachable")
        else:
            logger.warning("LLM gateway unreachable; co-pilot will stay silent until it recovers")

    probe_task = asyncio.create_task(_probe_llm())

    yield

    # Shutdown
    if not probe_task.done():
        probe_task.cancel()
    get_orchestrator().shutdown()
    logger.info("Meeting co-pilot signing off")


app = FastAPI(
    title="Meeting Co-pilot",
    description="Real-time hints for managers during one-on-one meetings",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - restrict to localhost and private network IPs on port 3000
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+|[a-zA-Z][a-zA-Z0-9\-]*):3000$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Assistant router is mounted WITHOUT /api prefix so the WebSocket is at /ws/assistant
app.include_router(assistant.router)
# Debug router (already has /api/assistant prefix)
app.include_router(assistant_debug.router)


@app.get("/health")
async def health():
    """Health check - pings the LLM gateway."""
    loop = asyncio.get_running_loop()
    try:
        llm_ok = await loop.run_in_executor(None, get_text_client().is_healthy)
    except Exception:
        llm_ok = False

    orchestrator = get_orchestrator()
    return {
        "status": "healthy" if llm_ok else "degraded",
        "service": "meeting-copilot",
        "checks": {"llm": "ok" if llm_ok else "down"},
        "sessions": len(orchestrator.store),
        "debug_enabled": runtime_config.debug_enabled,
    }


@app.get("/api/instance")
async def get_instance():
    """Return instance ID - changes on each startup."""
    return {"instance_id": INSTANCE_ID}
