"""
Co-pilot Debug Router - traces, metrics and runtime config

Endpoints:
- GET    /api/assistant/debug           Recent turn summaries (newest first)
- GET    /api/assistant/debug/{log_id}  One full trace with agent calls
- DELETE /api/assistant/debug           Drop all traces
- GET    /api/assistant/metrics         Pipeline counters
- POST   /api/assistant/metrics/reset   Zero the counters
- GET    /api/assistant/config          Runtime settings
- PUT    /api/assistant/config          Change settings without restart
- POST   /api/assistant/config/reset    Back to environment defaults
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import get_config
from errors import NotFoundError, error_response, success_response

from .assistant_orchestration import DebugStore, get_debug_store, get_metrics, reset_metrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant", tags=["assistant-debug"])


class ConfigUpdate(BaseModel):
    """Configuration update request. Unset fields are left alone."""

    # LLM gateway
    llm_base_url: Optional[str] = None
    llm_request_timeout: Optional[float] = None
    llm_max_retries: Optional[int] = None
    llm_retry_delay: Optional[float] = None
    # Models
    model_default: Optional[str] = None
    model_pipeline: Optional[str] = None
    model_fast: Optional[str] = None
    # Gates
    min_interval_ms: Optional[int] = None
    debounce_ms: Optional[int] = None
    min_words_for_analysis: Optional[int] = None
    min_words_delta: Optional[int] = None
    deletion_threshold_percent: Optional[float] = None
    deletion_threshold_words: Optional[int] = None
    # Budgets
    timeout_immediate_ms: Optional[int] = None
    timeout_analyst_ms: Optional[int] = None
    timeout_deviation_ms: Optional[int] = None
    timeout_decision_ms: Optional[int] = None
    timeout_composer_ms: Optional[int] = None
    pipeline_timeout_ms: Optional[int] = None
    # Analysis tuning
    min_insight_confidence: Optional[float] = None
    survey_richness_chars: Optional[int] = None
    recent_messages_max: Optional[int] = None
    history_meetings_limit: Optional[int] = None
    # Transport and debug
    max_message_length: Optional[int] = None
    debug_log_max: Optional[int] = None
    debug_enabled: Optional[bool] = None


# =============================================================================
# DEBUG TRACES
# =============================================================================


@router.get("/debug")
async def list_debug_logs(
    limit: int = Query(20),
    store: DebugStore = Depends(get_debug_store),
) -> Dict[str, Any]:
    """Recent turn summaries, newest first. limit is clamped to 1..100."""
    limit = max(1, min(limit, 100))
    logs = [log.summary() for log in store.recent(limit)]
    return success_response(logs=logs, count=len(logs), total=len(store))


@router.get("/debug/{log_id}")
async def get_debug_log(log_id: str, store: DebugStore = Depends(get_debug_store)):
    """Full trace for one turn: input, every agent call and the output."""
    log = store.get(log_id)
    if log is None:
        error = NotFoundError("Debug log not found", resource_type="debug_log", resource_id=log_id)
        return JSONResponse(status_code=404, content=error_response(error, source="assistant_debug"))
    return success_response(log=log.to_dict())


@router.delete("/debug")
async def clear_debug_logs(store: DebugStore = Depends(get_debug_store)) -> Dict[str, Any]:
    cleared = store.clear()
    logger.info(f"Debug logs cleared ({cleared})")
    return success_response(cleared=cleared)


# =============================================================================
# METRICS
# =============================================================================


@router.get("/metrics")
async def pipeline_metrics() -> Dict[str, Any]:
    return success_response(metrics=get_metrics())


@router.post("/metrics/reset")
async def reset_pipeline_metrics() -> Dict[str, Any]:
    reset_metrics()
    return success_response(metrics=get_metrics())


# =============================================================================
# RUNTIME CONFIG
# =============================================================================


@router.get("/config")
async def read_config() -> Dict[str, Any]:
    """Current runtime configuration (credentials excluded)."""
    return success_response(config=get_config().to_dict())


@router.put("/config")
async def update_config(update: ConfigUpdate) -> Dict[str, Any]:
    """
    Update runtime configuration.

    Changes take effect on the next turn without restart. Out-of-range
    values and malformed model names are reported under "ignored".
    """
    updates = {k: v for k, v in update.model_dump().items() if v is not None}
    if not updates:
        return success_response(updated=[], ignored=[], message="No changes")

    # Sanitize string config values
    for k, v in updates.items():
        if isinstance(v, str):
            updates[k] = v.strip()

    result = get_config().update(**updates)
    return success_response(
        updated=result["updated"],
        ignored=result["ignored"],
        update_count=result["update_count"],
    )


@router.post("/config/reset")
async def reset_config() -> Dict[str, Any]:
    """Reset configuration to environment defaults."""
    result = get_config().reset_to_defaults()
    return success_response(changes=result["changes"])
