"""
Meeting Co-pilot Router - WebSocket Handler

Bridges the meeting UI to the co-pilot session engine. The endpoint only
parses client events and relays outbound items; all pipeline logic lives
in assistant_orchestration/.

Client events:
    {"type": "join", "meetingId": ..., "employeeId": ...}
    {"type": "notes_update", "text": ...}
    {"type": "user_message", "text": ...}
    {"type": "ping"}
    {"type": "leave"}

Server events:
    joined, left, pong, status (thinking/idle), assistant_message,
    action_card, pipeline_log, error
"""

import asyncio
import logging
from typing import List, Optional, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from errors import CopilotError, ErrorCode, ValidationError, error_event

from .assistant_orchestration import (
    EXPLICIT_MESSAGE,
    TEXT_CHANGED,
    AssistantOrchestrator,
    TurnListener,
    get_orchestrator,
    session_key,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["assistant"])


def to_server_event(item: dict) -> dict:
    """Map an outbound item to its wire event."""
    if item["kind"] == "message":
        return {"type": "assistant_message", "text": item["text"], "format": item.get("format", "plain")}
    return {"type": "action_card", "card": item["card"]}


class WebSocketListener(TurnListener):
    """Relays turn lifecycle to one WebSocket connection."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.closed = False

    async def send(self, payload: dict) -> None:
        if self.closed:
            return
        try:
            await self.websocket.send_json(payload)
        except Exception as e:
            # Socket already gone; the receive loop handles the disconnect
            self.closed = True
            logger.debug(f"Assistant send failed: {e}")

    async def turn_started(self, key: str) -> None:
        await self.send({"type": "status", "state": "thinking"})

    async def turn_finished(self, key: str, events: List[dict]) -> None:
        for item in events:
            await self.send(to_server_event(item))
        await self.send({"type": "status", "state": "idle"})

    async def pipeline_log(self, payload: dict) -> None:
        await self.send(payload)


def _required_text(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field}' is required", parameter=field, expected="non-empty string")
    return value.strip()


def _message_text(data: dict, limit: int) -> str:
    text = data.get("text", "")
    if not isinstance(text, str):
        raise ValidationError(
            "'text' must be a string",
            parameter="text",
            expected="string",
            received=type(text).__name__,
            code=ErrorCode.VALIDATION_INVALID_TYPE,
        )
    if len(text) > limit:
        raise ValidationError(
            f"Message too long (max {limit:,} characters)",
            parameter="text",
            expected=f"<= {limit} characters",
            received=f"{len(text)} characters",
            code=ErrorCode.VALIDATION_OUT_OF_RANGE,
        )
    return text


def _not_joined(event_type: str) -> ValidationError:
    return ValidationError(
        "Join a meeting first",
        parameter="type",
        expected="join before other events",
        received=event_type,
        code=ErrorCode.VALIDATION_NOT_JOINED,
    )


@router.websocket("/ws/assistant")
async def assistant_websocket(websocket: WebSocket, orchestrator: AssistantOrchestrator = Depends(get_orchestrator)):
    """WebSocket endpoint for the meeting co-pilot."""
    await websocket.accept()
    listener = WebSocketListener(websocket)
    key: Optional[str] = None
    turns: Set[asyncio.Task] = set()

    logger.info("Assistant connected")

    async def explicit_turn(session: str, text: str) -> None:
        try:
            await orchestrator.handle_input(session, EXPLICIT_MESSAGE, text, listener)
        except CopilotError as e:
            await listener.send(error_event(e))
        except Exception as e:
            logger.error(f"Assistant turn failed: {e}", exc_info=True)

    try:
        while True:
            data = await websocket.receive_json()
            event_type = data.get("type") if isinstance(data, dict) else None

            try:
                if event_type == "ping":
                    await listener.send({"type": "pong"})

                elif event_type == "join":
                    if key is not None:
                        orchestrator.detach(key)
                    key = session_key(_required_text(data, "meetingId"), _required_text(data, "employeeId"))
                    logger.info(f"Assistant joined {key}")
                    await listener.send({"type": "joined", "sessionKey": key})

                elif event_type == "leave":
                    if key is not None:
                        orchestrator.clear_session(key)
                        logger.info(f"Assistant left {key}")
                    key = None
                    await listener.send({"type": "left"})

                elif event_type == "notes_update":
                    if key is None:
                        raise _not_joined(event_type)
                    text = _message_text(data, orchestrator.config.max_message_length)
                    await orchestrator.handle_input(key, TEXT_CHANGED, text, listener)

                elif event_type == "user_message":
                    if key is None:
                        raise _not_joined(event_type)
                    text = _message_text(data, orchestrator.config.max_message_length)
                    if not text.strip():
                        continue
                    task = asyncio.create_task(explicit_turn(key, text))
                    turns.add(task)
                    task.add_done_callback(turns.discard)

                else:
                    raise ValidationError(
                        "Unknown event type",
                        parameter="type",
                        expected="join | notes_update | user_message | ping | leave",
                        received=str(event_type),
                        code=ErrorCode.VALIDATION_INVALID_TYPE,
                    )

            except CopilotError as e:
                logger.warning(f"Assistant event rejected: {e.message}")
                await listener.send(error_event(e))

    except WebSocketDisconnect:
        logger.info(f"Assistant disconnected: {key or 'not joined'}")
    finally:
        listener.closed = True
        if key is not None:
            orchestrator.detach(key)
        for task in list(turns):
            task.cancel()
