"""
CareNav Assistant Router - WebSocket Handler

One WebSocket connection drives one ChatOrchestrator. The client sends
commands, the server pushes the full assistant state after every change.

Client frames:
    {"type": "toggle"}                      open/close the widget
    {"type": "send", "content": "..."}      send a user message
    {"type": "stop"}                        stop the running answer
    {"type": "reset"}                       start a new conversation

Server frames:
    {"type": "state", "messages": [...], "is_open", "is_generating",
     "is_navigating", "is_offline", "hotline", "context_usage"}
    {"type": "error", "code": "...", "content": "..."}
"""

import asyncio
import logging
from typing import Any, Dict, Literal, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from config import runtime_config
from errors import ErrorCode

from .chat_orchestration import ChatOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

# Raw frame cap; message text is cut to max_input_length by the orchestrator
MAX_FRAME_CONTENT = 4000


class ClientFrame(BaseModel):
    type: Literal["toggle", "send", "stop", "reset"]
    content: str = Field(default="", max_length=MAX_FRAME_CONTENT)


def _error_frame(code: ErrorCode, content: str) -> Dict[str, Any]:
    return {"type": "error", "code": code.value, "content": content}


async def _pump(websocket: WebSocket, outbox: "asyncio.Queue[Dict[str, Any]]") -> None:
    """Send queued frames in order."""
    while True:
        frame = await outbox.get()
        await websocket.send_json(frame)


@router.websocket("/ws/assistant")
async def assistant_websocket(websocket: WebSocket):
    """WebSocket endpoint for the embedded assistant."""
    await websocket.accept()

    auth, theme, portal_router = websocket.app.state.portal_factory()
    orchestrator = ChatOrchestrator.create(
        auth,
        theme,
        portal_router,
        config=getattr(websocket.app.state, "config", None) or runtime_config,
        llm_client=websocket.app.state.llm_client,
    )

    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
    unsubscribe = orchestrator.subscribe(lambda state: outbox.put_nowait({"type": "state", **state}))
    sender = asyncio.create_task(_pump(websocket, outbox))
    pending: Set[asyncio.Task] = set()
    send_task: Optional[asyncio.Task] = None

    def spawn(coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        pending.add(task)
        task.add_done_callback(pending.discard)
        return task

    outbox.put_nowait({"type": "state", **orchestrator.state()})
    logger.info("Assistant connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = ClientFrame.model_validate_json(raw)
            except PydanticValidationError as e:
                logger.info(f"Invalid client frame: {e.error_count()} error(s)")
                outbox.put_nowait(_error_frame(ErrorCode.VALIDATION_INVALID_TYPE, "Invalid frame"))
                continue

            if frame.type == "send":
                if not frame.content.strip():
                    outbox.put_nowait(_error_frame(ErrorCode.VALIDATION_MISSING_PARAM, "Empty message"))
                    continue
                # The spawned send marks the orchestrator busy only once it runs
                if orchestrator.is_busy or (send_task is not None and not send_task.done()):
                    outbox.put_nowait(_error_frame(ErrorCode.INTERNAL_STATE_ERROR, "Previous message still in progress"))
                    continue
                send_task = spawn(orchestrator.send_message(frame.content))
            elif frame.type == "toggle":
                spawn(orchestrator.toggle_chat())
            elif frame.type == "stop":
                orchestrator.stop_generation()
            elif frame.type == "reset":
                orchestrator.reset_chat()

    except WebSocketDisconnect:
        logger.info("Assistant disconnected")
    finally:
        unsubscribe()
        for task in list(pending):
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await orchestrator.dispose()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
