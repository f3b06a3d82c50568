"""Chat session API routes and the /ws/chat socket."""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from services.api.dependencies import get_chat_service, get_optional_user_id, get_user_id
from services.api.domain.models import (
    ChatMessagePayload,
    ChatResetPayload,
    ChatStartPayload,
    SendMessageRequest,
    SessionListResponse,
    SocketFrame,
    StartSessionRequest,
)
from services.chat.events import ChatEvent, EventSink
from services.chat.service import ChatService
from shared.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from shared.exceptions import ChatbotError, NodeExecutionError
from shared.types import ChatMessage, ExecutionContext


router = APIRouter(prefix="/chat")
ws_router = APIRouter()


@router.post("/sessions", response_model=ExecutionContext, status_code=status.HTTP_201_CREATED)
async def start_session(
    request: StartSessionRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    chat: ChatService = Depends(get_chat_service)
):
    return await chat.start(request.flow_id, user_id, request.metadata)


@router.get("/sessions", response_model=SessionListResponse)
async def list_user_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user_id: str = Depends(get_user_id),
    chat: ChatService = Depends(get_chat_service)
):
    sessions, pagination = await chat.list_user_sessions(user_id, page, limit)
    return SessionListResponse(sessions=sessions, pagination=pagination)


@router.get("/sessions/{session_id}", response_model=ExecutionContext)
async def get_session(session_id: str, chat: ChatService = Depends(get_chat_service)):
    return await chat.get(session_id)


@router.get("/sessions/{session_id}/messages", response_model=List[ChatMessage])
async def get_session_messages(session_id: str, chat: ChatService = Depends(get_chat_service)):
    return await chat.get_messages(session_id)


@router.post("/sessions/{session_id}/messages", response_model=ExecutionContext)
async def send_message(
    session_id: str,
    request: SendMessageRequest,
    chat: ChatService = Depends(get_chat_service)
):
    return await chat.send_message(session_id, request.message)


@router.post("/sessions/{session_id}/reset", response_model=ExecutionContext)
async def reset_session(session_id: str, chat: ChatService = Depends(get_chat_service)):
    return await chat.reset(session_id)


class WebSocketSink(EventSink):
    """Relays interpreter events to the socket as chat:<type> frames"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def emit(self, event: ChatEvent) -> None:
        await self.websocket.send_json(SocketFrame(
            event=f"chat:{event.type.value}",
            data={"sessionId": event.session_id, **event.payload}
        ).to_wire())


@ws_router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, chat: ChatService = Depends(get_chat_service)):
    """
    Receives:
    - {"event": "chat:start", "data": {"flowId": "...", "metadata": {...}}}
    - {"event": "chat:message", "data": {"sessionId": "...", "message": "..."}}
    - {"event": "chat:reset", "data": {"sessionId": "..."}}

    Sends the interpreter's events as they happen, e.g. chat:bot_message.
    """
    await websocket.accept()
    user_id = websocket.headers.get("X-User-ID")
    sink = WebSocketSink(websocket)

    logging.info("WebSocket connected", extra={"user_id": user_id})
    await websocket.send_json(SocketFrame(event="chat:connected", data={"message": "Connected to chat server"}).to_wire())

    try:
        while True:
            message = await websocket.receive_json()
            try:
                frame = SocketFrame.model_validate(message)
                if frame.event == "chat:start":
                    payload = ChatStartPayload.model_validate(frame.data)
                    await chat.start(payload.flow_id, user_id, payload.metadata, sink)
                elif frame.event == "chat:message":
                    payload = ChatMessagePayload.model_validate(frame.data)
                    await chat.send_message(payload.session_id, payload.message, sink)
                elif frame.event == "chat:reset":
                    payload = ChatResetPayload.model_validate(frame.data)
                    await chat.reset(payload.session_id, sink)
                else:
                    await _send_error(websocket, f"Unknown event: {frame.event}")
            except NodeExecutionError:
                # The interpreter already emitted chat:error and chat:session_ended
                continue
            except (ChatbotError, ValidationError) as e:
                logging.warning("WebSocket event rejected", extra={"error": str(e)})
                await _send_error(websocket, getattr(e, "message", str(e)))

    except WebSocketDisconnect:
        logging.info("WebSocket disconnected", extra={"user_id": user_id})


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json(SocketFrame(event="chat:error", data={"message": message}).to_wire())
