"""API request/response models."""

from typing import Optional, List, Dict, Any
from pydantic import Field
from shared.types import CamelModel, Flow, Pagination


class StartSessionRequest(CamelModel):
    """Request body for starting a chat session"""
    flow_id: str
    metadata: Optional[Dict[str, Any]] = None


class SendMessageRequest(CamelModel):
    message: str


class FlowListResponse(CamelModel):
    flows: List[Flow]
    pagination: Pagination


class SessionListResponse(CamelModel):
    sessions: List[Dict[str, Any]]
    pagination: Pagination


class ChatStartPayload(CamelModel):
    flow_id: str
    metadata: Optional[Dict[str, Any]] = None


class ChatMessagePayload(CamelModel):
    session_id: str
    message: str


class ChatResetPayload(CamelModel):
    session_id: str


class SocketFrame(CamelModel):
    """Envelope for /ws/chat traffic in both directions"""
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)
