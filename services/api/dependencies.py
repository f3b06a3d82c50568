"""Service wiring for the API; storage backend picked by CHAT_STORAGE."""

import os
from functools import lru_cache
from typing import Optional
from fastapi import Header
from services.chat.engine.interpreter import FlowInterpreter
from services.chat.infra.session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from services.chat.service import ChatService
from services.flows.infra.flow_store import FlowRepository, InMemoryFlowRepository, RedisFlowRepository
from services.flows.service import FlowService
from shared.exceptions import FlowAccessDeniedError


def _use_memory() -> bool:
    return os.getenv("CHAT_STORAGE", "redis").lower() == "memory"


@lru_cache
def get_flow_repository() -> FlowRepository:
    return InMemoryFlowRepository() if _use_memory() else RedisFlowRepository()


@lru_cache
def get_session_store() -> SessionStore:
    return InMemorySessionStore() if _use_memory() else RedisSessionStore()


@lru_cache
def get_flow_service() -> FlowService:
    return FlowService(get_flow_repository())


@lru_cache
def get_chat_service() -> ChatService:
    return ChatService(FlowInterpreter(get_flow_repository(), get_session_store()))


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Authenticated user id, forwarded by the gateway in front of this service"""
    if not x_user_id:
        raise FlowAccessDeniedError("Missing X-User-ID header")
    return x_user_id


def get_optional_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id or None
