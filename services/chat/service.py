"""Chat service: per-session serialization in front of the interpreter."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple
from services.chat.engine.interpreter import FlowInterpreter
from services.chat.events import EventSink
from shared.constants import DEFAULT_PAGE_SIZE
from shared.exceptions import FlowNotFoundError
from shared.types import ChatMessage, ExecutionContext, Pagination
from shared.utils import total_pages


class ChatService:
    """Owns one asyncio.Lock per session id so a session never advances twice at once"""

    def __init__(self, interpreter: FlowInterpreter):
        self.interpreter = interpreter
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _release(self, context: ExecutionContext) -> None:
        if context.is_terminal:
            self._locks.pop(context.session_id, None)

    async def start(
        self,
        flow_id: str,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        sink: Optional[EventSink] = None
    ) -> ExecutionContext:
        flow = await self.interpreter.flows.find_by_id(flow_id)
        if flow is None:
            raise FlowNotFoundError(f"Flow with ID {flow_id} not found", flow_id=flow_id)
        return await self.interpreter.start_session(flow, user_id, metadata, sink)

    async def send_message(self, session_id: str, message: str, sink: Optional[EventSink] = None) -> ExecutionContext:
        async with self._lock(session_id):
            context = await self.interpreter.get_session(session_id)
            try:
                return await self.interpreter.process_user_input(context, message, sink)
            finally:
                self._release(context)

    async def reset(self, session_id: str, sink: Optional[EventSink] = None) -> ExecutionContext:
        async with self._lock(session_id):
            context = await self.interpreter.reset_session(session_id, sink)
        self._locks.pop(session_id, None)
        return context

    async def get(self, session_id: str) -> ExecutionContext:
        return await self.interpreter.get_session(session_id)

    async def get_messages(self, session_id: str) -> List[ChatMessage]:
        context = await self.interpreter.get_session(session_id)
        return context.messages

    async def list_flow_sessions(
        self,
        flow_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        sessions, total = await self.interpreter.sessions.list_by_flow(flow_id, page, limit)
        return self._summaries(sessions), self._pagination(page, limit, total)

    async def list_user_sessions(
        self,
        user_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        sessions, total = await self.interpreter.sessions.list_by_user(user_id, page, limit)
        return self._summaries(sessions), self._pagination(page, limit, total)

    @staticmethod
    def _summaries(sessions: List[ExecutionContext]) -> List[Dict[str, Any]]:
        # Transcripts are left out of list views
        return [s.to_wire(exclude={"messages"}) for s in sessions]

    @staticmethod
    def _pagination(page: int, limit: int, total: int) -> Pagination:
        return Pagination(page=page, limit=limit, total=total, total_pages=total_pages(total, limit))
