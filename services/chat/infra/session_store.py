"""Session Store: persisted Execution Context records with automatic expiry."""

import json
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import redis.asyncio as redis
from shared.constants import SESSION_TTL_SECONDS
from shared.types import ExecutionContext
from shared.utils import utcnow


class SessionStore:
    """Collaborator contract consumed by the interpreter"""

    async def create(self, context: ExecutionContext) -> None:
        raise NotImplementedError

    async def update_by_session_id(self, session_id: str, patch: Dict[str, Any]) -> Optional[ExecutionContext]:
        raise NotImplementedError

    async def find_by_session_id(self, session_id: str) -> Optional[ExecutionContext]:
        raise NotImplementedError

    async def list_by_flow(self, flow_id: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        raise NotImplementedError

    async def list_by_user(self, user_id: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        raise NotImplementedError


def apply_patch(context: ExecutionContext, patch: Dict[str, Any]) -> ExecutionContext:
    """Patch keys are ExecutionContext field names; values are re-validated"""
    data = context.model_dump()
    data.update(patch)
    return ExecutionContext.model_validate(data)


class InMemorySessionStore(SessionStore):
    """Single-process store; records older than the retention window vanish on access"""

    def __init__(self, ttl_seconds: int = SESSION_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._records: Dict[str, ExecutionContext] = {}
        self._created_at: Dict[str, datetime] = {}

    def _purge_expired(self) -> None:
        cutoff = utcnow() - self.ttl
        for session_id in [sid for sid, created in self._created_at.items() if created < cutoff]:
            self._records.pop(session_id, None)
            self._created_at.pop(session_id, None)

    async def create(self, context: ExecutionContext) -> None:
        self._records[context.session_id] = context.model_copy(deep=True)
        self._created_at[context.session_id] = utcnow()

    async def update_by_session_id(self, session_id: str, patch: Dict[str, Any]) -> Optional[ExecutionContext]:
        self._purge_expired()
        current = self._records.get(session_id)
        if current is None:
            return None
        updated = apply_patch(current, patch)
        self._records[session_id] = updated
        return updated.model_copy(deep=True)

    async def find_by_session_id(self, session_id: str) -> Optional[ExecutionContext]:
        self._purge_expired()
        record = self._records.get(session_id)
        return record.model_copy(deep=True) if record else None

    async def list_by_flow(self, flow_id: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        return self._page([c for c in self._records.values() if c.flow_id == flow_id], page, limit)

    async def list_by_user(self, user_id: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        return self._page([c for c in self._records.values() if c.user_id == user_id], page, limit)

    def _page(self, contexts: List[ExecutionContext], page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        self._purge_expired()
        live = [c for c in contexts if c.session_id in self._records]
        live.sort(key=lambda c: c.started_at, reverse=True)
        start = (page - 1) * limit
        return [c.model_copy(deep=True) for c in live[start:start + limit]], len(live)


class RedisSessionStore(SessionStore):
    """Redis-backed store.

    Keys:
        chat:session:{id}             context JSON, TTL fixed at creation
        chat:flow:{flow_id}:sessions  sorted set of session ids by start time
        chat:user:{user_id}:sessions  sorted set of session ids by start time
    """

    def __init__(self, client=None, redis_url: Optional[str] = None, ttl_seconds: int = SESSION_TTL_SECONDS):
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.client = client if client is not None else redis.Redis.from_url(url, decode_responses=False)
        self.ttl = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"chat:session:{session_id}"

    @staticmethod
    def _flow_index(flow_id: str) -> str:
        return f"chat:flow:{flow_id}:sessions"

    @staticmethod
    def _user_index(user_id: str) -> str:
        return f"chat:user:{user_id}:sessions"

    async def create(self, context: ExecutionContext) -> None:
        score = context.started_at.timestamp()
        pipe = self.client.pipeline()
        pipe.set(self._key(context.session_id), context.model_dump_json(by_alias=True), ex=self.ttl)
        pipe.zadd(self._flow_index(context.flow_id), {context.session_id: score})
        if context.user_id:
            pipe.zadd(self._user_index(context.user_id), {context.session_id: score})
        await pipe.execute()

    async def find_by_session_id(self, session_id: str) -> Optional[ExecutionContext]:
        data = await self.client.get(self._key(session_id))
        if not data:
            return None
        return ExecutionContext.model_validate(json.loads(data))

    async def update_by_session_id(self, session_id: str, patch: Dict[str, Any]) -> Optional[ExecutionContext]:
        current = await self.find_by_session_id(session_id)
        if current is None:
            return None
        updated = apply_patch(current, patch)
        # keepttl: expiry counts from creation regardless of later updates
        await self.client.set(self._key(session_id), updated.model_dump_json(by_alias=True), keepttl=True)
        return updated

    async def list_by_flow(self, flow_id: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        return await self._page(self._flow_index(flow_id), page, limit)

    async def list_by_user(self, user_id: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        return await self._page(self._user_index(user_id), page, limit)

    async def _page(self, index_key: str, page: int, limit: int) -> Tuple[List[ExecutionContext], int]:
        # Index entries outlive their records; drop anything past retention first
        cutoff = utcnow().timestamp() - self.ttl
        await self.client.zremrangebyscore(index_key, "-inf", cutoff)

        total = await self.client.zcard(index_key)
        start = (page - 1) * limit
        session_ids = await self.client.zrevrange(index_key, start, start + limit - 1)

        sessions = []
        for raw_id in session_ids:
            session_id = raw_id.decode('utf-8') if isinstance(raw_id, bytes) else raw_id
            context = await self.find_by_session_id(session_id)
            if context is not None:
                sessions.append(context)
        return sessions, total
