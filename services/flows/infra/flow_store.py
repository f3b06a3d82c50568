"""
Flow Repository: authored flows and their version snapshots.
"""

import json
import os
from typing import Dict, List, Optional
import redis.asyncio as redis
from shared.types import Flow, FlowVersion


class FlowRepository:
    """Collaborator contract for flow storage"""

    async def find_by_id(self, flow_id: str) -> Optional[Flow]:
        raise NotImplementedError

    async def save(self, flow: Flow) -> None:
        raise NotImplementedError

    async def delete(self, flow_id: str) -> None:
        raise NotImplementedError

    async def list_by_user(self, user_id: str) -> List[Flow]:
        raise NotImplementedError

    async def save_version(self, version: FlowVersion) -> bool:
        """Stores a new snapshot; False when its version number is already taken"""
        raise NotImplementedError

    async def list_versions(self, flow_id: str) -> List[FlowVersion]:
        raise NotImplementedError

    async def find_version(self, flow_id: str, version_number: int) -> Optional[FlowVersion]:
        raise NotImplementedError

    async def count_versions(self, flow_id: str) -> int:
        raise NotImplementedError

    async def delete_versions(self, flow_id: str) -> None:
        raise NotImplementedError


class InMemoryFlowRepository(FlowRepository):

    def __init__(self):
        self._flows: Dict[str, Flow] = {}
        self._versions: Dict[str, Dict[int, FlowVersion]] = {}

    async def find_by_id(self, flow_id: str) -> Optional[Flow]:
        flow = self._flows.get(flow_id)
        return flow.model_copy(deep=True) if flow else None

    async def save(self, flow: Flow) -> None:
        self._flows[flow.id] = flow.model_copy(deep=True)

    async def delete(self, flow_id: str) -> None:
        self._flows.pop(flow_id, None)

    async def list_by_user(self, user_id: str) -> List[Flow]:
        return [f.model_copy(deep=True) for f in self._flows.values() if f.user_id == user_id]

    async def save_version(self, version: FlowVersion) -> bool:
        versions = self._versions.setdefault(version.flow_id, {})
        if version.version_number in versions:
            return False
        versions[version.version_number] = version
        return True

    async def list_versions(self, flow_id: str) -> List[FlowVersion]:
        versions = self._versions.get(flow_id, {})
        return [versions[n] for n in sorted(versions, reverse=True)]

    async def find_version(self, flow_id: str, version_number: int) -> Optional[FlowVersion]:
        return self._versions.get(flow_id, {}).get(version_number)

    async def count_versions(self, flow_id: str) -> int:
        return len(self._versions.get(flow_id, {}))

    async def delete_versions(self, flow_id: str) -> None:
        self._versions.pop(flow_id, None)


class RedisFlowRepository(FlowRepository):
    """Redis-backed repository.

    Keys:
        flow:{id}            flow JSON
        user:{user_id}:flows set of the user's flow ids
        flow:{id}:versions   hash of version number -> version JSON
    """

    def __init__(self, client=None, redis_url: Optional[str] = None):
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.client = client if client is not None else redis.Redis.from_url(url, decode_responses=False)

    @staticmethod
    def _key(flow_id: str) -> str:
        return f"flow:{flow_id}"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}:flows"

    @staticmethod
    def _versions_key(flow_id: str) -> str:
        return f"flow:{flow_id}:versions"

    async def find_by_id(self, flow_id: str) -> Optional[Flow]:
        data = await self.client.get(self._key(flow_id))
        if data:
            return Flow.model_validate(json.loads(data))
        return None

    async def save(self, flow: Flow) -> None:
        pipe = self.client.pipeline()
        pipe.set(self._key(flow.id), flow.model_dump_json(by_alias=True))
        if flow.user_id:
            pipe.sadd(self._user_key(flow.user_id), flow.id)
        await pipe.execute()

    async def delete(self, flow_id: str) -> None:
        flow = await self.find_by_id(flow_id)
        pipe = self.client.pipeline()
        pipe.delete(self._key(flow_id))
        if flow and flow.user_id:
            pipe.srem(self._user_key(flow.user_id), flow_id)
        await pipe.execute()

    async def list_by_user(self, user_id: str) -> List[Flow]:
        flow_ids = await self.client.smembers(self._user_key(user_id))

        flows = []
        for raw_id in flow_ids:
            flow_id = raw_id.decode('utf-8') if isinstance(raw_id, bytes) else raw_id
            flow = await self.find_by_id(flow_id)
            if flow is not None:
                flows.append(flow)
        return flows

    async def save_version(self, version: FlowVersion) -> bool:
        # Existing version slots are never overwritten
        created = await self.client.hsetnx(
            self._versions_key(version.flow_id),
            str(version.version_number),
            version.model_dump_json(by_alias=True)
        )
        return bool(created)

    async def list_versions(self, flow_id: str) -> List[FlowVersion]:
        entries = await self.client.hgetall(self._versions_key(flow_id))
        versions = [FlowVersion.model_validate(json.loads(v)) for v in entries.values()]
        versions.sort(key=lambda v: v.version_number, reverse=True)
        return versions

    async def find_version(self, flow_id: str, version_number: int) -> Optional[FlowVersion]:
        data = await self.client.hget(self._versions_key(flow_id), str(version_number))
        if data:
            return FlowVersion.model_validate(json.loads(data))
        return None

    async def count_versions(self, flow_id: str) -> int:
        return await self.client.hlen(self._versions_key(flow_id))

    async def delete_versions(self, flow_id: str) -> None:
        await self.client.delete(self._versions_key(flow_id))
