"""Flow authoring service: CRUD, lifecycle, versions, import and export."""

import logging
from typing import Any, Dict, List, Optional, Tuple
from services.flows.domain.models import (
    CreateFlowRequest,
    DuplicateFlowRequest,
    UpdateFlowRequest,
)
from services.flows.domain.validation import validate_flow, validate_for_activation
from services.flows.infra.flow_store import FlowRepository
from shared.constants import DEFAULT_PAGE_SIZE, EXPORT_FORMAT_VERSION, VERSION_NUMBER_ATTEMPTS
from shared.exceptions import (
    FlowAccessDeniedError,
    FlowNotFoundError,
    FlowValidationError,
    FlowVersionNotFoundError,
    InvalidFlowStateError,
    InvalidImportError,
)
from shared.types import (
    ChangeType,
    Flow,
    FlowSnapshot,
    FlowStatus,
    FlowVersion,
    Pagination,
    ValidationResult,
)
from shared.utils import total_pages, utcnow

SNAPSHOT_FIELDS = ("name", "description", "nodes", "edges", "viewport", "variables", "tags")


class FlowService:
    """Every operation is scoped to the owning user"""

    def __init__(self, repository: FlowRepository):
        self.repository = repository

    async def get(self, user_id: str, flow_id: str) -> Flow:
        flow = await self.repository.find_by_id(flow_id)
        if flow is None:
            raise FlowNotFoundError(f"Flow with ID {flow_id} not found", flow_id=flow_id)
        if flow.user_id != user_id:
            raise FlowAccessDeniedError("You do not have access to this flow", flow_id=flow_id)
        return flow

    async def list_flows(
        self,
        user_id: str,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        status: Optional[FlowStatus] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Flow], Pagination]:
        flows = await self.repository.list_by_user(user_id)

        if status:
            flows = [f for f in flows if f.status == status]
        if search:
            needle = search.lower()
            flows = [
                f for f in flows
                if needle in f.name.lower() or needle in (f.description or "").lower()
            ]

        flows.sort(key=lambda f: f.updated_at, reverse=True)
        total = len(flows)
        start = (page - 1) * limit
        pagination = Pagination(page=page, limit=limit, total=total, total_pages=total_pages(total, limit))
        return flows[start:start + limit], pagination

    async def create(self, user_id: str, request: CreateFlowRequest) -> Flow:
        flow = Flow.model_validate({**request.model_dump(), "user_id": user_id, "status": FlowStatus.DRAFT, "version": 1})
        await self.repository.save(flow)

        logging.info("Flow created", extra={"flow_id": flow.id, "user_id": user_id})

        if flow.nodes:
            await self._snapshot(flow, user_id, "Initial version", ChangeType.AUTO)
        return flow

    async def update(self, user_id: str, flow_id: str, request: UpdateFlowRequest) -> Flow:
        flow = await self.get(user_id, flow_id)
        # Explicit nulls only clear the description
        changes = {
            field: value for field, value in request.model_dump(exclude_unset=True).items()
            if value is not None or field == "description"
        }

        data = flow.model_dump()
        data.update(changes)
        data["version"] = flow.version + 1
        data["updated_at"] = utcnow()
        updated = Flow.model_validate(data)

        if "nodes" in changes or "edges" in changes:
            result = validate_flow(updated)
            if not result.is_valid:
                raise FlowValidationError("Flow validation failed", result, flow_id=flow_id)

        await self.repository.save(updated)
        return updated

    async def delete(self, user_id: str, flow_id: str) -> None:
        flow = await self.get(user_id, flow_id)
        await self.repository.delete_versions(flow.id)
        await self.repository.delete(flow.id)
        logging.info("Flow deleted", extra={"flow_id": flow.id, "user_id": user_id})

    async def duplicate(self, user_id: str, flow_id: str, request: DuplicateFlowRequest) -> Flow:
        original = await self.get(user_id, flow_id)

        duplicate_flow = Flow(
            user_id=user_id,
            name=request.name,
            description=request.description or original.description,
            nodes=original.nodes,
            edges=original.edges,
            viewport=original.viewport,
            variables=original.variables,
            tags=original.tags,
        )
        await self.repository.save(duplicate_flow)
        await self._snapshot(duplicate_flow, user_id, f"Duplicated from {original.name}", ChangeType.AUTO)
        return duplicate_flow

    async def activate(self, user_id: str, flow_id: str) -> Flow:
        flow = await self.get(user_id, flow_id)

        result = validate_for_activation(flow)
        if not result.is_valid:
            raise FlowValidationError("Cannot activate flow with validation errors", result, flow_id=flow_id)

        # One active flow per user
        for other in await self.repository.list_by_user(user_id):
            if other.id != flow.id and other.status == FlowStatus.ACTIVE:
                other.status = FlowStatus.INACTIVE
                other.updated_at = utcnow()
                await self.repository.save(other)

        flow.status = FlowStatus.ACTIVE
        flow.updated_at = utcnow()
        await self.repository.save(flow)

        logging.info("Flow activated", extra={"flow_id": flow.id, "user_id": user_id})
        return flow

    async def deactivate(self, user_id: str, flow_id: str) -> Flow:
        flow = await self.get(user_id, flow_id)
        if flow.status != FlowStatus.ACTIVE:
            raise InvalidFlowStateError("Flow is not active", flow_id=flow_id)

        flow.status = FlowStatus.INACTIVE
        flow.updated_at = utcnow()
        await self.repository.save(flow)
        return flow

    async def validate(self, user_id: str, flow_id: str) -> ValidationResult:
        flow = await self.get(user_id, flow_id)
        return validate_flow(flow)

    async def create_version(
        self,
        user_id: str,
        flow_id: str,
        change_description: Optional[str] = None,
        change_type: ChangeType = ChangeType.MANUAL
    ) -> FlowVersion:
        flow = await self.get(user_id, flow_id)
        return await self._snapshot(flow, user_id, change_description, change_type)

    async def list_versions(self, user_id: str, flow_id: str) -> List[FlowVersion]:
        flow = await self.get(user_id, flow_id)
        return await self.repository.list_versions(flow.id)

    async def get_version(self, user_id: str, flow_id: str, version_number: int) -> FlowVersion:
        flow = await self.get(user_id, flow_id)
        version = await self.repository.find_version(flow.id, version_number)
        if version is None:
            raise FlowVersionNotFoundError(
                f"Version {version_number} not found for this flow",
                flow_id=flow_id,
                version_number=version_number
            )
        return version

    async def restore_version(self, user_id: str, flow_id: str, version_number: int) -> Flow:
        version = await self.get_version(user_id, flow_id, version_number)
        flow = await self.get(user_id, flow_id)

        await self._snapshot(flow, user_id, f"Before restoring to version {version_number}", ChangeType.AUTO)

        data = flow.model_dump()
        data.update(version.snapshot.model_dump())
        data["updated_at"] = utcnow()
        restored = Flow.model_validate(data)
        await self.repository.save(restored)

        await self._snapshot(restored, user_id, f"Restored to version {version_number}", ChangeType.AUTO)
        return restored

    async def export(self, user_id: str, flow_id: str) -> Dict[str, Any]:
        flow = await self.get(user_id, flow_id)
        return {
            "version": EXPORT_FORMAT_VERSION,
            "exportedAt": utcnow().isoformat(),
            "flow": self._take_snapshot(flow).to_wire(),
        }

    async def import_flow(self, user_id: str, flow_data: Dict[str, Any], name: Optional[str] = None) -> Flow:
        imported = flow_data.get("flow") if isinstance(flow_data, dict) else None
        if not isinstance(imported, dict):
            raise InvalidImportError("Invalid flow data format")

        flow = Flow.model_validate({
            "userId": user_id,
            "name": name or imported.get("name") or "Imported Flow",
            "description": imported.get("description"),
            "nodes": imported.get("nodes") or [],
            "edges": imported.get("edges") or [],
            "viewport": imported.get("viewport") or {"x": 0, "y": 0, "zoom": 1},
            "variables": imported.get("variables") or [],
            "tags": imported.get("tags") or [],
        })

        result = validate_flow(flow)
        if not result.is_valid:
            raise FlowValidationError("Imported flow has validation errors", result)

        await self.repository.save(flow)
        await self._snapshot(flow, user_id, "Imported from JSON", ChangeType.AUTO)

        logging.info("Flow imported", extra={"flow_id": flow.id, "user_id": user_id})
        return flow

    async def _snapshot(
        self,
        flow: Flow,
        user_id: str,
        change_description: Optional[str],
        change_type: ChangeType
    ) -> FlowVersion:
        snapshot = self._take_snapshot(flow)

        for _ in range(VERSION_NUMBER_ATTEMPTS):
            count = await self.repository.count_versions(flow.id)
            version = FlowVersion(
                flow_id=flow.id,
                version_number=count + 1,
                snapshot=snapshot,
                change_description=change_description,
                change_type=change_type,
                created_by=user_id
            )
            if await self.repository.save_version(version):
                return version
            logging.warning(
                "Version number already taken, retrying",
                extra={"flow_id": flow.id, "version_number": version.version_number}
            )

        raise InvalidFlowStateError("Could not allocate a version number", flow_id=flow.id)

    @staticmethod
    def _take_snapshot(flow: Flow) -> FlowSnapshot:
        return FlowSnapshot.model_validate(flow.model_dump(include=set(SNAPSHOT_FIELDS)))
