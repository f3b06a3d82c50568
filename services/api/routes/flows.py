"""Flow authoring API routes."""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from services.api.dependencies import get_chat_service, get_flow_service, get_user_id
from services.api.domain.models import FlowListResponse, SessionListResponse
from services.chat.service import ChatService
from services.flows.domain.models import (
    CreateFlowRequest,
    CreateVersionRequest,
    DuplicateFlowRequest,
    ImportFlowRequest,
    UpdateFlowRequest,
)
from services.flows.service import FlowService
from shared.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from shared.types import Flow, FlowStatus, FlowVersion, ValidationResult


router = APIRouter(prefix="/flows")


@router.get("", response_model=FlowListResponse)
async def list_flows(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    flow_status: Optional[FlowStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    items, pagination = await flows.list_flows(user_id, page, limit, flow_status, search)
    return FlowListResponse(flows=items, pagination=pagination)


@router.post("", response_model=Flow, status_code=status.HTTP_201_CREATED)
async def create_flow(
    request: CreateFlowRequest,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.create(user_id, request)


@router.post("/import", response_model=Flow, status_code=status.HTTP_201_CREATED)
async def import_flow(
    request: ImportFlowRequest,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.import_flow(user_id, request.flow_data, request.name)


@router.get("/{flow_id}", response_model=Flow)
async def get_flow(flow_id: str, user_id: str = Depends(get_user_id), flows: FlowService = Depends(get_flow_service)):
    return await flows.get(user_id, flow_id)


@router.put("/{flow_id}", response_model=Flow)
async def update_flow(
    flow_id: str,
    request: UpdateFlowRequest,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.update(user_id, flow_id, request)


@router.delete("/{flow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flow(flow_id: str, user_id: str = Depends(get_user_id), flows: FlowService = Depends(get_flow_service)):
    await flows.delete(user_id, flow_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{flow_id}/duplicate", response_model=Flow, status_code=status.HTTP_201_CREATED)
async def duplicate_flow(
    flow_id: str,
    request: DuplicateFlowRequest,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.duplicate(user_id, flow_id, request)


@router.post("/{flow_id}/activate", response_model=Flow)
async def activate_flow(flow_id: str, user_id: str = Depends(get_user_id), flows: FlowService = Depends(get_flow_service)):
    return await flows.activate(user_id, flow_id)


@router.post("/{flow_id}/deactivate", response_model=Flow)
async def deactivate_flow(flow_id: str, user_id: str = Depends(get_user_id), flows: FlowService = Depends(get_flow_service)):
    return await flows.deactivate(user_id, flow_id)


@router.post("/{flow_id}/validate", response_model=ValidationResult)
async def validate_flow(flow_id: str, user_id: str = Depends(get_user_id), flows: FlowService = Depends(get_flow_service)):
    return await flows.validate(user_id, flow_id)


@router.get("/{flow_id}/export")
async def export_flow(
    flow_id: str,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
) -> Dict[str, Any]:
    return await flows.export(user_id, flow_id)


@router.post("/{flow_id}/versions", response_model=FlowVersion, status_code=status.HTTP_201_CREATED)
async def create_version(
    flow_id: str,
    request: CreateVersionRequest,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.create_version(user_id, flow_id, request.change_description)


@router.get("/{flow_id}/versions")
async def list_versions(
    flow_id: str,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
) -> List[Dict[str, Any]]:
    versions = await flows.list_versions(user_id, flow_id)
    # Snapshots are only returned by the single-version endpoint
    return [v.to_wire(exclude={"snapshot"}) for v in versions]


@router.get("/{flow_id}/versions/{version_number}", response_model=FlowVersion)
async def get_version(
    flow_id: str,
    version_number: int,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.get_version(user_id, flow_id, version_number)


@router.post("/{flow_id}/versions/{version_number}/restore", response_model=Flow)
async def restore_version(
    flow_id: str,
    version_number: int,
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service)
):
    return await flows.restore_version(user_id, flow_id, version_number)


@router.get("/{flow_id}/sessions", response_model=SessionListResponse)
async def list_flow_sessions(
    flow_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user_id: str = Depends(get_user_id),
    flows: FlowService = Depends(get_flow_service),
    chat: ChatService = Depends(get_chat_service)
):
    flow = await flows.get(user_id, flow_id)
    sessions, pagination = await chat.list_flow_sessions(flow.id, page, limit)
    return SessionListResponse(sessions=sessions, pagination=pagination)
