"""
Tests for flow authoring: ownership, lifecycle, versions, import and export.
"""

import pytest
from unittest.mock import AsyncMock
from services.flows.domain.models import CreateFlowRequest, DuplicateFlowRequest, UpdateFlowRequest
from services.flows.service import FlowService
from shared.exceptions import (
    FlowAccessDeniedError,
    FlowNotFoundError,
    FlowValidationError,
    FlowVersionNotFoundError,
    InvalidFlowStateError,
    InvalidImportError,
)
from shared.types import ChangeType, FlowStatus


def runnable_graph():
    return {
        "nodes": [
            {"id": "s", "type": "start", "data": {}},
            {"id": "m", "type": "message", "data": {"message": "Hello"}},
            {"id": "e", "type": "end", "data": {}},
        ],
        "edges": [
            {"id": "e1", "source": "s", "target": "m"},
            {"id": "e2", "source": "m", "target": "e"},
        ],
    }


@pytest.fixture
def service(flow_repository):
    return FlowService(flow_repository)


async def create_flow(service, user_id="u1", name="Support bot", **overrides):
    payload = {"name": name, **runnable_graph(), **overrides}
    return await service.create(user_id, CreateFlowRequest.model_validate(payload))


@pytest.mark.asyncio
async def test_create_starts_as_draft_with_initial_version(service):
    flow = await create_flow(service)

    assert flow.status == FlowStatus.DRAFT
    assert flow.version == 1
    assert flow.user_id == "u1"

    versions = await service.list_versions("u1", flow.id)
    assert len(versions) == 1
    assert versions[0].change_description == "Initial version"
    assert versions[0].change_type == ChangeType.AUTO


@pytest.mark.asyncio
async def test_create_without_nodes_has_no_version(service):
    flow = await service.create("u1", CreateFlowRequest(name="Empty"))

    assert await service.list_versions("u1", flow.id) == []


@pytest.mark.asyncio
async def test_ownership_is_enforced(service):
    flow = await create_flow(service)

    with pytest.raises(FlowAccessDeniedError):
        await service.get("intruder", flow.id)

    with pytest.raises(FlowNotFoundError):
        await service.get("u1", "missing")


@pytest.mark.asyncio
async def test_update_validates_graph_changes(service):
    flow = await create_flow(service)

    with pytest.raises(FlowValidationError) as exc_info:
        await service.update("u1", flow.id, UpdateFlowRequest.model_validate({
            "nodes": [{"id": "m", "type": "message", "data": {}}]
        }))

    codes = [issue.code for issue in exc_info.value.result.errors]
    assert "NO_START_NODE" in codes
    assert "EMPTY_MESSAGE" in codes
    # Nothing was saved
    assert len((await service.get("u1", flow.id)).nodes) == 3


@pytest.mark.asyncio
async def test_update_applies_fields_and_bumps_version(service):
    flow = await create_flow(service)

    updated = await service.update("u1", flow.id, UpdateFlowRequest(name="Renamed", tags=["sales"]))

    assert updated.name == "Renamed"
    assert updated.tags == ["sales"]
    assert updated.version == 2
    assert len(updated.nodes) == 3


@pytest.mark.asyncio
async def test_activate_keeps_one_active_flow_per_user(service):
    first = await create_flow(service, name="First")
    second = await create_flow(service, name="Second")

    await service.activate("u1", first.id)
    await service.activate("u1", second.id)

    assert (await service.get("u1", first.id)).status == FlowStatus.INACTIVE
    assert (await service.get("u1", second.id)).status == FlowStatus.ACTIVE


@pytest.mark.asyncio
async def test_activate_rejects_blocking_errors(service):
    flow = await service.create("u1", CreateFlowRequest.model_validate({
        "name": "Broken",
        "nodes": [{"id": "m", "type": "message", "data": {"message": "Hi"}}],
    }))

    with pytest.raises(FlowValidationError) as exc_info:
        await service.activate("u1", flow.id)

    assert [issue.code for issue in exc_info.value.result.errors] == ["NO_START_NODE"]
    assert (await service.get("u1", flow.id)).status == FlowStatus.DRAFT


@pytest.mark.asyncio
async def test_deactivate_requires_active_flow(service):
    flow = await create_flow(service)

    with pytest.raises(InvalidFlowStateError):
        await service.deactivate("u1", flow.id)

    await service.activate("u1", flow.id)
    assert (await service.deactivate("u1", flow.id)).status == FlowStatus.INACTIVE


@pytest.mark.asyncio
async def test_duplicate(service):
    original = await create_flow(service, description="Original description")
    await service.activate("u1", original.id)

    duplicate = await service.duplicate("u1", original.id, DuplicateFlowRequest(name="Copy"))

    assert duplicate.id != original.id
    assert duplicate.status == FlowStatus.DRAFT
    assert duplicate.description == "Original description"
    assert [n.id for n in duplicate.nodes] == ["s", "m", "e"]
    versions = await service.list_versions("u1", duplicate.id)
    assert versions[0].change_description == "Duplicated from Support bot"


@pytest.mark.asyncio
async def test_versions_and_restore(service):
    flow = await create_flow(service)
    await service.update("u1", flow.id, UpdateFlowRequest(name="Second name"))

    restored = await service.restore_version("u1", flow.id, 1)

    assert restored.name == "Support bot"
    versions = await service.list_versions("u1", flow.id)
    assert [v.version_number for v in versions] == [3, 2, 1]
    assert versions[0].change_description == "Restored to version 1"
    assert versions[1].change_description == "Before restoring to version 1"
    assert versions[1].snapshot.name == "Second name"


@pytest.mark.asyncio
async def test_manual_version(service):
    flow = await create_flow(service)

    version = await service.create_version("u1", flow.id, "Checkpoint")

    assert version.version_number == 2
    assert version.change_type == ChangeType.MANUAL
    assert version.created_by == "u1"
    assert (await service.get_version("u1", flow.id, 2)).change_description == "Checkpoint"

    with pytest.raises(FlowVersionNotFoundError):
        await service.get_version("u1", flow.id, 99)


@pytest.mark.asyncio
async def test_export_then_import(service):
    flow = await create_flow(service, tags=["faq"])

    exported = await service.export("u1", flow.id)

    assert exported["version"] == "1.0"
    assert "exportedAt" in exported
    assert exported["flow"]["name"] == "Support bot"
    assert exported["flow"]["tags"] == ["faq"]

    imported = await service.import_flow("u2", exported, name="Imported copy")

    assert imported.user_id == "u2"
    assert imported.name == "Imported copy"
    assert imported.status == FlowStatus.DRAFT
    assert [n.id for n in imported.nodes] == ["s", "m", "e"]
    versions = await service.list_versions("u2", imported.id)
    assert versions[0].change_description == "Imported from JSON"


@pytest.mark.asyncio
async def test_import_rejects_bad_payloads(service):
    with pytest.raises(InvalidImportError):
        await service.import_flow("u1", {"nodes": []})

    with pytest.raises(FlowValidationError):
        await service.import_flow("u1", {"flow": {"nodes": [{"id": "x", "type": "jump", "data": {}}]}})


@pytest.mark.asyncio
async def test_list_flows_filters_and_paginates(service):
    await create_flow(service, name="Alpha")
    beta = await create_flow(service, name="Beta", description="sales helper")
    await create_flow(service, user_id="u2", name="Gamma")
    await service.activate("u1", beta.id)

    flows, pagination = await service.list_flows("u1", page=1, limit=10)
    assert {f.name for f in flows} == {"Alpha", "Beta"}
    assert pagination.total == 2
    assert pagination.total_pages == 1

    active, _ = await service.list_flows("u1", status=FlowStatus.ACTIVE)
    assert [f.name for f in active] == ["Beta"]

    found, _ = await service.list_flows("u1", search="SALES")
    assert [f.name for f in found] == ["Beta"]


@pytest.mark.asyncio
async def test_delete_removes_flow_and_versions(service, flow_repository):
    flow = await create_flow(service)

    await service.delete("u1", flow.id)

    assert await flow_repository.find_by_id(flow.id) is None
    assert await flow_repository.count_versions(flow.id) == 0


@pytest.mark.asyncio
async def test_snapshot_skips_a_taken_version_number(service, flow_repository):
    flow = await create_flow(service)
    # A concurrent writer already took the number this count points at
    flow_repository.count_versions = AsyncMock(side_effect=[0, 1])

    version = await service.create_version("u1", flow.id, "Checkpoint")

    assert version.version_number == 2
    assert (await service.get_version("u1", flow.id, 1)).change_description == "Initial version"


@pytest.mark.asyncio
async def test_snapshot_gives_up_when_no_number_is_free(service, flow_repository):
    flow = await create_flow(service)
    flow_repository.save_version = AsyncMock(return_value=False)

    with pytest.raises(InvalidFlowStateError):
        await service.create_version("u1", flow.id)

    assert flow_repository.save_version.await_count == 5
