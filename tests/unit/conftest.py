import pytest
from unittest.mock import AsyncMock
from services.chat.engine.interpreter import FlowInterpreter
from services.chat.infra.session_store import InMemorySessionStore
from services.flows.infra.flow_store import InMemoryFlowRepository
from shared.types import Flow, FlowStatus


def build_node(node_id, node_type, **data):
    return {"id": node_id, "type": node_type, "position": {"x": 0, "y": 0}, "data": data}


def build_edge(source, target, edge_id=None):
    return {"id": edge_id or f"{source}-{target}", "source": source, "target": target}


def build_flow(nodes, edges=None, variables=None, status=FlowStatus.ACTIVE, user_id="user-1"):
    return Flow.model_validate({
        "userId": user_id,
        "name": "Test flow",
        "status": status,
        "nodes": nodes,
        "edges": edges or [],
        "variables": variables or [],
    })


@pytest.fixture
def flow_factory():
    """Returns (build_flow, build_node, build_edge) helpers"""
    return build_flow, build_node, build_edge


@pytest.fixture
def flow_repository():
    return InMemoryFlowRepository()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def http_client():
    return AsyncMock()


@pytest.fixture
def interpreter(flow_repository, session_store, http_client):
    return FlowInterpreter(flow_repository, session_store, http_client)
