"""
API tests against in-memory storage.
"""

import pytest
from fastapi.testclient import TestClient
from services.api.dependencies import (
    get_chat_service,
    get_flow_repository,
    get_flow_service,
    get_session_store,
)
from services.api.main import app

OWNER = {"X-User-ID": "owner"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("CHAT_STORAGE", "memory")
    for factory in (get_flow_repository, get_session_store, get_flow_service, get_chat_service):
        factory.cache_clear()

    with TestClient(app) as test_client:
        yield test_client


def greeting_payload():
    return {
        "name": "Greeter",
        "nodes": [
            {"id": "s", "type": "start", "position": {"x": 0, "y": 0}, "data": {}},
            {"id": "ask", "type": "input", "position": {"x": 0, "y": 100},
             "data": {"message": "Your name?", "inputType": "text", "variableName": "name"}},
            {"id": "thanks", "type": "message", "position": {"x": 0, "y": 200}, "data": {"message": "Thanks {name}"}},
            {"id": "e", "type": "end", "position": {"x": 0, "y": 300}, "data": {}},
        ],
        "edges": [
            {"id": "e1", "source": "s", "target": "ask"},
            {"id": "e2", "source": "ask", "target": "thanks"},
            {"id": "e3", "source": "thanks", "target": "e"},
        ],
    }


def create_active_flow(client, payload=None):
    response = client.post("/flows", json=payload or greeting_payload(), headers=OWNER)
    assert response.status_code == 201
    flow_id = response.json()["id"]
    assert client.post(f"/flows/{flow_id}/activate", headers=OWNER).status_code == 200
    return flow_id


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_create_flow(client):
    response = client.post("/flows", json=greeting_payload(), headers=OWNER)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "draft"
    assert body["userId"] == "owner"
    assert body["nodes"][1]["data"]["variableName"] == "name"
    assert "X-Correlation-ID" in response.headers


def test_user_header_required(client):
    response = client.post("/flows", json=greeting_payload())

    assert response.status_code == 403


def test_ownership_and_missing_flows(client):
    flow_id = client.post("/flows", json=greeting_payload(), headers=OWNER).json()["id"]

    assert client.get(f"/flows/{flow_id}", headers={"X-User-ID": "someone-else"}).status_code == 403
    assert client.get("/flows/does-not-exist", headers=OWNER).status_code == 404


def test_invalid_update_returns_issues(client):
    flow_id = client.post("/flows", json=greeting_payload(), headers=OWNER).json()["id"]

    response = client.put(f"/flows/{flow_id}", json={"edges": [{"id": "bad", "source": "s", "target": "nowhere"}]},
                          headers=OWNER)

    assert response.status_code == 400
    assert [issue["code"] for issue in response.json()["errors"]] == ["INVALID_EDGE_TARGET"]


def test_validate_endpoint(client):
    flow_id = client.post("/flows", json=greeting_payload(), headers=OWNER).json()["id"]

    response = client.post(f"/flows/{flow_id}/validate", headers=OWNER)

    assert response.status_code == 200
    assert response.json()["isValid"] is True


def test_versions_endpoints(client):
    flow_id = client.post("/flows", json=greeting_payload(), headers=OWNER).json()["id"]

    created = client.post(f"/flows/{flow_id}/versions", json={"changeDescription": "Checkpoint"}, headers=OWNER)
    listed = client.get(f"/flows/{flow_id}/versions", headers=OWNER)
    missing = client.get(f"/flows/{flow_id}/versions/42", headers=OWNER)

    assert created.status_code == 201
    assert created.json()["versionNumber"] == 2
    assert [v["versionNumber"] for v in listed.json()] == [2, 1]
    assert "snapshot" not in listed.json()[0]
    assert missing.status_code == 404


def test_chat_over_http(client):
    flow_id = create_active_flow(client)

    started = client.post("/chat/sessions", json={"flowId": flow_id}, headers=OWNER)
    assert started.status_code == 201
    session = started.json()
    assert session["waitingForInput"] is True
    assert session["inputNodeId"] == "ask"

    replied = client.post(f"/chat/sessions/{session['sessionId']}/messages", json={"message": "Ann"})
    assert replied.status_code == 200
    assert replied.json()["status"] == "completed"
    assert replied.json()["messages"][-1]["content"] == "Thanks Ann"

    again = client.post(f"/chat/sessions/{session['sessionId']}/messages", json={"message": "Ann"})
    assert again.status_code == 409

    listed = client.get("/chat/sessions", headers=OWNER).json()
    assert listed["pagination"]["total"] == 1
    assert "messages" not in listed["sessions"][0]


def test_start_on_draft_flow_conflicts(client):
    flow_id = client.post("/flows", json=greeting_payload(), headers=OWNER).json()["id"]

    response = client.post("/chat/sessions", json={"flowId": flow_id})

    assert response.status_code == 409


def test_node_fault_returns_session(client):
    payload = {
        "name": "Broken",
        "nodes": [
            {"id": "s", "type": "start", "data": {}},
            {"id": "x", "type": "teleport", "data": {}},
        ],
        "edges": [{"id": "e1", "source": "s", "target": "x"}],
    }
    flow_id = create_active_flow(client, payload)

    response = client.post("/chat/sessions", json={"flowId": flow_id})

    assert response.status_code == 500
    body = response.json()
    assert body["session"]["status"] == "error"
    assert body["session"]["messages"][-1]["role"] == "system"


def test_unknown_session(client):
    assert client.get("/chat/sessions/nope").status_code == 404


def test_chat_over_websocket(client):
    flow_id = create_active_flow(client)

    with client.websocket_connect("/ws/chat", headers=OWNER) as websocket:
        assert websocket.receive_json()["event"] == "chat:connected"

        websocket.send_json({"event": "chat:start", "data": {"flowId": flow_id}})
        started = websocket.receive_json()
        prompt = websocket.receive_json()
        waiting = websocket.receive_json()

        assert started["event"] == "chat:session_started"
        assert prompt["event"] == "chat:bot_message"
        assert prompt["data"]["message"]["content"] == "Your name?"
        assert waiting == {"event": "chat:waiting_input", "data": {"sessionId": started["data"]["sessionId"], "nodeId": "ask"}}

        websocket.send_json({"event": "chat:message", "data": {"sessionId": started["data"]["sessionId"], "message": "Bo"}})
        thanks = websocket.receive_json()
        ended = websocket.receive_json()

        assert thanks["data"]["message"]["content"] == "Thanks Bo"
        assert ended["event"] == "chat:session_ended"
        assert ended["data"]["status"] == "completed"

        websocket.send_json({"event": "chat:unknown"})
        assert websocket.receive_json() == {"event": "chat:error", "data": {"message": "Unknown event: chat:unknown"}}
