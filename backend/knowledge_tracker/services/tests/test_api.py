import pytest
from fastapi.testclient import TestClient
from knowledge_tracker.main import app

RECORD = {
    "title": "Advanced Python API guide",
    "url": "https://docs.python.org/3/library/asyncio.html",
    "domain": "docs.python.org",
    "snippet": "Reference documentation",
    "score": 0.92,
}


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_click_and_read_back(client):
    response = client.post(
        "/api/knowledge/clicks", json={"result": RECORD, "topic": "python"}
    )
    assert response.status_code == 200
    node = response.json()
    assert node["timeSpent"] == 30
    assert node["category"] == "Documentation"
    assert node["difficulty"] == "advanced"

    nodes = client.get("/api/knowledge/nodes").json()
    assert [n["id"] for n in nodes] == [node["id"]]
    assert client.get("/api/knowledge/paths/python").json()["progress"] == 10
    assert client.get("/api/knowledge/insights", params={"limit": 1}).json()
    assert client.get("/api/knowledge/stats").json()["totalNodes"] == 1
    assert "python" in client.get("/api/knowledge/recommended-topics").json()

    snapshot = client.get("/api/graph/snapshot").json()
    assert snapshot["positions"][0]["id"] == node["id"]


def test_invalid_record_is_422(client):
    bad = dict(RECORD, url="::not-a-url::")
    response = client.post(
        "/api/knowledge/clicks", json={"result": bad, "topic": "python"}
    )
    assert response.status_code == 422
    assert client.get("/api/knowledge/nodes").json() == []


def test_time_and_delete(client):
    node = client.post(
        "/api/knowledge/clicks", json={"result": RECORD, "topic": "asyncio"}
    ).json()

    updated = client.post(
        f"/api/knowledge/nodes/{node['id']}/time", json={"seconds": 900}
    ).json()
    assert updated["understanding"] == "mastered"

    assert client.delete(f"/api/knowledge/nodes/{node['id']}").json() == {
        "deleted": True
    }
    assert client.get(f"/api/knowledge/nodes/{node['id']}").status_code == 404
    missing = client.post(
        f"/api/knowledge/nodes/{node['id']}/time", json={"seconds": 10}
    )
    assert missing.status_code == 404


def test_complete_unknown_path_is_404(client):
    assert client.post("/api/knowledge/paths/nothing/complete").status_code == 404


def test_graph_websocket(client):
    client.post("/api/knowledge/clicks", json={"result": RECORD, "topic": "ws"})
    with client.websocket_connect("/ws/graph") as websocket:
        snapshot = websocket.receive_json()
        assert len(snapshot["positions"]) == 1

        websocket.send_json({"action": "wheel", "delta_y": -1})
        for _ in range(20):
            snapshot = websocket.receive_json()
            if snapshot["zoom"] > 1:
                break
        assert snapshot["zoom"] == pytest.approx(1.1)
