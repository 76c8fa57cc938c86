API = "/api/v1"


def test_schema_list_is_public(client):
    resp = client.get(f"{API}/schema/")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert list(data) == ["User", "Settings", "Contact", "Deal", "Task", "Note"]


def test_schema_for_one_model(client):
    resp = client.get(f"{API}/schema/contact")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["path"] == "/contact"
    assert data["preload"] == ["notes", "deals"]
    stage = next(f for f in data["fields"] if f["name"] == "stage")
    assert stage["options"] == ["Lead", "Customer", "Prospect"]
    assert client.get(f"{API}/schema/Contact").json()["data"]["name"] == "Contact"


def test_schema_never_exposes_password(client):
    data = client.get(f"{API}/schema/user").json()["data"]
    assert "password_hash" not in [f["name"] for f in data["fields"]]
    assert data["requires_admin"] is True


def test_schema_lists_custom_endpoints(client):
    data = client.get(f"{API}/schema/task").json()["data"]
    assert data["custom_endpoints"] == [
        {"path": "/{task_id}/toggle", "method": "PATCH", "description": "Flip a task's completed flag"}
    ]


def test_unknown_schema_is_404(client):
    resp = client.get(f"{API}/schema/spaceship")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Model spaceship not found"}
