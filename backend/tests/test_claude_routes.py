"""API tests for /claude sessions and prompts, plus auth and service routes."""

from fastapi.testclient import TestClient

from conftest import ScriptedEngine
from main import create_app
from utils.settings import Settings


def _create_session(client, **body):
    response = client.post("/claude/sessions", json=body)
    assert response.status_code == 201, response.text
    return response.json()["session"]


def test_create_session_defaults_to_working_directory(client, settings):
    response = client.post("/claude/sessions", json={})

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Session created successfully"
    assert data["session"]["workingDirectory"] == str(settings.default_working_directory)
    assert data["session"]["repoContext"] is None
    assert data["session"]["metadata"]["totalPrompts"] == 0


def test_create_session_with_existing_repository(client, settings):
    (settings.repos_root / "widgets").mkdir()

    session = _create_session(client, repo="widgets")

    assert session["workingDirectory"] == str(settings.repos_root / "widgets")
    assert session["repoContext"] == "widgets"


def test_create_session_with_url_clones(client, settings, local_clone):
    session = _create_session(client, repo="https://github.com/example/remote.git")

    assert session["workingDirectory"] == str(settings.repos_root / "remote")
    assert (settings.repos_root / "remote" / ".git").is_dir()


def test_create_session_with_unknown_repository(client):
    response = client.post("/claude/sessions", json={"repo": "ghost"})

    assert response.status_code == 404
    assert response.json()["error"] == "Repository not found"


def test_create_session_with_invalid_name(client):
    assert client.post("/claude/sessions", json={"repo": "../etc"}).status_code == 400


def test_list_get_and_delete_sessions(client):
    first = _create_session(client)
    second = _create_session(client)

    listed = client.get("/claude/sessions").json()
    assert listed["count"] == 2
    assert {s["id"] for s in listed["sessions"]} == {first["id"], second["id"]}

    fetched = client.get(f"/claude/sessions/{first['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == first["id"]

    deleted = client.delete(f"/claude/sessions/{first['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["message"] == "Session deleted successfully"

    assert client.get(f"/claude/sessions/{first['id']}").status_code == 404
    missing = client.delete(f"/claude/sessions/{first['id']}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Session not found"
    assert client.get("/claude/sessions").json()["count"] == 1


def test_prompt_without_session(client, engine, settings):
    response = client.post("/claude/prompt", json={"prompt": "List the files"})

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["message"] == "Prompt processed successfully"
    assert data["promptLength"] == len("List the files")
    assert data["orderedMessages"] == [{"type": "assistant", "content": "done"}]
    assert data["messageCount"] == 1
    assert data["workingDirectory"] == str(settings.default_working_directory)
    assert data["sessionId"] is None
    assert engine.calls[0]["turn_budget"] == 20
    assert engine.calls[0]["continue_conversation"] is False


def test_prompt_in_repository(client, engine, settings):
    (settings.repos_root / "widgets").mkdir()

    response = client.post("/claude/prompt", json={"prompt": "hi", "repo": "widgets", "maxTurns": 3, "continue": True})

    assert response.status_code == 200, response.text
    assert engine.calls[0]["cwd"] == str(settings.repos_root / "widgets")
    assert engine.calls[0]["turn_budget"] == 3
    assert engine.calls[0]["continue_conversation"] is True


def test_prompt_with_session_records_history(client, engine, settings):
    (settings.repos_root / "widgets").mkdir()
    (settings.repos_root / "other").mkdir()
    session = _create_session(client, repo="widgets")

    response = client.post(
        "/claude/prompt",
        json={"prompt": "Explain", "sessionId": session["id"], "repo": "other"},
    )

    assert response.status_code == 200, response.text
    assert engine.calls[0]["cwd"] == str(settings.repos_root / "widgets")
    assert response.json()["sessionId"] == session["id"]

    stored = client.get(f"/claude/sessions/{session['id']}").json()
    assert stored["messages"] == [{"type": "assistant", "content": "done"}]
    assert stored["metadata"]["totalPrompts"] == 1
    assert stored["metadata"]["lastPrompt"] == "Explain"


def test_prompt_with_unknown_session(client, engine):
    response = client.post("/claude/prompt", json={"prompt": "hi", "sessionId": "nope"})

    assert response.status_code == 404
    assert engine.calls == []


def test_prompt_validation(client, engine):
    assert client.post("/claude/prompt", json={"prompt": ""}).status_code == 400
    assert client.post("/claude/prompt", json={"prompt": "   "}).json()["error"] == "Prompt is required"
    assert client.post("/claude/prompt", json={}).status_code == 400
    assert client.post("/claude/prompt", json={"prompt": "hi", "maxTurns": 0}).status_code == 400
    assert engine.calls == []


def test_prompt_engine_failure_is_500(settings):
    failing = ScriptedEngine([], error=RuntimeError("model unavailable"))
    client = TestClient(create_app(settings, engine=failing), raise_server_exceptions=False)

    response = client.post("/claude/prompt", json={"prompt": "hi"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process prompt"
    assert "model unavailable" in response.json()["details"]


def test_health_and_api_docs(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert "timestamp" in health.json()

    docs = client.get("/api-docs").json()
    paths = {(route["method"], route["path"]) for route in docs["endpoints"]}
    assert ("POST", "/claude/prompt") in paths
    assert ("PUT", "/git/repos/{name}/files/{path}") in paths
    assert docs["count"] == len(docs["endpoints"])


def test_api_key_is_enforced(tmp_path):
    settings = Settings(
        repos_root=tmp_path / "repos",
        default_working_directory=tmp_path,
        api_key="s3cret",
    )
    client = TestClient(create_app(settings, engine=ScriptedEngine()), raise_server_exceptions=False)

    assert client.get("/claude/sessions").status_code == 401
    assert client.get("/claude/sessions", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/claude/sessions", headers={"Authorization": "s3cret"}).status_code == 401
    assert client.get("/claude/sessions", headers={"Authorization": "Bearer s3cret"}).status_code == 200
    assert client.get("/health").status_code == 200
    assert client.get("/api-docs").status_code == 200

    preflight = client.options(
        "/claude/sessions",
        headers={"Origin": "http://example.com", "Access-Control-Request-Method": "GET"},
    )
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"]


def test_lifespan_creates_repos_root(tmp_path):
    settings = Settings(repos_root=tmp_path / "fresh" / "repos", default_working_directory=tmp_path)

    with TestClient(create_app(settings, engine=ScriptedEngine())) as client:
        assert settings.repos_root.is_dir()
        assert client.get("/").json()["status"] == "ok"
