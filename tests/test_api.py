from __future__ import annotations

import json
import os
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from backend.app.core.dependencies import get_localai_service
from backend.app.core.errors import UpstreamConnectionError, UpstreamUnavailableError
from backend.app.main import app
from backend.app.services.localai import StreamChunk
from backend.app.utils.security import create_access_token

from stubs import StubLocalAIService


def _auth_headers(subject: str = "test-user") -> Dict[str, str]:
    token = create_access_token(subject=subject, secret=os.environ["JWT_SECRET"], email="tester@example.com")
    return {"Authorization": f"Bearer {token}"}


def _events(body: str) -> List[Any]:
    events: List[Any] = []
    for frame in body.split("\n\n"):
        if not frame.startswith("data: "):
            continue
        data = frame[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


@pytest.fixture
def stub_localai():
    stub = StubLocalAIService(
        reply="Stubbed assistant reply.",
        chunks=[StreamChunk(content="Hel"), StreamChunk(content="lo"), StreamChunk(content="", done=True)],
    )
    app.dependency_overrides[get_localai_service] = lambda: stub
    yield stub
    app.dependency_overrides.clear()


def test_requests_without_token_are_rejected(stub_localai):
    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "Hello"})
        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "Unauthorized"
        assert body["message"] == "Bearer token required"
        assert "processing_time_ms" in body

        bad_token = client.post(
            "/rag/query",
            json={"query": "anything"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert bad_token.status_code == 401
        assert bad_token.json()["message"] == "Invalid or expired token"

        forged = create_access_token(subject="intruder", secret="some-other-secret")
        forged_response = client.get("/chat/models", headers={"Authorization": f"Bearer {forged}"})
        assert forged_response.status_code == 401

    assert stub_localai.calls == []


def test_chat_returns_completion(stub_localai):
    with TestClient(app) as client:
        response = client.post(
            "/chat",
            json={
                "message": "Hello, can you summarize the configuration?",
                "context": [{"role": "system", "content": "Be brief"}],
            },
            headers=_auth_headers(),
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["message"] == "Stubbed assistant reply."
        assert payload["model"] == "llama3"
        assert payload["usage"]["total_tokens"] == 7
        assert payload["processing_time_ms"] >= 0

    assert len(stub_localai.calls) == 1
    assert stub_localai.calls[0]["context"][0].content == "Be brief"


@pytest.mark.parametrize("message", ["", "   ", None, 123])
def test_chat_rejects_invalid_message_without_calling_upstream(stub_localai, message):
    with TestClient(app) as client:
        response = client.post("/chat", json={"message": message}, headers=_auth_headers())
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Bad Request"
        assert body["message"] == "Message is required and must be a non-empty string"

    assert stub_localai.calls == []


def test_chat_message_length_limit(stub_localai):
    with TestClient(app) as client:
        accepted = client.post("/chat", json={"message": "x" * 10_000}, headers=_auth_headers())
        assert accepted.status_code == 200

        rejected = client.post("/chat", json={"message": "x" * 10_001}, headers=_auth_headers())
        assert rejected.status_code == 400
        assert rejected.json()["message"] == "Message too long (max 10,000 characters)"

    assert len(stub_localai.calls) == 1


def test_chat_upstream_failure_maps_status(stub_localai):
    stub_localai.chat_error = UpstreamUnavailableError("LocalAI service unavailable", remote_status=503)
    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "Hello"}, headers=_auth_headers())
        assert response.status_code == 503
        assert response.json()["message"] == "LocalAI service unavailable"

        stub_localai.chat_error = UpstreamConnectionError("Unable to connect to LocalAI. Please check if the service is running.")
        unreachable = client.post("/chat", json={"message": "Hello"}, headers=_auth_headers())
        assert unreachable.status_code == 502
        assert unreachable.json()["error"] == "Bad Gateway"


def test_chat_streams_sse_events(stub_localai):
    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "Hi", "stream": True}, headers=_auth_headers())
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = _events(response.text)
        assert events[0] == {"type": "connection", "status": "connected"}
        assert [event["content"] for event in events if isinstance(event, dict) and event["type"] == "chunk"] == [
            "Hel",
            "lo",
        ]
        completion = events[-2]
        assert completion["type"] == "completion"
        assert completion["content"] == "Hello"
        assert completion["model"] == "llama3"
        assert events[-1] == "[DONE]"

    assert stub_localai.stream_closed is True


def test_chat_stream_query_parameter_overrides_body(stub_localai):
    with TestClient(app) as client:
        response = client.post("/chat?stream=true", json={"message": "Hi"}, headers=_auth_headers())
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert _events(response.text)[-1] == "[DONE]"

    assert stub_localai.calls[0]["stream"] is True


def test_chat_stream_failure_is_reported_in_band(stub_localai):
    stub_localai.chunks = [StreamChunk(content="Hel")]
    stub_localai.stream_error = UpstreamUnavailableError("LocalAI service unavailable", remote_status=503)
    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "Hi", "stream": True}, headers=_auth_headers())
        assert response.status_code == 200
        events = _events(response.text)
        assert [event["type"] for event in events] == ["connection", "chunk", "error"]
        assert events[-1]["error"] == "LocalAI service unavailable"
        assert "[DONE]" not in events


def test_chat_models(stub_localai):
    stub_localai.models = ["llama3", "all-MiniLM-L6-v2"]
    with TestClient(app) as client:
        response = client.get("/chat/models", headers=_auth_headers())
        assert response.status_code == 200
        payload = response.json()
        assert payload["models"] == ["llama3", "all-MiniLM-L6-v2"]
        assert payload["current_model"] == "llama3"
        assert payload["timestamp"]


def test_chat_models_upstream_failure(stub_localai, monkeypatch):
    async def failing_models() -> List[str]:
        raise UpstreamConnectionError("Unable to connect to LocalAI. Please check if the service is running.")

    monkeypatch.setattr(stub_localai, "get_models", failing_models)
    with TestClient(app) as client:
        response = client.get("/chat/models", headers=_auth_headers())
        assert response.status_code == 500
        assert response.json()["message"] == "Failed to fetch available models"


def test_document_lifecycle(stub_localai):
    headers = _auth_headers()
    with TestClient(app) as client:
        created = client.post(
            "/rag/documents",
            json={"content": "Routers route packets across networks.", "metadata": {"source": "notes.txt"}},
            headers=headers,
        )
        assert created.status_code == 201
        created_payload = created.json()
        document_id = created_payload["document_id"]
        assert created_payload["content_length"] == len("Routers route packets across networks.")
        assert created_payload["embedding_dimensions"] == 384

        fetched = client.get(f"/rag/documents/{document_id}", headers=headers)
        assert fetched.status_code == 200
        document = fetched.json()
        assert document["id"] == document_id
        assert document["content"] == "Routers route packets across networks."
        assert document["metadata"]["source"] == "notes.txt"
        assert document["metadata"]["added_by"] == "test-user"
        assert document["metadata"]["embedding_model"] == "all-MiniLM-L6-v2"
        assert "embedding" not in document

        patched = client.patch(
            f"/rag/documents/{document_id}",
            json={"content": "Switches forward frames."},
            headers=headers,
        )
        assert patched.status_code == 200
        patched_payload = patched.json()
        assert patched_payload["content"] == "Switches forward frames."
        assert patched_payload["metadata"]["source"] == "notes.txt"
        assert patched_payload["metadata"]["updated_by"] == "test-user"
        assert patched_payload["metadata"]["content_length"] == len("Switches forward frames.")

        empty_patch = client.patch(f"/rag/documents/{document_id}", json={}, headers=headers)
        assert empty_patch.status_code == 400

        deleted = client.delete(f"/rag/documents/{document_id}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json()["message"] == "Document deleted successfully"
        assert deleted.json()["document_id"] == document_id

        missing = client.get(f"/rag/documents/{document_id}", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["message"] == "Document not found"

        deleted_again = client.delete(f"/rag/documents/{document_id}", headers=headers)
        assert deleted_again.status_code == 404

        patch_missing = client.patch(f"/rag/documents/{document_id}", json={"metadata": {}}, headers=headers)
        assert patch_missing.status_code == 404

    assert stub_localai.embedded == ["Routers route packets across networks.", "Switches forward frames."]


def test_document_content_validation(stub_localai):
    headers = _auth_headers()
    with TestClient(app) as client:
        largest = client.post("/rag/documents", json={"content": "a" * 50_000}, headers=headers)
        assert largest.status_code == 201

        too_large = client.post("/rag/documents", json={"content": "a" * 50_001}, headers=headers)
        assert too_large.status_code == 400
        assert too_large.json()["message"] == "Content too long (max 50,000 characters)"

        blank = client.post("/rag/documents", json={"content": "  "}, headers=headers)
        assert blank.status_code == 400
        assert blank.json()["message"] == "Content is required and must be a non-empty string"

    assert len(stub_localai.embedded) == 1


def test_rag_query_returns_recent_documents_with_synthetic_scores(stub_localai):
    headers = _auth_headers()
    with TestClient(app) as client:
        for content in ("Older networking note.", "Newest networking note."):
            response = client.post("/rag/documents", json={"content": content, "metadata": {"topic": "net"}}, headers=headers)
            assert response.status_code == 201

        response = client.post(
            "/rag/query",
            json={"query": "networking", "limit": 2, "similarity_threshold": 0.99},
            headers=headers,
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["query"] == "networking"
        assert payload["total_results"] == 2
        assert [result["content"] for result in payload["results"]] == [
            "Newest networking note.",
            "Older networking note.",
        ]
        assert [result["similarity_score"] for result in payload["results"]] == pytest.approx([1.0, 0.9])
        assert payload["results"][0]["metadata"]["topic"] == "net"

        without_metadata = client.post(
            "/rag/query",
            json={"query": "networking", "limit": 1, "include_metadata": False},
            headers=headers,
        )
        assert without_metadata.status_code == 200
        assert "metadata" not in without_metadata.json()["results"][0]


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"query": ""}, "Query is required and must be a non-empty string"),
        ({"query": "q" * 1_001}, "Query too long (max 1,000 characters)"),
        ({"query": "ok", "limit": 25}, "Limit must be between 1 and 20"),
        ({"query": "ok", "limit": 0}, "Limit must be between 1 and 20"),
        ({"query": "ok", "similarity_threshold": 1.5}, "Similarity threshold must be between 0 and 1"),
        ({"query": "ok", "similarity_threshold": -0.1}, "Similarity threshold must be between 0 and 1"),
    ],
)
def test_rag_query_validation(stub_localai, payload, message):
    with TestClient(app) as client:
        response = client.post("/rag/query", json=payload, headers=_auth_headers())
        assert response.status_code == 400
        assert response.json()["message"] == message

    assert stub_localai.embedded == []


@pytest.mark.parametrize(
    "payload",
    [
        {"query": "q" * 1_000, "limit": 20},
        {"query": "ok", "limit": 1, "similarity_threshold": 0},
        {"query": "ok", "similarity_threshold": 1},
    ],
)
def test_rag_query_accepts_boundary_values(stub_localai, payload):
    with TestClient(app) as client:
        response = client.post("/rag/query", json=payload, headers=_auth_headers())
        assert response.status_code == 200

    assert len(stub_localai.embedded) == 1


def test_health_endpoints(stub_localai):
    with TestClient(app) as client:
        live = client.get("/health/live")
        assert live.status_code == 200
        assert live.json()["status"] == "alive"

        ready = client.get("/health/ready")
        assert ready.status_code == 200
        assert ready.json()["status"] == "ready"

        health = client.get("/health")
        assert health.status_code == 200
        payload = health.json()
        assert payload["status"] == "healthy"
        assert payload["services"]["database"] == {"status": "healthy", "backend": "sqlite"}
        assert payload["services"]["localai"]["status"] == "healthy"
        assert payload["services"]["localai"]["model"] == "llama3"

        stub_localai.healthy = False
        degraded = client.get("/health")
        assert degraded.status_code == 503
        assert degraded.json()["status"] == "unhealthy"
        assert degraded.json()["services"]["localai"]["status"] == "unhealthy"


def test_run_serves_app_with_configured_address(monkeypatch):
    import uvicorn

    from backend.app import main

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    main.run()

    server = main.get_config_service().get().server
    assert calls == [(app, {"host": server.host, "port": server.port, "log_level": server.log_level.lower()})]
