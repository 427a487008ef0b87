import base64
import json

import pytest
from fastapi.testclient import TestClient

from agent_pipeline.api.main import create_app
from agent_pipeline.config import Settings
from agent_pipeline.container import build_services
from agent_pipeline.ingest.embedder import HashingEmbedder

_POLICY = ("Company policy states employees must encrypt customer data at rest. " * 40).encode()


@pytest.fixture
def client_and_models(make_services, scripted_model):
    chat = scripted_model([])
    classifier = scripted_model([])
    services = make_services(chat, classifier)
    return TestClient(create_app(services)), chat, classifier


def _register_document(client: TestClient, raw: bytes, name: str = "policy.txt") -> dict:
    response = client.post(
        "/documents",
        json={
            "documentId": "doc-1",
            "companyId": "company-1",
            "name": name,
            "mimeType": "text/plain",
            "contentBase64": base64.b64encode(raw).decode(),
        },
    )
    assert response.status_code == 200
    return response.json()


def test_ingest_then_converse(client_and_models) -> None:
    client, chat, classifier = client_and_models
    tools = client.get("/tools").json()["items"]
    research_id = tools[0]["id"]
    assert tools[0]["name"] == "web_research"
    assert "parameterSchema" in tools[0]

    agent = client.post(
        "/agents",
        json={
            "agentId": "agent-1",
            "companyId": "company-1",
            "name": "Policy Bot",
            "enabledToolIds": [research_id],
            "retrievalConfig": {"similarity_threshold": 0.1, "total_max_chunks": 5},
        },
    )
    assert agent.status_code == 200

    locator = _register_document(client, _POLICY)["storageLocator"]
    ingest = client.post(
        "/ingest",
        json={"documentId": "doc-1", "companyId": "company-1", "storageLocator": locator},
    )
    assert ingest.status_code == 200
    assert ingest.json() == {"success": True, "chunkCount": 3, "embeddingDimensions": 256}

    classifier.responses.append(json.dumps({"action_type": "document_search", "confidence": 0.9}))
    chat.responses.append("Customer data must be encrypted at rest [1].")
    converse = client.post(
        "/converse",
        json={
            "message": "What does policy require for customer data?",
            "agentId": "agent-1",
            "userId": "user-1",
            "companyId": "company-1",
        },
    )

    assert converse.status_code == 200
    payload = converse.json()
    assert payload["reply"] == "Customer data must be encrypted at rest [1]."
    assert payload["actionType"] == "document_search"
    assert payload["conversationId"]
    assert payload["contextMetadata"]["usedContext"] is True
    citations = payload["contextMetadata"]["citations"]
    assert 0 < len(citations) <= 5
    assert citations[0]["tier"] == "shared_docs"
    assert citations[0]["relevanceScore"] >= 0.1

    metrics = client.get("/metrics").json()
    assert metrics["total_requests"] == 1
    assert metrics["tier_usage"]["shared_docs"] == len(citations)


def test_ingest_rejects_unreadable_document(client_and_models) -> None:
    client, _, _ = client_and_models
    locator = _register_document(client, b"\x00\x01\x02", name="scan.pdf")["storageLocator"]

    response = client.post(
        "/ingest",
        json={"documentId": "doc-1", "companyId": "company-1", "storageLocator": locator},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("[Document Processing Notice")


def test_error_status_codes(client_and_models) -> None:
    client, _, _ = client_and_models

    missing_field = client.post("/converse", json={"message": "hi", "agentId": "a"})
    assert missing_field.status_code == 400
    assert "error" in missing_field.json()

    unknown_agent = client.post(
        "/converse",
        json={"message": "hi", "agentId": "nope", "userId": "u", "companyId": "c"},
    )
    assert unknown_agent.status_code == 404
    assert unknown_agent.json() == {"error": "agent not found: nope"}

    unknown_document = client.post(
        "/ingest",
        json={"documentId": "ghost", "companyId": "c", "storageLocator": "c/ghost"},
    )
    assert unknown_document.status_code == 404
    assert unknown_document.json() == {"success": False, "error": "document not found: ghost"}


def test_model_failure_is_masked(client_and_models) -> None:
    client, chat, classifier = client_and_models
    client.post("/agents", json={"agentId": "agent-1", "companyId": "company-1", "name": "Bot"})
    classifier.responses.append(json.dumps({"action_type": "assistant_only"}))
    chat.responses.append(RuntimeError("sk-secret-key rejected by upstream"))

    response = client.post(
        "/converse",
        json={"message": "hi", "agentId": "agent-1", "userId": "u", "companyId": "company-1"},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Model provider unavailable, please retry later"}


def test_bearer_token_required_when_configured() -> None:
    settings = Settings(_env_file=None, openai_api_key=None, api_token="s3cret")
    client = TestClient(create_app(build_services(settings, embedder=HashingEmbedder())))

    assert client.get("/health").status_code == 200
    assert client.get("/tools").status_code == 401
    assert client.get("/tools", headers={"Authorization": "Bearer s3cret"}).status_code == 200


def test_converse_without_model_credentials() -> None:
    settings = Settings(_env_file=None, openai_api_key=None)
    client = TestClient(create_app(build_services(settings, embedder=HashingEmbedder())))

    assert client.get("/health").json()["llm_configured"] is False
    response = client.post(
        "/converse",
        json={"message": "hi", "agentId": "a", "userId": "u", "companyId": "c"},
    )
    assert response.status_code == 500


def test_framework_errors_use_error_body(client_and_models) -> None:
    client, _, _ = client_and_models

    missing_route = client.get("/no-such-route")
    assert missing_route.status_code == 404
    assert missing_route.json() == {"error": "Not Found"}

    wrong_method = client.get("/ingest")
    assert wrong_method.status_code == 405
    assert wrong_method.json() == {"error": "Method Not Allowed"}


def test_unexpected_exception_is_masked(make_services, scripted_model) -> None:
    services = make_services(scripted_model([]), scripted_model([]))

    def _crash(*args, **kwargs):
        raise RuntimeError("connection pool exhausted")

    services.ingest_service.ingest_document = _crash
    client = TestClient(create_app(services), raise_server_exceptions=False)
    response = client.post(
        "/ingest",
        json={"documentId": "doc-1", "companyId": "company-1", "storageLocator": "company-1/doc-1"},
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


def test_traces_list_and_detail(client_and_models) -> None:
    client, chat, classifier = client_and_models
    client.post("/agents", json={"agentId": "agent-1", "companyId": "company-1", "name": "Bot"})
    classifier.responses.append(json.dumps({"action_type": "assistant_only", "confidence": 0.9}))
    chat.responses.append("Hello!")
    client.post(
        "/converse",
        json={"message": "hi", "agentId": "agent-1", "userId": "u", "companyId": "company-1"},
    )

    [item] = client.get("/traces").json()["items"]
    assert item["agent_id"] == "agent-1"
    assert item["action_type"] == "assistant_only"

    detail = client.get(f"/traces/{item['trace_id']}")
    assert detail.status_code == 200
    assert detail.json()["trace_id"] == item["trace_id"]

    missing = client.get("/traces/ghost")
    assert missing.status_code == 404
    assert missing.json() == {"error": "trace not found: ghost"}
