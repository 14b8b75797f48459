import pytest
from fastapi.testclient import TestClient

from slack_gateway.main import SESSION_HEADER, create_app

from conftest import OWNER_ID

DIRECT_TOKEN = "xoxp-direct"


@pytest.fixture
def client(settings, registries, fake_slack):
    return TestClient(create_app(settings, registries, fake_slack.transport()))


def rpc(method, msg_id=1, **params):
    body = {"jsonrpc": "2.0", "method": method, "id": msg_id}
    if params:
        body["params"] = params
    return body


def initialize(client, token=DIRECT_TOKEN) -> str:
    resp = client.post("/mcp", json=rpc("initialize"), headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    return resp.headers[SESSION_HEADER]


def test_initialize_creates_session(client, registries):
    resp = client.post("/mcp", json=rpc("initialize"), headers={"Authorization": f"Bearer {DIRECT_TOKEN}"})

    body = resp.json()
    assert body["result"]["serverInfo"]["name"] == "slack-mcp-server"
    session_id = resp.headers[SESSION_HEADER]
    assert registries.sessions.get(session_id)["token_key"] == f"T0ACME:{OWNER_ID}"


def test_cors_preflight(client):
    resp = client.options(
        "/mcp",
        headers={
            "Origin": "https://claude.ai",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type, mcp-session-id",
        },
    )

    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]
    assert SESSION_HEADER in resp.headers["access-control-allow-headers"].lower()


def test_cors_exposes_session_header(client):
    resp = client.post(
        "/mcp",
        json=rpc("initialize"),
        headers={"Authorization": f"Bearer {DIRECT_TOKEN}", "Origin": "https://claude.ai"},
    )

    assert resp.headers["access-control-allow-origin"] == "*"
    assert SESSION_HEADER in resp.headers["access-control-expose-headers"]
    assert resp.headers[SESSION_HEADER]


def test_initialize_requires_auth(client):
    resp = client.post("/mcp", json=rpc("initialize"))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == -32000

    resp = client.post("/mcp", json=rpc("initialize"), headers={"Authorization": "Bearer forged.jwt.value"})
    assert resp.status_code == 401


def test_requests_need_known_session(client):
    resp = client.post("/mcp", json=rpc("tools/list"))
    assert resp.status_code == 400

    resp = client.post("/mcp", json=rpc("tools/list"), headers={SESSION_HEADER: "nope"})
    assert resp.status_code == 400


def test_tools_list(client):
    session_id = initialize(client)
    resp = client.post("/mcp", json=rpc("tools/list"), headers={SESSION_HEADER: session_id})

    tools = resp.json()["result"]["tools"]
    assert len(tools) == 11
    assert all("inputSchema" in t for t in tools)


def test_tools_call_ambiguous_is_structured_error(client, fake_slack):
    session_id = initialize(client)
    resp = client.post(
        "/mcp",
        json=rpc("tools/call", name="slack_send_dm", arguments={"user": "ali", "text": "hi"}),
        headers={SESSION_HEADER: session_id},
    )

    result = resp.json()["result"]
    assert result["isError"] is True
    assert result["structuredContent"]["error"] == "ambiguous"
    assert len(result["structuredContent"]["candidates"]) == 2
    assert fake_slack.calls_to("chat.postMessage") == []


def test_tools_call_sends_as_user(client, fake_slack):
    session_id = initialize(client)
    resp = client.post(
        "/mcp",
        json=rpc("tools/call", name="slack_send_message", arguments={"channel": "C0GENERAL1", "text": "hello"}),
        headers={SESSION_HEADER: session_id},
    )

    assert resp.json()["result"]["isError"] is False
    assert fake_slack.calls_to("chat.postMessage") == [{"channel": "C0GENERAL1", "text": "hello"}]


def test_resources(client):
    session_id = initialize(client)
    headers = {SESSION_HEADER: session_id}

    listed = client.post("/mcp", json=rpc("resources/list"), headers=headers).json()["result"]["resources"]
    assert "slack://system/init" in {r["uri"] for r in listed}

    read = client.post("/mcp", json=rpc("resources/read", uri="slack://user/context"), headers=headers).json()
    assert OWNER_ID in read["result"]["contents"][0]["text"]

    missing = client.post("/mcp", json=rpc("resources/read", uri="slack://nope"), headers=headers).json()
    assert missing["error"]["code"] == -32602


def test_protocol_edges(client):
    session_id = initialize(client)
    headers = {SESSION_HEADER: session_id}

    assert client.post("/mcp", json=rpc("ping"), headers=headers).json()["result"] == {}
    assert client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"}).status_code == 202
    assert client.post("/mcp", json=rpc("bogus"), headers=headers).json()["error"]["code"] == -32601

    resp = client.post("/mcp", content=b"{not json", headers={"content-type": "application/json"})
    assert resp.json()["error"]["code"] == -32700


def test_delete_session(client, registries):
    session_id = initialize(client)

    assert client.delete("/mcp").status_code == 400
    assert client.delete("/mcp", headers={SESSION_HEADER: session_id}).status_code == 200
    assert registries.sessions.get(session_id) is None
    assert client.delete("/mcp", headers={SESSION_HEADER: session_id}).status_code == 404


def test_session_dies_with_slack_connection(client, registries):
    session_id = initialize(client)
    registries.slack_tokens.delete(f"T0ACME:{OWNER_ID}")

    resp = client.post("/mcp", json=rpc("tools/list"), headers={SESSION_HEADER: session_id})
    assert resp.status_code == 401


def test_issued_access_token_initializes(client):
    # Connect through the OAuth flow and use the issued bearer token
    resp = client.get(
        "/authorize",
        params={"state": "s", "redirect_uri": "http://localhost:1/cb"},
        follow_redirects=False,
    )
    auth_session = resp.headers["location"].split("auth_session=")[1]
    resp = client.get("/oauth/callback", params={"code": "c", "state": auth_session}, follow_redirects=False)
    code = resp.headers["location"].split("code=")[1].split("&")[0]
    token = client.post("/token", data={"code": code}).json()["access_token"]

    assert initialize(client, token)

    client.post("/revoke", data={"token": token})
    resp = client.post("/mcp", json=rpc("initialize"), headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_health_and_root(client):
    initialize(client)
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["connected_users"] == 1
    assert health["active_sessions"] == 1

    assert client.get("/").json()["endpoints"]["mcp_endpoint"] == "http://testserver/mcp"


def test_debug_endpoint_is_gated(settings, registries, fake_slack, client):
    assert client.get("/debug/users").status_code == 404

    settings.ENABLE_DEBUG_ENDPOINTS = True
    enabled = TestClient(create_app(settings, registries, fake_slack.transport()))
    initialize(enabled)
    users = enabled.get("/debug/users").json()["connected_users"]
    assert users[0]["key"] == f"T0ACME:{OWNER_ID}"
    assert "access_token" not in users[0]
