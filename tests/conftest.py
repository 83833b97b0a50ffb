"""Shared fixtures: canned model responses and a stub n8n engine."""

import json

import httpx
import pytest

from clixen.config import DEFAULT_NODE_KINDS
from clixen.llm_api import PinnedLLMClient
from clixen.workflow.models import PlatformLimits


def digest_spec():
    """Schedule -> fetch -> email. Valid under the default limits."""
    return {
        "name": "Daily email digest",
        "nodes": [
            {"id": "every_morning", "name": "Every Morning", "kind": "n8n-nodes-base.scheduleTrigger",
             "parameters": {"rule": {"interval": [{"field": "cronExpression", "expression": "0 9 * * *"}]}}},
            {"id": "fetch_news", "name": "Fetch News", "kind": "n8n-nodes-base.httpRequest",
             "parameters": {"url": "https://example.com/feed.json"}},
            {"id": "send_digest", "name": "Send Digest", "kind": "n8n-nodes-base.emailSend",
             "parameters": {"toEmail": "me@example.com", "subject": "Daily digest", "text": "{{ $json.body }}"},
             "credential": {"type": "smtp", "id": "1", "name": "SMTP account"}},
        ],
        "connections": {
            "every_morning": [{"node": "fetch_news", "index": 0}],
            "fetch_news": [{"node": "send_digest", "index": 0}],
        },
    }


def webhook_spec():
    return {
        "name": "Lead intake",
        "nodes": [
            {"id": "new_lead", "name": "New Lead", "kind": "n8n-nodes-base.webhook",
             "parameters": {"path": "new-lead", "httpMethod": "POST"}},
            {"id": "notify", "name": "Notify Sales", "kind": "n8n-nodes-base.httpRequest",
             "parameters": {"url": "https://crm.example.com/leads", "method": "POST"}},
        ],
        "connections": {"new_lead": [{"node": "notify", "index": 0}]},
    }


def wide_spec(n_actions=12):
    """A trigger followed by one HTTP node per integration, chained."""
    nodes = [{"id": "start", "name": "Start", "kind": "n8n-nodes-base.manualTrigger"}]
    connections = {}
    previous = "start"
    for i in range(n_actions):
        node_id = f"call_{i}"
        nodes.append({"id": node_id, "name": f"Call {i}", "kind": "n8n-nodes-base.httpRequest",
                      "parameters": {"url": f"https://service{i}.example.com/hook"}})
        connections[previous] = [{"node": node_id}]
        previous = node_id
    return {"name": "Everything everywhere", "nodes": nodes, "connections": connections}


DIGEST_INTENT = {
    "trigger": {"type": "schedule", "description": "every day at 9am"},
    "actions": ["fetch the latest news", "send me an email digest"],
    "integrations": ["email"],
}


@pytest.fixture
def digest_llm():
    return PinnedLLMClient({
        "classify": json.dumps(DIGEST_INTENT),
        "build": json.dumps(digest_spec()),
    })


@pytest.fixture
def limits():
    return PlatformLimits(
        max_nodes=8,
        allowed_node_kinds=frozenset(DEFAULT_NODE_KINDS),
        credential_types=frozenset({"smtp"}),
    )


class FakeEngine:
    """
    Stub n8n server behind an httpx.MockTransport.
    Every request is recorded; `fail` maps (method, path suffix) to a list of status codes served first.
    """

    def __init__(self, fail=None, credentials=("smtp",)):
        self.requests = []
        self.fail = {k: list(v) for k, v in (fail or {}).items()}
        self.credentials = list(credentials)
        self.created = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for (method, suffix), codes in self.fail.items():
            if request.method == method and path.endswith(suffix) and codes:
                return httpx.Response(codes.pop(0), json={"message": "engine says no"})

        if request.method == "POST" and path.endswith("/api/v1/workflows"):
            body = json.loads(request.content)
            workflow_id = f"wf{len(self.created) + 1}"
            self.created.append(body)
            return httpx.Response(200, json={"id": workflow_id, **body})
        if request.method == "POST" and path.endswith("/activate"):
            return httpx.Response(200, json={"active": True})
        if request.method == "GET" and path.endswith("/types/nodes.json"):
            return httpx.Response(200, json=[{"name": k} for k in DEFAULT_NODE_KINDS])
        if request.method == "GET" and path.endswith("/api/v1/credentials"):
            return httpx.Response(200, json={"data": [{"id": "1", "type": t} for t in self.credentials]})
        if request.method == "GET" and path.endswith("/healthz"):
            return httpx.Response(200, json={"status": "ok"})
        if "/webhook/" in path:
            return httpx.Response(200, json={"received": True})
        return httpx.Response(404, json={"message": "not found"})

    def calls(self, method, suffix):
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]


@pytest.fixture
def engine():
    return FakeEngine()
