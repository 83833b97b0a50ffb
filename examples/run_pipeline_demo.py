#!/usr/bin/env python3
"""
Example: run the whole pipeline offline.

The model is pinned (PinnedLLMClient) and n8n is replaced by an in-process
httpx.MockTransport, so the demo needs no API keys and no running engine.
The first request deploys; the second asks for too much and is refused with
an explanation. The deployed workflow is also written out as n8n JSON.
"""
import json
import logging
from pathlib import Path

import httpx

from clixen.config import DEFAULT_NODE_KINDS, Settings
from clixen.integrations.n8n.codec import export_json
from clixen.llm_api import PinnedLLMClient
from clixen.pipeline import ClixenPipeline
from clixen.workflow.models import OwnerContext
from clixen.workflow.schema import WorkflowSpecification

DIGEST = {
    "name": "Daily email digest",
    "nodes": [
        {"id": "every_morning", "name": "Every Morning", "kind": "n8n-nodes-base.scheduleTrigger",
         "parameters": {"rule": {"interval": [{"field": "cronExpression", "expression": "0 9 * * *"}]}}},
        {"id": "fetch_news", "name": "Fetch News", "kind": "n8n-nodes-base.httpRequest",
         "parameters": {"url": "https://hnrss.org/frontpage.jsonfeed"}},
        {"id": "send_digest", "name": "Send Digest", "kind": "n8n-nodes-base.emailSend",
         "parameters": {"toEmail": "me@example.com", "subject": "Your morning digest",
                        "text": "{{ $json.items.map(i => i.title).join('\\n') }}"},
         "credential": {"type": "smtp"}},
    ],
    "connections": {"every_morning": ["fetch_news"], "fetch_news": ["send_digest"]},
}


def fake_n8n(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/types/nodes.json"):
        return httpx.Response(200, json=[{"name": k} for k in DEFAULT_NODE_KINDS])
    if path.endswith("/credentials"):
        return httpx.Response(200, json={"data": [{"id": "1", "type": "smtp"}]})
    if path.endswith("/workflows"):
        return httpx.Response(200, json={"id": "demo-1", **json.loads(request.content)})
    if path.endswith("/activate"):
        return httpx.Response(200, json={"active": True})
    return httpx.Response(404, json={"message": "not found"})


def print_result(title, result):
    print(f"\n=== {title} ===")
    print(f"success: {result.success}")
    if result.deployment_result:
        print(f"workflow: {result.deployment_result.workflow_name} ({result.deployment_result.engine_workflow_id})")
        print(f"endpoint: {result.deployment_result.entry_endpoint}")
    for line in result.explanation:
        print(f"  - {line}")
    for warning in result.warnings:
        print(f"  ! {warning}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    owner = OwnerContext(user_id="demo", project_id="p1")
    settings = Settings(n8n={"api_url": "http://n8n.local/api/v1", "api_key": "demo"}, limits={"advanced": 8})

    llm = PinnedLLMClient({
        "classify": [
            json.dumps({"trigger": {"type": "schedule", "description": "every day at 9am"},
                        "actions": ["fetch the news", "email me a digest"], "integrations": ["email"]}),
            json.dumps({"trigger": {"type": "manual", "description": "when I press run"},
                        "actions": ["sync"], "integrations": [f"tool{i}" for i in range(12)]}),
        ],
        "build": lambda prompt: json.dumps(DIGEST) if "digest" in prompt else json.dumps(_too_big()),
    })
    pipeline = ClixenPipeline.from_settings(settings, llm=llm, transport=httpx.MockTransport(fake_n8n))

    result = pipeline.run("send me a daily 9am email digest", [], owner)
    print_result("Daily digest", result)
    if result.success:
        out = Path("daily_digest_n8n_workflow.json")
        export_json(WorkflowSpecification.model_validate(result.attempts[0].spec_snapshot), out)
        print(f"Wrote n8n workflow JSON to: {out}")

    result = pipeline.run("sync all twelve of my tools", [], owner)
    print_result("Twelve integrations", result)
    pipeline.close()


def _too_big():
    nodes = [{"id": "start", "kind": "n8n-nodes-base.manualTrigger"}]
    nodes += [{"id": f"tool_{i}", "kind": "n8n-nodes-base.httpRequest",
               "parameters": {"url": f"https://tool{i}.example.com/sync"}} for i in range(12)]
    connections = {nodes[i]["id"]: [nodes[i + 1]["id"]] for i in range(len(nodes) - 1)}
    return {"name": "Sync everything", "nodes": nodes, "connections": connections}


if __name__ == '__main__':
    main()
