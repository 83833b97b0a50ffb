"""
llm_api.py: model inference clients and prompt templates for the pipeline.

Pipeline:
Utterance (free text) + history
    ->  (LLM classification)            IntentClassifier.classify()   task="classify"
RequirementSummary (structured)
    ->  (LLM specification generation)  SpecificationBuilder.build()   task="build"
WorkflowSpecification (validated)
    ->  (n8n deployment)                N8nDeployer.deploy()

Every non-deterministic step goes through `LLMClient.infer`, so tests pin the
model by substituting PinnedLLMClient.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union
import logging

import httpx

from .errors import ClixenError

logger = logging.getLogger(__name__)


class InferenceError(ClixenError):
    """ The model service failed, timed out or returned an unusable response. """


# -------------------------
# PROMPT TEMPLATES
# -------------------------

CLASSIFY_PROMPT = """You analyse requests for workflow automations.
Extract what should start the workflow, what it should do, and which external services it touches.

Conversation so far:
{history}

Latest request:
{utterance}
"""

CLASSIFY_SCHEMA_HINT = """Respond with a JSON object only:
{"trigger": {"type": "webhook|schedule|manual", "description": "..."},
 "actions": ["...", "..."],
 "integrations": ["email", "http", ...]}"""

BUILD_PROMPT = """You design n8n workflows.

Trigger ({trigger_type}): {trigger}
Actions, in order:
{actions}
Integrations: {integrations}
Complexity tier: {tier}

Use ONLY these node kinds:
{kinds}

Rules:
1. Exactly one trigger node, first in the node list.
2. Connect every node; each node must be reachable from the trigger.
3. Node ids are short snake_case strings; connections are keyed by node id.
4. Nodes that need credentials carry {{"credential": {{"type": "..."}}}}.
{corrections}"""

BUILD_SCHEMA_HINT = """Respond with a JSON object only:
{"name": "...",
 "nodes": [{"id": "trigger", "name": "Every Morning", "kind": "n8n-nodes-base.scheduleTrigger",
            "parameters": {...}, "credential": null}],
 "connections": {"trigger": [{"node": "next_node_id", "index": 0}]}}"""


# --------------------------
# CLIENTS
# --------------------------

class LLMClient(ABC):
    """ Model Inference Service: infer(prompt, schema_hint) -> text. """

    @abstractmethod
    def infer(self, prompt: str, schema_hint: str = "", task: str = "") -> str:
        raise NotImplementedError()


class OpenAIChatClient(LLMClient):
    """
    Client for any OpenAI-compatible /chat/completions endpoint.
    Every call runs under an explicit timeout; a timeout is an InferenceError like any other failure.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", base_url: str = "https://api.openai.com/v1",
                 temperature: float = 0.0, timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.model = model
        self.temperature = temperature
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    def infer(self, prompt: str, schema_hint: str = "", task: str = "") -> str:
        messages = []
        if schema_hint:
            messages.append({"role": "system", "content": schema_hint})
        messages.append({"role": "user", "content": prompt})
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        logger.debug("LLM call task=%s model=%s", task, self.model)
        try:
            response = self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]
        except httpx.TimeoutException as e:
            raise InferenceError(f"Model call timed out ({task})") from e
        except httpx.HTTPStatusError as e:
            raise InferenceError(f"Model call failed with HTTP {e.response.status_code} ({task})") from e
        except httpx.HTTPError as e:
            raise InferenceError(f"Model call failed: {e}") from e
        except (KeyError, IndexError, ValueError) as e:
            raise InferenceError(f"Unexpected model response shape ({task})") from e

    def close(self) -> None:
        self._client.close()


Response = Union[str, Exception, Callable[[str], str]]


@dataclass
class InferenceCall:
    task: str
    prompt: str
    schema_hint: str


@dataclass
class PinnedLLMClient(LLMClient):
    """
    Deterministic client for tests and demos.

    `responses` maps a task name to a response or to a list of responses served in
    order (the last one repeats). A response is a string, an exception to raise, or a
    callable receiving the prompt. Every call is recorded in `calls`.
    """
    responses: Dict[str, Union[Response, List[Response]]] = field(default_factory=dict)
    calls: List[InferenceCall] = field(default_factory=list)

    def infer(self, prompt: str, schema_hint: str = "", task: str = "") -> str:
        self.calls.append(InferenceCall(task, prompt, schema_hint))
        if task not in self.responses:
            raise InferenceError(f"No pinned response for task '{task}'")
        pinned = self.responses[task]
        if isinstance(pinned, list):
            served = sum(1 for c in self.calls if c.task == task) - 1
            pinned = pinned[min(served, len(pinned) - 1)]
        if isinstance(pinned, Exception):
            raise pinned
        if callable(pinned):
            return pinned(prompt)
        return pinned

    def calls_for(self, task: str) -> List[InferenceCall]:
        return [c for c in self.calls if c.task == task]
