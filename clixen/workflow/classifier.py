""" Intent classifier: utterance + history -> RequirementSummary. """

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ClassificationFailure
from ..llm_api import CLASSIFY_PROMPT, CLASSIFY_SCHEMA_HINT, LLMClient
from .compiler import parse_structured
from .models import ComplexityTier, ConversationTurn, RequirementSummary

logger = logging.getLogger(__name__)

_SCHEDULE_WORDS = re.compile(
    r"\b(every|daily|hourly|weekly|monthly|each (day|morning|evening|week)|cron|schedule|at \d{1,2}(:\d{2})?\s*(am|pm)?|\d{1,2}\s*(am|pm))\b",
    re.IGNORECASE,
)
_WEBHOOK_WORDS = re.compile(r"\b(webhook|when .* (receive|arrive|submit|post)\w*|incoming|form submission|api call)\b", re.IGNORECASE)


class IntentClassifier:
    """
    Derives trigger, actions and integrations with one model call.
    The complexity tier is computed here from the extracted counts, never chosen by the model,
    so the node ceiling stays enforceable downstream.
    """

    def __init__(self, llm: LLMClient, max_chars: int = 500, truncate: bool = False, history_turns: int = 6):
        self.llm = llm
        self.max_chars = max_chars
        self.truncate = truncate
        self.history_turns = history_turns

    def classify(self, utterance: str, history: Optional[Sequence[ConversationTurn]] = None) -> RequirementSummary:
        text = (utterance or "").strip()
        if not text:
            raise ClassificationFailure("Request is empty", retryable=False)
        if len(text) > self.max_chars:
            if not self.truncate:
                raise ClassificationFailure(f"Request is longer than {self.max_chars} characters", retryable=False)
            text = text[:self.max_chars]

        prompt = CLASSIFY_PROMPT.format(history=self._render_history(history or []), utterance=text)
        try:
            raw = self.llm.infer(prompt, CLASSIFY_SCHEMA_HINT, task="classify")
            data = parse_structured(raw)
        except Exception as e:
            # parser errors quote the model's text, so the detail stays in the log
            logger.warning("[CLASSIFY] unusable model response: %s", e)
            raise ClassificationFailure("The model's answer could not be read") from e

        summary = self._summarise(data, text)
        logger.info("[CLASSIFY] trigger=%s actions=%d integrations=%d tier=%s",
                    summary.trigger_type, len(summary.action_descriptions),
                    len(summary.integration_tags), summary.complexity_tier.value)
        return summary

    def _summarise(self, data: Dict[str, Any], utterance: str) -> RequirementSummary:
        trigger = data.get("trigger")
        if isinstance(trigger, str):
            trigger = {"description": trigger}
        if not isinstance(trigger, dict) or not str(trigger.get("description") or "").strip():
            raise ClassificationFailure("Model response has no trigger description")
        description = str(trigger["description"]).strip()

        actions = _unique([_describe(a) for a in _items(data, "actions")])
        integrations = frozenset(str(i).strip().lower() for i in _items(data, "integrations") if str(i).strip())
        tier = ComplexityTier.from_count(len(actions) + len(integrations))

        return RequirementSummary(
            trigger_description=description,
            action_descriptions=tuple(actions),
            integration_tags=integrations,
            complexity_tier=tier,
            trigger_type=_trigger_type(trigger.get("type"), description),
            utterance=utterance,
        )

    def _render_history(self, history: Sequence[ConversationTurn]) -> str:
        turns = list(history)[-self.history_turns:]
        if not turns:
            return "(none)"
        return "\n".join(f"{t.role}: {t.content}" for t in turns)


def _items(data: Dict[str, Any], field: str) -> List[Any]:
    value = data.get(field)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ClassificationFailure(f"Model response field '{field}' is not a list")


def _describe(action: Any) -> str:
    if isinstance(action, dict):
        return str(action.get("description") or action.get("type") or "").strip()
    return str(action).strip()


def _unique(items: List[str]) -> List[str]:
    seen, out = set(), []
    for item in items:
        key = item.lower()
        if item and key not in seen:
            seen.add(key)
            out.append(item)
    return out


def _trigger_type(declared: Any, description: str) -> str:
    declared = str(declared or "").strip().lower()
    if declared in ("webhook", "schedule", "manual"):
        return declared
    if _SCHEDULE_WORDS.search(description):
        return "schedule"
    if _WEBHOOK_WORDS.search(description):
        return "webhook"
    return "manual"
