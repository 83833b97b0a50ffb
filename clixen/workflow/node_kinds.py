"""
Registry of node kinds the builder may emit.

Each kind maps to a closed configuration shape (a pydantic model), so node
parameters are a tagged union keyed by `kind` and are validated when the node
is constructed. Kinds without a dedicated shape fall back to GenericConfig.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field


class NodeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GenericConfig(NodeConfig):
    model_config = ConfigDict(extra="allow")


@dataclass(frozen=True)
class NodeKind:
    type: str
    config: Type[NodeConfig]
    trigger: bool = False
    credential_types: Tuple[str, ...] = ()
    produces_output: bool = False
    type_version: float = 1


_KINDS: Dict[str, NodeKind] = {}


def register_kind(type_name: str, *, trigger: bool = False, credentials: Tuple[str, ...] = (),
                  output: bool = False, type_version: float = 1):
    def _wrap(cls):
        _KINDS[type_name] = NodeKind(type_name, cls, trigger, tuple(credentials), output, type_version)
        return cls
    return _wrap


def get_kind(type_name: str) -> Optional[NodeKind]:
    return _KINDS.get(type_name)


def registered_kinds() -> List[str]:
    return list(_KINDS)


def make_config(type_name: str, params: Optional[Dict[str, Any]]) -> NodeConfig:
    """ Validate `params` against the configuration shape registered for `type_name`. """
    kind = _KINDS.get(type_name)
    cls = kind.config if kind else GenericConfig
    return cls.model_validate(params or {})


def is_trigger_kind(type_name: str) -> bool:
    kind = _KINDS.get(type_name)
    if kind:
        return kind.trigger
    # Unregistered kinds discovered from the engine follow n8n's naming
    return type_name.endswith("Trigger") or type_name.endswith(".webhook")


def required_credentials(type_name: str) -> Tuple[str, ...]:
    kind = _KINDS.get(type_name)
    return kind.credential_types if kind else ()


def produces_output(type_name: str) -> bool:
    kind = _KINDS.get(type_name)
    return bool(kind and kind.produces_output)


def default_type_version(type_name: str) -> float:
    kind = _KINDS.get(type_name)
    return kind.type_version if kind else 1


# -------------------------
# TRIGGERS
# -------------------------

@register_kind("n8n-nodes-base.webhook", trigger=True, type_version=2)
class WebhookConfig(NodeConfig):
    path: str = ""
    httpMethod: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "POST"
    responseMode: str = "onReceived"
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.scheduleTrigger", trigger=True, type_version=1.2)
class ScheduleTriggerConfig(NodeConfig):
    rule: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.manualTrigger", trigger=True)
class ManualTriggerConfig(NodeConfig):
    pass


register_kind("n8n-nodes-base.cron", trigger=True)(GenericConfig)
register_kind("n8n-nodes-base.interval", trigger=True)(GenericConfig)
register_kind("n8n-nodes-base.errorTrigger", trigger=True)(GenericConfig)


# -------------------------
# ACTIONS
# -------------------------

@register_kind("n8n-nodes-base.httpRequest", output=True, type_version=4.2)
class HttpRequestConfig(NodeConfig):
    url: str = ""
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    authentication: str = "none"
    sendQuery: bool = False
    queryParameters: Dict[str, Any] = Field(default_factory=dict)
    sendHeaders: bool = False
    headerParameters: Dict[str, Any] = Field(default_factory=dict)
    sendBody: bool = False
    specifyBody: Optional[str] = None
    bodyParameters: Dict[str, Any] = Field(default_factory=dict)
    jsonBody: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.emailSend", credentials=("smtp",), output=True, type_version=2.1)
class EmailSendConfig(NodeConfig):
    fromEmail: str = ""
    toEmail: str = ""
    subject: str = ""
    emailFormat: Literal["text", "html", "both"] = "text"
    text: str = ""
    html: str = ""
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.respondToWebhook", output=True, type_version=1.1)
class RespondToWebhookConfig(NodeConfig):
    respondWith: str = "json"
    responseBody: str = ""
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.code", type_version=2)
class CodeConfig(NodeConfig):
    mode: Literal["runOnceForAllItems", "runOnceForEachItem"] = "runOnceForAllItems"
    language: Literal["javaScript", "python"] = "javaScript"
    jsCode: str = ""
    pythonCode: str = ""


@register_kind("n8n-nodes-base.function")
class FunctionConfig(NodeConfig):
    functionCode: str = ""


@register_kind("n8n-nodes-base.set", type_version=3.4)
class SetConfig(NodeConfig):
    mode: str = "manual"
    assignments: Dict[str, Any] = Field(default_factory=dict)
    values: Dict[str, Any] = Field(default_factory=dict)
    includeOtherFields: bool = False
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.if", type_version=2)
class IfConfig(NodeConfig):
    conditions: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.merge", type_version=3)
class MergeConfig(NodeConfig):
    mode: str = "append"
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.wait", type_version=1.1)
class WaitConfig(NodeConfig):
    resume: str = "timeInterval"
    amount: Optional[float] = None
    unit: Literal["seconds", "minutes", "hours", "days"] = "seconds"


@register_kind("n8n-nodes-base.dateTime", type_version=2)
class DateTimeConfig(NodeConfig):
    operation: str = "getCurrentDate"
    outputFieldName: str = "currentDate"
    options: Dict[str, Any] = Field(default_factory=dict)


@register_kind("n8n-nodes-base.noOp")
class NoOpConfig(NodeConfig):
    pass


register_kind("n8n-nodes-base.postgres", credentials=("postgres",), output=True, type_version=2.5)(GenericConfig)
register_kind("n8n-nodes-base.redis", credentials=("redis",), output=True)(GenericConfig)
register_kind("n8n-nodes-base.supabase", credentials=("supabaseApi",), output=True)(GenericConfig)
register_kind("@n8n/n8n-nodes-langchain.openAi", credentials=("openAiApi",), type_version=1.8)(GenericConfig)


# Kinds needing per-user OAuth; rejected outright, with a supported alternative where one exists
BLOCKED_KINDS: Dict[str, Optional[str]] = {
    "n8n-nodes-base.gmail": "n8n-nodes-base.emailSend",
    "n8n-nodes-base.googleSheets": None,
    "n8n-nodes-base.googleDrive": None,
    "n8n-nodes-base.slack": "n8n-nodes-base.httpRequest",
    "n8n-nodes-base.discord": "n8n-nodes-base.httpRequest",
    "n8n-nodes-base.twitter": None,
    "n8n-nodes-base.github": "n8n-nodes-base.httpRequest",
    "n8n-nodes-base.notion": "n8n-nodes-base.httpRequest",
    "n8n-nodes-base.airtable": None,
    "n8n-nodes-base.hubspot": None,
    "n8n-nodes-base.salesforce": None,
    "n8n-nodes-base.microsoftTeams": None,
    "n8n-nodes-base.zoom": None,
}

# Short trigger names used by the intent classifier
TRIGGER_KINDS: Dict[str, str] = {
    "webhook": "n8n-nodes-base.webhook",
    "schedule": "n8n-nodes-base.scheduleTrigger",
    "manual": "n8n-nodes-base.manualTrigger",
}
