""" Pipeline settings: YAML file plus environment overrides, validated with pydantic. """
import os
from pathlib import Path
from typing import List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .workflow.models import ComplexityTier, Severity

DEFAULT_NODE_KINDS = [
    "n8n-nodes-base.webhook",
    "n8n-nodes-base.scheduleTrigger",
    "n8n-nodes-base.manualTrigger",
    "n8n-nodes-base.httpRequest",
    "n8n-nodes-base.emailSend",
    "n8n-nodes-base.respondToWebhook",
    "n8n-nodes-base.code",
    "n8n-nodes-base.set",
    "n8n-nodes-base.if",
    "n8n-nodes-base.merge",
    "n8n-nodes-base.wait",
    "n8n-nodes-base.dateTime",
    "n8n-nodes-base.noOp",
]

DEFAULT_CREDENTIAL_TYPES = ["smtp", "httpHeaderAuth", "httpBasicAuth"]


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class LLMSettings(_Section):
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    timeout_s: float = Field(default=30.0, gt=0)


class N8nSettings(_Section):
    api_url: str = "http://localhost:5678/api/v1"
    public_url: Optional[str] = None
    api_key: str = ""
    timeout_s: float = Field(default=15.0, gt=0)


class PipelineSettings(_Section):
    max_utterance_chars: int = Field(default=500, gt=0)
    truncate_long_utterances: bool = False
    classification_attempts: int = Field(default=3, ge=1)
    classification_backoff_s: float = Field(default=0.5, ge=0)
    max_generation_attempts: int = Field(default=3, ge=1)
    deployment_retries: int = Field(default=1, ge=0)
    orphan_severity: Severity = Severity.BLOCKING
    auto_repair: bool = False
    capability_ttl_s: float = Field(default=300.0, ge=0)


class SmokeSettings(_Section):
    enabled: bool = True
    timeout_s: float = Field(default=10.0, gt=0)
    method: Literal["GET", "POST"] = "POST"


class LimitSettings(_Section):
    simple: int = Field(default=8, ge=1)
    standard: int = Field(default=8, ge=1)
    advanced: int = Field(default=12, ge=1)
    max_workflows: Optional[int] = Field(default=None, ge=0)

    def node_ceilings(self):
        return {
            ComplexityTier.SIMPLE: self.simple,
            ComplexityTier.STANDARD: self.standard,
            ComplexityTier.ADVANCED: self.advanced,
        }


class Settings(_Section):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    n8n: N8nSettings = Field(default_factory=N8nSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    smoke: SmokeSettings = Field(default_factory=SmokeSettings)
    limits: LimitSettings = Field(default_factory=LimitSettings)
    node_kinds: List[str] = Field(default_factory=lambda: list(DEFAULT_NODE_KINDS))
    credential_types: List[str] = Field(default_factory=lambda: list(DEFAULT_CREDENTIAL_TYPES))


# env var -> (section, key)
ENV_OVERRIDES = {
    "N8N_API_URL": ("n8n", "api_url"),
    "N8N_API_KEY": ("n8n", "api_key"),
    "N8N_PUBLIC_URL": ("n8n", "public_url"),
    "OPENAI_API_KEY": ("llm", "api_key"),
    "CLIXEN_LLM_MODEL": ("llm", "model"),
    "CLIXEN_LLM_BASE_URL": ("llm", "base_url"),
}


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from `path` (or $CLIXEN_CONFIG when set), then apply environment overrides.
    With neither a file nor overrides, the defaults are returned.
    """
    path = path or os.environ.get("CLIXEN_CONFIG")
    raw = {}
    if path:
        try:
            with open(path, "r") as fh:
                raw = yaml.safe_load(fh) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Settings file {path} is not valid YAML: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw.setdefault(section, {})
            if not isinstance(raw[section], dict):
                raise ConfigurationError(f"Settings section '{section}' must be a mapping")
            raw[section][key] = value

    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
