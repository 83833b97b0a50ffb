"""Tests for settings loading."""

import pytest

from clixen.config import ENV_OVERRIDES, Settings, load_settings
from clixen.errors import ConfigurationError
from clixen.workflow.models import ComplexityTier, Severity


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(ENV_OVERRIDES) + ["CLIXEN_CONFIG"]:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    """Without a file or environment, the defaults apply."""
    settings = load_settings()
    assert settings == Settings()
    assert settings.pipeline.max_utterance_chars == 500
    assert settings.pipeline.max_generation_attempts == 3
    assert settings.pipeline.deployment_retries == 1
    assert settings.pipeline.orphan_severity is Severity.BLOCKING
    assert settings.smoke.timeout_s == 10
    assert settings.limits.node_ceilings()[ComplexityTier.SIMPLE] == 8


def test_yaml_file_and_env_overrides(tmp_path, monkeypatch):
    """File values load; environment variables win for the keys they cover."""
    path = tmp_path / "clixen.yaml"
    path.write_text(
        "n8n:\n"
        "  api_url: http://file.test/api/v1\n"
        "pipeline:\n"
        "  orphan_severity: advisory\n"
        "  auto_repair: true\n"
        "limits:\n"
        "  advanced: 16\n"
    )
    monkeypatch.setenv("CLIXEN_CONFIG", str(path))
    monkeypatch.setenv("N8N_API_KEY", "from-env")

    settings = load_settings()
    assert settings.n8n.api_url == "http://file.test/api/v1"
    assert settings.n8n.api_key == "from-env"
    assert settings.pipeline.orphan_severity is Severity.ADVISORY
    assert settings.pipeline.auto_repair is True
    assert settings.limits.advanced == 16


@pytest.mark.parametrize("content", [
    "pipeline:\n  max_attempts: 3\n",           # unknown key
    "pipeline:\n  max_generation_attempts: 0\n",
    "smoke:\n  method: DELETE\n",
    "- just\n- a list\n",
    "n8n: [unclosed\n",
])
def test_invalid_settings_rejected(tmp_path, content):
    """Unknown keys, bad values and malformed YAML are configuration errors."""
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_settings(path)


def test_missing_file_rejected(tmp_path):
    """A configured but missing file is an error, not silently ignored."""
    with pytest.raises(ConfigurationError, match="Cannot read"):
        load_settings(tmp_path / "nope.yaml")
