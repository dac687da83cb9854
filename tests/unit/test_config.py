import logging

import pytest

from translation_flow.config import TranslationSettings, load_settings
from translation_flow.errors import ConfigurationError


@pytest.mark.unit
def test_settings_from_env_defaults():
    settings = TranslationSettings.from_env({})
    assert settings == TranslationSettings()
    assert settings.model == "gpt-4o-mini"
    assert not settings.has_credentials


@pytest.mark.unit
def test_settings_from_env_parses_and_rejects_values(caplog):
    env = {
        "GPT_API_URL": " https://api.example.com ",
        "GPT_API_KEY": "sk-1",
        "GPT_MODEL": "",
        "SHOPIFY_BILLING_ENABLED": "true",
        "BILLING_BYPASS": "maybe",
        "TRANSLATION_MAX_RETRIES": "5",
        "TRANSLATION_TIMEOUT_SECONDS": "abc",
        "TRANSLATION_RETRY_DELAY": "-1",
        "TRANSLATION_CACHE_TTL": "120",
    }
    with caplog.at_level(logging.WARNING, logger="translation_flow.config"):
        settings = TranslationSettings.from_env(env)

    assert settings.api_url == "https://api.example.com"
    assert settings.model == "gpt-4o-mini"
    assert settings.billing_enabled is True
    assert settings.billing_bypass is False
    assert settings.max_retries == 5
    assert settings.timeout_seconds == 45.0
    assert settings.retry_delay == 1.0
    assert settings.cache_ttl == 120.0
    assert settings.has_credentials
    messages = " ".join(record.getMessage() for record in caplog.records)
    assert "TRANSLATION_TIMEOUT_SECONDS" in messages
    assert "BILLING_BYPASS" in messages


@pytest.mark.unit
def test_load_settings_overlays_yaml(tmp_path, caplog):
    path = tmp_path / "translation.yaml"
    path.write_text(
        "model: custom-model\nmax_chunk_size: 800\nchunk_concurrency: 2\ncache_ttl: nope\nunknown_key: 1\n",
        encoding="utf-8",
    )
    with caplog.at_level(logging.WARNING, logger="translation_flow.config"):
        settings = load_settings(path, environ={"GPT_MODEL": "env-model"})

    assert settings.model == "custom-model"
    assert settings.max_chunk_size == 800
    assert settings.chunk_concurrency == 2
    assert settings.cache_ttl == 3600.0
    assert "unknown_key" in caplog.text


@pytest.mark.unit
def test_load_settings_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        load_settings(tmp_path / "missing.yaml", environ={})

    listed = tmp_path / "list.yaml"
    listed.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(listed, environ={})

    broken = tmp_path / "broken.yaml"
    broken.write_text("model: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(broken, environ={})

    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_settings(empty, environ={}) == TranslationSettings()


@pytest.mark.unit
def test_require_credentials():
    with pytest.raises(ConfigurationError) as exc_info:
        TranslationSettings(api_url="https://api.example.com").require_credentials()
    assert exc_info.value.context["missing"] == ["api_key"]
    TranslationSettings(api_url="u", api_key="k").require_credentials()
