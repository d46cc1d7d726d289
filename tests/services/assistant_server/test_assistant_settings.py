"""Tests for environment-driven assistant settings."""

import pytest
from pydantic import ValidationError

from analytics.services.assistant_server.config import DEFAULT_MODEL, AssistantSettings


def test_defaults():
    settings = AssistantSettings.from_env({})

    assert settings.anthropic_api_key is None
    assert settings.anthropic_model == DEFAULT_MODEL
    assert settings.planning_temperature == 0.2
    assert settings.synthesis_temperature == 0.7
    assert settings.ltv_assumed_lifetime_months == 12
    assert settings.customer_sample_cap == 20
    assert settings.seed_test_data is False


def test_reads_environment_variables():
    settings = AssistantSettings.from_env(
        {
            "ANTHROPIC_API_KEY": "sk-ant-test",
            "LLM_TIMEOUT_SECONDS": "12.5",
            "LTV_ASSUMED_LIFETIME_MONTHS": "24",
            "OTLP_ENDPOINT": "localhost:4317",
            "SEED_TEST_DATA": "true",
            "SAMPLING_RATE": "0.25",
        }
    )

    assert settings.anthropic_api_key == "sk-ant-test"
    assert settings.llm_timeout_seconds == 12.5
    assert settings.ltv_assumed_lifetime_months == 24
    assert settings.otlp_endpoint == "localhost:4317"
    assert settings.seed_test_data is True
    assert settings.sampling_rate == 0.25


def test_empty_values_fall_back_to_defaults():
    settings = AssistantSettings.from_env({"ANTHROPIC_API_KEY": "", "ENVIRONMENT": ""})

    assert settings.anthropic_api_key is None
    assert settings.environment == "development"


@pytest.mark.parametrize(
    "environ",
    [
        {"LLM_TIMEOUT_SECONDS": "0"},
        {"PLANNING_TEMPERATURE": "1.5"},
        {"CUSTOMER_SAMPLE_CAP": "many"},
        {"LTV_ASSUMED_LIFETIME_MONTHS": "-1"},
    ],
)
def test_malformed_values_rejected(environ):
    with pytest.raises(ValidationError):
        AssistantSettings.from_env(environ)


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_MODEL", "claude-test")
    assert AssistantSettings.from_env().anthropic_model == "claude-test"
