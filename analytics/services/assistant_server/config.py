"""Environment-driven configuration for the assistant server.

Settings are read once at startup and passed to every component that needs
them. Nothing below the entrypoint reads environment variables directly.
"""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

from subscription_metrics.analyses.revenue import ASSUMED_LIFETIME_MONTHS

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


class AssistantSettings(BaseModel):
    """Runtime configuration for the analytics assistant."""

    anthropic_api_key: str | None = Field(
        default=None, description="Anthropic API key (required to answer questions)"
    )
    anthropic_model: str = Field(
        default=DEFAULT_MODEL, description="Model used for planning and synthesis"
    )
    planning_temperature: float = Field(
        default=0.2, ge=0.0, le=1.0, description="Sampling temperature for tool selection"
    )
    synthesis_temperature: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Sampling temperature for the answer"
    )
    planning_max_tokens: int = Field(default=1024, gt=0)
    synthesis_max_tokens: int = Field(default=1000, gt=0)
    llm_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for a single model call"
    )
    ltv_assumed_lifetime_months: int = Field(
        default=ASSUMED_LIFETIME_MONTHS,
        gt=0,
        description="Average customer lifetime assumed by the LTV estimate",
    )
    customer_sample_cap: int = Field(
        default=20, gt=0, description="Upper bound on customers returned by one sample"
    )
    otlp_endpoint: str | None = Field(
        default=None, description="OTLP gRPC endpoint; console export when unset"
    )
    environment: str = Field(default="development")
    sampling_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    prometheus_metrics_port: int = Field(default=8000, gt=0)
    seed_test_data: bool = Field(
        default=False, description="Populate the store with synthetic data at startup"
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AssistantSettings":
        """Build settings from environment variables.

        Unset variables fall back to the field defaults; malformed values
        raise a pydantic ``ValidationError``.
        """
        env = os.environ if environ is None else environ
        names = {
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "anthropic_model": "ANTHROPIC_MODEL",
            "planning_temperature": "PLANNING_TEMPERATURE",
            "synthesis_temperature": "SYNTHESIS_TEMPERATURE",
            "llm_timeout_seconds": "LLM_TIMEOUT_SECONDS",
            "ltv_assumed_lifetime_months": "LTV_ASSUMED_LIFETIME_MONTHS",
            "customer_sample_cap": "CUSTOMER_SAMPLE_CAP",
            "otlp_endpoint": "OTLP_ENDPOINT",
            "environment": "ENVIRONMENT",
            "sampling_rate": "SAMPLING_RATE",
            "prometheus_metrics_port": "PROMETHEUS_METRICS_PORT",
            "seed_test_data": "SEED_TEST_DATA",
        }
        values = {field: env[var] for field, var in names.items() if env.get(var)}
        return cls(**values)
