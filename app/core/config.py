"""
Application configuration from environment variables.
PHI-safe: no sensitive data in defaults or logs.
"""
import json
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Firebase configuration
    firebase_project_id: Optional[str] = Field(
        default=None,
        description="Firebase project ID for token verification (required when AUTH_MODE=firebase)"
    )
    firebase_credentials_json: Optional[str] = Field(
        default=None,
        description="Firebase service account JSON string (optional, uses ADC if not set)"
    )
    google_application_credentials: Optional[str] = Field(
        default=None,
        description="Path to service account JSON file (GOOGLE_APPLICATION_CREDENTIALS)"
    )

    # Service configuration
    service_env: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Service environment"
    )

    # Authentication mode
    auth_mode: Literal["firebase", "dev"] = Field(
        default="firebase",
        description="Auth mode: 'firebase' for production, 'dev' for local testing without Firebase"
    )
    dev_bearer_token: str = Field(
        default="dev-token",
        description="Bearer token accepted in dev auth mode (only used when AUTH_MODE=dev)"
    )

    # Generation backend configuration
    generation_backend: Literal["mock", "vllm", "openai_compat"] = Field(
        default="mock",
        description="Generation backend: 'mock' for testing, 'vllm' or 'openai_compat' for inference"
    )
    generation_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for structured generation calls"
    )
    generation_max_tokens: int = Field(
        default=1024,
        ge=64,
        le=8192,
        description="Max tokens for a single structured generation response"
    )

    # vLLM configuration
    vllm_base_url: str = Field(
        default="http://127.0.0.1:8000",
        description="Base URL for vLLM OpenAI-compatible API"
    )
    vllm_model: str = Field(
        default="",
        description="Model name/path for vLLM inference"
    )
    vllm_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=120000,
        description="Timeout for vLLM requests in milliseconds"
    )

    # OpenAI-compatible backend configuration (LM Studio, Ollama, etc.)
    openai_compat_base_url: str = Field(
        default="http://127.0.0.1:1234/v1",
        description="Base URL for OpenAI-compatible API (e.g., LM Studio, Ollama)"
    )
    openai_compat_model: str = Field(
        default="",
        description="Model name for OpenAI-compatible inference"
    )
    openai_compat_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=120000,
        description="Timeout for OpenAI-compatible requests in milliseconds"
    )
    openai_compat_api_key: Optional[str] = Field(
        default=None,
        description="Optional API key sent as a Bearer token to the OpenAI-compatible server"
    )

    # Request limits
    min_symptom_length: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Minimum number of characters accepted for a symptom description"
    )
    rate_limit_per_hour: int = Field(
        default=600,
        ge=1,
        le=100000,
        description="Requests per hour allowed per authenticated user"
    )

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    @field_validator("firebase_credentials_json", mode="before")
    @classmethod
    def validate_credentials_json(cls, v: Optional[str]) -> Optional[str]:
        """Validate that credentials JSON is valid if provided."""
        if v is None or v == "":
            return None
        try:
            json.loads(v)
            return v
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in FIREBASE_CREDENTIALS_JSON: {e}")

    @field_validator("auth_mode", mode="after")
    @classmethod
    def validate_auth_mode_not_dev_in_prod(cls, v: str, info) -> str:
        """Prevent dev auth mode in production environment."""
        service_env = info.data.get("service_env", "dev")
        if v == "dev" and service_env == "prod":
            raise ValueError(
                "SECURITY ERROR: AUTH_MODE=dev is forbidden when SERVICE_ENV=prod. "
                "This would bypass Firebase authentication in production."
            )
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
