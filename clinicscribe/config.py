"""
Central configuration for the ClinicScribe Service
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class ModelName(str, Enum):
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4O = "gpt-4o"
    DEEPSEEK_CHAT = "deepseek-chat"


# Language hints offered to the doctor; None means auto-detect.
LANGUAGE_OPTIONS = [
    {"label": "Detect", "value": None},
    {"label": "English", "value": "en"},
    {"label": "Bahasa Malaysia", "value": "ms"},
    {"label": "Tamil", "value": "ta"},
    {"label": "Mandarin", "value": "zh"},
    {"label": "Hindi", "value": "hi"},
    {"label": "Cantonese", "value": "yue"},
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Environment
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # API Configuration
    api_title: str = Field(default="ClinicScribe API")
    api_description: str = Field(default="Consultation recording, transcription and clinical documentation service")
    api_version: str = Field(default="1.0.0")
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3001)

    # Caller authentication. Empty api_keys disables the check.
    api_keys: List[str] = Field(default=[])
    api_secret_key: str = Field(default="")
    token_algorithm: str = Field(default="HS256")

    # Database
    database_url: str = Field(default="sqlite:///./clinicscribe.db")
    database_echo: bool = Field(default=False)

    # Object storage (S3 compatible, e.g. Cloudflare R2)
    storage_endpoint_url: Optional[str] = Field(default=None)
    storage_region: str = Field(default="auto")
    storage_access_key_id: str = Field(default="")
    storage_secret_access_key: str = Field(default="")
    storage_bucket: str = Field(default="clinicscribe")
    storage_public_base_url: str = Field(default="http://localhost:9000/clinicscribe")

    # External Service APIs
    assemblyai_api_key: str = Field(default="")
    assemblyai_api_base_url: str = Field(default="https://api.assemblyai.com")
    openai_api_key: str = Field(default="")
    openai_base_url: Optional[str] = Field(default=None)

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_requests: int = Field(default=10)
    rate_limit_window: int = Field(default=60)  # seconds

    # Audio Processing Limits
    max_file_size_mb: int = Field(default=30)
    audio_mime_prefix: str = Field(default="audio/")
    default_draft_content_type: str = Field(default="audio/webm")

    # Language Support
    supported_languages: List[str] = Field(
        default=[option["value"] for option in LANGUAGE_OPTIONS if option["value"]]
    )

    # LLM Configuration
    llm_temperature: float = Field(default=0.0)
    llm_max_tokens: int = Field(default=2000)
    default_llm_model: str = Field(default=ModelName.GPT_4O_MINI.value)

    # Documents
    document_date_format: str = Field(default="%d/%m/%Y")

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:8080",
        ]
    )
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default=["GET", "POST", "PUT", "PATCH", "DELETE"])
    cors_allow_headers: List[str] = Field(default=["*"])

    # Monitoring
    enable_metrics: bool = Field(default=True)
    metrics_path: str = Field(default="/metrics")

    # Audit Logging
    audit_log_enabled: bool = Field(default=True)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Global settings instance
settings = get_settings()
