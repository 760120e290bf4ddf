from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./insigne.db"
    admin_key: str | None = None
    cors_origins: str = "*"
    auto_generate: bool = True
    require_client_email: bool = False
    hidden_submission_field_key: str = "submission_id"
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4.1-mini"
    generation_timeout_seconds: float = 30.0
    generation_input_max_chars: int = 12000
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    supabase_storage_bucket: str | None = None
    signed_url_ttl_seconds: int = 900
    storage_timeout_seconds: float = 30.0
    resend_api_key: str | None = None
    resend_base_url: str = "https://api.resend.com"
    from_email: str | None = None
    email_timeout_seconds: float = 30.0
    public_results_url_base: str = ""
    version: str = "0.0.0"
    git_sha: str = "unknown"

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)


settings = Settings()
