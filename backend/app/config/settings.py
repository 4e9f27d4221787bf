"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "Marketing Assistant Chat"
    app_version: str = "1.0.0"
    debug: bool = True

    # Security
    secret_key: str = "your-secret-key-change-this-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Storage
    storage_type: str = "local"
    local_storage_path: str = "./data"

    # LLM Provider settings
    llm_provider: str = "openrouter"  # "openrouter" or "openai"
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None  # uses provider default if not set
    llm_base_url: Optional[str] = None  # uses provider default if not set
    llm_timeout: float = 120.0
    system_prompt: Optional[str] = None  # overrides the built-in persona

    # Legacy keys (still accepted)
    openai_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Rate limiting (requests per window, window in seconds)
    rate_limit_enabled: bool = True
    general_rate_limit: int = 100
    general_rate_window: int = 15 * 60
    chat_rate_limit: int = 10
    chat_rate_window: int = 60
    strict_rate_limit: int = 10
    strict_rate_window: int = 60 * 60
    auth_rate_limit: int = 5
    auth_rate_window: int = 15 * 60
    create_account_rate_limit: int = 3
    create_account_rate_window: int = 60 * 60

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/chat.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all API requests/responses
    log_llm_calls: bool = True  # Log all LLM calls with timing

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
