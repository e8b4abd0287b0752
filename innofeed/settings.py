"""Environment settings with pydantic-settings."""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # DeepSeek (primary generation backend, OpenAI-compatible)
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API key")
    deepseek_base_url: str = Field(
        default="https://api.deepseek.com",
        description="DeepSeek API base URL"
    )
    deepseek_model: str = Field(default="deepseek-chat", description="DeepSeek model name")

    # Gemini (fallback backend through its OpenAI-compatible endpoint)
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai",
        description="Gemini OpenAI-compatible base URL"
    )
    gemini_model: str = Field(default="gemini-2.0-flash", description="Gemini model name")

    # Publishing
    site_url: Optional[str] = Field(default=None, description="Public site host for cache revalidation")
    revalidate_token: Optional[str] = Field(default=None, description="Revalidation endpoint token")

    # Application
    app_timezone: str = Field(default="Asia/Shanghai", description="Timezone for the publishing day")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/innofeed.db",
        description="Database connection URL"
    )
    config_path: str = Field(default="config/config.yaml", description="YAML pipeline config")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log output: json or console")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }
