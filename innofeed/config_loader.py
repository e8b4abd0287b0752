"""YAML pipeline config loader with command-line overrides."""
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field


class SourceConfig(BaseModel):
    """Single source definition, seeded into the sources table by name."""
    name: str
    url: str
    type: str = "rss"  # rss, website, ai_search
    language: str = "en"
    region: str = "global"
    quality_score: float = 0.5
    check_frequency: str = "4 hours"
    status: str = "active"
    config: Dict[str, Any] = Field(default_factory=dict)


class HttpConfig(BaseModel):
    """HTTP client settings."""
    timeout: float = 30.0
    user_agent: str = "Mozilla/5.0 (compatible; InnofeedBot/1.0)"


class RetryConfig(BaseModel):
    """Backoff for whole-source fetches and generation calls."""
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


class LLMConfig(BaseModel):
    """Structured generation service settings."""
    backends: list[str] = Field(default_factory=lambda: ["deepseek", "gemini"])
    timeout: float = 60.0
    min_interval_seconds: float = 0.5


class CollectConfig(BaseModel):
    """Collection politeness and AI search settings."""
    rss_delay_seconds: float = 1.0
    web_delay_seconds: float = 2.0
    fetch_delay_seconds: float = 1.0
    query_delay_seconds: float = 2.0
    min_title_length: int = 10
    max_search_queries: int = 10
    search_batch_size: int = 5
    search_content_chars: int = 5000
    min_search_text_length: int = 100
    coverage_window_days: int = 7
    coverage_min_cases: int = 3
    source_failure_threshold: int = 10


class ScreenConfig(BaseModel):
    batch_size: int = 5
    limit: int = 100
    batch_pause_seconds: float = 2.0
    content_chars: int = 5000


class AnalyzeConfig(BaseModel):
    batch_size: int = 8
    limit: int = 300
    batch_pause_seconds: float = 0.5
    content_chars: int = 8000
    quality_threshold: float = 0.5
    # Used when the quality-check call itself fails
    fallback_quality_score: float = 0.7


class ReviewConfig(BaseModel):
    pause_seconds: float = 0.5
    layer_chars: int = 500


class PublishConfig(BaseModel):
    daily_target: int = 200
    revalidate_paths: list[str] = Field(default_factory=lambda: ["/cases", "/matrix", "/"])
    revalidate_timeout: float = 10.0


class ScheduleConfig(BaseModel):
    """Scheduler settings for ``innofeed schedule``."""
    collect_interval_hours: int = 4
    screen_interval_hours: int = 2
    analyze_interval_hours: int = 2
    review_hour: int = 2
    publish_hour: int = 8


class AppConfig(BaseModel):
    """Complete pipeline configuration."""
    sources: list[SourceConfig] = Field(default_factory=list)
    http: HttpConfig = Field(default_factory=HttpConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    collect: CollectConfig = Field(default_factory=CollectConfig)
    screen: ScreenConfig = Field(default_factory=ScreenConfig)
    analyze: AnalyzeConfig = Field(default_factory=AnalyzeConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)


class ConfigLoader:
    """Load configuration from YAML with dotted-key overrides."""

    def __init__(self, config_path: Path | str = None):
        self.config_path = Path(config_path) if config_path else Path("config") / "config.yaml"
        self._config: Optional[AppConfig] = None
        self._overrides: Dict[str, Any] = {}

    def load(self) -> AppConfig:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            # Defaults when the file is missing
            self._config = AppConfig()
            self._apply_overrides()
            return self._config

        with open(self.config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._config = AppConfig.model_validate(data)
        self._apply_overrides()
        return self._config

    def set_overrides(self, overrides: Dict[str, Any]) -> None:
        """Set overrides (``screen.batch_size=3``) applied on top of the YAML."""
        self._overrides = overrides
        if self._config:
            self._apply_overrides()

    def _apply_overrides(self) -> None:
        if not self._config or not self._overrides:
            return

        for key, value in self._overrides.items():
            self._set_nested(key, value)

    def _set_nested(self, key: str, value: Any) -> None:
        """Set a nested config value using dot notation. Unknown keys are ignored."""
        parts = key.split(".")
        obj = self._config

        for part in parts[:-1]:
            if hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                return

        final_key = parts[-1]
        if hasattr(obj, final_key):
            current = getattr(obj, final_key)
            # bool first: bool is a subclass of int
            if isinstance(current, bool):
                value = str(value).lower() in ("true", "1", "yes")
            elif isinstance(current, int):
                value = int(value)
            elif isinstance(current, float):
                value = float(value)
            setattr(obj, final_key, value)

    @property
    def config(self) -> AppConfig:
        """Get current config, loading if necessary."""
        if self._config is None:
            self.load()
        return self._config
