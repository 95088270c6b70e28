"""Configuration for the news automation pipeline."""

from __future__ import annotations

import re
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .lexicons import HIGH_PRIORITY_CATEGORIES, TRUSTED_SOURCES

_TIME_OF_DAY_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class SourceConfig(BaseModel):
    """A named news feed the crawler pulls from."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: HttpUrl
    trust_score: float = Field(5.0, ge=0, le=10, description="Source reliability, 0-10.")


DEFAULT_SOURCES: tuple[SourceConfig, ...] = (
    SourceConfig(
        name="CoinDesk",
        url="https://www.coindesk.com/arc/outboundfeeds/rss/",
        trust_score=9,
    ),
    SourceConfig(name="CoinTelegraph", url="https://cointelegraph.com/rss", trust_score=8),
    SourceConfig(name="CryptoSlate", url="https://cryptoslate.com/feed/", trust_score=7),
)


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse "HH:MM" into (hour, minute); raise ValueError when malformed."""
    match = _TIME_OF_DAY_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"time of day must look like HH:MM, got {value!r}")
    return int(match.group(1)), int(match.group(2))


class Settings(BaseSettings):
    """Automation settings loaded from environment variables and `.env`.

    Loaded once at startup; the instance is frozen, so changing the schedule or
    sources means building a new scheduler (in practice, a restart).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NEWS_AUTOMATION_",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    fetch_interval_ms: int = Field(
        3_600_000, gt=0, description="Delay between fetch cycles, in milliseconds."
    )
    daily_publish_time: str = Field(
        "08:00", description='Local wall-clock time of the daily publish cycle ("HH:MM").'
    )
    sources: List[SourceConfig] = Field(default_factory=lambda: list(DEFAULT_SOURCES))
    min_relevance_score: float = Field(
        50, ge=0, le=100, description="Items scoring below this never enter the queue."
    )
    min_content_length: int = Field(300, ge=0)
    articles_per_day: int = Field(3, ge=0)
    auto_prioritize: bool = Field(
        True, description="Publish the highest-relevance queued items first."
    )
    default_category: str = "general"

    max_items_per_source: int = Field(5, gt=0)
    fetch_workers: int = Field(4, gt=0)
    http_timeout_seconds: float = Field(
        5.0, gt=0, description="Timeout for every outbound request (feeds and images)."
    )
    trusted_sources: List[str] = Field(default_factory=lambda: list(TRUSTED_SOURCES))
    trust_score_floor: float = Field(
        8,
        ge=0,
        le=10,
        description="Configured sources at or above this trust score also get the trusted bonus.",
    )
    high_priority_categories: List[str] = Field(
        default_factory=lambda: list(HIGH_PRIORITY_CATEGORIES)
    )
    sentiment_margin: int = Field(3, ge=0)
    duplicate_threshold: float = Field(0.8, gt=0, le=1)

    author: str = "AI News Bot"
    publish_mode: Literal["single", "roundup"] = Field(
        "single",
        description="'single' writes one article per queued item; 'roundup' one per category.",
    )
    referral_footer: str | None = Field(
        None, description="Optional text the store appends to every persisted article."
    )
    store_path: str = "data/articles.jsonl"

    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    image_model: str = "dall-e-3"
    image_generation_enabled: bool = True
    unsplash_access_key: str | None = Field(None, alias="UNSPLASH_ACCESS_KEY")

    @field_validator("daily_publish_time")
    @classmethod
    def _check_publish_time(cls, value: str) -> str:
        hour, minute = parse_time_of_day(value)
        return f"{hour:02d}:{minute:02d}"

    @property
    def fetch_interval_seconds(self) -> float:
        return self.fetch_interval_ms / 1000.0

    def trusted_source_names(self) -> List[str]:
        """Allow-list entries plus configured sources trusted enough on their own."""
        names = list(self.trusted_sources)
        for source in self.sources:
            if source.trust_score >= self.trust_score_floor and source.name not in names:
                names.append(source.name)
        return names


def get_settings(**overrides) -> Settings:
    """Return a settings instance; keyword overrides win over the environment."""
    return Settings(**overrides)
