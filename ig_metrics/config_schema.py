from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ROUTE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


def _normalize_term_list(values: list[str], *, allow_empty: bool) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        term = (item or "").strip()
        if not term:
            continue
        key = term.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(term)

    if not allow_empty and not out:
        raise ValueError("must contain at least one non-empty term")
    return out


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]

EngagementFormula = Literal["views_ratio", "per_hundred", "none"]
InputStyle = Literal["profile", "posts"]


class ApifyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    token_env: str = "APIFY_API_KEY"
    dataset_clean: bool = True
    retry_max_attempts: PositiveInt = 3
    retry_base_delay_seconds: NonNegativeFloat = 0.5
    retry_max_delay_seconds: NonNegativeFloat = 10.0

    @field_validator("token_env")
    @classmethod
    def _token_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @model_validator(mode="after")
    def _delays_must_be_ordered(self) -> "ApifyConfig":
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError("retry_max_delay_seconds must be >= retry_base_delay_seconds")
        return self


class ProxyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    use_apify_proxy: bool = True
    groups: list[str] = Field(default_factory=list)

    @field_validator("groups")
    @classmethod
    def _normalize_groups(cls, v: list[str]) -> list[str]:
        return [g.upper() for g in _normalize_term_list(v, allow_empty=True)]


class ScrapeFlagsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    scrape_posts: bool = True
    scrape_stories: bool = False
    scrape_highlights: bool = False
    scrape_followers: bool = False
    scrape_following: bool = False


class StrategyConfig(BaseModel):
    """One scrape endpoint: which Actor to run and how to poll and reshape it."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    actor_id: str = "apify/instagram-profile-scraper"
    input_style: InputStyle = "profile"
    results_limit: PositiveInt = 100
    poll_interval_seconds: NonNegativeFloat = 10.0
    max_attempts: PositiveInt = 30
    deadline_seconds: Annotated[float, Field(gt=0.0)] | None = None
    tolerate_transient_errors: bool = True
    engagement: EngagementFormula = "views_ratio"
    content_types: list[str] = Field(default_factory=list)
    flags: ScrapeFlagsConfig = Field(default_factory=ScrapeFlagsConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)

    @field_validator("actor_id")
    @classmethod
    def _actor_id_must_be_present(cls, v: str) -> str:
        actor = (v or "").strip()
        if not actor:
            raise ValueError("must be a non-empty Actor id")
        return actor

    @field_validator("content_types")
    @classmethod
    def _normalize_content_types(cls, v: list[str]) -> list[str]:
        return _normalize_term_list(v, allow_empty=True)


def _default_strategies() -> dict[str, StrategyConfig]:
    return {
        "fetch-instagram-data": StrategyConfig(
            actor_id="apify/instagram-profile-scraper",
            input_style="profile",
            results_limit=100,
            poll_interval_seconds=10.0,
            max_attempts=30,
            engagement="views_ratio",
            proxy=ProxyConfig(use_apify_proxy=True, groups=["RESIDENTIAL"]),
        ),
        "fetch-instagram-posts": StrategyConfig(
            actor_id="apify/instagram-post-scraper",
            input_style="posts",
            results_limit=30,
            poll_interval_seconds=5.0,
            max_attempts=24,
            engagement="per_hundred",
        ),
        "fetch-instagram-reels": StrategyConfig(
            actor_id="apify/instagram-post-scraper",
            input_style="posts",
            results_limit=50,
            poll_interval_seconds=2.0,
            max_attempts=30,
            engagement="views_ratio",
            content_types=["Video", "Photo"],
        ),
    }


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = "127.0.0.1"
    port: int = Field(8000, ge=1, le=65535)
    allow_origin: str = "*"
    allow_headers: str = "authorization, x-client-info, apikey, content-type"
    error_status: int = Field(500, ge=400, le=599)
    log_path: str | None = None


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    url_env: str = "SUPABASE_URL"
    anon_key_env: str = "SUPABASE_ANON_KEY"
    redirect_to: str | None = None
    required: bool = False
    timeout_seconds: NonNegativeFloat = 10.0

    @field_validator("url_env", "anon_key_env")
    @classmethod
    def _env_names_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class MockConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    post_count: PositiveInt = 34
    growth_days: PositiveInt = 30
    seed: int | None = None


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    apify: ApifyConfig = Field(default_factory=ApifyConfig)
    strategies: dict[str, StrategyConfig] = Field(default_factory=_default_strategies)
    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    mock: MockConfig = Field(default_factory=MockConfig)

    @field_validator("strategies")
    @classmethod
    def _strategy_names_must_be_routes(
        cls, v: dict[str, StrategyConfig]
    ) -> dict[str, StrategyConfig]:
        if not v:
            raise ValueError("must define at least one strategy")
        for name in v:
            if not _ROUTE_NAME_RE.fullmatch(name):
                raise ValueError(f"strategy name {name!r} must be a lowercase route segment")
            if name in {"auth", "dashboard", "health"}:
                raise ValueError(f"strategy name {name!r} is reserved")
        return v
