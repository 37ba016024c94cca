from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from .config_schema import AppConfig, StrategyConfig
from .normalize import transform_items
from .poll import PollConfig
from .post import Post

InputBuilder = Callable[[str], dict[str, Any]]
TransformFn = Callable[[Sequence[Any], str], list[Post]]


def clean_username(raw: Any) -> str:
    """Strip whitespace and one leading "@"; returns "" for non-strings."""
    if not isinstance(raw, str):
        return ""
    name = raw.strip()
    if name.startswith("@"):
        name = name[1:].strip()
    return name


def _proxy_input(cfg: StrategyConfig) -> dict[str, Any]:
    proxy: dict[str, Any] = {"useApifyProxy": cfg.proxy.use_apify_proxy}
    if cfg.proxy.use_apify_proxy and cfg.proxy.groups:
        proxy["apifyProxyGroups"] = list(cfg.proxy.groups)
    return proxy


def build_profile_input(username: str, cfg: StrategyConfig) -> dict[str, Any]:
    flags = cfg.flags
    return {
        "usernames": [username],
        "resultsLimit": cfg.results_limit,
        "resultsType": "posts",
        "searchType": "user",
        "scrapePosts": flags.scrape_posts,
        "scrapeStories": flags.scrape_stories,
        "scrapeHighlights": flags.scrape_highlights,
        "scrapeFollowers": flags.scrape_followers,
        "scrapeFollowing": flags.scrape_following,
        "proxy": _proxy_input(cfg),
    }


def build_posts_input(username: str, cfg: StrategyConfig) -> dict[str, Any]:
    return {
        "username": [username],
        "resultsLimit": cfg.results_limit,
        "proxy": _proxy_input(cfg),
    }


_INPUT_BUILDERS: Mapping[str, Callable[[str, StrategyConfig], dict[str, Any]]] = {
    "profile": build_profile_input,
    "posts": build_posts_input,
}


@dataclass(frozen=True)
class ScrapeStrategy:
    """Everything that differs between scrape endpoints."""

    name: str
    actor_id: str
    poll: PollConfig
    input_builder: InputBuilder
    transform: TransformFn


def strategy_from_config(name: str, cfg: StrategyConfig) -> ScrapeStrategy:
    builder = _INPUT_BUILDERS[cfg.input_style]
    content_types = tuple(cfg.content_types)

    def _build_input(username: str) -> dict[str, Any]:
        return builder(username, cfg)

    def _transform(items: Sequence[Any], username: str) -> list[Post]:
        return transform_items(
            items,
            engagement=cfg.engagement,
            content_types=content_types,
            fallback_username=username,
        )

    return ScrapeStrategy(
        name=name,
        actor_id=cfg.actor_id,
        poll=PollConfig(
            interval_seconds=cfg.poll_interval_seconds,
            max_attempts=cfg.max_attempts,
            deadline_seconds=cfg.deadline_seconds or None,
            tolerate_transient_errors=cfg.tolerate_transient_errors,
        ),
        input_builder=_build_input,
        transform=_transform,
    )


def strategies_from_config(config: AppConfig) -> dict[str, ScrapeStrategy]:
    return {name: strategy_from_config(name, cfg) for name, cfg in config.strategies.items()}
