from __future__ import annotations

import math
import random
import string
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Iterable, Mapping

from .config_schema import EngagementFormula
from .post import Post, PostMetrics

IdFactory = Callable[[], str]
NowFn = Callable[[], str]


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_id(value: Any) -> str | None:
    if isinstance(value, str):
        v = value.strip()
        return v if v else None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_count(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, int(value))
    if isinstance(value, str):
        try:
            return max(0, int(float(value.strip())))
        except ValueError:
            return 0
    return 0


def _first_count(item: Mapping[str, Any], *keys: str) -> int:
    for key in keys:
        if item.get(key) is not None:
            return _coerce_count(item.get(key))
    return 0


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def synthesize_post_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def compute_engagement(
    likes: int,
    comments: int,
    views: int,
    *,
    formula: EngagementFormula,
) -> float:
    """
    Derived interaction score. The formula is chosen per scrape strategy.

    views_ratio: (likes + comments) / max(views, 1) * 100
    per_hundred: (likes + comments) / 100
    none: always 0
    """
    interactions = likes + comments
    if formula == "views_ratio":
        score = interactions / max(views, 1) * 100
    elif formula == "per_hundred":
        score = interactions / 100
    else:
        score = 0.0
    return float(score)


def post_from_apify_item(
    item: Mapping[str, Any],
    *,
    engagement: EngagementFormula = "views_ratio",
    fallback_username: str = "",
    id_factory: IdFactory = synthesize_post_id,
    now_fn: NowFn = utc_now_iso,
) -> Post:
    """
    Best-effort extraction of a dashboard post from an Apify dataset item.

    Never raises on missing fields: counts default to 0, text to "", the
    timestamp to now and the id to a synthesized unique value.
    """
    post_id = _coerce_id(item.get("id")) or _coerce_id(item.get("shortCode")) or id_factory()

    username = _coerce_str(item.get("ownerUsername")) or _coerce_str(item.get("username"))
    owner_obj = item.get("owner")
    if username is None and isinstance(owner_obj, Mapping):
        username = _coerce_str(owner_obj.get("username"))

    thumbnail = (
        _coerce_str(item.get("displayUrl"))
        or _coerce_str(item.get("previewUrl"))
        or _coerce_str(item.get("thumbnailUrl"))
        or ""
    )
    caption = _coerce_str(item.get("caption")) or ""
    timestamp = _coerce_str(item.get("timestamp")) or _coerce_str(item.get("takenAt")) or now_fn()

    views = _first_count(item, "videoViewCount", "videoPlayCount")
    likes = _first_count(item, "likesCount")
    comments = _first_count(item, "commentsCount")

    metrics = PostMetrics(
        views=views,
        likes=likes,
        comments=comments,
        shares=_first_count(item, "sharesCount"),
        saves=_first_count(item, "savesCount"),
        engagement=compute_engagement(likes, comments, views, formula=engagement),
    )

    return Post(
        id=post_id,
        username=username or fallback_username,
        thumbnail=thumbnail,
        caption=caption,
        timestamp=timestamp,
        metrics=metrics,
    )


def _matches_content_type(item: Mapping[str, Any], allowed: set[str]) -> bool:
    kind = _coerce_str(item.get("type")) or _coerce_str(item.get("productType"))
    return kind is not None and kind.casefold() in allowed


def transform_items(
    items: Iterable[Any],
    *,
    engagement: EngagementFormula = "views_ratio",
    content_types: Collection[str] = (),
    fallback_username: str = "",
    id_factory: IdFactory = synthesize_post_id,
    now_fn: NowFn = utc_now_iso,
) -> list[Post]:
    """
    Map raw dataset items to Post records, optionally keeping only some content types.

    Non-mapping items are skipped. Synthesized ids are unique within one call.
    """
    allowed = {t.casefold() for t in content_types if t}
    posts: list[Post] = []
    seen_ids: set[str] = set()

    for item in items:
        if not isinstance(item, Mapping):
            continue
        if allowed and not _matches_content_type(item, allowed):
            continue

        post = post_from_apify_item(
            item,
            engagement=engagement,
            fallback_username=fallback_username,
            id_factory=id_factory,
            now_fn=now_fn,
        )
        if _coerce_id(item.get("id")) is None and _coerce_id(item.get("shortCode")) is None:
            base_id = post.id
            n = 1
            while post.id in seen_ids:
                post = replace(post, id=f"{base_id}-{n}")
                n += 1
        seen_ids.add(post.id)
        posts.append(post)

    return posts
