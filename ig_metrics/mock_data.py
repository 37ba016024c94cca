from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any

from .post import Post, PostMetrics

_POST_IMAGES = (
    "https://images.unsplash.com/photo-1509440159596-0249088772ff",
    "https://images.unsplash.com/photo-1549931319-a545dcf3bc73",
    "https://images.unsplash.com/photo-1486427944299-d1955d23e34d",
    "https://images.unsplash.com/photo-1517686469429-8bdb88b9f907",
    "https://images.unsplash.com/photo-1495147466023-ac5c588e2e94",
    "https://images.unsplash.com/photo-1464305795204-6f5bbfc7fb81",
)

_CAPTIONS = (
    "Sunday baking session! Finally achieved that perfect ear on my sourdough 🌾 "
    "The crumb is so open and airy! #HomeBaker #SourdoughBread",
    "First attempt at laminating dough for croissants - look at those layers! "
    "72-hour ferment was worth the wait 🥐 #BakingJourney",
    "Weekly meal prep: Two loaves of whole wheat, one rye, and cinnamon rolls "
    "because we deserve treats 🍞 #BreadBaking",
    "Testing a new pie crust recipe - all butter, extra flaky! "
    "The secret is keeping everything COLD 🥧 #BakingFromScratch",
    "Simple pleasures: Fresh sourdough and coffee for breakfast. "
    "The morning light was too perfect not to share ☕️ #MorningBakes",
    "When the crumb structure hits just right 👌 Three days of patience "
    "for this open crumb! #BreadGoals",
)

DEMO_USERNAME = "demo_baker"


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_mock_posts(
    count: int = 34,
    *,
    rng: random.Random | None = None,
    now: datetime | None = None,
    username: str = DEMO_USERNAME,
) -> list[Post]:
    """Demo posts, newest first, one day apart, with metrics in plausible ranges."""
    r = rng or random.Random()
    base = now or datetime.now(timezone.utc)
    posts: list[Post] = []

    for index in range(max(0, int(count))):
        metrics = PostMetrics(
            views=r.randint(10000, 59999),
            likes=r.randint(500, 5499),
            comments=r.randint(50, 349),
            shares=r.randint(20, 119),
            saves=r.randint(100, 599),
            engagement=round(r.uniform(5.0, 10.0), 1),
        )
        posts.append(
            Post(
                id=str(index + 1),
                username=username,
                thumbnail=_POST_IMAGES[index % len(_POST_IMAGES)],
                caption=_CAPTIONS[index % len(_CAPTIONS)],
                timestamp=_iso(base - timedelta(days=index)),
                metrics=metrics,
            )
        )

    return posts


def generate_growth_series(
    days: int = 30,
    *,
    rng: random.Random | None = None,
    now: datetime | None = None,
    start_followers: int = 12000,
) -> list[dict[str, Any]]:
    """Daily follower/reach points, oldest first; followers never decrease."""
    r = rng or random.Random()
    base = (now or datetime.now(timezone.utc)).date()
    followers = int(start_followers)
    series: list[dict[str, Any]] = []

    for offset in range(max(0, int(days)) - 1, -1, -1):
        gained = r.randint(5, 180)
        followers += gained
        series.append(
            {
                "date": (base - timedelta(days=offset)).isoformat(),
                "followers": followers,
                "newFollowers": gained,
                "reach": r.randint(8000, 60000),
                "profileViews": r.randint(200, 2500),
            }
        )

    return series


def summarize_account(
    posts: list[Post],
    growth: list[dict[str, Any]],
    *,
    username: str = DEMO_USERNAME,
) -> dict[str, Any]:
    """Account overview cards computed from the same mock data the other routes serve."""
    total_views = sum(p.metrics.views for p in posts)
    total_likes = sum(p.metrics.likes for p in posts)
    total_comments = sum(p.metrics.comments for p in posts)
    avg_engagement = (
        round(sum(p.metrics.engagement for p in posts) / len(posts), 2) if posts else 0.0
    )

    followers = growth[-1]["followers"] if growth else 0
    first = growth[0]["followers"] - growth[0]["newFollowers"] if growth else 0
    growth_rate = round((followers - first) / first * 100, 2) if first > 0 else 0.0

    return {
        "username": username,
        "followers": followers,
        "followerGrowthRate": growth_rate,
        "posts": len(posts),
        "totalViews": total_views,
        "totalLikes": total_likes,
        "totalComments": total_comments,
        "averageEngagement": avg_engagement,
    }
