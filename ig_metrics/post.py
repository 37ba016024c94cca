from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PostMetrics:
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    engagement: float = 0.0
    # Not available from the scraper; kept so dashboard cards render.
    follows_from_post: int = 0
    average_watch_percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "views": self.views,
            "likes": self.likes,
            "comments": self.comments,
            "shares": self.shares,
            "saves": self.saves,
            "engagement": self.engagement,
            "followsFromPost": self.follows_from_post,
            "averageWatchPercentage": self.average_watch_percentage,
        }


@dataclass(frozen=True)
class Post:
    """A normalized post with the metrics the dashboard renders."""

    id: str
    username: str
    thumbnail: str
    caption: str
    timestamp: str
    metrics: PostMetrics

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["metrics"] = self.metrics.to_dict()
        return out
