from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .apify_client import ActorRunRef, RunStatus, map_apify_status


_DEFAULT_OFFLINE_ITEMS: list[dict[str, Any]] = [
    {
        "id": "3001",
        "shortCode": "OFF1",
        "ownerUsername": "offline_user",
        "displayUrl": "https://example.com/img/1.jpg",
        "caption": "Sourdough day: 36 hour cold proof, best oven spring so far.",
        "timestamp": "2025-01-01T09:00:00.000Z",
        "type": "Video",
        "likesCount": 1200,
        "commentsCount": 80,
        "videoViewCount": 24000,
        "savesCount": 140,
        "sharesCount": 35,
    },
    {
        "id": "3002",
        "shortCode": "OFF2",
        "ownerUsername": "offline_user",
        "displayUrl": "https://example.com/img/2.jpg",
        "caption": "Croissant lamination, attempt number four.",
        "timestamp": "2025-01-02T09:00:00.000Z",
        "type": "Photo",
        "likesCount": 860,
        "commentsCount": 41,
    },
    {
        "id": "3003",
        "shortCode": "OFF3",
        "ownerUsername": "offline_user",
        "previewUrl": "https://example.com/img/3-preview.jpg",
        "caption": "",
        "timestamp": "2025-01-03T09:00:00.000Z",
        "type": "Sidecar",
        "likesCount": 430,
        "commentsCount": 12,
    },
]


@dataclass
class OfflineActorRunner:
    """
    Network-free stand-in for ApifyActorRunner.

    Reports the scripted raw statuses in order (the last one repeats) and serves
    a small, deterministic dataset. Records every call for inspection.
    """

    items: Sequence[Mapping[str, Any]] = tuple(_DEFAULT_OFFLINE_ITEMS)
    statuses: Sequence[str] = ("RUNNING", "SUCCEEDED")
    launched: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    aborted: list[str] = field(default_factory=list)
    status_checks: int = 0

    async def launch(self, actor_id: str, run_input: Mapping[str, Any]) -> ActorRunRef:
        self.launched.append((actor_id, dict(run_input)))
        return ActorRunRef(
            actor_id=actor_id,
            run_id="offline_run",
            default_dataset_id="offline_dataset",
        )

    async def get_status(self, run_id: str) -> RunStatus:
        _ = run_id
        idx = min(self.status_checks, len(self.statuses) - 1)
        self.status_checks += 1
        raw = self.statuses[idx] if self.statuses else "SUCCEEDED"
        return RunStatus(
            status=map_apify_status(raw),
            raw_status=raw,
            default_dataset_id="offline_dataset",
        )

    async def fetch_dataset_items(
        self,
        dataset_id: str,
        *,
        limit: int | None = None,
        clean: bool = True,
    ) -> list[dict[str, Any]]:
        _ = (dataset_id, clean)
        n = len(self.items) if limit is None else max(0, int(limit))
        return [dict(item) for item in list(self.items)[:n]]

    async def abort(self, run_id: str) -> None:
        self.aborted.append(run_id)
