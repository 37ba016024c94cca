from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from .apify_client import ActorRunRef, JobStatus, RunStatus
from .errors import (
    DatasetFetchError,
    InputValidationError,
    JobFailedError,
    JobTimedOutError,
)
from .poll import PollEvent, poll_until_done
from .post import Post
from .retry import SleepFn
from .run_log import RunLogger
from .strategies import ScrapeStrategy, clean_username


class ActorRunner(Protocol):
    async def launch(self, actor_id: str, run_input: Mapping[str, Any]) -> ActorRunRef: ...

    async def get_status(self, run_id: str) -> RunStatus: ...

    async def fetch_dataset_items(
        self, dataset_id: str, *, limit: int | None = None, clean: bool = True
    ) -> list[dict[str, Any]]: ...

    async def abort(self, run_id: str) -> None: ...


@dataclass(frozen=True)
class ScrapeOutcome:
    username: str
    run: ActorRunRef
    posts: list[Post]
    raw_items: list[dict[str, Any]]


class ScrapeOrchestrator:
    """
    Launch an Actor run for one username, wait for it, then reshape its dataset.

    One instance per request; nothing here is shared between requests.
    """

    def __init__(
        self,
        runner: ActorRunner,
        strategy: ScrapeStrategy,
        *,
        logger: RunLogger | None = None,
        sleep_fn: SleepFn | None = None,
        dataset_clean: bool = True,
    ) -> None:
        self._runner = runner
        self._strategy = strategy
        self._log = logger
        self._sleep_fn = sleep_fn
        self._dataset_clean = dataset_clean

    def _info(self, event: str, **data: Any) -> None:
        if self._log is not None:
            self._log.info(event, **data)

    async def run(self, username: str) -> ScrapeOutcome:
        name = clean_username(username)
        if not name:
            raise InputValidationError("Username is required")

        strategy = self._strategy
        run_input = strategy.input_builder(name)

        run = await self._runner.launch(strategy.actor_id, run_input)
        if self._log is not None:
            self._log.set_run_id(run.run_id)
        self._info(
            "actor_run_started",
            strategy=strategy.name,
            actor_id=run.actor_id,
            username=name,
        )

        try:
            final = await self._wait_for_run(run)
        except JobFailedError as e:
            last: RunStatus = e.status
            raise JobFailedError(
                last.status, details=f"Apify reported status {last.raw_status or 'unknown'}"
            ) from e
        except (JobTimedOutError, asyncio.CancelledError):
            await self._abort_quietly(run)
            raise

        dataset_id = final.default_dataset_id or run.default_dataset_id
        if not dataset_id:
            raise DatasetFetchError(f"Run {run.run_id} finished without a dataset")

        raw_items = await self._runner.fetch_dataset_items(
            dataset_id, clean=self._dataset_clean
        )
        self._info("dataset_fetched", dataset_id=dataset_id, items=len(raw_items))

        posts = strategy.transform(raw_items, name)
        self._info("dataset_transformed", posts=len(posts))

        return ScrapeOutcome(username=name, run=run, posts=posts, raw_items=raw_items)

    async def _wait_for_run(self, run: ActorRunRef) -> RunStatus:
        def _on_attempt(event: PollEvent) -> None:
            if event.error_type is not None:
                if self._log is not None:
                    self._log.warning(
                        "actor_run_status_error",
                        attempt=event.attempt,
                        max_attempts=event.max_attempts,
                        error_type=event.error_type,
                        error_message=event.error_message,
                    )
                return
            status: RunStatus = event.value
            self._info(
                "actor_run_status",
                attempt=event.attempt,
                max_attempts=event.max_attempts,
                status=status.status.value,
                raw_status=status.raw_status,
            )

        async def _fetch() -> RunStatus:
            return await self._runner.get_status(run.run_id)

        return await poll_until_done(
            _fetch,
            cfg=self._strategy.poll,
            is_success=lambda s: s.status is JobStatus.SUCCEEDED,
            is_terminal=lambda s: s.status.is_terminal,
            on_attempt=_on_attempt,
            sleep_fn=self._sleep_fn,
        )

    async def _abort_quietly(self, run: ActorRunRef) -> None:
        try:
            await self._runner.abort(run.run_id)
        except Exception as e:
            if self._log is not None:
                self._log.warning(
                    "actor_run_abort_failed",
                    run_id=run.run_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            return
        self._info("actor_run_aborted", run_id=run.run_id)
