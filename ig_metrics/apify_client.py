from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping

from apify_client import ApifyClientAsync
from apify_client.errors import ApifyApiError

from .apify_retry import extract_status_code, is_retryable_apify_exception
from .errors import ApifyError, DatasetFetchError, LaunchFailedError
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries


_DEFAULT_APIFY_RETRY = RetryConfig(
    max_attempts=3,
    base_delay_seconds=0.5,
    max_delay_seconds=10.0,
    jitter_ratio=0.0,
)


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


_APIFY_STATUS_MAP = {
    "SUCCEEDED": JobStatus.SUCCEEDED,
    "FAILED": JobStatus.FAILED,
    "ABORTED": JobStatus.ABORTED,
    "TIMED-OUT": JobStatus.TIMED_OUT,
    "TIMED_OUT": JobStatus.TIMED_OUT,
}


def map_apify_status(raw: Any) -> JobStatus:
    """READY, RUNNING and the transitional *-ING states all count as pending."""
    key = str(raw or "").strip().upper()
    return _APIFY_STATUS_MAP.get(key, JobStatus.PENDING)


@dataclass(frozen=True)
class ActorRunRef:
    actor_id: str
    run_id: str
    default_dataset_id: str


@dataclass(frozen=True)
class RunStatus:
    status: JobStatus
    raw_status: str
    default_dataset_id: str | None = None


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, Mapping):
        return value
    # Newer client releases may hand back pydantic models.
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        data = dump(by_alias=True)
        if isinstance(data, Mapping):
            return data
    return None


class ApifyActorRunner:
    """
    Thin async wrapper around the Apify actor-run API.

    Starts a run, reads its status, reads its default dataset and aborts it.
    Waiting is left to the caller (see poll.poll_until_done).
    """

    def __init__(
        self,
        token: str,
        *,
        client: ApifyClientAsync | None = None,
        retry: RetryConfig | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._retry = retry or _DEFAULT_APIFY_RETRY
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn

        if client is not None:
            self._client = client
        else:
            # Disable client-level retries so we can apply our own policy uniformly.
            self._client = ApifyClientAsync(token=token, max_retries=0)

    async def launch(self, actor_id: str, run_input: Mapping[str, Any]) -> ActorRunRef:
        """
        Start one Actor run without waiting for it to finish.

        Raises LaunchFailedError carrying the upstream status and body on failure.
        """
        actor = (actor_id or "").strip()
        if not actor:
            raise LaunchFailedError("Actor id must be a non-empty string")

        async def _do_start() -> Any:
            return await self._client.actor(actor).start(run_input=dict(run_input))

        try:
            result = await call_with_retries(
                _do_start,
                cfg=self._retry,
                is_retryable=is_retryable_apify_exception,
                operation=f"apify.actor.start:{actor}",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        except ApifyApiError as e:
            raise LaunchFailedError(
                f"Failed to start Apify actor ({actor})",
                status_code=extract_status_code(e),
                details=str(e),
            ) from e
        except Exception as e:
            raise LaunchFailedError(
                f"Unexpected error while starting Apify actor ({actor})",
                details=str(e),
            ) from e

        data = _as_mapping(result)
        if data is None:
            raise LaunchFailedError(
                f"Apify actor start returned no run ({actor})",
                details=repr(result),
            )

        run_id = str(data.get("id") or "").strip()
        dataset_id = str(data.get("defaultDatasetId") or "").strip()
        if not run_id:
            raise LaunchFailedError(
                f"Apify actor start response missing run id ({actor})",
                details=repr(dict(data)),
            )

        return ActorRunRef(actor_id=actor, run_id=run_id, default_dataset_id=dataset_id)

    async def get_status(self, run_id: str) -> RunStatus:
        """
        Read a run's current status once.

        Transport errors are raised as-is so the poll loop can classify them.
        """
        result = await self._client.run(run_id).get()
        data = _as_mapping(result)
        if data is None:
            raise ApifyError(f"Apify run not found ({run_id})")

        raw_status = str(data.get("status") or "").strip().upper()
        dataset_id = str(data.get("defaultDatasetId") or "").strip() or None
        return RunStatus(
            status=map_apify_status(raw_status),
            raw_status=raw_status,
            default_dataset_id=dataset_id,
        )

    async def fetch_dataset_items(
        self,
        dataset_id: str,
        *,
        limit: int | None = None,
        clean: bool = True,
    ) -> list[dict[str, Any]]:
        ds = (dataset_id or "").strip()
        if not ds:
            raise DatasetFetchError("dataset_id must be a non-empty string")

        async def _do_fetch() -> list[dict[str, Any]]:
            dataset = self._client.dataset(ds)
            return [item async for item in dataset.iterate_items(limit=limit, clean=clean)]

        try:
            return await call_with_retries(
                _do_fetch,
                cfg=self._retry,
                is_retryable=is_retryable_apify_exception,
                operation=f"apify.dataset.iterate_items:{ds}",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        except ApifyApiError as e:
            raise DatasetFetchError(f"Failed to fetch dataset ({ds})", details=str(e)) from e
        except Exception as e:
            raise DatasetFetchError(
                f"Unexpected error while reading dataset ({ds})", details=str(e)
            ) from e

    async def abort(self, run_id: str) -> None:
        try:
            await self._client.run(run_id).abort()
        except ApifyApiError as e:
            raise ApifyError(f"Failed to abort Apify run ({run_id})", details=str(e)) from e
