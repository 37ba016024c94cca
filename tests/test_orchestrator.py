from __future__ import annotations

import asyncio
import io
import json
import unittest
from dataclasses import replace
from typing import Any

from ig_metrics.apify_client import JobStatus
from ig_metrics.config_schema import AppConfig, StrategyConfig
from ig_metrics.errors import (
    DatasetFetchError,
    InputValidationError,
    JobFailedError,
    JobTimedOutError,
    LaunchFailedError,
)
from ig_metrics.offline import OfflineActorRunner
from ig_metrics.orchestrator import ScrapeOrchestrator
from ig_metrics.run_log import RunLogger
from ig_metrics.strategies import (
    build_posts_input,
    build_profile_input,
    clean_username,
    strategy_from_config,
)

_POST_KEYS = {"id", "username", "thumbnail", "caption", "timestamp", "metrics"}
_METRIC_KEYS = {"views", "likes", "comments", "shares", "saves", "engagement"}


async def _no_sleep(_: float) -> None:
    return None


def _strategy(**overrides: Any):
    cfg = StrategyConfig(poll_interval_seconds=1.0, max_attempts=5, **overrides)
    return strategy_from_config("test", cfg)


class _FailingLaunchRunner(OfflineActorRunner):
    async def launch(self, actor_id, run_input):  # type: ignore[override]
        raise LaunchFailedError("nope", status_code=400, details="bad input")


class _AbortFailsRunner(OfflineActorRunner):
    async def abort(self, run_id):  # type: ignore[override]
        self.aborted.append(run_id)
        raise ConnectionError("connection reset during abort")


class _NoDatasetRunner(OfflineActorRunner):
    async def launch(self, actor_id, run_input):  # type: ignore[override]
        ref = await super().launch(actor_id, run_input)
        return replace(ref, default_dataset_id="")

    async def get_status(self, run_id):  # type: ignore[override]
        status = await super().get_status(run_id)
        return replace(status, default_dataset_id=None)


class TestInputBuilders(unittest.TestCase):
    def test_clean_username(self) -> None:
        self.assertEqual(clean_username("  @baker "), "baker")
        self.assertEqual(clean_username("baker"), "baker")
        self.assertEqual(clean_username("@"), "")
        self.assertEqual(clean_username(None), "")
        self.assertEqual(clean_username(12), "")

    def test_profile_input_matches_actor_contract(self) -> None:
        cfg = AppConfig().strategies["fetch-instagram-data"]
        run_input = build_profile_input("baker", cfg)

        self.assertEqual(run_input["usernames"], ["baker"])
        self.assertEqual(run_input["resultsLimit"], 100)
        self.assertEqual(run_input["resultsType"], "posts")
        self.assertEqual(run_input["searchType"], "user")
        self.assertTrue(run_input["scrapePosts"])
        self.assertFalse(run_input["scrapeFollowers"])
        self.assertEqual(
            run_input["proxy"],
            {"useApifyProxy": True, "apifyProxyGroups": ["RESIDENTIAL"]},
        )

    def test_posts_input_without_proxy_groups(self) -> None:
        cfg = AppConfig().strategies["fetch-instagram-posts"]
        run_input = build_posts_input("baker", cfg)
        self.assertEqual(run_input["username"], ["baker"])
        self.assertEqual(run_input["proxy"], {"useApifyProxy": True})


class TestScrapeOrchestrator(unittest.IsolatedAsyncioTestCase):
    async def test_immediate_success_yields_post_records(self) -> None:
        runner = OfflineActorRunner(statuses=("SUCCEEDED",))
        orchestrator = ScrapeOrchestrator(runner, _strategy(), sleep_fn=_no_sleep)

        outcome = await orchestrator.run("@offline_user")

        self.assertEqual(outcome.username, "offline_user")
        self.assertEqual(runner.status_checks, 1)
        self.assertEqual(runner.launched[0][0], "apify/instagram-profile-scraper")
        self.assertEqual(runner.launched[0][1]["usernames"], ["offline_user"])
        self.assertEqual(len(outcome.posts), 3)
        for post in outcome.posts:
            record = post.to_dict()
            self.assertTrue(_POST_KEYS.issubset(record))
            self.assertTrue(_METRIC_KEYS.issubset(record["metrics"]))

    async def test_content_type_filter_applies(self) -> None:
        runner = OfflineActorRunner(statuses=("SUCCEEDED",))
        strategy = _strategy(content_types=["Video", "Photo"], engagement="per_hundred")

        outcome = await ScrapeOrchestrator(runner, strategy, sleep_fn=_no_sleep).run("u")

        self.assertEqual([p.id for p in outcome.posts], ["3001", "3002"])
        self.assertEqual(outcome.posts[0].metrics.engagement, 12.8)
        self.assertEqual(len(outcome.raw_items), 3)

    async def test_blank_username_never_launches(self) -> None:
        runner = OfflineActorRunner()
        with self.assertRaises(InputValidationError):
            await ScrapeOrchestrator(runner, _strategy(), sleep_fn=_no_sleep).run(" @ ")
        self.assertEqual(runner.launched, [])

    async def test_failed_run_reports_status(self) -> None:
        runner = OfflineActorRunner(statuses=("RUNNING", "RUNNING", "FAILED"))

        with self.assertRaises(JobFailedError) as ctx:
            await ScrapeOrchestrator(runner, _strategy(), sleep_fn=_no_sleep).run("u")

        self.assertIs(ctx.exception.status, JobStatus.FAILED)
        self.assertEqual(str(ctx.exception), "Run failed with status: FAILED")
        self.assertEqual(runner.aborted, [])

    async def test_timeout_aborts_remote_run(self) -> None:
        runner = OfflineActorRunner(statuses=("RUNNING",))

        with self.assertRaises(JobTimedOutError):
            await ScrapeOrchestrator(runner, _strategy(), sleep_fn=_no_sleep).run("u")

        self.assertEqual(runner.status_checks, 5)
        self.assertEqual(runner.aborted, ["offline_run"])

    async def test_cancellation_aborts_remote_run(self) -> None:
        runner = OfflineActorRunner(statuses=("RUNNING",))
        strategy = strategy_from_config(
            "slow", StrategyConfig(poll_interval_seconds=60.0, max_attempts=5)
        )
        task = asyncio.create_task(ScrapeOrchestrator(runner, strategy).run("u"))

        for _ in range(20):
            if runner.status_checks:
                break
            await asyncio.sleep(0)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(runner.aborted, ["offline_run"])

    async def test_timeout_survives_failed_abort(self) -> None:
        buf = io.StringIO()
        log = RunLogger.open(stream=buf, session_id="s1")
        runner = _AbortFailsRunner(statuses=("RUNNING",))
        strategy = strategy_from_config(
            "test", StrategyConfig(poll_interval_seconds=1.0, max_attempts=3)
        )

        with self.assertRaises(JobTimedOutError) as ctx:
            await ScrapeOrchestrator(runner, strategy, logger=log, sleep_fn=_no_sleep).run("u")

        self.assertIn("Timeout waiting for results", str(ctx.exception))
        self.assertEqual(runner.aborted, ["offline_run"])
        records = [json.loads(line) for line in buf.getvalue().splitlines()]
        failed = [r for r in records if r["event"] == "actor_run_abort_failed"]
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0]["data"]["error_type"], "ConnectionError")

    async def test_cancellation_survives_failed_abort(self) -> None:
        runner = _AbortFailsRunner(statuses=("RUNNING",))
        strategy = strategy_from_config(
            "slow", StrategyConfig(poll_interval_seconds=60.0, max_attempts=5)
        )
        task = asyncio.create_task(ScrapeOrchestrator(runner, strategy).run("u"))

        for _ in range(20):
            if runner.status_checks:
                break
            await asyncio.sleep(0)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertTrue(task.cancelled())
        self.assertEqual(runner.aborted, ["offline_run"])

    async def test_finished_run_without_dataset(self) -> None:
        runner = _NoDatasetRunner(statuses=("SUCCEEDED",))

        with self.assertRaises(DatasetFetchError) as ctx:
            await ScrapeOrchestrator(runner, _strategy(), sleep_fn=_no_sleep).run("u")

        self.assertIn("finished without a dataset", str(ctx.exception))

    async def test_launch_failure_propagates(self) -> None:
        with self.assertRaises(LaunchFailedError) as ctx:
            await ScrapeOrchestrator(_FailingLaunchRunner(), _strategy()).run("u")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.details, "bad input")

    async def test_logs_each_status_check(self) -> None:
        buf = io.StringIO()
        log = RunLogger.open(stream=buf, session_id="s1")
        runner = OfflineActorRunner(statuses=("READY", "RUNNING", "SUCCEEDED"))

        await ScrapeOrchestrator(runner, _strategy(), logger=log, sleep_fn=_no_sleep).run("u")

        records = [json.loads(line) for line in buf.getvalue().splitlines()]
        events = [r["event"] for r in records]
        self.assertEqual(events.count("actor_run_status"), 3)
        self.assertIn("actor_run_started", events)
        self.assertIn("dataset_fetched", events)
        self.assertTrue(all(r["session_id"] == "s1" for r in records))
        self.assertEqual(records[-1]["run_id"], "offline_run")


if __name__ == "__main__":
    unittest.main()
