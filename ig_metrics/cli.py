from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
from typing import Sequence

from .config import config_sha256, load_config, resolve_runtime_secrets
from .errors import ApifyError, ConfigError, DashboardError
from .mock_data import generate_mock_posts
from .orchestrator import ActorRunner, ScrapeOrchestrator
from .run_log import RunLogger
from .server import create_app, default_runner_factory
from .strategies import strategies_from_config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ig_metrics")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser(
        "serve",
        help="Serve the scrape, auth and dashboard HTTP endpoints.",
    )
    serve.add_argument("--config", help="Path to YAML config file.")
    serve.add_argument("--host", help="Bind address (overrides config).")
    serve.add_argument("--port", type=int, help="Bind port (overrides config).")
    serve.set_defaults(_handler=_cmd_serve)

    fetch = subparsers.add_parser(
        "fetch",
        help="Run one scrape for a username and print the JSON response body.",
    )
    fetch.add_argument("--username", required=True, help="Instagram username (with or without @).")
    fetch.add_argument(
        "--strategy",
        default="fetch-instagram-data",
        help="Configured strategy name.",
    )
    fetch.add_argument("--config", help="Path to YAML config file.")
    fetch.add_argument(
        "--offline",
        action="store_true",
        help="Run without network calls using a small stub dataset.",
    )
    fetch.set_defaults(_handler=_cmd_fetch)

    mock = subparsers.add_parser(
        "mock-posts",
        help="Print generated demo posts as JSON.",
    )
    mock.add_argument("--count", type=int, default=34)
    mock.add_argument("--seed", type=int, default=None)
    mock.set_defaults(_handler=_cmd_mock_posts)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    cfg = load_config(args.config)
    log = RunLogger.open(cfg.server.log_path)
    log.info(
        "server_starting",
        config_path=str(args.config or ""),
        config_sha256=config_sha256(cfg),
        strategies=sorted(cfg.strategies),
    )

    app = create_app(cfg, logger=log)
    uvicorn.run(
        app,
        host=args.host or cfg.server.host,
        port=int(args.port or cfg.server.port),
    )
    return 0


def _cmd_fetch(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    strategies = strategies_from_config(cfg)
    strategy = strategies.get(args.strategy)
    if strategy is None:
        known = ", ".join(sorted(strategies))
        raise ConfigError(f"Unknown strategy {args.strategy!r}; configured: {known}")

    runner: ActorRunner
    if bool(getattr(args, "offline", False)):
        from .offline import OfflineActorRunner

        runner = OfflineActorRunner()

        async def _no_sleep(_: float) -> None:
            return None

        sleep_fn = _no_sleep
    else:
        runner = default_runner_factory(cfg)(resolve_runtime_secrets(cfg))
        sleep_fn = None

    log = RunLogger.open(cfg.server.log_path)
    orchestrator = ScrapeOrchestrator(
        runner,
        strategy,
        logger=log,
        sleep_fn=sleep_fn,
        dataset_clean=cfg.apify.dataset_clean,
    )
    outcome = asyncio.run(orchestrator.run(args.username))

    body = {
        "success": True,
        "data": [p.to_dict() for p in outcome.posts],
        "message": f"Successfully fetched {len(outcome.posts)} posts for @{outcome.username}",
    }
    print(json.dumps(body, indent=2, ensure_ascii=False))
    return 0


def _cmd_mock_posts(args: argparse.Namespace) -> int:
    posts = generate_mock_posts(args.count, rng=random.Random(args.seed))
    print(json.dumps([p.to_dict() for p in posts], indent=2, ensure_ascii=False))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except ApifyError as e:
        _eprint(f"{e}: {e.details}")
        return 3
    except DashboardError as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
