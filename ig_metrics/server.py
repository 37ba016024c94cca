from __future__ import annotations

import random
from typing import Any, Callable, Mapping

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from .apify_client import ApifyActorRunner
from .auth import AuthUser, MagicLinkSender, bearer_token
from .config import AuthSecrets, RuntimeSecrets, resolve_auth_secrets, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import AuthError, DashboardError, InputValidationError, ParseError
from .mock_data import generate_growth_series, generate_mock_posts, summarize_account
from .orchestrator import ActorRunner, ScrapeOrchestrator
from .retry import RetryConfig, SleepFn
from .run_log import RunLogger
from .strategies import ScrapeStrategy, clean_username, strategies_from_config

RunnerFactory = Callable[[RuntimeSecrets], ActorRunner]
AuthFactory = Callable[[AuthSecrets], MagicLinkSender]

_LOGIN_FAILED = "Failed to send login link. Please try again."


def default_runner_factory(config: AppConfig) -> RunnerFactory:
    retry = RetryConfig(
        max_attempts=config.apify.retry_max_attempts,
        base_delay_seconds=config.apify.retry_base_delay_seconds,
        max_delay_seconds=config.apify.retry_max_delay_seconds,
    )

    def _factory(secrets: RuntimeSecrets) -> ActorRunner:
        return ApifyActorRunner(secrets.apify_token, retry=retry)

    return _factory


def create_app(
    config: AppConfig | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    runner_factory: RunnerFactory | None = None,
    auth_factory: AuthFactory | None = None,
    logger: RunLogger | None = None,
    sleep_fn: SleepFn | None = None,
) -> FastAPI:
    """
    Build the HTTP surface: one POST route per scrape strategy plus auth and dashboard routes.

    Secrets are read from `environ` (os.environ when None) on every request, so a
    missing key fails that request with an error envelope instead of the process.
    """
    cfg = config or AppConfig()
    make_runner = runner_factory or default_runner_factory(cfg)
    make_auth = auth_factory or (
        lambda secrets: MagicLinkSender(secrets, timeout=cfg.auth.timeout_seconds)
    )
    base_log = logger or RunLogger.open(cfg.server.log_path)
    cors_headers = {
        "Access-Control-Allow-Origin": cfg.server.allow_origin,
        "Access-Control-Allow-Headers": cfg.server.allow_headers,
    }

    app = FastAPI(title="ig_metrics", version="0.1.0")

    def _json(body: dict[str, Any], status_code: int = 200) -> JSONResponse:
        return JSONResponse(body, status_code=status_code, headers=dict(cors_headers))

    def _error(exc: BaseException, *, status_code: int | None = None) -> JSONResponse:
        message = (str(exc) or "").strip() or type(exc).__name__
        details = getattr(exc, "details", None) or "Check the function logs for more information"
        return _json(
            {"success": False, "error": message, "details": details},
            status_code=status_code or cfg.server.error_status,
        )

    @app.exception_handler(AuthError)
    async def _auth_error(request: Request, exc: AuthError) -> JSONResponse:
        return _error(exc, status_code=401)

    @app.exception_handler(DashboardError)
    async def _dashboard_error(request: Request, exc: DashboardError) -> JSONResponse:
        return _error(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
            for err in exc.errors()
        ]
        return _json(
            {
                "success": False,
                "error": "Invalid request parameters",
                "details": "; ".join(problems) or "Invalid request parameters",
            },
            status_code=422,
        )

    @app.options("/{path:path}")
    async def _preflight(path: str) -> PlainTextResponse:
        return PlainTextResponse("ok", headers=dict(cors_headers))

    @app.get("/health")
    async def _health() -> JSONResponse:
        return _json({"status": "ok"})

    def _scrape_endpoint(strategy: ScrapeStrategy) -> Callable[[Request], Any]:
        async def _endpoint(request: Request) -> JSONResponse:
            log = base_log.bind()
            try:
                body = await _read_json_object(request)
                username = clean_username(body.get("username"))
                debug = body.get("debug") is True
                log.info(
                    "scrape_request_received",
                    strategy=strategy.name,
                    username=username,
                    debug=debug,
                )
                if not username:
                    raise InputValidationError("Username is required")

                secrets = resolve_runtime_secrets(cfg, environ=environ)
                orchestrator = ScrapeOrchestrator(
                    make_runner(secrets),
                    strategy,
                    logger=log,
                    sleep_fn=sleep_fn,
                    dataset_clean=cfg.apify.dataset_clean,
                )
                outcome = await orchestrator.run(username)
            except Exception as exc:
                log.exception("scrape_request_failed", exc=exc, strategy=strategy.name)
                return _error(exc)

            log.info(
                "scrape_request_completed",
                strategy=strategy.name,
                username=outcome.username,
                posts=len(outcome.posts),
            )
            payload: dict[str, Any] = {
                "success": True,
                "data": [p.to_dict() for p in outcome.posts],
                "message": (
                    f"Successfully fetched {len(outcome.posts)} posts for @{outcome.username}"
                ),
            }
            if debug:
                payload["raw"] = outcome.raw_items
            return _json(payload)

        _endpoint.__name__ = f"scrape_{strategy.name.replace('-', '_')}"
        return _endpoint

    for name, strategy in strategies_from_config(cfg).items():
        app.add_api_route(f"/{name}", _scrape_endpoint(strategy), methods=["POST"])

    @app.post("/auth/magic-link")
    async def _magic_link(request: Request) -> JSONResponse:
        log = base_log.bind()
        try:
            body = await _read_json_object(request)
            redirect = (
                body.get("redirectTo")
                or cfg.auth.redirect_to
                or request.headers.get("origin")
            )
            sender = make_auth(resolve_auth_secrets(cfg, environ=environ))
            await sender.send_magic_link(body.get("email"), redirect_to=redirect)
        except Exception as exc:
            log.exception("magic_link_failed", exc=exc)
            details = getattr(exc, "details", None) or str(exc)
            return _json(
                {"success": False, "error": _LOGIN_FAILED, "details": details},
                status_code=cfg.server.error_status,
            )

        log.info("magic_link_sent")
        return _json({"success": True, "message": "Check your email"})

    async def _require_session(request: Request) -> AuthUser | None:
        if not cfg.auth.required:
            return None
        token = bearer_token(request.headers.get("authorization"))
        if not token:
            raise AuthError("Missing access token")
        sender = make_auth(resolve_auth_secrets(cfg, environ=environ))
        return await sender.get_user(token)

    def _rng(seed: int | None) -> random.Random:
        chosen = seed if seed is not None else cfg.mock.seed
        return random.Random(chosen)

    @app.get("/dashboard/posts", dependencies=[Depends(_require_session)])
    async def _dashboard_posts(
        count: int = Query(cfg.mock.post_count, ge=0, le=500),
        seed: int | None = None,
    ) -> JSONResponse:
        posts = generate_mock_posts(count, rng=_rng(seed))
        return _json({"success": True, "data": [p.to_dict() for p in posts]})

    @app.get("/dashboard/growth", dependencies=[Depends(_require_session)])
    async def _dashboard_growth(
        days: int = Query(cfg.mock.growth_days, ge=1, le=365),
        seed: int | None = None,
    ) -> JSONResponse:
        return _json({"success": True, "data": generate_growth_series(days, rng=_rng(seed))})

    @app.get("/dashboard/overview", dependencies=[Depends(_require_session)])
    async def _dashboard_overview(
        seed: int | None = None,
    ) -> JSONResponse:
        rng = _rng(seed)
        posts = generate_mock_posts(cfg.mock.post_count, rng=rng)
        growth = generate_growth_series(cfg.mock.growth_days, rng=rng)
        return _json({"success": True, "data": summarize_account(posts, growth)})

    return app


async def _read_json_object(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = await request.json()
    except ValueError as exc:
        raise ParseError("Request body must be valid JSON", details=str(exc)) from exc
    if not isinstance(data, dict):
        raise ParseError("Request body must be a JSON object")
    return data
