from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from ig_metrics.config import (
    config_sha256,
    load_config,
    resolve_auth_secrets,
    resolve_runtime_secrets,
)
from ig_metrics.errors import ConfigError


_VALID_YAML = """\
apify:
  token_env: APIFY_API_KEY
  dataset_clean: true
  retry_max_attempts: 2

strategies:
  fetch-instagram-data:
    actor_id: apify/instagram-profile-scraper
    input_style: profile
    results_limit: 100
    poll_interval_seconds: 10
    max_attempts: 30
    engagement: views_ratio
    proxy:
      use_apify_proxy: true
      groups: [residential]
  fetch-instagram-reels:
    actor_id: apify/instagram-post-scraper
    input_style: posts
    poll_interval_seconds: 2
    max_attempts: 24
    engagement: per_hundred
    content_types: [Video, Photo, video]

server:
  port: 9000
  error_status: 500

auth:
  required: false
  redirect_to: https://dashboard.example.com
"""


class TestConfig(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_config_ok(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, _VALID_YAML))

        self.assertEqual(cfg.server.port, 9000)
        self.assertEqual(sorted(cfg.strategies), ["fetch-instagram-data", "fetch-instagram-reels"])
        profile = cfg.strategies["fetch-instagram-data"]
        self.assertEqual(profile.proxy.groups, ["RESIDENTIAL"])
        reels = cfg.strategies["fetch-instagram-reels"]
        self.assertEqual(reels.content_types, ["Video", "Photo"])
        self.assertEqual(reels.engagement, "per_hundred")

    def test_missing_path_uses_defaults(self) -> None:
        cfg = load_config(None)
        self.assertIn("fetch-instagram-data", cfg.strategies)
        self.assertEqual(cfg.strategies["fetch-instagram-data"].max_attempts, 30)
        self.assertEqual(cfg.server.error_status, 500)

    def test_load_config_rejects_unknown_engagement(self) -> None:
        bad_yaml = _VALID_YAML.replace("engagement: per_hundred", "engagement: magic")
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError) as ctx:
                load_config(self._write(td, bad_yaml))
        self.assertIn("engagement", str(ctx.exception))

    def test_load_config_rejects_reserved_strategy_name(self) -> None:
        bad_yaml = _VALID_YAML.replace("fetch-instagram-reels:", "health:")
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_config(self._write(td, bad_yaml))

    def test_load_config_missing_file(self) -> None:
        with self.assertRaises(ConfigError):
            load_config("/nonexistent/ig_metrics.yaml")

    def test_resolve_runtime_secrets_requires_env(self) -> None:
        cfg = load_config(None)

        with self.assertRaises(ConfigError) as ctx:
            resolve_runtime_secrets(cfg, environ={"APIFY_API_KEY": "   "})
        self.assertIn("APIFY_API_KEY", str(ctx.exception))

        secrets = resolve_runtime_secrets(cfg, environ={"APIFY_API_KEY": " tok "})
        self.assertEqual(secrets.apify_token, "tok")

    def test_resolve_auth_secrets_lists_missing(self) -> None:
        cfg = load_config(None)

        with self.assertRaises(ConfigError) as ctx:
            resolve_auth_secrets(cfg, environ={"SUPABASE_URL": "https://x.supabase.co"})
        self.assertIn("SUPABASE_ANON_KEY", str(ctx.exception))

        secrets = resolve_auth_secrets(
            cfg,
            environ={"SUPABASE_URL": "https://x.supabase.co/", "SUPABASE_ANON_KEY": "anon"},
        )
        self.assertEqual(secrets.supabase_url, "https://x.supabase.co")

    def test_example_config_matches_defaults(self) -> None:
        example = Path(__file__).resolve().parents[1] / "config.example.yaml"
        cfg = load_config(example)
        defaults = load_config(None)
        self.assertEqual(sorted(cfg.strategies), sorted(defaults.strategies))
        self.assertEqual(cfg.strategies["fetch-instagram-reels"].deadline_seconds, 120.0)

    def test_config_hash_is_stable(self) -> None:
        self.assertEqual(config_sha256(load_config(None)), config_sha256(load_config(None)))


if __name__ == "__main__":
    unittest.main()
