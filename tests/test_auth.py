from __future__ import annotations

import json
import unittest

import httpx

from ig_metrics.auth import MagicLinkSender, bearer_token
from ig_metrics.config import AuthSecrets
from ig_metrics.errors import AuthError, InputValidationError

_SECRETS = AuthSecrets(supabase_url="https://project.supabase.co", anon_key="anon-key")


class _Recorder:
    def __init__(self, status_code: int = 200, body: object = None) -> None:
        self.status_code = status_code
        self.body = {} if body is None else body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


class TestMagicLinkSender(unittest.IsolatedAsyncioTestCase):
    async def test_send_magic_link_posts_otp(self) -> None:
        recorder = _Recorder()
        sender = MagicLinkSender(_SECRETS, transport=httpx.MockTransport(recorder))

        await sender.send_magic_link(" a@example.com ", redirect_to="https://dash.example.com")

        self.assertEqual(len(recorder.requests), 1)
        req = recorder.requests[0]
        self.assertEqual(req.method, "POST")
        self.assertEqual(req.url.path, "/auth/v1/otp")
        self.assertEqual(req.url.params["redirect_to"], "https://dash.example.com")
        self.assertEqual(req.headers["apikey"], "anon-key")
        self.assertEqual(json.loads(req.content), {"email": "a@example.com", "create_user": True})

    async def test_send_magic_link_rejects_bad_email(self) -> None:
        recorder = _Recorder()
        sender = MagicLinkSender(_SECRETS, transport=httpx.MockTransport(recorder))

        for email in (None, "", "no-at-sign", "@example.com"):
            with self.assertRaises(InputValidationError):
                await sender.send_magic_link(email)
        self.assertEqual(recorder.requests, [])

    async def test_send_magic_link_upstream_error(self) -> None:
        recorder = _Recorder(status_code=429, body={"msg": "rate limited"})
        sender = MagicLinkSender(_SECRETS, transport=httpx.MockTransport(recorder))

        with self.assertRaises(AuthError) as ctx:
            await sender.send_magic_link("a@example.com")
        self.assertTrue(ctx.exception.details.startswith("429"))

    async def test_get_user(self) -> None:
        recorder = _Recorder(body={"id": "user-1", "email": "a@example.com"})
        sender = MagicLinkSender(_SECRETS, transport=httpx.MockTransport(recorder))

        user = await sender.get_user("access-token")

        self.assertEqual(user.id, "user-1")
        self.assertEqual(user.email, "a@example.com")
        self.assertEqual(recorder.requests[0].headers["authorization"], "Bearer access-token")

    async def test_get_user_rejects_invalid_session(self) -> None:
        sender = MagicLinkSender(
            _SECRETS, transport=httpx.MockTransport(_Recorder(status_code=401))
        )
        with self.assertRaises(AuthError):
            await sender.get_user("expired")


class TestBearerToken(unittest.TestCase):
    def test_parses_bearer_header(self) -> None:
        self.assertEqual(bearer_token("Bearer abc"), "abc")
        self.assertEqual(bearer_token("bearer  abc "), "abc")
        self.assertEqual(bearer_token("Basic abc"), "")
        self.assertEqual(bearer_token(None), "")


if __name__ == "__main__":
    unittest.main()
