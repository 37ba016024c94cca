from __future__ import annotations

from apify_client.errors import ApifyApiError


def extract_status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "statusCode", "status", "http_status", "httpStatusCode"):
        val = getattr(exc, attr, None)
        if val is None:
            continue
        try:
            return int(val)
        except (TypeError, ValueError):
            continue
    return None


def _looks_like_timeout_or_connection(exc: BaseException) -> bool:
    # httpx/urllib3/impit all name their transport errors this way.
    name = type(exc).__name__.casefold()
    mod = type(exc).__module__.casefold()

    if "timeout" in name or "timeout" in mod:
        return True
    if "connection" in name or "connect" in name:
        return True
    if "connection" in mod or "connect" in mod:
        return True
    return False


def is_retryable_apify_exception(exc: BaseException) -> tuple[bool, str | None]:
    """
    Apify retry policy aligned with client behavior:
    - network/connection errors
    - HTTP 500+
    - HTTP 429
    """
    if isinstance(exc, ApifyApiError):
        code = extract_status_code(exc)
        reason = f"http_{code}" if code is not None else "http_status"
        if code == 429 or (isinstance(code, int) and code >= 500):
            return True, reason
        return False, reason

    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True, "network_error"

    if _looks_like_timeout_or_connection(exc):
        return True, "network_error"

    return False, None
