"""Retrying request helper used by both network clients."""

from __future__ import annotations

from collections.abc import Callable

import httpx

from cert_providers.errors import check_response, translate_transport_errors
from cert_providers.retry import RetryPolicy, call_with_retry


def request_once(client: httpx.Client, method: str, url: str, action: str, **kwargs) -> httpx.Response:
    """Send one request and classify the result. No retry."""
    with translate_transport_errors(action):
        response = client.request(method, url, **kwargs)
    return check_response(response, action)


def send(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    policy: RetryPolicy,
    action: str,
    sleep: Callable[[float], None] | None = None,
    **kwargs,
) -> httpx.Response:
    """Send a request, retrying transient failures according to ``policy``."""
    extra = {"sleep": sleep} if sleep is not None else {}
    return call_with_retry(
        lambda: request_once(client, method, url, action, **kwargs),
        policy,
        action,
        **extra,
    )
