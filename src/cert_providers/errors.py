"""Error taxonomy shared by the DNS and key-value clients."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import httpx

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base class for errors raised by provider clients.

    Non-success responses that do not fall into one of the subclasses below
    are raised as a plain ``ProviderError`` and are never retried.
    """

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class TransientNetworkError(ProviderError):
    """Timeout, connection failure, rate limit or 5xx response. Retryable."""

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(detail, status_code)
        self.retry_after = retry_after


class AuthenticationError(ProviderError):
    """Credentials were rejected (401/403). Fatal."""


class NotFoundError(ProviderError):
    """The zone, record or key does not exist."""


class ConflictError(ProviderError):
    """A concurrent writer holds the same keys. Fatal, never retried internally."""


class ConfigurationError(ValueError):
    """Provider configuration is invalid.

    Carries every problem found rather than only the first one.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given either as seconds or as an HTTP-date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


def _response_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for field in ("error", "message", "detail"):
            if body.get(field):
                return str(body[field])
    return response.text


def check_response(response: httpx.Response, action: str) -> httpx.Response:
    """Raise the matching taxonomy error for a non-2xx response.

    Args:
        response: The response to classify.
        action: Short description of the request, used in error messages.

    Returns:
        The response itself when it was successful.
    """
    status = response.status_code
    if status < 400:
        return response

    detail = f"{action} failed ({status}): {_response_detail(response)}"
    if status == 429 or status >= 500:
        raise TransientNetworkError(
            detail,
            status_code=status,
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if status in (401, 403):
        raise AuthenticationError(detail, status_code=status)
    if status == 404:
        raise NotFoundError(detail, status_code=status)
    if status in (409, 412):
        raise ConflictError(detail, status_code=status)
    raise ProviderError(detail, status_code=status)


@contextlib.contextmanager
def translate_transport_errors(action: str) -> Iterator[None]:
    """Re-raise httpx transport failures as ``TransientNetworkError``."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise TransientNetworkError(f"{action} timed out: {e}") from e
    except httpx.TransportError as e:
        raise TransientNetworkError(f"{action} failed: {e}") from e
