"""etcd client — key-value operations via the etcd v3 JSON gateway."""

from __future__ import annotations

import base64
import logging
import threading
from collections.abc import Sequence
from typing import Any, Self

import httpx

from cert_providers.errors import AuthenticationError, ConflictError, ProviderError
from cert_providers.http import send
from cert_providers.models import Compare, Delete, KeyValue, Operation, Put
from cert_providers.retry import RetryPolicy

logger = logging.getLogger(__name__)


def _b64(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode()
    return base64.b64encode(data).decode("ascii")


def _unb64(data: str | None) -> bytes:
    return base64.b64decode(data or "")


def _revision(body: dict[str, Any]) -> int:
    return int((body.get("header") or {}).get("revision", 0))


class EtcdClient:
    """Client for the etcd v3 HTTP/JSON gateway.

    Keys are text, values are bytes; both are base64-encoded exactly once on
    the wire. When credentials are given the client authenticates lazily and
    sends the resulting token with every request. A cached token that etcd
    rejects is replaced once before the error is surfaced.

    Args:
        endpoint: Base URL of the etcd gateway (e.g. "http://localhost:2379").
        username: Optional etcd user.
        password: Password for ``username``.
        retry_policy: Backoff for transient failures.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        endpoint: str,
        username: str | None = None,
        password: str | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30,
        _http_client: httpx.Client | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._credentials = (username, password) if username is not None else None
        self._retry = retry_policy or RetryPolicy()
        self._client = _http_client or httpx.Client(timeout=timeout)
        self._token: str | None = None
        self._token_lock = threading.Lock()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _authenticate(self) -> str:
        username, password = self._credentials
        body = self._post("/v3/auth/authenticate", {"name": username, "password": password}, "etcd authenticate", None)
        token = body.get("token")
        if not token:
            raise AuthenticationError("etcd authenticate returned no token")
        logger.debug("Authenticated to etcd at %s as %s", self._endpoint, username)
        return token

    def _current_token(self) -> str | None:
        if self._credentials is None:
            return None
        with self._token_lock:
            if self._token is None:
                self._token = self._authenticate()
            return self._token

    def _post(self, path: str, payload: dict[str, Any], action: str, token: str | None) -> dict[str, Any]:
        headers = {"Authorization": token} if token else {}
        resp = send(
            self._client,
            "POST",
            f"{self._endpoint}{path}",
            json=payload,
            headers=headers,
            policy=self._retry,
            action=action,
        )
        try:
            body = resp.json()
        except ValueError as e:
            raise ProviderError(f"{action} returned a non-JSON response") from e
        if not isinstance(body, dict):
            raise ProviderError(f"{action} returned an unexpected response: {body!r}")
        return body

    def _call(self, path: str, payload: dict[str, Any], action: str) -> dict[str, Any]:
        token = self._current_token()
        try:
            return self._post(path, payload, action, token)
        except AuthenticationError:
            if token is None:
                raise
            logger.info("etcd rejected the cached auth token, authenticating again")
            with self._token_lock:
                if self._token == token:
                    self._token = None
            return self._post(path, payload, action, self._current_token())

    def put(self, key: str, value: bytes) -> int:
        """Store ``value`` under ``key``. Returns the store revision."""
        body = self._call("/v3/kv/put", {"key": _b64(key), "value": _b64(value)}, f"etcd put {key}")
        return _revision(body)

    def get_entry(self, key: str) -> KeyValue | None:
        """Return the entry for ``key`` with its modification revision, or None."""
        body = self._call("/v3/kv/range", {"key": _b64(key)}, f"etcd get {key}")
        kvs = body.get("kvs") or []
        if not kvs:
            return None
        kv = kvs[0]
        return KeyValue(
            key=_unb64(kv.get("key")).decode(),
            value=_unb64(kv.get("value")),
            mod_revision=int(kv.get("mod_revision", 0)),
        )

    def get(self, key: str) -> bytes | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def delete(self, key: str) -> int:
        """Delete ``key``. Returns how many keys were removed; 0 if it was absent."""
        body = self._call("/v3/kv/deleterange", {"key": _b64(key)}, f"etcd delete {key}")
        return int(body.get("deleted", 0))

    def transaction(self, operations: Sequence[Operation], guards: Sequence[Compare] = ()) -> int:
        """Apply every operation atomically, or none of them.

        Args:
            operations: ``Put`` and ``Delete`` operations to apply.
            guards: Each key must still be at the given modification revision
                (0 meaning the key must not exist).

        Returns:
            The store revision after the transaction.

        Raises:
            ConflictError: A guard did not hold; nothing was written.
        """
        if not operations:
            raise ValueError("A transaction needs at least one operation")

        success = []
        for op in operations:
            if isinstance(op, Put):
                success.append({"request_put": {"key": _b64(op.key), "value": _b64(op.value)}})
            elif isinstance(op, Delete):
                success.append({"request_delete_range": {"key": _b64(op.key)}})
            else:
                raise TypeError(f"Unsupported transaction operation: {op!r}")
        compare = [
            {"key": _b64(g.key), "target": "MOD", "result": "EQUAL", "mod_revision": str(g.mod_revision)}
            for g in guards
        ]

        body = self._call(
            "/v3/kv/txn",
            {"compare": compare, "success": success, "failure": []},
            f"etcd transaction ({len(operations)} operation(s))",
        )
        # The gateway omits false booleans, so a missing field means the guards failed.
        if not body.get("succeeded", False):
            raise ConflictError(
                "etcd transaction guard failed: " + ", ".join(f"{g.key}@{g.mod_revision}" for g in guards)
            )
        revision = _revision(body)
        logger.debug("etcd transaction committed at revision %d", revision)
        return revision
