"""Vultr DNS client — list/create/delete records via the Vultr v2 REST API."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Self
from urllib.parse import quote

import httpx

from cert_providers.dns.util import normalize_zone, unquote_txt
from cert_providers.errors import ProviderError
from cert_providers.http import send
from cert_providers.models import DnsRecord
from cert_providers.retry import NO_RETRY, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.vultr.com/v2"
_PAGE_SIZE = 500


def _segment(value: str) -> str:
    return quote(value, safe="")


class _NameLocks:
    """One lock per (zone, name), created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    @contextmanager
    def hold(self, zone: str, name: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault((zone, name), threading.Lock())
        with lock:
            yield


class VultrDnsClient:
    """Authenticated client for the Vultr DNS API.

    ``create_record`` is safe to call concurrently for the same (zone, name):
    the list-then-create sequence runs under a per-name lock so sibling
    challenges (wildcard and apex) cannot race each other inside this
    process. Other processes editing the same zone are not guarded against.
    """

    def __init__(
        self,
        api_key: str,
        api_base: str = DEFAULT_API_BASE,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30,
        _http_client: httpx.Client | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._retry = retry_policy or RetryPolicy()
        self._locks = _NameLocks()
        self._client = _http_client or httpx.Client(
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _zone_url(self, zone: str) -> str:
        return f"{self._api_base}/domains/{_segment(normalize_zone(zone))}/records"

    def _get_pages(
        self,
        url: str,
        item_key: str,
        action: str,
        policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Collect every item of a cursor-paginated listing."""
        extra = {"timeout": timeout} if timeout is not None else {}
        items: list[dict[str, Any]] = []
        params: dict[str, Any] = {"per_page": _PAGE_SIZE}
        while True:
            resp = send(self._client, "GET", url, params=params, policy=policy or self._retry, action=action, **extra)
            try:
                body = resp.json()
                items.extend(body[item_key])
                next_cursor = ((body.get("meta") or {}).get("links") or {}).get("next") or ""
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                raise ProviderError(f"{action} returned a malformed response: {e!r}") from e
            if not next_cursor:
                return items
            params = {"per_page": _PAGE_SIZE, "cursor": next_cursor}

    def list_zones(self) -> list[str]:
        """Return every DNS zone registered with the account."""
        domains = self._get_pages(f"{self._api_base}/domains", "domains", "List Vultr domains")
        return [normalize_zone(d["domain"]) for d in domains]

    def list_records(
        self,
        zone: str,
        _policy: RetryPolicy | None = None,
        _timeout: float | None = None,
    ) -> list[DnsRecord]:
        """Return every record in the zone. TXT values are unquoted."""
        zone = normalize_zone(zone)
        raw = self._get_pages(self._zone_url(zone), "records", f"List records of {zone}", _policy, _timeout)
        records = []
        for item in raw:
            record_type = item.get("type", "")
            data = item.get("data", "")
            records.append(
                DnsRecord(
                    zone=zone,
                    name=item.get("name", ""),
                    value=unquote_txt(data) if record_type == "TXT" else data,
                    ttl=int(item.get("ttl", 0)),
                    record_type=record_type,
                    record_id=str(item["id"]),
                )
            )
        logger.debug("Listed %d record(s) in zone %s", len(records), zone)
        return records

    def _matching_ids(self, zone: str, name: str, record_type: str, value: str) -> set[str]:
        wanted = DnsRecord(zone=zone, name=name, value=value, record_type=record_type)
        return {r.record_id for r in self.list_records(zone, _policy=NO_RETRY) if r == wanted}

    def _post_record(self, zone: str, name: str, record_type: str, value: str, ttl: int) -> str:
        resp = send(
            self._client,
            "POST",
            self._zone_url(zone),
            json={"name": name, "type": record_type, "data": value, "ttl": ttl, "priority": 0},
            policy=NO_RETRY,
            action=f"Create {record_type} record {name}.{zone}",
        )
        try:
            record_id = str(resp.json()["record"]["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Create {record_type} record {name}.{zone} returned no record id") from e
        logger.info("Created %s record %s.%s (id %s)", record_type, name, zone, record_id)
        return record_id

    def create_record(self, zone: str, name: str, record_type: str, value: str, ttl: int) -> str:
        """Create a new record, even if an identical one already exists.

        Identical records that exist before the first attempt are noted. A
        retry first looks for an identical record that is not among them:
        that one was made by an earlier attempt whose response was lost, and
        is returned instead of creating a duplicate.

        Returns:
            The provider's record id.
        """
        zone = normalize_zone(zone)
        existing: set[str] | None = None

        def attempt() -> str:
            nonlocal existing
            if existing is None:
                existing = self._matching_ids(zone, name, record_type, value)
            else:
                created = self._matching_ids(zone, name, record_type, value) - existing
                if created:
                    record_id = sorted(created)[0]
                    logger.info(
                        "Found %s record %s.%s from an earlier attempt (id %s)", record_type, name, zone, record_id
                    )
                    return record_id
            return self._post_record(zone, name, record_type, value, ttl)

        with self._locks.hold(zone, name):
            return call_with_retry(attempt, self._retry, f"Create {record_type} record {name}.{zone}")

    def delete_record(self, zone: str, record_id: str) -> None:
        """Delete a record by id. Raises ``NotFoundError`` if it is already gone."""
        zone = normalize_zone(zone)
        send(
            self._client,
            "DELETE",
            f"{self._zone_url(zone)}/{_segment(record_id)}",
            policy=self._retry,
            action=f"Delete record {record_id} in {zone}",
        )
        logger.info("Deleted record %s from zone %s", record_id, zone)
