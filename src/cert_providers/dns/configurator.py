"""DNS-01 challenge lifecycle on top of a cloud DNS client."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from cert_providers.dns.base import DnsConfigurator
from cert_providers.dns.resolvers import ProviderTxtResolver, TxtResolver
from cert_providers.dns.util import find_owning_zone, normalize_zone, split_record_name
from cert_providers.errors import NotFoundError, TransientNetworkError
from cert_providers.models import (
    CHALLENGE_RECORD_TYPE,
    ChallengeHandle,
    ChallengeState,
    DnsRecord,
    DomainName,
)

logger = logging.getLogger(__name__)

_CHALLENGE_TTL = 60
_POLL_INTERVAL = 5.0
_PROPAGATION_TIMEOUT = 300.0


class DnsChallengeConfigurator(DnsConfigurator):
    """Creates, verifies and removes challenge TXT records.

    Nothing is persisted locally. If the process dies between ``begin`` and
    ``cleanup`` the record stays in the zone until the orchestrator retries
    the challenge or something external sweeps the zone.

    Args:
        client: A DNS client offering ``list_zones``, ``list_records``,
            ``create_record`` and ``delete_record`` (e.g. ``VultrDnsClient``).
        resolver: How propagation is observed. Defaults to re-querying the
            provider API.
        zones: Zones to resolve domains against. When empty the account's
            zone list is fetched from the provider once and cached.
        ttl: TTL of created records, in seconds.
        poll_interval: Default seconds between propagation checks.
        propagation_timeout: Default seconds to wait for propagation.
        clock: Monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        client,
        resolver: TxtResolver | None = None,
        zones: Sequence[str] = (),
        ttl: int = _CHALLENGE_TTL,
        poll_interval: float = _POLL_INTERVAL,
        propagation_timeout: float = _PROPAGATION_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._resolver = resolver or ProviderTxtResolver(client)
        self._ttl = ttl
        self._poll_interval = poll_interval
        self._propagation_timeout = propagation_timeout
        self._clock = clock
        self._zones: list[str] | None = [normalize_zone(z) for z in zones] or None
        self._zones_lock = threading.Lock()

    def close(self) -> None:
        self._client.close()

    def _known_zones(self) -> list[str]:
        with self._zones_lock:
            if self._zones is None:
                self._zones = self._client.list_zones()
                logger.debug("Account has %d zone(s)", len(self._zones))
            return self._zones

    def resolve_zone(self, domain: DomainName | str) -> str:
        """Return the longest registered zone owning ``domain``."""
        domain = DomainName.of(domain)
        zone = find_owning_zone(domain, self._known_zones())
        if zone is None:
            raise NotFoundError(f"No DNS zone found for '{domain}'")
        return zone

    def begin(self, domain: DomainName | str, token: str) -> ChallengeHandle:
        domain = DomainName.of(domain)
        if not token:
            raise ValueError("Challenge token must not be empty")

        zone = self.resolve_zone(domain)
        name = split_record_name(domain.challenge_name, zone)
        record_id = self._client.create_record(zone, name, CHALLENGE_RECORD_TYPE, token, self._ttl)
        record = DnsRecord(zone=zone, name=name, value=token, ttl=self._ttl, record_id=record_id)

        handle = ChallengeHandle(
            domain=domain,
            token=token,
            record=record,
            created_at=datetime.now(UTC),
        )
        handle.state = ChallengeState.PROPAGATING
        logger.info("Published challenge for %s at %s (record %s)", domain, record.fqdn, record_id)
        return handle

    def _is_visible(self, handle: ChallengeHandle, budget: float) -> bool:
        record = handle.record
        try:
            values = self._resolver.lookup(record.zone, record.fqdn, timeout=budget)
        except TransientNetworkError as e:
            logger.warning("Lookup of %s failed, will poll again: %s", record.fqdn, e)
            return False
        return handle.token in values

    def await_propagation(
        self,
        handle: ChallengeHandle,
        poll_interval: float | None = None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ChallengeState:
        if handle.state == ChallengeState.CLEANED:
            raise ValueError(f"Challenge for {handle.domain} has already been cleaned up")
        poll_interval = self._poll_interval if poll_interval is None else poll_interval
        timeout = self._propagation_timeout if timeout is None else timeout
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got: {poll_interval}")
        if timeout < 0:
            raise ValueError(f"timeout must not be negative, got: {timeout}")

        cancel = cancel or threading.Event()
        deadline = self._clock() + timeout
        polls = 0
        while True:
            if cancel.is_set():
                logger.info("Wait for %s cancelled after %d poll(s)", handle.record.fqdn, polls)
                return handle.state

            polls += 1
            # A poll may run at most one interval past the deadline.
            budget = max(deadline - self._clock(), poll_interval)
            if self._is_visible(handle, budget):
                handle.state = ChallengeState.VERIFIED
                logger.info("Challenge value for %s visible after %d poll(s)", handle.domain, polls)
                return handle.state

            remaining = deadline - self._clock()
            if remaining <= 0:
                handle.state = ChallengeState.TIMED_OUT
                logger.warning(
                    "Challenge value for %s not visible after %.1fs (%d poll(s))",
                    handle.domain,
                    timeout,
                    polls,
                )
                return handle.state

            logger.debug("Challenge value for %s not visible yet", handle.domain)
            cancel.wait(min(poll_interval, remaining))

    def cleanup(self, handle: ChallengeHandle) -> None:
        if handle.state == ChallengeState.CLEANED:
            logger.debug("Challenge for %s already cleaned up", handle.domain)
            return

        record = handle.record
        try:
            self._client.delete_record(record.zone, record.record_id)
        except NotFoundError:
            logger.warning("Record %s at %s already absent, skipping delete", record.record_id, record.fqdn)
        handle.state = ChallengeState.CLEANED
        logger.info("Removed challenge for %s from %s", handle.domain, record.fqdn)
