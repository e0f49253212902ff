"""Ways of observing whether a challenge TXT value is visible yet."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

import dns.exception
import dns.resolver

from cert_providers.dns.util import split_record_name
from cert_providers.errors import TransientNetworkError
from cert_providers.models import CHALLENGE_RECORD_TYPE
from cert_providers.retry import NO_RETRY

logger = logging.getLogger(__name__)


class TxtResolver(ABC):
    """Looks up the TXT values currently published under a name."""

    @abstractmethod
    def lookup(self, zone: str, fqdn: str, timeout: float | None = None) -> list[str]:
        """Return the TXT values at ``fqdn``; an empty list if there are none.

        A single attempt: the caller polls again instead of retrying here.

        Args:
            zone: The zone that owns the name (e.g. "example.com").
            fqdn: Fully qualified record name (e.g. "_acme-challenge.example.com").
            timeout: Upper bound in seconds for the whole lookup.

        Raises:
            TransientNetworkError: If the lookup could not be completed.
        """


class ProviderTxtResolver(TxtResolver):
    """Re-queries the DNS provider's API for the record set."""

    def __init__(self, client) -> None:
        self._client = client

    def lookup(self, zone: str, fqdn: str, timeout: float | None = None) -> list[str]:
        name = split_record_name(fqdn, zone)
        return [
            r.value
            for r in self._client.list_records(zone, _policy=NO_RETRY, _timeout=timeout)
            if r.record_type == CHALLENGE_RECORD_TYPE and r.name == name
        ]


class AuthoritativeTxtResolver(TxtResolver):
    """Queries the zone's authoritative name servers directly with dnspython.

    ACME servers look records up at the authoritative servers, so a value
    visible there is what validation will see, regardless of recursive
    resolver caching. The NS, address and TXT queries of one lookup share
    a single time budget.
    """

    def __init__(self, nameservers: Sequence[str] = (), lifetime: float = 10.0) -> None:
        self._nameservers = list(nameservers)
        self._lifetime = lifetime

    def _bootstrap_resolver(self) -> dns.resolver.Resolver:
        if not self._nameservers:
            return dns.resolver.Resolver()
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = self._nameservers
        return resolver

    @staticmethod
    def _remaining(deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise dns.exception.Timeout(timeout=0.0)
        return remaining

    def _authoritative_addresses(self, zone: str, deadline: float) -> list[str]:
        bootstrap = self._bootstrap_resolver()
        ns_answer = bootstrap.resolve(zone, "NS", lifetime=self._remaining(deadline), search=False)
        hosts = [rdata.target.to_text() for rdata in ns_answer]
        logger.debug("Located name servers %s for %s", hosts, zone)

        addresses: list[str] = []
        for host in hosts:
            try:
                answer = bootstrap.resolve(host, "A", lifetime=self._remaining(deadline), search=False)
            except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
                continue
            addresses.extend(rdata.address for rdata in answer)
        if not addresses:
            raise TransientNetworkError(f"No reachable authoritative name servers for {zone}")
        return addresses

    def lookup(self, zone: str, fqdn: str, timeout: float | None = None) -> list[str]:
        budget = self._lifetime if timeout is None else min(self._lifetime, timeout)
        deadline = time.monotonic() + budget
        try:
            resolver = dns.resolver.Resolver(configure=False)
            resolver.nameservers = self._authoritative_addresses(zone, deadline)
            answer = resolver.resolve(fqdn, "TXT", lifetime=self._remaining(deadline), search=False)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.DNSException as e:
            raise TransientNetworkError(f"Resolving TXT {fqdn} failed: {e}") from e
        return [b"".join(rdata.strings).decode() for rdata in answer]
