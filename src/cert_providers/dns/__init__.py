"""DNS configurator factory — resolve provider kind to concrete implementation."""

from __future__ import annotations

from collections.abc import Callable

from cert_providers.config import VERIFY_VIA_DNS, DnsProviderConfig
from cert_providers.dns.base import DnsConfigurator
from cert_providers.dns.configurator import DnsChallengeConfigurator
from cert_providers.dns.resolvers import AuthoritativeTxtResolver, TxtResolver
from cert_providers.dns.vultr import VultrDnsClient
from cert_providers.retry import RetryPolicy

DnsConfiguratorFactory = Callable[[DnsProviderConfig], DnsConfigurator]


def _create_vultr(config: DnsProviderConfig) -> DnsConfigurator:
    if not config.api_key:
        raise ValueError("An API key is required for the vultr DNS provider")
    client = VultrDnsClient(
        api_key=config.api_key,
        api_base=config.api_base,
        retry_policy=RetryPolicy(max_attempts=config.max_attempts),
    )
    resolver: TxtResolver | None = None
    if config.verification == VERIFY_VIA_DNS:
        resolver = AuthoritativeTxtResolver(nameservers=config.nameservers)
    return DnsChallengeConfigurator(
        client,
        resolver=resolver,
        zones=config.zones,
        ttl=config.ttl,
        poll_interval=config.poll_interval,
        propagation_timeout=config.propagation_timeout,
    )


DNS_CONFIGURATOR_FACTORIES: dict[str, DnsConfiguratorFactory] = {
    "vultr": _create_vultr,
}


def register_dns_configurator(kind: str, factory: DnsConfiguratorFactory) -> None:
    """Make an additional DNS provider kind available to ``get_dns_configurator``."""
    DNS_CONFIGURATOR_FACTORIES[kind.lower()] = factory


def get_dns_configurator(config: DnsProviderConfig) -> DnsConfigurator:
    """Instantiate a DNS challenge configurator for the configured provider kind.

    Args:
        config: Validated provider configuration.

    Returns:
        A configured DnsConfigurator instance.
    """
    kind = config.kind.lower()
    factory = DNS_CONFIGURATOR_FACTORIES.get(kind)
    if factory is None:
        raise ValueError(f"Unknown DNS provider: '{kind}'")
    return factory(config)
