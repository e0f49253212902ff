"""Certificate output factory — resolve output kind to concrete implementation."""

from __future__ import annotations

from collections.abc import Callable

from cert_providers.config import OutputProviderConfig
from cert_providers.output.base import CertificateOutput
from cert_providers.output.etcd import EtcdClient
from cert_providers.output.sink import EtcdCertificateOutput
from cert_providers.retry import RetryPolicy

OutputFactory = Callable[[OutputProviderConfig], CertificateOutput]


def _create_etcd(config: OutputProviderConfig) -> CertificateOutput:
    if not config.endpoint:
        raise ValueError(f"An endpoint is required for etcd output '{config.name}'")
    client = EtcdClient(
        endpoint=config.endpoint,
        username=config.username,
        password=config.password,
        retry_policy=RetryPolicy(max_attempts=config.max_attempts),
    )
    return EtcdCertificateOutput(name=config.name, client=client)


OUTPUT_FACTORIES: dict[str, OutputFactory] = {
    "etcd": _create_etcd,
}


def register_certificate_output(kind: str, factory: OutputFactory) -> None:
    """Make an additional output kind available to ``get_certificate_output``."""
    OUTPUT_FACTORIES[kind.lower()] = factory


def get_certificate_output(config: OutputProviderConfig) -> CertificateOutput:
    """Instantiate a certificate output for the configured kind.

    Args:
        config: Validated output configuration.

    Returns:
        A configured CertificateOutput instance.
    """
    kind = config.kind.lower()
    factory = OUTPUT_FACTORIES.get(kind)
    if factory is None:
        raise ValueError(f"Unknown certificate output: '{kind}'")
    return factory(config)
