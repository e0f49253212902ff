"""Provider configuration: validation of named parameters and environment loading."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from cert_providers.errors import ConfigurationError

_VULTR_API_BASE = "https://api.vultr.com/v2"
_DEFAULT_TTL = 60
_DEFAULT_POLL_INTERVAL = 5.0
_DEFAULT_PROPAGATION_TIMEOUT = 300.0
_DEFAULT_MAX_ATTEMPTS = 4

VERIFY_VIA_PROVIDER = "provider"
VERIFY_VIA_DNS = "dns"

_DNS_REQUIRED = ("api-key",)
_DNS_KNOWN = {
    "api-key",
    "api-base",
    "zones",
    "ttl",
    "poll-interval",
    "propagation-timeout",
    "verification",
    "nameservers",
    "max-attempts",
}

_OUTPUT_REQUIRED = ("endpoint",)
_OUTPUT_KNOWN = {"endpoint", "username", "password", "max-attempts"}


@dataclass(frozen=True)
class DnsProviderConfig:
    """Settings for one DNS challenge configurator."""

    kind: str
    api_key: str = field(repr=False)
    api_base: str = _VULTR_API_BASE
    zones: tuple[str, ...] = ()
    ttl: int = _DEFAULT_TTL
    poll_interval: float = _DEFAULT_POLL_INTERVAL
    propagation_timeout: float = _DEFAULT_PROPAGATION_TIMEOUT
    verification: str = VERIFY_VIA_PROVIDER
    nameservers: tuple[str, ...] = ()
    max_attempts: int = _DEFAULT_MAX_ATTEMPTS


@dataclass(frozen=True)
class OutputProviderConfig:
    """Settings for one certificate output."""

    kind: str
    name: str
    endpoint: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    max_attempts: int = _DEFAULT_MAX_ATTEMPTS


@dataclass(frozen=True)
class AppConfig:
    """A DNS provider and a certificate output, as loaded from the environment."""

    dns: DnsProviderConfig
    output: OutputProviderConfig


def _split_list(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _check_names(
    parameters: Mapping[str, str],
    required: tuple[str, ...],
    known: set[str],
) -> list[str]:
    errors = [
        f"Missing required parameter '{name}' (required: {', '.join(required)})"
        for name in required
        if not parameters.get(name)
    ]
    errors.extend(
        f"Unrecognized parameter '{name}' (known: {', '.join(sorted(known))})"
        for name in sorted(parameters)
        if name not in known
    )
    return errors


def _number(parameters: Mapping[str, str], name: str, default, cast, errors: list[str]):
    raw = parameters.get(name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        errors.append(f"Parameter '{name}' must be of type {cast.__name__}, got: {raw!r}")
        return default
    if not math.isfinite(value):
        errors.append(f"Parameter '{name}' must be a finite number, got: {raw!r}")
        return default
    if value <= 0:
        errors.append(f"Parameter '{name}' must be positive, got: {raw!r}")
        return default
    return value


def dns_config_from_parameters(kind: str, parameters: Mapping[str, str]) -> DnsProviderConfig:
    """Validate the orchestrator's named parameters for a DNS provider.

    All problems are collected and raised together as one ``ConfigurationError``.
    """
    errors = _check_names(parameters, _DNS_REQUIRED, _DNS_KNOWN)
    ttl = _number(parameters, "ttl", _DEFAULT_TTL, int, errors)
    poll_interval = _number(parameters, "poll-interval", _DEFAULT_POLL_INTERVAL, float, errors)
    timeout = _number(parameters, "propagation-timeout", _DEFAULT_PROPAGATION_TIMEOUT, float, errors)
    max_attempts = _number(parameters, "max-attempts", _DEFAULT_MAX_ATTEMPTS, int, errors)

    verification = parameters.get("verification", VERIFY_VIA_PROVIDER)
    if verification not in (VERIFY_VIA_PROVIDER, VERIFY_VIA_DNS):
        errors.append(f"Parameter 'verification' must be 'provider' or 'dns', got: {verification!r}")

    if errors:
        raise ConfigurationError(f"Invalid configuration for DNS provider '{kind}'", errors)

    return DnsProviderConfig(
        kind=kind,
        api_key=parameters["api-key"],
        api_base=parameters.get("api-base", _VULTR_API_BASE),
        zones=_split_list(parameters.get("zones")),
        ttl=ttl,
        poll_interval=poll_interval,
        propagation_timeout=timeout,
        verification=verification,
        nameservers=_split_list(parameters.get("nameservers")),
        max_attempts=max_attempts,
    )


def output_config_from_parameters(kind: str, name: str, parameters: Mapping[str, str]) -> OutputProviderConfig:
    """Validate the orchestrator's named parameters for a certificate output."""
    errors = _check_names(parameters, _OUTPUT_REQUIRED, _OUTPUT_KNOWN)
    max_attempts = _number(parameters, "max-attempts", _DEFAULT_MAX_ATTEMPTS, int, errors)

    endpoint = parameters.get("endpoint", "")
    if endpoint and not endpoint.startswith(("http://", "https://")):
        errors.append(f"Parameter 'endpoint' must be an http(s) URL, got: {endpoint!r}")
    if ("username" in parameters) != ("password" in parameters):
        errors.append("Parameters 'username' and 'password' must be given together")

    if errors:
        raise ConfigurationError(f"Invalid configuration for output '{name}' ({kind})", errors)

    return OutputProviderConfig(
        kind=kind,
        name=name,
        endpoint=endpoint,
        username=parameters.get("username"),
        password=parameters.get("password"),
        max_attempts=max_attempts,
    )


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"Required environment variable {name} is not set")
    return value


def _optional_env(mapping: dict[str, str], parameter: str, name: str) -> None:
    value = os.environ.get(name)
    if value:
        mapping[parameter] = value


def load_config() -> AppConfig:
    """Load and validate provider configuration from environment variables."""
    dns_kind = _require_env("DNS_PROVIDER")
    dns_parameters = {"api-key": _require_env("DNS_API_KEY")}
    _optional_env(dns_parameters, "api-base", "DNS_API_BASE")
    _optional_env(dns_parameters, "zones", "DNS_ZONES")
    _optional_env(dns_parameters, "ttl", "DNS_TTL")
    _optional_env(dns_parameters, "poll-interval", "DNS_POLL_INTERVAL")
    _optional_env(dns_parameters, "propagation-timeout", "DNS_PROPAGATION_TIMEOUT")
    _optional_env(dns_parameters, "verification", "DNS_VERIFICATION")
    _optional_env(dns_parameters, "nameservers", "DNS_NAMESERVERS")

    output_kind = os.environ.get("OUTPUT_PROVIDER", "etcd")
    output_name = os.environ.get("OUTPUT_NAME", output_kind)
    output_parameters = {"endpoint": _require_env("ETCD_ENDPOINT")}
    _optional_env(output_parameters, "username", "ETCD_USERNAME")
    _optional_env(output_parameters, "password", "ETCD_PASSWORD")

    return AppConfig(
        dns=dns_config_from_parameters(dns_kind, dns_parameters),
        output=output_config_from_parameters(output_kind, output_name, output_parameters),
    )
