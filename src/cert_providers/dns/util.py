"""DNS utility functions."""

from __future__ import annotations

from collections.abc import Iterable

from cert_providers.models import DomainName


def normalize_zone(zone: str) -> str:
    """Lower-case a zone name and strip the trailing root dot."""
    normalized = zone.strip().lower().removesuffix(".")
    if not normalized:
        raise ValueError("Zone name must not be empty")
    return normalized


def find_owning_zone(domain: DomainName | str, zones: Iterable[str]) -> str | None:
    """Return the longest zone that equals or is a parent of the domain.

    The wildcard prefix is ignored, so ``*.example.com`` is owned by
    ``example.com``.

    Args:
        domain: Certificate domain (e.g. "sub.example.com" or "*.example.com").
        zones: Zone names registered with the DNS provider.

    Returns:
        The owning zone, or None if no zone matches.
    """
    base = DomainName.of(domain).base
    best: str | None = None
    for zone in zones:
        candidate = normalize_zone(zone)
        if base == candidate or base.endswith(f".{candidate}"):
            if best is None or len(candidate) > len(best):
                best = candidate
    return best


def split_record_name(fqdn: str, zone: str) -> str:
    """Return the record name relative to ``zone``.

    Args:
        fqdn: Fully qualified record name (e.g. "_acme-challenge.sub.example.com").
        zone: The owning zone (e.g. "example.com").

    Returns:
        The relative name (e.g. "_acme-challenge.sub").
    """
    fqdn = fqdn.lower().removesuffix(".")
    zone = normalize_zone(zone)
    suffix = f".{zone}"
    if not fqdn.endswith(suffix):
        raise ValueError(f"Record '{fqdn}' is not under zone '{zone}'")
    return fqdn.removesuffix(suffix)


def unquote_txt(value: str) -> str:
    """Strip the surrounding quotes DNS APIs put around TXT data."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value
