"""Data classes shared by the DNS configurators and certificate outputs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

CHALLENGE_RECORD_TYPE = "TXT"
CHALLENGE_LABEL = "_acme-challenge"

_LABEL_RE = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?$")


@dataclass(frozen=True)
class DomainName:
    """A validated, lower-cased fully-qualified domain name.

    A single leading ``*.`` label marks a wildcard. The trailing root dot is
    stripped so ``example.com.`` and ``example.com`` compare equal.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError(f"Domain name must be a string, got: {type(self.value).__name__}")
        normalized = self.value.strip().lower().removesuffix(".")
        if not normalized:
            raise ValueError("Domain name must not be empty")
        if len(normalized) > 253:
            raise ValueError(f"Domain name '{normalized}' is longer than 253 characters")

        labels = normalized.split(".")
        if labels[0] == "*":
            labels = labels[1:]
            if not labels:
                raise ValueError("Wildcard domain name needs a base domain")
        for label in labels:
            if not _LABEL_RE.match(label):
                raise ValueError(f"Invalid label '{label}' in domain name '{normalized}'")
        object.__setattr__(self, "value", normalized)

    @classmethod
    def of(cls, domain: DomainName | str) -> DomainName:
        return domain if isinstance(domain, DomainName) else cls(domain)

    @property
    def is_wildcard(self) -> bool:
        return self.value.startswith("*.")

    @property
    def base(self) -> str:
        """The domain with any wildcard prefix removed."""
        return self.value.removeprefix("*.")

    @property
    def challenge_name(self) -> str:
        """The DNS-01 record name; wildcard and apex share it (RFC 8555 §8.4)."""
        return f"{CHALLENGE_LABEL}.{self.base}"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DnsRecord:
    """A challenge record in a zone.

    Identity is ``(zone, name, value)``: several concurrent challenges may
    publish different values under the same name.
    """

    zone: str
    name: str
    value: str
    ttl: int = field(default=60, compare=False)
    record_type: str = CHALLENGE_RECORD_TYPE
    record_id: str | None = field(default=None, compare=False)

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.zone, self.name, self.value)

    @property
    def fqdn(self) -> str:
        return f"{self.name}.{self.zone}" if self.name else self.zone

    def to_dict(self) -> dict:
        return {
            "zone": self.zone,
            "name": self.name,
            "value": self.value,
            "ttl": self.ttl,
            "record_type": self.record_type,
            "record_id": self.record_id,
        }


class ChallengeState(StrEnum):
    """Lifecycle of a single DNS-01 challenge record."""

    CREATED = "created"
    PROPAGATING = "propagating"
    VERIFIED = "verified"
    TIMED_OUT = "timed_out"
    CLEANED = "cleaned"


@dataclass(eq=False)
class ChallengeHandle:
    """Returned by ``begin``; needed to drive ``await_propagation`` and ``cleanup``.

    Lives only as long as the process. Only ``state`` changes after creation.
    """

    domain: DomainName
    token: str = field(repr=False)
    record: DnsRecord
    created_at: datetime
    state: ChallengeState = ChallengeState.CREATED

    def to_dict(self) -> dict:
        return {
            "domain": str(self.domain),
            "record": self.record.to_dict(),
            "created_at": self.created_at.isoformat(),
            "state": str(self.state),
        }


@dataclass(frozen=True)
class CertificateBundle:
    """Certificate material exactly as received from the ACME layer.

    The contents are opaque bytes and are never parsed here.
    """

    leaf_certificate: bytes
    intermediate_chain: tuple[bytes, ...]
    private_key: bytes = field(repr=False)
    domain: DomainName
    issued_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "intermediate_chain", tuple(self.intermediate_chain))
        object.__setattr__(self, "domain", DomainName.of(self.domain))
        for label, value in (("leaf_certificate", self.leaf_certificate), ("private_key", self.private_key)):
            if not isinstance(value, bytes):
                raise TypeError(f"{label} must be bytes, got: {type(value).__name__}")
            if not value:
                raise ValueError(f"{label} must not be empty")
        for element in self.intermediate_chain:
            if not isinstance(element, bytes):
                raise TypeError(f"intermediate_chain elements must be bytes, got: {type(element).__name__}")

    @property
    def chain(self) -> bytes:
        return b"".join(self.intermediate_chain)

    @property
    def full_chain(self) -> bytes:
        return self.leaf_certificate + self.chain


@dataclass(frozen=True)
class StoreKeySet:
    """The remote keys a certificate bundle is written to."""

    prefix: str
    cert: str
    chain: str
    key: str
    fullchain: str
    manifest: str

    @classmethod
    def for_prefix(cls, prefix: str) -> StoreKeySet:
        normalized = prefix.rstrip("/")
        if not normalized:
            raise ValueError(f"Key prefix must not be empty, got: {prefix!r}")
        return cls(
            prefix=normalized,
            cert=f"{normalized}/cert",
            chain=f"{normalized}/chain",
            key=f"{normalized}/key",
            fullchain=f"{normalized}/fullchain",
            manifest=f"{normalized}/manifest",
        )

    def keys(self) -> tuple[str, ...]:
        return (self.cert, self.chain, self.key, self.fullchain, self.manifest)


@dataclass(frozen=True)
class KeyValue:
    """An entry read from the key-value store."""

    key: str
    value: bytes
    mod_revision: int


@dataclass(frozen=True)
class Put:
    key: str
    value: bytes


@dataclass(frozen=True)
class Delete:
    key: str


@dataclass(frozen=True)
class Compare:
    """Transaction guard: ``key`` was last modified at ``mod_revision`` (0 = absent)."""

    key: str
    mod_revision: int


Operation = Put | Delete


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a successful bundle write."""

    keys: StoreKeySet
    revision: int
    transaction_id: str

    def to_dict(self) -> dict:
        return {
            "prefix": self.keys.prefix,
            "keys": list(self.keys.keys()),
            "revision": self.revision,
            "transaction_id": self.transaction_id,
        }
