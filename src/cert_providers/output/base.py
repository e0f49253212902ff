"""Abstract base class for certificate outputs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Self

from cert_providers.models import CertificateBundle, StoreResult


class CertificateOutput(ABC):
    """Interface the orchestrator uses to persist an issued certificate bundle."""

    def __init__(self, name: str) -> None:
        self.name = name

    def close(self) -> None:
        """Release resources. Override in subclasses that hold open connections."""

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @abstractmethod
    def store(self, bundle: CertificateBundle, key_prefix: str | None = None) -> StoreResult:
        """Write the bundle so readers see all of it or none of it.

        Args:
            bundle: Certificate material from the ACME layer.
            key_prefix: Where to write the bundle. Outputs choose a default
                derived from the bundle's domain when omitted.

        Returns:
            Where the bundle was written and at which store revision.
        """
