"""Abstract base class for DNS challenge configurators."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Self

from cert_providers.models import ChallengeHandle, ChallengeState, DomainName


class DnsConfigurator(ABC):
    """Interface the orchestrator uses to drive DNS-01 challenge records.

    For one handle the caller must call ``begin``, then
    ``await_propagation``, then ``cleanup``. ``cleanup`` is the caller's
    responsibility whatever ``await_propagation`` returned.
    """

    def close(self) -> None:
        """Release resources. Override in subclasses that hold open connections."""

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @abstractmethod
    def begin(self, domain: DomainName | str, token: str) -> ChallengeHandle:
        """Publish the challenge value for a domain.

        Args:
            domain: Domain being validated (e.g. "example.com" or "*.example.com").
            token: The value the ACME server expects to find in the TXT record.

        Returns:
            A handle in the ``PROPAGATING`` state.
        """

    @abstractmethod
    def await_propagation(
        self,
        handle: ChallengeHandle,
        poll_interval: float | None = None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ChallengeState:
        """Wait until the value is observable or the timeout elapses.

        Returns:
            ``VERIFIED``, ``TIMED_OUT``, or ``PROPAGATING`` if ``cancel`` was set.
            When ``poll_interval`` or ``timeout`` is None the configured
            default applies.
        """

    @abstractmethod
    def cleanup(self, handle: ChallengeHandle) -> None:
        """Remove the value published for this handle. Idempotent."""
