"""etcd certificate output — write an issued bundle in a single transaction."""

from __future__ import annotations

import hashlib
import json
import logging
import uuid

from cert_providers.errors import ConflictError
from cert_providers.models import CertificateBundle, Compare, Put, StoreKeySet, StoreResult
from cert_providers.output.base import CertificateOutput
from cert_providers.output.etcd import EtcdClient

logger = logging.getLogger(__name__)

_KEY_ROOT = "/certificates"


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class EtcdCertificateOutput(CertificateOutput):
    """Writes certificate bundles to etcd.

    Every bundle occupies five keys under its prefix (``cert``, ``chain``,
    ``key``, ``fullchain`` and ``manifest``) written in one etcd transaction,
    so readers never observe a mix of two issuances. The transaction is
    guarded on the manifest's modification revision as read just before the
    write: a concurrent writer to the same prefix surfaces as
    ``ConflictError`` instead of being silently overwritten.

    No retry happens here beyond the client's own; a retried request carries
    the same bundle and transaction id.
    """

    def __init__(self, name: str, client: EtcdClient) -> None:
        super().__init__(name)
        self._client = client

    def close(self) -> None:
        self._client.close()

    def default_key_prefix(self, bundle: CertificateBundle) -> str:
        """``/certificates/<domain>/<output name>``; a wildcard keeps its ``*`` label."""
        return f"{_KEY_ROOT}/{bundle.domain}/{self.name}"

    def _manifest(self, bundle: CertificateBundle, keys: StoreKeySet, transaction_id: str) -> bytes:
        manifest = {
            "output": self.name,
            "domain": str(bundle.domain),
            "issued_at": bundle.issued_at.isoformat(),
            "transaction_id": transaction_id,
            "chain_lengths": [len(c) for c in bundle.intermediate_chain],
            "keys": {"cert": keys.cert, "chain": keys.chain, "key": keys.key, "fullchain": keys.fullchain},
            "sha256": {
                "cert": _digest(bundle.leaf_certificate),
                "chain": _digest(bundle.chain),
                "key": _digest(bundle.private_key),
                "fullchain": _digest(bundle.full_chain),
            },
        }
        return json.dumps(manifest, sort_keys=True).encode()

    def _committed_by(self, keys: StoreKeySet, transaction_id: str) -> bool:
        """Whether the stored manifest was written by this transaction."""
        current = self._client.get(keys.manifest)
        if current is None:
            return False
        try:
            return json.loads(current).get("transaction_id") == transaction_id
        except (ValueError, AttributeError):
            return False

    def store(self, bundle: CertificateBundle, key_prefix: str | None = None) -> StoreResult:
        keys = StoreKeySet.for_prefix(key_prefix or self.default_key_prefix(bundle))
        transaction_id = uuid.uuid4().hex

        previous = self._client.get_entry(keys.manifest)
        guard = Compare(keys.manifest, previous.mod_revision if previous is not None else 0)
        operations = [
            Put(keys.cert, bundle.leaf_certificate),
            Put(keys.chain, bundle.chain),
            Put(keys.key, bundle.private_key),
            Put(keys.fullchain, bundle.full_chain),
            Put(keys.manifest, self._manifest(bundle, keys, transaction_id)),
        ]

        logger.debug("Writing certificate for %s to %s (transaction %s)", bundle.domain, keys.prefix, transaction_id)
        try:
            revision = self._client.transaction(operations, guards=[guard])
        except ConflictError:
            # A transport-level retry may have replayed a request that had already committed.
            if not self._committed_by(keys, transaction_id):
                logger.error("Concurrent write to %s detected, certificate for %s not stored", keys.prefix, bundle.domain)
                raise
            entry = self._client.get_entry(keys.manifest)
            revision = entry.mod_revision if entry is not None else 0

        logger.info(
            "Stored certificate for %s in output '%s' under %s (revision %d)",
            bundle.domain,
            self.name,
            keys.prefix,
            revision,
        )
        return StoreResult(keys=keys, revision=revision, transaction_id=transaction_id)
