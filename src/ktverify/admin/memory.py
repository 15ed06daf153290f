"""
ktverify In-Memory Collaborators

Simulated KDC and secret store for tests, demos and dry runs.

InMemoryKDC behaves like a kadmin-backed principal database:
- listing filters follow kadmin listprincs globbing (an expression
  without '@' is matched against the default realm)
- adding is idempotent and mints random key material per enc type
- keytab export keeps existing keys (no re-randomization)

InMemorySecretStore keeps binary secrets as raw bytes and text secrets as
base64, the way a text-only secret backend would hold a keytab.

Both are thread-safe.
"""

from __future__ import annotations

import base64
import fnmatch
import secrets
import threading
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import attrs
import structlog

from ktverify.admin.collaborators import KDCAdmin, SecretStore
from ktverify.core.types import (
    EncryptionType,
    Key,
    Keytab,
    KeytabEntry,
    Principal,
    sort_principals,
)
from ktverify.keytab.codec import encode_keytab

logger = structlog.get_logger()

DEFAULT_ENC_TYPES: Tuple[int, ...] = (
    EncryptionType.AES256_CTS_HMAC_SHA1_96.value,
    EncryptionType.AES128_CTS_HMAC_SHA1_96.value,
)


def generate_key(enc_type: int) -> Key:
    """Random key of the right size for enc_type (32 bytes if unknown)."""
    try:
        size = EncryptionType(enc_type).key_size
    except ValueError:
        size = 32
    return Key(enc_type=enc_type, material=secrets.token_bytes(size))


# =============================================================================
# KDC
# =============================================================================


@attrs.define(frozen=True, slots=True)
class PrincipalRecord:
    """A principal with its current keys and key version."""

    principal: Principal
    keys: Tuple[Key, ...] = attrs.field(converter=tuple)
    kvno: int = 1


@attrs.define
class InMemoryKDC(KDCAdmin):
    """
    Simulated KDC principal database.

    Example:
        kdc = InMemoryKDC(realm="EXAMPLE.COM")
        kdc.add_missing_principals([Principal.from_string("HTTP/web@EXAMPLE.COM")])
        keytab_bytes = kdc.export_keytab(kdc.list_principals("HTTP/*"))
    """

    realm: str = "EXAMPLE.COM"
    enc_types: Tuple[int, ...] = attrs.field(default=DEFAULT_ENC_TYPES, converter=tuple)
    keytab_version: int = 2

    _records: Dict[str, PrincipalRecord] = attrs.Factory(dict)
    _lock: threading.RLock = attrs.Factory(threading.RLock)
    _logger: structlog.BoundLogger = attrs.Factory(lambda: structlog.get_logger())

    def has_principal(self, principal: Principal) -> bool:
        with self._lock:
            return principal.full() in self._records

    def list_principals(self, filter: str = "*") -> List[Principal]:
        expression = filter or "*"
        if "@" not in expression:
            expression = f"{expression}@{self.realm}"
        with self._lock:
            matches = [
                record.principal
                for name, record in self._records.items()
                if fnmatch.fnmatchcase(name, expression)
            ]
        return sort_principals(matches)

    def add_missing_principals(self, principals: Sequence[Principal]) -> None:
        added = 0
        with self._lock:
            for principal in principals:
                if principal.full() in self._records:
                    continue
                self._records[principal.full()] = PrincipalRecord(
                    principal=principal,
                    keys=[generate_key(enc_type) for enc_type in self.enc_types],
                )
                added += 1
        self._logger.info("principals_added", requested=len(principals), added=added)

    def delete_principals(self, principals: Sequence[Principal]) -> None:
        with self._lock:
            removed = sum(
                1 for p in principals if self._records.pop(p.full(), None) is not None
            )
        self._logger.info("principals_deleted", requested=len(principals), removed=removed)

    def set_keys(self, principal: Principal, keys: Iterable[Key], kvno: int = 1) -> None:
        """Register principal with exactly these keys (replacing any existing)."""
        with self._lock:
            self._records[principal.full()] = PrincipalRecord(
                principal=principal, keys=keys, kvno=kvno
            )

    def randomize_keys(self, principal: Principal) -> None:
        """Mint fresh keys for principal and bump its key version."""
        with self._lock:
            record = self._records.get(principal.full())
            if record is None:
                raise KeyError(f"Principal '{principal.full()}' does not exist")
            self._records[principal.full()] = PrincipalRecord(
                principal=record.principal,
                keys=[generate_key(key.enc_type) for key in record.keys],
                kvno=record.kvno + 1,
            )

    def export_keytab(self, principals: Sequence[Principal]) -> bytes:
        timestamp = int(time.time())
        entries: List[KeytabEntry] = []
        with self._lock:
            for principal in principals:
                record = self._records.get(principal.full())
                if record is None:
                    raise KeyError(f"Principal '{principal.full()}' does not exist")
                entries.extend(
                    KeytabEntry.for_principal(
                        record.principal, key, kvno=record.kvno, timestamp=timestamp
                    )
                    for key in record.keys
                )
        return encode_keytab(Keytab(version=self.keytab_version, entries=entries))


# =============================================================================
# SECRET STORE
# =============================================================================


@attrs.define
class InMemorySecretStore(SecretStore):
    """
    Simulated secret store.

    Secrets written with binary=False are held as base64 text and decoded
    on load; reading a secret back with a different binary flag than it
    was written with returns garbage, as a real store would.
    """

    _secrets: Dict[str, bytes] = attrs.Factory(dict)
    _lock: threading.RLock = attrs.Factory(threading.RLock)
    _logger: structlog.BoundLogger = attrs.Factory(lambda: structlog.get_logger())

    def load(self, name: str, binary: bool = False) -> Optional[bytes]:
        with self._lock:
            stored = self._secrets.get(name)
        if stored is None:
            return None
        if binary:
            return stored
        return base64.b64decode(stored, validate=True)

    def store(self, name: str, data: bytes, binary: bool = False) -> None:
        payload = bytes(data) if binary else base64.b64encode(data)
        with self._lock:
            self._secrets[name] = payload
        self._logger.info("secret_stored", secret=name, binary=binary, size=len(data))

    def delete(self, name: str, binary: bool = False) -> None:
        with self._lock:
            existed = self._secrets.pop(name, None) is not None
        self._logger.info("secret_deleted", secret=name, existed=existed)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._secrets
