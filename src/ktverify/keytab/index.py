"""
ktverify Principal Key Index

Groups decoded keytab keys by principal. Each principal's keys are sorted
by enc type, then by fingerprint, so that aggregation does not depend on
keytab entry order even when a principal holds several keys of one enc
type (old and new kvno after a rotation).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import attrs
import structlog

from ktverify.core.digest import compute_principals_checksum
from ktverify.core.types import Key, Keytab, KeytabEntry, Principal
from ktverify.keytab.codec import decode_keytab

logger = structlog.get_logger()


@attrs.define(frozen=True, eq=False)
class PrincipalKeyIndex(Mapping):
    """
    Canonical principal name -> keys sorted by enc type, then fingerprint.

    Principals absent from the keytab simply have no entry.

    Example:
        index = PrincipalKeyIndex.from_bytes(keytab_bytes)
        if principal in index:
            keys = index.keys_for(principal)
    """

    _keys: Dict[str, Tuple[Key, ...]] = attrs.field(factory=dict, alias="_keys")

    @classmethod
    def from_entries(cls, entries: Iterable[KeytabEntry]) -> PrincipalKeyIndex:
        """Aggregate entries by principal, then sort each key list."""
        grouped: Dict[str, List[Key]] = {}
        for entry in entries:
            grouped.setdefault(entry.principal.full(), []).append(entry.key)
        return cls(
            _keys={
                name: tuple(sorted(keys, key=lambda k: (k.enc_type, k.fingerprint)))
                for name, keys in grouped.items()
            }
        )

    @classmethod
    def from_keytab(cls, keytab: Keytab) -> PrincipalKeyIndex:
        return cls.from_entries(keytab.entries)

    @classmethod
    def from_bytes(cls, data: bytes) -> PrincipalKeyIndex:
        """
        Decode keytab bytes and index them.

        Raises:
            MalformedKeytab: If data is not a valid keytab
        """
        return cls.from_keytab(decode_keytab(data))

    def __getitem__(self, name: str) -> Tuple[Key, ...]:
        return self._keys[name]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Principal):
            item = item.full()
        return item in self._keys

    def keys_for(self, principal: Principal) -> Tuple[Key, ...]:
        """Keys of principal in index order; empty when absent."""
        return self._keys.get(principal.full(), ())

    def first_missing(self, principals: Iterable[Principal]) -> Optional[Principal]:
        """First principal, in the given order, with no keys in the index."""
        for principal in principals:
            if principal.full() not in self._keys:
                return principal
        return None

    def present(self, principals: Iterable[Principal]) -> List[Principal]:
        """Principals, in the given order, that have keys in the index."""
        return [p for p in principals if p.full() in self._keys]

    def checksum(self, principals: Iterable[Principal]) -> str:
        """Consistency fingerprint of principals over this index."""
        return compute_principals_checksum(principals, self)


def build_key_index(entries: Iterable[KeytabEntry]) -> PrincipalKeyIndex:
    """Build the principal key index for decoded keytab entries."""
    return PrincipalKeyIndex.from_entries(entries)


def checksum_from_keytab(data: bytes, principals: Iterable[Principal]) -> str:
    """
    Decode a keytab and compute the checksum of principals in it.

    Raises:
        MalformedKeytab: If data is not a valid keytab
        PrincipalNotInKeytab: If a requested principal has no keys
    """
    index = PrincipalKeyIndex.from_bytes(data)
    logger.debug("keytab_indexed", principals=len(index))
    return index.checksum(principals)
