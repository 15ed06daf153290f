"""
ktverify Checksum Computation

Deterministic consistency fingerprint over the keys of a principal set.

The fingerprint is SHA-256 over the comma-joined key fingerprints of the
requested principals, principals in canonical order and each principal's
keys in enc type order, ties broken by fingerprint. Principal boundaries
are not delimited; the format is fixed because stored checksums were
issued with it.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Iterable, List, Mapping, Sequence

import structlog

from ktverify.core.exceptions import PrincipalNotInKeytab
from ktverify.core.types import Key, Principal, sort_principals

logger = structlog.get_logger()

CHECKSUM_HEX_LENGTH = 64
FINGERPRINT_SEPARATOR = ","


# =============================================================================
# HASH FUNCTIONS
# =============================================================================


def sha256_hex(data: bytes) -> str:
    """
    Compute SHA-256 hash.

    Args:
        data: Data to hash

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(data).hexdigest()


# =============================================================================
# CHECKSUM
# =============================================================================


def collect_fingerprints(
    principals: Iterable[Principal],
    index: Mapping[str, Sequence[Key]],
) -> List[str]:
    """
    Gather key fingerprints for principals in canonical order.

    Args:
        principals: Requested principals, any order, not deduplicated
        index: Canonical principal name -> keys in canonical key order

    Returns:
        Flat list of fingerprints, principal-major and key-minor

    Raises:
        PrincipalNotInKeytab: If a requested principal has no keys
    """
    fingerprints: List[str] = []
    for principal in sort_principals(principals):
        name = principal.full()
        if name not in index:
            logger.error("checksum_principal_missing", principal=name)
            raise PrincipalNotInKeytab(name)
        fingerprints.extend(key.fingerprint for key in index[name])
    return fingerprints


def compute_principals_checksum(
    principals: Iterable[Principal],
    index: Mapping[str, Sequence[Key]],
) -> str:
    """
    Compute the consistency fingerprint of a principal set.

    Independent of the order of principals and of keytab entry order;
    dependent on the exact principal set and every key byte.

    Args:
        principals: Requested principals (every one must be in index)
        index: Canonical principal name -> keys in canonical key order

    Returns:
        64-character lowercase hex SHA-256 digest

    Raises:
        PrincipalNotInKeytab: If a requested principal has no keys
    """
    contents = FINGERPRINT_SEPARATOR.join(collect_fingerprints(principals, index))
    return sha256_hex(contents.encode("utf-8"))


def checksum_matches(expected: str, actual: str) -> bool:
    """
    Compare two checksums in constant time.

    Hex case is ignored so checksums copied from other tools still match.
    """
    return hmac.compare_digest(expected.lower().encode("utf-8"), actual.lower().encode("utf-8"))
