"""
ktverify - Kerberos Principal/Keytab Consistency Engine

Verifies that a set of Kerberos service principals agrees across the KDC
principal database and a keytab stored in a secret store, and produces a
reproducible checksum of the verified key material.

Components:
- Keytab codec for the MIT binary keytab format
- Canonical principal identity
- Order-independent checksum over principal key material
- Consistency check state machine (KDC first, then keytab)

Example Usage:
    from ktverify import Principal, create_simulated_manager

    manager = create_simulated_manager()
    principals = [Principal.from_string("kafka/broker-0@EXAMPLE.COM")]
    manager.add_principals(principals, secret="__kafka-keytab")

    status = manager.check_principals(principals, secret="__kafka-keytab")
    if status.passed:
        print(f"Consistent, checksum {status.checksum}")
    else:
        print(f"Check failed: {status.reason}")
"""

from ktverify.core.types import Principal, Key, Keytab, CheckStatus, ListingResult
from ktverify.core.exceptions import (
    KtVerifyError,
    MalformedKeytab,
    PrincipalNotInKeytab,
    CollaboratorError,
)
from ktverify.keytab import decode_keytab, encode_keytab, PrincipalKeyIndex
from ktverify.consistency import ConsistencyChecker, list_principals
from ktverify.manager import ManagerConfig, PrincipalManager, create_simulated_manager

__version__ = "0.1.0"

__all__ = [
    # Main API
    "PrincipalManager",
    "ManagerConfig",
    "create_simulated_manager",
    "ConsistencyChecker",
    "list_principals",
    # Keytab
    "decode_keytab",
    "encode_keytab",
    "PrincipalKeyIndex",
    # Types
    "Principal",
    "Key",
    "Keytab",
    "CheckStatus",
    "ListingResult",
    # Errors
    "KtVerifyError",
    "MalformedKeytab",
    "PrincipalNotInKeytab",
    "CollaboratorError",
    # Metadata
    "__version__",
]
