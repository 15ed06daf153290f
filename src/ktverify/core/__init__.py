"""
ktverify Core Module

Provides foundational types and abstractions used by the keytab codec and
the consistency checker.

Components:
- types: Value types (Principal, Key, Keytab, CheckStatus, ListingResult)
- digest: Consistency checksum over principal key material
- state_machine: Base state machine with invariant checking
- exceptions: Custom exception types
"""

from ktverify.core.types import (
    EncryptionType,
    Principal,
    Key,
    KeytabEntry,
    Keytab,
    CheckStatus,
    ListingResult,
    sort_principals,
)
from ktverify.core.exceptions import (
    KtVerifyError,
    MalformedKeytab,
    PrincipalNotInKeytab,
    CollaboratorError,
    SecretNotFound,
    InvalidRequest,
)
from ktverify.core.state_machine import StateMachineBase, Transition
from ktverify.core.digest import compute_principals_checksum, checksum_matches

__all__ = [
    # Types
    "EncryptionType",
    "Principal",
    "Key",
    "KeytabEntry",
    "Keytab",
    "CheckStatus",
    "ListingResult",
    "sort_principals",
    # Checksum
    "compute_principals_checksum",
    "checksum_matches",
    # State Machine
    "StateMachineBase",
    "Transition",
    # Exceptions
    "KtVerifyError",
    "MalformedKeytab",
    "PrincipalNotInKeytab",
    "CollaboratorError",
    "SecretNotFound",
    "InvalidRequest",
]
