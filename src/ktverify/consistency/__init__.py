"""
ktverify Consistency Module

Verification that a principal set agrees across the KDC and a keytab
secret.

Components:
- types: Check states, events and context
- checker: ConsistencyChecker and its state machine
- listing: Principal listing filtered by keytab membership
"""

from ktverify.consistency.types import (
    CheckState,
    CheckContext,
    KDCPresenceConfirmed,
    SecretFetched,
    KeytabPresenceConfirmed,
    ChecksumComputed,
    CheckFailed,
)
from ktverify.consistency.checker import (
    ALLOWED_TRANSITIONS,
    ConsistencyChecker,
    ConsistencyStateMachine,
)
from ktverify.consistency.listing import filter_by_keytab, list_principals

__all__ = [
    # State machine
    "CheckState",
    "CheckContext",
    "ConsistencyStateMachine",
    "ALLOWED_TRANSITIONS",
    # Events
    "KDCPresenceConfirmed",
    "SecretFetched",
    "KeytabPresenceConfirmed",
    "ChecksumComputed",
    "CheckFailed",
    # Operations
    "ConsistencyChecker",
    "list_principals",
    "filter_by_keytab",
]
