"""
ktverify Consistency Check Types

States, events and context of the consistency-check state machine.

Flow:
    START -> KDC_PRESENCE_VERIFIED -> SECRET_LOADED
          -> KEYTAB_PRESENCE_VERIFIED -> CHECKSUM_COMPUTED

Any step may move to FAILED instead. CHECKSUM_COMPUTED and FAILED are
terminal.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Optional, Tuple

import attrs
from attrs import field

from ktverify.core.types import Principal


class CheckState(Enum):
    """Consistency check states."""

    START = auto()
    KDC_PRESENCE_VERIFIED = auto()
    SECRET_LOADED = auto()
    KEYTAB_PRESENCE_VERIFIED = auto()
    CHECKSUM_COMPUTED = auto()  # Terminal: pass
    FAILED = auto()  # Terminal: fail

    @property
    def is_terminal(self) -> bool:
        return self in (CheckState.CHECKSUM_COMPUTED, CheckState.FAILED)


@attrs.define
class CheckContext:
    """
    Context carried through one consistency check.

    Only the secret size is kept, never its contents.
    """

    principals: Tuple[Principal, ...] = field(converter=tuple)
    secret: str
    binary: bool = False
    secret_size: Optional[int] = None
    keytab_entries: Optional[int] = None
    checksum: Optional[str] = None
    failure_reason: str = ""


# =============================================================================
# EVENTS
# =============================================================================
#
# Each event applies its own context update; the state machine only decides
# whether the event is allowed in the current state.


@attrs.define(frozen=True, slots=True)
class KDCPresenceConfirmed:
    """Event: every requested principal exists in the KDC."""

    checked: int

    def apply(self, ctx: CheckContext) -> CheckContext:
        return ctx


@attrs.define(frozen=True, slots=True)
class SecretFetched:
    """Event: keytab secret loaded from the secret store."""

    size: int

    def apply(self, ctx: CheckContext) -> CheckContext:
        return attrs.evolve(ctx, secret_size=self.size)


@attrs.define(frozen=True, slots=True)
class KeytabPresenceConfirmed:
    """Event: every requested principal has keys in the keytab."""

    entries: int

    def apply(self, ctx: CheckContext) -> CheckContext:
        return attrs.evolve(ctx, keytab_entries=self.entries)


@attrs.define(frozen=True, slots=True)
class ChecksumComputed:
    """Event: consistency fingerprint computed."""

    checksum: str

    def apply(self, ctx: CheckContext) -> CheckContext:
        return attrs.evolve(ctx, checksum=self.checksum)


@attrs.define(frozen=True, slots=True)
class CheckFailed:
    """Event: verification failed with a named reason."""

    reason: str

    def apply(self, ctx: CheckContext) -> CheckContext:
        return attrs.evolve(ctx, failure_reason=self.reason, checksum=None)
