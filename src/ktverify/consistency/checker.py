"""
ktverify Consistency Checker

Answers: are all requested principals registered in the KDC AND present in
the named keytab secret? If so, returns a checksum of exactly the key
material that was verified.

Steps (each may end the check with a named failure):
1. KDC presence, principal by principal, stopping at the first absent one
2. Secret load; an absent secret fails the check
3. Keytab decode and presence, stopping at the first absent principal
4. Checksum over the requested principals' keys

KDC presence is checked first so that a request already disqualified by
the KDC never downloads or parses the secret.

Hard errors (raised, never returned as a failed check):
- MalformedKeytab: the secret is not a valid keytab
- CollaboratorError: the KDC or secret store call failed
- PrincipalNotInKeytab: internal ordering error in step 4
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence, Tuple

import attrs
import structlog
from returns.result import Failure, Result, Success

from ktverify.admin.collaborators import KDCAdmin, SecretStore, call_collaborator
from ktverify.core.digest import CHECKSUM_HEX_LENGTH
from ktverify.core.exceptions import InvalidRequest, StateError
from ktverify.core.state_machine import StateMachineBase
from ktverify.core.types import CheckStatus, Principal
from ktverify.consistency.types import (
    CheckContext,
    CheckFailed,
    CheckState,
    ChecksumComputed,
    KDCPresenceConfirmed,
    KeytabPresenceConfirmed,
    SecretFetched,
)
from ktverify.keytab.codec import decode_keytab
from ktverify.keytab.index import PrincipalKeyIndex

logger = structlog.get_logger()


# =============================================================================
# STATE MACHINE
# =============================================================================


def _checksum_only_when_passed(state: CheckState, ctx: CheckContext) -> bool:
    if state == CheckState.CHECKSUM_COMPUTED:
        return ctx.checksum is not None and len(ctx.checksum) == CHECKSUM_HEX_LENGTH
    return ctx.checksum is None


def _reason_only_when_failed(state: CheckState, ctx: CheckContext) -> bool:
    return bool(ctx.failure_reason) == (state == CheckState.FAILED)


@attrs.define
class ConsistencyStateMachine(StateMachineBase[CheckState, CheckContext]):
    """
    Consistency check state machine.

    States:
    - START: Nothing verified yet
    - KDC_PRESENCE_VERIFIED: All principals exist in the KDC
    - SECRET_LOADED: Keytab secret fetched
    - KEYTAB_PRESENCE_VERIFIED: All principals have keys in the keytab
    - CHECKSUM_COMPUTED: Check passed (terminal)
    - FAILED: Check failed (terminal)

    Once the keytab holds every principal the check can only pass.
    """

    INITIAL_STATE = CheckState.START
    TRANSITIONS = {
        (CheckState.START, KDCPresenceConfirmed): CheckState.KDC_PRESENCE_VERIFIED,
        (CheckState.START, CheckFailed): CheckState.FAILED,
        (CheckState.KDC_PRESENCE_VERIFIED, SecretFetched): CheckState.SECRET_LOADED,
        (CheckState.KDC_PRESENCE_VERIFIED, CheckFailed): CheckState.FAILED,
        (CheckState.SECRET_LOADED, KeytabPresenceConfirmed): CheckState.KEYTAB_PRESENCE_VERIFIED,
        (CheckState.SECRET_LOADED, CheckFailed): CheckState.FAILED,
        (CheckState.KEYTAB_PRESENCE_VERIFIED, ChecksumComputed): CheckState.CHECKSUM_COMPUTED,
    }
    INVARIANTS = (
        ("checksum_only_when_passed", _checksum_only_when_passed),
        ("reason_only_when_failed", _reason_only_when_failed),
    )

    def outcome(self) -> CheckStatus:
        """Check outcome; only valid in a terminal state."""
        if self.state == CheckState.CHECKSUM_COMPUTED:
            return CheckStatus.pass_result(self.context.checksum)
        if self.state == CheckState.FAILED:
            return CheckStatus.fail_result(self.context.failure_reason)
        raise StateError(f"Check has not finished (state {self.state.name})")


# Allowed (state, event) -> state, by name. Used to audit exported traces.
ALLOWED_TRANSITIONS: Dict[Tuple[str, str], str] = ConsistencyStateMachine.transition_names()


# =============================================================================
# CHECKER
# =============================================================================


@attrs.define
class ConsistencyChecker:
    """
    Verifies a principal set against the KDC and a keytab secret.

    Holds no per-check state: every call builds its own state machine, so
    one checker may serve concurrent requests.

    Example:
        checker = ConsistencyChecker(kdc=kdc, secrets=store)
        status = checker.check(principals, "__kafka-keytab")
        if status.passed:
            print(f"Verified, checksum {status.checksum}")
        else:
            print(f"Check failed: {status.reason}")
    """

    kdc: KDCAdmin
    secrets: SecretStore

    _logger: Any = attrs.field(
        factory=lambda: structlog.get_logger(), alias="_logger"
    )

    def check(
        self,
        principals: Iterable[Principal],
        secret: str,
        binary: bool = False,
    ) -> CheckStatus:
        """
        Run the consistency check.

        Args:
            principals: Requested principals (any order)
            secret: Name of the keytab secret
            binary: Whether the secret is stored as raw bytes

        Returns:
            CheckStatus: pass with checksum, or fail with a reason naming
            the missing principal or secret

        Raises:
            InvalidRequest: If principals is empty or secret is blank
            MalformedKeytab: If the secret does not decode as a keytab
            CollaboratorError: If a KDC or secret store call fails
        """
        status, _ = self.check_with_trace(principals, secret, binary)
        return status

    def check_with_trace(
        self,
        principals: Iterable[Principal],
        secret: str,
        binary: bool = False,
    ) -> Tuple[CheckStatus, ConsistencyStateMachine]:
        """Like check(), also returning the state machine for audit."""
        requested = tuple(principals)
        if not requested:
            raise InvalidRequest("given an empty list of principals")
        if not secret:
            raise InvalidRequest("missing secret name")

        machine = ConsistencyStateMachine(
            _context=CheckContext(principals=requested, secret=secret, binary=binary),
        )
        log = self._logger.bind(secret=secret, principals=len(requested))

        # Step 1: KDC presence
        kdc_result = self._verify_kdc_presence(requested)
        if isinstance(kdc_result, Failure):
            return self._fail(machine, log, kdc_result.failure()), machine
        self._advance(machine, KDCPresenceConfirmed(checked=kdc_result.unwrap()))

        # Step 2: Secret load
        secret_result = self._load_secret(secret, binary)
        if isinstance(secret_result, Failure):
            return self._fail(machine, log, secret_result.failure()), machine
        keytab_bytes = secret_result.unwrap()
        self._advance(machine, SecretFetched(size=len(keytab_bytes)))

        # Step 3: Keytab presence (MalformedKeytab propagates)
        keytab = decode_keytab(keytab_bytes)
        index = PrincipalKeyIndex.from_keytab(keytab)
        keytab_result = self._verify_keytab_presence(index, requested)
        if isinstance(keytab_result, Failure):
            return self._fail(machine, log, keytab_result.failure()), machine
        self._advance(machine, KeytabPresenceConfirmed(entries=len(keytab)))

        # Step 4: Checksum
        checksum = index.checksum(requested)
        self._advance(machine, ChecksumComputed(checksum=checksum))

        log.info("check_passed", checksum=checksum)
        return machine.outcome(), machine

    def _verify_kdc_presence(self, principals: Sequence[Principal]) -> Result[int, str]:
        for principal in principals:
            exists = call_collaborator(
                f"Unable to check if principal {principal.full()} exists",
                self.kdc.has_principal,
                principal,
            )
            if not exists:
                return Failure(f"Principal '{principal.full()}' does not exist in kerberos")
        return Success(len(principals))

    def _load_secret(self, secret: str, binary: bool) -> Result[bytes, str]:
        data = call_collaborator(
            "Unable to read the keytab secret",
            self.secrets.load,
            secret,
            binary,
        )
        if not data:
            return Failure(f"Secret '{secret}' does not exist")
        return Success(bytes(data))

    @staticmethod
    def _verify_keytab_presence(
        index: PrincipalKeyIndex, principals: Sequence[Principal]
    ) -> Result[int, str]:
        missing = index.first_missing(principals)
        if missing is not None:
            return Failure(f"Principal '{missing.full()}' does not exist in keytab")
        return Success(len(principals))

    @staticmethod
    def _advance(machine: ConsistencyStateMachine, event: Any) -> None:
        result = machine.process_event(event)
        if isinstance(result, Failure):
            raise StateError(result.failure())

    def _fail(
        self, machine: ConsistencyStateMachine, log: Any, reason: str
    ) -> CheckStatus:
        self._advance(machine, CheckFailed(reason=reason))
        log.info("check_failed", reason=reason, failed_in=machine.get_trace()[-1].from_state.name)
        return machine.outcome()
