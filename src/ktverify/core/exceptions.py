"""
ktverify Exception Types

Hard errors raised by the consistency engine. Expected verification
failures are NOT exceptions: they are returned as CheckStatus values.
"""

from typing import Optional


class KtVerifyError(Exception):
    """Base exception for all ktverify errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class MalformedKeytab(KtVerifyError):
    """
    Keytab bytes do not form a valid keytab container.

    Raised for bad magic/version, truncated records and inconsistent
    length fields. Corrupt data does not self-heal, so callers must not
    retry on this error.
    """

    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


class PrincipalNotInKeytab(KtVerifyError):
    """
    A checksum was requested for a principal the keytab does not hold.

    Callers are expected to verify keytab membership first, so this
    indicates an ordering bug rather than a verification failure.
    """

    def __init__(self, principal: str) -> None:
        super().__init__(f"Could not locate principal '{principal}' in the parsed keytab")
        self.principal = principal


class CollaboratorError(KtVerifyError):
    """
    A KDC or secret-store call failed.

    Wraps whatever the collaborator raised (unreachable service, expired
    credentials, timeouts). The original exception is kept as __cause__.
    """

    pass


class SecretNotFound(KtVerifyError):
    """The named keytab secret does not exist."""

    def __init__(self, secret: str) -> None:
        super().__init__(f"Secret '{secret}' does not exist")
        self.secret = secret


class InvalidRequest(KtVerifyError):
    """Request arguments are unusable (empty principal list, no secret name)."""

    pass


class StateError(KtVerifyError):
    """Invalid state transition."""

    pass


class InvariantViolation(KtVerifyError):
    """
    A state machine invariant was violated.

    Indicates the checker reached a state its own rules forbid, for
    example a passing outcome without a checksum.
    """

    pass
