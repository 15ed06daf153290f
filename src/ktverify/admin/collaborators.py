"""
ktverify Collaborator Interfaces

Abstract interfaces for the KDC admin service and the secret store.

The consistency engine never talks to a network itself; it calls these
collaborators. Whatever a collaborator raises (connection errors, expired
credentials, timeouts) reaches the caller as CollaboratorError, which is
always a hard error and never a failed check.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, TypeVar

import structlog

from ktverify.core.exceptions import CollaboratorError
from ktverify.core.types import Principal

logger = structlog.get_logger()

T = TypeVar("T")


# =============================================================================
# INTERFACES
# =============================================================================


class KDCAdmin(ABC):
    """Administrative access to the KDC principal database."""

    @abstractmethod
    def has_principal(self, principal: Principal) -> bool:
        """True iff principal is registered in the KDC."""
        ...

    @abstractmethod
    def list_principals(self, filter: str = "*") -> List[Principal]:
        """Principals whose canonical name matches the wildcard filter."""
        ...

    @abstractmethod
    def add_missing_principals(self, principals: Sequence[Principal]) -> None:
        """Create principals that do not exist yet. Existing ones are left alone."""
        ...

    @abstractmethod
    def delete_principals(self, principals: Sequence[Principal]) -> None:
        """Delete principals. Absent ones are ignored."""
        ...

    @abstractmethod
    def export_keytab(self, principals: Sequence[Principal]) -> bytes:
        """Binary keytab holding the current keys of principals."""
        ...


class SecretStore(ABC):
    """
    Named secret storage.

    binary selects how the secret is stored: raw bytes when True, text
    (base64) when False. The same flag must be used to read it back.
    """

    @abstractmethod
    def load(self, name: str, binary: bool = False) -> Optional[bytes]:
        """Secret contents, or None when the secret does not exist."""
        ...

    @abstractmethod
    def store(self, name: str, data: bytes, binary: bool = False) -> None:
        """Create or replace a secret."""
        ...

    @abstractmethod
    def delete(self, name: str, binary: bool = False) -> None:
        """Remove a secret."""
        ...


# =============================================================================
# CALL GUARD
# =============================================================================


def call_collaborator(description: str, fn: Callable[..., T], *args, **kwargs) -> T:
    """
    Invoke a collaborator, mapping any failure to CollaboratorError.

    Args:
        description: Prefix for the error message, e.g.
            "Unable to read the keytab secret"
        fn: Collaborator method to call

    Returns:
        Whatever fn returns

    Raises:
        CollaboratorError: If fn raises anything
    """
    try:
        return fn(*args, **kwargs)
    except CollaboratorError:
        raise
    except Exception as e:
        logger.error("collaborator_failed", operation=description, error=str(e))
        raise CollaboratorError(f"{description}: {e}") from e
