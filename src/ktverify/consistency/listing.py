"""
ktverify Principal Listing

Read path companion to the consistency check: lists KDC principals
matching a filter and, when a keytab secret is named, narrows the list to
the principals present in that keytab and fingerprints their keys.

Unlike the check, listing filters instead of failing: principals missing
from the keytab are dropped from the result.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from ktverify.admin.collaborators import KDCAdmin, SecretStore, call_collaborator
from ktverify.core.exceptions import SecretNotFound
from ktverify.core.types import ListingResult, Principal, sort_principals
from ktverify.keytab.index import PrincipalKeyIndex

logger = structlog.get_logger()

DEFAULT_FILTER = "*"


def filter_by_keytab(principals: Iterable[Principal], keytab_bytes: bytes) -> ListingResult:
    """
    Keep the principals present in a keytab and checksum them.

    Args:
        principals: Candidate principals (any order)
        keytab_bytes: Raw keytab

    Returns:
        ListingResult ordered by canonical form, with checksum

    Raises:
        MalformedKeytab: If keytab_bytes is not a valid keytab
    """
    index = PrincipalKeyIndex.from_bytes(keytab_bytes)
    present = sort_principals(index.present(principals))
    return ListingResult(principals=present, checksum=index.checksum(present))


def list_principals(
    kdc: KDCAdmin,
    secrets: SecretStore,
    filter: str = DEFAULT_FILTER,
    secret: Optional[str] = None,
    binary: bool = False,
) -> ListingResult:
    """
    List KDC principals, optionally intersected with a keytab secret.

    Args:
        kdc: KDC admin collaborator
        secrets: Secret store collaborator
        filter: Wildcard expression on canonical principal names
        secret: Keytab secret to filter against (None for no filtering)
        binary: Whether the secret is stored as raw bytes

    Returns:
        ListingResult; checksum only when secret was given

    Raises:
        SecretNotFound: If secret is named but does not exist
        MalformedKeytab: If the secret is not a valid keytab
        CollaboratorError: If a KDC or secret store call fails
    """
    principals = call_collaborator(
        "Unable to list principals",
        kdc.list_principals,
        filter or DEFAULT_FILTER,
    )
    if not secret:
        logger.debug("principals_listed", filter=filter, count=len(principals))
        return ListingResult(principals=sort_principals(principals))

    keytab_bytes = call_collaborator(
        "Unable to read the keytab secret",
        secrets.load,
        secret,
        binary,
    )
    if not keytab_bytes:
        logger.warning("listing_secret_missing", secret=secret)
        raise SecretNotFound(secret)

    result = filter_by_keytab(principals, bytes(keytab_bytes))
    logger.debug(
        "principals_listed",
        filter=filter,
        secret=secret,
        count=len(result.principals),
        dropped=len(principals) - len(result.principals),
    )
    return result
