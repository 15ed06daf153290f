"""
ktverify Admin Module

Collaborators the consistency engine talks to.

Components:
- collaborators: KDCAdmin and SecretStore interfaces, call guard
- memory: In-memory KDC and secret store for tests and dry runs
"""

from ktverify.admin.collaborators import KDCAdmin, SecretStore, call_collaborator
from ktverify.admin.memory import InMemoryKDC, InMemorySecretStore, generate_key

__all__ = [
    "KDCAdmin",
    "SecretStore",
    "call_collaborator",
    "InMemoryKDC",
    "InMemorySecretStore",
    "generate_key",
]
