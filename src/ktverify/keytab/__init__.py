"""
ktverify Keytab Module

Binary keytab container support.

Components:
- codec: MIT keytab reader/writer (versions 1 and 2)
- index: Per-principal key aggregation and checksum
"""

from ktverify.keytab.codec import (
    KeytabReader,
    KeytabWriter,
    decode_keytab,
    decode_entries,
    encode_keytab,
)
from ktverify.keytab.index import (
    PrincipalKeyIndex,
    build_key_index,
    checksum_from_keytab,
)

__all__ = [
    "KeytabReader",
    "KeytabWriter",
    "decode_keytab",
    "decode_entries",
    "encode_keytab",
    "PrincipalKeyIndex",
    "build_key_index",
    "checksum_from_keytab",
]
