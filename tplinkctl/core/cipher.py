"""Autokey XOR obfuscation used on every message to and from devices."""

from __future__ import annotations

import struct

INITIAL_KEY = 0xAB
_LENGTH_PREFIX = struct.Struct(">I")
PREFIX_SIZE = _LENGTH_PREFIX.size


def encrypt(plaintext: bytes) -> bytes:
    """Return the cipher bytes for ``plaintext`` without a length prefix."""
    key = INITIAL_KEY
    out = bytearray(len(plaintext))
    for i, byte in enumerate(plaintext):
        key = byte ^ key
        out[i] = key
    return bytes(out)


def encode(plaintext: bytes) -> bytes:
    """Return ``plaintext`` as a frame: 4-byte big-endian length, then cipher bytes."""
    return _LENGTH_PREFIX.pack(len(plaintext)) + encrypt(plaintext)


def decode(ciphertext: bytes) -> bytes:
    """Invert :func:`encrypt`. Expects the cipher bytes past any length prefix."""
    key = INITIAL_KEY
    out = bytearray(len(ciphertext))
    for i, byte in enumerate(ciphertext):
        out[i] = byte ^ key
        key = byte
    return bytes(out)


def declared_length(prefix: bytes) -> int:
    return _LENGTH_PREFIX.unpack(prefix[:PREFIX_SIZE])[0]
