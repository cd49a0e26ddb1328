"""
Per-run Ed25519 signing of record content.

A keypair is generated for each signing glob run and held only in memory.
The public half travels in the bundle's key header, so a bundle attests that
its records are exactly what the producing run wrote, not who wrote them.

A signature covers a record's content only. The path in the record header is
not signed, so renaming a record inside a signed bundle still verifies; only
changed content is detected.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .errors import MalformedBundleError

PublicKey = Ed25519PublicKey
PrivateKey = Ed25519PrivateKey

SIGNATURE_LENGTH = 64


class Keypair:
    """An ephemeral signing keypair owned by a single glob run.

    Use as a context manager; the private key is dropped on exit and any later
    signing attempt raises `RuntimeError`.
    """

    def __init__(self, private_key: PrivateKey) -> None:
        self._private_key: PrivateKey | None = private_key
        self.public_key: PublicKey = private_key.public_key()

    @property
    def private_key(self) -> PrivateKey:
        if self._private_key is None:
            raise RuntimeError("Private key has been discarded")
        return self._private_key

    def sign(self, data: bytes) -> bytes:
        """Sign `data` with this run's private key."""
        return sign(self.private_key, data)

    def discard(self) -> None:
        """Drop the private key; only the public key remains usable."""
        self._private_key = None

    def __iter__(self) -> Iterator[Any]:
        # Unpacks as (public_key, private_key)
        yield self.public_key
        yield self.private_key

    def __enter__(self) -> Keypair:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.discard()


def generate_keypair() -> Keypair:
    """Generate a fresh keypair for one glob run."""
    return Keypair(Ed25519PrivateKey.generate())


def sign(private_key: PrivateKey, data: bytes) -> bytes:
    """Return the raw 64-byte Ed25519 signature of `data`."""
    return private_key.sign(data)


def verify(public_key: PublicKey, data: bytes, signature: bytes) -> bool:
    """Check `signature` over `data`.

    Returns:
        True if the signature is valid for `data` under `public_key`.
    """
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        public_key.verify(signature, data)
    except InvalidSignature:
        return False
    return True


def encode_public_key(public_key: PublicKey) -> str:
    """Base64-encode the raw 32-byte public key."""
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw).decode("ascii")


def decode_public_key(value: str, line_number: int | None = None) -> PublicKey:
    """Decode a base64 public key from a key header.

    Raises:
        MalformedBundleError: If the value is not valid base64 or not a 32-byte key.
    """
    raw = _b64decode(value, "public key", line_number)
    try:
        return Ed25519PublicKey.from_public_bytes(raw)
    except ValueError as e:
        raise MalformedBundleError(f"invalid public key: {e}", line_number) from e


def encode_signature(signature: bytes) -> str:
    """Base64-encode a raw signature."""
    return base64.b64encode(signature).decode("ascii")


def decode_signature(value: str, line_number: int | None = None) -> bytes:
    """Decode a base64 signature annotation.

    Raises:
        MalformedBundleError: If the value is not valid base64.
    """
    return _b64decode(value, "signature", line_number)


def _b64decode(value: str, what: str, line_number: int | None) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedBundleError(f"invalid base64 {what}", line_number) from e
