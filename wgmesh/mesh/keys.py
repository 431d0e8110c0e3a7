"""
WireGuard key material.

WireGuard keys are Curve25519 keys encoded as base64 of the raw 32 bytes,
the same strings ``wg genkey`` and ``wg pubkey`` produce.
"""

import base64
import binascii

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from ..errors import ValidationError

KEY_LENGTH = 32


def _decode(key: str) -> bytes:
    try:
        raw = base64.b64decode(key.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"key is not valid base64: {e}") from e
    if len(raw) != KEY_LENGTH:
        raise ValidationError(f"key must be {KEY_LENGTH} bytes, got {len(raw)}")
    return raw


def is_valid_key(key: str) -> bool:
    """Check that a string looks like a WireGuard key."""
    try:
        _decode(key)
    except ValidationError:
        return False
    return True


def generate_private_key() -> str:
    """Equivalent to ``wg genkey``."""
    private_key = X25519PrivateKey.generate()
    raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )
    return base64.b64encode(raw).decode('ascii')


def public_key_for(private_key: str) -> str:
    """Equivalent to ``wg pubkey < private_key``."""
    key = X25519PrivateKey.from_private_bytes(_decode(private_key))
    raw = key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    return base64.b64encode(raw).decode('ascii')


def generate_keypair() -> tuple:
    """Return a ``(private_key, public_key)`` pair."""
    private_key = generate_private_key()
    return private_key, public_key_for(private_key)
