"""128-NIA2 integrity algorithm (AES-CMAC, TS 33.401 B.2.3)."""

from __future__ import annotations

from cryptography.hazmat.primitives import cmac
from cryptography.hazmat.primitives.ciphers import algorithms


def calculate_nia2_mac(
    integrity_key: bytes,
    count: bytes,
    bearer_identity_5bit: int,
    direction_1bit: int,
    message: bytes,
) -> bytes:
    """Return the 4-byte MAC-I over COUNT, BEARER, DIRECTION and the message."""
    if len(integrity_key) != 16:
        raise ValueError("integrity key must be 16 bytes")
    if len(count) != 4:
        raise ValueError("count must be 4 bytes")
    if not 0 <= bearer_identity_5bit < 32:
        raise ValueError("bearer identity must fit in 5 bits")
    if direction_1bit not in (0, 1):
        raise ValueError("direction must be 0 or 1")

    mac = cmac.CMAC(algorithms.AES(bytes(integrity_key)))
    mac.update(bytes(count))
    mac.update(bytes([(bearer_identity_5bit << 3) | (direction_1bit << 2)]))
    mac.update(bytes(3))
    mac.update(bytes(message))
    return mac.finalize()[:4]