"""5G AKA challenge generation and key derivation (TS 33.501, Annex A)."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from .milenage import Milenage

NAS_ABBA = bytes(2)

# Authentication management field with the separation bit set.
AMF = b"\x80\x00"

_FC_KAUSF = 0x6A
_FC_XRES_STAR = 0x6B
_FC_KSEAF = 0x6C
_FC_KAMF = 0x6D
_FC_KGNB = 0x6E
_FC_ALGORITHM_KEY = 0x69

_ALGORITHM_NAS_INT = 0x02
_ALGORITHM_RRC_INT = 0x04
_NIA2 = 0x02
_ACCESS_TYPE_3GPP = 0x01


@dataclass(frozen=True)
class Challenge:
    """An authentication vector as handed to the UE and kept by the network."""

    rand: bytes
    autn: bytes
    xres_star: bytes
    kseaf: bytes


def _kdf(key: bytes, fc: int, *params: bytes) -> bytes:
    """Generic key derivation function of TS 33.220, B.2.0."""
    message = bytearray([fc])
    for param in params:
        if len(param) > 0xFFFF:
            raise ValueError("KDF parameter longer than 65535 bytes")
        message += param
        message += len(param).to_bytes(2, "big")
    return hmac.new(key, bytes(message), hashlib.sha256).digest()


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


def _check(name: str, value: bytes, length: int) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(value)}")
    return value


def generate_challenge(
    k: bytes,
    opc: bytes,
    serving_network_name: bytes | str,
    sqn: bytes,
    rand: bytes | None = None,
) -> Challenge:
    """Generate a 5G authentication vector (TS 33.501, 6.1.3.2.0).

    RAND is drawn at random unless one is supplied.
    """
    sqn = _check("SQN", sqn, 6)
    rand = secrets.token_bytes(16) if rand is None else _check("RAND", rand, 16)
    snn = _as_bytes(serving_network_name)

    milenage = Milenage(k, opc)
    mac = milenage.f1(rand, sqn, AMF)
    xres, ck, ik, ak = milenage.f2345(rand)

    sqn_xor_ak = bytes(s ^ a for s, a in zip(sqn, ak))
    autn = sqn_xor_ak + AMF + mac

    kausf = _kdf(ck + ik, _FC_KAUSF, snn, sqn_xor_ak)
    kseaf = _kdf(kausf, _FC_KSEAF, snn)
    xres_star = _kdf(ck + ik, _FC_XRES_STAR, snn, rand, xres)[16:]

    return Challenge(rand=rand, autn=autn, xres_star=xres_star, kseaf=kseaf)


def derive_kamf(kseaf: bytes, imsi: bytes | str) -> bytes:
    """Derive KAMF from KSEAF and the IMSI (TS 33.501, A.7.0)."""
    kseaf = _check("KSEAF", kseaf, 32)
    return _kdf(kseaf, _FC_KAMF, _as_bytes(imsi), NAS_ABBA)


def derive_kgnb(kamf: bytes, uplink_nas_count: int) -> bytes:
    """Derive KgNB from KAMF and the uplink NAS COUNT (TS 33.501, A.9)."""
    kamf = _check("KAMF", kamf, 32)
    if not 0 <= uplink_nas_count <= 0xFFFFFFFF:
        raise ValueError("uplink NAS count must fit in 32 bits")
    return _kdf(
        kamf,
        _FC_KGNB,
        uplink_nas_count.to_bytes(4, "big"),
        bytes([_ACCESS_TYPE_3GPP]),
    )


def _derive_algorithm_key(input_key: bytes, type_distinguisher: int, identity: int) -> bytes:
    input_key = _check("input key", input_key, 32)
    # The n least significant bits of the KDF output form an n-bit key.
    return _kdf(
        input_key,
        _FC_ALGORITHM_KEY,
        bytes([type_distinguisher]),
        bytes([identity]),
    )[16:32]


def derive_krrcint(kgnb: bytes) -> bytes:
    """Derive the RRC integrity key for NIA2 (TS 33.501, A.8)."""
    return _derive_algorithm_key(kgnb, _ALGORITHM_RRC_INT, _NIA2)


def derive_knasint(kamf: bytes) -> bytes:
    """Derive the NAS integrity key for NIA2 (TS 33.501, A.8)."""
    return _derive_algorithm_key(kamf, _ALGORITHM_NAS_INT, _NIA2)