"""MILENAGE authentication functions f1 and f2-f5 (3GPP TS 35.206)."""

from __future__ import annotations

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

_BLOCK = 16


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def _rotate(block: bytes, bits: int) -> bytes:
    """Rotate a 128-bit block left by a multiple of 8 bits."""
    shift = (bits // 8) % _BLOCK
    return block[shift:] + block[:shift]


def _constant(last_byte: int) -> bytes:
    return bytes(_BLOCK - 1) + bytes([last_byte])


_R1, _R2, _R3, _R4 = 64, 0, 32, 64
_C1 = bytes(_BLOCK)
_C2 = _constant(0x01)
_C3 = _constant(0x02)
_C4 = _constant(0x04)


def _require_length(name: str, value: bytes, length: int) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(value)}")
    return value


class Milenage:
    """MILENAGE algorithm set keyed with a subscriber key K and OPc."""

    def __init__(self, k: bytes, opc: bytes) -> None:
        self._k = _require_length("K", k, _BLOCK)
        self._opc = _require_length("OPc", opc, _BLOCK)
        self._encryptor = Cipher(algorithms.AES(self._k), modes.ECB()).encryptor()

    def _encrypt(self, block: bytes) -> bytes:
        return self._encryptor.update(block)

    def _temp(self, rand: bytes) -> bytes:
        rand = _require_length("RAND", rand, _BLOCK)
        return self._encrypt(_xor(rand, self._opc))

    def _output(self, temp: bytes, rotation: int, constant: bytes) -> bytes:
        block = _xor(_rotate(_xor(temp, self._opc), rotation), constant)
        return _xor(self._encrypt(block), self._opc)

    def f1(self, rand: bytes, sqn: bytes, amf: bytes) -> bytes:
        """Return the 8-byte network authentication code MAC-A."""
        sqn = _require_length("SQN", sqn, 6)
        amf = _require_length("AMF", amf, 2)
        temp = self._temp(rand)
        in1 = sqn + amf + sqn + amf
        block = _xor(temp, _xor(_rotate(_xor(in1, self._opc), _R1), _C1))
        out1 = _xor(self._encrypt(block), self._opc)
        return out1[:8]

    def f2345(self, rand: bytes) -> tuple[bytes, bytes, bytes, bytes]:
        """Return (RES, CK, IK, AK) for the given challenge."""
        temp = self._temp(rand)
        out2 = self._output(temp, _R2, _C2)
        ck = self._output(temp, _R3, _C3)
        ik = self._output(temp, _R4, _C4)
        return out2[8:16], ck, ik, out2[:6]