"""Information elements shared by the RAN application protocols."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import IntEnum

IpAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class Criticality(IntEnum):
    """Criticality of an IE or procedure."""

    REJECT = 0
    IGNORE = 1
    NOTIFY = 2


@dataclass(frozen=True)
class TransportLayerAddress:
    """A transport layer address: a bit string of 1 to 160 bits."""

    value: bytes
    bit_length: int = field(default=-1)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", bytes(self.value))
        if self.bit_length < 0:
            object.__setattr__(self, "bit_length", 8 * len(self.value))
        if not 1 <= self.bit_length <= 160:
            raise ValueError(f"transport layer address of {self.bit_length} bits out of range")
        if len(self.value) != (self.bit_length + 7) // 8:
            raise ValueError("value length does not match bit length")

    @classmethod
    def from_ip(cls, ip: str | IpAddress) -> TransportLayerAddress:
        """Build from an IPv4 or IPv6 address, given as text or an address object."""
        address = ipaddress.ip_address(ip)
        return cls(address.packed)

    def to_ip(self) -> IpAddress:
        """Interpret the address as IPv4 (4 bytes) or IPv6 (16 bytes)."""
        if len(self.value) == 4:
            return ipaddress.IPv4Address(self.value)
        if len(self.value) == 16:
            return ipaddress.IPv6Address(self.value)
        raise ValueError(f"Bad length {len(self.value)}")

    def __str__(self) -> str:
        try:
            return str(self.to_ip())
        except ValueError:
            return "invalid"


@dataclass(frozen=True)
class GtpTeid:
    """A four-byte GTP tunnel endpoint identifier."""

    value: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", bytes(self.value))
        if len(self.value) != 4:
            raise ValueError("GTP TEID must be 4 bytes")

    def __str__(self) -> str:
        return f"{int.from_bytes(self.value, 'big'):x}"


@dataclass(frozen=True)
class GtpTunnel:
    """A GTP tunnel endpoint: transport address plus TEID."""

    transport_layer_address: TransportLayerAddress
    gtp_teid: GtpTeid


@dataclass(frozen=True)
class PduSessionId:
    """A PDU session identifier in the range 0 to 255."""

    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 255:
            raise ValueError("PDU session ID must be in 0..255")


@dataclass(frozen=True)
class Snssai:
    """Single network slice selection assistance information: SST and optional SD."""

    sst: int
    sd: bytes | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.sst <= 255:
            raise ValueError("SST must be in 0..255")
        if self.sd is not None:
            object.__setattr__(self, "sd", bytes(self.sd))
            if len(self.sd) != 3:
                raise ValueError("SD must be 3 bytes")