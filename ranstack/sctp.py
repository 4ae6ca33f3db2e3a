"""Asynchronous SCTP associations and listeners over the kernel SCTP stack."""

from __future__ import annotations

import asyncio
import socket
import struct
from contextlib import contextmanager
from typing import AsyncIterator, Iterator, Optional, Tuple

from .transaction import Logger

Message = bytes
SocketAddress = Tuple[str, int]

IPPROTO_SCTP = getattr(socket, "IPPROTO_SCTP", 132)
SOL_SCTP = 132
SCTP_PEER_ADDR_PARAMS = 9
SCTP_RECVRCVINFO = 32
SCTP_SNDINFO = 2
SPP_HB_ENABLE = 1

MAX_MESSAGE_SIZE = 1500
CONNECT_TIMEOUT = 5.0
HEARTBEAT_INTERVAL_MS = 1000

# struct sctp_rcvinfo, natively aligned.
_RCVINFO = struct.Struct("@HHHIIIIi")
# struct sctp_paddrparams, packed to 2 bytes.
_PADDRPARAMS = struct.Struct("=i128sIHIIIIBx")


class SctpError(Exception):
    """An SCTP socket operation failed."""


@contextmanager
def _io(operation: str) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        raise SctpError(f"{exc} during SCTP {operation}") from exc


def enable_sctp_heartbeat(sock: socket.socket, interval_ms: int) -> None:
    """Turn on SCTP heartbeats so that peer failure is detected quickly."""
    storage = struct.pack("=H", socket.AF_INET).ljust(128, b"\0")
    params = _PADDRPARAMS.pack(0, storage, interval_ms, 0, 0, 0, SPP_HB_ENABLE, 0, 0)
    with _io("setsockopt"):
        sock.setsockopt(SOL_SCTP, SCTP_PEER_ADDR_PARAMS, params)


def enable_sock_opt(sock: socket.socket, name: int) -> None:
    """Set a boolean SCTP-level socket option."""
    with _io("setsockopt"):
        sock.setsockopt(SOL_SCTP, name, 1)


async def _wait_readable(sock: socket.socket) -> None:
    loop = asyncio.get_running_loop()
    ready = loop.create_future()
    fd = sock.fileno()

    def _ready() -> None:
        if not ready.done():
            ready.set_result(None)

    loop.add_reader(fd, _ready)
    try:
        await ready
    finally:
        loop.remove_reader(fd)


class SctpAssociation:
    """An established SCTP association, owning its socket."""

    def __init__(self, sock: socket.socket, ppid: int, remote_address: SocketAddress) -> None:
        self.sock = sock
        self.ppid = ppid
        self.remote_address = remote_address

    @property
    def fd(self) -> int:
        return self.sock.fileno()

    @classmethod
    async def establish(
        cls,
        remote_address: SocketAddress,
        bind_address: SocketAddress,
        ppid: int,
        logger: Logger,
    ) -> SctpAssociation:
        """Connect as a client from the given local address."""
        with _io("socket"):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, IPPROTO_SCTP)
        try:
            with _io("bind"):
                sock.bind(bind_address)
            sock.setblocking(False)
            loop = asyncio.get_running_loop()
            try:
                await asyncio.wait_for(loop.sock_connect(sock, remote_address), CONNECT_TIMEOUT)
            except asyncio.TimeoutError as exc:
                raise SctpError("connect() timed out") from exc
            except OSError as exc:
                raise SctpError(f"connect() {exc}") from exc
            assoc = cls(sock, ppid, remote_address)
            assoc._set_sock_opts(logger)
            return assoc
        except BaseException:
            sock.close()
            raise

    @classmethod
    def from_accepted(
        cls, sock: socket.socket, ppid: int, remote_address: SocketAddress, logger: Logger
    ) -> SctpAssociation:
        """Wrap a socket returned by accept()."""
        assoc = cls(sock, ppid, remote_address)
        try:
            assoc._set_sock_opts(logger)
        except BaseException:
            assoc.close()
            raise
        return assoc

    def _set_sock_opts(self, logger: Logger) -> None:
        try:
            enable_sctp_heartbeat(self.sock, HEARTBEAT_INTERVAL_MS)
        except SctpError as exc:
            logger.warning("Carrying on without heartbeat - %s", exc)
        enable_sock_opt(self.sock, SCTP_RECVRCVINFO)

    def _recv(self) -> Optional[Message]:
        try:
            data, _ancillary, _flags, _address = self.sock.recvmsg(
                MAX_MESSAGE_SIZE, socket.CMSG_SPACE(_RCVINFO.size)
            )
        except BlockingIOError:
            return None
        except OSError as exc:
            raise SctpError(f"{exc} during SCTP recvmsg") from exc
        if not data:
            raise SctpError("Connection terminated")
        return data

    async def recv_messages(self) -> AsyncIterator[Message]:
        """Yield received messages; raise SctpError when the association fails."""
        while True:
            await _wait_readable(self.sock)
            message = self._recv()
            if message is not None:
                yield message

    async def send_msg(self, message: Message) -> None:
        """Send one message on stream 0 with this association's PPID."""
        message = bytes(message)
        sndinfo = struct.pack("=HH", 0, 0) + self.ppid.to_bytes(4, "big") + struct.pack("=Ii", 0, 0)
        with _io("sendmsg"):
            sent = self.sock.sendmsg(
                [message], [(IPPROTO_SCTP, SCTP_SNDINFO, sndinfo)], socket.MSG_DONTWAIT
            )
        if sent != len(message):
            raise SctpError(f"Partial send {sent} bytes of {len(message)}")

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> SctpAssociation:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SctpAssociation(fd={self.fd}, remote_address={self.remote_address!r})"


class Listener:
    """A listening SCTP socket that produces associations."""

    def __init__(self, addr: SocketAddress, backlog: int) -> None:
        with _io("socket"):
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, IPPROTO_SCTP)
        try:
            with _io("bind"):
                self._sock.bind(addr)
            with _io("listen"):
                self._sock.listen(backlog)
            self._sock.setblocking(False)
        except BaseException:
            self._sock.close()
            raise

    @property
    def address(self) -> SocketAddress:
        return self._sock.getsockname()[:2]

    async def accept(self, ppid: int, logger: Logger) -> SctpAssociation:
        """Wait for and return the next incoming association."""
        while True:
            await _wait_readable(self._sock)
            try:
                conn, addr = self._sock.accept()
            except BlockingIOError:
                continue
            except OSError as exc:
                raise SctpError(f"{exc} during SCTP accept") from exc
            break
        conn.setblocking(False)
        return SctpAssociation.from_accepted(conn, ppid, tuple(addr[:2]), logger)

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()