"""The standard SCTP-based transport used by NGAP, F1AP and E1AP."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import List, Optional, Tuple

from .sctp import Listener, SctpAssociation
from .tnla import (
    AssocId,
    Binding,
    Message,
    SocketAddress,
    TnlaEventHandler,
    TransportProvider,
)
from .tnla_pool import SctpTnlaPool
from .transaction import Logger, ShutdownHandle

MAX_LISTEN_BACKLOG = 5


def _split_host_port(address: str) -> Tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"invalid socket address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


async def _resolve(address: str) -> SocketAddress:
    host, port = _split_host_port(address)
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, family=socket.AF_INET, type=socket.SOCK_STREAM)
    if not infos:
        raise LookupError("Address resolved to empty array")
    resolved = infos[0][4]
    return resolved[0], resolved[1]


async def _resolve_and_connect(
    connect_addr: str, bind_addr: str, ppid: int, logger: Logger
) -> SctpAssociation:
    remote_address = await _resolve(connect_addr)
    bind_address = (str(ipaddress.ip_address(bind_addr)), 0)
    return await SctpAssociation.establish(remote_address, bind_address, ppid, logger)


class SctpTransportProvider(TransportProvider):
    """A transport provider over kernel SCTP associations."""

    def __init__(self, tnla_pool: Optional[SctpTnlaPool] = None) -> None:
        self._tnla_pool = tnla_pool if tnla_pool is not None else SctpTnlaPool()

    async def graceful_shutdown(self) -> None:
        """Shut down every association."""
        await self._tnla_pool.graceful_shutdown()

    async def send_message(
        self, message: Message, assoc_id: Optional[AssocId], logger: Logger
    ) -> None:
        await self._tnla_pool.send_message(message, assoc_id, logger)

    async def connect(
        self,
        connect_addr: str,
        bind_addr: str,
        ppid: int,
        handler: TnlaEventHandler,
        logger: Logger,
    ) -> None:
        """Connect to host:port from the given local IP and start handling the association."""
        assoc = await _resolve_and_connect(connect_addr, bind_addr, ppid, logger)
        await self._tnla_pool.add_and_handle(assoc.fd, assoc, handler, logger)

    async def new_ue_binding(self, seed: int) -> Binding:
        return await self._tnla_pool.new_ue_binding(seed)

    async def new_ue_binding_from_assoc(self, assoc_id: AssocId) -> Binding:
        return await self._tnla_pool.new_ue_binding_from_assoc(assoc_id)

    async def new_ue_binding_from_ip(self, ip_addr: str) -> Binding:
        for assoc_id, address in await self.remote_tnla_addresses():
            if address[0] == ip_addr:
                return await self.new_ue_binding_from_assoc(assoc_id)
        raise LookupError("No such remote ip addr")

    async def remote_tnla_addresses(self) -> List[Tuple[AssocId, SocketAddress]]:
        return await self._tnla_pool.remote_addresses()

    async def serve(
        self, listen_addr: str, ppid: int, handler: TnlaEventHandler, logger: Logger
    ) -> ShutdownHandle:
        """Listen on host:port and handle each incoming association until shut down."""
        address = await _resolve(listen_addr)
        listener = Listener(address, MAX_LISTEN_BACKLOG)
        stop_event = asyncio.Event()
        task = asyncio.create_task(
            self._serve_loop(listener, listen_addr, ppid, handler, stop_event, logger)
        )
        return ShutdownHandle(task, stop_event)

    async def _serve_loop(
        self,
        listener: Listener,
        listen_addr: str,
        ppid: int,
        handler: TnlaEventHandler,
        stop_event: asyncio.Event,
        logger: Logger,
    ) -> None:
        stop_wait = asyncio.create_task(stop_event.wait())
        try:
            while True:
                accept = asyncio.create_task(listener.accept(ppid, logger))
                await asyncio.wait({accept, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
                if stop_wait.done():
                    accept.cancel()
                    (outcome,) = await asyncio.gather(accept, return_exceptions=True)
                    if isinstance(outcome, SctpAssociation):
                        outcome.close()
                    logger.info("End listen %s", listen_addr)
                    break
                try:
                    assoc = accept.result()
                except Exception as exc:  # noqa: BLE001 - keep listening
                    logger.warning("Error on incoming connection - %r", exc)
                    continue
                await self._tnla_pool.add_and_handle(assoc.fd, assoc, handler, logger)
        finally:
            stop_wait.cancel()
            await asyncio.gather(stop_wait, return_exceptions=True)
            listener.close()
            await self._tnla_pool.graceful_shutdown()