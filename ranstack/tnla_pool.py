"""A pool of SCTP associations from which the association for an outgoing message is chosen."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .sctp import SctpAssociation
from .tnla import AssocId, Binding, Message, SocketAddress, TnlaEvent, TnlaEventHandler
from .transaction import Logger, ShutdownHandle


async def _next_message(messages: AsyncIterator[Message]) -> Message:
    return await messages.__anext__()


class SctpTnlaPool:
    """Associations currently up, each served by its own receive task."""

    def __init__(self) -> None:
        self._assocs: Dict[AssocId, SctpAssociation] = {}
        self._tasks: List[ShutdownHandle] = []

    async def graceful_shutdown(self) -> None:
        """Stop every association task and wait for each to finish."""
        while self._tasks:
            handle = self._tasks.pop(0)
            await handle.graceful_shutdown()

    async def remote_addresses(self) -> List[Tuple[AssocId, SocketAddress]]:
        """Return the remote address of every association in the pool."""
        return [(assoc_id, assoc.remote_address) for assoc_id, assoc in self._assocs.items()]

    async def new_ue_binding(self, seed: int) -> Binding:
        """Pick an association; different seeds spread UEs across associations."""
        if not self._assocs:
            raise LookupError("No associations up")
        assoc_id, assoc = list(self._assocs.items())[seed % len(self._assocs)]
        return Binding(assoc_id=assoc_id, remote_ip=assoc.remote_address[0])

    async def new_ue_binding_from_assoc(self, assoc_id: AssocId) -> Binding:
        """Bind to a given association."""
        assoc = self._assocs.get(assoc_id)
        if assoc is None:
            raise LookupError("No such association")
        return Binding(assoc_id=assoc_id, remote_ip=assoc.remote_address[0])

    async def send_message(
        self, message: Message, assoc_id: Optional[AssocId], logger: Logger
    ) -> None:
        """Send on the given association, or on the first one if it is absent or unknown."""
        assoc = self._assocs.get(assoc_id) if assoc_id is not None else None
        if assoc is None:
            assoc = next(iter(self._assocs.values()), None)
        if assoc is None:
            raise LookupError("No association found")
        await assoc.send_msg(message)

    async def add_and_handle(
        self,
        assoc_id: AssocId,
        assoc: SctpAssociation,
        handler: TnlaEventHandler,
        logger: Logger,
    ) -> None:
        """Add an association and start delivering its events and messages to the handler."""
        stop_event = asyncio.Event()
        self._assocs[assoc_id] = assoc
        task = asyncio.create_task(
            self._handle_assoc(assoc_id, assoc, handler, stop_event, logger)
        )
        self._tasks.append(ShutdownHandle(task, stop_event))

    async def _handle_assoc(
        self,
        assoc_id: AssocId,
        assoc: SctpAssociation,
        handler: TnlaEventHandler,
        stop_event: asyncio.Event,
        logger: Logger,
    ) -> None:
        await handler.handle_event(TnlaEvent.established(assoc.remote_address), assoc_id, logger)

        messages = assoc.recv_messages()
        stop_wait = asyncio.create_task(stop_event.wait())
        try:
            while True:
                receive = asyncio.create_task(_next_message(messages))
                await asyncio.wait({receive, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
                if stop_wait.done():
                    # Local shutdown.
                    receive.cancel()
                    await asyncio.gather(receive, return_exceptions=True)
                    break
                try:
                    message = receive.result()
                except StopAsyncIteration:
                    break
                except Exception as exc:  # noqa: BLE001 - remote end went away
                    logger.debug("Association %s receive ended - %s", assoc_id, exc)
                    break
                await handler.handle_message(message, assoc_id, logger)

            await handler.handle_event(TnlaEvent.terminated(), assoc_id, logger)
        finally:
            stop_wait.cancel()
            await asyncio.gather(stop_wait, return_exceptions=True)
            aclose = getattr(messages, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:  # noqa: BLE001
                    pass
            if self._assocs.get(assoc_id) is assoc:
                del self._assocs[assoc_id]
            assoc.close()