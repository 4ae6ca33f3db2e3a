"""Transaction layer letting application logic await responses to its requests."""

from __future__ import annotations

import abc
import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from .tnla import AssocId, Message, SocketAddress, TnlaEvent, TnlaEventHandler, TnlaEventKind
from .transaction import (
    Indication,
    IndicationHandler,
    Logger,
    Procedure,
    RequestError,
    RequestProvider,
    ResponseAction,
    ShutdownHandle,
)

_Matcher = Callable[[Message], bool]
_PendingRequests = List[Tuple[_Matcher, "asyncio.Future[Message]"]]


class Application(abc.ABC):
    """Business logic served by a stack: TNLA events plus requests in wire format."""

    @abc.abstractmethod
    async def handle_event(self, event: TnlaEvent, tnla_id: AssocId, logger: Logger) -> None:
        """Handle an association coming up or going down."""

    @abc.abstractmethod
    async def handle_request(
        self, message: bytes, logger: Logger
    ) -> Optional[Tuple[bytes, Optional[Awaitable[None]]]]:
        """Handle a request in wire format, returning the encoded response and a follow-up action."""


def _response_matcher(code: int) -> _Matcher:
    def matches(message: Message) -> bool:
        return len(message) >= 2 and message[0] != 0 and message[1] == code

    return matches


class _StackReceiver(TnlaEventHandler):
    def __init__(self, application: Application, transport_provider: Any, pending: _PendingRequests):
        self._application = application
        self._transport_provider = transport_provider
        self._pending = pending
        self._tasks: Set[asyncio.Task] = set()

    async def handle_event(self, event: TnlaEvent, tnla_id: AssocId, logger: Logger) -> None:
        if event.kind is TnlaEventKind.TERMINATED:
            # Fail every procedure in progress; this may include ones on other TNLAs.
            pending = list(self._pending)
            self._pending.clear()
            for _, future in pending:
                if not future.done():
                    future.set_exception(RequestError("Channel recv error: association terminated"))
            if pending:
                logger.warning("Failing all requests because of TNLA %s termination", tnla_id)
        await self._application.handle_event(event, tnla_id, logger)

    async def handle_message(self, message: Message, tnla_id: AssocId, logger: Logger) -> None:
        index = next(
            (i for i, (matches, _) in enumerate(self._pending) if matches(message)), None
        )
        if index is None:
            self._spawn_procedure_task(message, tnla_id, logger)
            return

        last = self._pending.pop()
        if index < len(self._pending):
            _, future = self._pending[index]
            self._pending[index] = last
        else:
            _, future = last
        if future.done():
            logger.warning("Internal response channel down")
        else:
            future.set_result(message)

    def _spawn_procedure_task(self, message: Message, tnla_id: AssocId, logger: Logger) -> None:
        task = asyncio.create_task(self._run_procedure(message, tnla_id, logger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_procedure(self, message: Message, tnla_id: AssocId, logger: Logger) -> None:
        response_action = await self._application.handle_request(message, logger)
        if response_action is None:
            return
        response, action = response_action
        try:
            await self._transport_provider.send_message(response, tnla_id, logger)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to send response - %s", exc)
            if action is not None and asyncio.iscoroutine(action):
                action.close()
            return
        if action is not None:
            logger.debug("Post response action - run it")
            await action


class Stack(RequestProvider, IndicationHandler):
    """Sends requests and indications over a transport and routes responses back."""

    def __init__(self, transport_provider: Any) -> None:
        self._transport_provider = transport_provider
        self._pending_requests: _PendingRequests = []

    def _receiver(self, application: Application) -> _StackReceiver:
        return _StackReceiver(application, self._transport_provider, self._pending_requests)

    async def connect(
        self,
        connect_address: str,
        bind_address: str,
        ppid: int,
        application: Application,
        logger: Logger,
    ) -> None:
        """Connect to a peer and serve the application over the association."""
        await self._transport_provider.connect(
            connect_address, bind_address, ppid, self._receiver(application), logger
        )

    async def listen(
        self, listen_address: str, ppid: int, application: Application, logger: Logger
    ) -> ShutdownHandle:
        """Accept associations and serve the application over them."""
        return await self._transport_provider.serve(
            listen_address, ppid, self._receiver(application), logger
        )

    async def remote_tnla_addresses(self) -> List[Tuple[AssocId, SocketAddress]]:
        return await self._transport_provider.remote_tnla_addresses()

    async def graceful_shutdown(self) -> None:
        await self._transport_provider.graceful_shutdown()

    async def request(self, procedure: Procedure, request: Any, logger: Logger) -> ResponseAction:
        """Send a request and wait for its response; raise RequestError on failure."""
        try:
            data = procedure.encode_request(request)
        except RequestError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RequestError(f"Codec error: {exc!r}") from exc

        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        entry = (_response_matcher(procedure.CODE), future)
        self._pending_requests.append(entry)

        try:
            await self._transport_provider.send_message(data, None, logger)
        except Exception as exc:  # noqa: BLE001
            if entry in self._pending_requests:
                self._pending_requests.remove(entry)
            raise RequestError(f"Transport error: {exc!r}") from exc

        message = await future
        try:
            return procedure.decode_response(message), None
        except RequestError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RequestError(f"Codec error: {exc!r}") from exc

    async def handle(self, indication: Indication, request: Any, logger: Logger) -> None:
        """Encode and send an indication, logging any failure."""
        try:
            data = indication.encode_request(request)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error encoding indication - %r", exc)
            return
        try:
            await self._transport_provider.send_message(data, None, logger)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error sending indication - %r", exc)