"""Procedures, indications and the handlers that serve them."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Awaitable, ClassVar, Optional, Tuple, Union

Logger = Union[logging.Logger, logging.LoggerAdapter]

# A response paired with an optional action to run once the response is sent.
ResponseAction = Tuple[Any, Optional[Awaitable[None]]]


class RequestError(Exception):
    """A request did not produce a successful response."""


class UnsuccessfulOutcome(RequestError):
    """The peer answered a request with an unsuccessful outcome."""

    def __init__(self, failure: Any) -> None:
        super().__init__("Unsuccessful outcome")
        self.failure = failure


class Procedure(abc.ABC):
    """A request/response procedure identified by its procedure code."""

    CODE: ClassVar[int]

    @abc.abstractmethod
    def encode_request(self, request: Any) -> bytes:
        """Encode a request into its top-level PDU wire format."""

    @abc.abstractmethod
    def decode_response(self, data: bytes) -> Any:
        """Decode a response; raise RequestError if it is not a success."""

    @abc.abstractmethod
    async def call_provider(
        self, provider: RequestProvider, request: Any, logger: Logger
    ) -> Optional[ResponseAction]:
        """Pass a request to a provider and wrap its answer in the top-level PDU."""


class Indication(abc.ABC):
    """A one-way message that expects no response."""

    CODE: ClassVar[int]

    @abc.abstractmethod
    def encode_request(self, request: Any) -> bytes:
        """Encode the indication into its top-level PDU wire format."""

    async def call_provider(
        self, provider: IndicationHandler, request: Any, logger: Logger
    ) -> None:
        """Deliver the indication to a handler."""
        await provider.handle(self, request, logger)


class RequestProvider:
    """Something able to serve the requests of one or more procedures."""

    async def request(
        self, procedure: Procedure, request: Any, logger: Logger
    ) -> ResponseAction:
        logger.debug("Received unimplemented request %r", request)
        raise RequestError("Not implemented")


class IndicationHandler:
    """Something able to handle indications."""

    async def handle(self, indication: Indication, request: Any, logger: Logger) -> None:
        logger.warning("Received unimplemented indication %r", request)


class InterfaceProvider(abc.ABC):
    """Serves every procedure that shares one top-level PDU type."""

    @abc.abstractmethod
    def decode_pdu(self, message: bytes) -> Any:
        """Decode wire bytes into a top-level PDU."""

    @abc.abstractmethod
    def encode_pdu(self, pdu: Any) -> bytes:
        """Encode a top-level PDU into wire bytes."""

    @abc.abstractmethod
    async def route_request(self, pdu: Any, logger: Logger) -> Optional[ResponseAction]:
        """Dispatch a decoded PDU to the procedure that handles it."""

    async def handle_request(
        self, message: bytes, logger: Logger
    ) -> Optional[Tuple[bytes, Optional[Awaitable[None]]]]:
        """Decode, route and encode a request given in wire format."""
        try:
            pdu = self.decode_pdu(message)
        except Exception as exc:  # noqa: BLE001 - any decoder failure drops the message
            logger.warning("PDU decode failed - %r", exc)
            return None

        routed = await self.route_request(pdu, logger)
        if routed is None:
            return None
        response, action = routed
        try:
            encoded = self.encode_pdu(response)
        except Exception as exc:  # noqa: BLE001
            logger.warning("PDU encode failed - %r", exc)
            return None
        return encoded, action


class ShutdownHandle:
    """A long-running task together with the event that asks it to stop."""

    def __init__(self, task: asyncio.Future, stop_event: asyncio.Event) -> None:
        self._task = task
        self._stop_event = stop_event

    async def graceful_shutdown(self) -> None:
        """Signal the task to stop and wait for it to finish."""
        self._stop_event.set()
        await self._task