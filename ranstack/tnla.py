"""Transport network layer associations: events, bindings and the transport interface."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .transaction import Logger, ShutdownHandle

AssocId = int
Message = bytes
SocketAddress = Tuple[str, int]


class TnlaEventKind(enum.Enum):
    """What happened to an association."""

    ESTABLISHED = "established"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class TnlaEvent:
    """An association coming up (with its remote address) or going down."""

    kind: TnlaEventKind
    remote_address: Optional[SocketAddress] = None

    @classmethod
    def established(cls, remote_address: SocketAddress) -> TnlaEvent:
        return cls(TnlaEventKind.ESTABLISHED, remote_address)

    @classmethod
    def terminated(cls) -> TnlaEvent:
        return cls(TnlaEventKind.TERMINATED)


class TnlaEventHandler(abc.ABC):
    """Receives the events and messages of the associations of a transport."""

    @abc.abstractmethod
    async def handle_event(self, event: TnlaEvent, tnla_id: AssocId, logger: Logger) -> None:
        """Handle an association coming up or going down."""

    @abc.abstractmethod
    async def handle_message(self, message: Message, tnla_id: AssocId, logger: Logger) -> None:
        """Handle a message received on an association."""


@dataclass
class Binding:
    """The association a UE's signalling is carried on."""

    assoc_id: AssocId
    remote_ip: str


class TransportProvider(abc.ABC):
    """The transport services needed by the RAN protocol stacks."""

    @abc.abstractmethod
    async def send_message(
        self, message: Message, assoc_id: Optional[AssocId], logger: Logger
    ) -> None:
        """Send a message, on the given association if there is one."""

    @abc.abstractmethod
    async def serve(
        self, listen_addr: str, ppid: int, handler: TnlaEventHandler, logger: Logger
    ) -> ShutdownHandle:
        """Accept incoming associations until shut down."""

    @abc.abstractmethod
    async def connect(
        self,
        connect_addr: str,
        bind_addr: str,
        ppid: int,
        handler: TnlaEventHandler,
        logger: Logger,
    ) -> None:
        """Establish an outgoing association."""

    @abc.abstractmethod
    async def new_ue_binding(self, seed: int) -> Binding:
        """Pick an association for a new UE."""

    @abc.abstractmethod
    async def new_ue_binding_from_assoc(self, assoc_id: AssocId) -> Binding:
        """Bind a UE to a given association."""

    @abc.abstractmethod
    async def new_ue_binding_from_ip(self, ip_addr: str) -> Binding:
        """Bind a UE to the association with the given remote IP."""

    @abc.abstractmethod
    async def remote_tnla_addresses(self) -> List[Tuple[AssocId, SocketAddress]]:
        """Return the remote addresses of the current associations."""