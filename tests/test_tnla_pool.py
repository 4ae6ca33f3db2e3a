import asyncio
import logging

import pytest

from ranstack.sctp import SctpError
from ranstack.tnla import Binding, TnlaEvent, TnlaEventHandler, TnlaEventKind
from ranstack.tnla_pool import SctpTnlaPool

LOGGER = logging.getLogger("test_tnla_pool")


class FakeAssociation:
    def __init__(self, remote_address):
        self.remote_address = remote_address
        self.inbox = asyncio.Queue()
        self.sent = []
        self.closed = False

    async def recv_messages(self):
        while True:
            item = await self.inbox.get()
            if isinstance(item, Exception):
                raise item
            yield item

    async def send_msg(self, message):
        self.sent.append(message)

    def close(self):
        self.closed = True


class RecordingHandler(TnlaEventHandler):
    def __init__(self):
        self.events = []
        self.messages = []

    async def handle_event(self, event, tnla_id, logger):
        self.events.append((event, tnla_id))

    async def handle_message(self, message, tnla_id, logger):
        self.messages.append((message, tnla_id))


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


@pytest.mark.asyncio
async def test_new_ue_binding_without_associations_fails():
    pool = SctpTnlaPool()
    with pytest.raises(LookupError):
        await pool.new_ue_binding(0)


@pytest.mark.asyncio
async def test_send_without_associations_fails():
    pool = SctpTnlaPool()
    with pytest.raises(LookupError):
        await pool.send_message(b"\x00", None, LOGGER)


@pytest.mark.asyncio
async def test_established_event_and_binding():
    pool = SctpTnlaPool()
    handler = RecordingHandler()
    assoc = FakeAssociation(("10.0.0.1", 38472))
    await pool.add_and_handle(7, assoc, handler, LOGGER)
    await wait_until(lambda: handler.events)

    assert handler.events == [(TnlaEvent.established(("10.0.0.1", 38472)), 7)]
    assert await pool.remote_addresses() == [(7, ("10.0.0.1", 38472))]
    assert await pool.new_ue_binding(12345) == Binding(assoc_id=7, remote_ip="10.0.0.1")
    assert await pool.new_ue_binding_from_assoc(7) == Binding(assoc_id=7, remote_ip="10.0.0.1")
    await pool.graceful_shutdown()


@pytest.mark.asyncio
async def test_seed_spreads_over_associations():
    pool = SctpTnlaPool()
    handler = RecordingHandler()
    await pool.add_and_handle(1, FakeAssociation(("10.0.0.1", 1)), handler, LOGGER)
    await pool.add_and_handle(2, FakeAssociation(("10.0.0.2", 1)), handler, LOGGER)

    first = await pool.new_ue_binding(0)
    second = await pool.new_ue_binding(1)
    assert {first.assoc_id, second.assoc_id} == {1, 2}
    assert await pool.new_ue_binding(2) == first
    await pool.graceful_shutdown()


@pytest.mark.asyncio
async def test_binding_from_unknown_assoc_fails():
    pool = SctpTnlaPool()
    await pool.add_and_handle(1, FakeAssociation(("10.0.0.1", 1)), RecordingHandler(), LOGGER)
    with pytest.raises(LookupError):
        await pool.new_ue_binding_from_assoc(99)
    await pool.graceful_shutdown()


@pytest.mark.asyncio
async def test_send_routes_to_association_or_falls_back_to_first():
    pool = SctpTnlaPool()
    handler = RecordingHandler()
    a = FakeAssociation(("10.0.0.1", 1))
    b = FakeAssociation(("10.0.0.2", 1))
    await pool.add_and_handle(1, a, handler, LOGGER)
    await pool.add_and_handle(2, b, handler, LOGGER)

    await pool.send_message(b"to-b", 2, LOGGER)
    await pool.send_message(b"any", None, LOGGER)
    await pool.send_message(b"unknown", 42, LOGGER)

    assert b.sent == [b"to-b"]
    assert a.sent == [b"any", b"unknown"]
    await pool.graceful_shutdown()


@pytest.mark.asyncio
async def test_received_messages_reach_handler():
    pool = SctpTnlaPool()
    handler = RecordingHandler()
    assoc = FakeAssociation(("10.0.0.1", 1))
    await pool.add_and_handle(3, assoc, handler, LOGGER)
    await assoc.inbox.put(b"one")
    await assoc.inbox.put(b"two")
    await wait_until(lambda: len(handler.messages) == 2)
    assert handler.messages == [(b"one", 3), (b"two", 3)]
    await pool.graceful_shutdown()


@pytest.mark.asyncio
async def test_remote_termination_removes_association():
    pool = SctpTnlaPool()
    handler = RecordingHandler()
    assoc = FakeAssociation(("10.0.0.1", 1))
    await pool.add_and_handle(4, assoc, handler, LOGGER)
    await assoc.inbox.put(SctpError("Connection terminated"))
    await wait_until(lambda: len(handler.events) == 2)

    assert handler.events[-1] == (TnlaEvent.terminated(), 4)
    assert await pool.remote_addresses() == []
    assert assoc.closed
    await pool.graceful_shutdown()


@pytest.mark.asyncio
async def test_graceful_shutdown_terminates_associations():
    pool = SctpTnlaPool()
    handler = RecordingHandler()
    assoc = FakeAssociation(("10.0.0.1", 1))
    await pool.add_and_handle(5, assoc, handler, LOGGER)
    await wait_until(lambda: handler.events)

    await pool.graceful_shutdown()

    assert [event.kind for event, _ in handler.events] == [
        TnlaEventKind.ESTABLISHED,
        TnlaEventKind.TERMINATED,
    ]
    assert await pool.remote_addresses() == []
    assert assoc.closed