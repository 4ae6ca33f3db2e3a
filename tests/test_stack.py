import asyncio
import logging

import pytest

from ranstack.stack import Application, Stack
from ranstack.tnla import TnlaEvent, TransportProvider
from ranstack.transaction import (
    Indication,
    Procedure,
    RequestError,
    ShutdownHandle,
    UnsuccessfulOutcome,
)

LOGGER = logging.getLogger("test_stack")


class FakeTransport(TransportProvider):
    def __init__(self, fail_send=False):
        self.sent = []
        self.handler = None
        self.fail_send = fail_send
        self.served = None
        self.connected = None
        self.shut_down = False
        self.serve_result = object()

    async def send_message(self, message, assoc_id, logger):
        if self.fail_send:
            raise OSError("link down")
        self.sent.append((message, assoc_id))

    async def serve(self, listen_addr, ppid, handler, logger):
        self.handler = handler
        self.served = (listen_addr, ppid)
        return self.serve_result

    async def connect(self, connect_addr, bind_addr, ppid, handler, logger):
        self.handler = handler
        self.connected = (connect_addr, bind_addr, ppid)

    async def new_ue_binding(self, seed):
        raise LookupError("unused")

    async def new_ue_binding_from_assoc(self, assoc_id):
        raise LookupError("unused")

    async def new_ue_binding_from_ip(self, ip_addr):
        raise LookupError("unused")

    async def remote_tnla_addresses(self):
        return [(1, ("10.0.0.1", 38472))]

    async def graceful_shutdown(self):
        self.shut_down = True


class FakeProcedure(Procedure):
    CODE = 5

    def encode_request(self, request):
        return bytes([0, self.CODE]) + request

    def decode_response(self, data):
        if data[0] == 2:
            raise UnsuccessfulOutcome(data[2:])
        return data[2:]

    async def call_provider(self, provider, request, logger):
        response, _ = await provider.request(self, request, logger)
        return response, None


class FakeIndication(Indication):
    CODE = 9

    def encode_request(self, request):
        if request is None:
            raise ValueError("nothing to encode")
        return bytes([0, self.CODE]) + request


class FakeApplication(Application):
    def __init__(self, response=None):
        self.events = []
        self.requests = []
        self.response = response

    async def handle_event(self, event, tnla_id, logger):
        self.events.append((event, tnla_id))

    async def handle_request(self, message, logger):
        self.requests.append(message)
        return self.response


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


async def connected_stack(application=None, fail_send=False):
    transport = FakeTransport(fail_send=fail_send)
    stack = Stack(transport)
    application = application or FakeApplication()
    await stack.connect("127.0.0.1:38472", "127.0.0.2", 62, application, LOGGER)
    return stack, transport, application


@pytest.mark.asyncio
async def test_connect_passes_addresses_to_transport():
    stack, transport, _ = await connected_stack()
    assert transport.connected == ("127.0.0.1:38472", "127.0.0.2", 62)


@pytest.mark.asyncio
async def test_request_is_answered_by_matching_response():
    stack, transport, _ = await connected_stack()
    task = asyncio.create_task(stack.request(FakeProcedure(), b"req", LOGGER))
    await wait_until(lambda: transport.sent)
    assert transport.sent == [(b"\x00\x05req", None)]

    await transport.handler.handle_message(b"\x01\x05ok", 3, LOGGER)
    assert await task == (b"ok", None)


@pytest.mark.asyncio
async def test_unsuccessful_outcome_is_raised():
    stack, transport, _ = await connected_stack()
    task = asyncio.create_task(stack.request(FakeProcedure(), b"req", LOGGER))
    await wait_until(lambda: transport.sent)
    await transport.handler.handle_message(b"\x02\x05why", 3, LOGGER)
    with pytest.raises(UnsuccessfulOutcome) as info:
        await task
    assert info.value.failure == b"why"


@pytest.mark.asyncio
async def test_non_matching_message_goes_to_application():
    application = FakeApplication(response=(b"resp", None))
    stack, transport, _ = await connected_stack(application)
    task = asyncio.create_task(stack.request(FakeProcedure(), b"req", LOGGER))
    await wait_until(lambda: transport.sent)

    await transport.handler.handle_message(b"\x00\x05new", 4, LOGGER)
    await wait_until(lambda: len(transport.sent) == 2)

    assert application.requests == [b"\x00\x05new"]
    assert transport.sent[1] == (b"resp", 4)
    assert not task.done()

    await transport.handler.handle_message(b"\x01\x05done", 4, LOGGER)
    assert await task == (b"done", None)


@pytest.mark.asyncio
async def test_post_response_action_runs_after_send():
    ran = []

    async def action():
        ran.append(True)

    class ActionApplication(FakeApplication):
        async def handle_request(self, message, logger):
            self.requests.append(message)
            return b"resp", action()

    application = ActionApplication()
    stack, transport, _ = await connected_stack(application)
    await transport.handler.handle_message(b"\x00\x07x", 2, LOGGER)
    await wait_until(lambda: ran)
    assert transport.sent == [(b"resp", 2)]


@pytest.mark.asyncio
async def test_termination_fails_pending_requests():
    stack, transport, application = await connected_stack()
    task = asyncio.create_task(stack.request(FakeProcedure(), b"req", LOGGER))
    await wait_until(lambda: transport.sent)

    await transport.handler.handle_event(TnlaEvent.terminated(), 1, LOGGER)
    with pytest.raises(RequestError):
        await task
    assert application.events == [(TnlaEvent.terminated(), 1)]


@pytest.mark.asyncio
async def test_send_failure_raises_request_error():
    stack, _, _ = await connected_stack(fail_send=True)
    with pytest.raises(RequestError, match="Transport error"):
        await stack.request(FakeProcedure(), b"req", LOGGER)


@pytest.mark.asyncio
async def test_indication_is_sent():
    stack, transport, _ = await connected_stack()
    await stack.handle(FakeIndication(), b"x", LOGGER)
    assert transport.sent == [(b"\x00\x09x", None)]


@pytest.mark.asyncio
async def test_indication_encode_failure_sends_nothing():
    stack, transport, _ = await connected_stack()
    await stack.handle(FakeIndication(), None, LOGGER)
    assert transport.sent == []


@pytest.mark.asyncio
async def test_listen_passes_events_to_application():
    transport = FakeTransport()
    stack = Stack(transport)
    application = FakeApplication()
    handle = await stack.listen("127.0.0.1:38472", 62, application, LOGGER)
    assert handle is transport.serve_result
    assert transport.served == ("127.0.0.1:38472", 62)

    event = TnlaEvent.established(("10.0.0.1", 38472))
    await transport.handler.handle_event(event, 6, LOGGER)
    assert application.events == [(event, 6)]


@pytest.mark.asyncio
async def test_remote_addresses_and_shutdown_delegate():
    stack, transport, _ = await connected_stack()
    assert await stack.remote_tnla_addresses() == [(1, ("10.0.0.1", 38472))]
    await stack.graceful_shutdown()
    assert transport.shut_down


@pytest.mark.asyncio
async def test_shutdown_handle_from_listen_stops_task():
    stop_event = asyncio.Event()

    async def worker():
        await stop_event.wait()
        return "stopped"

    task = asyncio.create_task(worker())
    transport = FakeTransport()
    transport.serve_result = ShutdownHandle(task, stop_event)
    stack = Stack(transport)
    handle = await stack.listen("127.0.0.1:38472", 62, FakeApplication(), LOGGER)
    await handle.graceful_shutdown()
    assert task.result() == "stopped"