import asyncio
import errno
import ipaddress

import pytest

from kadnet.message_socket import IpEndpoint, MessageSocket
from kadnet.result import ErrorCode, KademliaError


def test_ipv4_endpoint_is_printed_as_address_and_port():
    assert str(IpEndpoint("127.0.0.1", 1234)) == "127.0.0.1:1234"


def test_ipv6_endpoint_is_printed_with_brackets():
    endpoint = IpEndpoint("::1", 1234)
    assert str(endpoint) == "[::1]:1234"
    assert endpoint.is_v6 and not endpoint.is_v4


def test_endpoint_round_trips_through_sockaddr():
    for endpoint in (IpEndpoint("192.168.1.2", 5555), IpEndpoint("::4", 5555)):
        assert IpEndpoint.from_sockaddr(endpoint.to_sockaddr()) == endpoint


def test_endpoint_converts_string_address():
    endpoint = IpEndpoint("10.0.0.1", "27980")
    assert endpoint.address == ipaddress.ip_address("10.0.0.1")
    assert endpoint.port == 27980


def test_resolve_numeric_address():
    endpoints = MessageSocket.resolve_endpoint("127.0.0.1", "5555")
    assert IpEndpoint("127.0.0.1", 5555) in endpoints
    assert all(e.port == 5555 for e in endpoints)


def test_ipv4_rejects_ipv6_only_host():
    with pytest.raises(KademliaError) as info:
        MessageSocket.ipv4("::1", "0")
    assert info.value.code is ErrorCode.INVALID_IPV4_ADDRESS


def test_ipv6_rejects_ipv4_only_host():
    with pytest.raises(KademliaError) as info:
        MessageSocket.ipv6("127.0.0.1", 0)
    assert info.value.code is ErrorCode.INVALID_IPV6_ADDRESS


@pytest.mark.asyncio
async def test_local_endpoint_reports_bound_address():
    with MessageSocket.ipv4("127.0.0.1", "0") as s:
        local = s.local_endpoint()
        assert local.address == ipaddress.ip_address("127.0.0.1")
        assert local.port > 0


@pytest.mark.asyncio
async def test_send_and_receive_datagram():
    loop = asyncio.get_running_loop()
    received = loop.create_future()
    sent = loop.create_future()

    with MessageSocket.ipv4("127.0.0.1", 0) as a, MessageSocket.ipv4("127.0.0.1", 0) as b:
        b.async_receive(lambda f, s, d: received.set_result((f, s, d)))
        a.async_send(b"hello", b.local_endpoint(), sent.set_result)

        assert await asyncio.wait_for(sent, 2) is None
        failure, sender, data = await asyncio.wait_for(received, 2)
        assert failure is None
        assert sender == a.local_endpoint()
        assert data == b"hello"


@pytest.mark.asyncio
async def test_oversized_message_is_refused():
    errors = []
    with MessageSocket.ipv4("127.0.0.1", 0) as s:
        s.async_send(
            bytes(MessageSocket.INPUT_BUFFER_SIZE + 1), s.local_endpoint(), errors.append
        )
    assert len(errors) == 1
    assert errors[0].errno == errno.EOVERFLOW


@pytest.mark.asyncio
async def test_only_one_receive_can_be_pending():
    with MessageSocket.ipv4("127.0.0.1", 0) as s:
        s.async_receive(lambda *args: None)
        with pytest.raises(RuntimeError):
            s.async_receive(lambda *args: None)


@pytest.mark.asyncio
async def test_close_marks_socket_closed():
    s = MessageSocket.ipv4("127.0.0.1", 0)
    s.async_receive(lambda *args: None)
    s.close()
    assert s.closed