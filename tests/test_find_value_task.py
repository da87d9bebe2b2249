import pickle

import pytest

from kadnet.find_value_task import start_find_value_task
from kadnet.lookup_task import Peer
from kadnet.message_socket import IpEndpoint
from kadnet.result import ErrorCode, KademliaError
from kadnet.tracker import (
    FindPeerResponse,
    FindValueRequest,
    FindValueResponse,
    Header,
    MessageType,
)


class FakeTracker:
    def __init__(self):
        self.sent = []

    def send_request(self, request, endpoint, timeout=None,
                     on_response_received=None, on_error=None):
        self.sent.append((request, endpoint, timeout, on_response_received, on_error))

    def deserialize(self, body, message_class):
        try:
            message = pickle.loads(body)
        except Exception as failure:
            raise KademliaError(ErrorCode.CORRUPTED_BODY) from failure
        if not isinstance(message, message_class):
            raise KademliaError(ErrorCode.CORRUPTED_BODY)
        return message

    def endpoints(self):
        return [entry[1] for entry in self.sent]


class RoutingTableMock:
    def __init__(self, peers=()):
        self.peers = list(peers)
        self.searched = []

    def find(self, key):
        self.searched.append(key)
        return iter(self.peers)


def endpoint(n):
    return IpEndpoint(f"192.168.1.{n}", 5555)


class Recorder:
    def __init__(self):
        self.results = []

    def __call__(self, result):
        self.results.append(result)


def respond(entry, message_type, body):
    _, ep, _, on_response, _ = entry
    on_response(ep, Header(message_type, 0, 1), body)


def test_no_peer_reports_value_not_found():
    handler = Recorder()
    table = RoutingTableMock()
    start_find_value_task(0, FakeTracker(), table, handler)
    assert table.searched == [0]
    assert len(handler.results) == 1
    assert handler.results[0].error is ErrorCode.VALUE_NOT_FOUND
    with pytest.raises(KademliaError):
        handler.results[0].unwrap()


def test_requests_are_sent_to_closest_peers_first():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(n, endpoint(n)) for n in (5, 4, 3, 2, 1)])
    start_find_value_task(0, tracker, table, handler, concurrency=3, timeout=2.0)
    assert tracker.endpoints() == [endpoint(1), endpoint(2), endpoint(3)]
    assert all(entry[0] == FindValueRequest(0) for entry in tracker.sent)
    assert all(entry[2] == 2.0 for entry in tracker.sent)
    assert handler.results == []


def test_failing_peers_lead_to_value_not_found():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(1, endpoint(1)), (2, endpoint(2))])
    start_find_value_task(0, tracker, table, handler, concurrency=3)
    tracker.sent[0][4](TimeoutError())
    assert handler.results == []
    tracker.sent[1][4](TimeoutError())
    assert len(handler.results) == 1
    assert handler.results[0].error is ErrorCode.VALUE_NOT_FOUND


def test_error_queries_next_candidate():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(n, endpoint(n)) for n in (1, 2, 3)])
    start_find_value_task(0, tracker, table, handler, concurrency=1)
    assert tracker.endpoints() == [endpoint(1)]
    tracker.sent[0][4](TimeoutError())
    assert tracker.endpoints() == [endpoint(1), endpoint(2)]


def test_found_value_is_reported_once():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(1, endpoint(1)), (2, endpoint(2))])
    start_find_value_task(0, tracker, table, handler)
    body = pickle.dumps(FindValueResponse(b"data"))
    respond(tracker.sent[0], MessageType.FIND_VALUE_RESPONSE, body)
    assert len(handler.results) == 1
    assert handler.results[0].unwrap() == b"data"
    respond(tracker.sent[1], MessageType.FIND_VALUE_RESPONSE, body)
    tracker.sent[1][4](TimeoutError())
    assert len(handler.results) == 1


def test_closer_peers_are_queried():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(8, endpoint(8))])
    start_find_value_task(0, tracker, table, handler)
    closer = FindPeerResponse((Peer(2, endpoint(2)), Peer(3, endpoint(3))))
    respond(tracker.sent[0], MessageType.FIND_PEER_RESPONSE, pickle.dumps(closer))
    assert tracker.endpoints() == [endpoint(8), endpoint(2), endpoint(3)]
    assert handler.results == []

    respond(tracker.sent[1], MessageType.FIND_VALUE_RESPONSE,
            pickle.dumps(FindValueResponse(b"value")))
    assert [r.unwrap() for r in handler.results] == [b"value"]


def test_closer_peers_without_news_end_search():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(1, endpoint(1))])
    start_find_value_task(0, tracker, table, handler)
    known = FindPeerResponse((Peer(1, endpoint(1)),))
    respond(tracker.sent[0], MessageType.FIND_PEER_RESPONSE, pickle.dumps(known))
    assert len(tracker.sent) == 1
    assert handler.results[0].error is ErrorCode.VALUE_NOT_FOUND


def test_corrupted_response_is_skipped():
    tracker = FakeTracker()
    handler = Recorder()
    table = RoutingTableMock([(1, endpoint(1)), (2, endpoint(2))])
    start_find_value_task(0, tracker, table, handler)
    respond(tracker.sent[0], MessageType.FIND_VALUE_RESPONSE, b"corrupted")
    assert handler.results == []
    assert len(tracker.sent) == 2
    tracker.sent[1][4](TimeoutError())
    assert len(handler.results) == 1
    assert handler.results[0].error is ErrorCode.VALUE_NOT_FOUND


def test_task_exposes_key_and_notification_state():
    tracker = FakeTracker()
    handler = Recorder()
    task = start_find_value_task(b"\x01", tracker, RoutingTableMock([(3, endpoint(3))]), handler)
    assert task.key == 1
    assert task.is_caller_notified is False
    respond(tracker.sent[0], MessageType.FIND_VALUE_RESPONSE,
            pickle.dumps(FindValueResponse(b"x")))
    assert task.is_caller_notified is True