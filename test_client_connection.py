"""
ClientConnection tests over an in-process transport.

Usage:
    pytest test_client_connection.py
"""

import json
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest

from conftest import FakeTransport
from hearth_panel.connection import (
    ClientConnection,
    CommandError,
    ConnectionEvent,
    ConnectionLostError,
    ConnectionState,
    MalformedReplyError,
    NotConnectedError,
    UnhandledCommandError,
)
from hearth_panel.config import ReconnectPolicy
from hearth_panel.transport import MQTTClientTransport
from hearth_protocol import TopicLayout, create_logger
from hearth_protocol.schemas import (
    CommandReply,
    ErrorKind,
    PushMessage,
    ReplyStatus,
    ServerState,
    ServerStatus,
)


def test_starts_disconnected():
    connection = ClientConnection(FakeTransport(), client_id="panel-test")

    assert connection.state == ConnectionState.DISCONNECTED
    assert not connection.connected


def test_send_while_not_connected_fails_immediately(make_connection):
    connection, transport = make_connection(online=False)

    future = connection.send("environment-rooms")

    assert isinstance(future.exception(timeout=0), NotConnectedError)
    assert transport.requests == []


def test_connected_needs_transport_and_online_server(make_connection):
    connection, transport = make_connection(online=False)
    assert transport.opened == 1
    assert connection.state == ConnectionState.CONNECTING

    transport.listener.on_transport_open()
    assert connection.state == ConnectionState.CONNECTING

    transport.go_online()
    assert connection.state == ConnectionState.CONNECTED


def test_connect_listener_fires_once_per_connection(make_connection):
    connection, transport = make_connection(online=False)
    events = []
    connection.add_listener(ConnectionEvent.CONNECT, lambda: events.append("connect"))

    transport.go_online()
    # A repeated ONLINE status (e.g. after a server reload) is not a new connection
    transport.go_online()

    assert events == ["connect"]


def test_send_resolves_with_result(make_connection):
    connection, transport = make_connection()

    future = connection.send("environment-services", {"room": "Office"})
    request = transport.requests[0]
    assert request.client_id == "panel-test"
    assert request.parameters == {"room": "Office"}
    assert not future.done()

    transport.reply(request, {"services": []})

    assert future.result(timeout=0) == {"services": []}
    assert connection.pending_count == 0


def test_replies_correlate_out_of_order(make_connection):
    connection, transport = make_connection()

    first = connection.send("a")
    second = connection.send("b")
    request_a, request_b = transport.requests
    assert request_a.token != request_b.token

    transport.reply(request_b, {"name": "b"})
    transport.reply(request_a, {"name": "a"})

    assert first.result(timeout=0) == {"name": "a"}
    assert second.result(timeout=0) == {"name": "b"}


def test_reply_for_unknown_token_is_ignored(make_connection):
    connection, transport = make_connection()
    future = connection.send("a")
    request = transport.requests[0]

    transport.reply(request, {"n": 1})
    # Second reply for the same token: already resolved, must not raise
    transport.reply(request, {"n": 2})

    assert future.result(timeout=0) == {"n": 1}


def test_error_reply_raises_command_error(make_connection):
    connection, transport = make_connection()
    future = connection.send("philips-hue-set-light")

    transport.fail(transport.requests[0], ErrorKind.INVALID_REQUEST, "'light' is required")

    error = future.exception(timeout=0)
    assert type(error) is CommandError
    assert error.kind == ErrorKind.INVALID_REQUEST
    assert error.command == "philips-hue-set-light"


def test_unhandled_reply_raises_unhandled_error(make_connection):
    connection, _ = make_connection(responder=lambda command, parameters: None)

    error = connection.send("thermostat-set").exception(timeout=0)

    assert isinstance(error, UnhandledCommandError)
    assert isinstance(error, CommandError)


def test_rejected_publish_fails_the_future(make_connection):
    connection, transport = make_connection()
    transport.accept_publish = False

    future = connection.send("a")

    assert isinstance(future.exception(timeout=0), NotConnectedError)
    assert connection.pending_count == 0


def test_loss_rejects_pending_before_disconnect_listeners(make_connection):
    connection, transport = make_connection()
    futures = [connection.send("a"), connection.send("b")]
    seen = []

    def on_disconnect():
        seen.append([f.done() for f in futures])

    connection.add_listener(ConnectionEvent.DISCONNECT, on_disconnect)

    transport.drop()

    assert seen == [[True, True]]
    for future in futures:
        assert isinstance(future.exception(timeout=0), ConnectionLostError)
    assert connection.pending_count == 0
    assert connection.state == ConnectionState.CONNECTING


def test_server_offline_counts_as_loss(make_connection):
    connection, transport = make_connection()
    events = []
    connection.add_listener(ConnectionEvent.DISCONNECT, lambda: events.append("disconnect"))
    future = connection.send("a")

    transport.server_offline()

    assert events == ["disconnect"]
    assert isinstance(future.exception(timeout=0), ConnectionLostError)
    assert not connection.connected


def test_reconnect_emits_connect_again(make_connection):
    connection, transport = make_connection()
    events = []
    connection.add_listener(ConnectionEvent.CONNECT, lambda: events.append("connect"))
    connection.add_listener(ConnectionEvent.DISCONNECT, lambda: events.append("disconnect"))

    transport.drop()
    transport.go_online()

    assert events == ["disconnect", "connect"]
    assert connection.connected


def test_loss_without_connection_emits_nothing(make_connection):
    connection, transport = make_connection(online=False)
    events = []
    connection.add_listener(ConnectionEvent.DISCONNECT, lambda: events.append("disconnect"))

    transport.drop()

    assert events == []
    assert connection.state == ConnectionState.CONNECTING


def test_disconnect_closes_for_good(make_connection):
    connection, transport = make_connection()
    future = connection.send("a")

    connection.disconnect()

    assert transport.closed == 1
    assert isinstance(future.exception(timeout=0), ConnectionLostError)
    assert connection.state == ConnectionState.DISCONNECTED

    # Late callbacks from the transport do not revive the connection
    transport.go_online()
    assert connection.state == ConnectionState.DISCONNECTED


def test_debug_values_come_from_status(make_connection):
    connection, transport = make_connection(online=False)

    transport.go_online(debug=["rooms: 3", "services: Philips Hue"])

    assert connection.debug_values == ("rooms: 3", "services: Philips Hue")


def test_push_handlers_receive_messages(make_connection):
    connection, transport = make_connection()
    received = []

    def broken(message):
        raise RuntimeError("widget gone")

    connection.add_push_handler(broken)
    connection.add_push_handler(received.append)

    transport.push("philips-hue-light-changed", {"light": {"id": "1"}})

    assert [m.event for m in received] == ["philips-hue-light-changed"]

    connection.remove_push_handler(received.append)
    transport.push("again", {})
    assert len(received) == 1


def test_listener_exception_does_not_stop_others(make_connection):
    connection, transport = make_connection(online=False)
    events = []

    def broken():
        raise RuntimeError("boom")

    connection.add_listener(ConnectionEvent.CONNECT, broken)
    connection.add_listener(ConnectionEvent.CONNECT, lambda: events.append("connect"))

    transport.go_online()

    assert events == ["connect"]


def test_ok_reply_without_result_resolves_empty(make_connection):
    connection, transport = make_connection()
    future = connection.send("a")

    transport.listener.on_reply(CommandReply(token=transport.requests[0].token, status=ReplyStatus.OK))

    assert future.result(timeout=0) == {}


def test_sent_request_cannot_be_cancelled(make_connection):
    connection, transport = make_connection()
    events = []
    connection.add_listener(ConnectionEvent.DISCONNECT, lambda: events.append("disconnect"))
    future = connection.send("a")

    assert future.cancel() is False

    transport.drop()

    assert events == ["disconnect"]
    assert isinstance(future.exception(timeout=0), ConnectionLostError)
    assert connection.state == ConnectionState.CONNECTING


def test_malformed_reply_fails_its_request(make_connection):
    connection, transport = make_connection()
    future = connection.send("environment-rooms")
    other = connection.send("environment-services")

    transport.listener.on_malformed_reply(transport.requests[0].token, "Missing required reply field: 'status'")

    assert isinstance(future.exception(timeout=0), MalformedReplyError)
    assert not other.done()
    assert connection.pending_count == 1

    # Unknown token: ignored
    transport.listener.on_malformed_reply("unknown", "bad")
    assert connection.pending_count == 1


# ─────────────────────────────────────────────────────────────────────────────
# MQTTClientTransport (no broker: callbacks driven directly)
# ─────────────────────────────────────────────────────────────────────────────

class ListenerRecorder:
    def __init__(self):
        self.calls = []

    def on_transport_open(self):
        self.calls.append(("open",))

    def on_transport_closed(self):
        self.calls.append(("closed",))

    def on_status(self, status):
        self.calls.append(("status", status))

    def on_reply(self, reply):
        self.calls.append(("reply", reply))

    def on_malformed_reply(self, token, reason):
        self.calls.append(("malformed_reply", token))

    def on_push(self, message):
        self.calls.append(("push", message))


TOPICS = TopicLayout(prefix="hearth", site_id="test")


@pytest.fixture
def mqtt_transport():
    transport = MQTTClientTransport(
        broker_host="localhost",
        broker_port=1883,
        topics=TOPICS,
        client_id="panel-9",
        logger=create_logger("test_transport"),
    )
    transport._listener = ListenerRecorder()
    return transport


def deliver(transport, topic, payload):
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    transport._on_message(transport.client, None, SimpleNamespace(topic=topic, payload=raw))


def test_transport_routes_messages_by_topic(mqtt_transport):
    listener = mqtt_transport._listener

    deliver(mqtt_transport, TOPICS.status, ServerStatus(ServerState.ONLINE, "server-test").to_dict())
    deliver(mqtt_transport, TOPICS.replies("panel-9"), CommandReply.success("t1", {}).to_dict())
    deliver(mqtt_transport, TOPICS.push("panel-9"), PushMessage(event="changed").to_dict())

    assert [call[0] for call in listener.calls] == ["status", "reply", "push"]
    assert listener.calls[1][1].token == "t1"


def test_transport_drops_invalid_messages(mqtt_transport):
    listener = mqtt_transport._listener

    deliver(mqtt_transport, TOPICS.status, b"\xff\xfe")
    deliver(mqtt_transport, TOPICS.replies("panel-9"), {"status": "ok"})
    deliver(mqtt_transport, TOPICS.push("panel-9"), {"payload": {}})

    assert listener.calls == []


def test_transport_subscribes_and_opens_on_connect(mqtt_transport):
    subscribed = []
    client = SimpleNamespace(subscribe=lambda topic, qos=0: subscribed.append(topic))

    mqtt_transport._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)
    mqtt_transport._on_disconnect(client, None, {}, SimpleNamespace(is_failure=False), None)

    assert subscribed == [TOPICS.status, TOPICS.replies("panel-9"), TOPICS.push("panel-9")]
    assert mqtt_transport._listener.calls == [("open",), ("closed",)]


def test_transport_reports_malformed_reply_with_token(mqtt_transport):
    listener = mqtt_transport._listener

    deliver(mqtt_transport, TOPICS.replies("panel-9"), {"token": "t7", "status": "maybe"})
    deliver(mqtt_transport, TOPICS.replies("panel-9"), {"token": "t8", "status": "error"})

    assert listener.calls == [("malformed_reply", "t7"), ("malformed_reply", "t8")]


def test_transport_applies_reconnect_policy(monkeypatch):
    delays = []
    monkeypatch.setattr(
        mqtt.Client,
        "reconnect_delay_set",
        lambda self, min_delay=1, max_delay=120: delays.append((min_delay, max_delay)),
    )

    MQTTClientTransport(
        broker_host="localhost",
        broker_port=1883,
        topics=TOPICS,
        client_id="panel-9",
        logger=create_logger("test_transport"),
        reconnect=ReconnectPolicy(min_delay=2.0, max_delay=60.0),
    )

    assert delays == [(2.0, 60.0)]
