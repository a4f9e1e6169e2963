"""
Client transport - MQTT side of a panel's connection.

Bounded Context: Wire protocol (panel side)
Responsibilities:
  - Keep an MQTT session to the broker (paho reconnects on its own)
  - Subscribe to the server status and to this client's replies and pushes
  - Publish CommandRequests
  - Decode everything that arrives and hand it to a TransportListener

The transport knows nothing about pending requests or connection states;
ClientConnection owns those.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional, Protocol

import paho.mqtt.client as mqtt

from hearth_protocol.logging import LogEvent, StructuredLogger
from hearth_protocol.schemas import CommandReply, CommandRequest, PushMessage, ServerStatus
from hearth_protocol.topics import TopicLayout

from .config import ReconnectPolicy


class TransportListener(Protocol):
    """Receiver of transport events (implemented by ClientConnection)."""

    def on_transport_open(self) -> None: ...

    def on_transport_closed(self) -> None: ...

    def on_status(self, status: ServerStatus) -> None: ...

    def on_reply(self, reply: CommandReply) -> None: ...

    def on_malformed_reply(self, token: str, reason: str) -> None: ...

    def on_push(self, message: PushMessage) -> None: ...


class ClientTransport(ABC):
    """Duplex channel between a panel and the server."""

    @abstractmethod
    def open(self, listener: TransportListener) -> None:
        """Start connecting; keeps reconnecting until close()."""

    @abstractmethod
    def close(self) -> None:
        """Stop for good. No listener events are delivered afterwards."""

    @abstractmethod
    def publish_request(self, request: CommandRequest) -> bool:
        """Hand a request to the wire; False when it could not be queued."""


class MQTTClientTransport(ClientTransport):
    """
    paho-mqtt implementation of ClientTransport.

    QoS Policy:
      - Requests: configured QoS (1 by default)
      - Subscriptions: status, replies, push at the same QoS

    Threading:
      - paho runs its network loop in a background thread (loop_start)
      - All listener callbacks are invoked from that thread
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topics: TopicLayout,
        client_id: str,
        logger: StructuredLogger,
        reconnect: Optional[ReconnectPolicy] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1,
        keepalive: int = 60,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topics = topics
        self.client_id = client_id
        self.logger = logger
        self.reconnect = reconnect or ReconnectPolicy()
        self.qos = qos
        self.keepalive = keepalive

        self._listener: Optional[TransportListener] = None

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"hearth-panel-{client_id}",
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        if username and password:
            self.client.username_pw_set(username, password)

        self.client.reconnect_delay_set(
            min_delay=self.reconnect.min_delay,
            max_delay=self.reconnect.max_delay,
        )

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    def open(self, listener: TransportListener) -> None:
        self._listener = listener

        # connect_async + loop_start also retries a broker that is down at startup
        self.client.connect_async(self.broker_host, self.broker_port, keepalive=self.keepalive)
        self.client.loop_start()

        self.logger.info(
            event=LogEvent.MQTT_RECONNECTING,
            message="Connecting to broker",
            metadata={'broker': self.broker, 'client_id': self.client_id}
        )

    def close(self) -> None:
        self._listener = None
        self.client.disconnect()
        self.client.loop_stop()

        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Transport closed",
            metadata={'broker': self.broker}
        )

    def publish_request(self, request: CommandRequest) -> bool:
        try:
            info = self.client.publish(
                self.topics.commands,
                json.dumps(request.to_dict()),
                qos=self.qos,
            )
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Error publishing command",
                exc_info=e,
                metadata={'command': request.command, 'token': request.token}
            )
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message=f"Command publish failed (rc={info.rc})",
                metadata={'command': request.command, 'token': request.token}
            )
            return False

        self.logger.debug(
            event=LogEvent.COMMAND_SENT,
            message="Command sent",
            metadata={'command': request.command, 'token': request.token}
        )
        return True

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Connection refused ({reason_code})",
                metadata={'broker': self.broker}
            )
            return

        for topic in (
            self.topics.status,
            self.topics.replies(self.client_id),
            self.topics.push(self.client_id),
        ):
            client.subscribe(topic, qos=self.qos)

        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected to broker",
            metadata={'broker': self.broker, 'client_id': self.client_id}
        )

        listener = self._listener
        if listener is not None:
            listener.on_transport_open()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from broker",
            metadata={'broker': self.broker, 'reason_code': str(reason_code)}
        )

        listener = self._listener
        if listener is not None:
            listener.on_transport_closed()

    def _on_message(self, client, userdata, msg):
        listener = self._listener
        if listener is None:
            return

        try:
            data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self.logger.error(
                event=LogEvent.DESERIALIZATION_ERROR,
                message="Failed to decode message",
                exc_info=e,
                metadata={'topic': msg.topic}
            )
            return

        try:
            if msg.topic == self.topics.status:
                listener.on_status(ServerStatus.from_dict(data))
            elif msg.topic == self.topics.replies(self.client_id):
                listener.on_reply(self._decode_reply(listener, data))
            elif msg.topic == self.topics.push(self.client_id):
                listener.on_push(PushMessage.from_dict(data))
        except ValueError as e:
            self.logger.error(
                event=LogEvent.SCHEMA_VALIDATION_ERROR,
                message="Message failed schema validation",
                exc_info=e,
                metadata={'topic': msg.topic}
            )

    @staticmethod
    def _decode_reply(listener: TransportListener, data) -> CommandReply:
        """
        Raises:
            ValueError: malformed reply; a readable token still fails its request
        """
        try:
            return CommandReply.from_dict(data)
        except ValueError as e:
            token = data.get('token') if isinstance(data, dict) else None
            if isinstance(token, str) and token:
                listener.on_malformed_reply(token, str(e))
            raise
