"""
MQTTControlPlane - server side of the command protocol

Bounded Context: MQTT connection management + command reception
Responsibilities:
  - MQTT connection lifecycle (connect, disconnect, automatic reconnect)
  - Command reception (subscribe to the commands topic)
  - Command execution on a worker pool, delegated to a CommandDelegate
  - Exactly one reply per decodable request, on the client's reply topic
  - Presence publishing (retained ONLINE status, OFFLINE as last will)
  - Pushes addressed to a single client

QoS Policy:
  - Commands, replies, pushes: configured QoS (1 by default)
  - Status: QoS 1 + retained

Threading:
  - MQTT client runs its own background thread (loop_start/loop_stop)
  - _on_message decodes in the MQTT thread, then hands the request to the
    worker pool so slow handlers (hub HTTP calls) never block the network loop
"""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

import paho.mqtt.client as mqtt

from hearth_protocol.logging import LogEvent, StructuredLogger
from hearth_protocol.schemas import (
    CommandReply,
    CommandRequest,
    ErrorKind,
    PushMessage,
    ServerState,
    ServerStatus,
)
from hearth_protocol.topics import TopicLayout

from .client import ServerConnection
from .registry import CommandParameterError


class CommandDelegate(Protocol):
    """Receiver of decoded commands (implemented by the server)."""

    def on_network_command(
        self,
        client: ServerConnection,
        command: str,
        parameters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]: ...


class MQTTControlPlane:
    """
    MQTT Control Plane for receiving commands and answering them.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            topics=TopicLayout(prefix="hearth", site_id="home"),
            server_id="hearth-01",
            delegate=server,
            logger=create_logger("control_plane"),
        )

        if control_plane.connect(timeout=5.0):
            print("Accepting commands")

        # Later: disconnect (publishes OFFLINE)
        control_plane.disconnect()
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topics: TopicLayout,
        server_id: str,
        delegate: CommandDelegate,
        logger: StructuredLogger,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1,
        keepalive: int = 60,
        workers: int = 4,
        debug_values: Optional[Callable[[], Sequence[str]]] = None,
    ):
        """
        Args:
            broker_host: MQTT broker hostname
            broker_port: MQTT broker port (typically 1883)
            topics: Topic layout shared with the panels
            server_id: Identifier announced in the status message
            delegate: Receiver of decoded commands
            logger: Structured logger
            username: Optional MQTT authentication username
            password: Optional MQTT authentication password
            qos: QoS for commands, replies and pushes
            keepalive: MQTT keepalive in seconds
            workers: Size of the command worker pool
            debug_values: Callable producing diagnostic lines for the panels
        """
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topics = topics
        self.server_id = server_id
        self.delegate = delegate
        self.logger = logger
        self.qos = qos
        self.keepalive = keepalive
        self._debug_values = debug_values or (lambda: ())

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"hearth-server-{server_id}",
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        if username and password:
            self.client.username_pw_set(username, password)

        # Panels see OFFLINE if we vanish without a clean disconnect
        self.client.will_set(
            self.topics.status,
            json.dumps(self._status(ServerState.OFFLINE).to_dict()),
            qos=1,
            retain=True,
        )

        self._connected = threading.Event()
        self._running = False
        self._executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="hearth-command",
        )

    # ===== Lifecycle =====

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to MQTT broker with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        broker = f"{self.broker_host}:{self.broker_port}"
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=self.keepalive)
            self.client.loop_start()
            self._running = True

            if self._connected.wait(timeout=timeout):
                return True

            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Connection timeout",
                metadata={'broker': broker, 'timeout': timeout}
            )
            return False

        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Failed to connect to broker",
                exc_info=e,
                metadata={'broker': broker}
            )
            return False

    def disconnect(self) -> None:
        """
        Publish OFFLINE, stop the network loop and drain the worker pool.

        Safe to call multiple times.
        """
        if not self._running:
            return

        self._running = False
        info = self.publish_status(ServerState.OFFLINE)
        if info is not None:
            info.wait_for_publish(timeout=2.0)

        self.client.loop_stop()
        self.client.disconnect()
        self._connected.clear()
        self._executor.shutdown(wait=True)

        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Control plane disconnected",
            metadata={'broker': f"{self.broker_host}:{self.broker_port}"}
        )

    def is_connected(self) -> bool:
        return self._connected.is_set()

    # ===== Publishing =====

    def _status(self, state: ServerState) -> ServerStatus:
        debug = tuple(self._debug_values()) if state == ServerState.ONLINE else ()
        return ServerStatus(state=state, server_id=self.server_id, debug=debug)

    def publish_status(self, state: ServerState) -> Optional[mqtt.MQTTMessageInfo]:
        """
        Publish the (retained) presence of this server.

        Sent with ONLINE on every (re)connect. Call it again after an
        environment reload to refresh the debug values panels display.
        """
        status = self._status(state)
        info = self._publish(self.topics.status, status.to_dict(), qos=1, retain=True)
        if info is not None:
            self.logger.info(
                event=LogEvent.STATUS_PUBLISHED,
                message=f"Server status published: {state.value}",
                metadata={'topic': self.topics.status, 'debug': list(status.debug)}
            )
        return info

    def push(self, client_id: str, message: PushMessage) -> bool:
        """Publish a PushMessage on one client's push topic."""
        topic = self.topics.push(client_id)
        if self._publish(topic, message.to_dict()) is None:
            return False

        self.logger.debug(
            event=LogEvent.PUSH_SENT,
            message="Push sent",
            metadata={'client_id': client_id, 'event': message.event}
        )
        return True

    def _publish(
        self,
        topic: str,
        payload: Dict[str, Any],
        qos: Optional[int] = None,
        retain: bool = False,
    ) -> Optional[mqtt.MQTTMessageInfo]:
        try:
            info = self.client.publish(
                topic,
                json.dumps(payload),
                qos=self.qos if qos is None else qos,
                retain=retain,
            )
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Error publishing message",
                exc_info=e,
                metadata={'topic': topic}
            )
            return None

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message=f"Publish failed (rc={info.rc})",
                metadata={'topic': topic}
            )
            return None
        return info

    # ===== Command handling =====

    def handle_request(self, request: CommandRequest) -> CommandReply:
        """
        Run one request through the delegate and build its reply.

        Never raises: a missing handler becomes an UNHANDLED reply and an
        exception inside a handler becomes an INTERNAL reply.
        """
        client = ServerConnection(request.client_id, self.push)
        metadata = {
            'command': request.command,
            'client_id': request.client_id,
            'token': request.token,
        }

        try:
            result = self.delegate.on_network_command(client, request.command, request.parameters)
        except CommandParameterError as e:
            self.logger.warning(
                event=LogEvent.COMMAND_REJECTED,
                message=f"Invalid parameters: {e}",
                metadata=metadata
            )
            return CommandReply.failure(request.token, ErrorKind.INVALID_REQUEST, str(e))
        except Exception as e:
            self.logger.error(
                event=LogEvent.HANDLER_ERROR,
                message="Command handler failed",
                exc_info=e,
                metadata=metadata
            )
            return CommandReply.failure(
                request.token,
                ErrorKind.INTERNAL,
                f"Command '{request.command}' failed: {e}",
            )

        if result is None:
            self.logger.warning(
                event=LogEvent.COMMAND_UNHANDLED,
                message="No handler for command",
                metadata=metadata
            )
            return CommandReply.failure(
                request.token,
                ErrorKind.UNHANDLED,
                f"No handler for command '{request.command}'",
            )

        self.logger.debug(
            event=LogEvent.COMMAND_HANDLED,
            message="Command handled",
            metadata=metadata
        )
        return CommandReply.success(request.token, result)

    def _process(self, request: CommandRequest) -> None:
        """Worker pool entry point."""
        reply = self.handle_request(request)
        self._publish(self.topics.replies(request.client_id), reply.to_dict())

    def _reject_malformed(self, data: Any, error: ValueError) -> None:
        """Answer an undecodable request when it is still addressable."""
        self.logger.error(
            event=LogEvent.SCHEMA_VALIDATION_ERROR,
            message="Command request failed schema validation",
            exc_info=error,
        )

        if not isinstance(data, dict):
            return
        token, client_id = data.get('token'), data.get('client_id')
        if not isinstance(token, str) or not token:
            return
        if not isinstance(client_id, str) or not client_id:
            return

        reply = CommandReply.failure(token, ErrorKind.INVALID_REQUEST, str(error))
        self._publish(self.topics.replies(client_id), reply.to_dict())

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Connection failed ({reason_code})",
                metadata={'broker': f"{self.broker_host}:{self.broker_port}"}
            )
            self._connected.clear()
            return

        client.subscribe(self.topics.commands, qos=self.qos)
        self.publish_status(ServerState.ONLINE)
        self._connected.set()

        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected to broker and subscribed to commands",
            metadata={
                'broker': f"{self.broker_host}:{self.broker_port}",
                'commands_topic': self.topics.commands,
            }
        )

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._connected.clear()
        if self._running:
            # loop_start() keeps retrying in the background
            self.logger.warning(
                event=LogEvent.MQTT_RECONNECTING,
                message="Unexpected disconnection, reconnecting",
                metadata={'reason_code': str(reason_code)}
            )

    def _on_message(self, client, userdata, msg):
        """
        MQTT callback: command message received.

        Keep this fast: decoding only, execution happens on the worker pool.
        """
        try:
            data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self.logger.error(
                event=LogEvent.DESERIALIZATION_ERROR,
                message="Failed to decode command payload",
                exc_info=e,
                metadata={'topic': msg.topic}
            )
            return

        try:
            request = CommandRequest.from_dict(data)
        except ValueError as e:
            self._reject_malformed(data, e)
            return

        self.logger.info(
            event=LogEvent.COMMAND_RECEIVED,
            message="Command received",
            metadata={
                'command': request.command,
                'client_id': request.client_id,
                'token': request.token,
            }
        )

        try:
            self._executor.submit(self._process, request)
        except RuntimeError as e:
            # Executor already shut down: we are stopping
            self.logger.warning(
                event=LogEvent.HANDLER_ERROR,
                message="Dropping command received during shutdown",
                metadata={'command': request.command, 'error': str(e)}
            )
