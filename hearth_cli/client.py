"""
One-shot command client for the Hearth server.

Opens a panel-style connection, waits for the server to be online, sends a
single command and returns its result.
"""

import concurrent.futures
import logging
import threading
import uuid
from typing import Any, Dict, Optional

from hearth_panel.connection import ClientConnection, ConnectionEvent
from hearth_panel.transport import MQTTClientTransport
from hearth_protocol import MQTTConfig, create_logger


class HearthCommandClient:
    """
    Send commands to the Hearth server from the command line.

    Example:
        client = HearthCommandClient(MQTTConfig(broker="localhost"))
        rooms = client.send_command("environment-rooms")
    """

    def __init__(self, mqtt: MQTTConfig, client_id: Optional[str] = None):
        self.mqtt = mqtt
        self.client_id = client_id or f"cli-{uuid.uuid4().hex[:8]}"

        quiet = logging.WARNING
        self.transport = MQTTClientTransport(
            broker_host=mqtt.broker,
            broker_port=mqtt.port,
            topics=mqtt.topics,
            client_id=self.client_id,
            logger=create_logger(component="cli_transport", level=quiet),
            username=mqtt.username,
            password=mqtt.password,
            qos=mqtt.qos,
            keepalive=mqtt.keepalive,
        )
        self.connection = ClientConnection(
            self.transport,
            client_id=self.client_id,
            logger=create_logger(component="cli_connection", level=quiet),
        )

    def send_command(
        self,
        command: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout: float = 10.0,
    ) -> Dict[str, Any]:
        """
        Connect, send one command, disconnect.

        Raises:
            ConnectionError: server not reachable within timeout
            TimeoutError: no reply within timeout
            CommandError: the server rejected the command
        """
        connected = threading.Event()
        self.connection.add_listener(ConnectionEvent.CONNECT, connected.set)
        self.connection.connect()

        try:
            if not connected.wait(timeout=timeout):
                raise ConnectionError(
                    f"Hearth server not reachable via {self.mqtt.broker}:{self.mqtt.port} "
                    f"(site '{self.mqtt.site_id}'). Is the server running?"
                )

            future = self.connection.send(command, parameters)
            try:
                return future.result(timeout=timeout)
            except concurrent.futures.TimeoutError as e:
                raise TimeoutError(f"No reply to '{command}' within {timeout}s") from e
        finally:
            self.connection.disconnect()
