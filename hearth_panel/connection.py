"""
ClientConnection - a panel's connection to the server.

States:
    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> DISCONNECTED -> CONNECTING   (transport loss or server offline)

CONNECTED requires both an open transport and a server that announced itself
online. On loss, every pending request is rejected with ConnectionLostError,
then DISCONNECT listeners run, then the connection goes back to CONNECTING
(the transport reconnects on its own).

send() returns a concurrent.futures.Future resolved by the reply carrying the
request's token. There is no reply timeout: a request stays pending until its
reply arrives or the connection is lost.

Threading:
  - Transport callbacks arrive on the transport thread
  - Listeners and Future callbacks run on that thread too, keep them short
  - State and the pending table are guarded by one lock; listeners and
    Futures are always completed outside of it
"""

import threading
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from hearth_protocol.logging import LogEvent, StructuredLogger, create_logger
from hearth_protocol.schemas import (
    CommandFailure,
    CommandReply,
    CommandRequest,
    ErrorKind,
    PushMessage,
    ServerStatus,
    new_token,
)

from .transport import ClientTransport


class ConnectionLostError(Exception):
    """The connection dropped before the reply arrived."""


class NotConnectedError(Exception):
    """send() was called while the connection was not CONNECTED."""


class MalformedReplyError(Exception):
    """The reply carrying the request's token failed schema validation."""


class CommandError(Exception):
    """The server answered a command with an error."""

    def __init__(self, command: str, kind: ErrorKind, message: str):
        super().__init__(f"{command}: {message} ({kind.value})")
        self.command = command
        self.kind = kind
        self.message = message

    @classmethod
    def from_failure(cls, command: str, failure: CommandFailure) -> "CommandError":
        error_cls = UnhandledCommandError if failure.kind == ErrorKind.UNHANDLED else cls
        return error_cls(command, failure.kind, failure.message)


class UnhandledCommandError(CommandError):
    """No component on the server claimed the command."""


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionEvent(str, Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"


ConnectionListener = Callable[[], None]
PushHandler = Callable[[PushMessage], None]


class ClientConnection:
    """
    Correlated request/response over a ClientTransport.

    Example:
        connection = ClientConnection(transport, client_id="kitchen-tablet")
        connection.add_listener(ConnectionEvent.CONNECT, on_connect)
        connection.connect()

        rooms = connection.send("environment-rooms").result()["rooms"]
    """

    def __init__(
        self,
        transport: ClientTransport,
        client_id: str,
        logger: Optional[StructuredLogger] = None,
    ):
        self.transport = transport
        self.client_id = client_id
        self.logger = logger or create_logger("connection")

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._transport_open = False
        self._server_online = False
        self._closing = False
        self._debug_values: Tuple[str, ...] = ()
        self._pending: Dict[str, Tuple[str, Future]] = {}

        self._listeners: Dict[ConnectionEvent, List[ConnectionListener]] = {
            event: [] for event in ConnectionEvent
        }
        self._push_handlers: List[PushHandler] = []

    # ===== Public API =====

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def debug_values(self) -> Tuple[str, ...]:
        """Diagnostic lines from the last server status."""
        return self._debug_values

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def add_listener(self, event: ConnectionEvent, listener: ConnectionListener) -> None:
        with self._lock:
            self._listeners[event].append(listener)

    def remove_listener(self, event: ConnectionEvent, listener: ConnectionListener) -> None:
        with self._lock:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

    def add_push_handler(self, handler: PushHandler) -> None:
        with self._lock:
            self._push_handlers.append(handler)

    def remove_push_handler(self, handler: PushHandler) -> None:
        with self._lock:
            if handler in self._push_handlers:
                self._push_handlers.remove(handler)

    def connect(self) -> None:
        """Start connecting. CONNECT listeners fire once the server is reachable."""
        with self._lock:
            if self._state != ConnectionState.DISCONNECTED:
                return
            self._closing = False
            self._state = ConnectionState.CONNECTING

        self.transport.open(self)

    def disconnect(self) -> None:
        """Close the connection for good (no reconnection)."""
        with self._lock:
            if self._state == ConnectionState.DISCONNECTED and not self._transport_open:
                return
            self._closing = True
            self._transport_open = False
            self._server_online = False

        self.transport.close()
        self._on_lost("closed by client")

    def send(self, command: str, parameters: Optional[Dict[str, Any]] = None) -> Future:
        """
        Send a command to the server.

        Returns:
            Future resolved with the command's result dict. It fails with
            NotConnectedError, ConnectionLostError, MalformedReplyError or
            CommandError (UnhandledCommandError when no server component
            claims it).
        """
        future: Future = Future()
        # Running from the start: a sent request cannot be cancelled
        future.set_running_or_notify_cancel()

        with self._lock:
            if self._state != ConnectionState.CONNECTED:
                future.set_exception(NotConnectedError(
                    f"Cannot send '{command}' while {self._state.value}"
                ))
                return future

            request = CommandRequest(
                token=new_token(),
                client_id=self.client_id,
                command=command,
                parameters=dict(parameters or {}),
            )
            self._pending[request.token] = (command, future)

        if not self.transport.publish_request(request):
            with self._lock:
                still_pending = self._pending.pop(request.token, None) is not None
            # Otherwise a concurrent connection loss already rejected it
            if still_pending:
                future.set_exception(NotConnectedError(f"Unable to send '{command}'"))

        return future

    # ===== TransportListener =====

    def on_transport_open(self) -> None:
        with self._lock:
            self._transport_open = True
        self._maybe_connected()

    def on_transport_closed(self) -> None:
        with self._lock:
            self._transport_open = False
            # The retained status is delivered again after resubscribing
            self._server_online = False
        self._on_lost("transport lost")

    def on_status(self, status: ServerStatus) -> None:
        self.logger.info(
            event=LogEvent.STATUS_RECEIVED,
            message=f"Server {status.server_id} is {status.state.value}",
            metadata={'debug': list(status.debug)}
        )

        with self._lock:
            self._server_online = status.online
            if status.online:
                self._debug_values = status.debug

        if status.online:
            self._maybe_connected()
        else:
            self._on_lost("server offline")

    def on_reply(self, reply: CommandReply) -> None:
        with self._lock:
            entry = self._pending.pop(reply.token, None)

        if entry is None:
            self.logger.warning(
                event=LogEvent.UNKNOWN_TOKEN,
                message="Reply for unknown token ignored",
                metadata={'token': reply.token}
            )
            return

        command, future = entry
        if reply.ok:
            self.logger.debug(
                event=LogEvent.COMMAND_RESOLVED,
                message="Command resolved",
                metadata={'command': command, 'token': reply.token}
            )
            future.set_result(reply.result if reply.result is not None else {})
            return

        self.logger.warning(
            event=LogEvent.COMMAND_REJECTED,
            message=f"Command failed: {reply.error.message}",
            metadata={'command': command, 'token': reply.token, 'kind': reply.error.kind.value}
        )
        future.set_exception(CommandError.from_failure(command, reply.error))

    def on_malformed_reply(self, token: str, reason: str) -> None:
        """Fail the request whose reply could not be decoded."""
        with self._lock:
            entry = self._pending.pop(token, None)

        if entry is None:
            self.logger.warning(
                event=LogEvent.UNKNOWN_TOKEN,
                message="Malformed reply for unknown token ignored",
                metadata={'token': token}
            )
            return

        command, future = entry
        self.logger.warning(
            event=LogEvent.COMMAND_REJECTED,
            message=f"Malformed reply: {reason}",
            metadata={'command': command, 'token': token}
        )
        future.set_exception(MalformedReplyError(f"'{command}': malformed reply ({reason})"))

    def on_push(self, message: PushMessage) -> None:
        self.logger.debug(
            event=LogEvent.PUSH_RECEIVED,
            message="Push received",
            metadata={'event': message.event}
        )

        with self._lock:
            handlers = list(self._push_handlers)

        for handler in handlers:
            try:
                handler(message)
            except Exception as e:
                self.logger.error(
                    event=LogEvent.HANDLER_ERROR,
                    message="Push handler failed",
                    exc_info=e,
                    metadata={'event': message.event}
                )

    # ===== State transitions =====

    def _maybe_connected(self) -> None:
        with self._lock:
            if self._closing or self._state == ConnectionState.CONNECTED:
                return
            if not (self._transport_open and self._server_online):
                return
            self._state = ConnectionState.CONNECTED

        self.logger.info(
            event=LogEvent.PANEL_CONNECTED,
            message="Connected to server",
            metadata={'client_id': self.client_id}
        )
        self._emit(ConnectionEvent.CONNECT)

    def _on_lost(self, reason: str) -> None:
        with self._lock:
            was_connected = self._state == ConnectionState.CONNECTED
            self._state = ConnectionState.DISCONNECTED
            pending = list(self._pending.items())
            self._pending.clear()

        for token, (command, future) in pending:
            self.logger.warning(
                event=LogEvent.COMMAND_REJECTED,
                message=f"Command rejected: {reason}",
                metadata={'command': command, 'token': token}
            )
            future.set_exception(ConnectionLostError(f"'{command}' aborted: {reason}"))

        if was_connected:
            self.logger.warning(
                event=LogEvent.PANEL_DISCONNECTED,
                message=f"Disconnected from server: {reason}",
                metadata={'client_id': self.client_id, 'rejected': len(pending)}
            )
            self._emit(ConnectionEvent.DISCONNECT)

        with self._lock:
            if not self._closing and self._state == ConnectionState.DISCONNECTED:
                self._state = ConnectionState.CONNECTING

    def _emit(self, event: ConnectionEvent) -> None:
        with self._lock:
            listeners = list(self._listeners[event])

        for listener in listeners:
            try:
                listener()
            except Exception as e:
                self.logger.error(
                    event=LogEvent.HANDLER_ERROR,
                    message=f"{event.value} listener failed",
                    exc_info=e,
                )
