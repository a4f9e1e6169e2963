"""
ServerConnection - server-side handle of one connected client.

Services receive this handle with every command so they can address pushes
back to the client that issued it. The handle is transport-agnostic: it only
knows the client identifier and a sink that delivers PushMessages.
"""

from typing import Any, Callable, Dict, Optional

from hearth_protocol.schemas import PushMessage

PushSink = Callable[[str, PushMessage], bool]


class ServerConnection:
    """
    Handle used to address one specific client.

    Equality and hashing are by client identifier, so handles created for
    different requests of the same client compare equal.
    """

    def __init__(self, client_id: str, push_sink: PushSink):
        if not client_id:
            raise ValueError("client_id cannot be empty")

        self._client_id = client_id
        self._push_sink = push_sink

    @property
    def client_id(self) -> str:
        return self._client_id

    def push(self, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Push an unsolicited message to this client.

        Returns:
            True if the message was handed to the transport, False otherwise
        """
        return self._push_sink(self._client_id, PushMessage(event=event, payload=payload or {}))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServerConnection):
            return NotImplemented
        return self._client_id == other._client_id

    def __hash__(self) -> int:
        return hash(self._client_id)

    def __repr__(self) -> str:
        return f"ServerConnection(client_id={self._client_id!r})"
