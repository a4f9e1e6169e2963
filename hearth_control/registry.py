"""
CommandRegistry - Explicit command registration pattern

Bounded Context: Command registration and lookup
Responsibilities:
  - Register command names with handlers
  - Dispatch a command to its handler, or report that nobody claims it

A registry never raises for an unknown command: dispatch() returns None so the
caller can try the next component in its chain.

Threading: Thread-safe (uses lock for write operations)
"""

import threading
from typing import Any, Callable, Dict, Optional

CommandHandler = Callable[[Dict[str, Any]], Dict[str, Any]]


class CommandParameterError(ValueError):
    """A handler rejected the parameters of a command it does handle."""


class CommandRegistry:
    """
    Registry of command handlers with explicit registration.

    Thread Safety:
      - Uses lock for write operations (register)
      - Read operations are lock-free (dict reads)

    Example:
        registry = CommandRegistry()
        registry.register('environment-rooms', environment.list_rooms)

        result = registry.dispatch('environment-rooms', {})
        if result is None:
            ...  # not ours, try the next component
    """

    def __init__(self):
        self._commands: Dict[str, CommandHandler] = {}
        self._lock = threading.Lock()

    def register(self, command: str, handler: CommandHandler) -> None:
        """
        Register a command with its handler function.

        Args:
            command: Command name (lowercase, dash separated)
            handler: Callable receiving the command parameters

        Raises:
            ValueError: If command already registered (double registration)
        """
        with self._lock:
            if command in self._commands:
                raise ValueError(f"Command '{command}' already registered")

            self._commands[command] = handler

    def dispatch(self, command: str, parameters: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Execute a registered command.

        Returns:
            The handler's result, or None when the command is not registered.
        """
        handler = self._commands.get(command)
        if handler is None:
            return None

        return handler(parameters or {})

