"""
CommandRegistry - explicit registration of control commands.

Bounded Context: Command registration and validation
Responsibilities:
  - Register bridge commands (update_mapping, status) with handlers
  - Reject unknown commands with the list of available ones
  - Report handler failures as CommandExecutionError

Threading: register() takes a lock; lookups read an immutable snapshot.
"""

import threading
from types import MappingProxyType
from typing import Any, Callable, Dict, Optional, Set

CommandHandler = Callable[[Dict[str, Any]], Any]


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""
    pass


class CommandExecutionError(Exception):
    """Raised when a registered handler fails"""

    def __init__(self, command: str, cause: Exception):
        super().__init__(f"Command '{command}' failed: {cause}")
        self.command = command
        self.cause = cause


class CommandRegistry:
    """
    Registry of control-plane commands.

    Handlers always receive the full command payload (a dict).

    Example:
        registry = CommandRegistry()
        registry.register('status', lambda data: bridge.get_stats(), "Report statistics")
        registry.execute('status', {'command': 'status'})
    """

    def __init__(self):
        self._commands: MappingProxyType = MappingProxyType({})
        self._descriptions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, command: str, handler: CommandHandler, description: str) -> None:
        """
        Register a command.

        Raises:
            ValueError: If command already registered or name is invalid
        """
        if not command or command != command.lower() or ' ' in command:
            raise ValueError(f"Invalid command name: {command!r}")

        with self._lock:
            if command in self._commands:
                raise ValueError(f"Command '{command}' already registered")
            commands = dict(self._commands)
            commands[command] = handler
            self._commands = MappingProxyType(commands)
            self._descriptions[command] = description

    def execute(self, command: str, command_data: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a registered command.

        Returns:
            Whatever the handler returns

        Raises:
            CommandNotAvailableError: If command not registered
            CommandExecutionError: If the handler raised
        """
        handler = self._commands.get(command)
        if handler is None:
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )

        try:
            return handler(command_data or {'command': command})
        except Exception as e:
            raise CommandExecutionError(command, e) from e

    def is_available(self, command: str) -> bool:
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._descriptions)
