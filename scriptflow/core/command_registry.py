"""Command Registry mapping command names to the handlers scripts call."""

import inspect
from typing import Any, Callable, Dict, List, Optional, Sequence

from .exceptions import CommandRegistryError
from .logging import get_logger

logger = get_logger(__name__)


# Command names understood by the production subsystems that populate the
# registry. Used by the validator to flag likely typos.
KNOWN_COMMANDS: Dict[str, str] = {
    # Scene control
    "switchScene": "Switch to a scene by name",
    "nextScene": "Switch to the next scene",
    "previousScene": "Switch to the previous scene",
    # Alerts
    "showAlert": "Show an on-screen alert (title, message, duration)",
    "hideAlert": "Hide the current alert",
    # Audio
    "playSound": "Play a sound by id (soundId, volume)",
    "stopSound": "Stop all sounds",
    "setVolume": "Set master volume (0-100)",
    # Text to speech
    "speak": "Speak text aloud (text, voice)",
    "stopSpeaking": "Stop text to speech",
    # Lower thirds
    "showLowerThird": "Show a lower third (title, subtitle, duration)",
    "hideLowerThird": "Hide the lower third",
    # Clips and replays
    "createClip": "Create a clip (duration, title)",
    "saveReplay": "Save the replay buffer",
    # Social
    "tweet": "Post a tweet",
    "postDiscord": "Post a message to Discord",
    # Polls and predictions
    "startPoll": "Start a poll",
    "endPoll": "End the active poll",
    "startPrediction": "Start a prediction",
    # Effects
    "enableChromaKey": "Enable chroma key",
    "disableChromaKey": "Disable chroma key",
    "enableBackgroundRemoval": "Enable background removal",
    # Recording and streaming
    "startRecording": "Start recording",
    "stopRecording": "Stop recording",
    "pauseRecording": "Pause recording",
    "startStream": "Start streaming",
    "stopStream": "Stop streaming",
    # Variables
    "set": "Set a variable (name, value)",
    "get": "Get a variable",
    "increment": "Increment a variable",
    "decrement": "Decrement a variable",
    # Logic
    "wait": "Wait a number of seconds",
    "repeat": "Repeat an action",
    "random": "Pick a random number (min, max)",
}


class CommandRegistry:
    """Registry of command handlers that script actions and workflow nodes call into.

    Built once at startup and handed to the interpreter and workflow executor.
    Handlers receive the action's positional arguments and may be plain
    functions or coroutines.
    """

    def __init__(self):
        self._handlers: Dict[str, Callable] = {}
        self._descriptions: Dict[str, str] = {}

    def register(self, name: str, handler: Callable, description: str = "") -> None:
        """Register a handler under a command name.

        Args:
            name: Command name as written in scripts
            handler: Callable accepting the action's positional arguments
            description: Optional human readable description

        Raises:
            CommandRegistryError: If the name is empty, taken, or the handler is not callable
        """
        if not name or not name.strip():
            raise CommandRegistryError("Command name cannot be empty", operation="register")

        name = name.strip()

        if not callable(handler):
            raise CommandRegistryError(
                f"Handler for command '{name}' must be callable",
                command=name,
                operation="register"
            )

        if name in self._handlers:
            raise CommandRegistryError(
                f"Command '{name}' is already registered",
                command=name,
                operation="register"
            )

        self._handlers[name] = handler
        self._descriptions[name] = description.strip() if description else KNOWN_COMMANDS.get(name, "")
        logger.debug(f"Registered command '{name}' -> {getattr(handler, '__qualname__', repr(handler))}")

    def command(self, name: str, description: str = "") -> Callable[[Callable], Callable]:
        """Decorator form of :meth:`register`."""
        def decorator(handler: Callable) -> Callable:
            self.register(name, handler, description)
            return handler
        return decorator

    def unregister(self, name: str) -> bool:
        """Remove a command. Returns False if it was not registered."""
        if name not in self._handlers:
            return False
        del self._handlers[name]
        self._descriptions.pop(name, None)
        logger.debug(f"Unregistered command '{name}'")
        return True

    def has(self, name: str) -> bool:
        return name in self._handlers

    def get(self, name: str) -> Optional[Callable]:
        return self._handlers.get(name)

    def list_commands(self) -> Dict[str, str]:
        """Map every registered command name to its description."""
        return dict(self._descriptions)

    async def dispatch(self, name: str, args: Sequence[Any] = ()) -> Any:
        """Call a command handler, awaiting it when it returns an awaitable.

        Raises:
            CommandRegistryError: If the command is not registered
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise CommandRegistryError(
                f"Command '{name}' is not registered",
                command=name,
                operation="dispatch"
            )

        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def names(self) -> List[str]:
        return sorted(self._handlers)
