"""Default command handlers registered when no production subsystems are attached.

The handlers log what they would do and keep a little in-memory state
(current scene, variables, recording flags) so scripts and workflows can be
exercised end to end without a studio attached.
"""

import random
from typing import Any, Dict, List, Optional

from ..core.command_registry import CommandRegistry, KNOWN_COMMANDS
from ..core.logging import get_logger

logger = get_logger(__name__)


def _to_number(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class StudioState:
    """In-memory stand-in for the studio the commands would drive."""

    def __init__(self, scenes: Optional[List[str]] = None):
        self.scenes: List[str] = list(scenes or ["gameplay", "chatting", "brb", "celebration"])
        self.current_scene: str = self.scenes[0]
        self.variables: Dict[str, Any] = {}
        self.volume: float = 100.0
        self.recording: bool = False
        self.streaming: bool = False
        self.history: List[Dict[str, Any]] = []

    def record(self, command: str, *args) -> Dict[str, Any]:
        entry = {"command": command, "args": list(args)}
        self.history.append(entry)
        return entry

    # Scenes

    def switch_scene(self, name: str = "") -> Dict[str, Any]:
        """Switch to a scene, adding it to the rotation if unknown."""
        if name and name not in self.scenes:
            self.scenes.append(name)
        self.current_scene = name or self.current_scene
        logger.info(f"Switching to scene: {self.current_scene}")
        return {"scene": self.current_scene}

    def next_scene(self) -> Dict[str, Any]:
        index = (self.scenes.index(self.current_scene) + 1) % len(self.scenes)
        return self.switch_scene(self.scenes[index])

    def previous_scene(self) -> Dict[str, Any]:
        index = (self.scenes.index(self.current_scene) - 1) % len(self.scenes)
        return self.switch_scene(self.scenes[index])

    # Audio

    def set_volume(self, level: Any = 100) -> Dict[str, Any]:
        self.volume = max(0.0, min(100.0, _to_number(level, 100.0)))
        logger.info(f"Volume set to {self.volume}")
        return {"volume": self.volume}

    # Variables

    def set_variable(self, name: str, value: Any = "") -> Any:
        self.variables[name] = value
        logger.debug(f"Variable {name} = {value!r}")
        return value

    def get_variable(self, name: str) -> Any:
        return self.variables.get(name)

    def increment(self, name: str, amount: Any = 1) -> float:
        value = _to_number(self.variables.get(name, 0)) + _to_number(amount, 1)
        self.variables[name] = value
        return value

    def decrement(self, name: str, amount: Any = 1) -> float:
        return self.increment(name, -_to_number(amount, 1))

    # Recording and streaming

    def set_recording(self, active: bool) -> Dict[str, Any]:
        self.recording = active
        logger.info(f"Recording {'started' if active else 'stopped'}")
        return {"recording": active}

    def set_streaming(self, active: bool) -> Dict[str, Any]:
        self.streaming = active
        logger.info(f"Stream {'started' if active else 'stopped'}")
        return {"streaming": active}


def random_number(minimum: Any = 1, maximum: Any = 100) -> int:
    """Random integer between ``minimum`` and ``maximum`` inclusive."""
    low, high = int(_to_number(minimum, 1)), int(_to_number(maximum, 100))
    if low > high:
        low, high = high, low
    return random.randint(low, high)


def _logging_handler(state: StudioState, command: str):
    def handler(*args):
        logger.info(f"Executing: {command}({', '.join(str(a) for a in args)})")
        return state.record(command, *args)
    handler.__name__ = f"{command}_handler"
    handler.__qualname__ = handler.__name__
    return handler


def _tracked(state: StudioState, command: str, function):
    def handler(*args):
        state.record(command, *args)
        return function(*args)
    handler.__name__ = f"{command}_handler"
    handler.__qualname__ = handler.__name__
    return handler


def register_default_handlers(registry: CommandRegistry, state: Optional[StudioState] = None) -> StudioState:
    """
    Register a handler for every known command not already in the registry.

    Args:
        registry: Registry to populate
        state: Studio state shared by the handlers; a fresh one when omitted

    Returns:
        StudioState: The state the handlers act on
    """
    state = state or StudioState()

    stateful = {
        "switchScene": state.switch_scene,
        "nextScene": state.next_scene,
        "previousScene": state.previous_scene,
        "setVolume": state.set_volume,
        "set": state.set_variable,
        "get": state.get_variable,
        "increment": state.increment,
        "decrement": state.decrement,
        "startRecording": lambda: state.set_recording(True),
        "stopRecording": lambda: state.set_recording(False),
        "pauseRecording": lambda: state.set_recording(False),
        "startStream": lambda: state.set_streaming(True),
        "stopStream": lambda: state.set_streaming(False),
        "random": random_number,
    }

    registered = 0
    for command in KNOWN_COMMANDS:
        # wait is built into the interpreter
        if command == "wait" or registry.has(command):
            continue
        if command in stateful:
            handler = _tracked(state, command, stateful[command])
        else:
            handler = _logging_handler(state, command)
        registry.register(command, handler)
        registered += 1

    logger.info(f"Registered {registered} default command handlers")
    return state
