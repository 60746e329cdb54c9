from typing import List, Dict, Any, Callable, Optional, Type
from dataclasses import dataclass, field
import time
from lockcomp.logger import logger

# --- EVENT BUS ---
class EventBus:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EventBus, cls).__new__(cls)
            cls._instance._listeners = {}
        return cls._instance

    def __init__(self):
        if not hasattr(self, '_listeners'):
            self._listeners: Dict[Type, List[Callable]] = {}

    def subscribe(self, event_type: Type, callback: Callable):
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        self._listeners[event_type].append(callback)
        logger.debug(f"EventBus: Subscribed to {event_type.__name__}")

    def unsubscribe(self, event_type: Type, callback: Callable):
        listeners = self._listeners.get(event_type, [])
        if callback in listeners:
            listeners.remove(callback)

    def clear(self):
        self._listeners.clear()

    def publish(self, event: Any):
        event_type = type(event)
        if event_type in self._listeners:
            # Copy: a listener may unsubscribe while we dispatch
            for callback in list(self._listeners[event_type]):
                try:
                    callback(event)
                except Exception as e:
                    logger.error(f"EventBus Error processing {event_type.__name__}: {e}", exc_info=True)

# Global Accessor
bus = EventBus()

# --- HOST EVENTS (delivered serially from the game's main thread) ---

@dataclass
class ActionUsedEvent:
    action_type: int
    action_id: int
    sequence: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class ActionEffectEvent:
    """Server response for one of our actions."""
    sequence: int
    action_id: int
    is_local_actor: bool
    old_lock: float
    new_lock: float
    # Lock as reported by the effect header; None when the host cannot provide it
    header_lock: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class CastBeginEvent:
    timestamp: float = field(default_factory=time.time)

@dataclass
class CastInterruptEvent:
    timestamp: float = field(default_factory=time.time)

@dataclass
class PacketSentEvent:
    payload: Any = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class FrameTickEvent:
    delta_time: float
    timestamp: float = field(default_factory=time.time)

# --- ENGINE EVENTS ---

@dataclass
class UserWarningEvent:
    """Something the player should see (chat sink, overlay)."""
    message: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class InterferenceDetectedEvent:
    new_lock: float
    timestamp: float = field(default_factory=time.time)
