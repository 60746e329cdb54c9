from abc import ABC, abstractmethod
from typing import Tuple

DEFAULT_ANIMATION_LOCK = 0.5
MAX_ANIMATION_LOCK = 10.0


class IGameHost(ABC):
    """
    Narrow capability view of the game client.
    Only the fields the compensation engine reads or writes are exposed.
    """

    @abstractmethod
    def get_animation_lock(self) -> float:
        pass

    @abstractmethod
    def set_animation_lock(self, value: float) -> None:
        pass

    @abstractmethod
    def get_current_sequence(self) -> int:
        """Sequence token of the most recently dispatched action."""
        pass

    @abstractmethod
    def is_casting(self) -> bool:
        pass

    @abstractmethod
    def get_cast_progress(self) -> Tuple[float, float]:
        """Returns (cast_time, elapsed_cast_time) in seconds."""
        pass

    @abstractmethod
    def is_pvp(self) -> bool:
        pass

    def resolve_action_id(self, action_type: int, action_id: int) -> int:
        """Maps a raw action to its canonical spell id. Identity unless the host knows better."""
        return action_id

    # Optional conditions, used by statistics and deferred saving
    def in_combat(self) -> bool:
        return False

    def between_areas(self) -> bool:
        return False

    def is_gcd_recast_active(self) -> bool:
        return False

    def is_queued(self) -> bool:
        return False


class SimulatedHost(IGameHost):
    """In-memory host used by the replay tool and the tests."""

    def __init__(self, pvp: bool = False):
        self.animation_lock = 0.0
        self.sequence = 0
        self.casting = False
        self.cast_time = 0.0
        self.elapsed_cast_time = 0.0
        self.pvp = pvp
        self.combat = False
        self.loading = False
        self.gcd_recast_active = False
        self.queued = False
        self.writes = []

    def get_animation_lock(self) -> float:
        return self.animation_lock

    def set_animation_lock(self, value: float) -> None:
        self.animation_lock = value
        self.writes.append(value)

    def get_current_sequence(self) -> int:
        return self.sequence

    def is_casting(self) -> bool:
        return self.casting

    def get_cast_progress(self) -> Tuple[float, float]:
        return self.cast_time, self.elapsed_cast_time

    def is_pvp(self) -> bool:
        return self.pvp

    def in_combat(self) -> bool:
        return self.combat

    def between_areas(self) -> bool:
        return self.loading

    def is_gcd_recast_active(self) -> bool:
        return self.gcd_recast_active

    def is_queued(self) -> bool:
        return self.queued

    # --- Game-side behaviour ---

    def use_action(self) -> int:
        """The client starts its own default lock and bumps the sequence (u16)."""
        self.sequence = (self.sequence + 1) & 0xFFFF
        self.animation_lock = DEFAULT_ANIMATION_LOCK
        return self.sequence

    def begin_cast(self, cast_time: float) -> None:
        self.casting = True
        self.cast_time = cast_time
        self.elapsed_cast_time = 0.0

    def interrupt_cast(self) -> None:
        self.casting = False
        self.elapsed_cast_time = 0.0

    def receive_lock(self, new_lock: float) -> float:
        """Applies the server lock and returns what was still remaining before it."""
        old_lock = self.animation_lock
        self.animation_lock = new_lock
        return old_lock

    def advance(self, delta_time: float) -> None:
        self.animation_lock = max(self.animation_lock - delta_time, 0.0)
        if self.casting:
            self.elapsed_cast_time = min(self.elapsed_cast_time + delta_time, self.cast_time)
