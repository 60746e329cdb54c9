from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Mapping, Optional, Tuple


class GameContext(IntEnum):
    """Partition key: PvP and PvE can lock the same action differently."""
    PvE = 0
    PvP = 1


@dataclass
class LockEntry:
    mean_lock: float
    sample_count: int = 1

    @property
    def confidence(self) -> float:
        """0..1, reaches 1.0 at 10 samples."""
        return min(self.sample_count / 10.0, 1.0)


class LockDatabase:
    """
    Learned animation lock per (action id, context).

    Values are kept as an incremental mean with a capped sample count, so
    memory stays bounded and the mean can still follow a game patch after
    many observations. Entries below MIN_LOCK or below MIN_CONFIDENCE fall
    back to the caller's default.
    """

    DEFAULT_LOCK = 0.5
    MIN_LOCK = 0.5
    MIN_CONFIDENCE = 0.3
    CONFIDENT = 0.5
    MAX_SAMPLES = 1000
    SAME_VALUE_EPSILON = 1e-4

    def __init__(self):
        self.entries: Dict[str, LockEntry] = {}

    @staticmethod
    def make_key(action_id: int, context: GameContext) -> str:
        return f"{int(action_id)}_{int(context)}"

    def __len__(self) -> int:
        return len(self.entries)

    def get_entry(self, action_id: int, context: GameContext) -> Optional[LockEntry]:
        return self.entries.get(self.make_key(action_id, context))

    def get_lock(self, action_id: int, context: GameContext, default_lock: float = DEFAULT_LOCK) -> float:
        entry = self.get_entry(action_id, context)
        if entry is None:
            return default_lock

        # Anything under the game's minimum lock is a corrupt observation
        if entry.mean_lock < self.MIN_LOCK:
            return default_lock

        return entry.mean_lock if entry.confidence >= self.MIN_CONFIDENCE else default_lock

    def record_lock(self, action_id: int, context: GameContext, value: float) -> bool:
        """Returns True when the stored mean was created or moved."""
        key = self.make_key(action_id, context)
        entry = self.entries.get(key)

        if entry is None:
            self.entries[key] = LockEntry(mean_lock=value, sample_count=1)
            return True

        if abs(entry.mean_lock - value) < self.SAME_VALUE_EPSILON:
            if entry.sample_count < self.MAX_SAMPLES:
                entry.sample_count += 1
            return False

        entry.sample_count = min(entry.sample_count + 1, self.MAX_SAMPLES)
        entry.mean_lock += (value - entry.mean_lock) / entry.sample_count
        return True

    def has_confident_entry(self, action_id: int, context: GameContext) -> bool:
        entry = self.get_entry(action_id, context)
        return entry is not None and entry.confidence >= self.CONFIDENT

    def clear(self) -> None:
        self.entries.clear()

    # --- Serialization (opaque key -> (mean, count) mapping) ---

    def to_dict(self) -> Dict[str, Tuple[float, int]]:
        return {key: (entry.mean_lock, entry.sample_count) for key, entry in self.entries.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Tuple[float, int]]) -> "LockDatabase":
        db = cls()
        db.load(data)
        return db

    def load(self, data: Mapping[str, Tuple[float, int]]) -> int:
        """Merge persisted entries in, skipping malformed rows. Returns rows loaded."""
        loaded = 0
        for key, value in data.items():
            try:
                mean_lock, sample_count = float(value[0]), int(value[1])
            except (TypeError, ValueError, IndexError):
                continue
            if sample_count <= 0:
                continue
            self.entries[str(key)] = LockEntry(
                mean_lock=mean_lock,
                sample_count=min(sample_count, self.MAX_SAMPLES),
            )
            loaded += 1
        return loaded
