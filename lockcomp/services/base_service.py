from abc import ABC, abstractmethod
from typing import Any, Callable, List

from lockcomp.config import ConfigSnapshot
from lockcomp.core.lock_database import LockDatabase


class IService(ABC):
    """Base interface for all services."""
    @abstractmethod
    def initialize(self) -> bool:
        """Initialize the service. Returns True if successful."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Cleanup resources."""
        pass

class IConfigService(IService):
    """Interface for configuration management."""
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def update(self, **values: Any) -> None:
        """Sets several keys with a single save."""
        pass

    @abstractmethod
    def save(self) -> bool:
        pass

    @abstractmethod
    def snapshot(self) -> ConfigSnapshot:
        """Immutable view of the current tunables."""
        pass

    @abstractmethod
    def add_observer(self, callback: Callable[[], None]) -> None:
        """Register a callback to be notified of config changes."""
        pass

class ILockStore(IService):
    """Interface for lock database persistence."""
    @abstractmethod
    def load_into(self, db: LockDatabase) -> int:
        """Loads persisted entries into `db`. Returns the number of entries loaded."""
        pass

    @abstractmethod
    def save_from(self, db: LockDatabase) -> bool:
        """Persists every entry of `db`."""
        pass

class ICompensationService(IService):
    """Interface for the animation lock compensation plugin surface."""
    @abstractmethod
    def handle_command(self, argument: str) -> str:
        """Runs a chat command and returns the text to echo back."""
        pass

    @abstractmethod
    def get_diagnostics_lines(self) -> List[str]:
        pass

    @abstractmethod
    def set_session_overrides(self, **overrides: Any) -> None:
        """Forces config snapshot fields for this session without saving them."""
        pass
