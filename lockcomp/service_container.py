from typing import Dict, Type, TypeVar
from lockcomp.services.base_service import IService
from lockcomp.logger import logger

T = TypeVar('T', bound=IService)

class ServiceContainer:
    _instance = None
    _services: Dict[Type[IService], IService] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ServiceContainer, cls).__new__(cls)
        return cls._instance

    def register(self, interface: Type[T], implementation: T) -> None:
        """Register a service implementation for an interface."""
        self._services[interface] = implementation

    def resolve(self, interface: Type[T]) -> T:
        """Resolve a service by its interface."""
        if interface not in self._services:
            raise KeyError(f"Service {interface.__name__} not registered")
        return self._services[interface]

    def initialize_all(self) -> bool:
        """Initialize all registered services, in registration order."""
        ok = True
        for interface, service in self._services.items():
            if not service.initialize():
                logger.error(f"ServiceContainer: {interface.__name__} failed to initialize")
                ok = False
        return ok

    def shutdown_all(self) -> None:
        """Shutdown all registered services, dependents first."""
        for service in reversed(list(self._services.values())):
            service.shutdown()

    def clear(self) -> None:
        self._services.clear()
