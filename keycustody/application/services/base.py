"""Base service class for application services.

Provides a logger bound to the service name and async context management
for resource setup and teardown.
"""

from abc import ABC, abstractmethod

from keycustody.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ServiceBase(ABC):
    """Base class for all application services."""

    def __init__(self):
        self.logger = logger.bind(service=self.__class__.__name__)

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize service resources."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Release service resources."""
        pass

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
