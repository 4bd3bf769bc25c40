"""Abstract base class for places-search providers."""

from abc import ABC, abstractmethod

from contactdb.services.builder.models import ProviderResult, SearchOptions


class SearchProvider(ABC):
    """Base class for asynchronous places-search providers.

    Implementations: OutscraperSource.
    """

    @abstractmethod
    async def submit_query(self, query: str, options: SearchOptions) -> str:
        """Submit one query and return the provider's request handle."""
        ...

    @abstractmethod
    async def get_status(self, request_id: str) -> ProviderResult:
        """Check a submitted request. `data` is set once it has succeeded."""
        ...
