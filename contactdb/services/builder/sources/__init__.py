from .base import SearchProvider
from .outscraper import OutscraperSource

__all__ = ["SearchProvider", "OutscraperSource"]
