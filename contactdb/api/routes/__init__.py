from .database import router as database_router

__all__ = ["database_router"]
