from .base import Base, get_db

__all__ = ["Base", "get_db"]
