"""Convenience exports for ORM models."""
from .story import Story
from .user import User

__all__ = [
    "Story",
    "User",
]
