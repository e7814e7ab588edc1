"""Repository module for database operations."""

from .audit import AlertRepository, AuditRepository
from .base import BaseRepository
from .content import ContentRepository
from .ideas import ChapterRepository, IdeaRepository

__all__ = [
    "BaseRepository",
    "AlertRepository",
    "AuditRepository",
    "ChapterRepository",
    "ContentRepository",
    "IdeaRepository",
]
