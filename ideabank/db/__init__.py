"""Database module for Idea Bank."""

from .connection import get_engine, get_session, get_session_factory
from .models import (
    Alert,
    AuditEvent,
    Base,
    CaptureSource,
    Chapter,
    ChapterAssignment,
    ContentLifecycle,
    DerivedContent,
    IdCounter,
    Idea,
    IdeaLink,
    IdeaStatus,
    IdeaTag,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "Alert",
    "AuditEvent",
    "Base",
    "CaptureSource",
    "Chapter",
    "ChapterAssignment",
    "ContentLifecycle",
    "DerivedContent",
    "IdCounter",
    "Idea",
    "IdeaLink",
    "IdeaStatus",
    "IdeaTag",
]
