"""Studycore - flashcard study sessions with SM-2 scheduling and XP rewards."""

from .models import (
    Card,
    Deck,
    ReviewState,
    ReviewStatus,
    SelectionMethod,
    SessionIdentity,
    StudySession,
)
from .scheduler import SM2Scheduler, SM2SchedulerConfig
from .selector import CardSelector, SelectionOptions
from .session_engine import EngineConfig, StudySessionEngine
from .db import StudyDatabase
from .parser import YAMLDeckParser

__all__ = [
    "Card",
    "Deck",
    "ReviewState",
    "ReviewStatus",
    "SelectionMethod",
    "SessionIdentity",
    "StudySession",
    "SM2Scheduler",
    "SM2SchedulerConfig",
    "CardSelector",
    "SelectionOptions",
    "EngineConfig",
    "StudySessionEngine",
    "StudyDatabase",
    "YAMLDeckParser",
]
