"""Data models for review notes."""

from reviewnotes.models.config import NoteFormat, Settings
from reviewnotes.models.events import RefUpdateEvent
from reviewnotes.models.review import Account, Approval, ChangeStatus, ReviewRecord

__all__ = [
    "Account",
    "Approval",
    "ChangeStatus",
    "ReviewRecord",
    "RefUpdateEvent",
    "NoteFormat",
    "Settings",
]
