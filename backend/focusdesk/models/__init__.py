"""Database models."""

from focusdesk.models.focus import FocusRecord
from focusdesk.models.preference import FocusPreferenceRecord, WorkspaceSettingsRecord
from focusdesk.models.user import IdSequence, UserMappingRecord, UserRecord

__all__ = [
    "IdSequence",
    "UserMappingRecord",
    "UserRecord",
    "FocusRecord",
    "FocusPreferenceRecord",
    "WorkspaceSettingsRecord",
]
