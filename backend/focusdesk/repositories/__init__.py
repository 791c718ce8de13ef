"""Storage interfaces and their SQL and in-memory backends."""

from focusdesk.repositories.base import (
    FocusStore,
    LayoutStore,
    PreferenceStore,
    Stores,
    UserMappingStore,
)

__all__ = [
    "FocusStore",
    "LayoutStore",
    "PreferenceStore",
    "Stores",
    "UserMappingStore",
]
