"""Service layer for business logic."""

from focusdesk.services.focus_service import FocusRegistry
from focusdesk.services.identity_service import IdentityMappingService
from focusdesk.services.layout_service import LayoutPersistence, WorkspaceState
from focusdesk.services.preference_service import PreferenceService
from focusdesk.services.workspace_service import WorkspaceService

__all__ = [
    "FocusRegistry",
    "IdentityMappingService",
    "LayoutPersistence",
    "PreferenceService",
    "WorkspaceService",
    "WorkspaceState",
]
