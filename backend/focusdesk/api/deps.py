"""Request-scoped wiring of stores and services."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from focusdesk.config import get_settings
from focusdesk.database import get_db
from focusdesk.events import EventChannel
from focusdesk.repositories import Stores
from focusdesk.repositories.sql import sql_stores
from focusdesk.services.focus_service import FocusRegistry
from focusdesk.services.identity_service import IdentityMappingService
from focusdesk.services.layout_service import LayoutPersistence
from focusdesk.services.preference_service import PreferenceService
from focusdesk.services.workspace_service import WorkspaceService

settings = get_settings()


async def get_stores(db: Annotated[AsyncSession, Depends(get_db)]) -> Stores:
    return sql_stores(db, settings.storage_timeout_seconds)


def get_event_channel(request: Request) -> EventChannel:
    return request.app.state.events


StoresDep = Annotated[Stores, Depends(get_stores)]
EventsDep = Annotated[EventChannel, Depends(get_event_channel)]


def get_identity_service(stores: StoresDep) -> IdentityMappingService:
    return IdentityMappingService(stores.users, settings)


def get_preference_service(stores: StoresDep) -> PreferenceService:
    return PreferenceService(stores.preferences)


def get_layout_persistence(stores: StoresDep, events: EventsDep) -> LayoutPersistence:
    return LayoutPersistence(stores.layouts, settings, events)


def get_focus_registry(
    stores: StoresDep,
    preferences: Annotated[PreferenceService, Depends(get_preference_service)],
    layouts: Annotated[LayoutPersistence, Depends(get_layout_persistence)],
    events: EventsDep,
) -> FocusRegistry:
    return FocusRegistry(stores.focuses, preferences, layouts, users=stores.users, events=events)


def get_workspace_service(
    registry: Annotated[FocusRegistry, Depends(get_focus_registry)],
    preferences: Annotated[PreferenceService, Depends(get_preference_service)],
    layouts: Annotated[LayoutPersistence, Depends(get_layout_persistence)],
    events: EventsDep,
) -> WorkspaceService:
    return WorkspaceService(registry, preferences, layouts, events)


IdentityServiceDep = Annotated[IdentityMappingService, Depends(get_identity_service)]
PreferenceServiceDep = Annotated[PreferenceService, Depends(get_preference_service)]
LayoutPersistenceDep = Annotated[LayoutPersistence, Depends(get_layout_persistence)]
FocusRegistryDep = Annotated[FocusRegistry, Depends(get_focus_registry)]
WorkspaceServiceDep = Annotated[WorkspaceService, Depends(get_workspace_service)]
