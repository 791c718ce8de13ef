import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Body, Query, Response, status

from focusdesk.api.deps import FocusRegistryDep, LayoutPersistenceDep, PreferenceServiceDep, WorkspaceServiceDep
from focusdesk.schemas.focus import (
    Focus,
    FocusCreate,
    FocusResponse,
    FocusUpdate,
    SelectFocusResponse,
    ShareFocusRequest,
)
from focusdesk.schemas.layout import LayoutSaveResponse
from focusdesk.schemas.preference import FavoriteResponse
from focusdesk.utils.auth import CurrentUser

router = APIRouter(prefix="/focuses", tags=["Focuses"])

LayoutBody = Annotated[dict[str, Any], Body(description="Workspace snapshot document")]


def to_response(focus: Focus, favorites: set[uuid.UUID] | None = None) -> FocusResponse:
    return FocusResponse(
        **focus.model_dump(exclude={"layout_data", "is_active"}),
        is_favorite=focus.id in (favorites or set()),
        has_layout=focus.layout_data is not None,
    )


@router.get("", response_model=list[FocusResponse])
async def list_focuses(
    current_user: CurrentUser,
    registry: FocusRegistryDep,
    preferences: PreferenceServiceDep,
    type: str | None = Query(None, description="Only focuses of this type"),
    mine: bool = Query(False, description="Only focuses created by the current user"),
) -> list[FocusResponse]:
    focuses = await registry.list(
        current_user.role,
        user_id=current_user.internal_user_id,
        type=type,
        created_by=current_user.internal_user_id if mine else None,
    )
    favorites = await preferences.favorite_ids(current_user.internal_user_id)
    return [to_response(focus, favorites) for focus in focuses]


@router.post("", response_model=FocusResponse, status_code=status.HTTP_201_CREATED)
async def create_focus(data: FocusCreate, current_user: CurrentUser, registry: FocusRegistryDep) -> FocusResponse:
    focus = await registry.create(data, current_user.role, current_user.internal_user_id)
    return to_response(focus)


@router.post("/seed", response_model=list[FocusResponse], status_code=status.HTTP_201_CREATED)
async def seed_focuses(current_user: CurrentUser, registry: FocusRegistryDep) -> list[FocusResponse]:
    """Create the standard focus set if it does not exist yet."""
    focuses = await registry.seed_standard_focuses(current_user.role, current_user.internal_user_id)
    return [to_response(focus) for focus in focuses]


@router.get("/{focus_id}", response_model=FocusResponse)
async def get_focus(
    focus_id: uuid.UUID,
    current_user: CurrentUser,
    registry: FocusRegistryDep,
    preferences: PreferenceServiceDep,
) -> FocusResponse:
    focus = await registry.get_visible(focus_id, current_user.role)
    favorites = await preferences.favorite_ids(current_user.internal_user_id)
    return to_response(focus, favorites)


@router.patch("/{focus_id}", response_model=FocusResponse)
async def update_focus(
    focus_id: uuid.UUID,
    data: FocusUpdate,
    current_user: CurrentUser,
    registry: FocusRegistryDep,
) -> FocusResponse:
    focus = await registry.update(focus_id, data, current_user.role)
    return to_response(focus)


@router.delete("/{focus_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_focus(focus_id: uuid.UUID, current_user: CurrentUser, registry: FocusRegistryDep) -> Response:
    await registry.delete(focus_id, current_user.role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{focus_id}/share", response_model=FocusResponse)
async def share_focus(
    focus_id: uuid.UUID,
    data: ShareFocusRequest,
    current_user: CurrentUser,
    registry: FocusRegistryDep,
) -> FocusResponse:
    focus = await registry.share(focus_id, data.shared, current_user.role)
    return to_response(focus)


@router.post("/{focus_id}/select", response_model=SelectFocusResponse)
async def select_focus(
    focus_id: uuid.UUID,
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
    layouts: LayoutPersistenceDep,
) -> SelectFocusResponse:
    selection = await workspace.select_focus(current_user, focus_id)
    favorite = await workspace.is_favorite(current_user, focus_id)
    return SelectFocusResponse(
        focus=to_response(selection.focus, {focus_id} if favorite else None),
        layout=layouts.to_response(selection.layout, selection.notice),
    )


@router.post("/{focus_id}/favorite", response_model=FavoriteResponse)
async def toggle_favorite(
    focus_id: uuid.UUID,
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
) -> FavoriteResponse:
    preference = await workspace.toggle_favorite(current_user, focus_id)
    return FavoriteResponse(focus_id=focus_id, is_favorite=preference.is_favorite)


@router.put("/{focus_id}/layout", response_model=LayoutSaveResponse)
async def save_focus_layout(
    focus_id: uuid.UUID,
    layout: LayoutBody,
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
    layouts: LayoutPersistenceDep,
) -> LayoutSaveResponse:
    """Save the current arrangement as the focus layout (admin only)."""
    revision = await workspace.save_current_layout_to_focus(current_user, focus_id, layout)
    return LayoutSaveResponse(revision=revision, version=layouts.schema_version)


@router.put("/{focus_id}/layout/override", response_model=LayoutSaveResponse)
async def save_custom_layout(
    focus_id: uuid.UUID,
    layout: LayoutBody,
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
    layouts: LayoutPersistenceDep,
) -> LayoutSaveResponse:
    revision = await workspace.save_custom_layout(current_user, focus_id, layout)
    return LayoutSaveResponse(revision=revision, version=layouts.schema_version)


@router.delete("/{focus_id}/layout/override", status_code=status.HTTP_204_NO_CONTENT)
async def clear_custom_layout(
    focus_id: uuid.UUID,
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
) -> Response:
    await workspace.clear_custom_layout(current_user, focus_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
