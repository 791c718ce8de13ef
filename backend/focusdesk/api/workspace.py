from typing import Annotated, Any

from fastapi import APIRouter, Body, Response, status

from focusdesk.api.deps import LayoutPersistenceDep, WorkspaceServiceDep
from focusdesk.api.focuses import to_response
from focusdesk.schemas.focus import CurrentFocusResponse
from focusdesk.schemas.layout import LayoutResponse, LayoutSaveResponse
from focusdesk.utils.auth import CurrentUser

router = APIRouter(prefix="/workspace", tags=["Workspace"])


@router.get("/current", response_model=CurrentFocusResponse)
async def get_current_focus(current_user: CurrentUser, workspace: WorkspaceServiceDep) -> CurrentFocusResponse:
    focus = await workspace.current_focus(current_user)
    return CurrentFocusResponse(focus=to_response(focus) if focus else None)


@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT)
async def clear_current_focus(current_user: CurrentUser, workspace: WorkspaceServiceDep) -> Response:
    await workspace.clear_focus(current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/layout", response_model=LayoutResponse)
async def get_local_layout(
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
    layouts: LayoutPersistenceDep,
) -> LayoutResponse:
    result, notice = await workspace.load_local_layout(current_user)
    return layouts.to_response(result, notice)


@router.put("/layout", response_model=LayoutSaveResponse)
async def save_local_layout(
    layout: Annotated[dict[str, Any], Body(description="Workspace snapshot document")],
    current_user: CurrentUser,
    workspace: WorkspaceServiceDep,
    layouts: LayoutPersistenceDep,
) -> LayoutSaveResponse:
    revision = await workspace.save_local_layout(current_user, layout)
    return LayoutSaveResponse(revision=revision, version=layouts.schema_version)


@router.delete("/layout", status_code=status.HTTP_204_NO_CONTENT)
async def reset_local_layout(current_user: CurrentUser, workspace: WorkspaceServiceDep) -> Response:
    await workspace.reset_local_layout(current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
