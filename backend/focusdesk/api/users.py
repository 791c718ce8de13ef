from fastapi import APIRouter

from focusdesk.api.deps import IdentityServiceDep
from focusdesk.schemas.user import RoleUpdateRequest, UserListItem, UserResponse
from focusdesk.utils.auth import CurrentUser

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user.model_dump())


@router.get("", response_model=list[UserListItem])
async def list_users(current_user: CurrentUser, identity: IdentityServiceDep) -> list[UserListItem]:
    """User mapping table; admin only."""
    return await identity.list_users(current_user.role)


@router.patch("/{internal_user_id}/role", response_model=UserResponse)
async def update_role(
    internal_user_id: int,
    data: RoleUpdateRequest,
    current_user: CurrentUser,
    identity: IdentityServiceDep,
) -> UserResponse:
    user = await identity.update_role(internal_user_id, data.role, current_user.role)
    return UserResponse.model_validate(user.model_dump())
