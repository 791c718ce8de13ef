import logging

from fastapi import APIRouter, HTTPException, status

from focusdesk.api.deps import IdentityServiceDep
from focusdesk.config import get_settings
from focusdesk.schemas.user import AuthStatusResponse, UserResponse, UserSyncRequest, UserSyncResponse
from focusdesk.utils.auth import CurrentUser, create_access_token
from focusdesk.utils.oidc import OIDCVerificationError, verify_external_identity

router = APIRouter(prefix="/auth", tags=["Authentication"])
settings = get_settings()
logger = logging.getLogger(__name__)


@router.get("/status", response_model=AuthStatusResponse)
async def auth_status() -> AuthStatusResponse:
    mode = settings.get_auth_mode()
    if mode == "unknown":
        return AuthStatusResponse(
            configured=False,
            mode=mode,
            error=(
                "No authentication method configured. "
                "Set OIDC_ISSUER_URL + OIDC_CLIENT_ID, or AUTH_TRUST_HEADER=true, or enable DEBUG mode."
            ),
        )
    return AuthStatusResponse(configured=True, mode=mode)


@router.post("/sync", response_model=UserSyncResponse)
async def sync_user(sync_data: UserSyncRequest, identity: IdentityServiceDep) -> UserSyncResponse:
    mode = settings.get_auth_mode()
    email = sync_data.email
    allow_email_merge = True
    if mode == "oidc":
        try:
            claims = await verify_external_identity(sync_data.id_token, sync_data.external_id, settings)
        except OIDCVerificationError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(e),
            ) from None
        # The provider vouches for the email, not the request body
        email = claims.get("email")
        if not isinstance(email, str) or not email.strip():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="OIDC id_token carries no email claim",
            )
        allow_email_merge = claims.get("email_verified") in (True, "true")
    elif mode == "unknown":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No authentication method configured",
        )

    user = await identity.resolve(sync_data.external_id, email, allow_email_merge=allow_email_merge)
    logger.info("Synced external id %s to user %s", sync_data.external_id, user.internal_user_id)

    return UserSyncResponse(
        internal_user_id=user.internal_user_id,
        email=user.email,
        role=user.role,
        access_token=create_access_token(sync_data.external_id.strip()),
    )


@router.get("/session", response_model=UserResponse)
async def get_session(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user.model_dump())
