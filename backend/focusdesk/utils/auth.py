from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from focusdesk.api.deps import IdentityServiceDep
from focusdesk.config import get_settings
from focusdesk.schemas.auth import TokenPayload
from focusdesk.schemas.user import InternalUser

settings = get_settings()

# HTTP Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Forward auth header names (TinyAuth, Authelia, Authentik, etc.)
REMOTE_USER_HEADER = "Remote-User"
REMOTE_EMAIL_HEADER = "Remote-Email"


def create_access_token(external_id: str, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.access_token_days))
    to_encode = {
        "sub": external_id,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm="HS256")


def decode_token(token: str) -> TokenPayload:
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=["HS256"],
            options={"verify_exp": True},
        )
        return TokenPayload(**payload)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    identity: IdentityServiceDep,
) -> InternalUser:
    """
    Get current authenticated user.

    Supports two authentication methods:
    1. Forward auth headers (TinyAuth, Authelia, etc.) - Remote-User header
    2. JWT Bearer token

    Forward auth headers take precedence when AUTH_TRUST_HEADER is enabled.
    A forward-auth identity seen for the first time is mapped on the spot.
    """
    user = None

    if settings.auth_trust_header:
        remote_user = request.headers.get(REMOTE_USER_HEADER)
        remote_email = request.headers.get(REMOTE_EMAIL_HEADER)
        if remote_user:
            user = await identity.resolve(remote_user, remote_email or f"{remote_user}@example.com")

    if not user and credentials:
        token_data = decode_token(credentials.credentials)
        user = await identity.find_by_external_id(token_data.sub)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return user


# Type alias for dependency injection
CurrentUser = Annotated[InternalUser, Depends(get_current_user)]
