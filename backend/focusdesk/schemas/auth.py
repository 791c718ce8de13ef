from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str  # Subject (external_id from the identity provider)
    exp: int  # Expiration timestamp
    iat: int | None = None
