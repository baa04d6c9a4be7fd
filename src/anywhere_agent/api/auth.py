"""
Bearer token authentication for the control API.

Tokens are HS256 JWTs signed with ``api.jwt_secret``.
"""

from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

JWT_ALGORITHM = "HS256"
TOKEN_ISSUER = "anywhere-agent"
DEFAULT_TOKEN_LIFETIME = timedelta(hours=24)

# Security scheme
security = HTTPBearer(auto_error=False)


class TokenClaims(BaseModel):
    """JWT token payload data."""

    user_id: str
    sub: str
    iss: str
    iat: int
    nbf: int
    exp: int


def create_access_token(user_id: str, secret: str, expires_delta: timedelta = DEFAULT_TOKEN_LIFETIME) -> str:
    """
    Create a signed access token.

    Args:
        user_id: Identifier of the caller the token is issued to
        secret: Signing secret (``api.jwt_secret``)
        expires_delta: Token lifetime

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)
    claims = {
        "user_id": user_id,
        "sub": user_id,
        "iss": TOKEN_ISSUER,
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret: str) -> TokenClaims | None:
    """
    Decode and validate an access token.

    Args:
        token: JWT token string
        secret: Signing secret

    Returns:
        TokenClaims if valid, None if invalid/expired
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], issuer=TOKEN_ISSUER)
        return TokenClaims(**payload)
    except (JWTError, ValidationError):
        return None


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenClaims:
    """
    Require a valid bearer token.

    Raises 401 if the header is missing, malformed, or the token is invalid.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = decode_access_token(credentials.credentials, request.app.state.jwt_secret)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims
