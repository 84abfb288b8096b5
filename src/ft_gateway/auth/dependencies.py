"""FastAPI dependencies for authenticated routes.

Usage in any protected router:
    from src.ft_gateway.auth.dependencies import get_current_user

    @router.get("/protected")
    async def protected(user: CurrentUser = Depends(get_current_user)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.ft_common.errors import ForbiddenError, InvalidCredentialsError
from src.ft_gateway.auth.jwt_handler import CurrentUser, verify_token

# Tokens come from the auth service; tokenUrl only feeds the Swagger "Authorize" button
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Extract and validate the JWT Bearer token.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    try:
        return verify_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user


async def require_vendor_or_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not (current_user.is_admin or current_user.is_vendor):
        raise ForbiddenError("Vendor or admin access required")
    return current_user
