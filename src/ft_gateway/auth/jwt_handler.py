"""JWT verification: the `verifyToken(token) -> {userId, role}` collaborator.

Tokens are issued by the FarmTrust auth service; this service only verifies
them. All services share one JWT_SECRET (HS256).

create_access_token exists for local tooling and tests.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from config.settings import settings
from src.ft_common.enums import UserRole
from src.ft_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"
_VALID_ROLES = {r.value for r in UserRole}


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_vendor(self) -> bool:
        return self.role == UserRole.VENDOR


def create_access_token(
    user_id: str, role: str = UserRole.BUYER, expires_in: timedelta = timedelta(minutes=30)
) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "role": str(UserRole(role).value),
        "type": "access",
        "iat": now,
        "exp": now + expires_in,
    }
    return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM))


def verify_token(token: str) -> CurrentUser:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature/expiry invalid, wrong token type,
            missing subject or unknown role.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access":
        raise InvalidCredentialsError()

    user_id = payload.get("sub")
    role = payload.get("role", UserRole.BUYER.value)
    if not user_id or role not in _VALID_ROLES:
        raise InvalidCredentialsError()
    return CurrentUser(user_id=str(user_id), role=role)
