"""Request auth context: bearer JWT validation, view-as role and role checks."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from dashboard_service.config import get_jwt_secret

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"

OWNER = "owner"
MANAGER = "manager"
STAFF = "staff"
INVESTOR = "investor"
KNOWN_ROLES = (OWNER, MANAGER, STAFF, INVESTOR)
DEFAULT_ROLE = STAFF


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    actual_role: str
    view_as: Optional[str] = None

    @property
    def effective_role(self) -> str:
        """Role the dashboard renders for. Authorization never uses it."""
        return resolve_effective_role(self.actual_role, self.view_as)

    @property
    def is_viewing_as(self) -> bool:
        return self.effective_role != self.actual_role


def resolve_effective_role(actual_role: str, view_as: Optional[str]) -> str:
    """Only owners may preview the dashboard as another role."""
    if actual_role == OWNER and view_as in KNOWN_ROLES:
        return view_as
    return actual_role


def is_allowed(actual_role: str, allowed_roles: Sequence[str]) -> bool:
    """Owners always pass; investors get read access wherever owners are allowed."""
    if actual_role == OWNER:
        return True
    if actual_role == INVESTOR and OWNER in allowed_roles:
        return True
    return actual_role in allowed_roles


def role_from_claims(claims: Dict[str, Any]) -> str:
    for section in ("app_metadata", "user_metadata"):
        role = (claims.get(section) or {}).get("role")
        if role in KNOWN_ROLES:
            return role
    return DEFAULT_ROLE


def decode_token(token: str, secret: Optional[str] = None) -> Dict[str, Any]:
    secret = secret or get_jwt_secret()
    if not secret:
        logger.error("SUPABASE_JWT_SECRET not configured; rejecting request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE)
    except JWTError as e:
        logger.debug("JWT Error: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_view_as: Optional[str] = Header(default=None),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    claims = decode_token(credentials.credentials)
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return AuthContext(user_id=str(user_id), actual_role=role_from_claims(claims), view_as=x_view_as)


def require_roles(*allowed_roles: str):
    async def role_checker(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not is_allowed(ctx.actual_role, allowed_roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return ctx
    return role_checker
