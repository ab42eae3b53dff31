"""
Bearer token verification.

Tokens are issued by the hosted identity provider and signed with a shared
secret. The `sub` claim is the id of a user_profiles row; the profile carries
the caller's tenant and role.
"""

import logging
from collections.abc import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.config import settings
from alltown.database import get_db
from alltown.exceptions import AuthenticationError, AuthorizationError, TenantMismatchError
from alltown.models.user_profile import UserProfile

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry and return the claims."""
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except ExpiredSignatureError:
        logger.warning("Token expired")
        raise AuthenticationError("Token has expired")
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthenticationError("Invalid token")

    if not claims.get("sub"):
        logger.warning("Token does not contain 'sub' claim")
        raise AuthenticationError("Invalid token")
    return claims


async def get_optional_profile(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserProfile | None:
    """
    The caller's profile, or None for anonymous (guest) requests.

    A profile registered with a different tenant than the one the request was
    routed to is rejected.
    """
    if credentials is None:
        return None

    claims = decode_access_token(credentials.credentials)
    profile = await db.get(UserProfile, claims["sub"])
    if profile is None:
        logger.warning(f"No profile for token subject {claims['sub']}")
        raise AuthenticationError("Unknown user")

    tenant = getattr(request.state, "tenant", None)
    if tenant is not None and not tenant.is_main_site and profile.tenant_id != tenant.id:
        logger.warning(f"Profile {profile.id} of tenant {profile.tenant_id} used against tenant {tenant.id}")
        raise TenantMismatchError("Your account belongs to a different delivery service")

    request.state.user_id = profile.id
    return profile


async def get_current_profile(profile: UserProfile | None = Depends(get_optional_profile)) -> UserProfile:
    if profile is None:
        raise AuthenticationError()
    return profile


def require_role(required_roles: list[str]) -> Callable[..., UserProfile]:
    """Dependency factory: the caller must hold one of `required_roles`."""

    async def role_validator(profile: UserProfile = Depends(get_current_profile)) -> UserProfile:
        if profile.role not in required_roles:
            raise AuthorizationError(
                f"Role '{profile.role}' does not have access to this resource",
                required_roles=list(required_roles),
            )
        return profile

    return role_validator
