"""
Stockroom API Dependencies

Dependency injection for DB sessions, auth, and tenant context.
"""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import UserOrganization
from db.session import AsyncSessionLocal, set_tenant

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

DEV_USER_ID = "dev-user"


@dataclass
class TenantContext:
    organization_id: uuid.UUID
    user_id: str
    email: str | None
    role: str


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {"sub": DEV_USER_ID, "email": "dev@stockroom.local"}

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_tenant(
    x_organization_id: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> TenantContext:
    """
    Resolve the active organization for this request.

    Uses the X-Organization-Id header when present, otherwise the user's
    default membership (or their oldest one). The user must be a member.
    """
    query = select(UserOrganization).where(UserOrganization.user_id == user["sub"])
    if x_organization_id:
        try:
            organization_id = uuid.UUID(x_organization_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Identifiant d'organisation invalide",
            )
        query = query.where(UserOrganization.organization_id == organization_id)
    else:
        query = query.order_by(UserOrganization.is_default.desc(), UserOrganization.created_at.asc())

    result = await db.execute(query.limit(1))
    membership = result.scalars().first()
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Aucune organisation active",
        )

    return TenantContext(
        organization_id=membership.organization_id,
        user_id=membership.user_id,
        email=user.get("email"),
        role=membership.role,
    )


async def get_tenant_db(
    db: AsyncSession = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> AsyncSession:
    """
    Get a DB session with tenant context set.
    Sets PostgreSQL RLS variable for row-level security.
    """
    await set_tenant(db, tenant.organization_id)
    return db


def require_role(*roles: str):
    """Dependency factory: 403 unless the member's role is one of `roles`."""

    async def checker(tenant: TenantContext = Depends(get_tenant)) -> TenantContext:
        if tenant.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permissions insuffisantes",
            )
        return tenant

    return checker
