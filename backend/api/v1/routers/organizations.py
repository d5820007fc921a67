"""
Organizations Router — tenants, members and invitations.

Routes under /current act on the organization resolved from the
X-Organization-Id header (or the user's default organization).
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import TenantContext, get_current_user, get_db, get_tenant, get_tenant_db, require_role
from core.permissions import MANAGER_ROLES
from tenancy import organizations as org_service

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100)
    logo_url: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=100)
    logo_url: str | None = None


class MembershipResponse(BaseModel):
    organization_id: UUID
    name: str
    slug: str
    logo_url: str | None
    role: str
    is_default: bool


class OrganizationResponse(BaseModel):
    organization_id: UUID
    name: str
    slug: str
    logo_url: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    membership_id: UUID
    user_id: str
    email: str | None
    role: str
    is_default: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RoleUpdate(BaseModel):
    role: Literal["admin", "member"]


class InvitationCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Literal["admin", "member"] = "member"


class InvitationResponse(BaseModel):
    invitation_id: UUID
    organization_id: UUID
    email: str
    role: str
    token: str
    invited_by: str | None
    expires_at: datetime
    accepted_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationPreview(BaseModel):
    email: str
    role: str
    expires_at: datetime
    organization_id: UUID
    organization_name: str
    organization_slug: str


# ─── Organizations ──────────────────────────────────────────────────────────


@router.get("/", response_model=list[MembershipResponse])
async def list_my_organizations(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Organizations the current user belongs to, with their role."""
    memberships = await org_service.list_user_organizations(db, user["sub"])
    return [org_service.serialize_membership(m) for m in memberships]


@router.post("/", response_model=MembershipResponse, status_code=201)
async def create_organization(
    organization: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Create an organization; the caller becomes its owner."""
    membership = await org_service.create_organization(
        db, user["sub"], user.get("email"), organization.name, organization.slug, organization.logo_url
    )
    return org_service.serialize_membership(membership)


@router.get("/default", response_model=MembershipResponse)
async def get_default_organization(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    membership = await org_service.get_default_organization(db, user["sub"])
    if membership is None:
        raise HTTPException(status_code=404, detail="Aucune organisation")
    return org_service.serialize_membership(membership)


@router.put("/default/{organization_id}", response_model=MembershipResponse)
async def set_default_organization(
    organization_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    membership = await org_service.set_default_organization(db, user["sub"], organization_id)
    return org_service.serialize_membership(membership)


@router.get("/invitations/{token}", response_model=InvitationPreview)
async def get_invitation(token: str, db: AsyncSession = Depends(get_db)):
    """Public lookup used by the invitation acceptance page."""
    invitation, organization = await org_service.get_valid_invitation(db, token)
    return {
        "email": invitation.email,
        "role": invitation.role,
        "expires_at": invitation.expires_at,
        "organization_id": organization.organization_id,
        "organization_name": organization.name,
        "organization_slug": organization.slug,
    }


@router.post("/invitations/{token}/accept", response_model=MembershipResponse)
async def accept_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    membership = await org_service.accept_invitation(db, token, user["sub"], user.get("email"))
    return org_service.serialize_membership(membership)


@router.patch("/current", response_model=OrganizationResponse)
async def update_current_organization(
    update: OrganizationUpdate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(require_role(*MANAGER_ROLES)),
):
    """Rename or change slug/logo. The slug is normalized to [a-z0-9-]."""
    return await org_service.update_organization(
        db, tenant.organization_id, update.model_dump(exclude_unset=True)
    )


@router.delete("/current", status_code=204)
async def delete_current_organization(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Delete the organization and all of its data. Owner only."""
    await org_service.delete_organization(db, tenant.organization_id, tenant.role)


# ─── Members ────────────────────────────────────────────────────────────────


@router.get("/current/members", response_model=list[MemberResponse])
async def list_members(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await org_service.list_members(db, tenant.organization_id)


@router.patch("/current/members/{user_id}", response_model=MemberResponse)
async def update_member_role(
    user_id: str,
    update: RoleUpdate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await org_service.update_member_role(db, tenant.organization_id, tenant.role, user_id, update.role)


@router.delete("/current/members/{user_id}", status_code=204)
async def remove_member(
    user_id: str,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    await org_service.remove_member(db, tenant.organization_id, tenant.role, user_id)


# ─── Invitations ────────────────────────────────────────────────────────────


@router.get("/current/invitations", response_model=list[InvitationResponse])
async def list_pending_invitations(
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Invitations neither accepted nor expired."""
    return await org_service.list_pending_invitations(db, tenant.organization_id)


@router.post("/current/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    invitation: InvitationCreate,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    return await org_service.create_invitation(
        db, tenant.organization_id, tenant.role, tenant.user_id, invitation.email, invitation.role
    )


@router.delete("/current/invitations/{invitation_id}", status_code=204)
async def cancel_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_tenant_db),
    tenant: TenantContext = Depends(get_tenant),
):
    await org_service.cancel_invitation(db, tenant.organization_id, tenant.role, invitation_id)
