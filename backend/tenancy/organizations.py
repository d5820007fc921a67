"""
Organizations — tenants, memberships and invitations.

Every user belongs to one or more organizations through user_organizations.
Roles: owner (one per organization, its creator), admin, member.
"""

import re
import secrets
import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError, db_errors
from core.permissions import can_change_role, can_delete_organization, can_invite, can_manage_admins
from db.models import (
    Category,
    Organization,
    OrganizationInvitation,
    Product,
    StockMovement,
    Technician,
    TechnicianInventory,
    TechnicianInventoryHistory,
    UserOrganization,
)

logger = structlog.get_logger()

SLUG_TAKEN_MESSAGE = "Ce slug est déjà utilisé par une autre organisation"
_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def normalize_slug(slug: str) -> str:
    return _SLUG_INVALID.sub("-", slug.strip().lower())


def serialize_membership(membership: UserOrganization) -> dict:
    organization = membership.organization
    return {
        "organization_id": organization.organization_id,
        "name": organization.name,
        "slug": organization.slug,
        "logo_url": organization.logo_url,
        "role": membership.role,
        "is_default": membership.is_default,
    }


# ─── Organizations ──────────────────────────────────────────────────────────


async def create_organization(
    db: AsyncSession,
    user_id: str,
    email: str | None,
    name: str,
    slug: str,
    logo_url: str | None = None,
) -> UserOrganization:
    """
    Create an organization and make the caller its owner, in one transaction.

    The new membership becomes the default when the user had none before.
    """
    slug = normalize_slug(slug)
    if not name.strip() or not slug.strip("-"):
        raise ValidationError("Le nom et le slug de l'organisation sont requis")

    existing = await db.execute(
        select(func.count()).select_from(UserOrganization).where(UserOrganization.user_id == user_id)
    )
    is_first = existing.scalar_one() == 0

    async with db_errors(db, "la création de l'organisation", conflict_message=SLUG_TAKEN_MESSAGE):
        organization = Organization(name=name.strip(), slug=slug, logo_url=logo_url or None)
        db.add(organization)
        await db.flush()
        membership = UserOrganization(
            user_id=user_id,
            organization_id=organization.organization_id,
            email=email,
            role="owner",
            is_default=is_first,
        )
        db.add(membership)
        await db.commit()

    logger.info("organization.created", organization_id=str(organization.organization_id), slug=slug)
    return await get_membership(db, user_id, organization.organization_id)


async def get_membership(db: AsyncSession, user_id: str, organization_id: uuid.UUID) -> UserOrganization:
    result = await db.execute(
        select(UserOrganization)
        .where(UserOrganization.user_id == user_id, UserOrganization.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    membership = result.scalars().first()
    if membership is None:
        raise NotFoundError("Organisation non trouvée")
    return membership


async def list_user_organizations(db: AsyncSession, user_id: str) -> list[UserOrganization]:
    result = await db.execute(
        select(UserOrganization)
        .where(UserOrganization.user_id == user_id)
        .order_by(UserOrganization.created_at.asc())
    )
    return list(result.scalars().all())


async def get_default_organization(db: AsyncSession, user_id: str) -> UserOrganization | None:
    """The membership flagged default, else the oldest one."""
    memberships = await list_user_organizations(db, user_id)
    for membership in memberships:
        if membership.is_default:
            return membership
    return memberships[0] if memberships else None


async def set_default_organization(db: AsyncSession, user_id: str, organization_id: uuid.UUID) -> UserOrganization:
    await get_membership(db, user_id, organization_id)
    async with db_errors(db, "la définition de l'organisation par défaut"):
        await db.execute(
            update(UserOrganization).where(UserOrganization.user_id == user_id).values(is_default=False)
        )
        await db.execute(
            update(UserOrganization)
            .where(UserOrganization.user_id == user_id, UserOrganization.organization_id == organization_id)
            .values(is_default=True)
        )
        await db.commit()
    return await get_membership(db, user_id, organization_id)


async def update_organization(db: AsyncSession, organization_id: uuid.UUID, changes: dict) -> Organization:
    result = await db.execute(select(Organization).where(Organization.organization_id == organization_id))
    organization = result.scalar_one_or_none()
    if organization is None:
        raise NotFoundError("Organisation non trouvée")

    if changes.get("slug"):
        changes["slug"] = normalize_slug(changes["slug"])
    for field, value in changes.items():
        if value is not None or field == "logo_url":
            setattr(organization, field, value)
    organization.updated_at = datetime.utcnow()

    async with db_errors(db, "la mise à jour de l'organisation", conflict_message=SLUG_TAKEN_MESSAGE):
        await db.commit()
    await db.refresh(organization)
    return organization


async def delete_organization(db: AsyncSession, organization_id: uuid.UUID, actor_role: str) -> None:
    """Owner only. Removes every row of the tenant, children first."""
    if not can_delete_organization(actor_role):
        raise PermissionDeniedError("Seul le propriétaire peut supprimer l'organisation")

    async with db_errors(db, "la suppression de l'organisation"):
        for model in (
            StockMovement,
            TechnicianInventoryHistory,
            TechnicianInventory,
            Technician,
            Product,
            Category,
            OrganizationInvitation,
            UserOrganization,
        ):
            await db.execute(delete(model).where(model.organization_id == organization_id))
        await db.execute(delete(Organization).where(Organization.organization_id == organization_id))
        await db.commit()
    logger.info("organization.deleted", organization_id=str(organization_id))


# ─── Members ────────────────────────────────────────────────────────────────


async def list_members(db: AsyncSession, organization_id: uuid.UUID) -> list[UserOrganization]:
    result = await db.execute(
        select(UserOrganization)
        .where(UserOrganization.organization_id == organization_id)
        .order_by(UserOrganization.created_at.asc())
    )
    return list(result.scalars().all())


async def update_member_role(
    db: AsyncSession,
    organization_id: uuid.UUID,
    actor_role: str,
    user_id: str,
    role: str,
) -> UserOrganization:
    if role not in ("admin", "member"):
        raise ValidationError("Rôle invalide")
    membership = await get_membership(db, user_id, organization_id)
    if not can_change_role(actor_role, membership.role, role):
        raise PermissionDeniedError("Permissions insuffisantes pour modifier ce rôle")

    membership.role = role
    async with db_errors(db, "la mise à jour du rôle"):
        await db.commit()
    logger.info("organization.member_role_updated", organization_id=str(organization_id), role=role)
    return await get_membership(db, user_id, organization_id)


async def remove_member(db: AsyncSession, organization_id: uuid.UUID, actor_role: str, user_id: str) -> None:
    membership = await get_membership(db, user_id, organization_id)
    if membership.role == "owner":
        raise PermissionDeniedError("Le propriétaire ne peut pas être retiré de l'organisation")
    if not can_change_role(actor_role, membership.role, "member"):
        raise PermissionDeniedError("Permissions insuffisantes pour retirer ce membre")

    async with db_errors(db, "le retrait du membre"):
        await db.delete(membership)
        await db.commit()
    logger.info("organization.member_removed", organization_id=str(organization_id))


# ─── Invitations ────────────────────────────────────────────────────────────


async def create_invitation(
    db: AsyncSession,
    organization_id: uuid.UUID,
    actor_role: str,
    invited_by: str,
    email: str,
    role: str = "member",
) -> OrganizationInvitation:
    if not can_invite(actor_role):
        raise PermissionDeniedError("Permissions insuffisantes pour inviter")
    if role not in ("admin", "member"):
        raise ValidationError("Rôle invalide")
    if role == "admin" and not can_manage_admins(actor_role):
        raise PermissionDeniedError("Permissions insuffisantes pour inviter un administrateur")

    ttl_days = get_settings().invitation_ttl_days
    invitation = OrganizationInvitation(
        organization_id=organization_id,
        email=email.strip().lower(),
        role=role,
        token=secrets.token_urlsafe(32),
        invited_by=invited_by,
        expires_at=datetime.utcnow() + timedelta(days=ttl_days),
    )
    async with db_errors(
        db, "l'invitation", conflict_message="Une invitation a déjà été envoyée à cet email"
    ):
        db.add(invitation)
        await db.commit()
    await db.refresh(invitation)
    logger.info("organization.invitation_created", organization_id=str(organization_id), role=role)
    return invitation


async def list_pending_invitations(
    db: AsyncSession, organization_id: uuid.UUID, now: datetime | None = None
) -> list[OrganizationInvitation]:
    now = now or datetime.utcnow()
    result = await db.execute(
        select(OrganizationInvitation)
        .where(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.accepted_at.is_(None),
            OrganizationInvitation.expires_at > now,
        )
        .order_by(OrganizationInvitation.created_at.desc())
    )
    return list(result.scalars().all())


async def cancel_invitation(
    db: AsyncSession, organization_id: uuid.UUID, actor_role: str, invitation_id: uuid.UUID
) -> None:
    if not can_invite(actor_role):
        raise PermissionDeniedError("Permissions insuffisantes pour annuler une invitation")
    result = await db.execute(
        delete(OrganizationInvitation).where(
            OrganizationInvitation.organization_id == organization_id,
            OrganizationInvitation.invitation_id == invitation_id,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Invitation non trouvée")
    await db.commit()


async def get_valid_invitation(
    db: AsyncSession, token: str, now: datetime | None = None
) -> tuple[OrganizationInvitation, Organization]:
    """Unaccepted, unexpired invitation with its organization."""
    now = now or datetime.utcnow()
    result = await db.execute(
        select(OrganizationInvitation, Organization)
        .join(Organization, Organization.organization_id == OrganizationInvitation.organization_id)
        .where(
            OrganizationInvitation.token == token,
            OrganizationInvitation.accepted_at.is_(None),
            OrganizationInvitation.expires_at > now,
        )
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Invitation invalide ou expirée")
    return row.OrganizationInvitation, row.Organization


async def accept_invitation(db: AsyncSession, token: str, user_id: str, email: str | None) -> UserOrganization:
    invitation, organization = await get_valid_invitation(db, token)
    if not email or invitation.email.lower() != email.lower():
        raise PermissionDeniedError("Cette invitation est destinée à une autre adresse email")

    already = await db.execute(
        select(func.count())
        .select_from(UserOrganization)
        .where(UserOrganization.user_id == user_id, UserOrganization.organization_id == organization.organization_id)
    )
    if already.scalar_one() > 0:
        raise ConflictError("Vous êtes déjà membre de cette organisation")

    async with db_errors(
        db, "l'acceptation de l'invitation", conflict_message="Vous êtes déjà membre de cette organisation"
    ):
        db.add(
            UserOrganization(
                user_id=user_id,
                organization_id=organization.organization_id,
                email=email,
                role=invitation.role,
                is_default=False,
            )
        )
        invitation.accepted_at = datetime.utcnow()
        await db.commit()

    logger.info("organization.invitation_accepted", organization_id=str(organization.organization_id))
    return await get_membership(db, user_id, organization.organization_id)
