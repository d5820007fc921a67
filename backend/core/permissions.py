"""
Organization role checks.

  owner   everything, including deleting the organization and managing admins
  admin   invite and manage plain members
  member  read and operate stock
"""

MANAGER_ROLES = ("owner", "admin")


def can_invite(role: str | None) -> bool:
    return role in MANAGER_ROLES


def can_manage_members(role: str | None) -> bool:
    return role in MANAGER_ROLES


def can_delete_organization(role: str | None) -> bool:
    return role == "owner"


def can_manage_admins(role: str | None) -> bool:
    return role == "owner"


def can_change_role(actor_role: str | None, current_role: str, new_role: str) -> bool:
    """Admins may only move members around; anything touching admin or owner needs the owner."""
    if not can_manage_members(actor_role):
        return False
    if current_role == "owner" or new_role == "owner":
        return False
    if "admin" in (current_role, new_role):
        return can_manage_admins(actor_role)
    return True
