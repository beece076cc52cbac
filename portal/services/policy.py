"""
Role policy: gate role sets and the admin-management invariants.

Every check raises :class:`~portal.core.errors.Forbidden` on violation.
"""

from typing import FrozenSet, Optional

from portal.core.errors import Forbidden
from portal.models.schemas import AdminRecord, Principal, Role


ADMIN_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
SUPER_ADMIN_ROLES: FrozenSet[Role] = frozenset({Role.SUPER_ADMIN})
USER_ROLES: FrozenSet[Role] = frozenset({Role.USER})
ANY_ROLE: FrozenSet[Role] = frozenset(Role)


def has_role(principal: Principal, allowed: FrozenSet[Role]) -> bool:
    return principal.role in allowed


def ensure_role(principal: Principal, allowed: FrozenSet[Role]) -> None:
    if not has_role(principal, allowed):
        raise Forbidden()


def _is_super(principal: Principal) -> bool:
    return principal.role == Role.SUPER_ADMIN


def ensure_can_deactivate(requester: Principal, target: AdminRecord) -> None:
    """A requester may not deactivate themselves, and only super admins may deactivate super admins."""
    if requester.id == target.id:
        raise Forbidden("You cannot deactivate your own account")
    if target.is_super_admin and not _is_super(requester):
        raise Forbidden("Only super admins can deactivate a super admin")


def ensure_can_delete(requester: Principal, target: AdminRecord, created_count: int) -> None:
    """
    Check that ``requester`` may delete ``target``.

    Args:
        requester: Acting principal
        target: Admin to delete
        created_count: Number of admins ``target`` has created
    """
    if requester.id == target.id:
        raise Forbidden("You cannot delete your own account")
    if target.is_super_admin and not _is_super(requester):
        raise Forbidden("Only super admins can delete a super admin")
    if created_count > 0:
        raise Forbidden(
            "Cannot delete an admin who has created other admins. "
            "Reassign or remove those admins first"
        )


def ensure_can_set_super_admin(
    requester: Principal, target: AdminRecord, value: Optional[bool]
) -> None:
    """Only super admins change the super-admin flag, and never on their own account."""
    if value is None or value == target.is_super_admin:
        return
    if not _is_super(requester):
        raise Forbidden("Only super admins can change super admin status")
    if requester.id == target.id:
        raise Forbidden("You cannot change your own super admin status")
