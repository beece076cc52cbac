"""
Admin account management: bootstrap, invitations, updates, status toggles,
deletion, password changes and statistics.
"""

import logging
import secrets
from typing import Any, Dict, List, Optional

from portal.adapters.credentials import CredentialStore
from portal.adapters.notifier import InvitationNotifier
from portal.core.errors import (
    DuplicateAccount, InvalidCredentials, ResourceNotFound, ValidationFailed
)
from portal.models.schemas import (
    AdminProfile, AdminRecord, AdminStats, InvitationResult, Principal, normalize_email
)
from portal.observability.logging import AuditLogger
from portal.services import policy
from portal.services.auth import AuthenticationService

logger = logging.getLogger(__name__)

TEMPORARY_PASSWORD_BYTES = 12


def generate_temporary_password() -> str:
    """Random URL-safe password handed to invited admins."""
    return secrets.token_urlsafe(TEMPORARY_PASSWORD_BYTES)


class AdminManagementService:
    """Super-admin operations on admin accounts."""

    def __init__(
        self,
        credentials: CredentialStore,
        auth_service: AuthenticationService,
        notifier: InvitationNotifier,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.credentials = credentials
        self.auth = auth_service
        self.tokens = auth_service.tokens
        self.notifier = notifier
        self.audit = audit_logger or AuditLogger()

    async def _get_or_404(self, admin_id: str) -> AdminRecord:
        admin = await self.credentials.get_admin(admin_id)
        if not admin:
            raise ResourceNotFound("Admin not found")
        return admin

    async def bootstrap_super_admin(self, full_name: str, email: str, password: str) -> AdminProfile:
        """
        Create the first super admin.

        Raises:
            ValidationFailed: an admin already exists
        """
        if await self.credentials.list_admins():
            raise ValidationFailed("System already has admins")

        admin = await self.credentials.create_admin(AdminRecord(
            full_name=full_name.strip(),
            email=normalize_email(email),
            password_hash=await self.tokens.hash_password(password),
            is_super_admin=True,
        ))
        logger.info(f"Bootstrapped super admin {admin.id}")
        self.audit.log_management_action("system", "bootstrap", admin.id, True)
        return AdminProfile.from_record(admin)

    async def invite_admin(
        self,
        requester: Principal,
        full_name: str,
        email: str,
        is_super_admin: bool = False
    ) -> InvitationResult:
        """
        Create an admin with a temporary password and hand it to the notifier.

        Args:
            requester: The inviting super admin
            full_name: Invitee display name
            email: Invitee address; must be unused by any admin or user
            is_super_admin: Whether the invitee starts as a super admin

        Returns:
            The new admin's profile and the generated temporary password
        """
        email = normalize_email(email)
        if await self.credentials.email_in_use(email):
            raise DuplicateAccount()

        temporary_password = generate_temporary_password()
        admin = await self.credentials.create_admin(AdminRecord(
            full_name=full_name.strip(),
            email=email,
            password_hash=await self.tokens.hash_password(temporary_password),
            is_super_admin=is_super_admin,
            created_by=requester.id,
        ))

        delivered = await self.notifier.send_invitation(
            email, admin.full_name, temporary_password, requester.name
        )
        if not delivered:
            logger.warning(f"Invitation for admin {admin.id} was not delivered")

        self.audit.log_management_action(
            requester.id, "invite", admin.id, True,
            details={"is_super_admin": is_super_admin, "delivered": delivered}
        )
        return InvitationResult(
            admin=AdminProfile.from_record(admin),
            temporary_password=temporary_password,
        )

    async def list_admins(self) -> List[AdminProfile]:
        return [AdminProfile.from_record(a) for a in await self.credentials.list_admins()]

    async def get_admin(self, admin_id: str) -> AdminProfile:
        return AdminProfile.from_record(await self._get_or_404(admin_id))

    async def update_admin(
        self,
        requester: Principal,
        admin_id: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        is_active: Optional[bool] = None,
        is_super_admin: Optional[bool] = None,
        password: Optional[str] = None
    ) -> AdminProfile:
        """
        Update an admin's fields. Deactivation and password changes revoke
        every session of the target.

        Raises:
            ResourceNotFound: unknown admin
            Forbidden: a role-policy invariant would be violated
            DuplicateAccount: the new email belongs to another principal
        """
        target = await self._get_or_404(admin_id)

        deactivating = is_active is False and target.is_active
        if deactivating:
            policy.ensure_can_deactivate(requester, target)
        policy.ensure_can_set_super_admin(requester, target, is_super_admin)

        changes: Dict[str, Any] = {}
        if full_name is not None:
            changes["full_name"] = full_name.strip()
        if email is not None:
            email = normalize_email(email)
            if email != target.email:
                if await self.credentials.email_in_use(email, exclude_admin_id=admin_id):
                    raise DuplicateAccount()
                changes["email"] = email
        if is_active is not None:
            changes["is_active"] = is_active
        if is_super_admin is not None:
            changes["is_super_admin"] = is_super_admin
        if password is not None:
            changes["password_hash"] = await self.tokens.hash_password(password)

        updated = await self.credentials.update_admin(admin_id, **changes)
        if updated is None:
            raise ResourceNotFound("Admin not found")

        if deactivating:
            await self.auth.logout_all(admin_id, reason="deactivated")
        elif password is not None:
            await self.auth.logout_all(admin_id, reason="password_change")

        self.audit.log_management_action(
            requester.id, "update", admin_id, True,
            details={"fields": sorted(k for k in changes if k != "password_hash")
                     + (["password"] if password is not None else [])}
        )
        return AdminProfile.from_record(updated)

    async def toggle_admin_status(self, requester: Principal, admin_id: str) -> AdminProfile:
        """Flip ``is_active``; deactivation revokes all of the target's sessions."""
        target = await self._get_or_404(admin_id)

        if target.is_active:
            policy.ensure_can_deactivate(requester, target)

        updated = await self.credentials.update_admin(admin_id, is_active=not target.is_active)
        if updated is None:
            raise ResourceNotFound("Admin not found")

        if not updated.is_active:
            await self.auth.logout_all(admin_id, reason="deactivated")

        self.audit.log_management_action(
            requester.id, "deactivate" if not updated.is_active else "activate", admin_id, True
        )
        return AdminProfile.from_record(updated)

    async def delete_admin(self, requester: Principal, admin_id: str) -> None:
        """
        Delete an admin after revoking their sessions.

        Raises:
            ResourceNotFound: unknown admin
            Forbidden: self-deletion, a non-super-admin deleting a super admin,
                or the target still owns admins they created
        """
        target = await self._get_or_404(admin_id)
        created = await self.credentials.count_admins_created_by(admin_id)
        policy.ensure_can_delete(requester, target, created)

        await self.auth.logout_all(admin_id, reason="deleted")
        await self.credentials.delete_admin(admin_id)
        self.audit.log_management_action(requester.id, "delete", admin_id, True)

    async def change_password(self, admin_id: str, current_password: str, new_password: str) -> int:
        """
        Change an admin's own password and revoke all their sessions.

        Returns:
            Number of sessions revoked
        """
        admin = await self._get_or_404(admin_id)
        if not await self.tokens.verify_password(current_password, admin.password_hash):
            raise InvalidCredentials("Current password is incorrect")

        await self.credentials.update_admin(
            admin_id, password_hash=await self.tokens.hash_password(new_password)
        )
        revoked = await self.auth.logout_all(admin_id, reason="password_change")
        self.audit.log_management_action(admin_id, "change_password", admin_id, True)
        return revoked

    async def get_admin_stats(self) -> AdminStats:
        admins = await self.credentials.list_admins()
        active = sum(1 for a in admins if a.is_active)
        return AdminStats(
            total_admins=len(admins),
            active_admins=active,
            inactive_admins=len(admins) - active,
            super_admins=sum(1 for a in admins if a.is_super_admin),
            total_users=await self.credentials.count_users(),
        )
