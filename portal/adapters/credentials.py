"""
Credential store interface: persistence for admin and user accounts.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional
from portal.models.schemas import AdminRecord, UserRecord


class CredentialStore(ABC):
    """Abstract base class for account storage backends.

    Emails are compared case-insensitively; implementations store them
    lower-cased. ``create_*`` raises :class:`~portal.core.errors.DuplicateAccount`
    when the email is already claimed by any admin or user.
    """

    # Admins
    @abstractmethod
    async def get_admin(self, admin_id: str) -> Optional[AdminRecord]:
        """
        Get an admin by ID.

        Args:
            admin_id: The admin identifier

        Returns:
            AdminRecord if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_admin_by_email(self, email: str) -> Optional[AdminRecord]:
        pass

    @abstractmethod
    async def list_admins(self) -> List[AdminRecord]:
        """List all admins, oldest first."""
        pass

    @abstractmethod
    async def create_admin(self, admin: AdminRecord) -> AdminRecord:
        pass

    @abstractmethod
    async def update_admin(self, admin_id: str, **changes: Any) -> Optional[AdminRecord]:
        """
        Apply field changes to an admin and bump ``updated_at``.

        Returns:
            The updated record, or None if the admin does not exist
        """
        pass

    @abstractmethod
    async def delete_admin(self, admin_id: str) -> bool:
        """
        Delete an admin by ID.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def count_admins_created_by(self, admin_id: str) -> int:
        """Number of admins whose ``created_by`` points at ``admin_id``."""
        pass

    # Users
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def create_user(self, user: UserRecord) -> UserRecord:
        pass

    @abstractmethod
    async def update_user(self, user_id: str, **changes: Any) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def count_users(self) -> int:
        pass

    async def email_in_use(self, email: str, exclude_admin_id: Optional[str] = None) -> bool:
        """
        Check whether an email is claimed by any admin or user.

        Args:
            email: Address to check
            exclude_admin_id: Admin whose own address should not count

        Returns:
            True if another principal already uses the address
        """
        admin = await self.get_admin_by_email(email)
        if admin and admin.id != exclude_admin_id:
            return True
        return await self.get_user_by_email(email) is not None
