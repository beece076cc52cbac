"""
Invitation notifier interface. Delivery (email, chat, ...) lives outside the service.
"""

from abc import ABC, abstractmethod


class InvitationNotifier(ABC):
    """Abstract base class for delivering admin invitations."""

    @abstractmethod
    async def send_invitation(
        self,
        email: str,
        full_name: str,
        temporary_password: str,
        invited_by: str
    ) -> bool:
        """
        Deliver an invitation carrying the new admin's temporary password.

        Args:
            email: Invitee address
            full_name: Invitee display name
            temporary_password: Generated password the invitee logs in with
            invited_by: Display name of the inviting super admin

        Returns:
            True if the invitation was handed off successfully
        """
        pass
