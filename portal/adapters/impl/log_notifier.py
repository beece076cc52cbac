"""
Invitation notifier that records invitations in the application log.
"""

import logging
from portal.adapters.notifier import InvitationNotifier


logger = logging.getLogger(__name__)


class LoggingInvitationNotifier(InvitationNotifier):
    """Notifier used when no delivery channel is configured.

    Only invitation metadata is logged. The temporary password is returned to
    the inviting super admin by the API and never written to the log.
    """

    def __init__(self):
        self.sent: int = 0

    async def send_invitation(
        self,
        email: str,
        full_name: str,
        temporary_password: str,
        invited_by: str
    ) -> bool:
        self.sent += 1
        logger.info(
            f"Admin invitation issued for {email}",
            extra={"invitee": full_name, "invited_by": invited_by}
        )
        return True
