"""Admin Gate: authorization for privileged table commands."""

import logging
import secrets

from core.errors import Unauthorized

logger = logging.getLogger(__name__)


class AdminGate:
    """
    Grants admin capability to requester identities that present the shared
    secret.

    Capabilities are tracked per requester, so several connections may hold
    admin rights at once and each check is a plain lookup.
    """

    def __init__(self, password: str) -> None:
        if not password:
            raise ValueError("Admin password must not be empty")
        self._password = password
        self._admins: set[str] = set()

    def authenticate(self, requester_id: str, password: str) -> None:
        """
        Grant admin rights to a requester.

        Raises:
            Unauthorized: If the password is wrong
        """
        if not secrets.compare_digest(password.encode(), self._password.encode()):
            logger.warning("Failed admin authentication from %s", requester_id)
            raise Unauthorized("Wrong password!")
        self._admins.add(requester_id)
        logger.info("Admin authenticated: %s", requester_id)

    def is_admin(self, requester_id: str) -> bool:
        return requester_id in self._admins

    def require_admin(self, requester_id: str) -> None:
        """Raise Unauthorized unless the requester holds admin rights."""
        if not self.is_admin(requester_id):
            raise Unauthorized()
