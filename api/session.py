"""Signed connection tokens mapping a WebSocket connection to a player id."""

import logging
from uuid import uuid4

from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from config import config

logger = logging.getLogger(__name__)


class SessionSigner:
    """Sign and verify player ids using itsdangerous."""

    def __init__(self, secret_key: str | None = None) -> None:
        """Initialize the signer with a secret key."""
        self._secret_key = secret_key or config.security.secret_key
        self._serializer = URLSafeTimedSerializer(self._secret_key, salt="table-session")

    def sign(self, player_id: str) -> str:
        """Create a signed token from a player id."""
        return self._serializer.dumps(player_id)

    def unsign(self, token: str, max_age: int | None = None) -> str | None:
        """
        Verify and extract the player id from a signed token.

        Args:
            token: The signed token to verify
            max_age: Maximum age in seconds (defaults to session_ttl)

        Returns:
            The player id if valid, None otherwise
        """
        max_age = max_age or config.session_ttl
        try:
            return self._serializer.loads(token, max_age=max_age)
        except (BadSignature, SignatureExpired) as exc:
            logger.info("Rejected session token: %s", exc.__class__.__name__)
            return None


# Global signer instance
_session_signer: SessionSigner | None = None


def get_session_signer() -> SessionSigner:
    """Get or create the session signer."""
    global _session_signer
    if _session_signer is None:
        _session_signer = SessionSigner()
    return _session_signer


def create_session() -> tuple[str, str]:
    """
    Issue a new player identity.

    Returns:
        The signed token and the raw player id it carries
    """
    player_id = uuid4().hex
    return get_session_signer().sign(player_id), player_id


def extract_player_id(token: str) -> str | None:
    """
    Extract the raw player id from a signed token.

    Args:
        token: The signed session token

    Returns:
        The player id if valid, None otherwise
    """
    return get_session_signer().unsign(token)
