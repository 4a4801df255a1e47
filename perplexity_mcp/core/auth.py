"""API key gate shared by every session."""

import hmac
import logging

logger = logging.getLogger(__name__)


class AuthGate:
    """Compares a presented credential against the configured secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("AuthGate requires a non-empty secret")
        self._secret = secret.encode("utf-8")

    def check(self, presented: str | None) -> bool:
        """
        Return True only for an exact match.

        Absent or empty values are denied. No side effects.
        """
        if not presented:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self._secret)


def select_credential(*candidates: str | None) -> str | None:
    """Return the first non-empty credential candidate."""
    for candidate in candidates:
        if candidate:
            return candidate
    return None
