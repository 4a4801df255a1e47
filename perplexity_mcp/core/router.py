"""
Inbound message routing.

Resolves which open session a control message belongs to and forwards
it to the protocol core, whose reply goes out on that session's stream.
"""

import logging
from typing import Any

from ..observability.metrics import record_message_routed, record_request_rejected
from ..protocol.errors import (
    InvalidMessageError,
    NoActiveSessionError,
    SessionClosedError,
    SessionNotFoundError,
)
from .protocol_core import ProtocolCore
from .session import Session, SessionRegistry

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Select a target session for each submitted message.

    With a session id the lookup is keyed. Without one, and only when
    `allow_untargeted` is set, the most recently created open session is
    used; that is correct only while a single client is connected.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        core: ProtocolCore,
        *,
        allow_untargeted: bool = True,
    ):
        self._registry = registry
        self._core = core
        self.allow_untargeted = allow_untargeted

    def resolve(self, session_id: str | None = None) -> Session:
        """
        Find the target session.

        Raises:
            NoActiveSessionError: If no session is open
            SessionNotFoundError: If `session_id` names no open session
            InvalidMessageError: If no id is given and untargeted routing is off
        """
        if len(self._registry) == 0:
            record_request_rejected("no_active_session")
            raise NoActiveSessionError()

        if session_id is not None:
            session = self._registry.get(session_id)
            if session is None:
                record_request_rejected("session_not_found")
                raise SessionNotFoundError(session_id)
            record_message_routed("keyed")
            return session

        if not self.allow_untargeted:
            raise InvalidMessageError("sessionId query parameter is required")

        session = self._registry.latest()
        if session is None:
            raise NoActiveSessionError()
        record_message_routed("latest")
        return session

    def dispatch(self, message: Any, session_id: str | None = None) -> Session:
        """Route one message and hand it to the protocol core."""
        session = self.resolve(session_id)
        logger.info(f"Handling client message via SSE transport (connection {session.session_id})")
        try:
            self._core.submit(session, message)
        except SessionClosedError:
            raise SessionNotFoundError(session.session_id)
        return session
