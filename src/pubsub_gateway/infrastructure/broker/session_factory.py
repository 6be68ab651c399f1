"""
Broker Session Factory

Lifecycle hooks the session pool drives: create, validate, passivate and
destroy. Creation performs no retry of its own; reconnect behaviour lives in
the transport and in the subscription supervisor.

STAGE-SF: Session Factory
-------------------------
SF.1: Session creation
SF.2: Session destruction

Author: System Architect
Date: 2025-12-09
"""

from typing import Any

from pubsub_gateway.core.config.transport import TransportConfig
from pubsub_gateway.core.exceptions.broker import SessionInvalidError
from pubsub_gateway.core.interfaces.transport import BrokerTransport
from pubsub_gateway.core.logging.logger import get_logger

logger = get_logger(__name__)


class BrokerSessionFactory:
    """Creates connected broker sessions from a fixed transport configuration."""

    def __init__(self, transport: BrokerTransport, config: TransportConfig):
        self._transport = transport
        self._config = config

    @property
    def config(self) -> TransportConfig:
        return self._config

    def create(self) -> Any:
        """
        Open and authenticate a new session.

        Raises:
            BrokerConnectionError: If the broker is unreachable or rejects the client
        """
        session = self._transport.connect(self._config)
        logger.info("Broker session created", stage="SF.1", tenant=self._config.tenant)
        return session

    def validate(self, session: Any) -> bool:
        return not self._transport.is_closed(session)

    def passivate(self, session: Any) -> None:
        """
        Prepare a session to re-enter the idle set.

        Raises:
            SessionInvalidError: If the session has already been closed
        """
        if self._transport.is_closed(session):
            raise SessionInvalidError("Cannot passivate a closed session", details={"session": repr(session)})

    def destroy(self, session: Any) -> None:
        """Close the session if it is still open. Idempotent."""
        if not self._transport.is_closed(session):
            self._transport.close(session)
            logger.info("Broker session destroyed", stage="SF.2", tenant=self._config.tenant)
