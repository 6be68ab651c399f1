"""
Unit Tests for the Broker Session Factory
"""

import pytest

from pubsub_gateway.core.exceptions import BrokerConnectionError, SessionInvalidError


@pytest.mark.unit
class TestBrokerSessionFactory:

    def test_create_connects(self, session_factory, broker):
        session = session_factory.create()

        assert session in broker.sessions
        assert session_factory.validate(session)

    def test_create_propagates_connection_error(self, session_factory, broker):
        broker.fail_connect = True
        with pytest.raises(BrokerConnectionError):
            session_factory.create()

    def test_validate_false_when_closed(self, session_factory, broker):
        session = session_factory.create()
        broker.kill(session)

        assert session_factory.validate(session) is False

    def test_passivate_open_session(self, session_factory):
        session_factory.passivate(session_factory.create())

    def test_passivate_closed_session_rejected(self, session_factory, broker):
        session = session_factory.create()
        broker.kill(session)

        with pytest.raises(SessionInvalidError):
            session_factory.passivate(session)

    def test_destroy_is_idempotent(self, session_factory, broker):
        session = session_factory.create()

        session_factory.destroy(session)
        session_factory.destroy(session)

        assert session.closed
        assert broker.events.count(("close_session", session.session_id)) == 1

    def test_config_exposed(self, session_factory, transport_config):
        assert session_factory.config is transport_config
