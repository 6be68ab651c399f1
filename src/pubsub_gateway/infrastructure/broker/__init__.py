"""
Broker Infrastructure

- **codec.py**: MessageSerializer for pub/sub payloads and stream entries
- **redis_transport.py**: RedisTransport, the production BrokerTransport
- **session_factory.py**: BrokerSessionFactory driven by the session pool
"""

from pubsub_gateway.infrastructure.broker.codec import MessageSerializer
from pubsub_gateway.infrastructure.broker.redis_transport import RedisTransport
from pubsub_gateway.infrastructure.broker.session_factory import BrokerSessionFactory

__all__ = ["BrokerSessionFactory", "MessageSerializer", "RedisTransport"]
