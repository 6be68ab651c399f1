"""
Transport Configuration

Immutable connection parameters handed to the session factory. Built once
from settings at startup.

Host URLs are normalised so that the legacy broker schemes keep working:
tcp:// and smf:// map to redis://, tcps:// and smfs:// map to rediss://.
A secure host applies the TLS material; when a client certificate is
configured it replaces password authentication.

Author: System Architect
Date: 2025-12-06
"""

from dataclasses import dataclass, field

from pubsub_gateway.core.config.settings import Settings
from pubsub_gateway.core.exceptions.base import ConfigurationError

_SCHEME_ALIASES = {
    "tcp": "redis",
    "smf": "redis",
    "redis": "redis",
    "tcps": "rediss",
    "smfs": "rediss",
    "rediss": "rediss",
}


@dataclass(frozen=True)
class TlsConfig:
    """TLS material for a secure broker connection."""

    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    key_password: str | None = field(default=None, repr=False)
    validate_certificate: bool = True

    @property
    def client_certificate_auth(self) -> bool:
        return self.cert_file is not None


#: Retries for one broker command when the reconnect policy is unlimited.
COMMAND_RETRY_LIMIT = 3


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Transport-level reconnect policy. retries=-1 means unlimited.

    Unlimited applies to the long-lived subscription workers only. A single
    command (publish, ack, group creation) is retried at most
    ``command_retries`` times so a dead broker surfaces as an error.
    """

    retries: int = -1
    backoff: float = 1.0
    backoff_cap: float = 30.0

    @property
    def unlimited(self) -> bool:
        return self.retries < 0

    @property
    def command_retries(self) -> int:
        return COMMAND_RETRY_LIMIT if self.unlimited else self.retries


@dataclass(frozen=True)
class TransportConfig:
    """Everything needed to open one broker session."""

    url: str
    tenant: str = "default"
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    client_name: str = "pubsub-gateway"
    tls: TlsConfig | None = None
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    auto_resubscribe: bool = True
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    health_check_interval: int = 30
    queue_max_len: int = 10000
    flow_block_ms: int = 1000
    flow_batch_size: int = 10

    @property
    def secure(self) -> bool:
        return self.url.startswith("rediss://")


def normalize_host(host: str) -> str:
    """
    Normalise a broker host to a redis:// or rediss:// URL.

    A bare ``host[:port]`` is treated as plain redis://.

    Raises:
        ConfigurationError: If the scheme is not recognised
    """
    host = host.strip()
    if not host:
        raise ConfigurationError("Broker host is empty")

    if "://" not in host:
        return f"redis://{host}"

    scheme, rest = host.split("://", 1)
    normalized = _SCHEME_ALIASES.get(scheme.lower())
    if normalized is None:
        raise ConfigurationError(
            f"Unsupported broker host scheme: {scheme}",
            details={"host": host, "supported": sorted(_SCHEME_ALIASES)}
        )
    return f"{normalized}://{rest}"


def build_transport_config(settings: Settings) -> TransportConfig:
    """
    Build the transport configuration from application settings.

    STAGE-0.4: Transport configuration

    Args:
        settings: Application settings

    Returns:
        TransportConfig: Frozen connection parameters
    """
    url = normalize_host(settings.BROKER_HOST)
    password = settings.BROKER_PASSWORD
    tls = None

    if url.startswith("rediss://"):
        tls = TlsConfig(
            ca_file=settings.TLS_CA_FILE,
            cert_file=settings.TLS_CERT_FILE,
            key_file=settings.TLS_KEY_FILE,
            key_password=settings.TLS_KEY_PASSWORD,
            validate_certificate=settings.TLS_VALIDATE_CERTIFICATE,
        )
        if tls.client_certificate_auth:
            if not settings.TLS_KEY_FILE:
                raise ConfigurationError(
                    "TLS_CERT_FILE is set but TLS_KEY_FILE is missing"
                ).with_suggestion("Set TLS_KEY_FILE to the client private key")
            password = None

    return TransportConfig(
        url=url,
        tenant=settings.BROKER_TENANT,
        username=settings.BROKER_USERNAME,
        password=password,
        client_name=settings.BROKER_CLIENT_NAME,
        tls=tls,
        reconnect=ReconnectPolicy(
            retries=settings.BROKER_RECONNECT_RETRIES,
            backoff=settings.BROKER_RECONNECT_BACKOFF,
            backoff_cap=settings.BROKER_RECONNECT_BACKOFF_CAP,
        ),
        auto_resubscribe=settings.BROKER_AUTO_RESUBSCRIBE,
        socket_timeout=settings.BROKER_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.BROKER_SOCKET_CONNECT_TIMEOUT,
        health_check_interval=settings.BROKER_HEALTH_CHECK_INTERVAL,
        queue_max_len=settings.BROKER_QUEUE_MAX_LEN,
        flow_block_ms=settings.BROKER_FLOW_BLOCK_MS,
        flow_batch_size=settings.BROKER_FLOW_BATCH_SIZE,
    )
