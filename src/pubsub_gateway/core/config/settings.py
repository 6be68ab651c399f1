#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
pub/sub gateway. Broker connection, TLS material, session pool sizing,
subscription supervision, storage and HTTP settings all live here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Author: System Architect
Date: 2025-12-05
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrokerSettings(BaseSettings):
    """
    Broker connection configuration.

    STAGE-0.1: Broker connection configuration

    BROKER_HOST accepts redis://, rediss://, tcp://, tcps://, smf:// and smfs://
    URLs. The secure schemes enable TLS.
    """

    BROKER_HOST: str = Field(default="redis://localhost:6379", description="Broker host URL")
    BROKER_TENANT: str = Field(default="default", description="Virtual tenant (key namespace) on the broker")
    BROKER_USERNAME: str | None = Field(default=None, description="Broker username")
    BROKER_PASSWORD: str | None = Field(default=None, description="Broker password")
    BROKER_CLIENT_NAME: str = Field(default="pubsub-gateway", description="Client name reported to the broker")

    BROKER_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    BROKER_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    BROKER_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Idle connection health check interval in seconds")

    BROKER_RECONNECT_RETRIES: int = Field(default=-1, description="Subscription worker reconnect retries (-1 = unlimited); single commands retry at most 3 times when unlimited")
    BROKER_RECONNECT_BACKOFF: float = Field(default=1.0, description="Base reconnect backoff in seconds")
    BROKER_RECONNECT_BACKOFF_CAP: float = Field(default=30.0, description="Maximum reconnect backoff in seconds")
    BROKER_AUTO_RESUBSCRIBE: bool = Field(default=True, description="Replay topic subscriptions after a reconnect")

    BROKER_QUEUE_MAX_LEN: int = Field(default=10000, description="Approximate maximum length of a queue stream")
    BROKER_FLOW_BLOCK_MS: int = Field(default=1000, description="Queue flow read block time in milliseconds")
    BROKER_FLOW_BATCH_SIZE: int = Field(default=10, description="Queue flow read batch size")

    DEFAULT_TOPIC: str = Field(default="default/topic", description="Topic used when no name is given")
    DEFAULT_QUEUE: str = Field(default="default-queue", description="Queue used when no name is given")

    @field_validator("BROKER_RECONNECT_RETRIES")
    @classmethod
    def validate_reconnect_retries(cls, v):
        """Retries must be -1 (unlimited) or non-negative."""
        if v < -1:
            raise ValueError("BROKER_RECONNECT_RETRIES must be -1 or greater")
        return v

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class TlsSettings(BaseSettings):
    """
    TLS material for secure broker hosts.

    STAGE-0.2: TLS configuration

    Only applied when the broker host uses a secure scheme. A configured client
    certificate switches authentication from password to client certificate.
    """

    TLS_CA_FILE: str | None = Field(default=None, description="Trust store (CA bundle) path")
    TLS_CERT_FILE: str | None = Field(default=None, description="Client certificate path")
    TLS_KEY_FILE: str | None = Field(default=None, description="Client private key path")
    TLS_KEY_PASSWORD: str | None = Field(default=None, description="Client private key password")
    TLS_VALIDATE_CERTIFICATE: bool = Field(default=True, description="Validate the broker certificate")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class PoolSettings(BaseSettings):
    """
    Session pool sizing.

    STAGE-POOL: Session pool configuration

    Both the producer pool and the consumer pool are sized from these values.
    """

    POOL_MAX_TOTAL: int = Field(default=10, description="Maximum sessions per pool")
    POOL_MIN_IDLE: int = Field(default=2, description="Idle sessions kept warm")
    POOL_MAX_WAIT: float = Field(default=5.0, description="Seconds a borrow may block")
    POOL_EVICTION_INTERVAL: float = Field(default=60.0, description="Seconds between idle eviction runs")
    POOL_TEST_ON_BORROW: bool = Field(default=True, description="Validate idle sessions on borrow")
    POOL_TEST_WHILE_IDLE: bool = Field(default=True, description="Validate idle sessions during eviction")

    @model_validator(mode="after")
    def validate_sizing(self):
        """Pool must hold at least one session and min idle cannot exceed max total."""
        if self.POOL_MAX_TOTAL < 1:
            raise ValueError("POOL_MAX_TOTAL must be at least 1")
        if self.POOL_MIN_IDLE < 0 or self.POOL_MIN_IDLE > self.POOL_MAX_TOTAL:
            raise ValueError("POOL_MIN_IDLE must be between 0 and POOL_MAX_TOTAL")
        return self

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SubscriptionSettings(BaseSettings):
    """
    Reconnect supervisor configuration.

    STAGE-SUB: Subscription supervision
    """

    SUBSCRIPTION_SUPERVISOR_ENABLED: bool = Field(default=True, description="Run the reconnect supervisor")
    SUBSCRIPTION_SUPERVISOR_INTERVAL: float = Field(default=5.0, description="Seconds between supervisor checks")
    SUBSCRIPTION_RECONNECT_ATTEMPTS: int = Field(default=5, description="Re-creation attempts before a subscription fails")
    SUBSCRIPTION_RECONNECT_BACKOFF: float = Field(default=1.0, description="Base backoff between attempts in seconds")
    SUBSCRIPTION_RECONNECT_BACKOFF_CAP: float = Field(default=30.0, description="Maximum backoff in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class StorageSettings(BaseSettings):
    """Received-file storage."""

    RECEIVED_FILES_DIRECTORY: str = Field(default="received_files", description="Directory for received attachments")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Pub/Sub Gateway", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    # API settings
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8080, description="API port")
    API_BASE_PATH: str = Field(default="/api/broker", description="Prefix for the messaging routes")

    # CORS settings
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from pubsub_gateway.core.config.settings import get_settings

        settings = get_settings()
        host = settings.broker.BROKER_HOST
        max_total = settings.pool.POOL_MAX_TOTAL
    """

    # Broker settings
    BROKER_HOST: str = Field(default="redis://localhost:6379", description="Broker host URL")
    BROKER_TENANT: str = Field(default="default", description="Virtual tenant (key namespace) on the broker")
    BROKER_USERNAME: str | None = Field(default=None, description="Broker username")
    BROKER_PASSWORD: str | None = Field(default=None, description="Broker password")
    BROKER_CLIENT_NAME: str = Field(default="pubsub-gateway", description="Client name reported to the broker")
    BROKER_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    BROKER_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    BROKER_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Idle connection health check interval in seconds")
    BROKER_RECONNECT_RETRIES: int = Field(default=-1, description="Subscription worker reconnect retries (-1 = unlimited); single commands retry at most 3 times when unlimited")
    BROKER_RECONNECT_BACKOFF: float = Field(default=1.0, description="Base reconnect backoff in seconds")
    BROKER_RECONNECT_BACKOFF_CAP: float = Field(default=30.0, description="Maximum reconnect backoff in seconds")
    BROKER_AUTO_RESUBSCRIBE: bool = Field(default=True, description="Replay topic subscriptions after a reconnect")
    BROKER_QUEUE_MAX_LEN: int = Field(default=10000, description="Approximate maximum length of a queue stream")
    BROKER_FLOW_BLOCK_MS: int = Field(default=1000, description="Queue flow read block time in milliseconds")
    BROKER_FLOW_BATCH_SIZE: int = Field(default=10, description="Queue flow read batch size")
    DEFAULT_TOPIC: str = Field(default="default/topic", description="Topic used when no name is given")
    DEFAULT_QUEUE: str = Field(default="default-queue", description="Queue used when no name is given")

    # TLS settings
    TLS_CA_FILE: str | None = Field(default=None, description="Trust store (CA bundle) path")
    TLS_CERT_FILE: str | None = Field(default=None, description="Client certificate path")
    TLS_KEY_FILE: str | None = Field(default=None, description="Client private key path")
    TLS_KEY_PASSWORD: str | None = Field(default=None, description="Client private key password")
    TLS_VALIDATE_CERTIFICATE: bool = Field(default=True, description="Validate the broker certificate")

    # Pool settings
    POOL_MAX_TOTAL: int = Field(default=10, description="Maximum sessions per pool")
    POOL_MIN_IDLE: int = Field(default=2, description="Idle sessions kept warm")
    POOL_MAX_WAIT: float = Field(default=5.0, description="Seconds a borrow may block")
    POOL_EVICTION_INTERVAL: float = Field(default=60.0, description="Seconds between idle eviction runs")
    POOL_TEST_ON_BORROW: bool = Field(default=True, description="Validate idle sessions on borrow")
    POOL_TEST_WHILE_IDLE: bool = Field(default=True, description="Validate idle sessions during eviction")

    # Subscription supervisor settings
    SUBSCRIPTION_SUPERVISOR_ENABLED: bool = Field(default=True, description="Run the reconnect supervisor")
    SUBSCRIPTION_SUPERVISOR_INTERVAL: float = Field(default=5.0, description="Seconds between supervisor checks")
    SUBSCRIPTION_RECONNECT_ATTEMPTS: int = Field(default=5, description="Re-creation attempts before a subscription fails")
    SUBSCRIPTION_RECONNECT_BACKOFF: float = Field(default=1.0, description="Base backoff between attempts in seconds")
    SUBSCRIPTION_RECONNECT_BACKOFF_CAP: float = Field(default=30.0, description="Maximum backoff in seconds")

    # Storage settings
    RECEIVED_FILES_DIRECTORY: str = Field(default="received_files", description="Directory for received attachments")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Pub/Sub Gateway", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8080, description="API port")
    API_BASE_PATH: str = Field(default="/api/broker", description="Prefix for the messaging routes")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("BROKER_RECONNECT_RETRIES")
    @classmethod
    def validate_reconnect_retries(cls, v):
        """Retries must be -1 (unlimited) or non-negative."""
        if v < -1:
            raise ValueError("BROKER_RECONNECT_RETRIES must be -1 or greater")
        return v

    @model_validator(mode="after")
    def validate_pool_sizing(self):
        """Pool must hold at least one session and min idle cannot exceed max total."""
        if self.POOL_MAX_TOTAL < 1:
            raise ValueError("POOL_MAX_TOTAL must be at least 1")
        if self.POOL_MIN_IDLE < 0 or self.POOL_MIN_IDLE > self.POOL_MAX_TOTAL:
            raise ValueError("POOL_MIN_IDLE must be between 0 and POOL_MAX_TOTAL")
        return self

    # Nested configuration objects
    @property
    def broker(self) -> 'BrokerSettings':
        """Get broker settings."""
        return BrokerSettings(
            BROKER_HOST=self.BROKER_HOST,
            BROKER_TENANT=self.BROKER_TENANT,
            BROKER_USERNAME=self.BROKER_USERNAME,
            BROKER_PASSWORD=self.BROKER_PASSWORD,
            BROKER_CLIENT_NAME=self.BROKER_CLIENT_NAME,
            BROKER_SOCKET_TIMEOUT=self.BROKER_SOCKET_TIMEOUT,
            BROKER_SOCKET_CONNECT_TIMEOUT=self.BROKER_SOCKET_CONNECT_TIMEOUT,
            BROKER_HEALTH_CHECK_INTERVAL=self.BROKER_HEALTH_CHECK_INTERVAL,
            BROKER_RECONNECT_RETRIES=self.BROKER_RECONNECT_RETRIES,
            BROKER_RECONNECT_BACKOFF=self.BROKER_RECONNECT_BACKOFF,
            BROKER_RECONNECT_BACKOFF_CAP=self.BROKER_RECONNECT_BACKOFF_CAP,
            BROKER_AUTO_RESUBSCRIBE=self.BROKER_AUTO_RESUBSCRIBE,
            BROKER_QUEUE_MAX_LEN=self.BROKER_QUEUE_MAX_LEN,
            BROKER_FLOW_BLOCK_MS=self.BROKER_FLOW_BLOCK_MS,
            BROKER_FLOW_BATCH_SIZE=self.BROKER_FLOW_BATCH_SIZE,
            DEFAULT_TOPIC=self.DEFAULT_TOPIC,
            DEFAULT_QUEUE=self.DEFAULT_QUEUE
        )

    @property
    def tls(self) -> 'TlsSettings':
        """Get TLS settings."""
        return TlsSettings(
            TLS_CA_FILE=self.TLS_CA_FILE,
            TLS_CERT_FILE=self.TLS_CERT_FILE,
            TLS_KEY_FILE=self.TLS_KEY_FILE,
            TLS_KEY_PASSWORD=self.TLS_KEY_PASSWORD,
            TLS_VALIDATE_CERTIFICATE=self.TLS_VALIDATE_CERTIFICATE
        )

    @property
    def pool(self) -> 'PoolSettings':
        """Get session pool settings."""
        return PoolSettings(
            POOL_MAX_TOTAL=self.POOL_MAX_TOTAL,
            POOL_MIN_IDLE=self.POOL_MIN_IDLE,
            POOL_MAX_WAIT=self.POOL_MAX_WAIT,
            POOL_EVICTION_INTERVAL=self.POOL_EVICTION_INTERVAL,
            POOL_TEST_ON_BORROW=self.POOL_TEST_ON_BORROW,
            POOL_TEST_WHILE_IDLE=self.POOL_TEST_WHILE_IDLE
        )

    @property
    def subscription(self) -> 'SubscriptionSettings':
        """Get subscription supervisor settings."""
        return SubscriptionSettings(
            SUBSCRIPTION_SUPERVISOR_ENABLED=self.SUBSCRIPTION_SUPERVISOR_ENABLED,
            SUBSCRIPTION_SUPERVISOR_INTERVAL=self.SUBSCRIPTION_SUPERVISOR_INTERVAL,
            SUBSCRIPTION_RECONNECT_ATTEMPTS=self.SUBSCRIPTION_RECONNECT_ATTEMPTS,
            SUBSCRIPTION_RECONNECT_BACKOFF=self.SUBSCRIPTION_RECONNECT_BACKOFF,
            SUBSCRIPTION_RECONNECT_BACKOFF_CAP=self.SUBSCRIPTION_RECONNECT_BACKOFF_CAP
        )

    @property
    def storage(self) -> 'StorageSettings':
        """Get storage settings."""
        return StorageSettings(RECEIVED_FILES_DIRECTORY=self.RECEIVED_FILES_DIRECTORY)

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            DEBUG=self.DEBUG,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            CORS_ORIGINS=self.CORS_ORIGINS
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
