"""
NATS Consumer Configuration for Smart Notes

Capture events (note created/saved, editing state, reorganize, cancel) arrive
over NATS JetStream and drive the enrichment queue. All values come from
``NATS_*`` environment variables.
"""

from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class NATSConsumerConfig(BaseSettings):
    """Connection, JetStream consumer and deduplication settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NATS_",
        case_sensitive=False,
        extra="ignore"
    )

    # Connection
    servers: List[str] = Field(default=["nats://localhost:4222"])
    client_name: str = Field(default="smart-notes-service")
    max_reconnect_attempts: int = Field(default=10, ge=-1, description="-1 retries forever")
    reconnect_wait_seconds: float = Field(default=2.0, gt=0)

    username: Optional[str] = None
    password: Optional[SecretStr] = None
    token: Optional[SecretStr] = None

    # JetStream
    stream_name: str = Field(default="NOTES", description="Stream carrying capture events")
    durable_name: str = Field(default="smart-notes-enrichment")
    filter_subject: str = Field(default="notes.>")
    organized_subject: str = Field(
        default="notes.note.organized",
        description="Subject announced after a note has been organized"
    )

    batch_size: int = Field(default=10, ge=1, le=256)
    ack_wait_seconds: int = Field(
        default=60,
        ge=1,
        description="Covers a queue hand-off, not the enrichment itself"
    )
    max_deliver: int = Field(default=3, ge=1)
    fetch_timeout_seconds: float = Field(default=5.0, gt=0)
    error_backoff_seconds: float = Field(default=5.0, ge=0)

    # Deduplication of redelivered events
    enable_idempotency: bool = True
    idempotency_cache_size: int = Field(default=10000, ge=1)

    def get_nats_connection_options(self) -> dict:
        """Keyword arguments for ``nats.connect``."""
        options = {
            "servers": self.servers,
            "name": self.client_name,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "reconnect_time_wait": self.reconnect_wait_seconds,
        }

        if self.username and self.password:
            options["user"] = self.username
            options["password"] = self.password.get_secret_value()

        if self.token:
            options["token"] = self.token.get_secret_value()

        return options
