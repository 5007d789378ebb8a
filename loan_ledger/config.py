"""Configuration management for loan-ledger."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loan_ledger.exceptions import ConfigurationError

REMOTE_KINDS = ("simulated", "kafka")


@dataclass
class KafkaConfig:
    """Kafka producer configuration for the remote system of record."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic_prefix: str = "ledger"

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }

    def topic(self, collection: str) -> str:
        """Get the topic name for a record collection."""
        return f"{self.topic_prefix}.{collection}"


@dataclass
class StorageConfig:
    """Local storage configuration."""

    data_dir: Path = field(default_factory=lambda: Path("ledger-data"))
    pretty_json: bool = False


@dataclass
class SyncConfig:
    """Sync and reminder behaviour."""

    push_timeout_seconds: float = 30.0
    simulated_delay_seconds: float = 2.0
    max_retries: int = 3
    base_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    reminder_window_days: int = 7
    dedupe_notifications: bool = True

    def backoff(self, attempt: int) -> float:
        """Get the delay before retry number ``attempt`` (1-based)."""
        return min(self.max_backoff_seconds, self.base_backoff_seconds * 2 ** (attempt - 1))


@dataclass
class LedgerConfig:
    """Main configuration for loan-ledger."""

    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    remote: str = "simulated"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.remote not in REMOTE_KINDS:
            raise ConfigurationError(
                f"Unknown remote {self.remote!r}, expected one of {', '.join(REMOTE_KINDS)}"
            )

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        import os

        try:
            kafka = KafkaConfig(
                bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
                acks=os.getenv("KAFKA_ACKS", "all"),
                topic_prefix=os.getenv("KAFKA_TOPIC_PREFIX", "ledger"),
            )

            storage = StorageConfig(
                data_dir=Path(os.getenv("LEDGER_DATA_DIR", "ledger-data")),
                pretty_json=os.getenv("LEDGER_PRETTY_JSON", "false").lower() == "true",
            )

            sync = SyncConfig(
                push_timeout_seconds=float(os.getenv("LEDGER_PUSH_TIMEOUT", "30")),
                simulated_delay_seconds=float(os.getenv("LEDGER_SIMULATED_DELAY", "2")),
                max_retries=int(os.getenv("LEDGER_MAX_RETRIES", "3")),
                base_backoff_seconds=float(os.getenv("LEDGER_BACKOFF_BASE", "1")),
                max_backoff_seconds=float(os.getenv("LEDGER_BACKOFF_MAX", "30")),
                reminder_window_days=int(os.getenv("LEDGER_REMINDER_DAYS", "7")),
                dedupe_notifications=os.getenv("LEDGER_DEDUPE_NOTIFICATIONS", "true").lower() == "true",
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            kafka=kafka,
            storage=storage,
            sync=sync,
            remote=os.getenv("LEDGER_REMOTE", "simulated"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
