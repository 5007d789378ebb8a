"""Remote systems of record that unsynced records are pushed to."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from confluent_kafka import KafkaException, Producer

from loan_ledger.config import KafkaConfig
from loan_ledger.exceptions import SyncError, SyncTimeoutError
from loan_ledger.models import LoanAgreement, Notification
from loan_ledger.storage.serialization import to_dict

logger = logging.getLogger(__name__)


@dataclass
class SyncBatch:
    """Records snapshotted for one push."""

    loans: list[LoanAgreement] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.loans) + len(self.notifications)


class RemoteEndpoint(Protocol):
    """Anything that can accept a batch of records."""

    def push(self, batch: SyncBatch, timeout: float) -> None:
        """Push a batch, all or nothing.

        Raises
        ------
        SyncError
            If the remote did not accept the batch.
        SyncTimeoutError
            If the push did not complete within ``timeout`` seconds.
        """
        ...


class SimulatedRemote:
    """Fixed-delay round trip with no network call."""

    def __init__(
        self,
        delay_seconds: float = 2.0,
        fail: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize simulated remote.

        Parameters
        ----------
        delay_seconds : float
            Simulated network delay per push.
        fail : bool
            Reject every push (for exercising the failure path).
        sleep : Callable[[float], None]
            Sleep function, replaceable in tests.
        """
        self.delay_seconds = delay_seconds
        self.fail = fail
        self._sleep = sleep
        self.pushed: list[SyncBatch] = []

    def push(self, batch: SyncBatch, timeout: float) -> None:
        if self.delay_seconds > timeout:
            self._sleep(timeout)
            raise SyncTimeoutError(f"Push did not complete within {timeout:.1f}s")
        if self.delay_seconds > 0:
            self._sleep(self.delay_seconds)
        if self.fail:
            raise SyncError("Remote rejected the push")
        self.pushed.append(batch)
        logger.debug(
            "Simulated push: %d loans, %d notifications",
            len(batch.loans),
            len(batch.notifications),
        )


@dataclass
class DeliveryStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0


class KafkaRemote:
    """Publish records as JSON to per-collection Kafka topics.

    Loans go to ``<prefix>.loans`` and notifications to
    ``<prefix>.notifications``, keyed by record id so the latest state of a
    record wins on a compacted topic.
    """

    def __init__(self, config: KafkaConfig | str) -> None:
        """Initialize Kafka remote.

        Parameters
        ----------
        config : KafkaConfig | str
            Producer configuration or bootstrap servers string.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.producer = Producer(config.to_dict())
        self.stats = DeliveryStats()
        self._errors: list[Any] = []

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            self._errors.append(err)
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def send(self, topic: str, key: str, record: Any) -> None:
        """Queue a single record for delivery."""
        value = json.dumps(to_dict(record), ensure_ascii=False).encode("utf-8")
        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8"),
            value=value,
            callback=self._delivery_callback,
        )
        self.stats.sent += 1
        self.producer.poll(0)

    def push(self, batch: SyncBatch, timeout: float) -> None:
        self._errors = []
        loans_topic = self.config.topic("loans")
        notifications_topic = self.config.topic("notifications")

        try:
            for loan in batch.loans:
                self.send(loans_topic, loan.loan_id, loan)
            for notification in batch.notifications:
                self.send(notifications_topic, notification.notification_id, notification)
        except (BufferError, KafkaException) as e:
            raise SyncError(f"Cannot queue records for delivery: {e}") from e

        remaining = self.producer.flush(timeout)
        if remaining > 0:
            raise SyncTimeoutError(f"{remaining} records undelivered after {timeout:.1f}s")
        if self._errors:
            raise SyncError(f"{len(self._errors)} records failed delivery: {self._errors[0]}")

        logger.info(
            "Pushed %d loans, %d notifications to Kafka",
            len(batch.loans),
            len(batch.notifications),
        )

    def close(self) -> None:
        """Flush pending messages."""
        self.producer.flush(30.0)
        logger.info(
            "Kafka remote closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )


def create_remote(kind: str, kafka: KafkaConfig, delay_seconds: float) -> RemoteEndpoint:
    """Build the remote named by ``LedgerConfig.remote``."""
    if kind == "kafka":
        return KafkaRemote(kafka)
    return SimulatedRemote(delay_seconds=delay_seconds)
