"""Offline-first record store with opportunistic cloud sync."""

import copy
import json
import logging
import math
import random
import threading
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable

from loan_ledger.config import LedgerConfig
from loan_ledger.exceptions import (
    FormatError,
    InvalidRecordError,
    LoanNotFoundError,
    StorageError,
    SyncError,
)
from loan_ledger.interest import local_naive, remaining_balance
from loan_ledger.models import (
    LoanAgreement,
    LoanDirection,
    Notification,
    NotificationType,
    PaymentRecord,
)
from loan_ledger.storage import LAST_SYNC_KEY, LOANS_KEY, NOTIFICATIONS_KEY, LocalStorage
from loan_ledger.storage.serialization import loan_from_dict, notification_from_dict, parse_datetime, to_dict
from loan_ledger.sync.events import DataSynced, SyncEventBus, SyncFailed, SyncResult
from loan_ledger.sync.remote import RemoteEndpoint, SyncBatch, create_remote
from loan_ledger.sync.worker import SyncWorker

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _format_amount(amount: Decimal) -> str:
    return f"₹{amount:,}"


@dataclass(frozen=True)
class SyncStatus:
    """Snapshot of sync state for status indicators."""

    needs_sync: bool
    is_online: bool
    last_sync: datetime | None = None


class RecordStore:
    """Sole owner of loan, payment and notification records.

    Reads and writes are synchronous against local storage. Unsynced records
    are pushed to the remote either by :meth:`sync_now` or, once
    :meth:`start` has been called, by a background :class:`SyncWorker` that
    is notified after every mutation while online.

    A mutation that lands while a push is in flight is not part of that push;
    its record keeps ``needs_sync=True`` and goes out with the next cycle.

    Parameters
    ----------
    storage : LocalStorage
        Key/value backend holding the ``loans``, ``notifications`` and
        ``last_sync_time`` entries.
    remote : RemoteEndpoint | None
        Where unsynced records are pushed. Defaults to the remote named by
        ``config.remote``.
    config : LedgerConfig | None
        Sync and reminder settings.
    events : SyncEventBus | None
        Receives ``DataSynced`` and ``SyncFailed`` events.
    clock : Callable[[], datetime] | None
        Source of "now" (default ``datetime.now``).
    online : bool
        Initial connectivity.
    """

    def __init__(
        self,
        storage: LocalStorage,
        remote: RemoteEndpoint | None = None,
        config: LedgerConfig | None = None,
        events: SyncEventBus | None = None,
        clock: Callable[[], datetime] | None = None,
        online: bool = True,
    ) -> None:
        self.storage = storage
        self.config = config or LedgerConfig()
        self.remote = remote if remote is not None else create_remote(
            self.config.remote,
            self.config.kafka,
            self.config.sync.simulated_delay_seconds,
        )
        self.events = events or SyncEventBus()
        self._clock = clock or datetime.now
        self._online = online

        # _lock guards the collections; _sync_lock keeps sync cycles from overlapping
        self._lock = threading.RLock()
        self._sync_lock = threading.Lock()
        self._worker: SyncWorker | None = None

        # Per-record revision, bumped on every local mutation
        self._revision = 0
        self._revisions: dict[tuple[str, str], int] = {}

        self._loans: list[LoanAgreement] = self._load(LOANS_KEY, loan_from_dict)
        self._notifications: list[Notification] = self._load(NOTIFICATIONS_KEY, notification_from_dict)
        self._last_sync = self._load_last_sync()
        self._touch("loan", (loan.loan_id for loan in self._loans))
        self._touch("notification", (n.notification_id for n in self._notifications))

        logger.info(
            "Record store loaded: %d loans, %d notifications",
            len(self._loans),
            len(self._notifications),
        )

    # Lifecycle

    def start(self) -> "RecordStore":
        """Start background sync and push anything left over from last run."""
        if self._worker is None:
            self._worker = SyncWorker(self, self.config.sync)
        self._worker.start()
        self._request_sync("store started")
        return self

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop background sync. Local state is already durable."""
        if self._worker is not None:
            self._worker.stop(timeout)
            self._worker = None

    def __enter__(self) -> "RecordStore":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _now(self) -> datetime:
        return local_naive(self._clock())

    # Connectivity

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Record a connectivity change reported by the host platform."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connectivity regained")
            self._request_sync("connectivity regained")
        elif was_online and not online:
            logger.info("Connectivity lost; changes will be kept locally")

    # Loans

    def upsert_loans(self, loans: Iterable[LoanAgreement]) -> None:
        """Merge loans into the collection by id.

        Every touched loan is marked unsynced, even when it is identical to
        the stored copy.

        Raises
        ------
        InvalidRecordError
            If a loan has a non-positive amount or a negative interest rate.
        StorageError
            If the collection could not be written. Nothing is changed.
        """
        incoming = [copy.deepcopy(loan) for loan in loans]
        for loan in incoming:
            self._validate_loan(loan)

        with self._lock:
            merged = copy.deepcopy(self._loans)
            for loan in incoming:
                loan.needs_sync = True
                loan.created_at = local_naive(loan.created_at)
                loan.updated_at = local_naive(loan.updated_at)
                loan.synced = False
                idx = self._index_of_loan(merged, loan.loan_id)
                if idx is None:
                    merged.append(loan)
                else:
                    merged[idx] = loan
            self._persist(loans=merged)
            self._touch("loan", (loan.loan_id for loan in incoming))

        logger.debug("Upserted %d loans", len(incoming))
        self._request_sync("loans saved")

    def save_loan(self, loan: LoanAgreement) -> None:
        """Insert or replace a single loan."""
        self.upsert_loans([loan])

    def get_loans(self) -> list[LoanAgreement]:
        """Get copies of all loans."""
        with self._lock:
            return copy.deepcopy(self._loans)

    def get_loan_by_id(self, loan_id: str) -> LoanAgreement | None:
        """Get a copy of one loan, or None if it does not exist."""
        with self._lock:
            idx = self._index_of_loan(self._loans, loan_id)
            return copy.deepcopy(self._loans[idx]) if idx is not None else None

    def delete_loan(self, loan_id: str) -> None:
        """Remove a loan permanently. Unknown ids are ignored."""
        with self._lock:
            remaining = [loan for loan in self._loans if loan.loan_id != loan_id]
            if len(remaining) != len(self._loans):
                self._persist(loans=copy.deepcopy(remaining))
                self._revisions.pop(("loan", loan_id), None)
                logger.info("Deleted loan %s", loan_id)
        self._request_sync("loan deleted")

    # Payments

    def record_payment(self, payment: PaymentRecord) -> LoanAgreement:
        """Attach a payment to its loan and recompute the loan's totals.

        A payment whose id is already on the loan replaces the earlier entry.

        Parameters
        ----------
        payment : PaymentRecord
            Payment referencing an existing loan.

        Returns
        -------
        LoanAgreement
            Copy of the updated loan.

        Raises
        ------
        LoanNotFoundError
            If ``payment.loan_id`` does not match a stored loan.
        InvalidRecordError
            If the payment amount is not positive.
        StorageError
            If the loan could not be written. Nothing is changed.
        """
        if payment.amount <= 0:
            raise InvalidRecordError(f"Payment {payment.payment_id} amount must be positive")

        now = self._now()
        with self._lock:
            loans = copy.deepcopy(self._loans)
            idx = self._index_of_loan(loans, payment.loan_id)
            if idx is None:
                raise LoanNotFoundError(f"Loan {payment.loan_id} not found")
            loan = loans[idx]

            entry = copy.deepcopy(payment)
            entry.synced = False
            existing = loan.find_payment(payment.payment_id)
            if existing is None:
                loan.payments.append(entry)
            else:
                loan.payments[existing] = entry

            balance_before = loan.remaining_balance
            loan.total_paid = sum((p.amount for p in loan.payments), Decimal("0"))
            loan.remaining_balance = remaining_balance(loan)
            loan.updated_at = now
            loan.needs_sync = True
            loan.synced = False

            notifications = None
            if balance_before > 0 and loan.remaining_balance == 0:
                completed = self._completion_notice(loan, now)
                notifications = self._merge_notifications(copy.deepcopy(self._notifications), [completed])
                logger.info("Loan %s fully repaid", loan.loan_id)

            self._persist(loans=loans, notifications=notifications)
            self._touch("loan", [loan.loan_id])
            if notifications is not None:
                self._touch("notification", [completed.notification_id])
            result = copy.deepcopy(loan)

        logger.debug(
            "Recorded payment %s on loan %s: total_paid=%s remaining=%s",
            payment.payment_id,
            payment.loan_id,
            result.total_paid,
            result.remaining_balance,
        )
        self._request_sync("payment recorded")
        return result

    # Notifications

    def generate_payment_notifications(self) -> list[Notification]:
        """Create due and overdue reminders for loans with a balance.

        A loan due within ``reminder_window_days`` gets a ``payment_due``
        reminder; a loan past its due date gets a ``payment_overdue`` one.
        With ``dedupe_notifications`` on, a loan gets at most one reminder of
        each type per calendar day.

        Returns
        -------
        list[Notification]
            Copies of the notifications created by this call.
        """
        now = self._now()
        window = self.config.sync.reminder_window_days
        dedupe = self.config.sync.dedupe_notifications
        created: list[Notification] = []

        with self._lock:
            seen = {
                (n.loan_id, n.type, n.date.date())
                for n in self._notifications
            } if dedupe else set()

            for loan in self._loans:
                if loan.remaining_balance <= 0:
                    continue
                days = days_until_due(loan, now)
                if 0 < days <= window:
                    notice = self._due_notice(loan, days, now)
                elif days < 0:
                    notice = self._overdue_notice(loan, days, now)
                else:
                    continue

                key = (notice.loan_id, notice.type, now.date())
                if key in seen:
                    continue
                seen.add(key)
                created.append(notice)

            if created:
                merged = self._merge_notifications(copy.deepcopy(self._notifications), created)
                self._persist(notifications=merged)
                self._touch("notification", (n.notification_id for n in created))

        logger.info("Generated %d payment notifications", len(created))
        self._request_sync("notifications generated")
        return copy.deepcopy(created)

    def save_notification(self, notification: Notification) -> None:
        """Insert or replace a notification by id, marking it unsynced."""
        with self._lock:
            merged = self._merge_notifications(copy.deepcopy(self._notifications), [notification])
            self._persist(notifications=merged)
            self._touch("notification", [notification.notification_id])
        self._request_sync("notification saved")

    def get_notifications(self) -> list[Notification]:
        """Get copies of all notifications."""
        with self._lock:
            return copy.deepcopy(self._notifications)

    def mark_notification_as_read(self, notification_id: str) -> None:
        """Mark a notification read. Unknown ids are ignored."""
        with self._lock:
            notifications = copy.deepcopy(self._notifications)
            for notification in notifications:
                if notification.notification_id == notification_id:
                    notification.read = True
                    notification.synced = False
                    break
            else:
                return
            self._persist(notifications=notifications)
            self._touch("notification", [notification_id])
        self._request_sync("notification read")

    # Sync

    def get_sync_status(self) -> SyncStatus:
        """Report whether anything is waiting to be pushed."""
        with self._lock:
            needs_sync = any(loan.needs_sync for loan in self._loans) or any(
                not n.synced for n in self._notifications
            )
            return SyncStatus(needs_sync=needs_sync, is_online=self._online, last_sync=self._last_sync)

    def sync_now(self) -> SyncResult | None:
        """Run one sync cycle on the calling thread.

        Returns
        -------
        SyncResult | None
            Outcome of the cycle, or None if the store is offline or another
            cycle was already running (the request is dropped).
        """
        return self.run_sync_cycle()

    def run_sync_cycle(self, attempt: int = 1) -> SyncResult | None:
        """Snapshot unsynced records, push them and mark what was pushed."""
        if not self._online:
            return None
        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync already in progress; request dropped")
            return None

        try:
            with self._lock:
                loans = [copy.deepcopy(loan) for loan in self._loans if loan.needs_sync or not loan.synced]
                notifications = [copy.deepcopy(n) for n in self._notifications if not n.synced]
                snapshot = {("loan", loan.loan_id): self._revisions.get(("loan", loan.loan_id)) for loan in loans}
                snapshot.update(
                    {
                        ("notification", n.notification_id): self._revisions.get(("notification", n.notification_id))
                        for n in notifications
                    }
                )

            if not loans and not notifications:
                return SyncResult()

            logger.info("Syncing %d loans, %d notifications", len(loans), len(notifications))
            try:
                self.remote.push(
                    SyncBatch(loans=loans, notifications=notifications),
                    timeout=self.config.sync.push_timeout_seconds,
                )
                synced_at = self._now()
                self._mark_synced(snapshot, synced_at)
            except (SyncError, StorageError) as e:
                return self._sync_failed(e, attempt)
            except Exception as e:
                # Any failure inside the remote leaves the records unsynced
                return self._sync_failed(SyncError(str(e)), attempt, cause=e)

            self.events.publish(
                DataSynced(
                    loans_count=len(loans),
                    notifications_count=len(notifications),
                    synced_at=synced_at,
                )
            )
            logger.info("Sync complete: %d loans, %d notifications", len(loans), len(notifications))
            return SyncResult(
                loans_count=len(loans),
                notifications_count=len(notifications),
                synced_at=synced_at,
            )
        finally:
            self._sync_lock.release()

    def _sync_failed(self, error: Exception, attempt: int, cause: Exception | None = None) -> SyncResult:
        if cause is not None:
            error.__cause__ = cause
        logger.warning("Sync failed (attempt %d), will retry: %s", attempt, error)
        self.events.publish(SyncFailed(error=error, attempt=attempt))
        return SyncResult(error=error)

    def _mark_synced(self, snapshot: dict[tuple[str, str], int | None], synced_at: datetime) -> None:
        with self._lock:
            loans = copy.deepcopy(self._loans)
            for loan in loans:
                key = ("loan", loan.loan_id)
                if key in snapshot and snapshot[key] == self._revisions.get(key):
                    loan.synced = True
                    loan.needs_sync = False
                    for payment in loan.payments:
                        payment.synced = True

            notifications = copy.deepcopy(self._notifications)
            for notification in notifications:
                key = ("notification", notification.notification_id)
                if key in snapshot and snapshot[key] == self._revisions.get(key):
                    notification.synced = True

            self._persist(loans=loans, notifications=notifications, last_sync=synced_at)

    # Import / export

    def export_data(self) -> str:
        """Serialize every loan and notification to a JSON document."""
        with self._lock:
            document = {
                "loans": [to_dict(loan) for loan in self._loans],
                "notifications": [to_dict(n) for n in self._notifications],
                "export_date": self._now().isoformat(),
            }
        return json.dumps(document, indent=2, ensure_ascii=False)

    def import_data(self, text: str) -> None:
        """Replace all local records with those in an exported document.

        Raises
        ------
        FormatError
            If the document is not valid JSON or lacks ``loans``,
            ``notifications`` or ``export_date`` of the right types, or any
            record fails to decode or breaks a record rule (non-positive amount,
            payment filed under another loan, duplicate id, ``total_paid``
            not matching the payments). Local state is left untouched.
        StorageError
            If the records could not be written. Local state is left untouched.
        """
        try:
            document = json.loads(text)
        except (TypeError, ValueError) as e:
            raise FormatError(f"Import is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise FormatError("Import must be a JSON object")
        for key, expected in (("loans", list), ("notifications", list), ("export_date", str)):
            if not isinstance(document.get(key), expected):
                raise FormatError(f"Import field {key!r} is missing or not a {expected.__name__}")
        try:
            parse_datetime(document["export_date"])
        except ValueError as e:
            raise FormatError(f"Import field 'export_date' is not a timestamp: {e}") from e

        loans = [loan_from_dict(item) for item in document["loans"]]
        notifications = [notification_from_dict(item) for item in document["notifications"]]
        self._check_import(loans, notifications)

        with self._lock:
            self._persist(loans=loans, notifications=notifications)
            self._revisions.clear()
            self._touch("loan", (loan.loan_id for loan in loans))
            self._touch("notification", (n.notification_id for n in notifications))

        logger.info("Imported %d loans, %d notifications", len(loans), len(notifications))
        self._request_sync("data imported")

    # Utilities

    def generate_id(self) -> str:
        """Get a new record id: base-36 epoch millis plus a random tail."""
        return _to_base36(_epoch_ms(self._now())) + _to_base36(random.getrandbits(52))

    def _request_sync(self, reason: str) -> None:
        if self._online and self._worker is not None:
            self._worker.notify(reason)

    def _touch(self, kind: str, ids: Iterable[str]) -> None:
        for record_id in ids:
            self._revision += 1
            self._revisions[(kind, record_id)] = self._revision

    def _persist(
        self,
        loans: list[LoanAgreement] | None = None,
        notifications: list[Notification] | None = None,
        last_sync: datetime | None = None,
    ) -> None:
        """Write the given collections, then adopt them as current state."""
        indent = 2 if self.config.storage.pretty_json else None
        items: dict[str, str] = {}
        if loans is not None:
            items[LOANS_KEY] = json.dumps([to_dict(loan) for loan in loans], indent=indent, ensure_ascii=False)
        if notifications is not None:
            items[NOTIFICATIONS_KEY] = json.dumps(
                [to_dict(n) for n in notifications], indent=indent, ensure_ascii=False
            )
        if last_sync is not None:
            items[LAST_SYNC_KEY] = last_sync.isoformat()

        self.storage.set_many(items)

        if loans is not None:
            self._loans = loans
        if notifications is not None:
            self._notifications = notifications
        if last_sync is not None:
            self._last_sync = last_sync

    def _load(self, key: str, decode: Callable[[Any], Any]) -> list:
        text = self.storage.get(key)
        if text is None:
            return []
        try:
            items = json.loads(text)
            if not isinstance(items, list):
                raise FormatError(f"expected a list, got {type(items).__name__}")
            return [decode(item) for item in items]
        except (ValueError, FormatError) as e:
            raise StorageError(f"Stored {key} are corrupt: {e}") from e

    def _load_last_sync(self) -> datetime | None:
        text = self.storage.get(LAST_SYNC_KEY)
        if not text:
            return None
        try:
            return parse_datetime(text.strip())
        except ValueError:
            logger.warning("Ignoring unreadable %s: %r", LAST_SYNC_KEY, text)
            return None

    @staticmethod
    def _index_of_loan(loans: list[LoanAgreement], loan_id: str) -> int | None:
        for idx, loan in enumerate(loans):
            if loan.loan_id == loan_id:
                return idx
        return None

    @staticmethod
    def _validate_loan(loan: LoanAgreement) -> None:
        if loan.amount <= 0:
            raise InvalidRecordError(f"Loan {loan.loan_id} amount must be positive")
        if loan.interest_rate < 0:
            raise InvalidRecordError(f"Loan {loan.loan_id} interest rate must not be negative")

    @classmethod
    def _check_import(cls, loans: list[LoanAgreement], notifications: list[Notification]) -> None:
        seen_loans: set[str] = set()
        for loan in loans:
            if loan.loan_id in seen_loans:
                raise FormatError(f"Import has duplicate loan {loan.loan_id}")
            seen_loans.add(loan.loan_id)
            try:
                cls._validate_loan(loan)
            except InvalidRecordError as e:
                raise FormatError(f"Import rejected: {e}") from e

            seen_payments: set[str] = set()
            for payment in loan.payments:
                if payment.loan_id != loan.loan_id:
                    raise FormatError(
                        f"Payment {payment.payment_id} belongs to {payment.loan_id}, not {loan.loan_id}"
                    )
                if payment.amount <= 0:
                    raise FormatError(f"Payment {payment.payment_id} amount must be positive")
                if payment.payment_id in seen_payments:
                    raise FormatError(f"Loan {loan.loan_id} has duplicate payment {payment.payment_id}")
                seen_payments.add(payment.payment_id)

            paid = sum((p.amount for p in loan.payments), Decimal("0"))
            if loan.total_paid != paid:
                raise FormatError(
                    f"Loan {loan.loan_id} total_paid {loan.total_paid} does not match payments ({paid})"
                )

        seen_notifications: set[str] = set()
        for notification in notifications:
            if notification.notification_id in seen_notifications:
                raise FormatError(f"Import has duplicate notification {notification.notification_id}")
            seen_notifications.add(notification.notification_id)

    @staticmethod
    def _merge_notifications(
        existing: list[Notification], incoming: Iterable[Notification]
    ) -> list[Notification]:
        for notification in incoming:
            entry = copy.deepcopy(notification)
            entry.synced = False
            entry.date = local_naive(entry.date)
            for idx, current in enumerate(existing):
                if current.notification_id == entry.notification_id:
                    existing[idx] = entry
                    break
            else:
                existing.append(entry)
        return existing

    # Notification builders

    @staticmethod
    def _due_notice(loan: LoanAgreement, days: int, now: datetime) -> Notification:
        return Notification(
            notification_id=f"payment_reminder_{loan.loan_id}_{_epoch_ms(now)}",
            type=NotificationType.PAYMENT_DUE,
            loan_id=loan.loan_id,
            title="Payment Due from Borrower" if loan.direction == LoanDirection.LEND else "Payment Due",
            message=f"{_format_amount(loan.remaining_balance)} payment due in {days} days",
            date=now,
        )

    @staticmethod
    def _overdue_notice(loan: LoanAgreement, days: int, now: datetime) -> Notification:
        return Notification(
            notification_id=f"payment_overdue_{loan.loan_id}_{_epoch_ms(now)}",
            type=NotificationType.PAYMENT_OVERDUE,
            loan_id=loan.loan_id,
            title="Payment Overdue",
            message=f"{_format_amount(loan.remaining_balance)} payment is {abs(days)} days overdue",
            date=now,
        )

    @staticmethod
    def _completion_notice(loan: LoanAgreement, now: datetime) -> Notification:
        counterparty = loan.receiver if loan.direction == LoanDirection.LEND else loan.lender
        return Notification(
            notification_id=f"loan_completed_{loan.loan_id}_{_epoch_ms(now)}",
            type=NotificationType.LOAN_COMPLETED,
            loan_id=loan.loan_id,
            title="Loan Completed",
            message=f"Loan with {counterparty.name or 'counterparty'} is fully repaid",
            date=now,
        )


def days_until_due(loan: LoanAgreement, now: datetime) -> int:
    """Get whole days from ``now`` until the start of the repayment date, rounded up."""
    due = datetime.combine(loan.repayment_date, time.min)
    return math.ceil((due - local_naive(now)) / timedelta(days=1))
