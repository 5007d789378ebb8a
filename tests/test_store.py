"""Tests for RecordStore local operations."""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from loan_ledger.config import LedgerConfig, SyncConfig
from loan_ledger.exceptions import FormatError, InvalidRecordError, LoanNotFoundError, StorageError
from loan_ledger.models import LoanDirection, NotificationType
from loan_ledger.storage import LOANS_KEY, NOTIFICATIONS_KEY, MemoryStorage
from loan_ledger.storage.serialization import to_dict
from loan_ledger.store import RecordStore


class FailingStorage(MemoryStorage):
    """Storage whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def set_many(self, items) -> None:
        if self.fail:
            raise StorageError("disk full")
        super().set_many(items)


class TestUpsertLoans:
    """Tests for upsert_loans / save_loan."""

    def test_new_loan_appended_and_marked_unsynced(self, store: RecordStore, make_loan) -> None:
        loan = make_loan()
        loan.synced = True
        loan.needs_sync = False

        store.upsert_loans([loan])

        loans = store.get_loans()
        assert len(loans) == 1
        assert loans[0].loan_id == "loan-001"
        assert loans[0].needs_sync is True
        assert loans[0].synced is False

    def test_existing_loan_replaced(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan())
        updated = make_loan(amount="20000")

        store.save_loan(updated)

        loans = store.get_loans()
        assert len(loans) == 1
        assert loans[0].amount == Decimal("20000")

    def test_order_kept_for_new_loans(self, store: RecordStore, make_loan) -> None:
        store.upsert_loans([make_loan("a"), make_loan("b")])
        store.upsert_loans([make_loan("c"), make_loan("a")])

        assert [loan.loan_id for loan in store.get_loans()] == ["a", "b", "c"]

    def test_identical_upsert_marks_unsynced_again(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan())
        store.sync_now()
        assert store.get_loan_by_id("loan-001").synced is True

        store.save_loan(store.get_loan_by_id("loan-001"))

        loan = store.get_loan_by_id("loan-001")
        assert loan.synced is False
        assert loan.needs_sync is True

    def test_persisted_to_storage(self, storage: MemoryStorage, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan())

        reopened = RecordStore(storage, online=False)
        assert reopened.get_loan_by_id("loan-001") == store.get_loan_by_id("loan-001")
        assert json.loads(storage.get(LOANS_KEY))[0]["loan_id"] == "loan-001"

    def test_invalid_amount_rejected(self, store: RecordStore, make_loan) -> None:
        with pytest.raises(InvalidRecordError):
            store.upsert_loans([make_loan("ok"), make_loan("bad", amount="0")])

        assert store.get_loans() == []

    def test_negative_rate_rejected(self, store: RecordStore, make_loan) -> None:
        with pytest.raises(InvalidRecordError):
            store.save_loan(make_loan(interest_rate="-1"))

    def test_storage_failure_changes_nothing(self, make_loan) -> None:
        storage = FailingStorage()
        store = RecordStore(storage, online=False)
        store.save_loan(make_loan("kept"))
        storage.fail = True

        with pytest.raises(StorageError):
            store.save_loan(make_loan("lost"))

        assert [loan.loan_id for loan in store.get_loans()] == ["kept"]

    def test_caller_copy_is_detached(self, store: RecordStore, make_loan) -> None:
        loan = make_loan()
        store.save_loan(loan)
        loan.amount = Decimal("1")
        store.get_loans()[0].amount = Decimal("2")

        assert store.get_loan_by_id("loan-001").amount == Decimal("10000")


class TestReadAndDelete:
    """Tests for get_loans, get_loan_by_id and delete_loan."""

    def test_empty_store(self, store: RecordStore) -> None:
        assert store.get_loans() == []
        assert store.get_notifications() == []

    def test_get_loan_by_id_missing(self, store: RecordStore) -> None:
        assert store.get_loan_by_id("nope") is None

    def test_delete_removes_permanently(self, storage: MemoryStorage, store: RecordStore, make_loan) -> None:
        store.upsert_loans([make_loan("a"), make_loan("b")])

        store.delete_loan("a")

        assert store.get_loan_by_id("a") is None
        assert RecordStore(storage, online=False).get_loan_by_id("a") is None
        assert [loan.loan_id for loan in store.get_loans()] == ["b"]

    def test_delete_unknown_is_noop(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan())

        store.delete_loan("nope")

        assert len(store.get_loans()) == 1

    def test_delete_is_terminal_across_sync(self, store: RecordStore, remote, make_loan) -> None:
        store.upsert_loans([make_loan("a"), make_loan("b")])
        store.delete_loan("a")

        store.sync_now()
        store.sync_now()

        assert store.get_loan_by_id("a") is None
        assert [loan.loan_id for loan in remote.pushed[0].loans] == ["b"]


class TestRecordPayment:
    """Tests for record_payment."""

    def test_example_scenario(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan())

        loan = store.record_payment(make_payment(amount="3000"))

        assert loan.total_paid == Decimal("3000")
        assert loan.remaining_balance == Decimal("8200.00")
        assert store.get_loan_by_id("loan-001").remaining_balance == Decimal("8200.00")

    def test_leap_year_balance(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan(created_at=datetime(2024, 1, 1), repayment_date=date(2025, 1, 1)))

        loan = store.record_payment(make_payment(amount="3000"))

        assert loan.remaining_balance == Decimal("8203.29")

    def test_totals_are_sum_of_payments(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan())

        store.record_payment(make_payment("p1", amount="1000"))
        store.record_payment(make_payment("p2", amount="2500.50"))
        loan = store.record_payment(make_payment("p3", amount="499.50"))

        assert loan.total_paid == Decimal("4000.00")
        assert loan.total_paid == sum(p.amount for p in loan.payments)
        assert loan.remaining_balance == Decimal("7200.00")
        assert [p.payment_id for p in loan.payments] == ["p1", "p2", "p3"]

    def test_same_payment_id_last_write_wins(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan())

        store.record_payment(make_payment("p1", amount="1000"))
        store.record_payment(make_payment("p2", amount="500"))
        loan = store.record_payment(make_payment("p1", amount="3000"))

        assert len(loan.payments) == 2
        assert loan.payments[0].amount == Decimal("3000")
        assert loan.total_paid == Decimal("3500")

    def test_marks_loan_unsynced(self, store: RecordStore, make_loan, make_payment, clock) -> None:
        store.save_loan(make_loan())
        store.sync_now()

        loan = store.record_payment(make_payment())

        assert loan.needs_sync is True
        assert loan.synced is False
        assert loan.payments[0].synced is False
        assert loan.updated_at == clock.now

    def test_unknown_loan_raises_and_changes_nothing(
        self, storage: MemoryStorage, store: RecordStore, make_loan, make_payment
    ) -> None:
        store.save_loan(make_loan())
        before = storage.get(LOANS_KEY)

        with pytest.raises(LoanNotFoundError, match="ghost"):
            store.record_payment(make_payment(loan_id="ghost"))

        assert storage.get(LOANS_KEY) == before
        assert store.get_loan_by_id("loan-001").payments == []

    def test_non_positive_amount_rejected(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan())

        with pytest.raises(InvalidRecordError):
            store.record_payment(make_payment(amount="0"))

    def test_overpayment_floors_balance_at_zero(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan())

        loan = store.record_payment(make_payment(amount="15000"))

        assert loan.remaining_balance == Decimal("0.00")

    def test_settling_payment_adds_completion_notice(self, store: RecordStore, make_loan, make_payment) -> None:
        store.save_loan(make_loan())

        store.record_payment(make_payment("p1", amount="11200"))
        store.record_payment(make_payment("p2", amount="100"))

        notifications = store.get_notifications()
        assert len(notifications) == 1
        assert notifications[0].type == NotificationType.LOAN_COMPLETED
        assert notifications[0].loan_id == "loan-001"
        assert "Lakshmi Devi" in notifications[0].message


class TestPaymentNotifications:
    """Tests for generate_payment_notifications (clock at 2024-06-01 10:00)."""

    def _store_with(self, store: RecordStore, make_loan, **kwargs) -> RecordStore:
        store.save_loan(make_loan(created_at=datetime(2024, 1, 1), remaining_balance="5000", **kwargs))
        return store

    def test_due_soon(self, store: RecordStore, make_loan) -> None:
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 4))

        created = store.generate_payment_notifications()

        assert len(created) == 1
        assert created[0].type == NotificationType.PAYMENT_DUE
        assert created[0].title == "Payment Due from Borrower"
        assert "due in 3 days" in created[0].message
        assert created[0].notification_id.startswith("payment_reminder_loan-001_")
        assert store.get_notifications() == created

    def test_borrow_title(self, store: RecordStore, make_loan) -> None:
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 4), direction=LoanDirection.BORROW)

        assert store.generate_payment_notifications()[0].title == "Payment Due"

    def test_overdue(self, store: RecordStore, make_loan) -> None:
        self._store_with(store, make_loan, repayment_date=date(2024, 5, 30))

        created = store.generate_payment_notifications()

        assert len(created) == 1
        assert created[0].type == NotificationType.PAYMENT_OVERDUE
        assert "2 days overdue" in created[0].message
        assert "₹5,000" in created[0].message

    def test_far_future_ignored(self, store: RecordStore, make_loan) -> None:
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 11))

        assert store.generate_payment_notifications() == []

    @pytest.mark.parametrize(
        "due, expected",
        [
            (date(2024, 6, 1), None),  # due today: zero days, neither due nor overdue
            (date(2024, 6, 8), NotificationType.PAYMENT_DUE),  # seven days
            (date(2024, 6, 9), None),  # eight days
            (date(2024, 5, 31), NotificationType.PAYMENT_OVERDUE),
        ],
    )
    def test_window_edges(self, store: RecordStore, make_loan, due: date, expected) -> None:
        self._store_with(store, make_loan, repayment_date=due)

        created = store.generate_payment_notifications()

        assert [n.type for n in created] == ([expected] if expected else [])

    def test_paid_off_loans_skipped(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan(repayment_date=date(2024, 6, 4), remaining_balance="0"))

        assert store.generate_payment_notifications() == []

    def test_deduplicated_per_day(self, store: RecordStore, make_loan, clock) -> None:
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 5))

        store.generate_payment_notifications()
        clock.advance(hours=2)
        assert store.generate_payment_notifications() == []
        clock.advance(days=1)
        assert len(store.generate_payment_notifications()) == 1

        assert len(store.get_notifications()) == 2

    def test_accumulates_without_dedupe(self, storage, remote, clock, make_loan) -> None:
        config = LedgerConfig(sync=SyncConfig(dedupe_notifications=False))
        store = RecordStore(storage, remote=remote, config=config, clock=clock)
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 5))

        store.generate_payment_notifications()
        clock.advance(seconds=1)
        store.generate_payment_notifications()

        assert len(store.get_notifications()) == 2

    def test_custom_window(self, storage, remote, clock, make_loan) -> None:
        config = LedgerConfig(sync=SyncConfig(reminder_window_days=2))
        store = RecordStore(storage, remote=remote, config=config, clock=clock)
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 4))

        assert store.generate_payment_notifications() == []

    def test_persisted(self, storage: MemoryStorage, store: RecordStore, make_loan) -> None:
        self._store_with(store, make_loan, repayment_date=date(2024, 6, 4))

        store.generate_payment_notifications()

        assert len(json.loads(storage.get(NOTIFICATIONS_KEY))) == 1


class TestMarkNotificationAsRead:
    """Tests for mark_notification_as_read."""

    def test_marks_read_and_unsynced(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan(repayment_date=date(2024, 6, 4), remaining_balance="100"))
        notice = store.generate_payment_notifications()[0]
        store.sync_now()

        store.mark_notification_as_read(notice.notification_id)

        stored = store.get_notifications()[0]
        assert stored.read is True
        assert stored.synced is False
        assert store.get_sync_status().needs_sync is True

    def test_unknown_id_is_noop(self, storage: MemoryStorage, store: RecordStore) -> None:
        store.mark_notification_as_read("nope")

        assert storage.get(NOTIFICATIONS_KEY) is None


class TestExportImport:
    """Tests for export_data and import_data."""

    def _populate(self, store: RecordStore, make_loan, make_payment) -> None:
        store.upsert_loans([make_loan("loan-001"), make_loan("loan-002", repayment_date=date(2024, 6, 4))])
        store.record_payment(make_payment(amount="3000"))
        store.generate_payment_notifications()

    def test_export_shape(self, store: RecordStore, make_loan, make_payment, clock) -> None:
        self._populate(store, make_loan, make_payment)

        document = json.loads(store.export_data())

        assert set(document) == {"loans", "notifications", "export_date"}
        assert len(document["loans"]) == 2
        assert len(document["notifications"]) == 2
        assert document["export_date"] == clock.now.isoformat()

    def test_round_trip(self, store: RecordStore, make_loan, make_payment, clock) -> None:
        self._populate(store, make_loan, make_payment)
        store.sync_now()
        store.record_payment(make_payment("p2", amount="10"))

        other = RecordStore(MemoryStorage(), online=False, clock=clock)
        other.import_data(store.export_data())

        assert other.get_loans() == store.get_loans()
        assert other.get_notifications() == store.get_notifications()

    def test_import_replaces_everything(self, store: RecordStore, make_loan, make_payment, clock) -> None:
        self._populate(store, make_loan, make_payment)
        source = RecordStore(MemoryStorage(), online=False, clock=clock)
        source.save_loan(make_loan("loan-999"))

        store.import_data(source.export_data())

        assert [loan.loan_id for loan in store.get_loans()] == ["loan-999"]
        assert store.get_notifications() == []

    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            "[]",
            json.dumps({"loans": [], "notifications": []}),
            json.dumps({"loans": {}, "notifications": [], "export_date": "2024-06-01T10:00:00"}),
            json.dumps({"loans": [], "notifications": [], "export_date": 5}),
            json.dumps({"loans": [], "notifications": [], "export_date": "yesterday"}),
            json.dumps({"loans": [{"loan_id": "x"}], "notifications": [], "export_date": "2024-06-01"}),
        ],
    )
    def test_malformed_import_rejected(
        self, storage: MemoryStorage, store: RecordStore, make_loan, make_payment, payload: str
    ) -> None:
        self._populate(store, make_loan, make_payment)
        before = (storage.get(LOANS_KEY), storage.get(NOTIFICATIONS_KEY))
        loans_before = store.get_loans()

        with pytest.raises(FormatError):
            store.import_data(payload)

        assert (storage.get(LOANS_KEY), storage.get(NOTIFICATIONS_KEY)) == before
        assert store.get_loans() == loans_before

    @pytest.mark.parametrize(
        "corrupt",
        [
            lambda doc: doc["loans"][0].update(amount="-500"),
            lambda doc: doc["loans"][0].update(interest_rate="-1"),
            lambda doc: doc["loans"][0]["payments"][0].update(amount="0"),
            lambda doc: doc["loans"][0]["payments"][0].update(loan_id="loan-002"),
            lambda doc: doc["loans"][0]["payments"].append(dict(doc["loans"][0]["payments"][0])),
            lambda doc: doc["loans"][0].update(total_paid="999"),
            lambda doc: doc["loans"].append(dict(doc["loans"][0])),
            lambda doc: doc["notifications"].append(dict(doc["notifications"][0])),
        ],
        ids=[
            "negative-principal",
            "negative-rate",
            "zero-payment",
            "payment-under-other-loan",
            "duplicate-payment",
            "total-paid-mismatch",
            "duplicate-loan",
            "duplicate-notification",
        ],
    )
    def test_import_breaking_record_rules_rejected(
        self, storage: MemoryStorage, store: RecordStore, make_loan, make_payment, corrupt
    ) -> None:
        self._populate(store, make_loan, make_payment)
        document = json.loads(store.export_data())
        corrupt(document)
        before = (storage.get(LOANS_KEY), storage.get(NOTIFICATIONS_KEY))
        loans_before = store.get_loans()

        with pytest.raises(FormatError):
            store.import_data(json.dumps(document))

        assert (storage.get(LOANS_KEY), storage.get(NOTIFICATIONS_KEY)) == before
        assert store.get_loans() == loans_before


class TestTimezoneAwareTimestamps:
    """Tests for timestamps carrying a UTC offset."""

    def _document(self, make_loan) -> str:
        loan = to_dict(make_loan())
        loan["created_at"] = "2023-01-01T00:00:00Z"
        loan["updated_at"] = "2023-01-01T00:00:00.000Z"
        return json.dumps({"loans": [loan], "notifications": [], "export_date": "2024-06-01T04:30:00.000Z"})

    def test_imported_utc_loan_usable(self, store: RecordStore, make_loan, make_payment) -> None:
        store.import_data(self._document(make_loan))

        loan = store.get_loan_by_id("loan-001")
        assert loan.created_at.tzinfo is None
        assert loan.created_at == datetime(2023, 1, 1, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

        updated = store.record_payment(make_payment(amount="3000"))
        assert Decimal("8100") < updated.remaining_balance < Decimal("8300")

        created = store.generate_payment_notifications()
        assert [n.type for n in created] == [NotificationType.PAYMENT_OVERDUE]

    def test_aware_clock(self, storage: MemoryStorage, remote, make_loan) -> None:
        moment = datetime(2023, 12, 29, tzinfo=timezone.utc)
        store = RecordStore(storage, remote=remote, clock=lambda: moment)
        store.upsert_loans([make_loan()])

        created = store.generate_payment_notifications()

        assert [n.type for n in created] == [NotificationType.PAYMENT_DUE]
        assert created[0].date.tzinfo is None
        assert store.sync_now().synced_at.tzinfo is None

    def test_aware_loan_fields_normalized(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan(created_at=datetime(2023, 1, 1, tzinfo=timezone.utc)))

        assert store.get_loan_by_id("loan-001").created_at.tzinfo is None


class TestSyncStatus:
    """Tests for get_sync_status."""

    def test_clean_store(self, store: RecordStore) -> None:
        status = store.get_sync_status()

        assert status.needs_sync is False
        assert status.is_online is True
        assert status.last_sync is None

    def test_unsynced_loan(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan())

        assert store.get_sync_status().needs_sync is True

    def test_unsynced_notification(self, store: RecordStore, make_loan) -> None:
        store.save_loan(make_loan(repayment_date=date(2024, 6, 4), remaining_balance="100"))
        store.sync_now()
        store.generate_payment_notifications()

        assert store.get_sync_status().needs_sync is True

    def test_offline(self, storage: MemoryStorage) -> None:
        store = RecordStore(storage, online=False)

        assert store.get_sync_status().is_online is False


class TestStoreLoading:
    """Tests for opening a store over existing storage."""

    def test_corrupt_loans_rejected(self) -> None:
        storage = MemoryStorage({LOANS_KEY: "{not json"})

        with pytest.raises(StorageError, match="loans"):
            RecordStore(storage, online=False)

    def test_wrong_shape_rejected(self) -> None:
        storage = MemoryStorage({NOTIFICATIONS_KEY: '{"a": 1}'})

        with pytest.raises(StorageError, match="notifications"):
            RecordStore(storage, online=False)

    def test_unreadable_last_sync_ignored(self) -> None:
        storage = MemoryStorage({"last_sync_time": "soon"})

        assert RecordStore(storage, online=False).get_sync_status().last_sync is None


class TestGenerateId:
    """Tests for generate_id."""

    def test_unique(self, store: RecordStore) -> None:
        ids = {store.generate_id() for _ in range(200)}

        assert len(ids) == 200

    def test_base36_with_timestamp_prefix(self, store: RecordStore, clock) -> None:
        record_id = store.generate_id()
        prefix = _base36(int(clock.now.timestamp() * 1000))

        assert record_id.startswith(prefix)
        assert len(record_id) > len(prefix)
        assert set(record_id) <= set("0123456789abcdefghijklmnopqrstuvwxyz")


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"
