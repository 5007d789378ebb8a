"""JSON codec for ledger records."""

from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, TypeVar

from loan_ledger.exceptions import FormatError
from loan_ledger.interest import local_naive
from loan_ledger.models import (
    LoanAgreement,
    LoanDirection,
    Notification,
    NotificationType,
    Party,
    PaymentRecord,
)

T = TypeVar("T")


def to_dict(obj: Any) -> dict:
    """Convert a ledger record to a JSON-ready dict."""
    result = {}
    for key, value in asdict(obj).items():
        result[key] = serialize_value(value)
    return result


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output.

    Decimals are written as strings so amounts survive a round trip exactly.
    """
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


# Decoding


def _field(data: dict, key: str, parse: Callable[[Any], T], record: str) -> T:
    if key not in data:
        raise FormatError(f"{record}: missing field {key!r}")
    try:
        return parse(data[key])
    except (TypeError, ValueError, InvalidOperation) as e:
        raise FormatError(f"{record}: invalid value for {key!r}: {data[key]!r}") from e


def _optional(data: dict, key: str, parse: Callable[[Any], T], record: str) -> T | None:
    if data.get(key) is None:
        return None
    return _field(data, key, parse, record)


def _str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {type(value).__name__}")
    return value


def _decimal(value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise TypeError(f"expected number, got {type(value).__name__}")
    result = Decimal(str(value))
    if not result.is_finite():
        raise ValueError("amount must be finite")
    return result


def _list(value: Any) -> list:
    if not isinstance(value, list):
        raise TypeError(f"expected array, got {type(value).__name__}")
    return value


def _date(value: Any) -> date:
    return date.fromisoformat(_str(value))


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO timestamp into naive local time.

    Accepts a trailing ``Z`` as written by JavaScript's ``toISOString()``.
    """
    text = _str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return local_naive(datetime.fromisoformat(text))


def _mapping(data: Any, record: str) -> dict:
    if not isinstance(data, dict):
        raise FormatError(f"{record}: expected an object, got {type(data).__name__}")
    return data


def party_from_dict(data: Any, record: str = "party") -> Party:
    """Decode a counterparty."""
    data = _mapping(data, record)
    return Party(
        name=_field(data, "name", _str, record),
        phone=_field(data, "phone", _str, record),
        address=_field(data, "address", _str, record),
    )


def payment_from_dict(data: Any) -> PaymentRecord:
    """Decode a payment record.

    Raises
    ------
    FormatError
        If a field is missing or ill-typed.
    """
    data = _mapping(data, "payment")
    record = f"payment {data.get('payment_id', '?')}"
    return PaymentRecord(
        payment_id=_field(data, "payment_id", _str, record),
        loan_id=_field(data, "loan_id", _str, record),
        amount=_field(data, "amount", _decimal, record),
        date=_field(data, "date", _date, record),
        method=_field(data, "method", _str, record),
        notes=_optional(data, "notes", _str, record),
        synced=_field(data, "synced", _bool, record),
    )


def loan_from_dict(data: Any) -> LoanAgreement:
    """Decode a loan agreement with its payments.

    Raises
    ------
    FormatError
        If a field is missing or ill-typed.
    """
    data = _mapping(data, "loan")
    record = f"loan {data.get('loan_id', '?')}"
    payments = _field(data, "payments", _list, record)
    return LoanAgreement(
        loan_id=_field(data, "loan_id", _str, record),
        direction=_field(data, "direction", LoanDirection, record),
        amount=_field(data, "amount", _decimal, record),
        interest_rate=_field(data, "interest_rate", _decimal, record),
        repayment_date=_field(data, "repayment_date", _date, record),
        created_at=_field(data, "created_at", parse_datetime, record),
        updated_at=_field(data, "updated_at", parse_datetime, record),
        lender=party_from_dict(data.get("lender"), f"{record} lender"),
        receiver=party_from_dict(data.get("receiver"), f"{record} receiver"),
        id_proof_type=_field(data, "id_proof_type", _str, record),
        id_proof_file=_optional(data, "id_proof_file", _str, record),
        contract_generated=_field(data, "contract_generated", _bool, record),
        contract_url=_optional(data, "contract_url", _str, record),
        total_paid=_field(data, "total_paid", _decimal, record),
        remaining_balance=_field(data, "remaining_balance", _decimal, record),
        payments=[payment_from_dict(p) for p in payments],
        synced=_field(data, "synced", _bool, record),
        needs_sync=_field(data, "needs_sync", _bool, record),
    )


def notification_from_dict(data: Any) -> Notification:
    """Decode a notification.

    Raises
    ------
    FormatError
        If a field is missing or ill-typed.
    """
    data = _mapping(data, "notification")
    record = f"notification {data.get('notification_id', '?')}"
    return Notification(
        notification_id=_field(data, "notification_id", _str, record),
        type=_field(data, "type", NotificationType, record),
        loan_id=_field(data, "loan_id", _str, record),
        title=_field(data, "title", _str, record),
        message=_field(data, "message", _str, record),
        date=_field(data, "date", parse_datetime, record),
        read=_field(data, "read", _bool, record),
        synced=_field(data, "synced", _bool, record),
    )
