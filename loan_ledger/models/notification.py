"""Notification model."""

from dataclasses import dataclass
from datetime import datetime

from loan_ledger.models.enums import NotificationType


@dataclass
class Notification:
    """A payment reminder or loan status alert."""

    notification_id: str
    type: NotificationType
    loan_id: str
    title: str
    message: str
    date: datetime
    read: bool = False
    synced: bool = False
