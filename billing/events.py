"""
Billing event publishing

Every operator billing action emits a BillingEvent so that views holding
registration/payment state (dashboard counters, receipts) can refresh
without polling.
"""

from typing import Dict, Any, List, Callable, Optional
from datetime import datetime
from enum import Enum
from dataclasses import dataclass, field
from loguru import logger
import json
from collections import defaultdict

from .dates import utc_now


class BillingEventType(str, Enum):
    """Event types"""
    ENROLLMENT_PAID = "enrollment.paid"
    ENROLLMENT_OVERWRITTEN = "enrollment.overwritten"   # repeat enrollment payment
    PAYMENT_CREATED = "payment.created"
    PAYMENT_ROLLED_BACK = "payment.rolled_back"
    REGISTRATION_DATE_CHANGED = "registration.date_changed"


@dataclass
class BillingEvent:
    """Billing state change"""
    event_type: BillingEventType
    registration_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    old_data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=utc_now)
    source: str = "billing"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "registration_id": self.registration_id,
            "data": self.data,
            "old_data": self.old_data,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


class BillingEventPublisher:
    """In-process publisher with a bounded event log"""

    def __init__(self, max_log_size: int = 1000):
        self.local_subscribers: Dict[BillingEventType, List[Callable]] = defaultdict(list)
        self._event_log: List[BillingEvent] = []
        self._max_log_size = max_log_size

    def publish(self, event: BillingEvent) -> None:
        """Publish to local subscribers; a failing subscriber does not stop the others"""
        logger.info(f"Billing event: {event.event_type.value} - registration:{event.registration_id}")

        self._event_log.append(event)
        if len(self._event_log) > self._max_log_size:
            self._event_log = self._event_log[-self._max_log_size:]

        for subscriber in self.local_subscribers.get(event.event_type, []):
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"Subscriber failed for {event.event_type.value}: {e}")

    def subscribe(self, event_type: BillingEventType, callback: Callable) -> None:
        self.local_subscribers[event_type].append(callback)
        logger.debug(f"Subscribed to {event_type.value}")

    def unsubscribe(self, event_type: BillingEventType, callback: Callable) -> None:
        if callback in self.local_subscribers[event_type]:
            self.local_subscribers[event_type].remove(callback)
            logger.debug(f"Unsubscribed from {event_type.value}")

    def get_recent_events(self, limit: int = 100) -> List[BillingEvent]:
        return self._event_log[-limit:]
