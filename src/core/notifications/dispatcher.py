"""Outbound notification hook. Delivery (SMS, email) is handled elsewhere."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Records notification events. Does not deliver anything."""

    def dispatch(self, event: str, **payload: Any) -> None:
        logger.debug("Notification %s: %s", event, payload)

    def payment_completed(self, school_code: str, payment_reference: str, amount: Any) -> None:
        self.dispatch(
            "payment.completed",
            school=school_code,
            payment_reference=payment_reference,
            amount=str(amount),
        )

    def promotion_completed(self, school_code: str, message: str) -> None:
        self.dispatch("promotion.completed", school=school_code, message=message)


notifications = NotificationDispatcher()
