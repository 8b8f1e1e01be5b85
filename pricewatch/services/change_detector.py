import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog

from pricewatch.core.config import settings
from pricewatch.core.errors import NotificationError
from pricewatch.enums.tokens import Token, parse_token
from pricewatch.services.notifier import Notifier
from pricewatch.services.price_store import PriceStore, to_storage_price

log = structlog.get_logger("change_detector")


@dataclass(frozen=True)
class PriceChange:
    token: Token
    old_price: Decimal
    new_price: Decimal


class ChangeDetector:
    """
    Compares a freshly fetched price against the last stored sample for the
    token. Any inequality at storage precision is a change; the first sample
    ever is not.

    Never writes samples itself: call detect() before the new sample is
    appended, and notify() afterwards.
    """

    def __init__(
        self,
        price_store: PriceStore,
        notifier: Notifier,
        destination: Optional[str] = None,
        notify_timeout_s: Optional[float] = None,
    ):
        self.price_store = price_store
        self.notifier = notifier
        self.destination = destination if destination is not None else settings.CHANGE_NOTIFY_EMAIL
        self.notify_timeout_s = notify_timeout_s or settings.NOTIFY_TIMEOUT_SECONDS

    def detect(self, token: Token, new_price: Decimal) -> Optional[PriceChange]:
        token = parse_token(token)
        prior = self.price_store.most_recent(token)
        if prior is None:
            return None

        old = to_storage_price(prior.price)
        new = to_storage_price(new_price)
        if new == old:
            return None
        return PriceChange(token=token, old_price=old, new_price=new)

    async def notify(self, change: PriceChange) -> bool:
        """Send the change notification; failures are logged, never raised."""
        if not self.destination:
            log.info(
                "price_changed",
                token=change.token.value,
                old=str(change.old_price),
                new=str(change.new_price),
                notified=False,
            )
            return False

        subject = f"Price Alert: {change.token.value} Price Changed"
        body = (
            f"The price of {change.token.value} has changed from "
            f"${change.old_price:.2f} to ${change.new_price:.2f}."
        )
        try:
            await asyncio.wait_for(
                self.notifier.send(self.destination, subject, body),
                timeout=self.notify_timeout_s,
            )
        except (NotificationError, asyncio.TimeoutError) as e:
            log.error("change_notify_failed", token=change.token.value, err=str(e) or "timeout")
            return False
        except Exception:
            log.exception("change_notify_failed", token=change.token.value)
            return False

        log.info(
            "price_change_notified",
            token=change.token.value,
            old=str(change.old_price),
            new=str(change.new_price),
        )
        return True
