import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

import structlog

from pricewatch.core.config import settings
from pricewatch.core.errors import NotificationError
from pricewatch.enums.tokens import Token, parse_token
from pricewatch.models.price_alert import PriceAlert
from pricewatch.services.alert_store import AlertStore
from pricewatch.services.notifier import Notifier

log = structlog.get_logger("alert_matcher")


@dataclass
class MatchResult:
    triggered: List[PriceAlert] = field(default_factory=list)
    notified: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


class AlertMatcher:
    """
    Triggers every untriggered alert whose target is within +/- band of the
    current price, then notifies each flipped rule once.

    Only rows returned by the store's conditional update are notified. A
    failed send is logged and not retried: the rule stays triggered.
    """

    def __init__(
        self,
        alert_store: AlertStore,
        notifier: Notifier,
        band: Optional[Decimal] = None,
        notify_timeout_s: Optional[float] = None,
    ):
        self.alert_store = alert_store
        self.notifier = notifier
        self.band = Decimal(str(band)) if band is not None else settings.ALERT_BAND
        self.notify_timeout_s = notify_timeout_s or settings.NOTIFY_TIMEOUT_SECONDS

    async def run(self, token: Token, current_price: Decimal) -> MatchResult:
        token = parse_token(token)
        result = MatchResult()
        result.triggered = await asyncio.to_thread(
            self.alert_store.match_and_trigger, token, current_price, self.band
        )

        for alert in result.triggered:
            subject = f"Price Alert: {token.value} reached your target"
            body = (
                f"{token.value} is trading at ${Decimal(current_price):.2f}, "
                f"within {self.band * 100:.2f}% of your target price of ${alert.target_price:.2f}."
            )
            try:
                await asyncio.wait_for(
                    self.notifier.send(alert.email, subject, body),
                    timeout=self.notify_timeout_s,
                )
            except (NotificationError, asyncio.TimeoutError) as e:
                log.error(
                    "alert_notify_failed",
                    alert_id=alert.id,
                    token=token.value,
                    err=str(e) or "timeout",
                )
                result.failed.append(alert.id)
                continue
            except Exception:
                log.exception("alert_notify_failed", alert_id=alert.id, token=token.value)
                result.failed.append(alert.id)
                continue
            result.notified.append(alert.id)

        return result
