from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import List, Optional

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import and_, update
from sqlalchemy.orm import Session, sessionmaker

from pricewatch.core.errors import InvalidAlertError
from pricewatch.database.types import PRICE_MAX
from pricewatch.enums.tokens import Token, parse_token
from pricewatch.models.price_alert import PriceAlert
from pricewatch.services.price_store import to_storage_price

log = structlog.get_logger("alert_store")

DEFAULT_BAND = Decimal("0.01")


def band_bounds(current_price: Decimal, band: Decimal = DEFAULT_BAND):
    """
    Inclusive [low, high] around the *current* price, rounded inwards to
    storage precision so no stored target outside the true band matches.
    """
    current = to_storage_price(current_price)
    band = Decimal(str(band))
    low = to_storage_price(current * (1 - band), rounding=ROUND_CEILING)
    high = to_storage_price(current * (1 + band), rounding=ROUND_FLOOR)
    high = min(high, PRICE_MAX)
    return low, high


class AlertStore:
    """
    Persistence for `price_alerts`.

    `triggered` only ever moves false -> true, and only through
    match_and_trigger's conditional UPDATE.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ---------- CREATE ----------

    def create(self, token, target_price, destination: str) -> PriceAlert:
        token = self._validate_token(token)
        price = self._validate_target_price(target_price)
        email = self._validate_destination(destination)

        db: Session = self._session_factory()
        try:
            alert = PriceAlert(token=token.value, target_price=price, email=email, triggered=False)
            db.add(alert)
            db.commit()
            db.refresh(alert)
            db.expunge(alert)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        log.info("alert_created", alert_id=alert.id, token=alert.token, target_price=str(price))
        return alert

    def get(self, alert_id: int) -> Optional[PriceAlert]:
        db: Session = self._session_factory()
        try:
            alert = db.get(PriceAlert, alert_id)
            if alert is not None:
                db.expunge(alert)
            return alert
        finally:
            db.close()

    # ---------- ATOMIC TRIGGER ----------

    def match_and_trigger(
        self,
        token: Token,
        current_price: Decimal,
        band: Decimal = DEFAULT_BAND,
    ) -> List[PriceAlert]:
        """
        Flip every untriggered rule for `token` whose target lies in the band
        and return exactly the rows this call flipped.

        Eligibility check and flip are one UPDATE ... RETURNING, so a concurrent
        caller racing on the same rule gets zero rows back for it.
        """
        token = parse_token(token)
        low, high = band_bounds(current_price, band)

        stmt = (
            update(PriceAlert)
            .where(
                and_(
                    PriceAlert.token == token.value,
                    PriceAlert.triggered.is_(False),
                    PriceAlert.target_price.between(low, high),
                )
            )
            .values(triggered=True)
            .returning(PriceAlert)
            .execution_options(synchronize_session=False)
        )

        db: Session = self._session_factory()
        try:
            flipped = list(db.scalars(stmt).all())
            # detach before commit so the returned values are not expired
            for alert in flipped:
                db.expunge(alert)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if flipped:
            log.info(
                "alerts_triggered",
                token=token.value,
                current_price=str(current_price),
                alert_ids=[a.id for a in flipped],
            )
        return flipped

    # ---------- VALIDATION ----------

    @staticmethod
    def _validate_token(token) -> Token:
        try:
            return parse_token(token)
        except ValueError:
            supported = ", ".join(t.value for t in Token)
            raise InvalidAlertError("token", f"unsupported token {token!r}; supported tokens are {supported}")

    @staticmethod
    def _validate_target_price(target_price) -> Decimal:
        try:
            price = to_storage_price(target_price)
        except (ArithmeticError, ValueError, TypeError):
            raise InvalidAlertError("target_price", "target price must be a number")
        if not price.is_finite() or price <= 0:
            raise InvalidAlertError("target_price", "target price must be a positive number")
        if price > PRICE_MAX:
            raise InvalidAlertError("target_price", f"target price must not exceed {PRICE_MAX}")
        return price

    @staticmethod
    def _validate_destination(destination: str) -> str:
        try:
            return validate_email(str(destination or ""), check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise InvalidAlertError("email", f"invalid email format: {e}")
