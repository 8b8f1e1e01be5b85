from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session, sessionmaker

from pricewatch.database.types import PRICE_QUANTUM
from pricewatch.enums.tokens import Token, parse_token
from pricewatch.models.token_price import TokenPrice
from pricewatch.schemas.price import HourlyPrice, PriceSample

log = structlog.get_logger("price_store")


def to_storage_price(value, rounding: str = ROUND_HALF_EVEN) -> Decimal:
    """Quantize to the precision of the price columns so comparisons match what is stored."""
    return Decimal(str(value)).quantize(PRICE_QUANTUM, rounding=rounding)


def as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _to_sample(row: TokenPrice) -> PriceSample:
    return PriceSample(
        id=row.id,
        token=Token(row.token),
        price=to_storage_price(row.price),
        observed_at=as_utc(row.last_update),
    )


class PriceStore:
    """
    Append-only store of price samples (`token_prices`).

    Each call opens and closes its own session from the injected factory.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ---------- WRITE ----------

    def append(self, sample: PriceSample) -> PriceSample:
        return self.append_many([sample])[0]

    def append_many(self, samples: Iterable[PriceSample]) -> List[PriceSample]:
        """Insert all samples in one transaction; raises (and writes nothing) on failure."""
        rows: List[TokenPrice] = []
        for sample in samples:
            token = parse_token(sample.token)
            price = to_storage_price(sample.price)
            if price <= 0:
                raise ValueError(f"price must be positive, got {price} for {token.value}")
            rows.append(
                TokenPrice(
                    token=token.value,
                    price=price,
                    last_update=as_utc(sample.observed_at),
                )
            )

        db: Session = self._session_factory()
        try:
            db.add_all(rows)
            db.commit()
            for row in rows:
                db.refresh(row)
            saved = [_to_sample(row) for row in rows]
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        log.info(
            "prices_saved",
            prices={s.token.value: str(s.price) for s in saved},
        )
        return saved

    # ---------- READ ----------

    def most_recent(self, token: Token) -> Optional[PriceSample]:
        token = parse_token(token)
        db: Session = self._session_factory()
        try:
            row = (
                db.query(TokenPrice)
                .filter(TokenPrice.token == token.value)
                .order_by(TokenPrice.last_update.desc(), TokenPrice.id.desc())
                .first()
            )
            return _to_sample(row) if row else None
        finally:
            db.close()

    def hourly_averages(
        self,
        token: Optional[Token] = None,
        window_hours: int = 24,
        now: Optional[datetime] = None,
    ) -> List[HourlyPrice]:
        """
        Average price per (token, hour) over the trailing window, newest hour first.

        An empty window yields an empty list.
        """
        now = as_utc(now) if now else datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=window_hours)

        db: Session = self._session_factory()
        try:
            query = db.query(TokenPrice).filter(
                TokenPrice.last_update >= cutoff,
                TokenPrice.last_update <= now,
            )
            if token is not None:
                query = query.filter(TokenPrice.token == parse_token(token).value)
            rows: List[TokenPrice] = query.all()
        finally:
            db.close()

        buckets: Dict[Tuple[str, datetime], List[Decimal]] = defaultdict(list)
        for row in rows:
            hour = as_utc(row.last_update).replace(minute=0, second=0, microsecond=0)
            buckets[(row.token, hour)].append(Decimal(row.price))

        items = [
            HourlyPrice(
                token=Token(tok),
                hour=hour,
                avg_price=to_storage_price(sum(prices) / len(prices)),
            )
            for (tok, hour), prices in buckets.items()
        ]
        items.sort(key=lambda item: (item.hour, item.token.value), reverse=True)
        return items
