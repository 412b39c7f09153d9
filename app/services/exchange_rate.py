"""
Exchange rate lookup with a 24-hour database cache.

Fallback order: fresh cache -> live provider -> stale cache -> configured default.
Each tier is a separate function; `resolve_exchange_rate` composes them and never
raises, so callers always get a usable rate.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import ExchangeRate, utcnow
from app.services.http_client import UpstreamError, get_json

logger = logging.getLogger(__name__)

AED_USD_PEG = 3.6725

SOURCE_CACHE = "cache"
SOURCE_LIVE = "live"
SOURCE_STALE_CACHE = "stale_cache"
SOURCE_DEFAULT = "default"


@dataclass
class CachedRate:
    rate: float
    fetched_at: datetime
    expires_at: datetime
    expired: bool


@dataclass
class RateResult:
    rate: float
    source: str
    fetched_at: Optional[datetime] = None

    @property
    def stale(self) -> bool:
        return self.source in (SOURCE_STALE_CACHE, SOURCE_DEFAULT)

    @property
    def cached(self) -> bool:
        return self.source in (SOURCE_CACHE, SOURCE_STALE_CACHE)


def _pair(from_currency: Optional[str], to_currency: Optional[str]) -> tuple[str, str]:
    return (
        (from_currency or settings.EXCHANGE_RATE_FROM).upper(),
        (to_currency or settings.EXCHANGE_RATE_TO).upper(),
    )


def default_rate() -> float:
    return settings.DEFAULT_EXCHANGE_RATE


def get_cached_rate(
    db: Session,
    from_currency: str,
    to_currency: str,
    now: Optional[datetime] = None,
) -> Optional[CachedRate]:
    """Cached entry for the pair with its expiry state, or None (also on database errors)."""
    now = now or utcnow()
    try:
        row = db.query(ExchangeRate).filter(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        ).first()
    except SQLAlchemyError as e:
        logger.error("Failed to read cached exchange rate %s/%s: %s", from_currency, to_currency, e)
        db.rollback()
        return None
    if not row:
        return None
    return CachedRate(
        rate=row.rate,
        fetched_at=row.fetched_at,
        expires_at=row.expires_at,
        expired=now > row.expires_at,
    )


async def fetch_rate_from_api(
    from_currency: str,
    to_currency: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[float]:
    """Latest rate from the provider, or None on any failure. AED/USD is pegged and never fetched."""
    if from_currency == "AED" and to_currency == "USD":
        return 1 / AED_USD_PEG
    if from_currency == "USD" and to_currency == "AED":
        return AED_USD_PEG

    url = f"{settings.EXCHANGE_RATE_API_URL.rstrip('/')}/{from_currency}"
    try:
        data, _ = await get_json(url, service="Exchange rate API", timeout=10.0, max_retries=1, transport=transport)
    except UpstreamError as e:
        logger.error("Failed to fetch exchange rate %s/%s: %s", from_currency, to_currency, e)
        return None

    rates = data.get("rates") if isinstance(data, dict) else None
    rate = rates.get(to_currency) if isinstance(rates, dict) else None
    try:
        rate = float(rate) if rate is not None else None
    except (TypeError, ValueError):
        rate = None
    if not rate or rate <= 0:
        logger.error("Exchange rate %s/%s not found in API response", from_currency, to_currency)
        return None
    return rate


def cache_rate(
    db: Session,
    rate: float,
    from_currency: str,
    to_currency: str,
    now: Optional[datetime] = None,
) -> Optional[ExchangeRate]:
    """Upsert the single cache row for the pair. Failures are logged; the caller still gets its rate."""
    now = now or utcnow()
    expires_at = now + timedelta(hours=settings.EXCHANGE_RATE_CACHE_HOURS)
    try:
        row = db.query(ExchangeRate).filter(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        ).first()
        if row:
            row.rate = rate
            row.fetched_at = now
            row.expires_at = expires_at
        else:
            row = ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                fetched_at=now,
                expires_at=expires_at,
            )
            db.add(row)
        db.commit()
        return row
    except SQLAlchemyError as e:
        logger.error("Failed to cache exchange rate %s/%s: %s", from_currency, to_currency, e)
        db.rollback()
        return None


async def resolve_exchange_rate(
    db: Session,
    from_currency: Optional[str] = None,
    to_currency: Optional[str] = None,
    now: Optional[datetime] = None,
    fetcher: Optional[Callable[[str, str], Awaitable[Optional[float]]]] = None,
) -> RateResult:
    """Rate for the pair plus where it came from."""
    from_currency, to_currency = _pair(from_currency, to_currency)
    now = now or utcnow()
    fetcher = fetcher or fetch_rate_from_api

    cached = get_cached_rate(db, from_currency, to_currency, now=now)
    if cached and not cached.expired:
        return RateResult(rate=cached.rate, source=SOURCE_CACHE, fetched_at=cached.fetched_at)

    fresh = await fetcher(from_currency, to_currency)
    if fresh:
        cache_rate(db, fresh, from_currency, to_currency, now=now)
        return RateResult(rate=fresh, source=SOURCE_LIVE, fetched_at=now)

    if cached:
        logger.warning("Using expired cached rate %s/%s: %s", from_currency, to_currency, cached.rate)
        return RateResult(rate=cached.rate, source=SOURCE_STALE_CACHE, fetched_at=cached.fetched_at)

    rate = default_rate()
    logger.warning("Using default exchange rate %s/%s: %s", from_currency, to_currency, rate)
    return RateResult(rate=rate, source=SOURCE_DEFAULT)


async def get_current_exchange_rate(
    db: Session,
    from_currency: Optional[str] = None,
    to_currency: Optional[str] = None,
) -> float:
    result = await resolve_exchange_rate(db, from_currency, to_currency)
    return result.rate


async def get_exchange_rate_with_info(
    db: Session,
    from_currency: Optional[str] = None,
    to_currency: Optional[str] = None,
) -> dict:
    """Rate with cache status, for display next to amount inputs."""
    from_currency, to_currency = _pair(from_currency, to_currency)
    result = await resolve_exchange_rate(db, from_currency, to_currency)
    return {
        "rate": result.rate,
        "cached": result.cached,
        "stale": result.stale,
        "source": result.source,
        "fetchedAt": result.fetched_at.isoformat() if result.fetched_at else None,
        "from": from_currency,
        "to": to_currency,
    }
