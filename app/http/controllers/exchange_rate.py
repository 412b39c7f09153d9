"""
Exchange rate route
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import SessionUser, get_current_user
from app.database import get_db
from app.services.exchange_rate import get_exchange_rate_with_info

router = APIRouter()


@router.get("")
async def get_exchange_rate(
    from_currency: Optional[str] = Query(None, alias="from", min_length=3, max_length=3),
    to_currency: Optional[str] = Query(None, alias="to", min_length=3, max_length=3),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """Current rate (local units per USD) with cache status"""
    return await get_exchange_rate_with_info(db, from_currency, to_currency)
