"""
CSV import routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import SessionUser, get_current_user, target_venue_id
from app.database import get_db
from app.http.requests import CsvImportRequest
from app.services.csv_import import CsvParseError, import_csv_rows, parse_csv_text
from app.services.order_sources import CsvOrderRow, to_naive_utc

router = APIRouter()


@router.post("/csv")
async def import_csv(
    payload: CsvImportRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(get_current_user)
):
    """
    Import `date,amount` rows either as raw CSV text or as already-parsed rows.
    A single bad line rejects the whole upload.
    """
    if payload.csv is None and not payload.orders:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Provide csv text or orders")

    if payload.csv is not None:
        try:
            rows = parse_csv_text(payload.csv)
        except CsvParseError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Invalid CSV", "errors": e.errors},
            )
    else:
        rows = [
            CsvOrderRow(line=index, processed_at=to_naive_utc(item.processedAt), original_amount=item.originalAmount)
            for index, item in enumerate(payload.orders, start=1)
        ]

    venue_id = target_venue_id(db, current_user, payload.venueId, payload.venue)
    result = import_csv_rows(
        db,
        rows,
        exchange_rate=payload.exchangeRate,
        customer_name=payload.customerName,
        created_by_id=current_user.user_id,
        venue_id=venue_id,
    )
    return result.to_dict()
