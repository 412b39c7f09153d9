"""
Shopify webhook receiver (public, no JWT)
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.shopify_queue import ALREADY_IMPORTED, QUEUED, UNKNOWN_STORE, queue_webhook_order, verify_webhook_hmac

logger = logging.getLogger(__name__)
router = APIRouter()

_MESSAGES = {
    QUEUED: "Order queued for approval",
    ALREADY_IMPORTED: "Order already imported",
    UNKNOWN_STORE: "Store not registered",
}


@router.post("/shopify")
async def shopify_webhook_receive(request: Request, db: Session = Depends(get_db)):
    """
    Order webhooks from Shopify. Verifies X-Shopify-Hmac-Sha256 when a webhook
    secret is configured and queues the order for approval. Always 200 once the
    payload is accepted so Shopify does not retry.
    """
    raw_body = await request.body()
    topic = request.headers.get("X-Shopify-Topic") or ""
    shop_domain = (request.headers.get("X-Shopify-Shop-Domain") or "").strip().lower()
    if not shop_domain:
        logger.warning("Shopify webhook: missing X-Shopify-Shop-Domain")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain")

    secret = (settings.SHOPIFY_WEBHOOK_SECRET or "").strip()
    if secret and not verify_webhook_hmac(raw_body, request.headers.get("X-Shopify-Hmac-Sha256"), secret):
        logger.warning("Shopify webhook: HMAC verification failed for shop=%s topic=%s", shop_domain, topic)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw_body.decode("utf-8")) if raw_body else {}
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning("Shopify webhook: invalid JSON %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(payload, dict) or payload.get("id") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid order payload")

    try:
        outcome = queue_webhook_order(db, shop_domain, payload)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Shopify webhook: failed to queue order %s from %s: %s", payload.get("id"), shop_domain, e)
        return {"ok": False, "message": "Order could not be queued"}

    return {"ok": True, "status": outcome, "message": _MESSAGES[outcome]}
