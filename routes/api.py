"""
Central API route registration. All HTTP controllers are mounted here with /api prefix.
"""
import logging
from fastapi import FastAPI

from app.http.controllers import (
    auth,
    orders,
    imports,
    exchange_rate,
    shopify,
    shopify_stores,
    webhooks,
    mercury,
    payouts,
    venues,
    users,
    products,
)

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
    app.include_router(imports.router, prefix="/api/import", tags=["import"])
    app.include_router(exchange_rate.router, prefix="/api/exchange-rate", tags=["exchange-rate"])
    app.include_router(shopify.router, prefix="/api/shopify", tags=["shopify"])
    app.include_router(shopify_stores.router, prefix="/api/shopify-stores", tags=["shopify-stores"])
    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
    app.include_router(mercury.router, prefix="/api/mercury", tags=["mercury"])
    app.include_router(payouts.router, prefix="/api/payouts", tags=["payouts"])
    app.include_router(venues.router, prefix="/api/venues", tags=["venues"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(products.router, prefix="/api/products", tags=["products"])
    logger.debug("Registered %s routes", len(app.routes))
