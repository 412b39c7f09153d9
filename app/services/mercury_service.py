"""
Mercury banking API client (accounts, transactions and payout debits).
"""
import logging
from typing import List, Optional

import httpx

from app.config import settings
from app.services.http_client import get_json, post_json

logger = logging.getLogger(__name__)


def _date_only(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.split("T")[0]


class MercuryClient:
    def __init__(self, api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.transport = transport
        self.base_url = settings.MERCURY_API_BASE_URL.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _get(self, path: str, params: Optional[dict] = None):
        data, _ = await get_json(
            f"{self.base_url}{path}", service="Mercury", params=params, headers=self.headers, transport=self.transport
        )
        return data or {}

    async def get_accounts(self) -> List[dict]:
        data = await self._get("/accounts")
        return data.get("accounts") or []

    async def get_transactions(
        self,
        account_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[dict]:
        """Transactions of an account, optionally limited to a YYYY-MM-DD range."""
        params = {}
        if start_date:
            params["start"] = _date_only(start_date)
        if end_date:
            params["end"] = _date_only(end_date)
        data = await self._get(f"/account/{account_id}/transactions", params=params or None)
        transactions = data.get("transactions") or []
        logger.info("Fetched %s Mercury transactions for account %s", len(transactions), account_id)
        return transactions

    async def get_transaction(self, account_id: str, transaction_id: str) -> dict:
        return await self._get(f"/account/{account_id}/transaction/{transaction_id}")

    async def create_transaction(
        self,
        account_id: str,
        amount: float,
        counterparty_name: str,
        memo: Optional[str] = None,
        posted_at: Optional[str] = None,
        external_id: Optional[str] = None,
        direction: str = "debit",
    ) -> dict:
        payload = {
            "amount": abs(amount),
            "direction": direction,
            "accountId": account_id,
            "counterparty": {"name": counterparty_name},
            "memo": memo or f"Payout: {counterparty_name}",
            "postedAt": posted_at,
            "externalId": external_id,
        }
        data = await post_json(
            f"{self.base_url}/account/{account_id}/transactions",
            service="Mercury",
            json=payload,
            headers=self.headers,
            transport=self.transport,
        )
        return data or {}

    async def test_connection(self) -> List[dict]:
        """Accounts visible to the key; raises UpstreamError when the key is rejected."""
        return await self.get_accounts()
