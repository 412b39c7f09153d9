"""
Mercury payout import and payout API tests
"""
import json
from datetime import datetime

import httpx

from app.models import MercurySettings, Payout
from app.services.credentials import encrypt_token
from app.services.mercury_service import MercuryClient
from app.services.payout_import import filter_new_transactions, import_mercury_transactions, summarize


def tx(tx_id, amount=1500.0, direction="credit", **extra):
    data = {
        "id": tx_id,
        "amount": amount,
        "direction": direction,
        "postedAt": "2024-05-03T09:15:00Z",
        "counterpartyName": "Shopify",
        "bankDescription": "SHOPIFY PAYOUT",
    }
    data.update(extra)
    return data


def _existing_payout(db, venue, tx_id):
    db.add(Payout(
        amount=10,
        processed_at=datetime(2024, 5, 1),
        venue_id=venue.id,
        mercury_transaction_id=tx_id,
    ))
    db.commit()


class TestImportMercuryTransactions:
    def test_creates_payouts_for_new_credits(self, db_session, venue, admin_user):
        outcomes = import_mercury_transactions(db_session, [tx("t1"), tx("t2", amount=-250.0)], venue.id, admin_user.id)

        assert [o.status for o in outcomes] == ["created", "created"]
        payouts = {p.mercury_transaction_id: p for p in db_session.query(Payout).all()}
        assert payouts["t1"].amount == 1500.0
        assert payouts["t2"].amount == 250.0
        assert payouts["t1"].account == "Mercury"
        assert payouts["t1"].description == "SHOPIFY PAYOUT"
        assert payouts["t1"].processed_at == datetime(2024, 5, 3, 9, 15)
        assert payouts["t1"].synced_to_mercury is True
        assert payouts["t1"].created_by_id == admin_user.id

    def test_already_imported_is_skipped(self, db_session, venue):
        _existing_payout(db_session, venue, "t1")

        outcomes = import_mercury_transactions(db_session, [tx("t1"), tx("t2")], venue.id)

        assert [o.status for o in outcomes] == ["skipped", "created"]
        assert outcomes[0].reason == "Already imported"
        assert db_session.query(Payout).count() == 2

    def test_duplicate_in_batch_is_skipped(self, db_session, venue):
        outcomes = import_mercury_transactions(db_session, [tx("t1"), tx("t1")], venue.id)

        assert [o.status for o in outcomes] == ["created", "skipped"]
        assert db_session.query(Payout).count() == 1

    def test_other_direction_is_skipped(self, db_session, venue):
        outcomes = import_mercury_transactions(db_session, [tx("t1", direction="debit")], venue.id)

        assert outcomes[0].status == "skipped"
        assert db_session.query(Payout).count() == 0

    def test_configured_direction(self, db_session, venue):
        outcomes = import_mercury_transactions(
            db_session, [tx("t1", direction="debit"), tx("t2")], venue.id, direction="debit"
        )
        assert [o.status for o in outcomes] == ["created", "skipped"]

    def test_summary(self, db_session, venue):
        _existing_payout(db_session, venue, "t1")
        summary = summarize(import_mercury_transactions(db_session, [tx("t1"), tx("t2")], venue.id))

        assert summary["imported"] == 1
        assert summary["skipped"] == 1
        assert summary["failed"] == 0
        assert summary["total"] == 2


class TestFilterNewTransactions:
    def test_only_unimported_credits(self, db_session, venue):
        _existing_payout(db_session, venue, "t1")

        result = filter_new_transactions(db_session, [tx("t1"), tx("t2"), tx("t3", direction="debit")])

        assert [t["id"] for t in result["transactions"]] == ["t2"]
        assert result["count"] == 1
        assert result["totalFetched"] == 2
        assert result["alreadyImported"] == 1


def mercury_transport(transactions):
    by_id = {t["id"]: t for t in transactions}

    def handler(request):
        assert request.headers["Authorization"] == "Bearer secret-token"
        path = request.url.path
        if path.endswith("/accounts"):
            return httpx.Response(200, json={"accounts": [{"id": "acc-1", "name": "Operating", "status": "active"}]})
        if path.endswith("/transactions"):
            return httpx.Response(200, json={"transactions": transactions})
        tx_id = path.rsplit("/", 1)[-1]
        if tx_id in by_id:
            return httpx.Response(200, json=by_id[tx_id])
        return httpx.Response(404, json={"error": "not found"})

    return httpx.MockTransport(handler)


class TestMercuryApi:
    def _configure(self, db_session):
        db_session.add(MercurySettings(api_key_encrypted=encrypt_token("secret-token"), account_id="acc-1", enabled=True))
        db_session.commit()

    def _use_transport(self, monkeypatch, transactions):
        from app.http.controllers import mercury

        transport = mercury_transport(transactions)
        monkeypatch.setattr(mercury, "build_mercury_client", lambda db: MercuryClient("secret-token", transport=transport))

    def test_settings_are_masked(self, client, auth_headers, db_session):
        response = client.put("/api/mercury/settings", json={"apiKey": "secret-token", "accountId": "acc-1"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["configured"] is True
        assert data["apiKey"] == "secr...oken"
        stored = db_session.query(MercurySettings).one()
        assert stored.api_key_encrypted != "secret-token"

    def test_missing_key(self, client, auth_headers):
        response = client.get("/api/mercury/accounts", headers=auth_headers)
        assert response.status_code == 400

    def test_fetch_lists_new_credits(self, client, auth_headers, db_session, venue, monkeypatch):
        self._configure(db_session)
        _existing_payout(db_session, venue, "t1")
        self._use_transport(monkeypatch, [tx("t1"), tx("t2"), tx("t3", direction="debit")])

        response = client.post(
            "/api/mercury/fetch",
            json={"accountId": "acc-1", "startDate": "2024-05-01", "endDate": "2024-05-31"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert [t["id"] for t in data["transactions"]] == ["t2"]
        assert data["alreadyImported"] == 1

    def test_import_creates_payouts(self, client, auth_headers, db_session, venue, monkeypatch):
        self._configure(db_session)
        self._use_transport(monkeypatch, [tx("t1"), tx("t2", direction="debit")])

        response = client.post(
            "/api/mercury/import",
            json={"accountId": "acc-1", "transactionIds": ["t1", "t2", "missing"], "venueId": venue.id},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["imported"] == 1
        assert data["failed"] == 1
        assert data["skipped"] == 2
        assert db_session.query(Payout).one().mercury_transaction_id == "t1"

    def test_upstream_failure_is_502(self, client, auth_headers, monkeypatch):
        from app.http.controllers import mercury

        def handler(request):
            return httpx.Response(401, json={"error": "invalid token"})

        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(mercury, "build_mercury_client", lambda db: MercuryClient("bad", transport=transport))

        response = client.get("/api/mercury/accounts", headers=auth_headers)

        assert response.status_code == 502


class TestPayoutApi:
    def test_create_and_list(self, client, auth_headers, venue):
        created = client.post(
            "/api/payouts",
            json={"amount": 820.5, "venueId": venue.id, "description": "Weekly payout", "processedAt": "2024-05-03T00:00:00"},
            headers=auth_headers,
        )
        assert created.status_code == 201

        response = client.get("/api/payouts", params={"search": "weekly"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total"] == 1
        assert data["payouts"][0]["amount"] == 820.5

    def test_staff_cannot_create(self, client, staff_headers, venue):
        response = client.post("/api/payouts", json={"amount": 10, "venueId": venue.id}, headers=staff_headers)
        assert response.status_code == 403

    def test_listing_is_venue_scoped(self, client, staff_headers, db_session, venue, other_venue):
        _existing_payout(db_session, venue, "t1")
        _existing_payout(db_session, other_venue, "t2")

        response = client.get("/api/payouts", headers=staff_headers)

        assert [p["mercuryTransactionId"] for p in response.json()["payouts"]] == ["t1"]

    def test_negative_amount_is_rejected(self, client, auth_headers, db_session, venue):
        response = client.post("/api/payouts", json={"amount": -125.5, "venueId": venue.id}, headers=auth_headers)

        assert response.status_code == 400
        assert db_session.query(Payout).count() == 0

    def test_zero_amount_is_rejected(self, client, auth_headers, venue):
        response = client.post("/api/payouts", json={"amount": 0, "venueId": venue.id}, headers=auth_headers)
        assert response.status_code == 400

    def test_update_rejects_negative_amount(self, client, auth_headers, db_session, venue):
        _existing_payout(db_session, venue, "t1")
        payout = db_session.query(Payout).one()

        response = client.patch(f"/api/payouts/{payout.id}", json={"amount": -5}, headers=auth_headers)

        assert response.status_code == 400
        db_session.refresh(payout)
        assert payout.amount == 10


class TestMercuryImportDedup:
    def test_known_and_repeated_ids_are_not_fetched(self, client, auth_headers, db_session, venue, monkeypatch):
        from app.http.controllers import mercury

        db_session.add(MercurySettings(api_key_encrypted=encrypt_token("secret-token"), account_id="acc-1", enabled=True))
        db_session.commit()
        _existing_payout(db_session, venue, "t1")
        requested = []
        inner = mercury_transport([tx("t1"), tx("t2")])

        async def handle(request):
            requested.append(request.url.path.rsplit("/", 1)[-1])
            return await inner.handle_async_request(request)

        transport = httpx.MockTransport(handle)
        monkeypatch.setattr(mercury, "build_mercury_client", lambda db: MercuryClient("secret-token", transport=transport))

        response = client.post(
            "/api/mercury/import",
            json={"accountId": "acc-1", "transactionIds": ["t1", "t2", "t2"], "venueId": venue.id},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["imported"] == 1
        assert data["skipped"] == 2
        assert requested == ["t2"]


def payout_sync_transport(created, fail_external_ids=()):
    def handler(request):
        assert request.method == "POST"
        assert request.url.path.endswith("/account/acc-1/transactions")
        body = json.loads(request.content)
        if body["externalId"] in fail_external_ids:
            return httpx.Response(422, json={"error": "rejected"})
        created.append(body)
        return httpx.Response(200, json={"id": f"mt-{len(created)}"})

    return httpx.MockTransport(handler)


class TestMercurySync:
    def _configure(self, db_session, account_id="acc-1"):
        db_session.add(MercurySettings(api_key_encrypted=encrypt_token("secret-token"), account_id=account_id, enabled=True))
        db_session.commit()

    def _payout(self, db_session, venue, amount, **extra):
        payout = Payout(amount=amount, processed_at=datetime(2024, 5, 3), venue_id=venue.id, description="Weekly payout", **extra)
        db_session.add(payout)
        db_session.commit()
        return payout

    def _use_transport(self, monkeypatch, transport):
        from app.http.controllers import mercury

        monkeypatch.setattr(mercury, "build_mercury_client", lambda db: MercuryClient("secret-token", transport=transport))

    def test_pushes_unsynced_payouts_as_debits(self, client, auth_headers, db_session, venue, monkeypatch):
        self._configure(db_session)
        pending = self._payout(db_session, venue, 820.5, notes="May week 1")
        self._payout(db_session, venue, 100, synced_to_mercury=True, mercury_transaction_id="old")
        created = []
        self._use_transport(monkeypatch, payout_sync_transport(created))

        response = client.post("/api/mercury/sync", json={"syncAll": True}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["synced"] == 1
        assert created[0]["amount"] == 820.5
        assert created[0]["direction"] == "debit"
        assert created[0]["counterparty"] == {"name": "CICCIO"}
        assert created[0]["memo"] == "Weekly payout - May week 1"
        assert created[0]["externalId"] == f"payout-{pending.id}"
        db_session.refresh(pending)
        assert pending.synced_to_mercury is True
        assert pending.mercury_transaction_id == "mt-1"
        assert pending.synced_at is not None

    def test_rejected_payout_stays_unsynced(self, client, auth_headers, db_session, venue, monkeypatch):
        self._configure(db_session)
        good = self._payout(db_session, venue, 50)
        bad = self._payout(db_session, venue, 60)
        self._use_transport(monkeypatch, payout_sync_transport([], fail_external_ids={f"payout-{bad.id}"}))

        response = client.post("/api/mercury/sync", json={"payoutIds": [good.id, bad.id]}, headers=auth_headers)

        data = response.json()
        assert (data["synced"], data["failed"]) == (1, 1)
        assert data["errors"][0].startswith(f"Payout #{bad.id}:")
        db_session.refresh(bad)
        assert bad.synced_to_mercury is False

    def test_nothing_to_sync(self, client, auth_headers, db_session, monkeypatch):
        self._configure(db_session)
        self._use_transport(monkeypatch, payout_sync_transport([]))

        response = client.post("/api/mercury/sync", json={}, headers=auth_headers)

        assert response.json() == {"message": "No payouts to sync", "synced": 0, "failed": 0, "errors": []}

    def test_requires_account_id(self, client, auth_headers, db_session):
        self._configure(db_session, account_id=None)
        response = client.post("/api/mercury/sync", json={}, headers=auth_headers)
        assert response.status_code == 400


class TestMercuryConnectionTest:
    def test_valid_key(self, client, auth_headers, monkeypatch):
        from app.http.controllers import mercury

        transport = mercury_transport([])
        monkeypatch.setattr(mercury, "build_test_client", lambda key: MercuryClient(key, transport=transport))

        response = client.post("/api/mercury/test", json={"apiKey": "secret-token"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Connection successful", "accountsCount": 1}

    def test_rejected_key(self, client, auth_headers, monkeypatch):
        from app.http.controllers import mercury

        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "invalid token"}))
        monkeypatch.setattr(mercury, "build_test_client", lambda key: MercuryClient(key, transport=transport))

        response = client.post("/api/mercury/test", json={"apiKey": "wrong"}, headers=auth_headers)

        assert response.status_code == 400

    def test_staff_forbidden(self, client, staff_headers):
        response = client.post("/api/mercury/test", json={"apiKey": "x"}, headers=staff_headers)
        assert response.status_code == 403
