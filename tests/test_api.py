"""
HTTP API tests: auth, orders, venues, users, products, Shopify stores
"""
from datetime import datetime

from app.models import Order, Payout, Product, ShopifyStore, User, UserRole, Venue
from app.services.credentials import decrypt_token
from app.services.venues import merge_duplicate_venues


def _order(db, venue, number, processed_at, **fields):
    order = Order(order_number=number, processed_at=processed_at, venue_id=venue.id, **fields)
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


class TestAuth:
    def test_login(self, client, admin_user):
        response = client.post("/api/auth/login", json={"email": "Admin@Synvora.test", "password": "admin-password"})

        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert data["user"]["role"] == "ADMIN"

    def test_login_wrong_password(self, client, admin_user):
        response = client.post("/api/auth/login", json={"email": "admin@synvora.test", "password": "nope"})
        assert response.status_code == 401

    def test_me(self, client, staff_headers, venue):
        response = client.get("/api/auth/me", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["venueIds"] == [venue.id]

    def test_bad_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_validation_errors_are_400(self, client):
        response = client.post("/api/auth/login", json={"email": "no-at-sign", "password": "x"})
        assert response.status_code == 400
        assert "Validation error" in response.json()["message"]


class TestOrdersApi:
    def test_create_manual_order(self, client, auth_headers, venue):
        response = client.post("/api/orders", json={
            "customerName": "Walk-in",
            "originalAmount": 4850,
            "exchangeRate": 48.5,
            "venueId": venue.id,
            "tags": "door, vip",
            "lineItems": [{"productName": "Ticket", "quantity": 2, "price": 50, "total": 100}],
        }, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["orderNumber"] == "#1001"
        assert data["totalAmount"] == 103.5
        assert data["financialStatus"] == "Paid"
        assert data["tags"] == ["door", "vip"]
        assert data["source"] == "manual"
        assert len(data["lineItems"]) == 1

    def test_default_rate_and_supplied_number(self, client, auth_headers, venue):
        response = client.post("/api/orders", json={"orderNumber": "1500", "originalAmount": 970, "venueId": venue.id}, headers=auth_headers)

        data = response.json()
        assert data["orderNumber"] == "#1500"
        assert data["exchangeRate"] == 48.5
        assert data["totalAmount"] == 20.7

    def test_duplicate_order_number(self, client, auth_headers, db_session, venue):
        _order(db_session, venue, "#1500", datetime(2024, 1, 1))

        response = client.post("/api/orders", json={"orderNumber": "#1500", "venueId": venue.id}, headers=auth_headers)

        assert response.status_code == 409

    def test_staff_cannot_create_in_foreign_venue(self, client, staff_headers, other_venue):
        response = client.post("/api/orders", json={"venueId": other_venue.id}, headers=staff_headers)
        assert response.status_code == 403

    def test_list_with_month_and_metrics(self, client, auth_headers, db_session, venue):
        _order(db_session, venue, "#1001", datetime(2024, 5, 2), total_amount=103.5, original_amount=4850, exchange_rate=48.5, fulfillment_status="Fulfilled")
        _order(db_session, venue, "#1002", datetime(2024, 5, 20), total_amount=50)
        _order(db_session, venue, "#1003", datetime(2024, 6, 1), total_amount=10)

        response = client.get("/api/orders", params={"month": "2024-05"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [o["orderNumber"] for o in data["orders"]] == ["#1002", "#1001"]
        metrics = data["metrics"]
        assert metrics["ordersCount"] == 2
        assert metrics["totalRevenue"] == 153.5
        assert metrics["averageOrderValue"] == 76.75
        assert abs(metrics["totalPayout"] - (98.25 + 49.125)) < 1e-9
        assert metrics["totalTicketsValue"] == 4850
        assert metrics["pendingFulfillment"] == 1

    def test_invalid_month(self, client, auth_headers):
        assert client.get("/api/orders", params={"month": "May"}, headers=auth_headers).status_code == 400

    def test_listing_is_venue_scoped(self, client, staff_headers, db_session, venue, other_venue):
        _order(db_session, venue, "#1001", datetime(2024, 5, 2))
        _order(db_session, other_venue, "#1002", datetime(2024, 5, 3))

        data = client.get("/api/orders", headers=staff_headers).json()

        assert [o["orderNumber"] for o in data["orders"]] == ["#1001"]

    def test_user_without_venues_sees_nothing(self, client, db_session, venue):
        from app.auth import create_access_token, get_password_hash
        from app.models import UserRole

        loner = User(email="loner@synvora.test", password_hash=get_password_hash("loner-password"), role=UserRole.USER)
        db_session.add(loner)
        db_session.commit()
        _order(db_session, venue, "#1001", datetime(2024, 5, 2))
        headers = {"Authorization": f"Bearer {create_access_token(data={'sub': loner.id, 'role': 'USER'})}"}

        data = client.get("/api/orders", headers=headers).json()

        assert data["orders"] == []
        assert data["metrics"]["ordersCount"] == 0

    def test_foreign_order_is_forbidden(self, client, staff_headers, db_session, other_venue):
        order = _order(db_session, other_venue, "#1001", datetime(2024, 5, 2))
        assert client.get(f"/api/orders/{order.id}", headers=staff_headers).status_code == 403

    def test_update_recomputes_total(self, client, auth_headers, db_session, venue):
        order = _order(db_session, venue, "#1001", datetime(2024, 5, 2), original_amount=4850, exchange_rate=48.5, total_amount=103.5)

        response = client.patch(f"/api/orders/{order.id}", json={
            "exchangeRate": 50,
            "originalAmount": 5000,
            "lineItems": [{"productName": "Table", "quantity": 1, "price": 100, "total": 100}],
        }, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["totalAmount"] == 103.5
        assert data["exchangeRate"] == 50
        assert [i["productName"] for i in data["lineItems"]] == ["Table"]

    def test_update_requires_admin(self, client, staff_headers, db_session, venue):
        order = _order(db_session, venue, "#1001", datetime(2024, 5, 2))
        assert client.patch(f"/api/orders/{order.id}", json={"notes": "x"}, headers=staff_headers).status_code == 403

    def test_delete_and_bulk_delete(self, client, auth_headers, db_session, venue):
        first = _order(db_session, venue, "#1001", datetime(2024, 5, 2))
        second = _order(db_session, venue, "#1002", datetime(2024, 5, 3))
        third = _order(db_session, venue, "#1003", datetime(2024, 5, 4))

        assert client.delete(f"/api/orders/{first.id}", headers=auth_headers).status_code == 204
        response = client.post("/api/orders/bulk-delete", json={"ids": [second.id, third.id]}, headers=auth_headers)

        assert response.json()["deleted"] == 2
        assert db_session.query(Order).count() == 0

    def test_export_csv(self, client, auth_headers, db_session, venue):
        _order(db_session, venue, "#1001", datetime(2024, 5, 2), total_amount=103.5, original_amount=4850, exchange_rate=48.5)

        response = client.get("/api/orders/export", params={"month": "2024-05"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "orders-2024-05.csv" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Order Number,")
        assert lines[1].startswith("#1001,")
        assert "98.25" in lines[1]


class TestVenuesApi:
    def test_create_and_duplicate(self, client, auth_headers):
        created = client.post("/api/venues", json={"name": "Sky Lounge"}, headers=auth_headers)
        assert created.status_code == 201
        assert created.json()["slug"] == "sky-lounge"

        assert client.post("/api/venues", json={"name": "sky  lounge"}, headers=auth_headers).status_code == 409

    def test_staff_sees_own_venues(self, client, staff_headers, venue, other_venue):
        data = client.get("/api/venues", headers=staff_headers).json()
        assert [v["id"] for v in data["venues"]] == [venue.id]

    def test_delete_in_use(self, client, auth_headers, db_session, venue):
        _order(db_session, venue, "#1001", datetime(2024, 5, 2))
        assert client.delete(f"/api/venues/{venue.id}", headers=auth_headers).status_code == 409

    def test_rename_updates_slug(self, client, auth_headers, db_session, venue):
        response = client.patch(f"/api/venues/{venue.id}", json={"name": " Ciccio Beach "}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["name"] == "Ciccio Beach"
        assert response.json()["slug"] == "ciccio-beach"

    def test_rename_to_taken_name(self, client, auth_headers, venue, other_venue):
        response = client.patch(f"/api/venues/{venue.id}", json={"name": "MARINA"}, headers=auth_headers)
        assert response.status_code == 409

    def test_rename_keeps_own_name(self, client, auth_headers, venue):
        response = client.patch(f"/api/venues/{venue.id}", json={"name": "Ciccio"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["slug"] == "ciccio"

    def test_rename_missing_venue(self, client, auth_headers):
        assert client.patch("/api/venues/999", json={"name": "Nowhere"}, headers=auth_headers).status_code == 404

    def test_rename_requires_admin(self, client, staff_headers, venue):
        assert client.patch(f"/api/venues/{venue.id}", json={"name": "Mine"}, headers=staff_headers).status_code == 403

    def test_merge_without_duplicates(self, client, auth_headers, venue, other_venue):
        response = client.post("/api/venues/merge-duplicates", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"message": "No duplicate venues found", "merged": []}

    def test_merge_duplicates(self, client, auth_headers, db_session, venue):
        duplicate = Venue(name="Ciccio!", slug="ciccio-bang")
        db_session.add(duplicate)
        db_session.commit()
        _order(db_session, duplicate, "#1001", datetime(2024, 5, 2))

        response = client.post("/api/venues/merge-duplicates", headers=auth_headers)

        assert response.status_code == 200
        merged = response.json()["merged"]
        assert len(merged) == 1
        assert db_session.query(Venue).count() == 1


class TestMergeDuplicateVenues:
    def test_folds_duplicates_into_busiest_venue(self, db_session, venue, staff_user):
        duplicate = Venue(name="ciccio!", slug="ciccio-bang")
        db_session.add(duplicate)
        db_session.commit()
        duplicate_id = duplicate.id
        _order(db_session, venue, "#1001", datetime(2024, 5, 1))
        _order(db_session, venue, "#1002", datetime(2024, 5, 2))
        _order(db_session, duplicate, "#1003", datetime(2024, 5, 3))
        db_session.add(Payout(amount=5, processed_at=datetime(2024, 5, 4), venue_id=duplicate_id))
        db_session.add_all([
            Product(name="Ticket", sku="TCK", local_price=100, venue_id=venue.id),
            Product(name="Old ticket", sku="TCK", local_price=90, venue_id=duplicate_id),
            Product(name="VIP table", sku="VIP", local_price=500, venue_id=duplicate_id),
        ])
        door = User(email="door@synvora.test", password_hash="x", role=UserRole.USER)
        door.venues.append(duplicate)
        staff_user.venues.append(duplicate)
        db_session.add(door)
        db_session.commit()

        merged = merge_duplicate_venues(db_session)

        assert merged == [{
            "duplicateId": duplicate_id,
            "duplicateName": "ciccio!",
            "mergedInto": venue.id,
            "ordersTransferred": 1,
            "payoutsTransferred": 1,
        }]
        assert [v.id for v in db_session.query(Venue).all()] == [venue.id]
        assert {o.venue_id for o in db_session.query(Order).all()} == {venue.id}
        assert db_session.query(Payout).one().venue_id == venue.id
        products = {(p.name, p.venue_id) for p in db_session.query(Product).all()}
        assert products == {("Ticket", venue.id), ("VIP table", venue.id)}
        db_session.refresh(door)
        db_session.refresh(staff_user)
        assert [v.id for v in door.venues] == [venue.id]
        assert [v.id for v in staff_user.venues] == [venue.id]

    def test_distinct_names_are_left_alone(self, db_session, venue, other_venue):
        assert merge_duplicate_venues(db_session) == []
        assert db_session.query(Venue).count() == 2


class TestUsersApi:
    def test_create_with_venues(self, client, auth_headers, db_session, venue):
        response = client.post("/api/users", json={
            "email": "Door@Synvora.test",
            "password": "door-password",
            "name": "Door",
            "venueIds": [venue.id],
        }, headers=auth_headers)

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["email"] == "door@synvora.test"
        assert user["role"] == "USER"
        assert user["venueIds"] == [venue.id]

        login = client.post("/api/auth/login", json={"email": "door@synvora.test", "password": "door-password"})
        assert login.status_code == 200

    def test_duplicate_email(self, client, auth_headers, staff_user):
        response = client.post("/api/users", json={"email": "staff@synvora.test", "password": "long-enough"}, headers=auth_headers)
        assert response.status_code == 409

    def test_update_memberships(self, client, auth_headers, staff_user, other_venue):
        response = client.patch(f"/api/users/{staff_user.id}", json={"venueIds": [other_venue.id], "role": "ADMIN"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["user"]["venueIds"] == [other_venue.id]
        assert response.json()["user"]["role"] == "ADMIN"

    def test_staff_forbidden(self, client, staff_headers):
        assert client.get("/api/users", headers=staff_headers).status_code == 403

    def test_cannot_delete_self(self, client, auth_headers, admin_user):
        assert client.delete(f"/api/users/{admin_user.id}", headers=auth_headers).status_code == 400


class TestProductsApi:
    def test_sku_unique_per_venue(self, client, auth_headers, venue, other_venue):
        body = {"name": "Ticket", "sku": "TCK", "localPrice": 500, "venueId": venue.id}
        assert client.post("/api/products", json=body, headers=auth_headers).status_code == 201
        assert client.post("/api/products", json=body, headers=auth_headers).status_code == 409
        assert client.post("/api/products", json={**body, "venueId": other_venue.id}, headers=auth_headers).status_code == 201

    def test_update_and_scoped_list(self, client, auth_headers, staff_headers, venue, other_venue):
        created = client.post("/api/products", json={"name": "Ticket", "localPrice": 500, "venueId": venue.id}, headers=auth_headers).json()
        client.post("/api/products", json={"name": "Other", "localPrice": 100, "venueId": other_venue.id}, headers=auth_headers)

        updated = client.patch(f"/api/products/{created['id']}", json={"localPrice": 650, "active": False}, headers=auth_headers).json()
        assert updated["localPrice"] == 650
        assert updated["active"] is False

        names = [p["name"] for p in client.get("/api/products", headers=staff_headers).json()["products"]]
        assert names == ["Ticket"]


class TestShopifyStoresApi:
    def test_create_encrypts_token(self, client, auth_headers, db_session, venue):
        response = client.post("/api/shopify-stores", json={
            "storeDomain": "CiccioShop",
            "accessToken": "shpat_secret",
            "venueId": venue.id,
        }, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["storeDomain"] == "ciccioshop.myshopify.com"
        assert "accessToken" not in data
        store = db_session.query(ShopifyStore).one()
        assert store.access_token != "shpat_secret"
        assert decrypt_token(store.access_token) == "shpat_secret"

    def test_duplicate_domain(self, client, auth_headers, shopify_store, venue):
        response = client.post("/api/shopify-stores", json={
            "storeDomain": "https://ciccio-test.myshopify.com/",
            "accessToken": "x",
            "venueId": venue.id,
        }, headers=auth_headers)
        assert response.status_code == 409

    def test_delete_keeps_orders(self, client, auth_headers, db_session, shopify_store, venue):
        order = _order(db_session, venue, "#1001", datetime(2024, 5, 2), shopify_store_id=shopify_store.id)

        assert client.delete(f"/api/shopify-stores/{shopify_store.id}", headers=auth_headers).status_code == 204

        db_session.refresh(order)
        assert order.shopify_store_id is None
        assert db_session.query(Venue).count() == 1


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["service"] == "api"
