"""
CSV import tests: parsing, all-or-nothing rejection and the upload endpoint
"""
from datetime import datetime

import pytest

from app.models import Order, Venue
from app.services.csv_import import CsvParseError, import_csv_orders, parse_csv_text


class TestParseCsvText:
    def test_skips_header_and_blank_lines(self):
        rows = parse_csv_text("Date,Amount EGP\n\n2024-01-05,1000\r\n  \n2024-01-06T20:30:00Z, 2500.50 \n")

        assert [r.line for r in rows] == [1, 2]
        assert rows[0].processed_at == datetime(2024, 1, 5)
        assert rows[0].original_amount == 1000
        assert rows[1].processed_at == datetime(2024, 1, 6, 20, 30)
        assert rows[1].original_amount == 2500.5

    def test_no_header(self):
        rows = parse_csv_text("2024-01-05,1000")
        assert len(rows) == 1

    def test_amount_is_sanitized(self):
        rows = parse_csv_text("2024-01-05,EGP 1500")
        assert len(rows) == 1
        assert rows[0].original_amount == 1500

    def test_first_row_with_currency_label_is_data(self):
        rows = parse_csv_text("2024-01-05,EGP 1500\n2024-01-06,EGP 700")

        assert [r.line for r in rows] == [1, 2]
        assert [r.original_amount for r in rows] == [1500, 700]

    def test_header_without_digits_is_skipped(self):
        rows = parse_csv_text("Date,EGP Amount\n2024-01-05,1500")
        assert [r.original_amount for r in rows] == [1500]

    def test_empty_upload(self):
        with pytest.raises(CsvParseError) as exc:
            parse_csv_text(" \n \n")
        assert exc.value.errors == ["The uploaded file is empty."]

    def test_reports_every_bad_line(self):
        text = "date,amount\n2024-01-05,1000\n2024-01-06,abc\nnot-a-date,500\n2024-01-08\n"

        with pytest.raises(CsvParseError) as exc:
            parse_csv_text(text)

        assert exc.value.errors == [
            'Line 2: Invalid amount value "abc".',
            'Line 3: Invalid date "not-a-date".',
            "Line 4: Missing date or amount value.",
        ]


class TestImportCsvOrders:
    def test_imports_rows_through_reconcile(self, db_session):
        result = import_csv_orders(db_session, "date,amount\n2024-01-05,5000\n2024-01-06,2500", exchange_rate=50)

        assert result.imported == 2
        orders = db_session.query(Order).order_by(Order.processed_at).all()
        assert [o.order_number for o in orders] == ["#1001", "#1002"]
        first = orders[0]
        assert first.total_amount == 103.5
        assert first.original_amount == 5000
        assert first.exchange_rate == 50
        assert first.financial_status == "Paid"
        assert first.status == "Open"
        assert first.customer_name == "CSV Import"
        assert first.notes == "Imported via CSV"
        assert first.source == "csv"
        assert first.line_items == []
        assert db_session.query(Venue).one().slug == "ciccio"

    def test_invalid_rate_falls_back_to_default(self, db_session):
        import_csv_orders(db_session, "2024-01-05,4850", exchange_rate=0)
        assert db_session.query(Order).one().exchange_rate == 48.5

    def test_named_venue_and_customer(self, db_session):
        import_csv_orders(db_session, "2024-01-05,4850", venue_name="Sky Lounge", customer_name="Door sales")
        order = db_session.query(Order).one()
        assert order.venue.slug == "sky-lounge"
        assert order.customer_name == "Door sales"

    def test_bad_row_writes_nothing(self, db_session):
        with pytest.raises(CsvParseError):
            import_csv_orders(db_session, "date,amount\n2024-01-05,1000\n2024-01-06,abc")
        assert db_session.query(Order).count() == 0


class TestCsvImportApi:
    def test_upload_text(self, client, auth_headers, db_session):
        response = client.post(
            "/api/import/csv",
            json={"csv": "date,amount\n2024-01-05,5000", "exchangeRate": 50, "venue": "CICCIO"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["imported"] == 1
        assert data["totalProcessed"] == 1
        assert db_session.query(Order).one().total_amount == 103.5

    def test_upload_parsed_rows(self, client, auth_headers, db_session):
        response = client.post(
            "/api/import/csv",
            json={"orders": [
                {"processedAt": "2024-01-05T10:00:00Z", "originalAmount": 4850},
                {"processedAt": "2024-01-04T10:00:00Z", "originalAmount": 970},
            ]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["imported"] == 2
        earliest = db_session.query(Order).filter(Order.order_number == "#1001").one()
        assert earliest.original_amount == 970

    def test_bad_line_is_rejected(self, client, auth_headers, db_session):
        response = client.post(
            "/api/import/csv",
            json={"csv": "date,amount\n2024-01-05,1000\n2024-01-06,abc"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Invalid CSV"
        assert 'Line 2: Invalid amount value "abc".' in detail["errors"]
        assert db_session.query(Order).count() == 0

    def test_nothing_to_import(self, client, auth_headers):
        response = client.post("/api/import/csv", json={}, headers=auth_headers)
        assert response.status_code == 400

    def test_single_row_with_currency_label(self, client, auth_headers, db_session):
        response = client.post("/api/import/csv", json={"csv": "2024-01-05,EGP 1500"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["imported"] == 1
        assert db_session.query(Order).one().original_amount == 1500


class TestCsvImportVenueAccess:
    def test_staff_cannot_import_into_foreign_venue(self, client, staff_headers, other_venue, db_session):
        response = client.post(
            "/api/import/csv",
            json={"csv": "date,amount\n2024-03-01,4850", "venue": "Marina"},
            headers=staff_headers,
        )

        assert response.status_code == 403
        assert db_session.query(Order).count() == 0

    def test_staff_cannot_import_by_foreign_venue_id(self, client, staff_headers, other_venue, db_session):
        response = client.post(
            "/api/import/csv",
            json={"orders": [{"processedAt": "2024-03-01T10:00:00Z", "originalAmount": 4850}], "venueId": other_venue.id},
            headers=staff_headers,
        )

        assert response.status_code == 403
        assert db_session.query(Order).count() == 0

    def test_staff_cannot_create_venue_by_name(self, client, staff_headers, db_session):
        response = client.post(
            "/api/import/csv",
            json={"csv": "2024-03-01,4850", "venue": "Brand New Bar"},
            headers=staff_headers,
        )

        assert response.status_code == 403
        assert db_session.query(Venue).filter(Venue.slug == "brand-new-bar").first() is None

    def test_staff_defaults_to_own_venue(self, client, staff_headers, venue, other_venue, db_session):
        response = client.post("/api/import/csv", json={"csv": "2024-03-01,4850"}, headers=staff_headers)

        assert response.status_code == 200
        assert db_session.query(Order).one().venue_id == venue.id

    def test_staff_imports_into_own_venue_by_name(self, client, staff_headers, venue, db_session):
        response = client.post(
            "/api/import/csv",
            json={"csv": "2024-03-01,4850", "venue": "CICCIO"},
            headers=staff_headers,
        )

        assert response.status_code == 200
        assert db_session.query(Order).one().venue_id == venue.id
