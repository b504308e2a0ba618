# backend/tests/routers/test_transactions_api.py
"""
API layer tests for ledger endpoints.

Tests:
- POST /transactions
- GET /transactions
"""

from decimal import Decimal

from tests.conftest import add_ticker, auth_headers_for, create_user


class TestCreateTransaction:

    def test_deposit(self, client, auth_headers):
        response = client.post(
            "/transactions",
            json={"transaction_type": "DEPOSIT", "quantity": "1000", "currency": "cad"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["symbol"] == "CASH"
        assert data["currency"] == "CAD"
        assert Decimal(data["quantity"]) == Decimal("1000")
        assert Decimal(data["price"]) == Decimal("1")

    def test_buy_known_symbol(self, client, db, auth_headers):
        add_ticker(db, "AAPL")

        response = client.post(
            "/transactions",
            json={
                "symbol": "aapl",
                "transaction_type": "BUY",
                "quantity": "10",
                "price": "150.25",
                "currency": "USD",
                "date": "2024-01-10T15:00:00Z",
            },
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["symbol"] == "AAPL"
        assert data["date"].startswith("2024-01-10T15:00:00")

    def test_unknown_symbol_is_400(self, client, auth_headers):
        response = client.post(
            "/transactions",
            json={"symbol": "ZZZZ", "transaction_type": "BUY", "quantity": "1", "price": "1", "currency": "USD"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "UnknownSymbolError"
        assert response.json()["details"] == {"field": "symbol"}

    def test_zero_quantity_is_400(self, client, auth_headers):
        response = client.post(
            "/transactions",
            json={"transaction_type": "DEPOSIT", "quantity": "0", "currency": "CAD"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "quantity"}

    def test_unsupported_currency_is_400(self, client, auth_headers):
        response = client.post(
            "/transactions",
            json={"transaction_type": "DEPOSIT", "quantity": "5", "currency": "EUR"},
            headers=auth_headers,
        )

        assert response.status_code == 400

    def test_unknown_type_is_422(self, client, auth_headers):
        response = client.post(
            "/transactions",
            json={"transaction_type": "DIVIDEND", "quantity": "5", "currency": "CAD"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_requires_auth(self, client):
        response = client.post(
            "/transactions",
            json={"transaction_type": "DEPOSIT", "quantity": "5", "currency": "CAD"},
        )

        assert response.status_code == 401


class TestListTransactions:

    def test_lists_own_ledger_newest_first(self, client, db, user, auth_headers):
        other = create_user(db, email="other@example.com")
        for amount, day in (("1", "01"), ("2", "03"), ("3", "02")):
            client.post(
                "/transactions",
                json={
                    "transaction_type": "DEPOSIT",
                    "quantity": amount,
                    "currency": "CAD",
                    "date": f"2024-01-{day}T12:00:00Z",
                },
                headers=auth_headers,
            )
        client.post(
            "/transactions",
            json={"transaction_type": "DEPOSIT", "quantity": "99", "currency": "CAD"},
            headers=auth_headers_for(other),
        )

        response = client.get("/transactions", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert [Decimal(t["quantity"]) for t in data["items"]] == [Decimal("2"), Decimal("3"), Decimal("1")]
