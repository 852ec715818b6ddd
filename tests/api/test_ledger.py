"""
Tests for ledger API endpoints.

These test the HTTP layer: status codes, response format,
and error handling. Business logic is tested in
test_ledger_service.py.
"""

from decimal import Decimal


def _setup(client, headers):
    response = client.post("/ledger/setup", headers=headers)
    return {a["code"]: a["id"] for a in response.json()}


def _entry(cash_id, sales_id, debit="500.00", credit="500.00"):
    return {
        "entry_date": "2025-10-01",
        "narration": "Counter sale",
        "lines": [
            {"account_id": cash_id, "debit_amount": debit},
            {"account_id": sales_id, "credit_amount": credit},
        ],
    }


class TestChartOfAccounts:

    def test_setup_returns_201(self, client, headers):
        response = client.post("/ledger/setup", headers=headers)
        assert response.status_code == 201
        codes = {a["code"] for a in response.json()}
        assert {"CASH", "BANK", "SALES", "CGST-OUT", "SGST-OUT", "IGST-OUT"} <= codes

    def test_create_account_returns_data(self, client, headers):
        response = client.post("/ledger/accounts", headers=headers, json={
            "code": "RENT",
            "name": "Office Rent",
            "account_type": "expense",
            "group_name": "Indirect Expenses",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "RENT"
        assert data["account_type"] == "expense"
        assert data["is_active"] is True
        assert data["is_system"] is False
        assert Decimal(data["current_balance"]) == Decimal("0")

    def test_duplicate_code_returns_409(self, client, headers):
        body = {"code": "RENT", "name": "Rent", "account_type": "expense"}
        client.post("/ledger/accounts", headers=headers, json=body)
        response = client.post("/ledger/accounts", headers=headers, json=body)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "conflict"

    def test_renaming_system_account_returns_409(self, client, headers):
        ids = _setup(client, headers)
        response = client.patch(
            f"/ledger/accounts/{ids['CASH']}", headers=headers, json={"name": "Petty Cash"}
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "system_account_immutable"

    def test_deactivate(self, client, headers):
        account = client.post("/ledger/accounts", headers=headers, json={
            "code": "RENT", "name": "Rent", "account_type": "expense",
        }).json()

        response = client.post(f"/ledger/accounts/{account['id']}/deactivate", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        listed = client.get("/ledger/accounts", headers=headers).json()
        assert account["id"] not in [a["id"] for a in listed]

    def test_missing_tenant_header_returns_422(self, client):
        response = client.get("/ledger/accounts")
        assert response.status_code == 422

    def test_invalid_tenant_header_returns_400(self, client):
        response = client.get("/ledger/accounts", headers={"X-Tenant-ID": "0"})
        assert response.status_code == 400


class TestPostEntries:

    def test_post_balanced_entry_returns_201(self, client, headers):
        ids = _setup(client, headers)
        response = client.post(
            "/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"])
        )
        assert response.status_code == 201
        data = response.json()
        assert data["entry_number"] == "JE-2025-00001"
        assert data["transaction_type"] == "manual"
        assert data["created_by"] == "accountant-1"
        assert len(data["lines"]) == 2
        assert Decimal(data["total_debit"]) == Decimal("500.00")

    def test_unbalanced_entry_returns_422(self, client, headers):
        ids = _setup(client, headers)
        response = client.post(
            "/ledger/entries", headers=headers,
            json=_entry(ids["CASH"], ids["SALES"], credit="300.00"),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "unbalanced_entry"

    def test_two_sided_line_returns_400(self, client, headers):
        ids = _setup(client, headers)
        body = _entry(ids["CASH"], ids["SALES"])
        body["lines"][0]["credit_amount"] = "500.00"
        body["lines"][1]["debit_amount"] = "500.00"
        response = client.post("/ledger/entries", headers=headers, json=body)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_journal_line"

    def test_cash_above_limit_returns_422(self, client, headers):
        ids = _setup(client, headers)
        response = client.post(
            "/ledger/entries", headers=headers,
            json=_entry(ids["CASH"], ids["SALES"], debit="250000.00", credit="250000.00"),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "cash_limit_exceeded"

    def test_get_and_list_entries(self, client, headers):
        ids = _setup(client, headers)
        posted = client.post(
            "/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"])
        ).json()

        response = client.get(f"/ledger/entries/{posted['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["narration"] == "Counter sale"

        listed = client.get(
            "/ledger/entries", headers=headers, params={"transaction_type": "manual"}
        ).json()
        assert [e["id"] for e in listed] == [posted["id"]]

    def test_unknown_entry_returns_404(self, client, headers):
        response = client.get("/ledger/entries/999", headers=headers)
        assert response.status_code == 404


class TestReverse:

    def test_reverse_returns_201(self, client, headers):
        ids = _setup(client, headers)
        posted = client.post(
            "/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"])
        ).json()

        response = client.post(
            f"/ledger/entries/{posted['id']}/reverse", headers=headers,
            json={"narration": "Entered twice"},
        )
        assert response.status_code == 201
        assert response.json()["transaction_type"] == "reversal"
        assert response.json()["narration"] == "Entered twice"

        balance = client.get(f"/ledger/accounts/{ids['CASH']}/balance", headers=headers).json()
        assert Decimal(balance["balance"]) == Decimal("0")

    def test_second_reverse_returns_409(self, client, headers):
        ids = _setup(client, headers)
        posted = client.post(
            "/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"])
        ).json()
        client.post(f"/ledger/entries/{posted['id']}/reverse", headers=headers)

        response = client.post(f"/ledger/entries/{posted['id']}/reverse", headers=headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "already_posted"


class TestBalanceAndLines:

    def test_balance_in_natural_direction(self, client, headers):
        ids = _setup(client, headers)
        client.post("/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"]))

        cash = client.get(f"/ledger/accounts/{ids['CASH']}/balance", headers=headers).json()
        sales = client.get(f"/ledger/accounts/{ids['SALES']}/balance", headers=headers).json()

        assert Decimal(cash["balance"]) == Decimal("500.00")
        assert cash["side"] == "debit"
        assert cash["currency"] == "INR"
        assert Decimal(sales["balance"]) == Decimal("500.00")
        assert sales["side"] == "credit"

    def test_lines(self, client, headers):
        ids = _setup(client, headers)
        client.post("/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"]))

        response = client.get(f"/ledger/accounts/{ids['CASH']}/lines", headers=headers)
        assert response.status_code == 200
        [line] = response.json()
        assert line["entry_number"] == "JE-2025-00001"
        assert Decimal(line["debit_amount"]) == Decimal("500.00")

    def test_nonexistent_account_returns_404(self, client, headers):
        response = client.get("/ledger/accounts/999/balance", headers=headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "account_not_found"


class TestIntegrity:

    def test_integrity_report(self, client, headers):
        ids = _setup(client, headers)
        client.post("/ledger/entries", headers=headers, json=_entry(ids["CASH"], ids["SALES"]))

        response = client.get("/ledger/integrity", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["is_balanced"] is True
        assert data["entry_count"] == 1
        assert data["drifted_accounts"] == []
