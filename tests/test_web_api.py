"""
HTTP-level tests for the REST API.

The auth service, registry and per-user client factory are overridden in
conftest so every request runs against the seeded Supabase stub.
"""
import pytest

from tests.conftest import USER_ID


class TestHealth:
    def test_health_is_public(self, api_client):
        response = api_client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "supabase_configured" in body


class TestAuthEndpoints:
    def test_login(self, api_client):
        response = api_client.post("/api/auth/login", json={"email": "ana@example.com", "password": "segredo123"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["name"] == "Ana Souza"
        assert data["tokens"]["access_token"] == f"access-{USER_ID}"

    def test_login_failure_is_401(self, api_client):
        response = api_client.post("/api/auth/login", json={"email": "ana@example.com", "password": "errada"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Email ou senha incorretos"

    def test_login_rejects_malformed_email(self, api_client):
        response = api_client.post("/api/auth/login", json={"email": "ana", "password": "segredo123"})
        assert response.status_code == 422

    def test_register(self, api_client):
        response = api_client.post(
            "/api/auth/register",
            json={"name": "  Bia  ", "email": "bia@example.com", "password": "segredo456"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["name"] == "Bia"
        assert "tokens" in data

    def test_register_pending_confirmation(self, api_client, supabase_stub):
        supabase_stub.auth.require_confirmation = True

        response = api_client.post(
            "/api/auth/register",
            json={"name": "Bia", "email": "bia@example.com", "password": "segredo456"},
        )

        assert response.status_code == 200
        assert "Verifique seu email" in response.json()["message"]
        assert "tokens" not in response.json()["data"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Bia", "email": "bia@example.com", "password": "123"},
            {"name": "   ", "email": "bia@example.com", "password": "segredo456"},
        ],
    )
    def test_register_validation(self, api_client, payload):
        assert api_client.post("/api/auth/register", json=payload).status_code == 422

    def test_refresh(self, api_client):
        response = api_client.post("/api/auth/refresh", json={"refresh_token": f"refresh-{USER_ID}"})
        assert response.status_code == 200
        assert response.json()["data"]["tokens"]["refresh_token"] == f"refresh-{USER_ID}"

    def test_refresh_failure(self, api_client):
        response = api_client.post("/api/auth/refresh", json={"refresh_token": "lixo"})
        assert response.status_code == 401

    def test_forgot_password_always_succeeds(self, api_client, supabase_stub):
        supabase_stub.auth.fail_reset_email = True

        response = api_client.post("/api/auth/forgot-password", json={"email": "ninguem@example.com"})

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_reset_password(self, api_client, supabase_stub):
        response = api_client.post(
            "/api/auth/reset-password",
            json={
                "access_token": "access-user-1",
                "refresh_token": "refresh-user-1",
                "new_password": "novasenha",
                "confirm_password": "novasenha",
            },
        )

        assert response.status_code == 200
        assert supabase_stub.auth.password_updates == ["novasenha"]

    def test_reset_password_mismatch(self, api_client, supabase_stub):
        response = api_client.post(
            "/api/auth/reset-password",
            json={
                "access_token": "access-user-1",
                "refresh_token": "refresh-user-1",
                "new_password": "novasenha",
                "confirm_password": "outrasenha",
            },
        )

        assert response.status_code == 422
        assert supabase_stub.auth.password_updates == []

    def test_me(self, api_client, auth_headers):
        response = api_client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["user"] == {
            "id": USER_ID,
            "name": "Ana Souza",
            "email": "ana@example.com",
            "avatar": None,
        }

    def test_update_me(self, api_client, auth_headers, supabase_stub):
        response = api_client.put("/api/auth/me", headers=auth_headers, json={"name": "Ana S."})

        assert response.status_code == 200
        assert response.json()["data"]["user"]["name"] == "Ana S."
        assert supabase_stub.rows("profiles")[0]["name"] == "Ana S."

    def test_update_me_rejects_null_name(self, api_client, auth_headers, supabase_stub):
        response = api_client.put("/api/auth/me", headers=auth_headers, json={"name": None})

        assert response.status_code == 422
        assert supabase_stub.rows("profiles")[0]["name"] == "Ana Souza"

    def test_missing_token_is_rejected(self, api_client):
        assert api_client.get("/api/auth/me").status_code in (401, 403)

    def test_invalid_token_is_401(self, api_client, make_token):
        headers = {"Authorization": f"Bearer {make_token(audience='anon')}"}
        response = api_client.get("/api/categories", headers=headers)

        assert response.status_code == 401
        assert response.json()["detail"] == "Token inválido"

    def test_logout_discards_cached_state(self, api_client, auth_headers, registry, supabase_stub):
        api_client.get("/api/categories", headers=auth_headers)
        first = registry.get_or_load(USER_ID, "token")

        response = api_client.post("/api/auth/logout", headers=auth_headers)

        assert response.status_code == 200
        assert len(supabase_stub.auth.signed_out) == 1
        assert registry.get_or_load(USER_ID, "token") is not first


class TestCategoryEndpoints:
    def test_list_by_type(self, api_client, auth_headers):
        response = api_client.get("/api/categories", params={"type": "expense"}, headers=auth_headers)

        assert response.status_code == 200
        categories = response.json()["data"]["categories"]
        assert [c["id"] for c in categories] == ["cat-moradia", "cat-lazer", "cat-saude"]
        assert [s["name"] for s in categories[0]["subcategories"]] == ["Aluguel", "Luz"]

    def test_create_trims_name(self, api_client, auth_headers):
        response = api_client.post(
            "/api/categories", headers=auth_headers, json={"name": "  Educação ", "type": "expense"}
        )

        assert response.status_code == 201
        assert response.json()["data"]["name"] == "Educação"

    def test_create_requires_valid_type(self, api_client, auth_headers):
        response = api_client.post("/api/categories", headers=auth_headers, json={"name": "X", "type": "other"})
        assert response.status_code == 422

    def test_rename(self, api_client, auth_headers):
        response = api_client.put("/api/categories/cat-lazer", headers=auth_headers, json={"name": "Diversão"})

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Diversão"

    def test_rename_unknown_is_404(self, api_client, auth_headers):
        response = api_client.put("/api/categories/cat-outro", headers=auth_headers, json={"name": "X"})
        assert response.status_code == 404

    def test_delete_referenced_is_409(self, api_client, auth_headers):
        response = api_client.delete("/api/categories/cat-moradia", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"] == (
            "Não é possível excluir esta categoria pois existem despesas cadastradas para ela."
        )

    def test_delete(self, api_client, auth_headers):
        assert api_client.delete("/api/categories/cat-saude", headers=auth_headers).status_code == 200

        listed = api_client.get("/api/categories", headers=auth_headers).json()["data"]["categories"]
        assert "cat-saude" not in [c["id"] for c in listed]

    def test_subcategory_lifecycle(self, api_client, auth_headers):
        created = api_client.post(
            "/api/categories/cat-lazer/subcategories", headers=auth_headers, json={"name": "Cinema"}
        )
        assert created.status_code == 201
        sub_id = created.json()["data"]["id"]

        renamed = api_client.put(f"/api/subcategories/{sub_id}", headers=auth_headers, json={"name": "Teatro"})
        assert renamed.json()["data"]["name"] == "Teatro"

        assert api_client.delete(f"/api/subcategories/{sub_id}", headers=auth_headers).status_code == 200
        assert api_client.delete(f"/api/subcategories/{sub_id}", headers=auth_headers).status_code == 404

    def test_delete_referenced_subcategory_is_409(self, api_client, auth_headers):
        response = api_client.delete("/api/subcategories/sub-aluguel", headers=auth_headers)
        assert response.status_code == 409


class TestTransactionEndpoints:
    def test_list_with_filters(self, api_client, auth_headers):
        response = api_client.get(
            "/api/transactions", params={"month": "1", "year": "2024", "type": "expense"}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert {t["id"] for t in data["transactions"]} == {"t2", "t3"}
        assert data["total"] == 2
        assert data["groups"][0]["period"] == "2024-01"

    def test_list_all(self, api_client, auth_headers):
        response = api_client.get("/api/transactions", params={"month": "all"}, headers=auth_headers)
        data = response.json()["data"]

        assert data["total"] == 6
        assert [g["period"] for g in data["groups"]] == ["2024-02", "2024-01", "2023-12"]

    def test_invalid_filter(self, api_client, auth_headers):
        response = api_client.get("/api/transactions", params={"month": "13"}, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["detail"] == "Filtro inválido"

    def test_create(self, api_client, auth_headers):
        response = api_client.post(
            "/api/transactions",
            headers=auth_headers,
            json={
                "type": "expense",
                "amount": 89.9,
                "description": "Conta de luz",
                "category_id": "cat-moradia",
                "subcategory_id": "sub-luz",
                "date": "2024-03-02",
            },
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["date"] == "2024-03-02"
        assert data["status"] == "paid"

    @pytest.mark.parametrize("amount", [0, -10])
    def test_create_rejects_non_positive_amount(self, api_client, auth_headers, amount):
        response = api_client.post(
            "/api/transactions",
            headers=auth_headers,
            json={"type": "expense", "amount": amount, "category_id": "cat-lazer", "date": "2024-03-02"},
        )
        assert response.status_code == 422

    def test_create_with_wrong_subcategory(self, api_client, auth_headers):
        response = api_client.post(
            "/api/transactions",
            headers=auth_headers,
            json={
                "type": "expense",
                "amount": 10,
                "category_id": "cat-moradia",
                "subcategory_id": "sub-fixo",
                "date": "2024-03-02",
            },
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "A subcategoria não pertence à categoria selecionada."

    def test_update_and_status(self, api_client, auth_headers):
        updated = api_client.put("/api/transactions/t3", headers=auth_headers, json={"amount": 250})
        assert updated.json()["data"]["amount"] == 250

        patched = api_client.patch("/api/transactions/t3/status", headers=auth_headers, json={"status": "paid"})
        assert patched.status_code == 200
        assert patched.json()["data"]["status"] == "paid"

    @pytest.mark.parametrize("field", ["date", "type", "amount", "category_id", "status"])
    def test_update_with_null_required_field_is_rejected(self, api_client, auth_headers, field):
        response = api_client.put("/api/transactions/t2", headers=auth_headers, json={field: None})

        assert response.status_code == 422
        dashboard = api_client.get("/api/dashboard", params={"month": "all", "year": "all"}, headers=auth_headers)
        assert dashboard.status_code == 200
        assert dashboard.json()["data"]["totals"]["expense"] == 3500.5

    def test_update_can_clear_description(self, api_client, auth_headers):
        response = api_client.put("/api/transactions/t2", headers=auth_headers, json={"description": None})

        assert response.status_code == 200
        assert response.json()["data"]["description"] == ""

    def test_status_of_income_is_rejected(self, api_client, auth_headers):
        response = api_client.patch("/api/transactions/t1/status", headers=auth_headers, json={"status": "pending"})

        assert response.status_code == 422
        assert response.json()["detail"] == "Apenas despesas podem ser marcadas como pagas ou pendentes."

    def test_delete(self, api_client, auth_headers):
        assert api_client.delete("/api/transactions/t6", headers=auth_headers).status_code == 200
        assert api_client.delete("/api/transactions/t6", headers=auth_headers).status_code == 404

    def test_backend_failure_is_502(self, api_client, auth_headers, supabase_stub):
        api_client.get("/api/categories", headers=auth_headers)
        supabase_stub.fail_on.add(("transactions", "delete"))

        response = api_client.delete("/api/transactions/t6", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["detail"].startswith("Erro ao excluir transação")


class TestDashboardAndReports:
    def test_dashboard_all_periods(self, api_client, auth_headers):
        response = api_client.get("/api/dashboard", params={"month": "all", "year": "all"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["title"] == "Dashboard - Resumo Geral"
        assert data["totals"] == {"income": 10000.0, "expense": 3500.5, "balance": 6499.5}
        assert [t["id"] for t in data["recent_transactions"]] == ["t5", "t4", "t3", "t2", "t1"]
        assert data["available_years"] == ["2023", "2024"]
        assert [c["name"] for c in data["expense_by_category"]] == ["Moradia", "Lazer"]

    def test_dashboard_single_month(self, api_client, auth_headers):
        response = api_client.get("/api/dashboard", params={"month": "1", "year": "2024"}, headers=auth_headers)
        data = response.json()["data"]

        assert data["title"] == "Dashboard - Resumo de Janeiro de 2024"
        assert data["totals"] == {"income": 5000.0, "expense": 1700.0, "balance": 3300.0}

    def test_dashboard_defaults_to_current_month(self, api_client, auth_headers):
        data = api_client.get("/api/dashboard", headers=auth_headers).json()["data"]

        assert data["filters"]["month"] is not None
        assert data["filters"]["year"] is not None

    def test_expense_summary_has_kpis(self, api_client, auth_headers):
        response = api_client.get("/api/summary/expense", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["kpis"] == {"total": 3500.5, "paid": 3300.5, "pending": 200.0}
        assert data["summary"]["periods"] == ["12/23", "01/24", "02/24"]
        assert data["summary"]["category_totals"]["cat-moradia"] == 3000.0

    def test_income_summary(self, api_client, auth_headers):
        data = api_client.get("/api/summary/income", headers=auth_headers).json()["data"]

        assert "kpis" not in data
        assert data["total"] == 10000.0

    def test_summary_rejects_unknown_type(self, api_client, auth_headers):
        assert api_client.get("/api/summary/other", headers=auth_headers).status_code == 422

    def test_reports(self, api_client, auth_headers):
        response = api_client.get("/api/reports", params={"year": "2024"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["consolidated"]["periods"] == ["01/24", "02/24"]
        assert data["consolidated"]["consolidated"]["02/24"] == {"income": 5000.0, "expense": 1500.0, "balance": 3500.0}
        assert len(data["transactions"]) == 5

    def test_sync_reloads(self, api_client, auth_headers, supabase_stub):
        api_client.get("/api/categories", headers=auth_headers)
        supabase_stub.tables["categories"].append(
            {"id": "cat-nova", "user_id": USER_ID, "name": "Nova", "type": "income", "created_at": "2023-06-01"}
        )

        response = api_client.post("/api/sync", headers=auth_headers)

        assert response.json()["data"] == {"categories": 5, "transactions": 6}
