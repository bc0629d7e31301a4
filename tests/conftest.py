"""Shared fixtures: seeded Supabase stub, loaded service and API test client.

The seed belongs to ``user-1`` and covers both transaction types, three
months across a year boundary, a missing status, and one category plus one
subcategory with no transactions so deletions can succeed.
"""
import jwt
import pytest
from fastapi.testclient import TestClient

from auth_service import AuthService
from financial_service import FinancialService, FinancialStateRegistry
from tests.helpers.supabase_stub import SupabaseStub

USER_ID = "user-1"
JWT_SECRET = "test-jwt-secret-with-at-least-32-bytes"


def seed_tables():
    return {
        "profiles": [
            {"id": USER_ID, "name": "Ana Souza", "email": "ana@example.com", "avatar_url": None},
        ],
        "categories": [
            {"id": "cat-salario", "user_id": USER_ID, "name": "Salário", "type": "income", "created_at": "2023-01-01T00:00:01"},
            {"id": "cat-moradia", "user_id": USER_ID, "name": "Moradia", "type": "expense", "created_at": "2023-01-01T00:00:02"},
            {"id": "cat-lazer", "user_id": USER_ID, "name": "Lazer", "type": "expense", "created_at": "2023-01-01T00:00:03"},
            {"id": "cat-saude", "user_id": USER_ID, "name": "Saúde", "type": "expense", "created_at": "2023-01-01T00:00:04"},
            {"id": "cat-outro", "user_id": "user-2", "name": "Outro", "type": "expense", "created_at": "2023-01-01T00:00:05"},
        ],
        "subcategories": [
            {"id": "sub-luz", "category_id": "cat-moradia", "name": "Luz", "created_at": "2023-01-02T00:00:02"},
            {"id": "sub-aluguel", "category_id": "cat-moradia", "name": "Aluguel", "created_at": "2023-01-02T00:00:01"},
            {"id": "sub-fixo", "category_id": "cat-salario", "name": "Fixo", "created_at": "2023-01-02T00:00:03"},
        ],
        "transactions": [
            {"id": "t1", "user_id": USER_ID, "type": "income", "amount": 5000.0, "description": "Salário janeiro",
             "category_id": "cat-salario", "subcategory_id": "sub-fixo", "date": "2024-01-05", "status": "paid"},
            {"id": "t2", "user_id": USER_ID, "type": "expense", "amount": 1500.0, "description": "Aluguel",
             "category_id": "cat-moradia", "subcategory_id": "sub-aluguel", "date": "2024-01-10", "status": "paid"},
            {"id": "t3", "user_id": USER_ID, "type": "expense", "amount": 200.0, "description": None,
             "category_id": "cat-lazer", "subcategory_id": None, "date": "2024-01-20", "status": "pending"},
            {"id": "t4", "user_id": USER_ID, "type": "income", "amount": 5000.0, "description": "Salário fevereiro",
             "category_id": "cat-salario", "subcategory_id": "sub-fixo", "date": "2024-02-05", "status": None},
            {"id": "t5", "user_id": USER_ID, "type": "expense", "amount": 1500.0, "description": "Aluguel",
             "category_id": "cat-moradia", "subcategory_id": "sub-aluguel", "date": "2024-02-10", "status": None},
            {"id": "t6", "user_id": USER_ID, "type": "expense", "amount": 300.5, "description": "Ceia",
             "category_id": "cat-lazer", "subcategory_id": None, "date": "2023-12-24", "status": "paid"},
            {"id": "t7", "user_id": "user-2", "type": "expense", "amount": 99.0, "description": "Outro usuário",
             "category_id": "cat-outro", "subcategory_id": None, "date": "2024-01-15", "status": "paid"},
        ],
    }


@pytest.fixture
def supabase_stub():
    stub = SupabaseStub(seed_tables())
    stub.auth.add_account(USER_ID, "ana@example.com", "segredo123", name="Ana")
    return stub


@pytest.fixture
def service(supabase_stub):
    svc = FinancialService(supabase_stub, USER_ID)
    svc.load()
    return svc


@pytest.fixture
def make_token():
    def _make(user_id: str = USER_ID, audience: str = "authenticated", secret: str = JWT_SECRET, **extra):
        payload = {"sub": user_id, "email": "ana@example.com", "aud": audience, "user_metadata": {"name": "Ana"}}
        payload.update(extra)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_service(supabase_stub):
    return AuthService(
        client_factory=lambda: supabase_stub,
        user_client_factory=lambda token: supabase_stub,
        jwt_secret=JWT_SECRET,
    )


@pytest.fixture
def registry(supabase_stub):
    return FinancialStateRegistry(lambda token: supabase_stub)


@pytest.fixture
def api_client(supabase_stub, auth_service, registry):
    import web_api

    web_api.app.dependency_overrides[web_api.get_auth_service] = lambda: auth_service
    web_api.app.dependency_overrides[web_api.get_registry] = lambda: registry
    web_api.app.dependency_overrides[web_api.get_user_client_factory] = lambda: (lambda token: supabase_stub)
    try:
        yield TestClient(web_api.app, raise_server_exceptions=False)
    finally:
        web_api.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}
