"""
API REST para Frontend - Controle Financeiro Pessoal
Endpoints de autenticação, categorias, subcategorias, transações, dashboard e relatórios
"""
from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError as PydanticValidationError
from typing import Optional, Dict, Any, List
from datetime import datetime, date, timezone

import config
import reports
from auth_service import AuthService, load_profile, update_profile
from database import (
    AuthenticationError,
    ConfigurationError,
    DatabaseError,
    NotFoundError,
    ReferencedEntityError,
    ValidationError,
    create_user_client,
)
from financial_service import FinancialService, FinancialStateRegistry
from logging_setup import get_logger
from web_models import *

logger = get_logger("api")

app = FastAPI(
    title="Controle Financeiro - API REST",
    description="API REST para gestão de receitas, despesas, categorias e relatórios",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Segurança
security = HTTPBearer()

_auth_service = AuthService()
_registry = FinancialStateRegistry(create_user_client)


# ======= TRATAMENTO DE ERROS =======

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))


@app.exception_handler(ReferencedEntityError)
async def referenced_entity_error_handler(request: Request, exc: ReferencedEntityError):
    return _error(status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError):
    return _error(status.HTTP_502_BAD_GATEWAY, str(exc))


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Serviço indisponível: Supabase não configurado")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Erro inesperado em %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Erro interno do servidor")


# ======= DEPENDÊNCIAS =======

def get_auth_service() -> AuthService:
    return _auth_service


def get_registry() -> FinancialStateRegistry:
    return _registry


def get_user_client_factory():
    return create_user_client


def get_access_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    return credentials.credentials


def get_claims(
    token: str = Depends(get_access_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Valida o token e retorna as claims do usuário atual"""
    return auth_service.verify_access_token(token)


def get_financial_service(
    token: str = Depends(get_access_token),
    claims: Dict[str, Any] = Depends(get_claims),
    registry: FinancialStateRegistry = Depends(get_registry),
) -> FinancialService:
    return registry.get_or_load(claims["sub"], token)


def _parse_filter(**values) -> TransactionFilter:
    try:
        return TransactionFilter(**values)
    except PydanticValidationError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Filtro inválido"
        )


def transaction_filters(
    month: Optional[str] = None,
    year: Optional[str] = None,
    category_id: Optional[str] = None,
    status: Optional[str] = None,
    type: Optional[str] = None,
) -> TransactionFilter:
    return _parse_filter(month=month, year=year, category_id=category_id, status=status, type=type)


def period_filters(month: Optional[str] = None, year: Optional[str] = None) -> TransactionFilter:
    """Mês/ano do dashboard: sem parâmetro usa o mês atual, "all" remove o filtro"""
    today = date.today()
    return _parse_filter(
        month=today.month if month is None else month,
        year=today.year if year is None else year,
    )


def _dump(items) -> List[Dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


# ======= ENDPOINTS DE AUTENTICAÇÃO =======

@app.post("/api/auth/register", response_model=ApiResponse)
def register_user(
    user_data: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Registra novo usuário"""
    user, tokens = auth_service.register(user_data.email, user_data.password, user_data.name)

    if tokens is None:
        return ApiResponse(
            success=True,
            message="Cadastro realizado. Verifique seu email para confirmar a conta.",
            data={"user": user.model_dump()}
        )

    return ApiResponse(
        success=True,
        message="Usuário criado com sucesso",
        data={"user": user.model_dump(), "tokens": tokens.model_dump()}
    )


@app.post("/api/auth/login", response_model=ApiResponse)
def login_user(
    login_data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Realiza login do usuário"""
    user, tokens = auth_service.login(login_data.email, login_data.password)

    return ApiResponse(
        success=True,
        message="Login realizado com sucesso",
        data={"user": user.model_dump(), "tokens": tokens.model_dump()}
    )


@app.post("/api/auth/refresh", response_model=ApiResponse)
def refresh_token(
    refresh_data: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Renova token de acesso"""
    tokens = auth_service.refresh(refresh_data.refresh_token)

    return ApiResponse(
        success=True,
        message="Token renovado com sucesso",
        data={"tokens": tokens.model_dump()}
    )


@app.post("/api/auth/logout", response_model=ApiResponse)
def logout_user(
    token: str = Depends(get_access_token),
    claims: Dict[str, Any] = Depends(get_claims),
    auth_service: AuthService = Depends(get_auth_service),
    registry: FinancialStateRegistry = Depends(get_registry),
):
    """Encerra a sessão e descarta os dados em memória"""
    auth_service.logout(token)
    registry.discard(claims["sub"])

    return ApiResponse(
        success=True,
        message="Logout realizado com sucesso"
    )


@app.post("/api/auth/forgot-password", response_model=ApiResponse)
def forgot_password(
    reset_request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Solicita reset de senha"""
    auth_service.send_password_reset(reset_request.email)

    # Sempre retorna sucesso para não revelar se o email existe
    return ApiResponse(
        success=True,
        message="Se o email existir, você receberá um link para redefinir a senha"
    )


@app.post("/api/auth/reset-password", response_model=ApiResponse)
def reset_password(
    reset_data: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Define nova senha a partir do link de recuperação"""
    auth_service.reset_password(reset_data.access_token, reset_data.refresh_token, reset_data.new_password)

    return ApiResponse(
        success=True,
        message="Senha redefinida com sucesso"
    )


@app.get("/api/auth/me", response_model=ApiResponse)
def get_current_user_info(
    token: str = Depends(get_access_token),
    claims: Dict[str, Any] = Depends(get_claims),
    client_factory=Depends(get_user_client_factory),
):
    """Retorna informações do usuário atual"""
    user = load_profile(client_factory(token), claims)

    return ApiResponse(
        success=True,
        message="Informações do usuário",
        data={"user": user.model_dump()}
    )


@app.put("/api/auth/me", response_model=ApiResponse)
def update_current_user(
    profile_data: ProfileUpdate,
    token: str = Depends(get_access_token),
    claims: Dict[str, Any] = Depends(get_claims),
    client_factory=Depends(get_user_client_factory),
):
    """Atualiza nome e avatar do usuário atual"""
    client = client_factory(token)
    user = update_profile(client, load_profile(client, claims), profile_data)

    return ApiResponse(
        success=True,
        message="Perfil atualizado com sucesso",
        data={"user": user.model_dump()}
    )


# ======= ENDPOINTS DE CATEGORIAS =======

@app.get("/api/categories", response_model=ApiResponse)
def get_categories(
    type: Optional[TransactionType] = None,
    service: FinancialService = Depends(get_financial_service),
):
    """Lista categorias do usuário com subcategorias"""
    categories = service.categories_by_type(type)

    return ApiResponse(
        success=True,
        message="Categorias listadas com sucesso",
        data={"categories": _dump(categories)}
    )


@app.post("/api/categories", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    category_data: CategoryCreate,
    service: FinancialService = Depends(get_financial_service),
):
    """Cria uma nova categoria"""
    category = service.add_category(category_data.name, category_data.type)

    return ApiResponse(
        success=True,
        message="Categoria criada com sucesso",
        data=category.model_dump(mode="json")
    )


@app.put("/api/categories/{category_id}", response_model=ApiResponse)
def update_category(
    category_id: str,
    update_data: CategoryUpdate,
    service: FinancialService = Depends(get_financial_service),
):
    """Renomeia uma categoria"""
    category = service.update_category(category_id, update_data.name)

    return ApiResponse(
        success=True,
        message="Categoria atualizada com sucesso",
        data=category.model_dump(mode="json")
    )


@app.delete("/api/categories/{category_id}", response_model=ApiResponse)
def delete_category(
    category_id: str,
    service: FinancialService = Depends(get_financial_service),
):
    """Exclui uma categoria sem transações vinculadas"""
    service.delete_category(category_id)

    return ApiResponse(
        success=True,
        message="Categoria excluída com sucesso"
    )


@app.post(
    "/api/categories/{category_id}/subcategories",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_subcategory(
    category_id: str,
    subcategory_data: SubcategoryCreate,
    service: FinancialService = Depends(get_financial_service),
):
    """Cria uma subcategoria"""
    subcategory = service.add_subcategory(category_id, subcategory_data.name)

    return ApiResponse(
        success=True,
        message="Subcategoria criada com sucesso",
        data=subcategory.model_dump()
    )


@app.put("/api/subcategories/{subcategory_id}", response_model=ApiResponse)
def update_subcategory(
    subcategory_id: str,
    update_data: SubcategoryUpdate,
    service: FinancialService = Depends(get_financial_service),
):
    """Renomeia uma subcategoria"""
    subcategory = service.update_subcategory(subcategory_id, update_data.name)

    return ApiResponse(
        success=True,
        message="Subcategoria atualizada com sucesso",
        data=subcategory.model_dump()
    )


@app.delete("/api/subcategories/{subcategory_id}", response_model=ApiResponse)
def delete_subcategory(
    subcategory_id: str,
    service: FinancialService = Depends(get_financial_service),
):
    """Exclui uma subcategoria sem transações vinculadas"""
    service.delete_subcategory(subcategory_id)

    return ApiResponse(
        success=True,
        message="Subcategoria excluída com sucesso"
    )


# ======= ENDPOINTS DE TRANSAÇÕES =======

@app.get("/api/transactions", response_model=ApiResponse)
def get_transactions(
    filters: TransactionFilter = Depends(transaction_filters),
    service: FinancialService = Depends(get_financial_service),
):
    """Lista transações filtradas, agrupadas por mês"""
    transactions = reports.filter_transactions(service.transactions, filters)

    return ApiResponse(
        success=True,
        message="Transações listadas com sucesso",
        data={
            "transactions": _dump(transactions),
            "groups": _dump(reports.group_by_month(transactions)),
            "total": len(transactions),
        }
    )


@app.post("/api/transactions", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_transaction(
    transaction_data: TransactionCreate,
    service: FinancialService = Depends(get_financial_service),
):
    """Cria uma nova receita ou despesa"""
    transaction = service.add_transaction(transaction_data)

    return ApiResponse(
        success=True,
        message="Transação criada com sucesso",
        data=transaction.model_dump(mode="json")
    )


@app.put("/api/transactions/{transaction_id}", response_model=ApiResponse)
def update_transaction(
    transaction_id: str,
    update_data: TransactionUpdate,
    service: FinancialService = Depends(get_financial_service),
):
    """Atualiza uma transação"""
    transaction = service.update_transaction(transaction_id, update_data)

    return ApiResponse(
        success=True,
        message="Transação atualizada com sucesso",
        data=transaction.model_dump(mode="json")
    )


@app.patch("/api/transactions/{transaction_id}/status", response_model=ApiResponse)
def update_transaction_status(
    transaction_id: str,
    status_data: TransactionStatusUpdate,
    service: FinancialService = Depends(get_financial_service),
):
    """Marca uma despesa como paga ou pendente"""
    transaction = service.set_transaction_status(transaction_id, status_data.status)

    return ApiResponse(
        success=True,
        message="Status atualizado com sucesso",
        data=transaction.model_dump(mode="json")
    )


@app.delete("/api/transactions/{transaction_id}", response_model=ApiResponse)
def delete_transaction(
    transaction_id: str,
    service: FinancialService = Depends(get_financial_service),
):
    """Exclui uma transação"""
    service.delete_transaction(transaction_id)

    return ApiResponse(
        success=True,
        message="Transação excluída com sucesso"
    )


# ======= ENDPOINTS DE DASHBOARD E RELATÓRIOS =======

@app.get("/api/dashboard", response_model=ApiResponse)
def get_dashboard(
    filters: TransactionFilter = Depends(period_filters),
    service: FinancialService = Depends(get_financial_service),
):
    """Totais do período, transações recentes e distribuição por categoria"""
    transactions = reports.filter_transactions(service.transactions, filters)

    return ApiResponse(
        success=True,
        message="Dados do dashboard",
        data={
            "title": reports.dashboard_title(filters.month, filters.year),
            "filters": filters.model_dump(),
            "available_years": reports.available_years(service.transactions),
            "available_months": reports.available_months(service.transactions),
            "totals": reports.calculate_totals(transactions).model_dump(),
            "recent_transactions": _dump(reports.recent_transactions(transactions)),
            "income_by_category": _dump(reports.category_breakdown(transactions, service.categories, "income")),
            "expense_by_category": _dump(reports.category_breakdown(transactions, service.categories, "expense")),
        }
    )


@app.get("/api/summary/{transaction_type}", response_model=ApiResponse)
def get_type_summary(
    transaction_type: TransactionType,
    filters: TransactionFilter = Depends(transaction_filters),
    service: FinancialService = Depends(get_financial_service),
):
    """Visão de receitas ou despesas: tabela categoria x mês, indicadores e lista filtrada"""
    of_type = [t for t in service.transactions if t.type == transaction_type]
    filters = filters.model_copy(update={"type": transaction_type})
    filtered = reports.filter_transactions(of_type, filters)

    data = {
        "summary": reports.category_period_summary(of_type, transaction_type).model_dump(),
        "by_category": _dump(reports.category_breakdown(of_type, service.categories, transaction_type)),
        "groups": _dump(reports.group_by_month(filtered)),
        "available_years": reports.available_years(of_type),
        "available_months": reports.available_months(of_type),
        "total": sum(t.amount for t in of_type),
    }
    if transaction_type == "expense":
        data["kpis"] = reports.expense_kpis(of_type).model_dump()

    return ApiResponse(
        success=True,
        message="Resumo gerado com sucesso",
        data=data
    )


@app.get("/api/reports", response_model=ApiResponse)
def get_reports(
    month: Optional[str] = None,
    year: Optional[str] = None,
    service: FinancialService = Depends(get_financial_service),
):
    """Relatório consolidado do período selecionado (padrão: todos)"""
    filters = _parse_filter(month=month, year=year)
    transactions = reports.filter_transactions(service.transactions, filters)

    return ApiResponse(
        success=True,
        message="Relatório gerado com sucesso",
        data={
            "filters": filters.model_dump(),
            "available_years": reports.available_years(service.transactions),
            "available_months": reports.available_months(service.transactions),
            "totals": reports.calculate_totals(transactions).model_dump(),
            "income_by_category": _dump(reports.category_breakdown(transactions, service.categories, "income")),
            "expense_by_category": _dump(reports.category_breakdown(transactions, service.categories, "expense")),
            "consolidated": reports.consolidated_report(transactions).model_dump(),
            "transactions": _dump(reports.recent_transactions(transactions, limit=len(transactions))),
        }
    )


@app.post("/api/sync", response_model=ApiResponse)
def sync_data(service: FinancialService = Depends(get_financial_service)):
    """Recarrega categorias e transações do Supabase"""
    service.load()

    return ApiResponse(
        success=True,
        message="Dados sincronizados",
        data={
            "categories": len(service.categories),
            "transactions": len(service.transactions),
        }
    )


# ENDPOINT DE HEALTH CHECK

@app.get("/api/health")
def health_check():
    """Endpoint para verificar saúde da API"""
    return {
        "status": "healthy",
        "supabase_configured": config.is_supabase_configured(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# MIDDLEWARE PARA LOGS
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Registra método, caminho, status e duração de cada requisição"""
    start_time = datetime.now()
    response = await call_next(request)
    process_time = (datetime.now() - start_time).total_seconds()

    logger.info("%s %s - %s - %.4fs", request.method, request.url.path, response.status_code, process_time)

    return response
