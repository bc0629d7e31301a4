"""
Modelos Pydantic da API REST de Controle Financeiro
Entidades (usuário, categorias, subcategorias, transações), payloads e filtros
"""
from pydantic import BaseModel, EmailStr, Field, StringConstraints, field_validator, model_validator
from typing import Optional, List, Literal, Dict, Any, Union
from typing_extensions import Annotated
from datetime import date as date_type

TransactionType = Literal["income", "expense"]
TransactionStatus = Literal["paid", "pending"]

DEFAULT_USER_NAME = "Usuário"

# Nomes são aparados; string só com espaços é rejeitada
CategoryName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
PersonName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


def _reject_nulls(model: BaseModel, fields) -> None:
    """Campos enviados explicitamente como null em atualizações parciais"""
    for field in fields:
        if field in model.model_fields_set and getattr(model, field) is None:
            raise ValueError(f"O campo '{field}' não pode ser nulo")


# Modelos base de resposta
class ApiResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None


# Entidades
class User(BaseModel):
    id: str
    name: str
    email: str
    avatar: Optional[str] = None


class Subcategory(BaseModel):
    id: str
    name: str
    category_id: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subcategory":
        return cls(id=row["id"], name=row["name"], category_id=row["category_id"])


class Category(BaseModel):
    id: str
    name: str
    type: TransactionType
    subcategories: List[Subcategory] = []

    @classmethod
    def from_row(cls, row: Dict[str, Any], subcategories: List[Subcategory] = None) -> "Category":
        return cls(
            id=row["id"],
            name=row["name"],
            type=row["type"],
            subcategories=subcategories or [],
        )

    def has_subcategory(self, subcategory_id: str) -> bool:
        return any(sub.id == subcategory_id for sub in self.subcategories)


class Transaction(BaseModel):
    id: str
    type: TransactionType
    amount: float
    description: str = ""
    category_id: str = ""
    subcategory_id: str = ""
    date: date_type
    user_id: str
    status: Optional[TransactionStatus] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        """Converte linha da tabela transactions (campos anuláveis viram string vazia)"""
        return cls(
            id=row["id"],
            type=row["type"],
            amount=row["amount"],
            description=row.get("description") or "",
            category_id=row.get("category_id") or "",
            subcategory_id=row.get("subcategory_id") or "",
            date=row["date"],
            user_id=row["user_id"],
            status=row.get("status"),
        )

    @property
    def effective_status(self) -> str:
        """Transações sem status são consideradas pagas"""
        return self.status or "paid"


# Modelos de autenticação
class RegisterRequest(BaseModel):
    name: PersonName
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    access_token: str
    refresh_token: str
    new_password: str = Field(..., min_length=6, max_length=128)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("As senhas não coincidem")
        return self


class ProfileUpdate(BaseModel):
    name: Optional[PersonName] = None
    avatar: Optional[str] = None

    @model_validator(mode="after")
    def name_not_null(self):
        _reject_nulls(self, ("name",))
        return self


class SessionTokens(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None


# Modelos de categoria
class CategoryCreate(BaseModel):
    name: CategoryName
    type: TransactionType


class CategoryUpdate(BaseModel):
    name: CategoryName


class SubcategoryCreate(BaseModel):
    name: CategoryName


class SubcategoryUpdate(BaseModel):
    name: CategoryName


# Modelos de transação
class TransactionCreate(BaseModel):
    type: TransactionType
    amount: float = Field(..., gt=0)
    description: str = Field("", max_length=200)
    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    date: date_type
    status: TransactionStatus = "paid"


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=200)
    category_id: Optional[str] = Field(None, min_length=1)
    subcategory_id: Optional[str] = None
    date: Optional[date_type] = None
    status: Optional[TransactionStatus] = None

    @model_validator(mode="after")
    def required_fields_not_null(self):
        # Apenas descrição e subcategoria podem ser limpas
        _reject_nulls(self, ("type", "amount", "category_id", "date", "status"))
        return self


class TransactionStatusUpdate(BaseModel):
    status: TransactionStatus


# Filtros
class TransactionFilter(BaseModel):
    """Filtros de listagem e relatórios. "all" ou ausente significa sem restrição"""
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=1900, le=9999)
    category_id: Optional[str] = None
    status: Optional[TransactionStatus] = None
    type: Optional[TransactionType] = None

    @field_validator("month", "year", "category_id", "status", "type", mode="before")
    @classmethod
    def all_means_none(cls, v: Union[str, int, None]):
        if isinstance(v, str) and v.strip().lower() in ("all", ""):
            return None
        return v
