"""
Dados financeiros do usuário: categorias, subcategorias e transações
O estado em memória espelha a última leitura ou alteração bem-sucedida no Supabase
"""
import threading
import time
from collections import OrderedDict
from typing import List, Optional, Dict, Any, Callable

from pydantic import ValidationError as PydanticValidationError

import config
from database import (
    DatabaseError,
    NotFoundError,
    ReferencedEntityError,
    ValidationError,
    error_message,
)
from logging_setup import get_logger
from web_models import (
    Category,
    Subcategory,
    Transaction,
    TransactionCreate,
    TransactionUpdate,
)

logger = get_logger("financial")

TYPE_LABELS_PLURAL = {"income": "receitas", "expense": "despesas"}
TYPE_LABELS = {"income": "receita", "expense": "despesa"}


class FinancialService:
    def __init__(self, client, user_id: str):
        self.supabase = client
        self.user_id = user_id
        self.categories: List[Category] = []
        self.transactions: List[Transaction] = []
        self.loaded = False

    # ======= CARREGAMENTO =======

    def load(self) -> None:
        """Carrega categorias e transações do usuário"""
        logger.info("Carregando dados financeiros do usuário %s", self.user_id)
        self.load_categories()
        self.load_transactions()
        self.loaded = True

    def load_categories(self) -> List[Category]:
        """Busca categorias com suas subcategorias, na ordem de criação"""
        try:
            result = (
                self.supabase.table("categories")
                .select("*")
                .eq("user_id", self.user_id)
                .order("created_at", desc=False)
                .execute()
            )
        except Exception as e:
            logger.error("Erro ao carregar categorias: %s", error_message(e))
            self.categories = []
            raise DatabaseError("Erro ao carregar categorias.")

        rows = result.data or []
        subcategory_rows = []
        if rows:
            try:
                sub_result = (
                    self.supabase.table("subcategories")
                    .select("*")
                    .in_("category_id", [row["id"] for row in rows])
                    .order("created_at", desc=False)
                    .execute()
                )
                subcategory_rows = sub_result.data or []
            except Exception as e:
                # Continua sem subcategorias
                logger.error("Erro ao carregar subcategorias: %s", error_message(e))

        self.categories = [
            Category.from_row(
                row,
                [Subcategory.from_row(sub) for sub in subcategory_rows if sub["category_id"] == row["id"]],
            )
            for row in rows
        ]
        logger.info("Categorias carregadas: %d", len(self.categories))
        return self.categories

    def load_transactions(self) -> List[Transaction]:
        """Busca transações do usuário, mais recentes primeiro"""
        try:
            result = (
                self.supabase.table("transactions")
                .select("*")
                .eq("user_id", self.user_id)
                .order("date", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("Erro ao carregar transações: %s", error_message(e))
            self.transactions = []
            raise DatabaseError("Erro ao carregar transações.")

        self.transactions = [Transaction.from_row(row) for row in result.data or []]
        logger.info("Transações carregadas: %d", len(self.transactions))
        return self.transactions

    # ======= CONSULTAS LOCAIS =======

    def get_category(self, category_id: str) -> Category:
        for category in self.categories:
            if category.id == category_id:
                return category
        raise NotFoundError("Categoria não encontrada")

    def find_subcategory(self, subcategory_id: str) -> Subcategory:
        for category in self.categories:
            for subcategory in category.subcategories:
                if subcategory.id == subcategory_id:
                    return subcategory
        raise NotFoundError("Subcategoria não encontrada")

    def get_transaction(self, transaction_id: str) -> Transaction:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        raise NotFoundError("Transação não encontrada")

    def categories_by_type(self, category_type: Optional[str] = None) -> List[Category]:
        if category_type is None:
            return list(self.categories)
        return [c for c in self.categories if c.type == category_type]

    # ======= CATEGORIAS =======

    def add_category(self, name: str, category_type: str) -> Category:
        logger.info("Adicionando categoria: %s (%s)", name, category_type)
        try:
            result = self.supabase.table("categories").insert({
                "user_id": self.user_id,
                "name": name,
                "type": category_type,
            }).execute()
        except Exception as e:
            logger.error("Erro ao adicionar categoria: %s", error_message(e))
            raise DatabaseError(f"Erro ao adicionar categoria: {error_message(e)}")

        if not result.data:
            logger.error("Nenhum dado retornado ao inserir categoria")
            raise DatabaseError("Erro ao adicionar categoria.")

        category = Category.from_row(result.data[0])
        self.categories.append(category)
        return category

    def update_category(self, category_id: str, name: str) -> Category:
        category = self.get_category(category_id)
        logger.info("Atualizando categoria %s", category_id)
        try:
            self.supabase.table("categories").update({"name": name}).eq("id", category_id).eq("user_id", self.user_id).execute()
        except Exception as e:
            logger.error("Erro ao atualizar categoria: %s", error_message(e))
            raise DatabaseError(f"Erro ao atualizar categoria: {error_message(e)}")

        category.name = name
        return category

    def delete_category(self, category_id: str) -> None:
        """Exclui a categoria se nenhuma transação estiver vinculada a ela"""
        category = self.get_category(category_id)
        logger.info("Excluindo categoria %s", category_id)
        try:
            linked = self.supabase.table("transactions").select("id").eq("category_id", category_id).limit(1).execute()
        except Exception as e:
            logger.error("Erro ao verificar transações: %s", error_message(e))
            raise DatabaseError("Erro ao verificar transações vinculadas.")

        if linked.data:
            raise ReferencedEntityError(
                f"Não é possível excluir esta categoria pois existem "
                f"{TYPE_LABELS_PLURAL[category.type]} cadastradas para ela."
            )

        try:
            self.supabase.table("categories").delete().eq("id", category_id).eq("user_id", self.user_id).execute()
        except Exception as e:
            logger.error("Erro ao excluir categoria: %s", error_message(e))
            raise DatabaseError("Erro ao excluir categoria.")

        self.categories = [c for c in self.categories if c.id != category_id]
        self.transactions = [t for t in self.transactions if t.category_id != category_id]

    # ======= SUBCATEGORIAS =======

    def add_subcategory(self, category_id: str, name: str) -> Subcategory:
        category = self.get_category(category_id)
        logger.info("Adicionando subcategoria em %s: %s", category_id, name)
        try:
            result = self.supabase.table("subcategories").insert({
                "category_id": category_id,
                "name": name,
            }).execute()
        except Exception as e:
            logger.error("Erro ao adicionar subcategoria: %s", error_message(e))
            raise DatabaseError(f"Erro ao adicionar subcategoria: {error_message(e)}")

        if not result.data:
            logger.error("Nenhum dado retornado ao inserir subcategoria")
            raise DatabaseError("Erro ao adicionar subcategoria.")

        subcategory = Subcategory.from_row(result.data[0])
        category.subcategories.append(subcategory)
        return subcategory

    def update_subcategory(self, subcategory_id: str, name: str) -> Subcategory:
        subcategory = self.find_subcategory(subcategory_id)
        logger.info("Atualizando subcategoria %s", subcategory_id)
        try:
            self.supabase.table("subcategories").update({"name": name}).eq("id", subcategory_id).execute()
        except Exception as e:
            logger.error("Erro ao atualizar subcategoria: %s", error_message(e))
            raise DatabaseError(f"Erro ao atualizar subcategoria: {error_message(e)}")

        subcategory.name = name
        return subcategory

    def delete_subcategory(self, subcategory_id: str) -> None:
        """Exclui a subcategoria se nenhuma transação estiver vinculada a ela"""
        subcategory = self.find_subcategory(subcategory_id)
        logger.info("Excluindo subcategoria %s", subcategory_id)
        try:
            linked = (
                self.supabase.table("transactions")
                .select("id, category_id")
                .eq("subcategory_id", subcategory_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("Erro ao verificar transações: %s", error_message(e))
            raise DatabaseError("Erro ao verificar transações vinculadas.")

        if linked.data:
            category = self.get_category(subcategory.category_id)
            raise ReferencedEntityError(
                f"Não é possível excluir esta subcategoria pois existem "
                f"{TYPE_LABELS_PLURAL[category.type]} cadastradas para ela."
            )

        try:
            self.supabase.table("subcategories").delete().eq("id", subcategory_id).execute()
        except Exception as e:
            logger.error("Erro ao excluir subcategoria: %s", error_message(e))
            raise DatabaseError("Erro ao excluir subcategoria.")

        for category in self.categories:
            category.subcategories = [s for s in category.subcategories if s.id != subcategory_id]
        self.transactions = [t for t in self.transactions if t.subcategory_id != subcategory_id]

    # ======= TRANSAÇÕES =======

    def _validate_classification(self, transaction_type: str, category_id: str, subcategory_id: Optional[str]) -> None:
        """Tipo deve coincidir com o da categoria e a subcategoria deve pertencer a ela"""
        try:
            category = self.get_category(category_id)
        except NotFoundError:
            raise ValidationError("Categoria não encontrada")

        if category.type != transaction_type:
            raise ValidationError(
                f"A categoria '{category.name}' é de {TYPE_LABELS_PLURAL[category.type]} "
                f"e não pode ser usada em uma {TYPE_LABELS[transaction_type]}."
            )

        if subcategory_id:
            if not category.has_subcategory(subcategory_id):
                raise ValidationError("A subcategoria não pertence à categoria selecionada.")
        elif category.subcategories:
            raise ValidationError("Por favor, selecione uma subcategoria.")

    def add_transaction(self, transaction_data: TransactionCreate) -> Transaction:
        self._validate_classification(
            transaction_data.type, transaction_data.category_id, transaction_data.subcategory_id
        )
        label = TYPE_LABELS[transaction_data.type]
        logger.info("Adicionando %s de %.2f", label, transaction_data.amount)
        try:
            result = self.supabase.table("transactions").insert({
                "user_id": self.user_id,
                "type": transaction_data.type,
                "amount": transaction_data.amount,
                "description": transaction_data.description,
                "category_id": transaction_data.category_id,
                "subcategory_id": transaction_data.subcategory_id or None,
                "date": transaction_data.date.isoformat(),
                "status": transaction_data.status,
            }).execute()
        except Exception as e:
            logger.error("Erro ao adicionar transação: %s", error_message(e))
            raise DatabaseError(f"Erro ao adicionar {label}: {error_message(e)}")

        if not result.data:
            logger.error("Nenhum dado retornado ao inserir transação")
            raise DatabaseError(f"Erro ao adicionar {label}.")

        transaction = Transaction.from_row(result.data[0])
        self.transactions.insert(0, transaction)
        return transaction

    def update_transaction(self, transaction_id: str, transaction_data: TransactionUpdate) -> Transaction:
        current = self.get_transaction(transaction_id)
        changes = transaction_data.model_dump(exclude_unset=True)
        if not changes:
            return current

        for key in ("description", "subcategory_id"):
            if key in changes and changes[key] is None:
                changes[key] = ""
        try:
            merged = Transaction.model_validate({**current.model_dump(), **changes})
        except PydanticValidationError:
            raise ValidationError("Dados da transação inválidos")
        if {"type", "category_id", "subcategory_id"} & changes.keys():
            self._validate_classification(merged.type, merged.category_id, merged.subcategory_id)

        update_dict: Dict[str, Any] = {}
        for key, value in changes.items():
            if key == "date":
                update_dict["date"] = value.isoformat()
            elif key == "subcategory_id":
                update_dict["subcategory_id"] = value or None
            else:
                update_dict[key] = value

        label = TYPE_LABELS[merged.type]
        logger.info("Atualizando transação %s", transaction_id)
        try:
            self.supabase.table("transactions").update(update_dict).eq("id", transaction_id).eq("user_id", self.user_id).execute()
        except Exception as e:
            logger.error("Erro ao atualizar transação: %s", error_message(e))
            raise DatabaseError(f"Erro ao atualizar {label}: {error_message(e)}")

        self.transactions = [merged if t.id == transaction_id else t for t in self.transactions]
        return merged

    def set_transaction_status(self, transaction_id: str, status: str) -> Transaction:
        """Marca uma despesa como paga ou pendente"""
        if self.get_transaction(transaction_id).type != "expense":
            raise ValidationError("Apenas despesas podem ser marcadas como pagas ou pendentes.")
        return self.update_transaction(transaction_id, TransactionUpdate(status=status))

    def delete_transaction(self, transaction_id: str) -> None:
        self.get_transaction(transaction_id)
        logger.info("Excluindo transação %s", transaction_id)
        try:
            self.supabase.table("transactions").delete().eq("id", transaction_id).eq("user_id", self.user_id).execute()
        except Exception as e:
            logger.error("Erro ao excluir transação: %s", error_message(e))
            raise DatabaseError(f"Erro ao excluir transação: {error_message(e)}")

        self.transactions = [t for t in self.transactions if t.id != transaction_id]


class _RegistryEntry:
    def __init__(self, service: FinancialService, last_used: float):
        self.service = service
        self.last_used = last_used
        self.load_lock = threading.Lock()


class FinancialStateRegistry:
    """Mantém um FinancialService carregado por usuário autenticado

    Entradas sem uso há mais de ``idle_timeout`` segundos são descartadas e,
    acima de ``max_entries``, a menos usada recentemente sai primeiro.
    """

    def __init__(
        self,
        client_factory: Callable[[str], Any],
        idle_timeout: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_factory = client_factory
        self.idle_timeout = config.STATE_IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self.max_entries = max(1, config.STATE_MAX_USERS if max_entries is None else max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, _RegistryEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def _evict_idle(self, now: float) -> None:
        # Ordem do OrderedDict = ordem de último uso
        while self._entries:
            user_id, entry = next(iter(self._entries.items()))
            if now - entry.last_used < self.idle_timeout:
                break
            del self._entries[user_id]
            logger.info("Dados financeiros expirados para o usuário %s", user_id)

    def get_or_load(self, user_id: str, access_token: str) -> FinancialService:
        """Retorna o estado do usuário, carregando do Supabase no primeiro acesso"""
        now = self._clock()
        with self._lock:
            self._evict_idle(now)
            entry = self._entries.get(user_id)
            if entry is None:
                entry = _RegistryEntry(FinancialService(self.client_factory(access_token), user_id), now)
                self._entries[user_id] = entry
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.info("Limite de usuários em memória atingido, descartando %s", evicted)
            else:
                # Token pode ter sido renovado desde o último acesso
                entry.service.supabase.postgrest.auth(access_token)
                entry.last_used = now
                self._entries.move_to_end(user_id)

        # Requisições simultâneas do mesmo usuário aguardam a primeira carga
        with entry.load_lock:
            if not entry.service.loaded:
                entry.service.load()
        return entry.service

    def discard(self, user_id: str) -> None:
        """Descarta o estado em memória (logout)"""
        with self._lock:
            if self._entries.pop(user_id, None) is not None:
                logger.info("Dados financeiros descartados para o usuário %s", user_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
