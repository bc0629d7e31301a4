"""
Agregações para dashboard, resumos e relatórios

Funções puras sobre a lista de transações já carregada: filtros por período,
totais, agrupamentos por mês e por categoria. Entrada vazia resulta em zeros
e listas vazias.
"""
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from web_models import Category, Transaction, TransactionFilter

MONTH_NAMES = [
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
]


class Totals(BaseModel):
    income: float = 0.0
    expense: float = 0.0
    balance: float = 0.0


class ExpenseKpis(BaseModel):
    total: float = 0.0
    paid: float = 0.0
    pending: float = 0.0


class MonthGroup(BaseModel):
    period: str  # YYYY-MM
    total: float
    count: int
    transactions: List[Transaction]


class CategoryPeriodSummary(BaseModel):
    """Tabela categoria x período (MM/AA)"""
    periods: List[str]
    data: Dict[str, Dict[str, float]]
    category_totals: Dict[str, float]
    period_totals: Dict[str, float]
    grand_total: float


class PeriodBalance(BaseModel):
    income: float = 0.0
    expense: float = 0.0
    balance: float = 0.0


class ConsolidatedReport(BaseModel):
    periods: List[str]
    consolidated: Dict[str, PeriodBalance]
    income_by_category: Dict[str, Dict[str, float]]
    expense_by_category: Dict[str, Dict[str, float]]
    income_category_totals: Dict[str, float]
    expense_category_totals: Dict[str, float]


class CategoryShare(BaseModel):
    category_id: str
    name: str
    total: float
    percentage: float


def month_key(value: date) -> str:
    """Chave de agrupamento YYYY-MM"""
    return f"{value.year}-{value.month:02d}"


def period_label(value: date) -> str:
    """Rótulo de coluna MM/AA"""
    return f"{value.month:02d}/{value.year % 100:02d}"


def _period_sort_key(label: str):
    month, year = label.split("/")
    return year, month


def filter_transactions(transactions: Iterable[Transaction], filters: Optional[TransactionFilter] = None) -> List[Transaction]:
    """Aplica os filtros de mês, ano, categoria, status e tipo"""
    if filters is None:
        return list(transactions)

    filtered = []
    for transaction in transactions:
        if filters.month is not None and transaction.date.month != filters.month:
            continue
        if filters.year is not None and transaction.date.year != filters.year:
            continue
        if filters.category_id is not None and transaction.category_id != filters.category_id:
            continue
        if filters.status is not None and transaction.effective_status != filters.status:
            continue
        if filters.type is not None and transaction.type != filters.type:
            continue
        filtered.append(transaction)
    return filtered


def available_years(transactions: Iterable[Transaction]) -> List[str]:
    return sorted({str(t.date.year) for t in transactions})


def available_months(transactions: Iterable[Transaction]) -> List[str]:
    return sorted({f"{t.date.month:02d}" for t in transactions})


def calculate_totals(transactions: Iterable[Transaction]) -> Totals:
    income = 0.0
    expense = 0.0
    for transaction in transactions:
        if transaction.type == "income":
            income += transaction.amount
        else:
            expense += transaction.amount
    return Totals(income=income, expense=expense, balance=income - expense)


def expense_kpis(transactions: Iterable[Transaction]) -> ExpenseKpis:
    """Total, pago e pendente das despesas"""
    kpis = ExpenseKpis()
    for transaction in transactions:
        if transaction.type != "expense":
            continue
        kpis.total += transaction.amount
        if transaction.effective_status == "paid":
            kpis.paid += transaction.amount
        else:
            kpis.pending += transaction.amount
    return kpis


def group_by_month(transactions: Iterable[Transaction]) -> List[MonthGroup]:
    """Agrupa por YYYY-MM, mais recente primeiro"""
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for transaction in transactions:
        groups[month_key(transaction.date)].append(transaction)

    return [
        MonthGroup(
            period=period,
            total=sum(t.amount for t in items),
            count=len(items),
            transactions=items,
        )
        for period, items in sorted(groups.items(), key=lambda item: item[0], reverse=True)
    ]


def category_period_summary(transactions: Iterable[Transaction], transaction_type: str) -> CategoryPeriodSummary:
    """Soma por categoria e período (MM/AA) para um tipo de transação"""
    data: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    category_totals: Dict[str, float] = defaultdict(float)
    period_totals: Dict[str, float] = defaultdict(float)
    grand_total = 0.0

    for transaction in transactions:
        if transaction.type != transaction_type:
            continue
        period = period_label(transaction.date)
        data[transaction.category_id][period] += transaction.amount
        category_totals[transaction.category_id] += transaction.amount
        period_totals[period] += transaction.amount
        grand_total += transaction.amount

    return CategoryPeriodSummary(
        periods=sorted(period_totals, key=_period_sort_key),
        data={category_id: dict(periods) for category_id, periods in data.items()},
        category_totals=dict(category_totals),
        period_totals=dict(period_totals),
        grand_total=grand_total,
    )


def consolidated_report(transactions: Iterable[Transaction]) -> ConsolidatedReport:
    """Receita, despesa e saldo por período, com detalhamento por categoria"""
    transactions = list(transactions)
    consolidated: Dict[str, PeriodBalance] = {}

    for transaction in transactions:
        period = period_label(transaction.date)
        entry = consolidated.setdefault(period, PeriodBalance())
        if transaction.type == "income":
            entry.income += transaction.amount
        else:
            entry.expense += transaction.amount
        entry.balance = entry.income - entry.expense

    income = category_period_summary(transactions, "income")
    expense = category_period_summary(transactions, "expense")

    return ConsolidatedReport(
        periods=sorted(consolidated, key=_period_sort_key),
        consolidated=consolidated,
        income_by_category=income.data,
        expense_by_category=expense.data,
        income_category_totals=income.category_totals,
        expense_category_totals=expense.category_totals,
    )


def category_breakdown(transactions: Iterable[Transaction], categories: Iterable[Category], transaction_type: str) -> List[CategoryShare]:
    """Total e participação (%) de cada categoria, maior total primeiro"""
    names = {c.id: c.name for c in categories if c.type == transaction_type}
    totals: Dict[str, float] = defaultdict(float)
    for transaction in transactions:
        if transaction.type == transaction_type and transaction.category_id in names:
            totals[transaction.category_id] += transaction.amount

    overall = sum(totals.values())
    shares = [
        CategoryShare(
            category_id=category_id,
            name=names[category_id],
            total=total,
            percentage=round(total / overall * 100, 1) if overall > 0 else 0.0,
        )
        for category_id, total in totals.items()
    ]
    shares.sort(key=lambda share: share.total, reverse=True)
    return shares


def recent_transactions(transactions: Iterable[Transaction], limit: int = 5) -> List[Transaction]:
    return sorted(transactions, key=lambda t: t.date, reverse=True)[:limit]


def dashboard_title(month: Optional[int], year: Optional[int]) -> str:
    if month is None and year is None:
        return "Dashboard - Resumo Geral"
    if month is None:
        return f"Dashboard - Resumo de {year}"
    if year is None:
        return f"Dashboard - Resumo de {MONTH_NAMES[month - 1]}"
    return f"Dashboard - Resumo de {MONTH_NAMES[month - 1]} de {year}"


def format_currency(amount: float) -> str:
    """Formata em reais: 1234.5 -> 'R$ 1.234,50'"""
    sign = "-" if amount < 0 else ""
    formatted = f"{abs(amount):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {formatted}"
