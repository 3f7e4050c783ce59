from collections import defaultdict
from datetime import date
from typing import Callable, Dict, List, Literal, Optional

import structlog
from pydantic import BaseModel, Field

from lifeagent.domain.models.records import Expense, ExpenseCategory, ExpenseCreate
from lifeagent.domain.store.base import ExchangeRateService, ExpenseStore
from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.built_in.schedule_utils import DateParseError, parse_date_string
from lifeagent.domain.tool.types import (
    OnMissing,
    ParameterImportance,
    ParameterMetadata,
    ToolEntry,
    ToolMetadata,
    ToolResult,
)

logger = structlog.get_logger(__name__)

UNCATEGORIZED = "Uncategorized"
EARLIEST, LATEST = "0001-01-01", "9999-12-31"


class CreateExpenseArgs(BaseModel):
    amount: float = Field(gt=0)
    currency: str = Field("USD", description="ISO currency code")
    category: str = Field(UNCATEGORIZED, description="Category name inferred from the expense, e.g. Food for coffee")
    description: Optional[str] = Field(None, description="Context such as place, merchant or purpose")
    date: str = Field("today", description="Date of the expense")


class ExpenseRangeArgs(BaseModel):
    start_date: Optional[str] = Field(None, description="First date; omit for all history")
    end_date: Optional[str] = Field(None, description="Last date; defaults to today when start_date is given")


class QueryExpensesArgs(ExpenseRangeArgs):
    category: Optional[str] = None
    currency: Optional[str] = None


class ExpenseSummaryArgs(ExpenseRangeArgs):
    group_by: Literal["category", "currency", "total"] = "category"


class ExchangeRateArgs(BaseModel):
    source_currency: str
    target_currency: str


class ConvertCurrencyArgs(ExchangeRateArgs):
    amount: float


class ExpenseTools:
    """Expense records and currency conversion"""

    def __init__(
        self,
        expense_store: ExpenseStore,
        exchange_rates: ExchangeRateService,
        today: Callable[[], date] = date.today
    ):
        self.expense_store = expense_store
        self.exchange_rates = exchange_rates
        self.today = today

    async def _category_index(self) -> Dict[int, ExpenseCategory]:
        return {c.id: c for c in await self.expense_store.categories()}

    def _range(self, start_date: Optional[str], end_date: Optional[str]) -> tuple:
        if not start_date and not end_date:
            return EARLIEST, LATEST
        start = parse_date_string(start_date, self.today()) if start_date else EARLIEST
        end = parse_date_string(end_date or "today", self.today())
        return start, end

    async def _fetch(
        self,
        start_date: Optional[str],
        end_date: Optional[str],
        category: Optional[str] = None,
        currency: Optional[str] = None
    ) -> List[Expense]:
        start, end = self._range(start_date, end_date)
        categories = await self._category_index()
        category_id = None
        if category:
            matches = [c.id for c in categories.values() if c.name.lower() == category.lower()]
            if not matches:
                return []
            category_id = matches[0]
        expenses = await self.expense_store.query(start, end, category_id)
        if currency:
            expenses = [e for e in expenses if e.currency.upper() == currency.upper()]
        return expenses

    async def create_expense(
        self,
        amount: float,
        currency: str = "USD",
        category: str = UNCATEGORIZED,
        description: Optional[str] = None,
        date: str = "today"
    ) -> ToolResult:
        try:
            day = parse_date_string(date, self.today())
        except DateParseError as e:
            return ToolResult.error(str(e))

        categories = await self._category_index()
        category_id = next((c.id for c in categories.values() if c.name.lower() == category.lower()), None)
        expense = await self.expense_store.create(ExpenseCreate(
            amount=amount,
            currency=currency.upper(),
            category_id=category_id,
            description=description,
            date=day,
        ))
        label = categories[category_id].name if category_id is not None else UNCATEGORIZED
        logger.info("Expense created", expense_id=expense.id, category=label)

        text = f"Recorded {expense.amount:.2f} {expense.currency} ({label}) on {day} [ID: {expense.id}]."
        data = {
            "id": expense.id,
            "expense": expense.model_dump(mode="json"),
            "entity": {"kind": "expense", "id": expense.id, "title": description or label},
        }
        if category_id is None and category != UNCATEGORIZED:
            return ToolResult.warning(f"{text}\n⚠️ Unknown category '{category}', saved as {UNCATEGORIZED}.", data=data)
        return ToolResult.ok(text, data=data)

    async def query_expenses(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        category: Optional[str] = None,
        currency: Optional[str] = None
    ) -> ToolResult:
        try:
            expenses = await self._fetch(start_date, end_date, category, currency)
        except DateParseError as e:
            return ToolResult.error(str(e))
        if not expenses:
            return ToolResult.ok("No expenses found.", data={"expenses": []})

        categories = await self._category_index()
        lines = [
            f"- {e.date} {e.amount:.2f} {e.currency} "
            f"{categories[e.category_id].name if e.category_id in categories else UNCATEGORIZED}"
            f"{': ' + e.description if e.description else ''} [ID: {e.id}]"
            for e in expenses
        ]
        return ToolResult.ok(
            f"Found {len(expenses)} expenses:\n" + "\n".join(lines),
            data={"expenses": [e.model_dump(mode="json") for e in expenses]},
        )

    async def get_expense_categories(self) -> ToolResult:
        categories = await self.expense_store.categories()
        if not categories:
            return ToolResult.ok("No expense categories defined.", data={"categories": []})
        return ToolResult.ok(
            "Expense categories: " + ", ".join(c.name for c in categories),
            data={"categories": [c.model_dump() for c in categories]},
        )

    async def get_expense_summary(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        group_by: str = "category"
    ) -> ToolResult:
        try:
            expenses = await self._fetch(start_date, end_date)
        except DateParseError as e:
            return ToolResult.error(str(e))
        if not expenses:
            return ToolResult.ok("No expenses in this period.", data={"groups": {}})

        categories = await self._category_index()
        # Amounts in different currencies are never summed together
        groups: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        for e in expenses:
            if group_by == "category":
                key = categories[e.category_id].name if e.category_id in categories else UNCATEGORIZED
            elif group_by == "currency":
                key = e.currency
            else:
                key = "total"
            groups[key][e.currency] += e.amount

        lines = []
        for key, totals in groups.items():
            amounts = ", ".join(f"{amount:.2f} {cur}" for cur, amount in totals.items())
            lines.append(f"- {key}: {amounts}")
        return ToolResult.ok(
            f"Expense summary by {group_by} ({len(expenses)} records):\n" + "\n".join(lines),
            data={"groups": {k: dict(v) for k, v in groups.items()}},
        )

    async def get_exchange_rate(self, source_currency: str, target_currency: str) -> ToolResult:
        try:
            rate = await self.exchange_rates.get_rate(source_currency, target_currency)
        except Exception as e:
            logger.warning("Exchange rate lookup failed", source=source_currency, target=target_currency, error=str(e))
            return ToolResult.error(f"Could not get the {source_currency}/{target_currency} rate: {e}")
        return ToolResult.ok(
            f"1 {source_currency.upper()} = {rate:.4f} {target_currency.upper()}",
            data={"rate": rate},
        )

    async def convert_currency(self, amount: float, source_currency: str, target_currency: str) -> ToolResult:
        rate_result = await self.get_exchange_rate(source_currency, target_currency)
        if not rate_result.succeeded:
            return rate_result
        converted = amount * rate_result.data["rate"]
        return ToolResult.ok(
            f"{amount:.2f} {source_currency.upper()} = {converted:.2f} {target_currency.upper()}",
            data={"amount": converted, "rate": rate_result.data["rate"]},
        )

    def entries(self) -> List[ToolEntry]:
        return [
            ToolEntry(
                build_tool(
                    self.create_expense, "create_expense",
                    "Record an expense. Always infer a category from the content and keep any context "
                    "(place, merchant, people) in the description.",
                    CreateExpenseArgs,
                ),
                ToolMetadata(
                    display_name="Create expense",
                    description="Record an expense",
                    parameters=[
                        ParameterMetadata(
                            name="amount", importance=ParameterImportance.CRITICAL, required=True,
                            on_missing=OnMissing.ASK_USER, clarification_prompt="How much was it?",
                        ),
                        ParameterMetadata(
                            name="currency", importance=ParameterImportance.MEDIUM, has_default=True,
                            default_description="USD", on_missing=OnMissing.USE_DEFAULT,
                        ),
                        ParameterMetadata(
                            name="category", importance=ParameterImportance.HIGH, has_default=True,
                            default_description=UNCATEGORIZED, on_missing=OnMissing.USE_DEFAULT,
                            explanation="Infer it; call get_expense_categories when unsure.",
                        ),
                        ParameterMetadata(name="description", importance=ParameterImportance.MEDIUM),
                        ParameterMetadata(
                            name="date", importance=ParameterImportance.MEDIUM, has_default=True,
                            default_description="today", on_missing=OnMissing.USE_DEFAULT,
                        ),
                    ],
                ),
            ),
            ToolEntry(
                build_tool(
                    self.query_expenses, "query_expenses",
                    "List expenses in a date range, optionally by category or currency.", QueryExpensesArgs,
                ),
                ToolMetadata(display_name="Query expenses", description="List expenses", readonly=True),
            ),
            ToolEntry(
                build_tool(self.get_expense_categories, "get_expense_categories", "List expense categories."),
                ToolMetadata(display_name="Expense categories", description="List categories", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.get_expense_summary, "get_expense_summary",
                    "Total expenses grouped by category, currency or overall.", ExpenseSummaryArgs,
                ),
                ToolMetadata(display_name="Expense summary", description="Expense totals", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.get_exchange_rate, "get_exchange_rate",
                    "Exchange rate between two currencies.", ExchangeRateArgs,
                ),
                ToolMetadata(display_name="Exchange rate", description="Currency rate", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.convert_currency, "convert_currency",
                    "Convert an amount between currencies.", ConvertCurrencyArgs,
                ),
                ToolMetadata(display_name="Convert currency", description="Currency conversion", readonly=True),
            ),
        ]
