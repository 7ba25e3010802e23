from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.categories import EXPENSE_TYPE_SUGGESTIONS
from ..crud.store import RecordStore
from ..deps.auth import require_api_key
from ..deps.periods import period_params
from ..deps.store import get_store
from ..services.analytics import group_expenses
from ..services.windows import utcnow
from ..schemas.expense import Expense, ExpenseCreate, ExpenseGroup

router = APIRouter(prefix="/api/v1/expenses", tags=["expenses"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=list[Expense])
def api_list_expenses(window=Depends(period_params), store: RecordStore = Depends(get_store)):
    if window is None:
        return store.list_expenses()
    return store.get_expenses_in_window(*window)


@router.post("", response_model=Expense, status_code=201)
def api_record_expense(payload: ExpenseCreate, store: RecordStore = Depends(get_store)):
    return store.record_expense(payload)


@router.get("/grouped", response_model=list[ExpenseGroup])
def api_grouped_expenses(window=Depends(period_params), store: RecordStore = Depends(get_store)):
    expenses = store.list_expenses() if window is None else store.get_expenses_in_window(*window)
    return group_expenses(expenses)


@router.get("/categories", response_model=list[str])
def api_expense_categories():
    return list(EXPENSE_TYPE_SUGGESTIONS)


@router.put("/{expense_id}")
def api_update_expense(expense_id: int, payload: ExpenseCreate, store: RecordStore = Depends(get_store)):
    existing = store.get_expense(expense_id)
    when = payload.date or (existing.date if existing else utcnow())
    expense = Expense(
        id=expense_id,
        type=payload.type,
        amount=payload.amount,
        description=payload.description,
        date=when,
    )
    return {"updated": store.update_expense(expense)}


@router.delete("/{expense_id}")
def api_delete_expense(expense_id: int, store: RecordStore = Depends(get_store)):
    return {"deleted": store.delete_expense(expense_id)}
