from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.config import AppSettings
from ..crud.store import RecordStore
from ..deps.auth import require_api_key
from ..deps.periods import period_params
from ..deps.store import get_app_settings, get_store
from ..services.analytics import SORT_REVENUE, group_sales, sales_summary
from ..schemas.sale import Sale, SaleCreate, SalesReport

router = APIRouter(prefix="/api/v1/sales", tags=["sales"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=Sale, status_code=201)
def api_record_sale(payload: SaleCreate, store: RecordStore = Depends(get_store)):
    book = store.get_book(payload.book_id)
    cost_price = payload.cost_price
    if cost_price is None:
        cost_price = book.cost_price if book else 0.0
    book_name = payload.book_name
    if book_name is None:
        book_name = book.name if book else ""
    try:
        return store.record_sale(payload.book_id, payload.qty, payload.total_amount, cost_price, book_name)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("", response_model=list[Sale])
def api_list_sales(window=Depends(period_params), store: RecordStore = Depends(get_store)):
    if window is None:
        return store.list_sales()
    return store.get_sales_in_window(*window)


@router.get("/grouped", response_model=SalesReport)
def api_grouped_sales(
    sort: str = Query(default=SORT_REVENUE, description="REVENUE, PROFIT or COUNT"),
    window=Depends(period_params),
    store: RecordStore = Depends(get_store),
):
    sales = store.list_sales() if window is None else store.get_sales_in_window(*window)
    try:
        groups = group_sales(sales, sort)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return SalesReport(summary=sales_summary(sales), groups=groups)


@router.get("/history", response_model=list[Sale])
def api_sales_history(
    limit: Optional[int] = Query(default=None, ge=1),
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_app_settings),
):
    return store.get_sales_history(limit or settings.SALES_HISTORY_LIMIT)
