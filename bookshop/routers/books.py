from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import PlainTextResponse

from ..core.config import AppSettings
from ..crud.store import RecordStore
from ..deps.auth import require_api_key
from ..deps.store import get_app_settings, get_store
from ..schemas.book import Book, BookCreate, StockAdjustment, StockValueItem
from ..services.analytics import sort_books
from ..services.reorder import build_reorder_lines, format_reorder_message, render_reorder_pdf
from ..services.windows import utcnow

router = APIRouter(prefix="/api/v1/books", tags=["books"], dependencies=[Depends(require_api_key)])


def _parse_overrides(raw: list[str]) -> dict[int, int]:
    overrides: dict[int, int] = {}
    for item in raw:
        book_id, sep, qty = item.partition(":")
        if not sep or not book_id.strip().isdigit() or not qty.strip().lstrip("-").isdigit():
            raise HTTPException(status_code=422, detail=f"Invalid quantity override: {item!r}")
        overrides[int(book_id)] = int(qty)
    return overrides


def _reorder_lines(store: RecordStore, ids: Optional[list[int]], qty: list[str]):
    try:
        return build_reorder_lines(store.get_low_stock_books(), overrides=_parse_overrides(qty), selected=ids)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("", response_model=list[Book])
def api_list_books(
    q: str = "",
    sort: Optional[str] = Query(default=None, description="NAME, STOCK or PRICE"),
    store: RecordStore = Depends(get_store),
):
    books = store.search_books(q)
    if sort is None:
        return books
    try:
        return sort_books(books, sort)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.post("", response_model=Book, status_code=201)
def api_add_book(payload: BookCreate, store: RecordStore = Depends(get_store)):
    return store.add_book(payload)


@router.get("/low-stock", response_model=list[Book])
def api_low_stock(store: RecordStore = Depends(get_store)):
    return store.get_low_stock_books()


@router.get("/stock-value", response_model=list[StockValueItem])
def api_stock_value(store: RecordStore = Depends(get_store)):
    return store.get_stock_value_breakdown()


@router.get("/reorder", response_class=PlainTextResponse)
def api_reorder_message(
    ids: Optional[list[int]] = Query(default=None),
    qty: list[str] = Query(default=[], description="Overrides as bookId:qty"),
    store: RecordStore = Depends(get_store),
):
    return format_reorder_message(_reorder_lines(store, ids, qty))


@router.get("/reorder.pdf")
def api_reorder_pdf(
    ids: Optional[list[int]] = Query(default=None),
    qty: list[str] = Query(default=[], description="Overrides as bookId:qty"),
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_app_settings),
) -> Response:
    lines = _reorder_lines(store, ids, qty)
    generated_at = utcnow()
    pdf_bytes = render_reorder_pdf(lines, generated_at=generated_at, tz=settings.tzinfo)
    timestamp = generated_at.astimezone(settings.tzinfo).strftime("%Y%m%d-%H%M")
    headers = {"Content-Disposition": f'attachment; filename="reorder-{timestamp}.pdf"'}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


@router.get("/{book_id}", response_model=Book)
def api_get_book(book_id: int, store: RecordStore = Depends(get_store)):
    book = store.get_book(book_id)
    if not book:
        raise HTTPException(404, "Book not found")
    return book


@router.put("/{book_id}")
def api_update_book(book_id: int, payload: BookCreate, store: RecordStore = Depends(get_store)):
    existing = store.get_book(book_id)
    last_stocked_at = existing.last_stocked_at if existing else None
    book = Book(id=book_id, last_stocked_at=last_stocked_at, **payload.model_dump())
    return {"updated": store.update_book(book)}


@router.delete("/{book_id}")
def api_delete_book(book_id: int, store: RecordStore = Depends(get_store)):
    return {"deleted": store.delete_book(book_id)}


@router.post("/{book_id}/stock", response_model=Book)
def api_adjust_stock(book_id: int, payload: StockAdjustment, store: RecordStore = Depends(get_store)):
    book = store.adjust_stock(book_id, payload.delta)
    if not book:
        raise HTTPException(404, "Book not found")
    return book
