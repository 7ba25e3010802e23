from __future__ import annotations

from fastapi import APIRouter, Depends

from ..crud.store import RecordStore
from ..deps.auth import require_api_key
from ..deps.store import get_store
from ..schemas.dashboard import DashboardStats

router = APIRouter(prefix="/api/v1", tags=["dashboard"], dependencies=[Depends(require_api_key)])


@router.get("/dashboard", response_model=DashboardStats)
def api_dashboard(store: RecordStore = Depends(get_store)):
    return store.get_dashboard_stats()
