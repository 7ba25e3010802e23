from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import Depends, HTTPException, Query, status

from ..core.config import AppSettings
from ..services.windows import PERIOD_CUSTOM, period_window
from .store import get_app_settings


def period_params(
    period: Optional[str] = Query(default=None, description="Today, Week, Month or Custom"),
    day: Optional[date] = Query(default=None, description="Local day for the Custom period"),
    settings: AppSettings = Depends(get_app_settings),
) -> Optional[tuple[datetime, Optional[datetime]]]:
    """Resolve ``period``/``day`` query params into a window; ``None`` means no filter."""

    if period is None and day is None:
        return None
    try:
        return period_window(period or PERIOD_CUSTOM, custom_day=day, tz=settings.tzinfo)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
