from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, Request, status


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Guard the API with a shared key. An empty ``API_KEY`` leaves it open."""

    api_key = request.app.state.settings.API_KEY
    if not api_key:
        return
    provided_key = (x_api_key or "").strip()
    if provided_key and hmac.compare_digest(api_key, provided_key):
        return
    detail = "Invalid API key" if provided_key else "API key required"
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
