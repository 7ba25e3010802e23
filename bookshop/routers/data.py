from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from fastapi.responses import JSONResponse

from ..core.config import AppSettings
from ..crud.store import RecordStore
from ..deps.auth import require_api_key
from ..deps.store import get_app_settings, get_store
from ..services.backup import create_backup
from ..services.json_backup import export_json, import_json
from ..services.restore import restore_from_excel
from ..services.windows import utcnow

router = APIRouter(prefix="/api/v1/data", tags=["data"], dependencies=[Depends(require_api_key)])

RESTORE_STATUS_CODES = {
    "success": status.HTTP_200_OK,
    "invalid": status.HTTP_400_BAD_REQUEST,
    "rolled_back": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "rollback_failed": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def _read_upload(file: UploadFile) -> bytes:
    if not (file.filename or "").strip():
        await file.close()
        raise HTTPException(status_code=400, detail="A file upload is required")
    try:
        return await file.read()
    finally:
        await file.close()


@router.get("/backup.xlsx")
def api_backup(
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_app_settings),
) -> Response:
    backup = create_backup(store, tz=settings.tzinfo)
    headers = {"Content-Disposition": f'attachment; filename="{backup.file_name}"'}
    return Response(content=backup.content, media_type=backup.media_type, headers=headers)


@router.post("/restore")
async def api_restore(
    file: UploadFile = File(...),
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_app_settings),
):
    content = await _read_upload(file)
    result = restore_from_excel(store, content, tz=settings.tzinfo)
    return JSONResponse(result.to_record(), status_code=RESTORE_STATUS_CODES[result.status])


@router.get("/export.json")
def api_export_json(store: RecordStore = Depends(get_store)) -> Response:
    now = utcnow()
    filename = f"bookshop-backup-{now.strftime('%Y%m%d-%H%M')}.json"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=export_json(store, now=now), media_type="application/json", headers=headers)


@router.post("/import.json")
async def api_import_json(file: UploadFile = File(...), store: RecordStore = Depends(get_store)):
    snapshot = import_json(store, await _read_upload(file))
    return {
        "status": "imported",
        "books": len(snapshot.books),
        "sales": len(snapshot.sales),
        "expenses": len(snapshot.expenses),
        "restocks": len(snapshot.restocks),
    }


@router.delete("")
def api_clear_all(store: RecordStore = Depends(get_store)):
    store.clear_all()
    return {"status": "cleared"}


@router.get("/counts")
def api_counts(store: RecordStore = Depends(get_store)) -> dict[str, int]:
    return store.counts()
