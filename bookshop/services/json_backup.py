"""Plain JSON export and import of the whole ledger."""

from __future__ import annotations

import json
import logging
from datetime import datetime

from pydantic import ValidationError

from ..core.errors import InvalidBackupError
from ..schemas.backup import StoreSnapshot
from .windows import utcnow

LOGGER = logging.getLogger(__name__)


def export_json(store, now: datetime | None = None) -> str:
    snapshot = store.export_raw()
    document = snapshot.to_record()
    document["timestamp"] = (now or utcnow()).isoformat().replace("+00:00", "Z")
    return json.dumps(document, indent=2, ensure_ascii=False)


def import_json(store, text: str | bytes) -> StoreSnapshot:
    """Replace the store's contents with a JSON backup.

    The document must carry ``books`` and ``sales`` lists; ``expenses`` and
    ``restocks`` are optional. Nothing is written unless every record validates.
    """

    try:
        document = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise InvalidBackupError("Invalid backup file format") from exc

    if (
        not isinstance(document, dict)
        or not isinstance(document.get("books"), list)
        or not isinstance(document.get("sales"), list)
    ):
        raise InvalidBackupError("Invalid backup file format")

    try:
        snapshot = StoreSnapshot.model_validate(
            {
                "books": document["books"],
                "sales": document["sales"],
                "expenses": document.get("expenses") or [],
                "restocks": document.get("restocks") or [],
            }
        )
    except ValidationError as exc:
        raise InvalidBackupError(
            "Invalid backup file format",
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()],
        ) from exc

    store.replace_all(snapshot)
    LOGGER.info(
        "json_backup.imported",
        extra={"extra_data": {"books": len(snapshot.books), "sales": len(snapshot.sales)}},
    )
    return snapshot


__all__ = ["export_json", "import_json"]
