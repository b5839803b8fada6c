# weam/routers/system.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from weam.db import Database, get_db

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")  # used by container HEALTHCHECK
def health(db: Database = Depends(get_db)):
    return {
        "status": "ok",
        "db": "up" if db.ping() else "down",
        "time": datetime.now(timezone.utc).isoformat(),
    }
