from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Response

from .deps import get_matcher_lock, get_pool_store, require_admin_token
from .services.coordinator import run_batch_cycle
from .services.reporting import pool_status

app = FastAPI(title="Cove Batch Matcher")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/admin/matching/run", dependencies=[Depends(require_admin_token)])
def run_matching(
    response: Response,
    store=Depends(get_pool_store),
    lock=Depends(get_matcher_lock),
) -> dict[str, Any]:
    result = run_batch_cycle(store, lock)
    if not result.success:
        response.status_code = 500
    return result.as_dict()


@app.get("/admin/matching/pool", dependencies=[Depends(require_admin_token)])
def get_pool_status(store=Depends(get_pool_store)) -> dict[str, Any]:
    return pool_status(store.fetch_pool_snapshot(), datetime.now(timezone.utc))
