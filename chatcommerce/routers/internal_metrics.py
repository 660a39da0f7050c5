from __future__ import annotations

from fastapi import APIRouter, Depends

from chatcommerce.core.metrics import engine_counters, request_metrics
from chatcommerce.deps import require_admin_token

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def metrics_snapshot(_admin: None = Depends(require_admin_token)):
    return {"requests": request_metrics.snapshot(), "engine": engine_counters.snapshot()}
