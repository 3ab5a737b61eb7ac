from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request):
    ex = getattr(request.app.state, "executor", None)
    cfg = getattr(request.app.state, "cfg", None)
    return {
        "ok": True,
        "ready": ex is not None,
        "mode": getattr(cfg, "mode", None),
        "program_id": str(ex.program_id) if ex is not None else None,
        "ts_ms": int(time.time() * 1000),
    }
