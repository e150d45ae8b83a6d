# app/routers/admin.py
from __future__ import annotations
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..jobs.scheduler import run_reminder_scan, scheduler_running
from ..services.clock import now_local

router = APIRouter(tags=["admin"])

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _require_admin(x_admin_token: str | None) -> None:
    expected = (settings.ADMIN_TOKEN or "").strip()
    provided = (x_admin_token or "").strip()
    if not expected:
        raise HTTPException(status_code=403, detail="ADMIN_TOKEN not configured")
    if provided != expected:
        raise HTTPException(status_code=401, detail="Invalid token")

# ──────────────────────────────────────────────────────────────────────────────
# Basics
# (main.py mounts this router with prefix="/admin")
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/health")
def admin_health():
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "scheduler_running": scheduler_running(),
        "dry_run": settings.DRY_RUN,
        "ts": datetime.utcnow().isoformat(),
    }

# ──────────────────────────────────────────────────────────────────────────────
# Reminders
# ──────────────────────────────────────────────────────────────────────────────
@router.post("/reminders/run")
def admin_run_reminders(
    x_admin_token: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    """
    Runs one reminder scan right now, outside the interval job.
    Safe alongside the scheduler: every reminder is claimed before sending.
    """
    _require_admin(x_admin_token)
    sent = run_reminder_scan(db)
    return {"ok": True, "reminders_sent": sent, "ts": now_local().isoformat()}
