"""API routes for the habit reminder server.

Cron trigger endpoints for an external scheduler, plus completion,
analytics and export/import endpoints for the web client.
"""

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from auth.security import CronAuthenticator, mask_email
from habit.analytics import analyze, overview
from habit.errors import (
    HabitNotFoundError,
    InvalidCompletionError,
    StorageError,
    UserNotFoundError,
)
from habit.service import HabitServices

router = APIRouter(prefix="/api/v1")


# Request/Response models
class CompletionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    day: Optional[date] = Field(default=None, alias="date")
    mood: Optional[int] = None
    productivity: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    time_spent: Optional[int] = None


class HabitImportRequest(BaseModel):
    data: dict[str, Any]
    merge: bool = True


def get_services(request: Request) -> HabitServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Habit services unavailable")
    return services


def require_cron_secret(
    request: Request,
    token: Optional[str] = Query(default=None),
    services: HabitServices = Depends(get_services),
) -> None:
    auth = CronAuthenticator(services.cron_config)
    presented = auth.extract_token(request.headers.get("authorization"), token)
    if not auth.is_authorized(presented):
        logger.warning(f"Rejected cron request from {request.client.host if request.client else 'unknown'}")
    auth.verify(presented)


# ==================== CRON ENDPOINTS ====================

@router.api_route("/cron/habit-reminders", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def cron_habit_reminders(services: HabitServices = Depends(get_services)):
    """Run one reminder tick now."""
    try:
        report = await services.scheduler.trigger_tick()
    except StorageError as e:
        job_id = uuid.uuid4().hex[:8]
        logger.error(f"[{job_id}] Reminder tick aborted: {e}")
        return JSONResponse(status_code=500, content={"success": False, "jobId": job_id, "error": str(e)})
    return {"success": True, "jobId": report.tick_id, "report": report.to_dict()}


@router.post("/cron/streak-milestones", dependencies=[Depends(require_cron_secret)])
async def cron_streak_milestones(services: HabitServices = Depends(get_services)):
    job_id = uuid.uuid4().hex[:8]
    try:
        report = await services.scheduler.trigger_milestones()
    except StorageError as e:
        logger.error(f"[{job_id}] Milestone check aborted: {e}")
        return JSONResponse(status_code=500, content={"success": False, "jobId": job_id, "error": str(e)})
    return {"success": True, "jobId": job_id, "report": report.to_dict()}


@router.get("/cron/status")
async def cron_status(services: HabitServices = Depends(get_services)) -> dict[str, Any]:
    """Read-only view of today's reminder activity."""
    today = services.scheduler.now().date()
    try:
        recent, today_count, active = await asyncio.gather(
            asyncio.to_thread(services.ledger.recent, 10),
            asyncio.to_thread(services.ledger.count_for_day, today),
            asyncio.to_thread(services.storage.count_reminder_habits),
        )
    except StorageError as e:
        logger.error(f"Status query failed: {e}")
        raise HTTPException(status_code=500, detail="Status unavailable") from e
    return {
        "success": True,
        "date": today.isoformat(),
        "remindersSentToday": today_count,
        "activeReminderHabits": active,
        "recentReminders": [
            {
                "habitId": entry.habit_id,
                "email": mask_email(entry.email),
                "date": entry.day.isoformat(),
                "timeWindow": entry.time_window,
                "sentAt": entry.sent_at.isoformat() if entry.sent_at else None,
            }
            for entry in recent
        ],
        "scheduler": services.scheduler.status(),
    }


# ==================== HABIT ENDPOINTS ====================

@router.post("/habits/{habit_id}/complete")
def complete_habit(habit_id: str, req: CompletionRequest, services: HabitServices = Depends(get_services)):
    try:
        result = services.recorder.record_completion(
            habit_id,
            req.user_id,
            req.day,
            mood=req.mood,
            productivity=req.productivity,
            minutes_spent=req.time_spent,
            note=req.notes,
        )
    except (HabitNotFoundError, UserNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidCompletionError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except StorageError as e:
        logger.error(f"Completion for {habit_id} failed: {e}")
        raise HTTPException(status_code=500, detail="Could not record completion") from e
    return {"success": True, **result.to_dict()}


@router.get("/habits/{habit_id}/analytics")
def habit_analytics(
    habit_id: str,
    user_id: Optional[str] = None,
    days: int = Query(default=90, ge=1, le=366),
    services: HabitServices = Depends(get_services),
):
    habit = services.storage.get_habit(habit_id)
    if habit is None:
        raise HTTPException(status_code=404, detail="Habit not found")
    today = services.scheduler.now().date()
    events = services.storage.completions_for_habit(
        habit_id, user_id or habit.user_id, since=today - timedelta(days=days)
    )
    return {
        "habitId": habit_id,
        "name": habit.name,
        "days": days,
        "analytics": analyze(events, today, services.scheduler.tz),
    }


@router.get("/users/{user_id}/analytics")
def user_analytics(
    user_id: str,
    days: int = Query(default=30, ge=1, le=366),
    services: HabitServices = Depends(get_services),
):
    if services.storage.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    today = services.scheduler.now().date()
    habits = [h for h in services.storage.get_habits(user_id) if h.is_active]
    events = services.storage.completions_for_user(user_id, since=today - timedelta(days=days))
    return overview(habits, events, today)


@router.post("/habits/{habit_id}/test-reminder", dependencies=[Depends(require_cron_secret)])
async def habit_test_reminder(
    habit_id: str,
    email: str = Query(min_length=3),
    services: HabitServices = Depends(get_services),
):
    try:
        delivered = await services.dispatcher.send_test_reminder(habit_id, email)
    except (HabitNotFoundError, UserNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"success": delivered, "habitId": habit_id, "email": mask_email(email)}


@router.get("/habits/export")
def habit_export(services: HabitServices = Depends(get_services)):
    return services.export_state()


@router.post("/habits/import")
def habit_import(req: HabitImportRequest, services: HabitServices = Depends(get_services)):
    try:
        summary = services.import_state(req.data, merge=req.merge)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"imported": True, **summary.to_dict()}


# Health check endpoint
@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    services = getattr(request.app.state, "services", None)
    started = getattr(request.app.state, "start_time", None)
    uptime = int((datetime.now(timezone.utc) - started).total_seconds()) if started else 0
    return {
        "status": "healthy" if services is not None else "starting",
        "version": "1.0.0",
        "uptime": uptime,
        "scheduler": services.scheduler.status() if services else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
