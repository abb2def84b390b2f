from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

import storage.db_config as db_config
from logger import logger
from metrics import RuntimeMetrics, runtime_metrics
from reminders.scheduler import ReminderScheduler
from storage.reminder import ReminderRepository
from utils import format_storage_time

from .auth import require_admin_auth
from .schemas import RuntimeControl, ShutdownRequest


def create_app(
    control: RuntimeControl,
    repository: ReminderRepository,
    scheduler: ReminderScheduler,
    metrics: RuntimeMetrics = runtime_metrics,
    telegram_enabled: bool = False,
) -> FastAPI:
    app = FastAPI(title="Reminder Bot Admin API", version="1.0.0")

    def reminder_counts() -> dict[str, int]:
        reminders = repository.list_all()
        active = sum(1 for r in reminders if r.active)
        return {
            "total": len(reminders),
            "active": active,
            "owners": len({r.owner for r in reminders}),
        }

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "now_local": format_storage_time(scheduler.clock()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
            "scheduler": scheduler.get_status(),
            "reminders": reminder_counts(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/ping", include_in_schema=False)
    async def ping() -> PlainTextResponse:
        return PlainTextResponse("pong")

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await require_admin_auth(request, control.auth_token)

        telegram_status: dict[str, Any] = {"enabled": telegram_enabled, "running": False}
        if telegram_enabled:
            from channels.telegram_polling import get_status as get_telegram_status

            telegram_status.update(get_telegram_status())

        return {
            "runtime": metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "telegram": telegram_status,
                "scheduler": scheduler.get_status(),
                "store": {
                    "path": str(repository.path),
                    "last_persist_error": repository.last_persist_error,
                    **reminder_counts(),
                },
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.get("/api/v1/reminders")
    async def list_reminders(
        request: Request,
        owner: str | None = None,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        await require_admin_auth(request, control.auth_token)
        limit = max(1, min(limit, 500))
        offset = max(0, offset)

        reminders = repository.list_by_owner(owner) if owner is not None else repository.list_all()
        if active is not None:
            reminders = [r for r in reminders if r.active == active]

        return {
            "items": [r.to_record() for r in reminders[offset:offset + limit]],
            "owner": owner,
            "active": active,
            "limit": limit,
            "offset": offset,
            "total": len(reminders),
        }

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, request: Request) -> dict[str, Any]:
        auth_info = await require_admin_auth(request, control.auth_token)
        logger.warning(f"收到远程关闭请求: by={auth_info['user']}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
