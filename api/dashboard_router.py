from __future__ import annotations

import asyncio
import logging
import shlex
import time
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, Header, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from utils.config import settings

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["dashboard"])

ALLOWED_COMMANDS = frozenset({"ls", "pwd", "ps", "df", "free", "uptime", "whoami", "date", "uname"})
TERMINAL_TIMEOUT = 10.0
TERMINAL_MAX_OUTPUT = 1024 * 1024


class TerminalRequest(BaseModel):
    command: str = ""


def _ctx(request: Request):
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Bot not ready")
    return ctx


async def _require_token(authorization: str | None):
    token = settings.DASHBOARD_TOKEN
    if not token:
        return
    if not authorization or not authorization.startswith("Bearer ") or authorization.split(" ", 1)[1] != token:
        raise HTTPException(status_code=401, detail="Unauthorized")


def _bot_status(bot) -> str:
    if bot is None or bot.is_closed():
        return "stopped"
    return "online" if bot.user is not None else "starting"


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "rconarma",
    }


@router.get("/status")
async def status(request: Request):
    ctx = _ctx(request)
    return {
        "bot": _bot_status(ctx.bot),
        "database": bool(settings.DATABASE_URL or settings.DB_HOST),
        "uptime_seconds": int(time.time() - ctx.started_at),
    }


@router.get("/stats")
async def stats(request: Request):
    ctx = _ctx(request)
    by_kind = Counter(kind.value for _, kind in ctx.jobs.running())
    try:
        players = await ctx.tracker.count()
    except SQLAlchemyError as e:
        log.warning("[dashboard] player count failed: %s", e)
        players = None
    return {
        "guilds_configured": len(ctx.store.all()),
        "jobs": {"autolist": by_kind.get("autolist", 0), "communitylist": by_kind.get("communitylist", 0)},
        "tracked_players": players,
        "ip_monitor": ctx.ip_monitor.status(),
    }


@router.get("/bots")
async def bots(request: Request):
    ctx = _ctx(request)
    bot = ctx.bot
    return [{
        "name": str(bot.user) if bot.user is not None else "RconArma",
        "status": _bot_status(bot),
        "guilds": len(bot.guilds),
    }]


@router.get("/activity")
async def activity(request: Request, limit: int = Query(default=50, ge=1, le=500)):
    ctx = _ctx(request)
    try:
        return await ctx.activity.recent(limit)
    except SQLAlchemyError:
        log.exception("[dashboard] activity query failed")
        raise HTTPException(status_code=500, detail="Activity log unavailable")


@router.post("/terminal")
async def terminal(body: TerminalRequest, authorization: str | None = Header(default=None)):
    await _require_token(authorization)
    try:
        argv = shlex.split(body.command or "")
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed command")
    if not argv:
        raise HTTPException(status_code=400, detail="No command provided")
    if argv[0] not in ALLOWED_COMMANDS:
        raise HTTPException(status_code=403, detail=f"Command not allowed: {argv[0]}")

    log.info("[dashboard] terminal: %s", shlex.join(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to start command: {e}")
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=TERMINAL_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise HTTPException(status_code=500, detail="Command timed out")

    if proc.returncode != 0:
        raise HTTPException(status_code=500, detail=err[:TERMINAL_MAX_OUTPUT].decode(errors="replace") or "Command failed")
    return {
        "command": argv[0],
        "output": out[:TERMINAL_MAX_OUTPUT].decode(errors="replace"),
        "stderr": err[:TERMINAL_MAX_OUTPUT].decode(errors="replace"),
        "truncated": len(out) > TERMINAL_MAX_OUTPUT,
    }
