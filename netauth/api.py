from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import replace
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect

from netauth.config import load_settings
from netauth.errors import ConfigError
from netauth.journal import EventJournal
from netauth.runner import SupervisorRunner, build_runner

logger = logging.getLogger("netauth.api")

app = FastAPI(title="KMITL NetAuth API", version="0.1.0")

_runner_task: Optional[asyncio.Task] = None
_runner: Optional[SupervisorRunner] = None
_journal_path: Optional[str] = None


def _active() -> bool:
    return _runner_task is not None and not _runner_task.done()


@app.get("/health")
async def health():
    return {"status": "ok", "time": time.time()}


@app.get("/status")
async def status():
    """Read-only snapshot of the supervisor's current belief."""
    if _runner is None:
        return {"status": "idle"}
    state = _runner.snapshot()
    return {
        "status": "running" if _active() else "stopped",
        "summary": state.summary(),
        "auto_login": _runner.supervisor.settings.auto_login,
        "state": state.to_dict(),
    }


@app.post("/supervisor/start")
async def start(
    config: Optional[str] = Query(None, description="Path to config.json"),
    journal: Optional[str] = Query(None, description="Path to the events CSV"),
    interval: Optional[float] = Query(None, gt=0, description="Heartbeat interval seconds"),
    max_attempt: Optional[int] = Query(None, ge=1, description="Failures before giving up"),
    auto_login: Optional[bool] = Query(None, description="Log in automatically"),
    runtime: Optional[float] = Query(None, ge=0.1, description="Optional run duration"),
):
    global _runner_task, _runner, _journal_path
    if _active():
        return {"status": "already-running", "summary": _runner.snapshot().summary() if _runner else None}

    try:
        settings = load_settings(config)
        overrides = {
            key: value
            for key, value in (("interval", interval), ("max_attempt", max_attempt), ("auto_login", auto_login))
            if value is not None
        }
        if journal:
            overrides["journal_path"] = journal
        settings = replace(settings, **overrides).validate()
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid configuration: {exc}")

    _journal_path = str(settings.resolved_journal_path())
    _runner = build_runner(settings, journal=EventJournal(_journal_path))
    _runner_task = asyncio.create_task(_runner.run(runtime=runtime))
    return {
        "status": "started",
        "username": settings.username,
        "journal": _journal_path,
        "interval": settings.interval,
        "runtime": runtime,
    }


@app.post("/supervisor/stop")
async def stop():
    global _runner_task
    if _runner_task:
        if _runner:
            _runner.request_stop()
        _runner_task.cancel()
        try:
            await _runner_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("supervisor stop encountered error")
        _runner_task = None
        return {"status": "stopped"}
    return {"status": "idle"}


@app.post("/supervisor/reset")
async def reset():
    if not _active() or _runner is None:
        return {"status": "idle"}
    _runner.request_reset()
    return {"status": "reset-requested", "summary": _runner.snapshot().summary()}


@app.post("/supervisor/auto-login")
async def set_auto_login(enabled: bool = Query(..., description="Enable or pause auto-login")):
    if _runner is None:
        return {"status": "idle"}
    _runner.supervisor.set_auto_login(enabled)
    return {"status": "ok", "auto_login": enabled}


@app.get("/events/history")
async def history(limit: int = Query(50, ge=1, le=1000)):
    if not _journal_path or not os.path.exists(_journal_path):
        return []
    return EventJournal(_journal_path).read(limit)


@app.websocket("/events")
async def events(ws: WebSocket):
    await ws.accept()
    pos = 0
    try:
        while True:
            await asyncio.sleep(0.5)
            if not _journal_path or not os.path.exists(_journal_path):
                continue
            with open(_journal_path, "r", encoding="utf-8") as f:
                f.seek(pos)
                for line in f:
                    await ws.send_text(json.dumps({"csv": line.strip()}))
                pos = f.tell()
    except WebSocketDisconnect:
        return
