"""
HTTP + WebSocket surface for the push-up tracker.

Run:
    uvicorn pushup_tracker.runtime.server:app --host 0.0.0.0 --port 8000
"""
from __future__ import annotations
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Set

from fastapi import FastAPI, HTTPException, Query, Response, WebSocket, WebSocketDisconnect

from pushup_tracker.common.settings import Settings
from pushup_tracker.counter.session import RepSessionManager, SessionRecord, SessionStateError
from pushup_tracker.data import db
from pushup_tracker.runtime.schemas import (
    LiveStatus,
    SessionCreate,
    SessionOut,
    SessionPage,
    SessionUpdate,
    StatsOut,
    StopRequest,
)

logger = logging.getLogger("pushup_tracker")


class Broadcaster:
    """Fans session events out to every connected WebSocket client."""

    def __init__(self):
        self.clients: Set[WebSocket] = set()
        self.pending: Set[asyncio.Task] = set()

    def sink(self, ev: dict):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        # hold a reference until the send finishes
        task = loop.create_task(self.broadcast(ev))
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)

    async def broadcast(self, obj: dict):
        dead = []
        for ws in list(self.clients):
            try:
                await ws.send_text(json.dumps(obj))
            except Exception:
                dead.append(ws)
        for d in dead:
            self.clients.discard(d)


async def _tick_loop(manager: RepSessionManager, interval: float):
    # setup countdown must finish even when no frames arrive
    while True:
        await asyncio.sleep(interval)
        try:
            manager.tick()
        except SessionStateError:
            pass


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s | %(name)s | %(message)s")
    db.configure(settings.db_path)

    reporter = db.SqliteSessionReporter()
    manager = RepSessionManager(settings.rep_config(), reporter=reporter)
    hub = Broadcaster()
    manager.set_event_sink(hub.sink)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(_tick_loop(manager, settings.tick_ms / 1000.0))
        logger.info("pushup tracker ready (db=%s)", settings.db_path)
        try:
            yield
        finally:
            task.cancel()
            manager.cancel()
            logger.info("shutting down")

    app = FastAPI(title="Pushup Tracker", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.manager = manager
    app.state.reporter = reporter
    app.state.hub = hub

    # ---- stored sessions ----

    @app.post("/api/pushups", response_model=SessionOut, status_code=201)
    async def create_session(payload: SessionCreate):
        now = datetime.now(timezone.utc)
        try:
            record = SessionRecord.build(
                count=payload.count,
                started_at=payload.started_at or now,
                ended_at=payload.ended_at or now,
                notes=payload.notes,
            )
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return SessionOut(**db.insert_session(record))

    @app.get("/api/pushups", response_model=SessionPage)
    async def list_sessions(page: int = Query(1), limit: int = Query(10)):
        rows, pagination = db.list_sessions(page=page, limit=limit)
        return SessionPage(sessions=[SessionOut(**r) for r in rows], pagination=pagination)

    @app.get("/api/pushups/stats", response_model=StatsOut)
    async def stats(daily_goal: Optional[int] = Query(None, alias="dailyGoal", ge=0)):
        goal = settings.daily_goal if daily_goal is None else daily_goal
        return StatsOut(**db.session_stats(goal))

    @app.get("/api/pushups/{session_id}", response_model=SessionOut)
    async def get_session(session_id: str):
        try:
            return SessionOut(**db.get_session(session_id))
        except db.SessionNotFound:
            raise HTTPException(status_code=404, detail="Pushup session not found")

    @app.put("/api/pushups/{session_id}", response_model=SessionOut)
    async def update_session(session_id: str, payload: SessionUpdate):
        try:
            row = db.update_session(
                session_id,
                count=payload.count,
                started_at=payload.started_at,
                ended_at=payload.ended_at,
                notes=payload.notes,
            )
        except db.SessionNotFound:
            raise HTTPException(status_code=404, detail="Pushup session not found")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return SessionOut(**row)

    @app.delete("/api/pushups/{session_id}", status_code=204)
    async def delete_session(session_id: str):
        try:
            db.delete_session(session_id)
        except db.SessionNotFound:
            raise HTTPException(status_code=404, detail="Pushup session not found")
        return Response(status_code=204)

    # ---- live session ----

    def _status() -> LiveStatus:
        st = manager.status()
        return LiveStatus(
            session_id=st.session_id,
            state=st.state,
            phase=st.phase,
            count=st.count,
            duration_sec=st.duration_sec,
            setup_remaining=st.setup_remaining,
        )

    @app.post("/session/start", response_model=LiveStatus)
    async def start_live():
        manager.start()
        return _status()

    @app.get("/session/current", response_model=LiveStatus)
    async def current():
        return _status()

    @app.post("/session/stop", response_model=SessionOut)
    async def stop_live(payload: Optional[StopRequest] = None):
        notes = payload.notes if payload else ""
        try:
            manager.stop(notes=notes)
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return SessionOut(**reporter.last_saved)

    @app.post("/session/cancel")
    async def cancel_live():
        sid = manager.cancel()
        return {"cancelled": sid is not None, "sessionId": sid}

    @app.websocket("/ws/frames")
    async def ws_frames(ws: WebSocket):
        await ws.accept()
        hub.clients.add(ws)
        logger.info("ws: client connected")
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug("ws: dropping non-json message")
                    continue
                if not isinstance(data, dict) or data.get("type") != "frame":
                    continue
                try:
                    result = manager.push_frame(data.get("landmarks"))
                except SessionStateError:
                    result = None
                if result is None:
                    await ws.send_text(json.dumps({"type": "idle"}))
                    continue
                await ws.send_text(json.dumps({"type": "frame_result", **result.to_dict()}))
        except WebSocketDisconnect:
            pass
        finally:
            hub.clients.discard(ws)
            logger.info("ws: client disconnected")

    return app


app = create_app()
