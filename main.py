import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

import database
from config import Settings, settings as default_settings
from connections import WebSocketChannel
from hub import ProximityHub
from schemas import NearbyUser, NearbyUsers, Position, ReportCreate, UserCreate
from seed import seed_demo_data
from session import Session
from utils import now_utc

logging.basicConfig(level=default_settings.log_level.upper())
logger = logging.getLogger(__name__)


def get_hub(request: Request) -> ProximityHub:
    return request.app.state.hub


def create_app(settings: Optional[Settings] = None, hub: Optional[ProximityHub] = None) -> FastAPI:
    settings = settings or default_settings
    hub = hub or ProximityHub(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s", settings.app_name)
        if settings.seed_demo_data:
            seed_demo_data(hub)
        tasks = hub.start_housekeeping()
        yield
        logger.info("Shutting down %s", settings.app_name)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------- HTTP Endpoints --------------------

    @app.get("/")
    def read_root():
        return {"message": f"{settings.app_name} Running"}

    @app.post("/users")
    def create_user(request: Request, payload: UserCreate):
        position = None
        if payload.latitude is not None and payload.longitude is not None:
            position = Position(latitude=payload.latitude, longitude=payload.longitude)
        user = get_hub(request).users.create(payload.username, position=position, radius=payload.radius)
        return user.to_wire()

    @app.get("/users/{user_id}")
    def read_user(request: Request, user_id: str):
        user = get_hub(request).users.get(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return user.to_wire()

    @app.get("/users/{user_id}/calls")
    def user_calls(request: Request, user_id: str) -> List[Dict[str, Any]]:
        return [c.to_wire() for c in get_hub(request).calls.calls_for_user(user_id)]

    @app.get("/messages")
    def read_messages(
        request: Request,
        latitude: Optional[float] = Query(None, ge=-90, le=90),
        longitude: Optional[float] = Query(None, ge=-180, le=180),
        radius: float = Query(settings.default_radius, ge=0),
        limit: int = Query(settings.query_limit, ge=1, le=500),
    ):
        if latitude is None or longitude is None:
            raise HTTPException(status_code=400, detail="latitude and longitude are required")
        origin = Position(latitude=latitude, longitude=longitude)
        return [m.to_wire() for m in get_hub(request).messages.query(origin, radius, limit)]

    @app.get("/nearby-users")
    def nearby_users(
        request: Request,
        latitude: Optional[float] = Query(None, ge=-90, le=90),
        longitude: Optional[float] = Query(None, ge=-180, le=180),
        radius: float = Query(settings.default_radius, ge=0),
    ):
        if latitude is None or longitude is None:
            raise HTTPException(status_code=400, detail="latitude and longitude are required")
        origin = Position(latitude=latitude, longitude=longitude)
        users = get_hub(request).users.nearby(origin, radius)
        return NearbyUsers(
            count=len(users),
            users=[NearbyUser(id=u.id, username=u.username) for u in users],
        ).to_wire()

    @app.post("/reports")
    def create_report(request: Request, payload: ReportCreate):
        return get_hub(request).reports.create(payload).to_wire()

    @app.get("/reports")
    def list_reports(request: Request):
        return [r.to_wire() for r in get_hub(request).reports.list()]

    # -------------------- WebSocket Endpoint --------------------

    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket):
        await websocket.accept()
        session = Session(websocket.app.state.hub, WebSocketChannel(websocket))
        logger.info("Connection %s opened from %s", session.handle, websocket.client.host if websocket.client else None)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                await session.handle_frame(raw)
        finally:
            await session.close()
            logger.info("Connection %s closed", session.handle)

    # -------------------- Diagnostics --------------------

    @app.get("/health")
    def health(request: Request):
        hub = get_hub(request)
        return {
            "status": "ok",
            "timestamp": now_utc().isoformat(),
            "connections": len(hub.connections),
            "users": len(hub.users),
            "messages": len(hub.messages),
            "calls": len(hub.calls),
            "database": "connected" if database.db is not None else "not configured",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
